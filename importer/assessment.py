"""Go/No-Go assessment of an import run."""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from importer.config import AssessmentThresholds
from processor.models import ImportStatistics


@dataclass
class MetricResult:
    value: Optional[float]
    threshold: float
    passed: bool


@dataclass
class GoNoGoAssessment:
    """Whether an import run is good enough to promote."""
    go: bool
    metrics: Dict[str, MetricResult]
    thresholds: AssessmentThresholds
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'go': self.go,
            'decision': 'GO' if self.go else 'NO-GO',
            'metrics': {name: asdict(metric) for name, metric in self.metrics.items()},
            'thresholds': asdict(self.thresholds),
            'recommendations': self.recommendations,
        }


# Advice attached to a failed metric
_RECOMMENDATIONS = {
    'entity_resolution_rate': (
        'Review the unmatched venues and organizers report and add the '
        'missing catalog entries or aliases.'
    ),
    'validation_rate': 'Review failed events for missing fields and invalid dates.',
    'creation_rate': 'Check event store availability and the LOADING failures.',
    'overall_success_rate': 'Investigate the failed events before promoting this import.',
}


def _rate(numerator: int, denominator: int) -> Optional[float]:
    if denominator <= 0:
        return None
    return numerator / denominator


def perform_go_no_go_assessment(
    statistics: ImportStatistics,
    thresholds: Optional[AssessmentThresholds] = None,
) -> GoNoGoAssessment:
    """
    Compare import statistics against minimum rates.

    A metric with nothing to measure (zero denominator) has value None and
    passes.

    Args:
        statistics: Aggregated ImportStatistics for a run
        thresholds: Minimum rates (defaults to AssessmentThresholds())

    Returns:
        GoNoGoAssessment with per-metric results and recommendations
    """
    thresholds = thresholds or AssessmentThresholds()
    total = statistics.btc_events.total

    values = {
        'entity_resolution_rate': (
            _rate(statistics.entity_resolution.success, total),
            thresholds.min_resolution_rate,
        ),
        'validation_rate': (
            _rate(statistics.validation.valid, statistics.entity_resolution.success),
            thresholds.min_validation_rate,
        ),
        'creation_rate': (
            _rate(statistics.tt_events.created, statistics.validation.valid),
            thresholds.min_creation_rate,
        ),
        'overall_success_rate': (
            _rate(statistics.tt_events.created, total),
            thresholds.min_overall_rate,
        ),
    }

    metrics = {
        name: MetricResult(
            value=value,
            threshold=threshold,
            passed=value is None or value >= threshold
        )
        for name, (value, threshold) in values.items()
    }
    recommendations = [
        _RECOMMENDATIONS[name] for name, metric in metrics.items() if not metric.passed
    ]

    return GoNoGoAssessment(
        go=all(metric.passed for metric in metrics.values()),
        metrics=metrics,
        thresholds=thresholds,
        recommendations=recommendations,
    )
