"""Writes per-day import artifacts as JSON files."""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from processor.models import SideEffectResult

logger = logging.getLogger(__name__)


class ReportWriter:
    """
    Saves import artifacts under ``<output_dir>/<date>/``.

    Writes are best-effort: a failure is logged once and reported in the
    returned SideEffectResult, never raised.
    """

    def __init__(self, output_dir: Optional[str]):
        self.output_dir = Path(output_dir) if output_dir else None

    @property
    def enabled(self) -> bool:
        return self.output_dir is not None

    def write_json(self, date: str, name: str, data: Any) -> SideEffectResult:
        """
        Write one artifact.

        Args:
            date: Day the artifact belongs to (YYYY-MM-DD)
            name: File name without extension
            data: JSON-serializable data

        Returns:
            SideEffectResult
        """
        if not self.enabled:
            return SideEffectResult(success=True)

        path = self.output_dir / date / f"{name}.json"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2, default=str), encoding='utf-8')
            logger.debug(f"Wrote {path}")
            return SideEffectResult(success=True)
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Could not write {path}: {e}")
            return SideEffectResult(success=False, error=str(e))

    def write_day(self, date: str, artifacts: Dict[str, Any]) -> SideEffectResult:
        """Write every artifact for a day; the first error is reported."""
        error = None
        for name, data in artifacts.items():
            result = self.write_json(date, name, data)
            if not result.success and error is None:
                error = result.error
        return SideEffectResult(success=error is None, error=error)
