"""Summary of names the current run could not resolve."""
from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from entity.cache import EntityCache, EntityKind


@dataclass
class UnmatchedReport:
    venues: List[str]
    organizers: List[str]
    categories: List[str]
    stats: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def get_unmatched_report(cache: EntityCache) -> UnmatchedReport:
    """Snapshot unmatched names and cache sizes without touching the cache."""
    unmatched = cache.unmatched
    return UnmatchedReport(
        venues=sorted(unmatched[EntityKind.VENUES]),
        organizers=sorted(unmatched[EntityKind.ORGANIZERS]),
        categories=sorted(unmatched[EntityKind.CATEGORIES]),
        stats={
            'total_venues': len(cache.venues),
            'total_organizers': len(cache.organizers),
            'total_categories': len(cache.categories),
            'unmatched_venues': len(unmatched[EntityKind.VENUES]),
            'unmatched_organizers': len(unmatched[EntityKind.ORGANIZERS]),
            'unmatched_categories': len(unmatched[EntityKind.CATEGORIES]),
        },
    )
