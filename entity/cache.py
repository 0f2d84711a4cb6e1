"""Per-run memo of entity resolutions and unmatched names."""
from enum import Enum
from typing import Any, Dict, Optional, Set


class EntityKind(str, Enum):
    """Entity families the cache keeps apart."""
    VENUES = 'venues'
    ORGANIZERS = 'organizers'
    CATEGORIES = 'categories'


class EntityCache:
    """
    Cache of normalized name -> internal entity lookups.

    One instance belongs to one import run. There is no eviction and no
    locking; call reset() between independent runs.
    """

    def __init__(self):
        self._resolved: Dict[EntityKind, Dict[str, Any]] = {
            kind: {} for kind in EntityKind
        }
        self._unmatched: Dict[EntityKind, Set[str]] = {
            kind: set() for kind in EntityKind
        }

    @property
    def venues(self) -> Dict[str, Any]:
        return self._resolved[EntityKind.VENUES]

    @property
    def organizers(self) -> Dict[str, Any]:
        return self._resolved[EntityKind.ORGANIZERS]

    @property
    def categories(self) -> Dict[str, Any]:
        return self._resolved[EntityKind.CATEGORIES]

    @property
    def unmatched(self) -> Dict[EntityKind, Set[str]]:
        return self._unmatched

    def get(self, kind: EntityKind, key: str) -> Optional[Any]:
        """Return the cached resolution for ``key`` or None."""
        return self._resolved[kind].get(key)

    def set(self, kind: EntityKind, key: str, value: Any) -> None:
        """Store a resolution; a hit supersedes any earlier miss."""
        self._resolved[kind][key] = value
        self._unmatched[kind].discard(key)

    def mark_unmatched(self, kind: EntityKind, key: str) -> None:
        """Record a miss unless the key has already been resolved."""
        if key in self._resolved[kind]:
            return
        self._unmatched[kind].add(key)

    def is_unmatched(self, kind: EntityKind, key: str) -> bool:
        return key in self._unmatched[kind]

    def reset(self) -> None:
        """Empty all resolved maps and unmatched sets."""
        for kind in EntityKind:
            self._resolved[kind].clear()
            self._unmatched[kind].clear()
