"""Resolve external organizers to internal TT organizers."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from entity.cache import EntityCache, EntityKind
from entity.matching import best_match, normalize_name
from processor.models import (
    ExternalOrganizer,
    ImportStage,
    OrganizerMatch,
    SideEffectResult,
)

logger = logging.getLogger(__name__)


def _organizer_name(document: Dict[str, Any]) -> Optional[str]:
    return document.get('fullName') or document.get('name') or document.get('shortName')


class OrganizerResolver:
    """
    Maps external organizers onto the internal organizer catalog.

    Lookup order: cache, alias (``btcNiceName``), fuzzy name match, then
    the optional default organizer. Every decision is appended to a
    resolution log for later review.
    """

    LOG_SUBDIR = 'organizer-resolution'
    LOG_FILENAME = 'resolution-summary.jsonl'

    def __init__(
        self,
        catalog,
        cache: EntityCache,
        match_threshold: float = 90.0,
        default_short_name: Optional[str] = None,
        log_dir: Optional[str] = None,
    ):
        self.catalog = catalog
        self.cache = cache
        self.match_threshold = match_threshold
        self.default_short_name = default_short_name
        self.log_path = (
            Path(log_dir) / self.LOG_SUBDIR / self.LOG_FILENAME if log_dir else None
        )

    def resolve_organizer(
        self, external_organizer: Optional[ExternalOrganizer]
    ) -> Optional[OrganizerMatch]:
        """
        Resolve an external organizer.

        Args:
            external_organizer: Organizer from the external calendar

        Returns:
            OrganizerMatch, or None when the organizer cannot be resolved
        """
        entry: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'source': None,
            'attempts': [],
            'success': False,
            'result': None,
            'error': None,
        }

        name = external_organizer.name if external_organizer else ''
        key = normalize_name(name)
        if not key:
            entry['error'] = 'Empty organizer received'
            self.log_organizer_resolution(entry)
            return None

        entry['source'] = {
            'id': external_organizer.id,
            'name': name,
            'email': external_organizer.email,
        }

        cached = self.cache.get(EntityKind.ORGANIZERS, key)
        if cached is not None:
            entry['attempts'].append({'method': 'cache', 'success': True})
            return self._succeed(entry, cached)

        if self.cache.is_unmatched(EntityKind.ORGANIZERS, key):
            entry['attempts'].append({'method': 'unmatched-cache', 'success': False})
            entry['error'] = 'Previously unmatched in this run'
            self.log_organizer_resolution(entry)
            return None

        lookups = [
            ('btcNiceName', {'btcNiceName': name}, None),
            ('name', {'name': name}, self.match_threshold),
        ]
        if self.default_short_name:
            lookups.append(('default', {'shortName': self.default_short_name}, None))

        transport_failed = False
        for method, query, threshold in lookups:
            attempt: Dict[str, Any] = {'method': method, 'query': query, 'success': False}
            entry['attempts'].append(attempt)
            try:
                candidates = self.catalog.find_organizers(**query)
            except (requests.RequestException, ValueError) as e:
                logger.warning(f"Organizer lookup by {method} failed for '{name}': {e}")
                attempt['error'] = str(e)
                transport_failed = True
                continue

            attempt['result_count'] = len(candidates)
            match = self._pick(name, candidates, threshold)
            if match is None:
                continue

            document, score = match
            organizer = OrganizerMatch(
                id=str(document['_id']),
                name=_organizer_name(document) or name,
                source=method
            )
            attempt.update(success=True, score=score)
            self.cache.set(EntityKind.ORGANIZERS, key, organizer)
            logger.info(
                f"Organizer matched by {method}: '{name}' -> {organizer.id}",
                extra={'stage': ImportStage.ENTITY_RESOLUTION.value}
            )
            return self._succeed(entry, organizer)

        if transport_failed:
            # Not conclusive; leave it out of the unmatched set
            entry['error'] = 'Catalog lookup failed'
        else:
            logger.warning(
                f"Unmatched organizer: '{name}'",
                extra={'stage': ImportStage.ENTITY_RESOLUTION.value}
            )
            self.cache.mark_unmatched(EntityKind.ORGANIZERS, key)
            entry['error'] = f"No matching organizer found for '{name}'"

        self.log_organizer_resolution(entry)
        return None

    def log_organizer_resolution(self, entry: Dict[str, Any]) -> SideEffectResult:
        """
        Append a resolution record to the review log.

        Never raises; a write failure is logged once and reported in the
        returned result.
        """
        if self.log_path is None:
            logger.debug(f"Organizer resolution: {json.dumps(entry, default=str)}")
            return SideEffectResult(success=True)

        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.log_path.open('a', encoding='utf-8') as handle:
                handle.write(json.dumps(entry, default=str) + '\n')
            return SideEffectResult(success=True)
        except OSError as e:
            logger.warning(f"Could not write organizer resolution log: {e}")
            return SideEffectResult(success=False, error=str(e))

    def _succeed(self, entry: Dict[str, Any], organizer: OrganizerMatch) -> OrganizerMatch:
        entry['success'] = True
        entry['result'] = {'id': organizer.id, 'name': organizer.name, 'source': organizer.source}
        self.log_organizer_resolution(entry)
        return organizer

    def _pick(self, name, candidates, threshold):
        candidates = [c for c in candidates if c.get('_id')]
        if not candidates:
            return None
        if threshold is None:
            # Alias and default lookups are exact on the server side
            return candidates[0], 100.0
        return best_match(name, candidates, _organizer_name, threshold)
