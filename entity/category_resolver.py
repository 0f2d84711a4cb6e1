"""Resolve external category labels to internal TT categories."""
import logging
from typing import Dict, List, Optional, Union

import requests

from entity.cache import EntityCache, EntityKind
from entity.matching import normalize_name
from processor.models import (
    UNCATEGORIZED,
    CategoryMatch,
    ExternalCategory,
    ImportStage,
)

logger = logging.getLogger(__name__)

# Ordered keyword rules; the first rule with a matching keyword wins.
# A None category means the label is deliberately left unmapped.
CATEGORY_RULES = [
    ('Class', (
        'class', 'workshop', 'lesson', 'drop-in', 'progressive', 'first timer',
        'beginner', 'advanced', 'learn', 'technique', 'seminar', 'training',
        'instruction', 'intensive', 'fundamentals',
    )),
    ('Milonga', (
        'milonga', 'dance', 'ball', 'salon', 'fiesta', 'night', 'evening',
        'baile', 'soiree',
    )),
    ('Practica', ('practica', 'practice', 'practilonga', 'practi')),
    (None, ('cancel', 'postponed', 'deleted')),
    ('Festival', ('festival', 'encuentro', 'marathon')),
    ('Performance', ('performance', 'show', 'exhibition', 'concert')),
]

# Labels seen in the wild that are not always published as categories
CATEGORY_VARIATIONS = {
    'Class': (
        'Drop-in Class', 'Progressive Class', 'Workshop', 'DayWorkshop',
        'First Timer Friendly', 'Beginner Class', 'Advanced Class',
        'Technique', 'Seminar', 'Training', 'Intensive',
    ),
    'Milonga': (
        'Dance', 'Ball', 'Salon', 'Social Dance', 'Fiesta', 'Milonga Night',
        'Evening Milonga', 'Baile', 'Soiree',
    ),
    'Practica': (
        'Practice', 'Guided Practice', 'Open Practice', 'Supervised Practice',
        'Practilonga',
    ),
}


def map_to_category(label: Optional[str]) -> Optional[str]:
    """
    Map an external category label to an internal category name.

    Args:
        label: External label (name or slug)

    Returns:
        Internal category name, or None when no rule applies
    """
    if not label:
        return None
    lowered = label.lower()
    for category, keywords in CATEGORY_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return None


class CategoryResolver:
    """Maps external categories onto the internal category catalog."""

    def __init__(self, catalog, cache: EntityCache, calendar=None):
        """
        Args:
            catalog: TT catalog client (``list_categories``)
            cache: Entity cache for this run
            calendar: Optional external calendar client (``fetch_categories``)
        """
        self.catalog = catalog
        self.cache = cache
        self.calendar = calendar
        self._internal: Optional[Dict[str, dict]] = None

    @property
    def loaded(self) -> bool:
        return self._internal is not None

    def load_all_categories(self) -> int:
        """
        Pre-populate the cache from the internal and external catalogs.

        Returns:
            Number of external labels cached
        """
        if not self._load_internal():
            return 0

        labels: List[ExternalCategory] = []
        if self.calendar is not None:
            try:
                labels.extend(self.calendar.fetch_categories())
                logger.info(f"Loaded {len(labels)} categories from BTC")
            except (requests.RequestException, ValueError) as e:
                logger.warning(f"Failed to load BTC categories: {e}")

        for variations in CATEGORY_VARIATIONS.values():
            labels.extend(ExternalCategory(id=None, name=v) for v in variations)

        cached = 0
        for label in labels:
            mapped = map_to_category(label.name) or map_to_category(label.slug)
            match = self._internal_match(mapped, source='direct-mapping')
            if match:
                self.cache.set(EntityKind.CATEGORIES, normalize_name(label.name), match)
                cached += 1

        logger.info(
            f"Cached {cached} category mappings",
            extra={'stage': ImportStage.ENTITY_RESOLUTION.value}
        )
        return cached

    def resolve_category(
        self, external_category: Union[ExternalCategory, str, None]
    ) -> CategoryMatch:
        """
        Resolve a single external category.

        Unmapped labels are recorded as unmatched and resolve to the
        UNCATEGORIZED sentinel instead of failing the event.
        """
        if isinstance(external_category, ExternalCategory):
            label, slug = external_category.name, external_category.slug
        else:
            label, slug = external_category or '', ''

        key = normalize_name(label)
        if not key:
            return UNCATEGORIZED

        cached = self.cache.get(EntityKind.CATEGORIES, key)
        if cached is not None:
            return cached

        mapped = map_to_category(label) or map_to_category(slug)
        if mapped is None:
            logger.info(f"Category not mapped: '{label}'")
            self.cache.mark_unmatched(EntityKind.CATEGORIES, key)
            return UNCATEGORIZED

        if not self.loaded and not self._load_internal():
            # Catalog unavailable; try again on the next event
            return UNCATEGORIZED

        match = self._internal_match(mapped, source='direct-mapping')
        if match is None:
            logger.warning(f"No internal category '{mapped}' for '{label}'")
            self.cache.mark_unmatched(EntityKind.CATEGORIES, key)
            return UNCATEGORIZED

        self.cache.set(EntityKind.CATEGORIES, key, match)
        logger.debug(f"Category matched: '{label}' -> {match.id} ({match.name})")
        return match

    def _load_internal(self) -> bool:
        try:
            categories = self.catalog.list_categories()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Failed to load TT categories: {e}")
            return False

        self._internal = {
            normalize_name(c.get('categoryName')): c
            for c in categories
            if c.get('categoryName') and c.get('_id')
        }
        logger.info(f"Loaded {len(self._internal)} categories from TT")
        return True

    def _internal_match(self, name: Optional[str], source: str) -> Optional[CategoryMatch]:
        if not name or not self._internal:
            return None
        document = self._internal.get(normalize_name(name))
        if document is None:
            return None
        return CategoryMatch(
            id=str(document['_id']),
            name=document['categoryName'],
            source=source
        )
