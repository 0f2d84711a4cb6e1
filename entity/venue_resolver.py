"""Resolve external venues to internal TT venues and their geography."""
import logging
from typing import Any, Dict, List, Optional

import requests

from entity.cache import EntityCache, EntityKind
from entity.matching import best_match, normalize_name
from processor.models import (
    ExternalVenue,
    GeoLevel,
    ImportStage,
    VenueGeography,
    geo_entity_name,
)

logger = logging.getLogger(__name__)

_MIN_PARTIAL_LENGTH = 3


def _venue_name(document: Dict[str, Any]) -> Optional[str]:
    return document.get('name')


def _city_name(document: Dict[str, Any]) -> Optional[str]:
    return geo_entity_name(GeoLevel.CITY, document)


def _with_ids(documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [d for d in documents if d.get('_id')]


class VenueResolver:
    """
    Maps external venues onto the internal venue catalog.

    Lookup order: cache, name, partial name, then geography (nearest
    mastered city and the venues in it). A placeholder venue can stand in
    when the city is known but the venue is not.
    """

    def __init__(
        self,
        catalog,
        cache: EntityCache,
        match_threshold: float = 85.0,
        city_match_threshold: float = 75.0,
        max_city_distance_km: float = 5.0,
        partial_name_length: int = 15,
        placeholder_venue_name: Optional[str] = 'NotFound',
    ):
        self.catalog = catalog
        self.cache = cache
        self.match_threshold = match_threshold
        self.city_match_threshold = city_match_threshold
        self.max_city_distance_km = max_city_distance_km
        self.partial_name_length = partial_name_length
        self.placeholder_venue_name = placeholder_venue_name
        self._cities: Optional[List[Dict[str, Any]]] = None
        self._placeholder_id: Optional[str] = None
        self._placeholder_loaded = False

    def resolve_venue(self, external_venue: Optional[ExternalVenue]) -> Optional[str]:
        """
        Resolve an external venue.

        Args:
            external_venue: Venue from the external calendar

        Returns:
            Internal venue id, or None when the venue cannot be resolved
        """
        if external_venue is None:
            return None

        name = external_venue.name
        key = normalize_name(name)
        if not key:
            return None

        cached = self.cache.get(EntityKind.VENUES, key)
        if cached is not None:
            return cached

        if self.cache.is_unmatched(EntityKind.VENUES, key):
            logger.debug(f"Skipping previously unmatched venue '{name}'")
            return None

        try:
            venue_id = (
                self._match_by_name(name)
                or self._match_by_partial_name(name, key)
                or self._match_by_geography(external_venue)
            )
        except (requests.RequestException, ValueError) as e:
            # Inconclusive; the next event with this venue tries again
            logger.warning(f"Venue lookup failed for '{name}': {e}")
            return None

        if venue_id is None:
            logger.warning(
                f"Unmatched venue: '{name}'",
                extra={'stage': ImportStage.ENTITY_RESOLUTION.value}
            )
            self.cache.mark_unmatched(EntityKind.VENUES, key)
            return None

        self.cache.set(EntityKind.VENUES, key, venue_id)
        return venue_id

    def get_venue_geography(self, venue_id: Optional[str]) -> Optional[VenueGeography]:
        """
        Read the city, division and region a venue is mastered to.

        Args:
            venue_id: Internal venue id

        Returns:
            VenueGeography, or None if the venue is missing or has no
            geographic data
        """
        if not venue_id:
            return None

        try:
            venue = self.catalog.get_venue(venue_id)
            if not venue:
                logger.warning(f"Venue {venue_id} not found")
                return None

            city_id, city_name = self._geo_reference(venue, GeoLevel.CITY, 'masteredCity')
            division_id, division_name = self._geo_reference(
                venue, GeoLevel.DIVISION, 'masteredDivision'
            )
            region_id, region_name = self._geo_reference(
                venue, GeoLevel.REGION, 'masteredRegion'
            )
            if not (city_id or division_id or region_id):
                logger.warning(f"Venue {venue_id} has no geographic data")
                return None

            latitude, longitude = _venue_coordinates(venue)
            geography = VenueGeography(
                venue_id=venue_id,
                city_id=city_id,
                city_name=city_name,
                division_id=division_id,
                division_name=division_name,
                region_id=region_id,
                region_name=region_name,
                latitude=latitude,
                longitude=longitude,
            )
            geography.is_valid_geolocation = self._is_valid_geolocation(venue, latitude, longitude)
            return geography

        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Failed to load geography for venue {venue_id}: {e}")
            return None

    # Matching strategies

    def _match_by_name(self, name: str) -> Optional[str]:
        candidates = _with_ids(self.catalog.find_venues(name))
        match = best_match(name, candidates, _venue_name, self.match_threshold)
        if match is None:
            return None
        document, score = match
        logger.info(f"Venue matched by name: '{name}' -> {document['_id']} ({score:.0f})")
        return str(document['_id'])

    def _match_by_partial_name(self, name: str, key: str) -> Optional[str]:
        partial = key[:self.partial_name_length].strip()
        if len(partial) < _MIN_PARTIAL_LENGTH or partial == key:
            return None

        candidates = _with_ids(self.catalog.find_venues(partial))
        match = best_match(name, candidates, _venue_name, self.match_threshold)
        if match is None:
            return None
        document, score = match
        logger.info(
            f"Venue matched by partial name '{partial}': '{name}' -> {document['_id']} ({score:.0f})"
        )
        return str(document['_id'])

    def _match_by_geography(self, venue: ExternalVenue) -> Optional[str]:
        city = self._find_city(venue)
        if city is None:
            return None

        city_id = str(city['_id'])
        candidates = _with_ids(self.catalog.find_venues_in_city(city_id))
        match = best_match(venue.name, candidates, _venue_name, self.city_match_threshold)
        if match is not None:
            document, score = match
            logger.info(
                f"Venue matched within city {_city_name(city)}: "
                f"'{venue.name}' -> {document['_id']} ({score:.0f})"
            )
            return str(document['_id'])

        placeholder_id = self._placeholder()
        if placeholder_id:
            logger.warning(
                f"Venue '{venue.name}' assigned to placeholder venue in {_city_name(city)}",
                extra={'stage': ImportStage.ENTITY_RESOLUTION.value}
            )
        return placeholder_id

    def _find_city(self, venue: ExternalVenue) -> Optional[Dict[str, Any]]:
        if venue.has_coordinates:
            city = self.catalog.nearest_city(venue.latitude, venue.longitude)
            if not city or not city.get('_id'):
                return None
            distance = city.get('distanceInKm')
            if distance is not None and float(distance) > self.max_city_distance_km:
                logger.info(
                    f"Nearest city to '{venue.name}' is {distance} km away; ignoring"
                )
                return None
            return city

        if not venue.city:
            return None
        match = best_match(venue.city, self._all_cities(), _city_name, self.match_threshold)
        return match[0] if match else None

    def _all_cities(self) -> List[Dict[str, Any]]:
        if self._cities is None:
            self._cities = [
                c for c in self.catalog.list_geo_entities(GeoLevel.CITY) if c.get('_id')
            ]
        return self._cities

    def _placeholder(self) -> Optional[str]:
        if not self.placeholder_venue_name:
            return None
        if not self._placeholder_loaded:
            documents = [
                d for d in self.catalog.find_venues(self.placeholder_venue_name)
                if normalize_name(d.get('name')) == normalize_name(self.placeholder_venue_name)
            ]
            self._placeholder_id = str(documents[0]['_id']) if documents and documents[0].get('_id') else None
            self._placeholder_loaded = True
        return self._placeholder_id

    # Geography helpers

    def _geo_reference(self, venue: Dict[str, Any], level: GeoLevel, field: str):
        """Return (id, name) for a populated or bare hierarchy reference."""
        reference = venue.get(f"{field}Id")
        if isinstance(reference, dict):
            entity_id = reference.get('_id')
            return (
                str(entity_id) if entity_id else None,
                geo_entity_name(level, reference),
            )
        if not reference:
            return None, None

        name = venue.get(f"{field}Name")
        if not name:
            name = geo_entity_name(level, self.catalog.get_geo_entity(level, str(reference)))
        return str(reference), name

    def _is_valid_geolocation(self, venue, latitude, longitude) -> bool:
        if 'isValidVenueGeolocation' in venue:
            return bool(venue['isValidVenueGeolocation'])
        if latitude is None or longitude is None:
            return False
        city = self.catalog.nearest_city(latitude, longitude)
        if not city or city.get('distanceInKm') is None:
            return False
        return float(city['distanceInKm']) <= self.max_city_distance_km


def _venue_coordinates(venue: Dict[str, Any]):
    latitude, longitude = venue.get('latitude'), venue.get('longitude')
    if latitude is None or longitude is None:
        coordinates = (venue.get('geolocation') or {}).get('coordinates') or []
        if len(coordinates) == 2:
            longitude, latitude = coordinates
    if latitude is None or longitude is None:
        return None, None
    return float(latitude), float(longitude)
