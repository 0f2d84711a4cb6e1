"""Client for the TangoTiempo (TT) catalog and event API."""
import logging
from typing import Any, Dict, List, Optional

from processor.models import GeoLevel
from scraper.api_client import JsonApiClient

logger = logging.getLogger(__name__)


class TangoTiempoClient(JsonApiClient):
    """
    Lookup and persistence calls against the TT backend.

    Every request is scoped to a single ``appId``.
    """

    def __init__(
        self,
        base_url: str,
        app_id: str = '1',
        auth_token: Optional[str] = None,
        **kwargs: Any
    ):
        super().__init__(base_url, **kwargs)
        self.app_id = app_id
        self.auth_token = auth_token

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.auth_token:
            headers['Authorization'] = f"Bearer {self.auth_token}"
        return headers

    def _params(self, **params: Any) -> Dict[str, Any]:
        return {'appId': self.app_id, **params}

    # Venues

    def find_venues(self, name: str) -> List[Dict[str, Any]]:
        """Venues whose name matches ``name`` (server-side match)."""
        payload = self._get_json('venues', params=self._params(name=name))
        return (payload or {}).get('data', [])

    def find_venues_in_city(self, city_id: str) -> List[Dict[str, Any]]:
        """All venues attached to a mastered city."""
        payload = self._get_json(
            'venues', params=self._params(masteredCityId=city_id, limit=500)
        )
        return (payload or {}).get('data', [])

    def get_venue(self, venue_id: str) -> Optional[Dict[str, Any]]:
        """Venue document by id, or None if it does not exist."""
        return self._get_json(
            f"venues/{venue_id}", allow_not_found=True, params=self._params()
        )

    def nearest_city(self, latitude: float, longitude: float) -> Optional[Dict[str, Any]]:
        """
        Nearest mastered city to a coordinate.

        Returns:
            City document including ``distanceInKm``, or None
        """
        payload = self._get_json(
            'venues/nearest-city',
            allow_not_found=True,
            params=self._params(latitude=latitude, longitude=longitude, limit=1)
        )
        if isinstance(payload, list):
            return payload[0] if payload else None
        return payload or None

    # Organizers and categories

    def find_organizers(self, **query: str) -> List[Dict[str, Any]]:
        """Organizers matching a query such as ``btcNiceName=...`` or ``name=...``."""
        payload = self._get_json('organizers', params=self._params(**query))
        return (payload or {}).get('organizers', [])

    def list_categories(self) -> List[Dict[str, Any]]:
        payload = self._get_json('categories', params=self._params(limit=500))
        return (payload or {}).get('data', [])

    # Geo hierarchy

    def get_geo_entity(self, level: GeoLevel, entity_id: str) -> Optional[Dict[str, Any]]:
        """Country, region, division or city document by id."""
        return self._get_json(
            f"geo-hierarchy/{level.value}/{entity_id}",
            allow_not_found=True,
            params=self._params()
        )

    def list_geo_entities(self, level: GeoLevel) -> List[Dict[str, Any]]:
        """All geo entities of one level, e.g. every mastered city."""
        payload = self._get_json('geo-hierarchy', params=self._params(type=level.value))
        if isinstance(payload, list):
            return payload
        return (payload or {}).get('data', [])

    # Events

    def list_events(self, start: str, end: str) -> List[Dict[str, Any]]:
        """Events whose start falls between two ISO timestamps."""
        payload = self._get_json('events', params=self._params(start=start, end=end))
        if isinstance(payload, list):
            return payload
        return (payload or {}).get('events', [])

    def delete_event(self, event_id: str) -> None:
        self._request('DELETE', f"events/{event_id}", params=self._params())

    def create_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create an event and return the stored document."""
        response = self._request(
            'POST',
            'events/post',
            json=payload,
            headers={'X-Import-Source': 'BTC-Import'}
        )
        return response.json()
