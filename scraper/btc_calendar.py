"""Client for the BTC WordPress calendar (The Events Calendar REST API)."""
import logging
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from processor.models import (
    ExternalCategory,
    ExternalEvent,
    ExternalOrganizer,
    ExternalVenue,
    ImportStage,
)
from scraper.api_client import JsonApiClient

logger = logging.getLogger(__name__)


class BtcCalendarClient(JsonApiClient):
    """Fetches events and categories from the BTC calendar."""

    BASE_URL = 'https://bostontangocalendar.com/wp-json/tribe/events/v1'
    PER_PAGE = 50

    def __init__(self, base_url: str = BASE_URL, **kwargs: Any):
        super().__init__(base_url, **kwargs)

    def fetch_events(self, date: str) -> List[ExternalEvent]:
        """
        Fetch all events starting on a given day.

        Pages through the events endpoint until a short page is returned.

        Args:
            date: Day in YYYY-MM-DD format

        Returns:
            List of ExternalEvent objects

        Raises:
            requests.RequestException: If the calendar cannot be reached
            ValueError: If the response is not a valid events payload
        """
        logger.info(
            f"Fetching BTC events for {date}",
            extra={'stage': ImportStage.EXTRACTION.value, 'date': date}
        )

        raw_events: List[Dict[str, Any]] = []
        page = 1
        while True:
            payload = self._get_json(
                'events',
                params={
                    'start_date': date,
                    'end_date': date,
                    'per_page': self.PER_PAGE,
                    'page': page,
                }
            )
            if not isinstance(payload, dict) or not isinstance(payload.get('events', []), list):
                raise ValueError(f"Unexpected events payload for {date} page {page}")

            fetched = payload.get('events', [])
            raw_events.extend(fetched)
            logger.info(f"Retrieved {len(fetched)} events for {date} page {page}")

            if len(fetched) < self.PER_PAGE:
                break
            page += 1

        events = self._parse_events(raw_events)
        logger.info(f"Successfully fetched {len(events)} events for {date}")
        return events

    def fetch_categories(self) -> List[ExternalCategory]:
        """Fetch the calendar's category list."""
        payload = self._get_json('categories', params={'per_page': 100})
        categories = []
        for item in (payload or {}).get('categories', []):
            name = _clean_text(item.get('name'))
            if name:
                categories.append(ExternalCategory(
                    id=_str_or_none(item.get('id')),
                    name=name,
                    slug=item.get('slug') or ''
                ))
        return categories

    def _parse_events(self, raw_events: List[Dict[str, Any]]) -> List[ExternalEvent]:
        events = []
        for item in raw_events:
            try:
                event = self._parse_event(item)
                if event:
                    events.append(event)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Failed to parse event {item.get('id') if isinstance(item, dict) else item!r}: {e}")
                continue
        return events

    def _parse_event(self, item: Dict[str, Any]) -> Optional[ExternalEvent]:
        """
        Parse a single event record.

        Args:
            item: Event dictionary from the API

        Returns:
            ExternalEvent or None if the record lacks an id or title
        """
        event_id = _str_or_none(item.get('id'))
        title = _clean_text(item.get('title'))
        if not event_id or not title:
            return None

        image = item.get('image')
        image_url = image.get('url') if isinstance(image, dict) else None

        organizers = item.get('organizer') or []
        if isinstance(organizers, dict):
            organizers = [organizers]

        return ExternalEvent(
            id=event_id,
            title=title,
            description=_clean_text(item.get('description')),
            start_date=item.get('start_date') or '',
            end_date=item.get('end_date') or '',
            utc_start_date=item.get('utc_start_date'),
            utc_end_date=item.get('utc_end_date'),
            all_day=bool(item.get('all_day', False)),
            cost=item.get('cost') or None,
            url=item.get('url'),
            image_url=image_url,
            venue=self._parse_venue(item.get('venue')),
            organizers=[
                org for org in (self._parse_organizer(o) for o in organizers) if org
            ],
            categories=[
                ExternalCategory(
                    id=_str_or_none(c.get('id')),
                    name=_clean_text(c.get('name')),
                    slug=c.get('slug') or ''
                )
                for c in item.get('categories') or []
                if isinstance(c, dict) and c.get('name')
            ],
        )

    def _parse_venue(self, venue: Any) -> Optional[ExternalVenue]:
        # The API sends an empty list when an event has no venue
        if not isinstance(venue, dict) or not venue.get('venue'):
            return None
        return ExternalVenue(
            id=_str_or_none(venue.get('id')),
            name=_clean_text(venue.get('venue')),
            address=venue.get('address') or '',
            city=venue.get('city') or '',
            state=venue.get('state') or venue.get('province') or '',
            zip=venue.get('zip') or '',
            latitude=_float_or_none(venue.get('geo_lat')),
            longitude=_float_or_none(venue.get('geo_lng')),
        )

    def _parse_organizer(self, organizer: Any) -> Optional[ExternalOrganizer]:
        if not isinstance(organizer, dict) or not organizer.get('organizer'):
            return None
        return ExternalOrganizer(
            id=_str_or_none(organizer.get('id')),
            name=_clean_text(organizer.get('organizer')),
            email=organizer.get('email') or '',
        )


def _clean_text(value: Optional[str]) -> str:
    """Flatten HTML markup and entities to plain text."""
    if not value:
        return ''
    return BeautifulSoup(value, 'html.parser').get_text(' ', strip=True)


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value not in (None, '') else None


def _float_or_none(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, '') else None
    except (TypeError, ValueError):
        return None
