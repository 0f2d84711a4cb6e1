"""Event processor for mapping and validating imported events."""
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from processor.models import (
    EventResolution,
    ExternalEvent,
    ResolvedEvent,
    ValidationResult,
)

logger = logging.getLogger(__name__)


class EventProcessor:
    """Maps external events to internal events and validates them."""

    MAX_TITLE_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 2000
    EXPIRY_DAYS = 1

    def __init__(self, app_id: str = '1', source_name: str = 'BTC'):
        self.app_id = app_id
        self.source_name = source_name

    def map_event(self, event: ExternalEvent, resolution: EventResolution) -> ResolvedEvent:
        """
        Build the internal event from an external event and its resolutions.

        Unparseable timestamps are carried through as None so that
        validation can report them.

        Args:
            event: Raw ExternalEvent from the calendar
            resolution: Resolver outputs for the event

        Returns:
            ResolvedEvent object
        """
        start = self._parse_timestamp(event.utc_start_date, event.start_date)
        end = self._parse_timestamp(event.utc_end_date, event.end_date)

        # Truncate fields to maximum length
        title = (event.title or '').strip()[:self.MAX_TITLE_LENGTH]
        description = (event.description or '')[:self.MAX_DESCRIPTION_LENGTH]

        geography = resolution.geography
        secondary = resolution.secondary_category
        category = resolution.category
        organizer = resolution.organizer

        return ResolvedEvent(
            event_id=self.generate_event_id(
                external_id=event.id,
                start=start.isoformat() if start else event.start_date
            ),
            external_id=event.id,
            app_id=self.app_id,
            title=title,
            description=description,
            event_date=self._normalize_date(event.start_date),
            start_date=start,
            end_date=end,
            expires_at=end + timedelta(days=self.EXPIRY_DAYS) if end else None,
            venue_id=resolution.venue_id,
            owner_organizer_id=organizer.id if organizer else None,
            owner_organizer_name=organizer.name if organizer else None,
            category_first_id=category.id,
            category_first=category.name,
            category_second_id=secondary.id if secondary else None,
            category_second=secondary.name if secondary else None,
            city_id=geography.city_id if geography else None,
            city_name=geography.city_name if geography else None,
            division_id=geography.division_id if geography else None,
            division_name=geography.division_name if geography else None,
            region_id=geography.region_id if geography else None,
            region_name=geography.region_name if geography else None,
            venue_latitude=geography.latitude if geography else None,
            venue_longitude=geography.longitude if geography else None,
            all_day=event.all_day,
            cost=event.cost,
            url=event.url,
            image_url=event.image_url,
            discovered_comments=f"Imported from {self.source_name} event ID: {event.id}",
            source=self.source_name,
        )

    def validate(self, resolved: ResolvedEvent) -> ValidationResult:
        """
        Check that an internal event can be persisted.

        Args:
            resolved: ResolvedEvent to validate

        Returns:
            ValidationResult listing every problem found
        """
        errors = []
        if not resolved.title:
            errors.append('Missing required field: title')
        if not resolved.app_id:
            errors.append('Missing required field: appId')
        if not resolved.venue_id:
            errors.append('Venue not resolved')
        if not resolved.owner_organizer_id:
            errors.append('Organizer not resolved')
        if not resolved.event_date:
            errors.append('Missing or invalid event date')

        if resolved.start_date is None:
            errors.append('Missing or invalid start date')
        if resolved.end_date is None:
            errors.append('Missing or invalid end date')
        if resolved.start_date and resolved.end_date and resolved.start_date >= resolved.end_date:
            errors.append('Start date must be before end date')

        if errors:
            logger.debug(f"Event '{resolved.title}' failed validation: {errors}")
        return ValidationResult(valid=not errors, errors=errors)

    def _parse_timestamp(self, utc_value: Optional[str], local_value: Optional[str]) -> Optional[datetime]:
        """
        Parse a calendar timestamp into an aware UTC datetime.

        The UTC field is preferred; the local field is used as-is when it
        is the only one present.
        """
        for value in (utc_value, local_value):
            parsed = self._parse_datetime(value)
            if parsed is not None:
                return parsed
        return None

    def _parse_datetime(self, value: Optional[str]) -> Optional[datetime]:
        if not value or not value.strip():
            return None

        # Try common timestamp formats
        datetime_formats = [
            '%Y-%m-%d %H:%M:%S',     # Events Calendar API
            '%Y-%m-%dT%H:%M:%S',     # ISO 8601
            '%Y-%m-%dT%H:%M:%S.%f',  # ISO 8601 with fraction
            '%Y-%m-%d %H:%M',
            '%Y-%m-%d',
        ]

        text = value.strip().replace('Z', '')
        for fmt in datetime_formats:
            try:
                return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue

        # Explicit offsets such as +00:00 or -04:00
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    def _normalize_date(self, date_str: Optional[str]) -> Optional[str]:
        """
        Normalize the local start to an ISO 8601 day (YYYY-MM-DD).

        Args:
            date_str: Local start timestamp from the calendar

        Returns:
            ISO 8601 formatted date string or None if parsing fails
        """
        if not date_str or not date_str.strip():
            return None

        # Try common date formats
        date_formats = [
            '%Y-%m-%d',      # ISO 8601
            '%m/%d/%Y',      # US format
            '%Y/%m/%d',      # Alternative ISO format
        ]

        day = date_str.strip()[:10]
        for fmt in date_formats:
            try:
                return datetime.strptime(day, fmt).strftime('%Y-%m-%d')
            except ValueError:
                continue

        return None

    def generate_event_id(self, external_id: str, start: Optional[str]) -> str:
        """
        Generate unique identifier for an event using hash of source + id + start.

        Args:
            external_id: Calendar event id
            start: Event start (ISO 8601)

        Returns:
            Unique event ID (SHA256 hash)
        """
        composite = f"{self.source_name}|{external_id}|{start or ''}"
        return hashlib.sha256(composite.encode('utf-8')).hexdigest()
