"""Unit tests for EventProcessor."""
from datetime import datetime, timezone

import pytest

from processor.event_processor import EventProcessor
from processor.models import (
    CategoryMatch,
    EventResolution,
    ExternalEvent,
    OrganizerMatch,
    VenueGeography,
)


@pytest.fixture
def external_event():
    return ExternalEvent(
        id='1001',
        title='Friday Milonga',
        description='Social dancing all night',
        start_date='2025-07-18 20:00:00',
        end_date='2025-07-18 23:30:00',
        utc_start_date='2025-07-19 00:00:00',
        utc_end_date='2025-07-19 03:30:00',
        cost='$15',
        url='https://example.com/event/1001',
        image_url='https://example.com/img.jpg',
    )


@pytest.fixture
def resolution():
    return EventResolution(
        venue_id='V1',
        organizer=OrganizerMatch(id='O1', name='Jane Doe', source='btcNiceName'),
        category=CategoryMatch(id='C2', name='Milonga', source='direct-mapping'),
        geography=VenueGeography(
            venue_id='V1',
            city_id='city1',
            city_name='Boston',
            region_id='r1',
            region_name='New England',
            latitude=42.35,
            longitude=-71.06,
        ),
    )


class TestEventProcessor:
    """Test cases for EventProcessor class."""

    def test_map_event(self, external_event, resolution):
        processor = EventProcessor(app_id='1', source_name='BTC')

        event = processor.map_event(external_event, resolution)

        assert event.external_id == '1001'
        assert event.title == 'Friday Milonga'
        assert event.event_date == '2025-07-18'
        assert event.start_date == datetime(2025, 7, 19, 0, 0, tzinfo=timezone.utc)
        assert event.end_date == datetime(2025, 7, 19, 3, 30, tzinfo=timezone.utc)
        assert event.expires_at == datetime(2025, 7, 20, 3, 30, tzinfo=timezone.utc)
        assert event.venue_id == 'V1'
        assert event.owner_organizer_id == 'O1'
        assert event.owner_organizer_name == 'Jane Doe'
        assert event.category_first_id == 'C2'
        assert event.category_second_id is None
        assert event.city_name == 'Boston'
        assert event.discovered_comments == 'Imported from BTC event ID: 1001'
        assert event.source == 'BTC'

    def test_local_dates_are_used_without_utc_fields(self, external_event, resolution):
        external_event.utc_start_date = None
        external_event.utc_end_date = ''

        event = EventProcessor().map_event(external_event, resolution)

        assert event.start_date == datetime(2025, 7, 18, 20, 0, tzinfo=timezone.utc)
        assert event.end_date == datetime(2025, 7, 18, 23, 30, tzinfo=timezone.utc)

    def test_timestamps_with_offsets_are_converted_to_utc(self, external_event, resolution):
        external_event.utc_start_date = '2025-07-19T00:00:00+00:00'
        external_event.utc_end_date = None
        external_event.end_date = '2025-07-18T23:30:00-04:00'

        processor = EventProcessor()
        event = processor.map_event(external_event, resolution)

        assert event.start_date == datetime(2025, 7, 19, 0, 0, tzinfo=timezone.utc)
        assert event.end_date == datetime(2025, 7, 19, 3, 30, tzinfo=timezone.utc)
        assert processor.validate(event).valid is True

    def test_truncates_long_fields(self, external_event, resolution):
        external_event.title = 'A' * 300
        external_event.description = 'B' * 3000

        event = EventProcessor().map_event(external_event, resolution)

        assert len(event.title) == EventProcessor.MAX_TITLE_LENGTH
        assert len(event.description) == EventProcessor.MAX_DESCRIPTION_LENGTH

    def test_event_id_is_deterministic(self, external_event, resolution):
        processor = EventProcessor()

        first = processor.map_event(external_event, resolution)
        second = processor.map_event(external_event, resolution)
        external_event.id = '1002'
        third = processor.map_event(external_event, resolution)

        assert first.event_id == second.event_id
        assert first.event_id != third.event_id
        assert len(first.event_id) == 64

    def test_payload(self, external_event, resolution):
        payload = EventProcessor(app_id='7').map_event(external_event, resolution).to_payload()

        assert payload['appId'] == '7'
        assert payload['startDate'] == '2025-07-19T00:00:00Z'
        assert payload['expiresAt'] == '2025-07-20T03:30:00Z'
        assert payload['venueID'] == 'V1'
        assert payload['ownerOrganizerID'] == 'O1'
        assert payload['categoryFirst'] == 'Milonga'
        assert payload['masteredCityId'] == 'city1'
        assert payload['venueGeolocation'] == {
            'type': 'Point', 'coordinates': [-71.06, 42.35]
        }
        assert payload['eventImage'] == 'https://example.com/img.jpg'
        assert payload['isDiscovered'] is True

    def test_validate_valid_event(self, external_event, resolution):
        processor = EventProcessor()

        result = processor.validate(processor.map_event(external_event, resolution))

        assert result.valid is True
        assert result.errors == []

    def test_validate_unresolved_event(self, external_event):
        processor = EventProcessor()

        result = processor.validate(processor.map_event(external_event, EventResolution()))

        assert result.valid is False
        assert 'Venue not resolved' in result.errors
        assert 'Organizer not resolved' in result.errors

    def test_validate_start_must_precede_end(self, external_event, resolution):
        external_event.utc_end_date = external_event.utc_start_date
        processor = EventProcessor()

        result = processor.validate(processor.map_event(external_event, resolution))

        assert result.valid is False
        assert result.errors == ['Start date must be before end date']

    def test_validate_unparseable_dates(self, external_event, resolution):
        external_event.utc_start_date = 'not a date'
        external_event.start_date = 'soon'
        processor = EventProcessor()

        event = processor.map_event(external_event, resolution)
        result = processor.validate(event)

        assert event.start_date is None
        assert event.event_date is None
        assert 'Missing or invalid start date' in result.errors
        assert 'Missing or invalid event date' in result.errors

    def test_validate_missing_title(self, external_event, resolution):
        external_event.title = '   '
        processor = EventProcessor()

        result = processor.validate(processor.map_event(external_event, resolution))

        assert result.errors == ['Missing required field: title']
