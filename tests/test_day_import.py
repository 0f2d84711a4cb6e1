"""Unit tests for the day import orchestrator."""
import json
from unittest.mock import Mock

import pytest
import requests

from importer.config import ImportConfig
from importer.day_import import DayImporter, DayImportError
from processor.models import (
    DeleteResult,
    ExternalCategory,
    ExternalEvent,
    ExternalOrganizer,
    ExternalVenue,
    ImportStage,
)

DATE = '2025-07-20'


def make_event(event_id, venue='Club X', organizer='Jane Doe', category='Milonga'):
    return ExternalEvent(
        id=event_id,
        title=f"Event {event_id}",
        description='',
        start_date=f"{DATE} 20:00:00",
        end_date=f"{DATE} 23:30:00",
        utc_start_date='2025-07-21 00:00:00',
        utc_end_date='2025-07-21 03:30:00',
        venue=ExternalVenue(id='10', name=venue) if venue else None,
        organizers=[ExternalOrganizer(id='20', name=organizer)] if organizer else [],
        categories=[ExternalCategory(id='30', name=category, slug=category.lower())],
    )


@pytest.fixture
def calendar():
    calendar = Mock()
    calendar.fetch_categories.return_value = []
    calendar.fetch_events.return_value = []
    return calendar


@pytest.fixture
def catalog():
    catalog = Mock()
    catalog.list_categories.return_value = [{'_id': 'C2', 'categoryName': 'Milonga'}]
    catalog.find_venues.side_effect = (
        lambda name: [{'_id': 'V1', 'name': 'Club X'}] if name == 'Club X' else []
    )
    catalog.find_organizers.side_effect = (
        lambda **q: [{'_id': 'O1', 'fullName': 'Jane Doe'}]
        if q.get('btcNiceName') == 'Jane Doe' else []
    )
    catalog.find_venues_in_city.return_value = []
    catalog.list_geo_entities.return_value = []
    catalog.nearest_city.return_value = None
    catalog.get_venue.return_value = {
        '_id': 'V1',
        'masteredCityId': {'_id': 'city1', 'cityName': 'Boston'},
        'isValidVenueGeolocation': True,
    }
    return catalog


@pytest.fixture
def store():
    store = Mock()
    store.count_events_for_day.return_value = 3
    store.delete_events_for_day.return_value = DeleteResult(deleted=3)
    store.create_event.side_effect = lambda event: f"tt-{event.external_id}"
    return store


def make_importer(calendar, catalog, store, **config):
    config.setdefault('dry_run', False)
    return DayImporter(ImportConfig(**config), calendar, catalog, store)


class TestProcessSingleDayImport:
    """Test cases for DayImporter.process_single_day_import."""

    def test_resolved_and_unresolved_events(self, calendar, catalog, store):
        """One event resolves fully; the other has an unknown venue."""
        calendar.fetch_events.return_value = [
            make_event('E1'),
            make_event('E2', venue='Unknown Hall'),
        ]
        importer = make_importer(calendar, catalog, store)

        result = importer.process_single_day_import(DATE)

        stats = result.statistics
        assert stats.btc_events.total == 2
        assert stats.btc_events.processed == 2
        assert stats.entity_resolution.success == 1
        assert stats.entity_resolution.failure == 1
        assert stats.validation.valid == 1
        assert stats.validation.invalid == 1
        assert stats.tt_events.created == 1
        assert stats.tt_events.failed == 1
        assert stats.tt_events.deleted == 3

        assert len(result.failed_events) == 1
        failed = result.failed_events[0]
        assert failed.external_id == 'E2'
        assert failed.stage == ImportStage.ENTITY_RESOLUTION
        assert 'Venue not resolved: Unknown Hall' in failed.errors
        assert failed.source['venue'] == 'Unknown Hall'

        created = store.create_event.call_args[0][0]
        assert created.external_id == 'E1'
        assert created.venue_id == 'V1'
        assert created.owner_organizer_id == 'O1'
        assert created.category_first_id == 'C2'
        assert created.city_name == 'Boston'

    def test_replace_deletes_existing_then_creates(self, calendar, catalog, store):
        """Three stored events are replaced by two new ones."""
        calendar.fetch_events.return_value = [make_event('E1'), make_event('E2')]
        importer = make_importer(calendar, catalog, store)

        result = importer.process_single_day_import(DATE)

        store.delete_events_for_day.assert_called_once_with(DATE, 'BTC')
        assert store.create_event.call_count == 2
        assert result.statistics.tt_events.deleted == 3
        assert result.statistics.tt_events.created == 2
        assert result.failed_events == []

    def test_dry_run_does_not_write(self, calendar, catalog, store):
        calendar.fetch_events.return_value = [
            make_event('E1'),
            make_event('E2'),
            make_event('E3', organizer='Someone Else'),
        ]
        importer = make_importer(calendar, catalog, store, dry_run=True)

        result = importer.process_single_day_import(DATE)

        assert store.delete_events_for_day.call_count == 0
        assert store.create_event.call_count == 0
        store.count_events_for_day.assert_called_once_with(DATE, 'BTC')
        assert result.dry_run is True
        assert result.statistics.tt_events.deleted == 3
        assert result.statistics.tt_events.created == 2
        assert result.statistics.tt_events.failed == 1

    def test_no_events_leaves_store_untouched(self, calendar, catalog, store):
        importer = make_importer(calendar, catalog, store)

        result = importer.process_single_day_import(DATE)

        assert result.statistics.btc_events.total == 0
        assert store.method_calls == []
        assert result.end_time is not None

    def test_fetch_failure_raises_with_partial_result(self, calendar, catalog, store):
        calendar.fetch_events.side_effect = requests.ConnectionError('down')
        importer = make_importer(calendar, catalog, store)

        with pytest.raises(DayImportError) as exc_info:
            importer.process_single_day_import(DATE)

        assert exc_info.value.date == DATE
        assert 'down' in exc_info.value.result.error
        assert exc_info.value.result.end_time is not None
        assert store.method_calls == []

    def test_delete_failure_fails_every_valid_event(self, calendar, catalog, store):
        calendar.fetch_events.return_value = [make_event('E1'), make_event('E2')]
        store.delete_events_for_day.side_effect = requests.HTTPError('500')
        importer = make_importer(calendar, catalog, store)

        result = importer.process_single_day_import(DATE)

        assert store.create_event.call_count == 0
        assert result.statistics.tt_events.created == 0
        assert result.statistics.tt_events.failed == 2
        assert {f.stage for f in result.failed_events} == {ImportStage.LOADING}

    def test_create_failure_is_recorded_per_event(self, calendar, catalog, store):
        calendar.fetch_events.return_value = [make_event('E1'), make_event('E2')]

        def create(event):
            if event.external_id == 'E1':
                raise requests.HTTPError('rejected')
            return 'tt-E2'

        store.create_event.side_effect = create
        importer = make_importer(calendar, catalog, store)

        result = importer.process_single_day_import(DATE)

        assert result.statistics.tt_events.created == 1
        assert result.statistics.tt_events.failed == 1
        assert result.failed_events[0].external_id == 'E1'
        assert result.failed_events[0].stage == ImportStage.LOADING
        assert result.failed_events[0].errors == ['rejected']

    def test_venue_search_result_without_id_is_ignored(self, calendar, catalog, store):
        catalog.find_venues.side_effect = lambda name: {
            'Club X': [{'_id': 'V1', 'name': 'Club X'}],
            'Odd Hall': [{'name': 'Odd Hall'}],
        }.get(name, [])
        calendar.fetch_events.return_value = [
            make_event('E1', venue='Odd Hall'),
            make_event('E2'),
        ]
        importer = make_importer(calendar, catalog, store)

        result = importer.process_single_day_import(DATE)

        assert result.statistics.tt_events.created == 1
        assert result.failed_events[0].external_id == 'E1'
        assert result.failed_events[0].stage == ImportStage.ENTITY_RESOLUTION
        assert store.create_event.call_args[0][0].external_id == 'E2'

    def test_unexpected_event_error_does_not_abort_the_day(self, calendar, catalog, store):
        catalog.get_venue.side_effect = [
            RuntimeError('boom'),
            {'_id': 'V1', 'masteredCityId': {'_id': 'city1', 'cityName': 'Boston'}},
        ]
        calendar.fetch_events.return_value = [make_event('E1'), make_event('E2')]
        importer = make_importer(calendar, catalog, store)

        result = importer.process_single_day_import(DATE)

        stats = result.statistics
        assert stats.btc_events.processed == 2
        assert stats.tt_events.created == 1
        assert stats.tt_events.failed == 1
        assert stats.entity_resolution.success == 1
        assert len(result.failed_events) == 1
        failed = result.failed_events[0]
        assert failed.external_id == 'E1'
        assert failed.stage == ImportStage.PROCESSING
        assert failed.errors == ['RuntimeError: boom']
        assert store.create_event.call_args[0][0].external_id == 'E2'

    def test_repeated_entities_hit_the_catalog_once(self, calendar, catalog, store):
        calendar.fetch_events.return_value = [make_event('E1'), make_event('E2')]
        importer = make_importer(calendar, catalog, store)

        importer.process_single_day_import(DATE)

        assert catalog.find_organizers.call_count == 1
        assert catalog.find_venues.call_count == 1

    def test_cache_reset_forces_new_lookups(self, calendar, catalog, store):
        calendar.fetch_events.return_value = [make_event('E1')]
        importer = make_importer(calendar, catalog, store)

        importer.process_single_day_import(DATE)
        importer.cache.reset()
        importer.process_single_day_import(DATE)

        assert catalog.find_organizers.call_count == 2
        assert catalog.find_venues.call_count == 2

    def test_writes_artifacts(self, calendar, catalog, store, tmp_path):
        calendar.fetch_events.return_value = [
            make_event('E1'),
            make_event('E2', venue='Unknown Hall'),
        ]
        importer = make_importer(calendar, catalog, store, output_dir=str(tmp_path))

        importer.process_single_day_import(DATE)

        day_dir = tmp_path / DATE
        unmatched = json.loads((day_dir / 'unmatched-report.json').read_text())
        failed = json.loads((day_dir / 'failed-events.json').read_text())
        day = json.loads((day_dir / 'day-results.json').read_text())
        assert unmatched['venues'] == ['unknown hall']
        assert failed[0]['stage'] == 'ENTITY_RESOLUTION'
        assert day['tt_events']['created'] == 1
        assert (day_dir / 'btc-events.json').exists()
        assert (day_dir / 'processed-events.json').exists()
        assert (tmp_path / 'organizer-resolution' / 'resolution-summary.jsonl').exists()


class TestRun:
    """Test cases for DayImporter.run."""

    def test_aggregates_days_and_continues_after_failure(self, calendar, catalog, store):
        def fetch(date):
            if date == '2025-07-20':
                raise requests.Timeout('slow')
            return [make_event(f"{date}-1"), make_event(f"{date}-2")]

        calendar.fetch_events.side_effect = fetch
        importer = make_importer(calendar, catalog, store)

        run = importer.run('2025-07-20', '2025-07-22')

        assert [day.date for day in run.days] == ['2025-07-20', '2025-07-21', '2025-07-22']
        assert run.failed_days == ['2025-07-20']
        assert run.success is False
        assert run.statistics.btc_events.total == 4
        assert run.statistics.tt_events.created == 4
        assert run.statistics.tt_events.deleted == 6
        assert catalog.list_categories.call_count == 1

    def test_unexpected_event_error_does_not_fail_the_run(self, calendar, catalog, store):
        catalog.get_venue.side_effect = RuntimeError('boom')
        calendar.fetch_events.side_effect = lambda date: [make_event(f"{date}-1")]
        importer = make_importer(calendar, catalog, store)

        run = importer.run('2025-07-20', '2025-07-21')

        assert run.failed_days == []
        assert len(run.days) == 2
        assert run.statistics.tt_events.failed == 2
        assert store.create_event.call_count == 0

    def test_single_day_default(self, calendar, catalog, store):
        importer = make_importer(calendar, catalog, store)

        run = importer.run('2025-07-20')

        assert run.end_date == '2025-07-20'
        assert len(run.days) == 1
        assert run.success is True

    def test_rejects_reversed_range(self, calendar, catalog, store):
        importer = make_importer(calendar, catalog, store)

        with pytest.raises(ValueError):
            importer.run('2025-07-22', '2025-07-20')
