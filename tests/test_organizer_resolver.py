"""Unit tests for OrganizerResolver."""
import json
from unittest.mock import Mock

import pytest
import requests

from entity.cache import EntityCache, EntityKind
from entity.organizer_resolver import OrganizerResolver
from processor.models import ExternalOrganizer, OrganizerMatch


def organizers_by(field, value, documents):
    """find_organizers side effect answering only one query shape."""
    def find(**query):
        return documents if query.get(field) == value else []
    return find


@pytest.fixture
def catalog():
    catalog = Mock()
    catalog.find_organizers.return_value = []
    return catalog


@pytest.fixture
def cache():
    return EntityCache()


@pytest.fixture
def jane():
    return ExternalOrganizer(id='20', name='Jane Doe', email='jane@example.com')


class TestOrganizerResolver:
    """Test cases for OrganizerResolver class."""

    def test_alias_match(self, catalog, cache, jane):
        catalog.find_organizers.side_effect = organizers_by(
            'btcNiceName', 'Jane Doe', [{'_id': 'O1', 'fullName': 'Jane M. Doe'}]
        )
        resolver = OrganizerResolver(catalog, cache)

        match = resolver.resolve_organizer(jane)

        assert match == OrganizerMatch(id='O1', name='Jane M. Doe', source='btcNiceName')
        assert cache.get(EntityKind.ORGANIZERS, 'jane doe') == match

    def test_name_match_picks_best_candidate(self, catalog, cache, jane):
        catalog.find_organizers.side_effect = organizers_by('name', 'Jane Doe', [
            {'_id': 'O9', 'fullName': 'John Smith'},
            {'_id': 'O2', 'fullName': 'Jane Doe'},
        ])
        resolver = OrganizerResolver(catalog, cache)

        match = resolver.resolve_organizer(jane)

        assert match.id == 'O2'
        assert match.source == 'name'

    def test_name_candidates_below_threshold_do_not_match(self, catalog, cache, jane):
        catalog.find_organizers.side_effect = organizers_by(
            'name', 'Jane Doe', [{'_id': 'O9', 'fullName': 'Jane Doering Dance Studio'}]
        )
        resolver = OrganizerResolver(catalog, cache, match_threshold=90)

        assert resolver.resolve_organizer(jane) is None
        assert cache.is_unmatched(EntityKind.ORGANIZERS, 'jane doe')

    def test_cache_hit_skips_catalog(self, catalog, cache, jane):
        catalog.find_organizers.side_effect = organizers_by(
            'btcNiceName', 'Jane Doe', [{'_id': 'O1', 'fullName': 'Jane Doe'}]
        )
        resolver = OrganizerResolver(catalog, cache)

        resolver.resolve_organizer(jane)
        resolver.resolve_organizer(ExternalOrganizer(id='21', name='JANE  DOE'))

        assert catalog.find_organizers.call_count == 1

    def test_unmatched_name_is_not_looked_up_again(self, catalog, cache, jane):
        resolver = OrganizerResolver(catalog, cache)

        assert resolver.resolve_organizer(jane) is None
        calls = catalog.find_organizers.call_count
        assert resolver.resolve_organizer(jane) is None

        assert catalog.find_organizers.call_count == calls
        assert cache.is_unmatched(EntityKind.ORGANIZERS, 'jane doe')

    def test_transport_error_is_not_marked_unmatched(self, catalog, cache, jane):
        catalog.find_organizers.side_effect = requests.ConnectionError('down')
        resolver = OrganizerResolver(catalog, cache)

        assert resolver.resolve_organizer(jane) is None
        assert not cache.is_unmatched(EntityKind.ORGANIZERS, 'jane doe')

    def test_default_organizer_fallback(self, catalog, cache, jane):
        catalog.find_organizers.side_effect = organizers_by(
            'shortName', 'DEFAULT', [{'_id': 'D1', 'shortName': 'DEFAULT'}]
        )
        resolver = OrganizerResolver(catalog, cache, default_short_name='DEFAULT')

        match = resolver.resolve_organizer(jane)

        assert match == OrganizerMatch(id='D1', name='DEFAULT', source='default')

    def test_missing_organizer(self, catalog, cache):
        resolver = OrganizerResolver(catalog, cache)

        assert resolver.resolve_organizer(None) is None
        assert resolver.resolve_organizer(ExternalOrganizer(id='1', name='  ')) is None
        catalog.find_organizers.assert_not_called()


class TestOrganizerResolutionLog:
    """Test cases for the resolution log."""

    def test_writes_one_line_per_resolution(self, catalog, cache, jane, tmp_path):
        catalog.find_organizers.side_effect = organizers_by(
            'btcNiceName', 'Jane Doe', [{'_id': 'O1', 'fullName': 'Jane Doe'}]
        )
        resolver = OrganizerResolver(catalog, cache, log_dir=str(tmp_path))

        resolver.resolve_organizer(jane)
        resolver.resolve_organizer(ExternalOrganizer(id='22', name='Nobody Known'))

        log_file = tmp_path / 'organizer-resolution' / 'resolution-summary.jsonl'
        entries = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert len(entries) == 2
        assert entries[0]['success'] is True
        assert entries[0]['result']['id'] == 'O1'
        assert entries[0]['source']['name'] == 'Jane Doe'
        assert entries[1]['success'] is False
        assert entries[1]['error'] == "No matching organizer found for 'Nobody Known'"

    def test_write_failure_is_reported_not_raised(self, catalog, cache, tmp_path):
        blocker = tmp_path / 'not-a-directory'
        blocker.write_text('x')
        resolver = OrganizerResolver(catalog, cache, log_dir=str(blocker))

        result = resolver.log_organizer_resolution({'success': False})

        assert result.success is False
        assert result.error

    def test_without_log_dir(self, catalog, cache):
        resolver = OrganizerResolver(catalog, cache)

        assert resolver.log_organizer_resolution({'success': True}).success is True
