"""Single-day and multi-day BTC import orchestration."""
import logging
from dataclasses import asdict
from datetime import date as date_type, datetime, timedelta, timezone
from typing import List, Optional, Tuple

import requests

from entity.cache import EntityCache
from entity.category_resolver import CategoryResolver
from entity.organizer_resolver import OrganizerResolver
from entity.unmatched_report import get_unmatched_report
from entity.venue_resolver import VenueResolver
from importer.config import ImportConfig
from importer.report_writer import ReportWriter
from processor.event_processor import EventProcessor
from processor.models import (
    DayResult,
    EventResolution,
    ExternalEvent,
    FailedEvent,
    ImportStage,
    ResolvedEvent,
    RunResult,
)

logger = logging.getLogger(__name__)


class DayImportError(Exception):
    """A day could not be imported; ``result`` holds the partial statistics."""

    def __init__(self, date: str, result: DayResult, message: str = ''):
        super().__init__(message or f"Import failed for {date}")
        self.date = date
        self.result = result


class DayImporter:
    """
    Imports BTC events into TT one day at a time.

    Each day goes through extraction, entity resolution, mapping,
    validation and a delete-then-create replace of the day's previously
    imported events.
    """

    def __init__(
        self,
        config: ImportConfig,
        calendar,
        catalog,
        store,
        cache: Optional[EntityCache] = None,
        writer: Optional[ReportWriter] = None,
    ):
        """
        Args:
            config: Import settings
            calendar: External calendar client (``fetch_events``)
            catalog: TT catalog client used by the resolvers
            store: Event store (``count_events_for_day``,
                ``delete_events_for_day``, ``create_event``)
            cache: Entity cache for this run (a new one by default)
            writer: Artifact writer (defaults to config.output_dir)
        """
        self.config = config
        self.calendar = calendar
        self.store = store
        self.cache = cache if cache is not None else EntityCache()
        self.writer = writer or ReportWriter(config.output_dir)

        self.categories = CategoryResolver(catalog, self.cache, calendar=calendar)
        self.organizers = OrganizerResolver(
            catalog,
            self.cache,
            match_threshold=config.organizer_match_threshold,
            default_short_name=config.default_organizer_short_name,
            log_dir=config.output_dir,
        )
        self.venues = VenueResolver(
            catalog,
            self.cache,
            match_threshold=config.venue_match_threshold,
            city_match_threshold=config.city_venue_match_threshold,
            max_city_distance_km=config.max_city_distance_km,
            partial_name_length=config.partial_name_length,
            placeholder_venue_name=config.placeholder_venue_name,
        )
        self.processor = EventProcessor(app_id=config.app_id, source_name=config.source_name)

    def process_single_day_import(self, date: str) -> DayResult:
        """
        Import all BTC events for one day.

        Args:
            date: Day in YYYY-MM-DD format

        Returns:
            DayResult with statistics and per-event failures

        Raises:
            DayImportError: If the day's events cannot be fetched
        """
        result = DayResult(date=date, dry_run=self.config.dry_run)
        stats = result.statistics
        mode = 'DRY RUN' if self.config.dry_run else 'LIVE'
        logger.info(
            f"Starting {mode} import for {date}",
            extra={'stage': ImportStage.EXTRACTION.value, 'date': date}
        )

        if not self.categories.loaded:
            self.categories.load_all_categories()

        try:
            events = self.calendar.fetch_events(date)
        except (requests.RequestException, ValueError) as e:
            result.error = f"Failed to fetch BTC events: {e}"
            result.finalize()
            logger.error(result.error, extra={'stage': ImportStage.EXTRACTION.value, 'date': date})
            raise DayImportError(date, result, result.error) from e

        stats.btc_events.total = len(events)
        if not events:
            logger.info(f"No BTC events for {date}; leaving stored events untouched")
            result.finalize()
            self._write_artifacts(result, events)
            return result

        valid_events: List[Tuple[ExternalEvent, ResolvedEvent]] = []
        for event in events:
            try:
                self._process_event(event, result, valid_events)
            except Exception as e:
                logger.error(
                    f"Failed to process event '{event.title}': {e}",
                    extra={'stage': ImportStage.PROCESSING.value, 'event_id': event.id}
                )
                stats.tt_events.failed += 1
                result.failed_events.append(FailedEvent(
                    external_id=event.id,
                    title=event.title,
                    stage=ImportStage.PROCESSING,
                    errors=[f"{type(e).__name__}: {e}"],
                    source=event.source_summary(),
                ))
            stats.btc_events.processed += 1

        self._replace_day(date, valid_events, result)

        result.finalize()
        self._write_artifacts(result, events)
        logger.info(
            f"Import for {date} complete: {stats.btc_events.total} fetched, "
            f"{stats.validation.valid} valid, {stats.tt_events.deleted} deleted, "
            f"{stats.tt_events.created} created, {stats.tt_events.failed} failed",
            extra={'stage': ImportStage.LOADING.value, 'date': date}
        )
        return result

    def resolve_event(self, event: ExternalEvent) -> EventResolution:
        """Resolve categories, organizer, venue and venue geography."""
        resolution = EventResolution()

        if event.categories:
            resolution.category = self.categories.resolve_category(event.categories[0])
        if len(event.categories) > 1:
            secondary = self.categories.resolve_category(event.categories[1])
            if not secondary.is_uncategorized:
                resolution.secondary_category = secondary

        resolution.organizer = self.organizers.resolve_organizer(event.organizer)
        if resolution.organizer is None:
            name = event.organizer.name if event.organizer else 'none'
            resolution.errors.append(f"Organizer not resolved: {name}")

        resolution.venue_id = self.venues.resolve_venue(event.venue)
        if resolution.venue_id is None:
            name = event.venue.name if event.venue else 'none'
            resolution.errors.append(f"Venue not resolved: {name}")
        else:
            resolution.geography = self.venues.get_venue_geography(resolution.venue_id)

        return resolution

    def run(self, start_date: str, end_date: Optional[str] = None) -> RunResult:
        """
        Import every day from start_date to end_date inclusive.

        A day that cannot be fetched is recorded as failed and the run
        moves on to the next day.

        Args:
            start_date: First day (YYYY-MM-DD)
            end_date: Last day (defaults to start_date)

        Returns:
            RunResult with per-day results and aggregated statistics
        """
        end_date = end_date or start_date
        first = datetime.strptime(start_date, '%Y-%m-%d').date()
        last = datetime.strptime(end_date, '%Y-%m-%d').date()
        if last < first:
            raise ValueError(f"End date {end_date} is before start date {start_date}")

        run = RunResult(start_date=start_date, end_date=end_date, dry_run=self.config.dry_run)
        self.categories.load_all_categories()

        for day in _days(first, last):
            try:
                day_result = self.process_single_day_import(day)
            except DayImportError as e:
                run.failed_days.append(day)
                day_result = e.result
            run.days.append(day_result)
            run.statistics.add(day_result.statistics)

        run.end_time = datetime.now(timezone.utc)
        logger.info(
            f"Import run {start_date}..{end_date} finished: "
            f"{len(run.days) - len(run.failed_days)}/{len(run.days)} days succeeded"
        )
        return run

    def _process_event(
        self,
        event: ExternalEvent,
        result: DayResult,
        valid_events: List[Tuple[ExternalEvent, ResolvedEvent]],
    ) -> None:
        """Resolve, map and validate one event, then record the outcome."""
        stats = result.statistics
        resolution = self.resolve_event(event)
        resolved = self.processor.map_event(event, resolution)
        validation = self.processor.validate(resolved)
        payload = resolved.to_payload()

        if resolution.resolved:
            stats.entity_resolution.success += 1
        else:
            stats.entity_resolution.failure += 1

        if validation.valid:
            stats.validation.valid += 1
            valid_events.append((event, resolved))
        else:
            stats.validation.invalid += 1
            stats.tt_events.failed += 1
            result.failed_events.append(FailedEvent(
                external_id=event.id,
                title=event.title,
                stage=(
                    ImportStage.VALIDATION if resolution.resolved
                    else ImportStage.ENTITY_RESOLUTION
                ),
                errors=resolution.errors + [
                    e for e in validation.errors if not e.endswith('not resolved')
                ],
                source=event.source_summary(),
                detail={
                    'venue_id': resolution.venue_id,
                    'organizer_id': resolution.organizer.id if resolution.organizer else None,
                    'category': resolution.category.name,
                },
            ))

        result.processed_events.append({
            'external_id': event.id,
            'title': event.title,
            'valid': validation.valid,
            'event': payload,
        })

    def _replace_day(
        self,
        date: str,
        valid_events: List[Tuple[ExternalEvent, ResolvedEvent]],
        result: DayResult,
    ) -> None:
        """Delete the day's imported events, then create the valid ones."""
        stats = result.statistics
        source = self.config.source_name

        if self.config.dry_run:
            try:
                stats.tt_events.deleted = self.store.count_events_for_day(date, source)
            except Exception as e:
                logger.warning(f"Could not count existing events for {date}: {e}")
            stats.tt_events.created = len(valid_events)
            logger.info(
                f"DRY RUN: would delete {stats.tt_events.deleted} and create "
                f"{stats.tt_events.created} events for {date}"
            )
            return

        try:
            deleted = self.store.delete_events_for_day(date, source)
        except Exception as e:
            error_msg = f"Failed to delete existing events for {date}: {e}"
            logger.error(error_msg, extra={'stage': ImportStage.LOADING.value, 'date': date})
            for event, _ in valid_events:
                self._record_loading_failure(result, event, error_msg)
            return

        stats.tt_events.deleted = deleted.deleted
        for error in deleted.errors:
            logger.warning(error)

        for event, resolved in valid_events:
            try:
                created_id = self.store.create_event(resolved)
                stats.tt_events.created += 1
                logger.debug(f"Created event {created_id} for BTC event {event.id}")
            except Exception as e:
                logger.error(
                    f"Failed to create event '{event.title}': {e}",
                    extra={'stage': ImportStage.LOADING.value, 'event_id': event.id}
                )
                self._record_loading_failure(result, event, str(e))

    def _record_loading_failure(self, result: DayResult, event: ExternalEvent, error: str) -> None:
        result.statistics.tt_events.failed += 1
        result.failed_events.append(FailedEvent(
            external_id=event.id,
            title=event.title,
            stage=ImportStage.LOADING,
            errors=[error],
            source=event.source_summary(),
        ))

    def _write_artifacts(self, result: DayResult, events: List[ExternalEvent]) -> None:
        if not self.writer.enabled:
            return
        outcome = self.writer.write_day(result.date, {
            'btc-events': [asdict(e) for e in events],
            'processed-events': result.processed_events,
            'failed-events': [e.to_dict() for e in result.failed_events],
            'unmatched-report': get_unmatched_report(self.cache).to_dict(),
            'day-results': result.to_dict(),
        })
        if not outcome.success:
            logger.warning(f"Some import artifacts for {result.date} were not saved")


def _days(first: date_type, last: date_type) -> List[str]:
    count = (last - first).days + 1
    return [(first + timedelta(days=i)).strftime('%Y-%m-%d') for i in range(count)]
