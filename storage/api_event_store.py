"""Event store backed by the TangoTiempo events API."""
import logging
from typing import Any, Dict, List

import requests

from processor.models import DeleteResult, ResolvedEvent

logger = logging.getLogger(__name__)


class ApiEventStore:
    """
    Replaces imported events through the TT API.

    Imported events are recognised by their ``discoveredComments`` prefix,
    so events created by hand on the same day are never touched.
    """

    def __init__(self, client):
        """
        Args:
            client: TangoTiempoClient
        """
        self.client = client

    def get_events_for_day(self, date: str, source: str) -> List[Dict[str, Any]]:
        """
        List one day's events that were imported from ``source``.

        Args:
            date: Day in YYYY-MM-DD format
            source: Import source name

        Returns:
            List of TT event documents
        """
        prefix = f"Imported from {source}"
        events = self.client.list_events(
            start=f"{date}T00:00:00.000Z",
            end=f"{date}T23:59:59.999Z"
        )
        imported = [
            e for e in events
            if (e.get('discoveredComments') or '').startswith(prefix)
        ]
        logger.info(f"Found {len(imported)} {source} events for {date} in TT")
        return imported

    def count_events_for_day(self, date: str, source: str) -> int:
        return len(self.get_events_for_day(date, source))

    def delete_events_for_day(self, date: str, source: str) -> DeleteResult:
        """
        Delete one day's imported events, one request per event.

        Individual delete failures are collected and do not stop the
        remaining deletes.
        """
        deleted = 0
        errors = []
        for event in self.get_events_for_day(date, source):
            event_id = event.get('_id')
            if not event_id:
                continue
            try:
                self.client.delete_event(str(event_id))
                deleted += 1
            except requests.RequestException as e:
                error_msg = f"Error deleting event {event_id}: {e}"
                logger.error(error_msg)
                errors.append(error_msg)

        logger.info(f"Deleted {deleted} {source} events for {date}")
        return DeleteResult(deleted=deleted, errors=errors)

    def create_event(self, event: ResolvedEvent) -> str:
        """
        Create an event and return its TT id.

        Raises:
            requests.RequestException: If the API rejects the event
        """
        document = self.client.create_event(event.to_payload())
        created_id = document.get('_id') if isinstance(document, dict) else None
        return str(created_id or event.event_id)
