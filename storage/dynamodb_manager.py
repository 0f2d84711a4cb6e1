"""DynamoDB event store for imported events."""
import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.models import DeleteResult, ResolvedEvent

logger = logging.getLogger(__name__)


class DynamoDBEventStore:
    """Event store backed by a DynamoDB table with a date index."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    DATE_INDEX = 'date-index'

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region (defaults to the environment's region)
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def get_events_for_day(self, date: str, source: str) -> List[Dict[str, Any]]:
        """
        Query the date index for one day's events imported from ``source``.

        Args:
            date: Day in YYYY-MM-DD format
            source: Import source name

        Returns:
            List of DynamoDB items
        """
        try:
            kwargs = {
                'IndexName': self.DATE_INDEX,
                'KeyConditionExpression': Key('event_date').eq(date),
                'FilterExpression': Attr('source').eq(source),
            }
            response = self.table.query(**kwargs)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
                )
                items.extend(response.get('Items', []))

            logger.info(f"Found {len(items)} {source} events for {date} in DynamoDB")
            return items

        except ClientError as e:
            logger.error(f"Error querying DynamoDB for {date}: {e}")
            raise

    def count_events_for_day(self, date: str, source: str) -> int:
        return len(self.get_events_for_day(date, source))

    def delete_events_for_day(self, date: str, source: str) -> DeleteResult:
        """
        Delete one day's events imported from ``source``.

        Args:
            date: Day in YYYY-MM-DD format
            source: Import source name

        Returns:
            DeleteResult with the count of deleted events
        """
        event_ids = [item['event_id'] for item in self.get_events_for_day(date, source)]
        return self.batch_delete_events(event_ids)

    def create_event(self, event: ResolvedEvent) -> str:
        """
        Write a single event.

        Args:
            event: ResolvedEvent to persist

        Returns:
            The stored event id
        """
        try:
            self.table.put_item(Item=self._resolved_event_to_item(event))
        except ClientError as e:
            logger.error(f"Error writing event {event.event_id}: {e}")
            raise
        return event.event_id

    def batch_delete_events(self, event_ids: List[str]) -> DeleteResult:
        """
        Delete events from DynamoDB in batches of 25 items.

        Args:
            event_ids: List of event IDs to delete

        Returns:
            DeleteResult with count of successfully deleted events
        """
        if not event_ids:
            return DeleteResult(deleted=0)

        logger.info(f"Deleting {len(event_ids)} events from DynamoDB")
        success_count = 0
        errors = []

        # Process in batches of 25 (DynamoDB limit)
        for i in range(0, len(event_ids), self.BATCH_SIZE):
            batch = event_ids[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for event_id in batch:
                        writer.delete_item(Key={'event_id': event_id})
                success_count += len(batch)

            except ClientError as e:
                error_msg = f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                logger.error(error_msg)
                errors.append(error_msg)
                # Continue processing remaining batches
                continue

        logger.info(f"Successfully deleted {success_count} events")
        return DeleteResult(deleted=success_count, errors=errors)

    def _resolved_event_to_item(self, event: ResolvedEvent) -> dict:
        """
        Convert ResolvedEvent object to DynamoDB item.

        Args:
            event: ResolvedEvent object

        Returns:
            DynamoDB item dictionary
        """
        payload = event.to_payload()
        item = {
            'event_id': event.event_id,
            'event_date': event.event_date,
            'start_time': payload['startDate'],
            'source': event.source,
            'external_id': event.external_id,
            'title': event.title,
            'description': event.description,
            'last_updated': int(time.time()),
        }
        if event.expires_at:
            item['ttl'] = int(event.expires_at.timestamp())

        # Add optional payload fields if present
        for key, value in payload.items():
            if key in ('title', 'description', 'startDate') or value is None:
                continue
            item[key] = _to_dynamo_value(value)

        return item


def _to_dynamo_value(value: Any) -> Any:
    """DynamoDB rejects floats; store them as Decimal."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo_value(v) for v in value]
    return value
