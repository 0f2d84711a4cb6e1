"""AWS Lambda handler for the BTC to TangoTiempo event import."""
import json
import logging
import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Any

from catalog.tt_api import TangoTiempoClient
from importer.assessment import perform_go_no_go_assessment
from importer.config import ImportConfig
from importer.day_import import DayImporter
from scraper.btc_calendar import BtcCalendarClient
from storage.api_event_store import ApiEventStore
from storage.dynamodb_manager import DynamoDBEventStore

DEFAULT_DAYS_AHEAD = 90

# Attributes every LogRecord has; anything else came in through extra=
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {
    'message', 'asctime'
}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        # Structured fields passed via extra=
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Create new handler with JSON formatter
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    # Set log level
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_event_store(config: ImportConfig, catalog: TangoTiempoClient):
    """Pick the event store named by EVENT_STORE."""
    if config.event_store == 'dynamodb':
        return DynamoDBEventStore(table_name=config.table_name)
    if config.event_store == 'api':
        return ApiEventStore(catalog)
    raise ValueError(f"Unknown event store: {config.event_store}")


def _parse_dry_run(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() != 'false'
    return bool(value)


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body, default=str)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the BTC import.

    Args:
        event: Payload with optional startDate, endDate, dryRun and appId
        context: Lambda context object

    Returns:
        Response dict with statusCode and run results
    """
    config = ImportConfig.from_env()
    event = event or {}

    # Initialize logging
    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    # Per-run overrides
    overrides = {}
    if 'dryRun' in event:
        overrides['dry_run'] = _parse_dry_run(event['dryRun'])
    if event.get('appId'):
        overrides['app_id'] = str(event['appId'])
    config = replace(config, **overrides)

    start_date = event.get('startDate') or (
        datetime.now(timezone.utc) + timedelta(days=DEFAULT_DAYS_AHEAD)
    ).strftime('%Y-%m-%d')
    end_date = event.get('endDate') or start_date

    # Log Lambda execution start
    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={
            'start_date': start_date,
            'end_date': end_date,
            'dry_run': config.dry_run,
            'event_store': config.event_store,
            'app_id': config.app_id
        }
    )

    try:
        for value in (start_date, end_date):
            datetime.strptime(value, '%Y-%m-%d')
    except (TypeError, ValueError):
        logger.error(f"Invalid date range: {start_date}..{end_date}")
        return _response(400, {
            'message': 'Invalid date format, expected YYYY-MM-DD',
            'startDate': start_date,
            'endDate': end_date
        })

    try:
        # Instantiate components
        client_options = {
            'timeout': config.timeout_seconds,
            'max_retries': config.max_retries
        }
        calendar = BtcCalendarClient(config.btc_api_base, **client_options)
        catalog = TangoTiempoClient(
            config.tt_api_base,
            app_id=config.app_id,
            auth_token=config.auth_token,
            **client_options
        )
        store = build_event_store(config, catalog)
        importer = DayImporter(config, calendar, catalog, store)

        run = importer.run(start_date, end_date)
        assessment = perform_go_no_go_assessment(run.statistics, config.thresholds)
        duration = time.time() - start_time

        # Log execution summary
        logger.info(
            "Lambda execution completed",
            extra={
                'duration_seconds': round(duration, 2),
                'failed_days': run.failed_days,
                'decision': 'GO' if assessment.go else 'NO-GO',
                **run.statistics.to_dict()
            }
        )

        if run.days and len(run.failed_days) == len(run.days):
            return _response(500, {
                'message': 'Import failed for every day in range',
                'results': run.to_dict(),
                'duration_seconds': round(duration, 2)
            })

        return _response(200, {
            'message': 'Import completed' + (' (dry run)' if config.dry_run else ''),
            'results': run.to_dict(),
            'assessment': assessment.to_dict(),
            'duration_seconds': round(duration, 2)
        })

    except Exception as e:
        # Calculate execution duration
        duration = time.time() - start_time

        # Log error
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        # Return error response
        return _response(500, {
            'message': 'Import failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
