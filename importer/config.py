"""Import configuration read from environment variables."""
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional


@dataclass(frozen=True)
class AssessmentThresholds:
    """Minimum rates an import must reach to be promoted."""
    min_resolution_rate: float = 0.90
    min_validation_rate: float = 0.95
    min_creation_rate: float = 0.95
    min_overall_rate: float = 0.85


@dataclass(frozen=True)
class ImportConfig:
    """Settings for a BTC import run."""
    btc_api_base: str = 'https://bostontangocalendar.com/wp-json/tribe/events/v1'
    tt_api_base: str = 'http://localhost:3010/api'
    app_id: str = '1'
    auth_token: Optional[str] = None
    dry_run: bool = True
    output_dir: Optional[str] = None
    timeout_seconds: int = 30
    max_retries: int = 3
    event_store: str = 'api'
    table_name: str = 'tangotiempo-events'
    log_level: str = 'INFO'
    source_name: str = 'BTC'

    # Resolution tuning (rapidfuzz scores are 0-100)
    venue_match_threshold: float = 85.0
    city_venue_match_threshold: float = 75.0
    organizer_match_threshold: float = 90.0
    max_city_distance_km: float = 5.0
    partial_name_length: int = 15
    placeholder_venue_name: Optional[str] = 'NotFound'
    default_organizer_short_name: Optional[str] = None

    thresholds: AssessmentThresholds = field(default_factory=AssessmentThresholds)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ImportConfig':
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            ImportConfig populated from the environment with defaults
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        thresholds = AssessmentThresholds(
            min_resolution_rate=float(env.get(
                'MIN_RESOLUTION_RATE', defaults.thresholds.min_resolution_rate)),
            min_validation_rate=float(env.get(
                'MIN_VALIDATION_RATE', defaults.thresholds.min_validation_rate)),
            min_creation_rate=float(env.get(
                'MIN_CREATION_RATE', defaults.thresholds.min_creation_rate)),
            min_overall_rate=float(env.get(
                'MIN_OVERALL_RATE', defaults.thresholds.min_overall_rate)),
        )

        return cls(
            btc_api_base=env.get('BTC_API_BASE', defaults.btc_api_base),
            tt_api_base=env.get('TT_API_BASE', defaults.tt_api_base),
            app_id=env.get('APP_ID', defaults.app_id),
            auth_token=env.get('AUTH_TOKEN') or None,
            # Dry run unless explicitly disabled
            dry_run=env.get('DRY_RUN', 'true').strip().lower() != 'false',
            output_dir=env.get('OUTPUT_DIR') or None,
            timeout_seconds=int(env.get('TIMEOUT_SECONDS', defaults.timeout_seconds)),
            max_retries=int(env.get('MAX_RETRIES', defaults.max_retries)),
            event_store=env.get('EVENT_STORE', defaults.event_store).lower(),
            table_name=env.get('TABLE_NAME', defaults.table_name),
            log_level=env.get('LOG_LEVEL', defaults.log_level),
            source_name=env.get('IMPORT_SOURCE', defaults.source_name),
            venue_match_threshold=float(env.get(
                'VENUE_MATCH_THRESHOLD', defaults.venue_match_threshold)),
            city_venue_match_threshold=float(env.get(
                'CITY_VENUE_MATCH_THRESHOLD', defaults.city_venue_match_threshold)),
            organizer_match_threshold=float(env.get(
                'ORGANIZER_MATCH_THRESHOLD', defaults.organizer_match_threshold)),
            max_city_distance_km=float(env.get(
                'MAX_CITY_DISTANCE_KM', defaults.max_city_distance_km)),
            partial_name_length=int(env.get(
                'PARTIAL_NAME_LENGTH', defaults.partial_name_length)),
            placeholder_venue_name=env.get(
                'PLACEHOLDER_VENUE_NAME', defaults.placeholder_venue_name) or None,
            default_organizer_short_name=env.get('DEFAULT_ORGANIZER_SHORT_NAME') or None,
            thresholds=thresholds,
        )
