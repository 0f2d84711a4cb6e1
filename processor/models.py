"""Data models for the BTC event import."""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ImportStage(str, Enum):
    """Pipeline stage an event (or log line) belongs to."""
    EXTRACTION = 'EXTRACTION'
    ENTITY_RESOLUTION = 'ENTITY_RESOLUTION'
    TRANSFORMATION = 'TRANSFORMATION'
    VALIDATION = 'VALIDATION'
    LOADING = 'LOADING'
    PROCESSING = 'PROCESSING'


class GeoLevel(str, Enum):
    """Levels of the internal geographic hierarchy."""
    COUNTRY = 'country'
    REGION = 'region'
    DIVISION = 'division'
    CITY = 'city'


# Name field carried by a catalog document at each level.
GEO_NAME_FIELDS = {
    GeoLevel.COUNTRY: 'countryName',
    GeoLevel.REGION: 'regionName',
    GeoLevel.DIVISION: 'divisionName',
    GeoLevel.CITY: 'cityName',
}

if set(GEO_NAME_FIELDS) != set(GeoLevel):
    raise RuntimeError('GEO_NAME_FIELDS must cover every GeoLevel')


def geo_entity_name(level: GeoLevel, document: Optional[dict]) -> Optional[str]:
    """Return the display name of a geo hierarchy document."""
    if not document:
        return None
    return document.get(GEO_NAME_FIELDS[level]) or document.get('name')


@dataclass
class ExternalVenue:
    """Venue as published by the external calendar."""
    id: Optional[str]
    name: str
    address: str = ''
    city: str = ''
    state: str = ''
    zip: str = ''
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class ExternalOrganizer:
    """Organizer as published by the external calendar."""
    id: Optional[str]
    name: str
    email: str = ''


@dataclass
class ExternalCategory:
    """Category as published by the external calendar."""
    id: Optional[str]
    name: str
    slug: str = ''


@dataclass
class ExternalEvent:
    """Raw event from the external calendar."""
    id: str
    title: str
    description: str
    start_date: str
    end_date: str
    utc_start_date: Optional[str] = None
    utc_end_date: Optional[str] = None
    all_day: bool = False
    cost: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    venue: Optional[ExternalVenue] = None
    organizers: List[ExternalOrganizer] = field(default_factory=list)
    categories: List[ExternalCategory] = field(default_factory=list)

    @property
    def organizer(self) -> Optional[ExternalOrganizer]:
        """The owning organizer (first listed)."""
        return self.organizers[0] if self.organizers else None

    def source_summary(self) -> Dict[str, str]:
        """Raw entity names, used in failure reports."""
        return {
            'venue': self.venue.name if self.venue else 'unknown',
            'organizer': self.organizer.name if self.organizer else 'unknown',
            'categories': (
                ', '.join(c.name for c in self.categories)
                if self.categories else 'unknown'
            ),
        }


@dataclass(frozen=True)
class OrganizerMatch:
    """Internal organizer an external organizer resolved to."""
    id: str
    name: str
    source: str


@dataclass(frozen=True)
class CategoryMatch:
    """Internal category an external label resolved to."""
    id: Optional[str]
    name: str
    source: str

    @property
    def is_uncategorized(self) -> bool:
        return self.id is None


UNCATEGORIZED = CategoryMatch(id=None, name='Other', source='uncategorized')


@dataclass
class VenueGeography:
    """Geographic hierarchy attached to a resolved venue."""
    venue_id: str
    city_id: Optional[str] = None
    city_name: Optional[str] = None
    division_id: Optional[str] = None
    division_name: Optional[str] = None
    region_id: Optional[str] = None
    region_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_valid_geolocation: bool = False


@dataclass
class EventResolution:
    """Resolver outputs for a single external event."""
    venue_id: Optional[str] = None
    organizer: Optional[OrganizerMatch] = None
    category: CategoryMatch = UNCATEGORIZED
    secondary_category: Optional[CategoryMatch] = None
    geography: Optional[VenueGeography] = None
    errors: List[str] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        """Organizer and venue both resolved."""
        return bool(self.venue_id) and self.organizer is not None


@dataclass
class ResolvedEvent:
    """Internal event ready for persistence."""
    event_id: str
    external_id: str
    app_id: str
    title: str
    description: str
    event_date: Optional[str]
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    expires_at: Optional[datetime]
    venue_id: Optional[str]
    owner_organizer_id: Optional[str]
    owner_organizer_name: Optional[str]
    category_first_id: Optional[str] = None
    category_first: Optional[str] = None
    category_second_id: Optional[str] = None
    category_second: Optional[str] = None
    city_id: Optional[str] = None
    city_name: Optional[str] = None
    division_id: Optional[str] = None
    division_name: Optional[str] = None
    region_id: Optional[str] = None
    region_name: Optional[str] = None
    venue_latitude: Optional[float] = None
    venue_longitude: Optional[float] = None
    all_day: bool = False
    cost: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    discovered_comments: str = ''
    source: str = ''

    def to_payload(self) -> Dict[str, Any]:
        """Render as a TangoTiempo event document."""
        now = _isoformat(datetime.now(timezone.utc))
        payload = {
            'appId': self.app_id,
            'title': self.title,
            'description': self.description,
            'startDate': _isoformat(self.start_date),
            'endDate': _isoformat(self.end_date),
            'allDay': self.all_day,
            'cost': self.cost,
            'venueID': self.venue_id,
            'ownerOrganizerID': self.owner_organizer_id,
            'ownerOrganizerName': self.owner_organizer_name,
            'categoryFirstId': self.category_first_id,
            'categoryFirst': self.category_first,
            'categorySecondId': self.category_second_id,
            'categorySecond': self.category_second,
            'masteredCityId': self.city_id,
            'masteredCityName': self.city_name,
            'masteredDivisionId': self.division_id,
            'masteredDivisionName': self.division_name,
            'masteredRegionId': self.region_id,
            'masteredRegionName': self.region_name,
            'isDiscovered': True,
            'isOwnerManaged': False,
            'isActive': True,
            'isFeatured': False,
            'isCanceled': False,
            'discoveredFirstDate': now,
            'discoveredLastDate': now,
            'discoveredComments': self.discovered_comments,
            'expiresAt': _isoformat(self.expires_at),
        }
        if self.venue_latitude is not None and self.venue_longitude is not None:
            payload['venueGeolocation'] = {
                'type': 'Point',
                'coordinates': [self.venue_longitude, self.venue_latitude],
            }
        if self.image_url:
            payload['eventImage'] = self.image_url
        return payload


@dataclass
class ValidationResult:
    """Outcome of validating a ResolvedEvent."""
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class BtcEventStats:
    total: int = 0
    processed: int = 0


@dataclass
class TtEventStats:
    deleted: int = 0
    created: int = 0
    failed: int = 0


@dataclass
class ResolutionStats:
    success: int = 0
    failure: int = 0


@dataclass
class ValidationStats:
    valid: int = 0
    invalid: int = 0


@dataclass
class ImportStatistics:
    """Counters collected while importing one or more days."""
    btc_events: BtcEventStats = field(default_factory=BtcEventStats)
    tt_events: TtEventStats = field(default_factory=TtEventStats)
    entity_resolution: ResolutionStats = field(default_factory=ResolutionStats)
    validation: ValidationStats = field(default_factory=ValidationStats)

    def add(self, other: 'ImportStatistics') -> None:
        """Accumulate another snapshot into this one."""
        self.btc_events.total += other.btc_events.total
        self.btc_events.processed += other.btc_events.processed
        self.tt_events.deleted += other.tt_events.deleted
        self.tt_events.created += other.tt_events.created
        self.tt_events.failed += other.tt_events.failed
        self.entity_resolution.success += other.entity_resolution.success
        self.entity_resolution.failure += other.entity_resolution.failure
        self.validation.valid += other.validation.valid
        self.validation.invalid += other.validation.invalid

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return asdict(self)


@dataclass
class FailedEvent:
    """An external event that was not created, and why."""
    external_id: str
    title: str
    stage: ImportStage
    errors: List[str]
    source: Dict[str, str]
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['stage'] = self.stage.value
        return data


@dataclass
class DayResult:
    """Statistics and per-event outcomes for a single day."""
    date: str
    dry_run: bool
    statistics: ImportStatistics = field(default_factory=ImportStatistics)
    failed_events: List[FailedEvent] = field(default_factory=list)
    processed_events: List[Dict[str, Any]] = field(default_factory=list)
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    error: Optional[str] = None

    def finalize(self) -> None:
        self.end_time = datetime.now(timezone.utc)
        self.duration_seconds = round(
            (self.end_time - self.start_time).total_seconds(), 2
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'dry_run': self.dry_run,
            'start_time': _isoformat(self.start_time),
            'end_time': _isoformat(self.end_time),
            'duration_seconds': self.duration_seconds,
            **self.statistics.to_dict(),
            'failed_events': [e.to_dict() for e in self.failed_events],
            'processed_events': self.processed_events,
            'error': self.error,
        }


@dataclass
class RunResult:
    """Aggregated results of a (possibly multi-day) import run."""
    start_date: str
    end_date: str
    dry_run: bool
    statistics: ImportStatistics = field(default_factory=ImportStatistics)
    days: List[DayResult] = field(default_factory=list)
    failed_days: List[str] = field(default_factory=list)
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return not self.failed_days

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date_range': {'start': self.start_date, 'end': self.end_date},
            'dry_run': self.dry_run,
            'start_time': _isoformat(self.start_time),
            'end_time': _isoformat(self.end_time),
            'success': self.success,
            'failed_days': self.failed_days,
            **self.statistics.to_dict(),
            'dates': [day.to_dict() for day in self.days],
        }


@dataclass
class DeleteResult:
    """Result of removing a day's previously imported events."""
    deleted: int
    errors: List[str] = field(default_factory=list)


@dataclass
class SideEffectResult:
    """Outcome of a best-effort step that must never abort an import."""
    success: bool
    error: Optional[str] = None


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace('+00:00', 'Z')
