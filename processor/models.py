"""Data models for rink event processing."""
import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from dateutil import parser as date_parser

from processor.errors import AggregateFailure

ALL_RINKS_VIEW = 'all-rinks'
DEFAULT_NUMBER_OF_DAYS = 4
MAX_NUMBER_OF_DAYS = 366


class Category(str, Enum):
    """Closed taxonomy of rink activity kinds."""
    PUBLIC_SKATE = 'Public Skate'
    STICK_AND_PUCK = 'Stick & Puck'
    HOCKEY_LEAGUE = 'Hockey League'
    LEARN_TO_SKATE = 'Learn to Skate'
    FIGURE_SKATING = 'Figure Skating'
    HOCKEY_PRACTICE = 'Hockey Practice'
    DROP_IN_HOCKEY = 'Drop-In Hockey'
    SPECIAL_EVENT = 'Special Event'
    OTHER = 'Other'

    @classmethod
    def from_value(cls, value: str) -> Optional['Category']:
        """Look up a category by its display value, None when unknown."""
        for category in cls:
            if category.value == value:
                return category
        return None


class DateMode(str, Enum):
    NEXT_DAYS = 'next-days'
    SPECIFIC_DAY = 'specific-day'
    DATE_RANGE = 'date-range'


class TimeMode(str, Enum):
    ALL = 'all-times'
    AFTER = 'after-time'
    BEFORE = 'before-time'
    RANGE = 'time-range'


class FilterMode(str, Enum):
    INCLUDE = 'include'
    EXCLUDE = 'exclude'


def format_utc(value: datetime) -> str:
    """Format an aware datetime as ISO-8601 UTC with a Z suffix."""
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def parse_utc(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    parsed = date_parser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class CanonicalEvent:
    """Normalized rink session with absolute UTC start and end."""
    id: str
    source_rink_id: str
    title: str
    start_time: datetime
    end_time: datetime
    category: Category
    description: Optional[str] = None
    is_featured: bool = False
    external_url: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        """
        Convert to the canonical JSON wire shape.

        Optional fields are omitted when unset.
        """
        item: Dict[str, Any] = {
            'id': self.id,
            'rinkId': self.source_rink_id,
            'title': self.title,
            'startTime': format_utc(self.start_time),
            'endTime': format_utc(self.end_time),
            'category': self.category.value,
        }
        if self.description:
            item['description'] = self.description
        if self.is_featured:
            item['isFeatured'] = True
        if self.external_url:
            item['eventUrl'] = self.external_url
        return item

    @classmethod
    def from_wire(cls, item: Dict[str, Any]) -> 'CanonicalEvent':
        """
        Build an event from its wire shape.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a timestamp cannot be parsed
        """
        return cls(
            id=item['id'],
            source_rink_id=item['rinkId'],
            title=item['title'],
            start_time=parse_utc(item['startTime']),
            end_time=parse_utc(item['endTime']),
            category=Category.from_value(item.get('category', '')) or Category.OTHER,
            description=item.get('description'),
            is_featured=bool(item.get('isFeatured', False)),
            external_url=item.get('eventUrl'),
        )


@dataclass(frozen=True)
class DisplayEvent:
    """Filtered event with human-readable rink labels attached."""
    event: CanonicalEvent
    rink_display_name: str
    facility_name: Optional[str] = None
    rink_name: Optional[str] = None
    source_url: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        item = self.event.to_wire()
        item['rinkDisplayName'] = self.rink_display_name
        if self.facility_name:
            item['facilityName'] = self.facility_name
        if self.rink_name:
            item['rinkName'] = self.rink_name
        if self.source_url:
            item['sourceUrl'] = self.source_url
        return item


@dataclass(frozen=True)
class FilterSettings:
    """
    Immutable filter configuration for one query.

    The defaults show the next four days at all times for every rink and
    category.
    """
    view: str = ALL_RINKS_VIEW
    date_mode: DateMode = DateMode.NEXT_DAYS
    number_of_days: int = DEFAULT_NUMBER_OF_DAYS
    selected_date: Optional[date] = None
    date_range_start: Optional[date] = None
    date_range_end: Optional[date] = None
    time_mode: TimeMode = TimeMode.ALL
    after_time: Optional[time] = None
    before_time: Optional[time] = None
    time_range_start: Optional[time] = None
    time_range_end: Optional[time] = None
    rink_mode: FilterMode = FilterMode.EXCLUDE
    active_rink_ids: FrozenSet[str] = frozenset()
    category_mode: FilterMode = FilterMode.EXCLUDE
    active_categories: FrozenSet[Category] = frozenset()

    def with_changes(self, **changes: Any) -> 'FilterSettings':
        """Return a new FilterSettings with the given fields replaced."""
        if 'active_rink_ids' in changes:
            changes['active_rink_ids'] = frozenset(changes['active_rink_ids'])
        if 'active_categories' in changes:
            changes['active_categories'] = frozenset(changes['active_categories'])
        return dataclasses.replace(self, **changes)

    def has_active_filters(self) -> bool:
        """True when any setting narrows results beyond the defaults."""
        return (
            bool(self.active_categories) or
            bool(self.active_rink_ids) or
            self.category_mode != FilterMode.EXCLUDE or
            self.rink_mode != FilterMode.EXCLUDE or
            self.date_mode != DateMode.NEXT_DAYS or
            self.number_of_days != DEFAULT_NUMBER_OF_DAYS or
            self.time_mode != TimeMode.ALL
        )

    def describe(self) -> str:
        """Human-readable summary of the date and time window."""
        if self.date_mode == DateMode.SPECIFIC_DAY:
            description = 'Showing events for selected date'
        elif self.date_mode == DateMode.DATE_RANGE:
            description = 'Showing events for selected date range'
        else:
            description = f'Showing events for the next {self.number_of_days} days'

        if self.time_mode == TimeMode.AFTER:
            description += ' (after specified time)'
        elif self.time_mode == TimeMode.BEFORE:
            description += ' (before specified time)'
        elif self.time_mode == TimeMode.RANGE:
            description += ' (within time range)'

        return description + '.'


@dataclass
class SourceMetadata:
    """Outcome of the latest poll of one source."""
    source_id: str
    last_attempt: datetime
    status: str
    event_count: int
    error_message: Optional[str] = None
    last_successful_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'sourceId': self.source_id,
            'lastAttempt': format_utc(self.last_attempt),
            'status': self.status,
            'eventCount': self.event_count,
        }
        if self.error_message:
            data['errorMessage'] = self.error_message
        if self.last_successful_at:
            data['lastSuccessfulAt'] = format_utc(self.last_successful_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SourceMetadata':
        last_success = data.get('lastSuccessfulAt')
        return cls(
            source_id=data['sourceId'],
            last_attempt=parse_utc(data['lastAttempt']),
            status=data['status'],
            event_count=int(data.get('eventCount', 0)),
            error_message=data.get('errorMessage'),
            last_successful_at=parse_utc(last_success) if last_success else None,
        )


@dataclass
class SourceResult:
    """Structured outcome of one source's fetch-and-parse cycle."""
    source_id: str
    status: str
    events: List[CanonicalEvent] = field(default_factory=list)
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    parser_used: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == 'success'


@dataclass
class CycleResult:
    """Outcome of polling every configured source once."""
    results: List[SourceResult]
    events: List[CanonicalEvent]

    @property
    def failed_sources(self) -> Dict[str, str]:
        return {
            result.source_id: result.error_message or 'Unknown error'
            for result in self.results if not result.ok
        }

    @property
    def status(self) -> str:
        if not self.results:
            return 'success'
        failures = len(self.failed_sources)
        if failures == 0:
            return 'success'
        if failures == len(self.results):
            return 'failure'
        return 'partial'

    def raise_for_status(self) -> None:
        """
        Raise AggregateFailure when every source failed.

        Partial success is not an error.
        """
        if self.status == 'failure':
            raise AggregateFailure(self.failed_sources)


@dataclass
class SyncResult:
    """Result of sync operation."""
    added: int
    updated: int
    deleted: int
    errors: list[str]
