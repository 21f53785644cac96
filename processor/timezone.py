"""Regional civil-time to UTC normalization with algorithmic DST boundaries."""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# Trailing zone designators: Z, +06:00 / -0700, UTC/GMT, or an abbreviation like MDT
EXPLICIT_ZONE = re.compile(
    r'(?:(?<=\d)Z|[+-]\d{2}:?\d{2}|\s(?:UTC|GMT|[A-Z]{1,3}[SD]T))\s*$'
)
ISO_CIVIL = re.compile(
    r'^(\d{4})-(\d{2})-(\d{2})(?:[T\s]+(\d{1,2}):(\d{2})(?::(\d{2}))?(?:\.\d+)?)?$'
)
CLOCK_12_HOUR = re.compile(r'(\d{1,2})(?::(\d{2}))?\s*([AaPp])\.?\s*[Mm]\.?')
CLOCK_24_HOUR = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')


def _nth_sunday(year: int, month: int, n: int) -> date:
    first = date(year, month, 1)
    # weekday(): Monday == 0, Sunday == 6
    offset = (6 - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (n - 1))


def parse_clock(text: str) -> Optional[time]:
    """
    Parse a time-of-day string such as "7:00 PM", "7pm" or "19:00".

    Args:
        text: Time-of-day text

    Returns:
        time object or None if the text is not a valid time
    """
    if not text:
        return None
    text = text.strip()

    match = CLOCK_12_HOUR.search(text)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        if hours < 1 or hours > 12 or minutes > 59:
            return None
        is_pm = match.group(3).lower() == 'p'
        if is_pm and hours != 12:
            hours += 12
        elif not is_pm and hours == 12:
            hours = 0
        return time(hours, minutes)

    match = CLOCK_24_HOUR.match(text)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        seconds = int(match.group(3) or 0)
        if hours > 23 or minutes > 59 or seconds > 59:
            return None
        return time(hours, minutes, seconds)

    return None


@dataclass(frozen=True)
class RegionPolicy:
    """
    A region with one winter and one summer UTC offset.

    Summer time runs from the second Sunday of March to the first Sunday
    of November, switching at 02:00 local time on both days.
    """
    name: str
    standard_offset_hours: int
    daylight_offset_hours: int
    standard_abbreviation: str
    daylight_abbreviation: str
    transition_hour: int = 2

    @property
    def standard_offset(self) -> timedelta:
        return timedelta(hours=self.standard_offset_hours)

    @property
    def daylight_offset(self) -> timedelta:
        return timedelta(hours=self.daylight_offset_hours)

    def daylight_start(self, year: int) -> datetime:
        """Civil instant summer time begins (second Sunday of March)."""
        return datetime.combine(_nth_sunday(year, 3, 2), time(self.transition_hour))

    def daylight_end(self, year: int) -> datetime:
        """Civil instant summer time ends (first Sunday of November)."""
        return datetime.combine(_nth_sunday(year, 11, 1), time(self.transition_hour))


MOUNTAIN = RegionPolicy(
    name='America/Denver',
    standard_offset_hours=-7,
    daylight_offset_hours=-6,
    standard_abbreviation='MST',
    daylight_abbreviation='MDT',
)


class TimezoneNormalizer:
    """Converts zone-naive civil timestamps of one region into UTC."""

    def __init__(self, policy: RegionPolicy = MOUNTAIN):
        self.policy = policy
        self._tzinfos = {
            policy.standard_abbreviation: int(policy.standard_offset.total_seconds()),
            policy.daylight_abbreviation: int(policy.daylight_offset.total_seconds()),
        }

    def is_daylight(self, civil: datetime) -> bool:
        """True when the civil datetime falls in the summer offset period."""
        civil = civil.replace(tzinfo=None)
        year = civil.year
        return self.policy.daylight_start(year) <= civil < self.policy.daylight_end(year)

    def utc_offset(self, civil: datetime) -> timedelta:
        if self.is_daylight(civil):
            return self.policy.daylight_offset
        return self.policy.standard_offset

    def timezone_name(self, civil: datetime) -> str:
        if self.is_daylight(civil):
            return self.policy.daylight_abbreviation
        return self.policy.standard_abbreviation

    def to_absolute(self, civil: datetime) -> datetime:
        """
        Convert a civil datetime to an aware UTC datetime.

        A datetime that already carries tzinfo is converted as-is and the
        regional rule is skipped.
        """
        if civil.tzinfo is not None:
            return civil.astimezone(timezone.utc)
        return (civil - self.utc_offset(civil)).replace(tzinfo=timezone.utc)

    def to_civil(self, absolute: datetime) -> datetime:
        """Convert an absolute instant back to naive regional civil time."""
        if absolute.tzinfo is None:
            utc = absolute
        else:
            utc = absolute.astimezone(timezone.utc).replace(tzinfo=None)

        year = utc.year
        summer_begins = self.policy.daylight_start(year) - self.policy.standard_offset
        summer_ends = self.policy.daylight_end(year) - self.policy.daylight_offset
        if summer_begins <= utc < summer_ends:
            return utc + self.policy.daylight_offset
        return utc + self.policy.standard_offset

    def civil_today(self, now: Optional[datetime] = None) -> date:
        """Current calendar day in the region."""
        now = now or datetime.now(timezone.utc)
        return self.to_civil(now).date()

    def combine(self, civil_date: date, clock_text: str) -> Optional[datetime]:
        """
        Combine a civil date with a time-of-day string into UTC.

        Args:
            civil_date: Calendar day in the region
            clock_text: Time-of-day text (e.g., "7:00 PM")

        Returns:
            Aware UTC datetime or None if the time cannot be parsed
        """
        clock = parse_clock(clock_text)
        if clock is None:
            logger.warning(f"Unparseable time of day {clock_text!r} for {civil_date}")
            return None
        return self.to_absolute(datetime.combine(civil_date, clock))

    def parse(self, text: Optional[str], default: Optional[datetime] = None,
              base_date: Optional[date] = None) -> Optional[datetime]:
        """
        Parse a timestamp string into UTC.

        Strings with explicit zone information are converted verbatim;
        zone-naive strings are treated as regional civil time. A bare
        time of day is combined with base_date when one is given.

        Args:
            text: Timestamp text
            default: Value returned when the text cannot be parsed
            base_date: Civil day used for time-only strings

        Returns:
            Aware UTC datetime, or default on failure
        """
        if not text or not text.strip():
            return self._fallback(text, default)
        text = text.strip()

        if EXPLICIT_ZONE.search(text):
            try:
                parsed = date_parser.parse(text, tzinfos=self._tzinfos)
            except (ValueError, OverflowError):
                return self._fallback(text, default)
            return self.to_absolute(parsed)

        match = ISO_CIVIL.match(text)
        if match:
            year, month, day = (int(part) for part in match.group(1, 2, 3))
            hour = int(match.group(4) or 0)
            minute = int(match.group(5) or 0)
            second = int(match.group(6) or 0)
            try:
                civil = datetime(year, month, day, hour, minute, second)
            except ValueError:
                return self._fallback(text, default)
            return self.to_absolute(civil)

        if base_date is not None and parse_clock(text) is not None:
            return self.combine(base_date, text)

        try:
            parsed = date_parser.parse(text)
        except (ValueError, OverflowError):
            return self._fallback(text, default)
        return self.to_absolute(parsed)

    def _fallback(self, text: Optional[str], default: Optional[datetime]) -> Optional[datetime]:
        logger.warning(
            f"Unparseable timestamp {text!r}; falling back to "
            f"{default.isoformat() if default else 'no value'}"
        )
        return default
