"""Shared post-processing applied to every parser's output."""
import hashlib
import html
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from bs4 import BeautifulSoup

from processor.errors import ValidationFailure
from processor.models import CanonicalEvent, Category

logger = logging.getLogger(__name__)

DEFAULT_TITLE = 'Ice Event'

# "1A Public Skate" -> "A Public Skate", but "3rd Grade" is left alone
LEADING_DIGIT_GLUED = re.compile(r'^\d{1,2}(?!(?:st|nd|rd|th)\b)([A-Za-z])')
LEADING_BULLET = re.compile(r'^[-–—•*·]+\s*')
PROMOTIONAL_TEXT = re.compile(r'\bregister(?:\s+now)?\b|\bclick here\b', re.IGNORECASE)
LEADING_NON_WORD = re.compile(r'^\W+')
DATE_PREFIX = re.compile(r'^[A-Za-z]+ [A-Za-z]+ \d{1,2}, \d{4}:\s*')
LINE_BREAK_TAG = re.compile(r'<br\s*/?\s*>', re.IGNORECASE)


def decode_entities(text: Optional[str]) -> str:
    """Decode HTML entities such as &amp; and &nbsp;."""
    if not text:
        return ''
    return html.unescape(text).replace('\xa0', ' ')


def clean_title(raw_title: Optional[str]) -> str:
    """
    Clean and normalize an event title.

    Args:
        raw_title: Title text as published by the source

    Returns:
        Cleaned title, or "Ice Event" when nothing is left
    """
    if not raw_title or not raw_title.strip():
        return DEFAULT_TITLE

    title = decode_entities(raw_title).strip()
    title = DATE_PREFIX.sub('', title)
    title = LEADING_DIGIT_GLUED.sub(r'\1', title)
    title = LEADING_BULLET.sub('', title)
    title = PROMOTIONAL_TEXT.sub('', title)
    title = LEADING_NON_WORD.sub('', title)
    title = re.sub(r'\s+', ' ', title).strip()

    return title or DEFAULT_TITLE


def clean_description(raw_description: Optional[str]) -> Optional[str]:
    """
    Convert an HTML fragment into plain text, keeping line breaks.

    Returns:
        Plain-text description or None when empty
    """
    if not raw_description:
        return None

    text = LINE_BREAK_TAG.sub('\n', decode_entities(raw_description))
    text = BeautifulSoup(text, 'html.parser').get_text()
    lines = [re.sub(r'[ \t]+', ' ', line).strip() for line in text.splitlines()]
    text = '\n'.join(line for line in lines if line)

    return text or None


def generate_event_id(rink_id: str, title: str, start_time: datetime) -> str:
    """
    Generate a stable identifier from rink, title and start instant.

    Used for sources that publish no native id.
    """
    composite = f"{rink_id}|{title}|{start_time.astimezone(timezone.utc).isoformat()}"
    digest = hashlib.sha256(composite.encode('utf-8')).hexdigest()
    return f"{rink_id}-{digest[:16]}"


class EventProcessor:
    """Builds, validates and windows canonical events."""

    MAX_TITLE_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 2000
    RETENTION_DAYS = 30

    def __init__(self, retention_days: int = RETENTION_DAYS):
        """
        Initialize the processor.

        Args:
            retention_days: Days ahead of now an event may start and still be kept
        """
        self.retention_days = retention_days

    def build_event(
        self,
        event_id: str,
        rink_id: str,
        title: str,
        start_time: datetime,
        end_time: datetime,
        category: Category,
        description: Optional[str] = None,
        external_url: Optional[str] = None,
        is_featured: bool = False,
    ) -> CanonicalEvent:
        """Create a CanonicalEvent with length limits applied."""
        if description:
            description = description[:self.MAX_DESCRIPTION_LENGTH]
        return CanonicalEvent(
            id=event_id,
            source_rink_id=rink_id,
            title=title[:self.MAX_TITLE_LENGTH],
            start_time=start_time,
            end_time=end_time,
            category=category,
            description=description or None,
            is_featured=is_featured,
            external_url=external_url or None,
        )

    @staticmethod
    def validate(event: CanonicalEvent) -> None:
        """
        Check a single event's invariants.

        Raises:
            ValidationFailure: If the event must be dropped
        """
        if event.start_time.tzinfo is None or event.end_time.tzinfo is None:
            raise ValidationFailure('start and end must be absolute (timezone-aware)')
        if event.end_time <= event.start_time:
            raise ValidationFailure(
                f"end time {event.end_time.isoformat()} is not after "
                f"start time {event.start_time.isoformat()}"
            )

    def process_events(
        self,
        events: List[CanonicalEvent],
        now: Optional[datetime] = None,
    ) -> List[CanonicalEvent]:
        """
        Drop invalid and out-of-window events, then sort by start time.

        Args:
            events: Events produced by a parser
            now: Reference instant for the retention window (default: current time)

        Returns:
            List of valid events inside the window
        """
        now = now or datetime.now(timezone.utc)
        horizon = now + timedelta(days=self.retention_days)
        processed = []

        for event in events:
            try:
                self.validate(event)
            except ValidationFailure as e:
                logger.warning(f"Dropping event '{event.title}' ({event.id}): {e}")
                continue
            if event.start_time < now or event.start_time > horizon:
                logger.debug(f"Event '{event.title}' ({event.id}) outside retention window")
                continue
            processed.append(event)

        processed.sort(key=lambda event: event.start_time)

        logger.info(
            f"Processed {len(processed)} valid events out of "
            f"{len(events)} total events"
        )
        return processed
