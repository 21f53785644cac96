"""Parser for iCalendar (RFC 5545) text feeds."""
import logging
from datetime import date, datetime, time, timezone
from typing import Any, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from icalendar import Calendar

from processor.errors import ParseFailure
from processor.event_processor import clean_description, clean_title, generate_event_id
from processor.models import CanonicalEvent
from scraper.base import SourceContext, SourceParser

logger = logging.getLogger(__name__)

REQUIRED_PROPERTIES = ('SUMMARY', 'DTSTART', 'DTEND')


def _zone(name: Optional[str]) -> Optional[ZoneInfo]:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}; falling back")
        return None


def _text(component: Any, name: str) -> Optional[str]:
    value = component.get(name)
    return str(value).strip() if value else None


class ICalendarParser(SourceParser):
    """Parses VEVENT components from an iCalendar feed."""

    tag = 'icalendar'

    def extract(self, payload: str, context: SourceContext) -> List[CanonicalEvent]:
        if 'BEGIN:VCALENDAR' not in payload:
            raise ParseFailure(self.tag, 'Payload is not an iCalendar document')

        try:
            calendar = Calendar.from_ical(payload)
        except ValueError as e:
            raise ParseFailure(self.tag, f"Malformed iCalendar document: {e}") from e

        calendar_zone = _zone(_text(calendar, 'X-WR-TIMEZONE'))
        events = []

        for index, component in enumerate(calendar.walk('VEVENT')):
            if not all(component.get(name) for name in REQUIRED_PROPERTIES):
                logger.debug(f"[{context.source_id}] Skipping VEVENT {index}: missing SUMMARY/DTSTART/DTEND")
                continue
            try:
                event = self._component_to_event(component, calendar_zone, context)
            except ValueError as e:
                logger.warning(f"[{context.source_id}] Dropping VEVENT {index}: {e}")
                continue
            if event:
                events.append(event)

        return events

    def _component_to_event(self, component: Any, calendar_zone: Optional[ZoneInfo],
                            context: SourceContext) -> Optional[CanonicalEvent]:
        summary = _text(component, 'SUMMARY') or ''
        if self.is_excluded(summary, context):
            logger.debug(f"[{context.source_id}] Excluding non-ice event {summary!r}")
            return None

        start_time = self._resolve(component.get('DTSTART'), calendar_zone, context)
        end_time = self._resolve(component.get('DTEND'), calendar_zone, context)
        if start_time is None or end_time is None:
            raise ValueError(f"unparseable DTSTART/DTEND for {summary!r}")

        description = _text(component, 'DESCRIPTION')
        uid = _text(component, 'UID')
        if uid:
            event_id = f"{context.rink_id}-{uid}"
        else:
            event_id = generate_event_id(context.rink_id, clean_title(summary), start_time)

        return self.build_event(
            context,
            event_id=event_id,
            raw_title=summary,
            start_time=start_time,
            end_time=end_time,
            description=clean_description(description) if description else None,
            external_url=_text(component, 'URL'),
        )

    def _resolve(self, prop: Any, calendar_zone: Optional[ZoneInfo],
                 context: SourceContext) -> Optional[datetime]:
        """
        Resolve a decoded DTSTART/DTEND to UTC.

        Values carrying a zone (Z or TZID) are converted directly. Floating
        values use the calendar's X-WR-TIMEZONE, then the regional rule.
        Date-only values are civil midnight.
        """
        value = getattr(prop, 'dt', None)
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                return value.astimezone(timezone.utc)
            if calendar_zone is not None:
                return value.replace(tzinfo=calendar_zone).astimezone(timezone.utc)
            return context.normalizer.to_absolute(value)
        if isinstance(value, date):
            return context.normalizer.to_absolute(datetime.combine(value, time()))

        logger.warning(f"[{context.source_id}] Unparseable iCalendar date {prop!r}")
        return None
