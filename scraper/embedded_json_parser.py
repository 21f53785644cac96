"""Parsers for schedule data embedded as JavaScript literals in HTML pages."""
import json
import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

from processor.errors import ParseFailure
from processor.event_processor import clean_title, generate_event_id
from processor.models import CanonicalEvent, Category
from scraper.base import SourceContext, SourceParser

logger = logging.getLogger(__name__)

# events = {"2025-05-22":[...
DATED_EVENTS_ASSIGNMENT = re.compile(r'events\s*=\s*\{"\d{4}-\d{2}-\d{2}"')
DEFAULT_SCHEDULE_VARIABLE = '_onlineScheduleList'

CLOSERS = {'{': '}', '[': ']'}


def find_literal(text: str, start: int) -> str:
    """
    Return the object or array literal opening at text[start].

    Scans forward counting bracket depth, skipping brackets inside string
    literals, so nested records do not end the literal early.

    Raises:
        ValueError: If text[start] is not an opening bracket or the literal
            is never closed
    """
    opener = text[start] if start < len(text) else ''
    if opener not in CLOSERS:
        raise ValueError(f"no literal at offset {start}")
    closer = CLOSERS[opener]

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    raise ValueError('unterminated literal')


def _load(literal: str, parser_tag: str) -> Any:
    try:
        return json.loads(literal)
    except json.JSONDecodeError as e:
        raise ParseFailure(parser_tag, f"Embedded data is not valid JSON: {e}")


def _text(record: Dict[str, Any], key: str) -> str:
    value = record.get(key)
    return str(value).strip() if value is not None else ''


class EmbeddedJsonParser(SourceParser):
    """
    Parses an object literal keyed by ISO date, each key holding a list of
    slot records with a name and two clock times.
    """

    tag = 'embedded-json'

    def extract(self, payload: str, context: SourceContext) -> List[CanonicalEvent]:
        match = DATED_EVENTS_ASSIGNMENT.search(payload)
        if not match:
            raise ParseFailure(self.tag, 'No dated events assignment found')

        start = match.start() + match.group(0).index('{')
        try:
            literal = find_literal(payload, start)
        except ValueError as e:
            raise ParseFailure(self.tag, f"Could not locate events object: {e}")

        data = _load(literal, self.tag)
        if not isinstance(data, dict):
            raise ParseFailure(self.tag, 'Events data is not an object')

        logger.info(f"[{context.source_id}] Found embedded events for {len(data)} dates")

        events = []
        for date_key, records in data.items():
            try:
                civil_date = date.fromisoformat(date_key)
            except ValueError:
                logger.warning(f"[{context.source_id}] Skipping invalid date key {date_key!r}")
                continue
            if not isinstance(records, list):
                continue

            for index, record in enumerate(records):
                event = self._record_to_event(record, civil_date, index, context)
                if event:
                    events.append(event)

        return events

    def _record_to_event(self, record: Any, civil_date: date, index: int,
                         context: SourceContext) -> Optional[CanonicalEvent]:
        if not isinstance(record, dict):
            return None

        name = _text(record, 'name')
        start_time = context.normalizer.combine(civil_date, _text(record, 'TimeIn'))
        end_time = context.normalizer.combine(civil_date, _text(record, 'TimeOut'))
        if start_time is None or end_time is None:
            logger.warning(
                f"[{context.source_id}] Dropping {name!r} on {civil_date}: "
                f"unparseable times {record.get('TimeIn')!r} - {record.get('TimeOut')!r}"
            )
            return None

        return self.build_event(
            context,
            event_id=f"{context.rink_id}-{civil_date.isoformat()}-{index}",
            raw_title=name,
            start_time=start_time,
            end_time=end_time,
            description=_text(record, 'Description') or None,
        )


class ScheduleListParser(SourceParser):
    """
    Parses an array literal of schedule records shared by several rinks of
    one facility; each record's FacilityId selects the rink.
    """

    tag = 'schedule-list'

    def extract(self, payload: str, context: SourceContext) -> List[CanonicalEvent]:
        variable = context.schedule_variable or DEFAULT_SCHEDULE_VARIABLE
        match = re.search(rf'{re.escape(variable)}\s*=\s*\[', payload)
        if not match:
            raise ParseFailure(self.tag, f"{variable} not found")

        try:
            literal = find_literal(payload, match.end() - 1)
        except ValueError as e:
            raise ParseFailure(self.tag, f"Could not locate {variable}: {e}")

        records = _load(literal, self.tag)
        if not isinstance(records, list):
            raise ParseFailure(self.tag, f"{variable} is not an array")

        events = []
        skipped = 0
        for record in records:
            if not isinstance(record, dict):
                continue
            rink_id = context.sub_rink_ids.get(_text(record, 'FacilityId'))
            if not rink_id:
                skipped += 1
                continue
            event = self._record_to_event(record, rink_id, context)
            if event:
                events.append(event)

        if skipped:
            logger.debug(f"[{context.source_id}] Skipped {skipped} records for unmapped facilities")
        return events

    def _record_to_event(self, record: Dict[str, Any], rink_id: str,
                         context: SourceContext) -> Optional[CanonicalEvent]:
        title = clean_title(_text(record, 'AccountName'))
        event_type = _text(record, 'EventTypeName')

        start_time = context.normalizer.parse(_text(record, 'EventStartTime'))
        end_time = context.normalizer.parse(_text(record, 'EventEndTime'))
        if start_time is None or end_time is None:
            logger.warning(f"[{context.source_id}] Dropping {title!r}: unparseable start/end")
            return None

        closed = record.get('Closed') is True or 'closed' in title.lower()
        if closed and 'closed' not in title.lower():
            title = f"Closed: {title}"

        category = self._categorize(title, event_type, closed, context)

        event_id = _text(record, 'EventId')
        if event_id:
            event_id = f"{rink_id}-{event_id}"
        else:
            event_id = generate_event_id(rink_id, title, start_time)

        return self.build_event(
            context,
            event_id=event_id,
            raw_title=title,
            start_time=start_time,
            end_time=end_time,
            description=_text(record, 'Description') or None,
            category=category,
            rink_id=rink_id,
            is_featured=record.get('isFeatured') is True,
        )

    @staticmethod
    def _categorize(title: str, event_type: str, closed: bool, context: SourceContext) -> Category:
        if closed:
            return context.classifier.classify(title)
        category = context.classifier.classify(event_type or title)
        # Generic event types fall back to the account name
        if category == Category.OTHER and event_type and event_type != title:
            category = context.classifier.classify(title)
        return category
