"""Fallback parser for server-rendered calendar grids."""
import logging
import re
from datetime import date, datetime
from typing import List, Optional

from bs4 import BeautifulSoup

from processor.errors import ParseFailure
from processor.event_processor import clean_title, generate_event_id
from processor.models import CanonicalEvent
from scraper.base import TIME_RANGE, SourceContext, SourceParser

logger = logging.getLogger(__name__)

MONTHS = (r'(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?|'
          r'Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)')
ISO_DATE = re.compile(r'\b(\d{4})-(\d{2})-(\d{2})\b')
US_DATE = re.compile(r'\b(\d{1,2})/(\d{1,2})/(\d{4})\b')
LONG_DATE = re.compile(rf'\b{MONTHS}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?\b', re.IGNORECASE)
WEEKDAY = re.compile(
    r'\b(?:Mon|Tues?|Wed(?:nes)?|Thu(?:rs)?|Fri|Sat(?:ur)?|Sun)(?:day)?\b\.?,?', re.IGNORECASE
)
BOILERPLATE = re.compile(
    r'\b(?:register(?:\s+now)?|click\s+here|more\s+info(?:rmation)?|details|sign\s+up|book\s+now|'
    r'view\s+calendar|all\s+day)\b',
    re.IGNORECASE,
)
SEPARATORS = re.compile(r'^[\s\-–—|:,.]+|[\s\-–—|:,.]+$')


def _is_cell(tag) -> bool:
    return tag.name == 'td' or tag.has_attr('data-date')


def find_date(text: str) -> Optional[date]:
    """Return the first ISO or US-style date written in text."""
    match = ISO_DATE.search(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
    else:
        match = US_DATE.search(text)
        if not match:
            return None
        month, day, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def strip_boilerplate(text: str) -> str:
    """Remove date tokens, weekday names and navigation phrases from cell text."""
    for pattern in (ISO_DATE, US_DATE, LONG_DATE, WEEKDAY, BOILERPLATE):
        text = pattern.sub(' ', text)
    text = re.sub(r'\s+', ' ', text)
    return SEPARATORS.sub('', text)


class HtmlTableParser(SourceParser):
    """
    Reads events out of calendar cells containing "H:MM am - H:MM pm"
    ranges. Each range becomes one event titled by the text that follows
    it in the cell (or precedes it, when nothing follows).
    """

    tag = 'html-table'

    def extract(self, payload: str, context: SourceContext) -> List[CanonicalEvent]:
        soup = BeautifulSoup(payload, 'html.parser')
        cells = [cell for cell in soup.find_all(_is_cell) if not cell.find(_is_cell)]
        if not cells:
            raise ParseFailure(self.tag, 'No calendar cells found')

        events = []
        for cell in cells:
            events.extend(self._cell_to_events(cell, context))

        logger.info(f"[{context.source_id}] Found {len(events)} events in {len(cells)} calendar cells")
        return events

    def _cell_date(self, cell) -> Optional[date]:
        text = cell.get('data-date') or ''
        cell_date = find_date(text) or find_date(cell.get_text(' ', strip=True))
        if cell_date:
            return cell_date
        parent = cell.find_parent(attrs={'data-date': True})
        return find_date(parent['data-date']) if parent else None

    def _cell_to_events(self, cell, context: SourceContext) -> List[CanonicalEvent]:
        text = cell.get_text(' ', strip=True)
        if not TIME_RANGE.search(text):
            return []

        cell_date = self._cell_date(cell)
        if cell_date is None:
            logger.debug(f"[{context.source_id}] Skipping cell without a date: {text[:60]!r}")
            return []

        # Calendar grids lead each cell with its day of month
        text = re.sub(rf'^0?{cell_date.day}\s+', '', text)
        matches = list(TIME_RANGE.finditer(text))

        events = []
        for index, match in enumerate(matches):
            following_end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
            title = strip_boilerplate(text[match.end():following_end])
            if not title:
                preceding_start = matches[index - 1].end() if index else 0
                title = strip_boilerplate(text[preceding_start:match.start()])

            event = self._build(context, cell_date, title, *match.groups())
            if event:
                events.append(event)
        return events

    def _build(self, context: SourceContext, cell_date: date, title: str,
               start_text: str, end_text: str) -> Optional[CanonicalEvent]:
        start_time: Optional[datetime] = context.normalizer.combine(cell_date, start_text)
        end_time: Optional[datetime] = context.normalizer.combine(cell_date, end_text)
        if start_time is None or end_time is None:
            logger.warning(f"[{context.source_id}] Unparseable time range {start_text!r} - {end_text!r}")
            return None

        title = clean_title(title)
        return self.build_event(
            context,
            event_id=generate_event_id(context.rink_id, title, start_time),
            raw_title=title,
            start_time=start_time,
            end_time=end_time,
        )
