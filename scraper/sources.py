"""Source configuration and the parser registry."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Type
from urllib.parse import quote

from processor.event_processor import EventProcessor
from processor.models import Category
from scraper.base import SourceParser
from scraper.embedded_json_parser import EmbeddedJsonParser, ScheduleListParser
from scraper.html_table_parser import HtmlTableParser
from scraper.icalendar_parser import ICalendarParser
from scraper.rss_parser import RssParser

PARSERS: Dict[str, Type[SourceParser]] = {
    parser.tag: parser
    for parser in (ICalendarParser, RssParser, EmbeddedJsonParser, ScheduleListParser, HtmlTableParser)
}


@dataclass(frozen=True)
class SourceConfig:
    """One external publisher of schedule data."""
    source_id: str
    parser: str
    url: str
    rink_id: str
    fallback_parser: Optional[str] = None
    method: str = 'GET'
    form_data: Optional[Dict[str, str]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    tag_categories: Dict[str, Category] = field(default_factory=dict)
    exclude_keywords: Tuple[str, ...] = ()
    sub_rink_ids: Dict[str, str] = field(default_factory=dict)
    schedule_variable: Optional[str] = None
    retention_days: int = EventProcessor.RETENTION_DAYS

    def __post_init__(self):
        for tag in (self.parser, self.fallback_parser):
            if tag is not None and tag not in PARSERS:
                raise ValueError(f"Unknown parser {tag!r} for source {self.source_id}")


def get_parser(tag: str) -> SourceParser:
    """Instantiate the parser registered under a source-type tag."""
    try:
        return PARSERS[tag]()
    except KeyError:
        raise ValueError(f"Unknown parser {tag!r}") from None


ICE_RANCH_TAGS = {
    'All Ages Stick & Puck': Category.STICK_AND_PUCK,
    '12 & Under Stick & Puck': Category.STICK_AND_PUCK,
    '13 & Over Stick & Puck': Category.STICK_AND_PUCK,
    'Adult Drop In': Category.DROP_IN_HOCKEY,
    'Teen Drop In': Category.DROP_IN_HOCKEY,
    'Coach Ice': Category.HOCKEY_PRACTICE,
    'Public Skate': Category.PUBLIC_SKATE,
    'Adult Lunch Leagues & Learn to Play': Category.HOCKEY_LEAGUE,
}
ICE_RANCH_TAG_IDS = '1652315,1652320,1718896,1718895,1718913,1718914,1718915,1718916,1718917,7870619'

DU_CALENDAR_IDS = (
    '4u0hkl9u6ii0o39uk1v90nnv6o@group.calendar.google.com',
    'qtst6uerc2tamp5pbn2p4n4dko@group.calendar.google.com',
    'pc78u2neckrn16pj4v92r6mufg@group.calendar.google.com',
    '6ej1qanm6fjqmpgkgpu114vijc@group.calendar.google.com',
)
DU_EXCLUDE_KEYWORDS = ('basketball', 'meeting', 'graduation', 'commencement')

SSPRD_FACILITY_RINKS = {
    '1904': 'fsc-avalanche',
    '1905': 'fsc-fixit',
    '1906': 'sssc-rink1',
    '1907': 'sssc-rink2',
    '1908': 'sssc-rink3',
}


def default_sources() -> List[SourceConfig]:
    """Built-in Denver-area source list."""
    sources = [
        SourceConfig(
            source_id='ice-ranch',
            parser='rss',
            url=f'https://www.theiceranch.com/event_rss_feed?tags={ICE_RANCH_TAG_IDS}',
            rink_id='ice-ranch',
            tag_categories=ICE_RANCH_TAGS,
        ),
        SourceConfig(
            source_id='foothills-edge',
            parser='embedded-json',
            fallback_parser='html-table',
            url='https://calendar.ifoothills.org/calendars/edge-ice-arena-drop.php',
            rink_id='foothills-edge',
        ),
    ]

    for index, calendar_id in enumerate(DU_CALENDAR_IDS, start=1):
        sources.append(SourceConfig(
            source_id=f'du-ritchie-{index}',
            parser='icalendar',
            url=f'https://calendar.google.com/calendar/ical/{quote(calendar_id)}/public/basic.ics',
            rink_id='du-ritchie',
            exclude_keywords=DU_EXCLUDE_KEYWORDS,
        ))

    for page_id, rink_id in (('249', 'fsc-avalanche'), ('250', 'sssc-rink1')):
        sources.append(SourceConfig(
            source_id=f'ssprd-{page_id}',
            parser='schedule-list',
            url=f'https://ssprd.finnlyconnect.com/schedule/{page_id}',
            rink_id=rink_id,
            sub_rink_ids=SSPRD_FACILITY_RINKS,
        ))

    return sources


def select_sources(source_ids: Optional[List[str]] = None) -> List[SourceConfig]:
    """
    Return the built-in sources, optionally narrowed to the given ids.

    Raises:
        ValueError: If an id names no built-in source
    """
    sources = default_sources()
    if not source_ids:
        return sources

    by_id = {source.source_id: source for source in sources}
    unknown = [source_id for source_id in source_ids if source_id not in by_id]
    if unknown:
        raise ValueError(f"Unknown source ids: {', '.join(unknown)}")
    return [by_id[source_id] for source_id in source_ids]
