"""Parser for RSS event feeds."""
import logging
import re
from datetime import timedelta
from typing import List, Optional

from bs4 import BeautifulSoup

from processor.errors import ParseFailure
from processor.event_processor import clean_description, clean_title, generate_event_id
from processor.models import CanonicalEvent, Category
from processor.timezone import parse_clock
from scraper.base import SourceContext, SourceParser

logger = logging.getLogger(__name__)

# "Time: 6:00pm - 7:30pm"
DESCRIPTION_TIME_RANGE = re.compile(
    r'Time:\s*([\d:apm. ]+?)\s*[-–]\s*(\d{1,2}:\d{2}\s*[ap]\.?m\.?)',
    re.IGNORECASE,
)
TAG_LINE = re.compile(r'Tag\(s\):\s*([^<\n]+)')
DEFAULT_DURATION = timedelta(hours=1)


class RssParser(SourceParser):
    """One canonical event per <item> of an RSS feed."""

    tag = 'rss'

    def extract(self, payload: str, context: SourceContext) -> List[CanonicalEvent]:
        soup = BeautifulSoup(payload, 'xml')
        if soup.find('rss') is None and soup.find('channel') is None:
            raise ParseFailure(self.tag, 'Payload is not an RSS document')

        events = []
        for index, item in enumerate(soup.find_all('item')):
            event = self._item_to_event(item, context)
            if event is None:
                logger.warning(f"[{context.source_id}] Dropping RSS item {index}")
                continue
            events.append(event)

        logger.info(f"[{context.source_id}] Parsed {len(events)} items from RSS feed")
        return events

    def _item_to_event(self, item, context: SourceContext) -> Optional[CanonicalEvent]:
        raw_title = self._text(item, 'title')
        raw_description = self._text(item, 'description')
        link = self._text(item, 'link')
        pub_date = self._text(item, 'pubDate')

        start_time = context.normalizer.parse(pub_date)
        if start_time is None:
            return None

        description = clean_description(raw_description) or ''
        civil_date = context.normalizer.to_civil(start_time).date()

        end_time = start_time + DEFAULT_DURATION
        match = DESCRIPTION_TIME_RANGE.search(description)
        if match:
            start_text, end_text = match.groups()
            if parse_clock(start_text):
                start_time = context.normalizer.combine(civil_date, start_text) or start_time
            end_time = context.normalizer.combine(civil_date, end_text) or end_time

        title = clean_title(raw_title)
        category = self._tag_category(description, context)
        if category is None:
            category = context.classifier.classify(title)

        return self.build_event(
            context,
            event_id=generate_event_id(context.rink_id, title, start_time),
            raw_title=title,
            start_time=start_time,
            end_time=end_time,
            description=description or None,
            external_url=link or None,
            category=category,
        )

    @staticmethod
    def _text(item, name: str) -> str:
        element = item.find(name)
        return element.get_text().strip() if element else ''

    @staticmethod
    def _tag_category(description: str, context: SourceContext) -> Optional[Category]:
        """
        Map the feed's "Tag(s): a, b" line to a category.

        Navigation tags are skipped on the first pass and only considered
        when nothing more specific matched.
        """
        match = TAG_LINE.search(description)
        if not match:
            return None

        tags = [tag.strip() for tag in match.group(1).split(',') if tag.strip()]
        for tag in tags:
            if tag not in context.ignored_tags and tag in context.tag_categories:
                return context.tag_categories[tag]
        for tag in tags:
            if tag in context.tag_categories:
                return context.tag_categories[tag]
        return None
