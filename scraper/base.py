"""Shared parser contract for schedule sources."""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Dict, List, Optional, Tuple

from processor.classifier import CategoryClassifier
from processor.event_processor import EventProcessor, clean_title
from processor.models import CanonicalEvent, Category
from processor.timezone import TimezoneNormalizer

logger = logging.getLogger(__name__)

# "7:00 am - 8:30 pm", "7:00AM–8:30PM", "7:00 a.m. - 8:30 p.m."
CLOCK = r'\d{1,2}:\d{2}\s*[AaPp]\.?\s*[Mm]\.?'
TIME_RANGE = re.compile(rf'({CLOCK})\s*[-–—]\s*({CLOCK})')


@dataclass(frozen=True)
class SourceContext:
    """Everything a parser needs besides the raw payload."""
    source_id: str
    rink_id: str
    normalizer: TimezoneNormalizer
    classifier: CategoryClassifier
    processor: EventProcessor
    base_url: Optional[str] = None
    tag_categories: Dict[str, Category] = field(default_factory=dict)
    ignored_tags: Tuple[str, ...] = ('Home', 'Calendar')
    exclude_keywords: Tuple[str, ...] = ()
    sub_rink_ids: Dict[str, str] = field(default_factory=dict)
    schedule_variable: Optional[str] = None
    now: Optional[datetime] = None


class SourceParser(ABC):
    """
    Turns one source's raw payload into canonical events.

    Subclasses implement extract(); parse() applies the shared validation,
    retention window and ordering.
    """

    tag: ClassVar[str] = ''

    def parse(self, payload: str, context: SourceContext) -> List[CanonicalEvent]:
        """
        Parse a payload into validated canonical events.

        Raises:
            ParseFailure: If the payload does not have the expected shape
        """
        events = self.extract(payload, context)
        logger.info(f"[{context.source_id}] {self.tag} parser extracted {len(events)} events")
        return context.processor.process_events(events, now=context.now)

    @abstractmethod
    def extract(self, payload: str, context: SourceContext) -> List[CanonicalEvent]:
        """Extract raw canonical events without windowing."""

    def build_event(
        self,
        context: SourceContext,
        event_id: str,
        raw_title: str,
        start_time: datetime,
        end_time: datetime,
        description: Optional[str] = None,
        external_url: Optional[str] = None,
        category: Optional[Category] = None,
        rink_id: Optional[str] = None,
        is_featured: bool = False,
    ) -> CanonicalEvent:
        """Clean the title, classify when no category is given, and build."""
        title = clean_title(raw_title)
        if category is None:
            category = context.classifier.classify(title, description)
        return context.processor.build_event(
            event_id=event_id,
            rink_id=rink_id or context.rink_id,
            title=title,
            start_time=start_time,
            end_time=end_time,
            category=category,
            description=description,
            external_url=external_url,
            is_featured=is_featured,
        )

    @staticmethod
    def is_excluded(title: str, context: SourceContext) -> bool:
        lowered = title.lower()
        return any(keyword in lowered for keyword in context.exclude_keywords)
