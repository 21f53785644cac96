"""Collapse events describing the same real-world session."""
import logging
from datetime import datetime, timezone
from typing import List, Set, Tuple

from processor.models import CanonicalEvent

logger = logging.getLogger(__name__)


def dedupe_key(event: CanonicalEvent) -> Tuple[str, datetime]:
    """Title plus start instant truncated to the second."""
    start = event.start_time.astimezone(timezone.utc).replace(microsecond=0)
    return event.title, start


def dedupe(events: List[CanonicalEvent]) -> List[CanonicalEvent]:
    """
    Keep the first occurrence of each (title, start second) pair.

    Duplicates across sources count. Input order is preserved, so the
    function is idempotent.
    """
    seen: Set[Tuple[str, datetime]] = set()
    unique = []

    for event in events:
        key = dedupe_key(event)
        if key in seen:
            continue
        seen.add(key)
        unique.append(event)

    if len(unique) != len(events):
        logger.info(f"Removed {len(events) - len(unique)} duplicate events")
    return unique
