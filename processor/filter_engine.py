"""Four-stage filter pipeline producing display-ready event lists."""
import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from processor.models import (
    ALL_RINKS_VIEW,
    DEFAULT_NUMBER_OF_DAYS,
    MAX_NUMBER_OF_DAYS,
    CanonicalEvent,
    DateMode,
    DisplayEvent,
    FilterMode,
    FilterSettings,
    TimeMode,
)
from processor.registry import RinkRegistry
from processor.timezone import TimezoneNormalizer

logger = logging.getLogger(__name__)


class FilterEngine:
    """
    Applies rink scope, date window, time-of-day window and category
    filters in that fixed order, then labels and sorts the survivors.

    Date and time comparisons use the region's civil clock, so an event
    at 23:30 local time belongs to that local day regardless of its UTC date.
    """

    def __init__(self, registry: RinkRegistry, normalizer: Optional[TimezoneNormalizer] = None):
        self.registry = registry
        self.normalizer = normalizer or TimezoneNormalizer()

    def evaluate(
        self,
        events: List[CanonicalEvent],
        settings: FilterSettings,
        scope_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[DisplayEvent]:
        """
        Run the full pipeline.

        Args:
            events: Candidate events (typically already deduplicated)
            settings: Filter configuration
            scope_id: Rink or facility tab; defaults to settings.view
            now: Reference instant for "today" (default: current time)

        Returns:
            Labelled events sorted by start time; ties keep input order
        """
        scope_id = scope_id or settings.view

        selected = self.filter_rinks(events, settings, scope_id)
        window_start, window_end = self.date_window(settings, now)
        selected = self.filter_dates(selected, window_start, window_end)
        selected = self.filter_times(selected, settings)
        selected = self.filter_categories(selected, settings)

        logger.debug(
            f"Filtered {len(events)} events down to {len(selected)} "
            f"(scope={scope_id}, window={window_start}..{window_end})"
        )

        labelled = [self._label(event) for event in selected]
        # sorted() is stable, so equal start times keep input order
        return sorted(labelled, key=lambda display: display.event.start_time)

    def filter_rinks(
        self,
        events: List[CanonicalEvent],
        settings: FilterSettings,
        scope_id: str,
    ) -> List[CanonicalEvent]:
        if scope_id != ALL_RINKS_VIEW:
            allowed = self.registry.resolve(scope_id)
            if not allowed:
                logger.warning(f"Unknown rink scope {scope_id!r}; no events match")
            return [event for event in events if event.source_rink_id in allowed]

        if not settings.active_rink_ids:
            return list(events)

        chosen = self.registry.resolve_many(settings.active_rink_ids)
        if settings.rink_mode == FilterMode.INCLUDE:
            return [event for event in events if event.source_rink_id in chosen]
        return [event for event in events if event.source_rink_id not in chosen]

    def date_window(self, settings: FilterSettings, now: Optional[datetime] = None) -> Tuple[date, date]:
        """
        Inclusive civil-date window for the settings.

        Missing or invalid sub-fields fall back to the next four days.
        """
        today = self.normalizer.civil_today(now)
        default_window = (today, today + timedelta(days=DEFAULT_NUMBER_OF_DAYS - 1))

        if settings.date_mode == DateMode.SPECIFIC_DAY:
            if settings.selected_date is None:
                return default_window
            return settings.selected_date, settings.selected_date

        if settings.date_mode == DateMode.DATE_RANGE:
            start, end = settings.date_range_start, settings.date_range_end
            if start is None or end is None or end < start:
                return default_window
            return start, end

        days = settings.number_of_days
        if not isinstance(days, int) or not 1 <= days <= MAX_NUMBER_OF_DAYS:
            return default_window
        try:
            return today, today + timedelta(days=days - 1)
        except OverflowError:
            return default_window

    def filter_dates(self, events: List[CanonicalEvent], window_start: date,
                     window_end: date) -> List[CanonicalEvent]:
        return [
            event for event in events
            if window_start <= self.normalizer.to_civil(event.start_time).date() <= window_end
        ]

    def filter_times(self, events: List[CanonicalEvent], settings: FilterSettings) -> List[CanonicalEvent]:
        """
        Compare civil clock times measured from the start day's midnight,
        so an event running past midnight ends "after" its evening start.
        """
        mode = settings.time_mode
        if mode == TimeMode.AFTER and settings.after_time is not None:
            cutoff = _since_midnight(settings.after_time)
            return [event for event in events if self._clock_span(event)[1] > cutoff]

        if mode == TimeMode.BEFORE and settings.before_time is not None:
            cutoff = _since_midnight(settings.before_time)
            return [event for event in events if self._clock_span(event)[0] < cutoff]

        if (mode == TimeMode.RANGE and settings.time_range_start is not None
                and settings.time_range_end is not None):
            range_start = _since_midnight(settings.time_range_start)
            range_end = _since_midnight(settings.time_range_end)
            # Overlap, not containment
            selected = []
            for event in events:
                start, end = self._clock_span(event)
                if end >= range_start and start <= range_end:
                    selected.append(event)
            return selected

        return list(events)

    def filter_categories(self, events: List[CanonicalEvent], settings: FilterSettings) -> List[CanonicalEvent]:
        active = settings.active_categories
        if settings.category_mode == FilterMode.INCLUDE:
            return [event for event in events if event.category in active]
        return [event for event in events if event.category not in active]

    def _clock_span(self, event: CanonicalEvent) -> Tuple[timedelta, timedelta]:
        civil_start = self.normalizer.to_civil(event.start_time)
        midnight = datetime.combine(civil_start.date(), time())
        civil_end = self.normalizer.to_civil(event.end_time)
        return civil_start - midnight, civil_end - midnight

    def _label(self, event: CanonicalEvent) -> DisplayEvent:
        display_name, facility_name, rink_name, source_url = self.registry.labels(event.source_rink_id)
        return DisplayEvent(
            event=event,
            rink_display_name=display_name,
            facility_name=facility_name,
            rink_name=rink_name,
            source_url=source_url,
        )


def _since_midnight(clock: time) -> timedelta:
    return timedelta(hours=clock.hour, minutes=clock.minute, seconds=clock.second)
