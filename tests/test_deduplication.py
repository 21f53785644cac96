"""Unit tests for event deduplication."""
from datetime import datetime

from processor.deduplication import dedupe
from processor.models import Category


class TestDedupe:
    """Test cases for keep-first deduplication."""

    def test_cross_source_duplicates_collapse(self, make_event):
        """Test that two sources reporting one session yield one event."""
        first = make_event('a-1', 'ice-ranch', 'Public Skate',
                           datetime(2025, 7, 15, 18, 0), datetime(2025, 7, 15, 19, 30))
        second = make_event('b-1', 'du-ritchie', 'Public Skate',
                            datetime(2025, 7, 15, 18, 0), datetime(2025, 7, 15, 20, 0))
        result = dedupe([first, second])
        assert result == [first]

    def test_sub_second_differences_collapse(self, make_event):
        """Test that starts are compared to the second."""
        first = make_event('a', 'ice-ranch', 'Public Skate',
                           datetime(2025, 7, 15, 18, 0, 0, 1000), datetime(2025, 7, 15, 19, 0))
        second = make_event('b', 'ice-ranch', 'Public Skate',
                            datetime(2025, 7, 15, 18, 0, 0, 900000), datetime(2025, 7, 15, 19, 0))
        assert dedupe([first, second]) == [first]

    def test_different_title_or_start_kept(self, make_event):
        """Test that only exact (title, second) matches are duplicates."""
        events = [
            make_event('a', 'ice-ranch', 'Public Skate',
                       datetime(2025, 7, 15, 18, 0), datetime(2025, 7, 15, 19, 0)),
            make_event('b', 'ice-ranch', 'Public Skate',
                       datetime(2025, 7, 15, 18, 0, 1), datetime(2025, 7, 15, 19, 0)),
            make_event('c', 'ice-ranch', 'Stick & Puck',
                       datetime(2025, 7, 15, 18, 0), datetime(2025, 7, 15, 19, 0),
                       category=Category.STICK_AND_PUCK),
        ]
        assert dedupe(events) == events

    def test_idempotent_and_order_preserving(self, make_event):
        """Test dedupe(dedupe(x)) == dedupe(x) with input order kept."""
        late = make_event('late', 'ice-ranch', 'League',
                          datetime(2025, 7, 16, 21, 0), datetime(2025, 7, 16, 22, 0))
        early = make_event('early', 'ice-ranch', 'Public Skate',
                           datetime(2025, 7, 15, 18, 0), datetime(2025, 7, 15, 19, 0))
        duplicate = make_event('dup', 'fsc-fixit', 'League',
                               datetime(2025, 7, 16, 21, 0), datetime(2025, 7, 16, 22, 0))
        once = dedupe([late, early, duplicate])
        assert once == [late, early]
        assert dedupe(once) == once

    def test_empty_input(self):
        """Test that an empty list stays empty."""
        assert dedupe([]) == []
