"""Unit tests for data models."""
from datetime import date, datetime, timezone

import pytest

from processor.errors import AggregateFailure
from processor.models import (
    CanonicalEvent,
    Category,
    CycleResult,
    DateMode,
    FilterSettings,
    SourceMetadata,
    SourceResult,
    TimeMode,
)


class TestCanonicalEvent:
    """Test cases for the canonical wire format."""

    def test_to_wire_omits_unset_optionals(self):
        """Test the minimal wire shape."""
        event = CanonicalEvent(
            id='ice-ranch-1',
            source_rink_id='ice-ranch',
            title='Public Skate',
            start_time=datetime(2025, 7, 16, 0, 0, tzinfo=timezone.utc),
            end_time=datetime(2025, 7, 16, 1, 30, tzinfo=timezone.utc),
            category=Category.PUBLIC_SKATE,
        )
        assert event.to_wire() == {
            'id': 'ice-ranch-1',
            'rinkId': 'ice-ranch',
            'title': 'Public Skate',
            'startTime': '2025-07-16T00:00:00Z',
            'endTime': '2025-07-16T01:30:00Z',
            'category': 'Public Skate',
        }

    def test_from_wire(self):
        """Test reading the wire shape back, unknown categories becoming Other."""
        event = CanonicalEvent.from_wire({
            'id': 'x',
            'rinkId': 'du-ritchie',
            'title': 'Curling',
            'startTime': '2025-07-16T00:00:00Z',
            'endTime': '2025-07-16T01:00:00Z',
            'category': 'Curling',
            'eventUrl': 'https://example.com',
            'isFeatured': True,
        })
        assert event.category == Category.OTHER
        assert event.external_url == 'https://example.com'
        assert event.is_featured is True
        assert event.start_time == datetime(2025, 7, 16, tzinfo=timezone.utc)

    def test_from_wire_missing_field(self):
        """Test that a missing required field raises KeyError."""
        with pytest.raises(KeyError):
            CanonicalEvent.from_wire({'id': 'x'})


class TestFilterSettings:
    """Test cases for FilterSettings helpers."""

    def test_with_changes_returns_new_value(self):
        """Test that applying changes never mutates the original."""
        original = FilterSettings()
        changed = original.with_changes(number_of_days=7, active_categories=[Category.OTHER])
        assert original.number_of_days == 4
        assert changed.number_of_days == 7
        assert changed.active_categories == frozenset({Category.OTHER})

    def test_has_active_filters(self):
        """Test detection of narrowing settings."""
        assert not FilterSettings().has_active_filters()
        assert FilterSettings(time_mode=TimeMode.AFTER).has_active_filters()
        assert FilterSettings(active_rink_ids=frozenset({'ice-ranch'})).has_active_filters()

    def test_describe(self):
        """Test the human-readable summary."""
        assert FilterSettings().describe() == 'Showing events for the next 4 days.'
        settings = FilterSettings(date_mode=DateMode.SPECIFIC_DAY, selected_date=date(2025, 7, 16),
                                  time_mode=TimeMode.BEFORE)
        assert settings.describe() == 'Showing events for selected date (before specified time).'


class TestSourceMetadata:
    """Test cases for SourceMetadata serialization."""

    def test_round_trip(self):
        """Test camelCase dict conversion."""
        metadata = SourceMetadata(
            source_id='ice-ranch',
            last_attempt=datetime(2025, 7, 1, 6, 0, tzinfo=timezone.utc),
            status='error',
            event_count=12,
            error_message='timeout',
            last_successful_at=datetime(2025, 6, 30, 6, 0, tzinfo=timezone.utc),
        )
        data = metadata.to_dict()
        assert data['lastSuccessfulAt'] == '2025-06-30T06:00:00Z'
        assert SourceMetadata.from_dict(data) == metadata


class TestCycleResult:
    """Test cases for aggregate cycle status."""

    def test_partial_success_is_not_an_error(self):
        """Test that some failures give a partial status without raising."""
        cycle = CycleResult(
            results=[
                SourceResult('a', 'success'),
                SourceResult('b', 'error', error_message='HTTP 503'),
            ],
            events=[],
        )
        assert cycle.status == 'partial'
        assert cycle.failed_sources == {'b': 'HTTP 503'}
        cycle.raise_for_status()

    def test_total_failure_raises(self):
        """Test that every source failing raises AggregateFailure."""
        cycle = CycleResult(
            results=[
                SourceResult('a', 'error', error_message='timeout'),
                SourceResult('b', 'error', error_message='HTTP 503'),
            ],
            events=[],
        )
        assert cycle.status == 'failure'
        with pytest.raises(AggregateFailure) as exc_info:
            cycle.raise_for_status()
        assert exc_info.value.errors == {'a': 'timeout', 'b': 'HTTP 503'}
