"""Shared fixtures for the rink schedule tests."""
from datetime import datetime, timezone

import pytest

from processor.classifier import CategoryClassifier
from processor.event_processor import EventProcessor
from processor.models import CanonicalEvent, Category
from processor.timezone import TimezoneNormalizer
from scraper.base import SourceContext

# Civil midnight starting 2025-07-01 in the summer offset
NOW = datetime(2025, 7, 1, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def normalizer():
    return TimezoneNormalizer()


@pytest.fixture
def make_context(normalizer):
    """Factory for parser contexts with a fixed reference instant."""
    def _make(**overrides):
        values = {
            'source_id': 'test-source',
            'rink_id': 'ice-ranch',
            'normalizer': normalizer,
            'classifier': CategoryClassifier(),
            'processor': EventProcessor(),
            'now': NOW,
        }
        values.update(overrides)
        return SourceContext(**values)
    return _make


@pytest.fixture
def make_event(normalizer):
    """Factory for canonical events from civil start/end datetimes."""
    def _make(event_id, rink_id, title, civil_start, civil_end, category=Category.OTHER, **extra):
        return CanonicalEvent(
            id=event_id,
            source_rink_id=rink_id,
            title=title,
            start_time=normalizer.to_absolute(civil_start),
            end_time=normalizer.to_absolute(civil_end),
            category=category,
            **extra
        )
    return _make
