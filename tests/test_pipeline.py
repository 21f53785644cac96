"""Unit tests for SourcePipeline and AggregationRunner."""
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from processor.errors import AggregateFailure, FetchFailure
from processor.models import Category
from processor.pipeline import AggregationRunner, SourcePipeline
from scraper.sources import SourceConfig


NOW = datetime(2025, 7, 1, 6, 0, tzinfo=timezone.utc)

RSS_FEED = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Ice Ranch</title>
  <item>
    <title>Public Skate</title>
    <pubDate>Tue, 15 Jul 2025 18:00:00 -0600</pubDate>
    <description>Time: 6:00pm - 7:30pm</description>
  </item>
  <item>
    <title>Coach's Ice</title>
    <pubDate>Wed, 16 Jul 2025 06:00:00 -0600</pubDate>
  </item>
</channel></rss>
"""

ICS_FEED = """BEGIN:VCALENDAR
BEGIN:VEVENT
UID:skate-1
SUMMARY:Public Skate
DTSTART;TZID=America/Denver:20250715T180000
DTEND;TZID=America/Denver:20250715T193000
END:VEVENT
BEGIN:VEVENT
UID:sp-1
SUMMARY:Stick and Puck
DTSTART;TZID=America/Denver:20250715T120000
DTEND;TZID=America/Denver:20250715T130000
END:VEVENT
END:VCALENDAR
"""

TABLE_PAGE = """<html><body><table>
  <tr><td data-date="2025-07-15">6:00 PM - 7:30 PM Freestyle</td></tr>
</table></body></html>
"""

RSS_SOURCE = SourceConfig('ice-ranch', 'rss', 'https://rss.example.com/feed', 'ice-ranch')
ICS_SOURCE = SourceConfig('du-ritchie-1', 'icalendar', 'https://ics.example.com/basic.ics', 'du-ritchie')
EDGE_SOURCE = SourceConfig('foothills-edge', 'embedded-json', 'https://edge.example.com/cal',
                           'foothills-edge', fallback_parser='html-table')


def fake_fetcher(payloads):
    """Fetcher mock returning a payload per URL, or raising a FetchFailure."""
    def _fetch(url, **kwargs):
        payload = payloads[url]
        if isinstance(payload, Exception):
            raise payload
        return payload

    fetcher = Mock()
    fetcher.fetch.side_effect = _fetch
    return fetcher


class TestSourcePipeline:
    """Test cases for polling a single source."""

    def test_successful_source(self):
        """Test fetch, parse and post-processing for one source."""
        pipeline = SourcePipeline(fake_fetcher({RSS_SOURCE.url: RSS_FEED}), now=NOW)
        result = pipeline.run(RSS_SOURCE)

        assert result.ok
        assert result.parser_used == 'rss'
        assert [event.title for event in result.events] == ['Public Skate', "Coach's Ice"]
        assert result.duration_seconds >= 0

    def test_fetch_failure_becomes_error_result(self):
        """Test that a FetchFailure is captured rather than raised."""
        failure = FetchFailure(RSS_SOURCE.url, 'http', status_code=404)
        pipeline = SourcePipeline(fake_fetcher({RSS_SOURCE.url: failure}), now=NOW)
        result = pipeline.run(RSS_SOURCE)

        assert not result.ok
        assert result.status == 'error'
        assert result.events == []
        assert result.error_type == 'FetchFailure'
        assert 'HTTP 404' in result.error_message

    def test_parse_failure_becomes_error_result(self):
        """Test that a payload of the wrong shape rejects the whole source."""
        pipeline = SourcePipeline(fake_fetcher({RSS_SOURCE.url: '<html>Maintenance</html>'}), now=NOW)
        result = pipeline.run(RSS_SOURCE)

        assert result.status == 'error'
        assert result.error_type == 'ParseFailure'

    def test_fallback_parser_used(self):
        """Test that a ParseFailure from the primary parser tries the fallback."""
        pipeline = SourcePipeline(fake_fetcher({EDGE_SOURCE.url: TABLE_PAGE}), now=NOW)
        result = pipeline.run(EDGE_SOURCE)

        assert result.ok
        assert result.parser_used == 'html-table'
        assert [event.title for event in result.events] == ['Freestyle']
        assert result.events[0].category == Category.FIGURE_SKATING

    def test_unexpected_error_captured(self):
        """Test that an unexpected exception becomes an error result."""
        fetcher = Mock()
        fetcher.fetch.side_effect = RuntimeError('boom')
        result = SourcePipeline(fetcher, now=NOW).run(RSS_SOURCE)

        assert result.status == 'error'
        assert result.error_type == 'RuntimeError'
        assert result.error_message == 'boom'

    def test_source_request_options_passed_to_fetcher(self):
        """Test that method, headers and form data come from the source config."""
        source = SourceConfig('post-source', 'rss', 'https://rss.example.com/post', 'ice-ranch',
                              method='POST', form_data={'page': '1'}, headers={'X-Test': 'yes'})
        fetcher = fake_fetcher({source.url: RSS_FEED})
        SourcePipeline(fetcher, now=NOW).run(source)

        fetcher.fetch.assert_called_once_with(
            source.url, headers={'X-Test': 'yes'}, method='POST', data={'page': '1'}
        )


class TestAggregationRunner:
    """Test cases for running a full cycle."""

    def test_merge_and_dedupe_across_sources(self):
        """Test that the same session published by two sources appears once."""
        fetcher = fake_fetcher({RSS_SOURCE.url: RSS_FEED, ICS_SOURCE.url: ICS_FEED})
        runner = AggregationRunner(SourcePipeline(fetcher, now=NOW), max_workers=2)
        cycle = runner.run_cycle([RSS_SOURCE, ICS_SOURCE])

        assert cycle.status == 'success'
        assert [event.title for event in cycle.events] == [
            'Stick and Puck', 'Public Skate', "Coach's Ice",
        ]
        public_skate = cycle.events[1]
        assert public_skate.start_time == datetime(2025, 7, 16, 0, 0, tzinfo=timezone.utc)
        # The earlier configured source wins the duplicate
        assert public_skate.source_rink_id == 'ice-ranch'

    def test_partial_success(self):
        """Test that one failing source does not affect the others."""
        fetcher = fake_fetcher({
            RSS_SOURCE.url: RSS_FEED,
            ICS_SOURCE.url: FetchFailure(ICS_SOURCE.url, 'timeout'),
        })
        cycle = AggregationRunner(SourcePipeline(fetcher, now=NOW)).run_cycle([RSS_SOURCE, ICS_SOURCE])

        assert cycle.status == 'partial'
        assert list(cycle.failed_sources) == ['du-ritchie-1']
        assert len(cycle.events) == 2
        cycle.raise_for_status()

    def test_all_sources_fail(self):
        """Test that a cycle where every source fails raises AggregateFailure."""
        fetcher = fake_fetcher({
            RSS_SOURCE.url: FetchFailure(RSS_SOURCE.url, 'connection'),
            ICS_SOURCE.url: '<html>not a calendar</html>',
        })
        cycle = AggregationRunner(SourcePipeline(fetcher, now=NOW)).run_cycle([RSS_SOURCE, ICS_SOURCE])

        assert cycle.status == 'failure'
        assert cycle.events == []
        with pytest.raises(AggregateFailure) as excinfo:
            cycle.raise_for_status()
        assert set(excinfo.value.errors) == {'ice-ranch', 'du-ritchie-1'}

    def test_results_keep_source_order(self):
        """Test that per-source results follow the configured order."""
        fetcher = fake_fetcher({ICS_SOURCE.url: ICS_FEED, RSS_SOURCE.url: RSS_FEED})
        cycle = AggregationRunner(SourcePipeline(fetcher, now=NOW)).run_cycle([ICS_SOURCE, RSS_SOURCE])

        assert [result.source_id for result in cycle.results] == ['du-ritchie-1', 'ice-ranch']
        public_skate = [event for event in cycle.events if event.title == 'Public Skate']
        assert [event.source_rink_id for event in public_skate] == ['du-ritchie']

    def test_no_sources(self):
        """Test that an empty source list is an empty successful cycle."""
        cycle = AggregationRunner(SourcePipeline(Mock(), now=NOW)).run_cycle([])
        assert cycle.status == 'success'
        assert cycle.events == []
