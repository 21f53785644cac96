"""Fetch, parse and merge schedule sources."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional

from processor.classifier import CategoryClassifier
from processor.deduplication import dedupe
from processor.errors import FetchFailure, ParseFailure, PipelineError
from processor.event_processor import EventProcessor
from processor.models import CanonicalEvent, CycleResult, SourceResult
from processor.timezone import TimezoneNormalizer
from scraper.base import SourceContext
from scraper.fetcher import SourceFetcher
from scraper.sources import SourceConfig, get_parser

logger = logging.getLogger(__name__)


class SourcePipeline:
    """Runs fetch -> parse -> post-process for a single source."""

    def __init__(
        self,
        fetcher: SourceFetcher,
        normalizer: Optional[TimezoneNormalizer] = None,
        classifier: Optional[CategoryClassifier] = None,
        now: Optional[datetime] = None,
    ):
        self.fetcher = fetcher
        self.normalizer = normalizer or TimezoneNormalizer()
        self.classifier = classifier or CategoryClassifier()
        self.now = now

    def context_for(self, config: SourceConfig) -> SourceContext:
        return SourceContext(
            source_id=config.source_id,
            rink_id=config.rink_id,
            normalizer=self.normalizer,
            classifier=self.classifier,
            processor=EventProcessor(retention_days=config.retention_days),
            base_url=config.url,
            tag_categories=config.tag_categories,
            exclude_keywords=config.exclude_keywords,
            sub_rink_ids=config.sub_rink_ids,
            schedule_variable=config.schedule_variable,
            now=self.now or datetime.now(timezone.utc),
        )

    def parse(self, payload: str, config: SourceConfig) -> SourceResult:
        """
        Parse an already fetched payload, trying the fallback parser when
        the primary one rejects the payload's shape.

        Raises:
            ParseFailure: If every configured parser rejects the payload
        """
        context = self.context_for(config)
        try:
            events = get_parser(config.parser).parse(payload, context)
            return SourceResult(config.source_id, 'success', events, parser_used=config.parser)
        except ParseFailure as e:
            if not config.fallback_parser:
                raise
            logger.warning(
                f"[{config.source_id}] {e}; falling back to {config.fallback_parser} parser"
            )

        events = get_parser(config.fallback_parser).parse(payload, context)
        return SourceResult(config.source_id, 'success', events, parser_used=config.fallback_parser)

    def run(self, config: SourceConfig) -> SourceResult:
        """
        Poll one source. Never raises; failures become an error result.

        Args:
            config: Source to poll

        Returns:
            SourceResult with events on success, error details otherwise
        """
        started = time.monotonic()
        try:
            payload = self.fetcher.fetch(
                config.url,
                headers=config.headers,
                method=config.method,
                data=config.form_data,
            )
            result = self.parse(payload, config)
            logger.info(
                f"[{config.source_id}] Collected {len(result.events)} events "
                f"with {result.parser_used} parser"
            )

        except (FetchFailure, ParseFailure) as e:
            logger.warning(f"[{config.source_id}] Source failed: {e}")
            result = SourceResult(config.source_id, 'error', error_message=str(e),
                                  error_type=type(e).__name__)

        except PipelineError as e:
            logger.error(f"[{config.source_id}] Source failed: {e}", exc_info=True)
            result = SourceResult(config.source_id, 'error', error_message=str(e),
                                  error_type=type(e).__name__)

        except Exception as e:
            logger.error(f"[{config.source_id}] Unexpected error: {e}", exc_info=True)
            result = SourceResult(config.source_id, 'error', error_message=str(e),
                                  error_type=type(e).__name__)

        result.duration_seconds = round(time.monotonic() - started, 3)
        return result


class AggregationRunner:
    """Polls every source concurrently and merges the results."""

    def __init__(self, pipeline: SourcePipeline, max_workers: int = 4):
        self.pipeline = pipeline
        self.max_workers = max(1, max_workers)

    def run_cycle(self, sources: List[SourceConfig]) -> CycleResult:
        """
        Run one scrape cycle over all sources.

        Sources are independent: one source failing never affects another.
        Merged events keep the configured source order before deduplication,
        so the earlier source wins a duplicate.

        Args:
            sources: Sources to poll

        Returns:
            CycleResult with per-source outcomes and the merged events
        """
        logger.info(f"Starting scrape cycle over {len(sources)} sources")
        if not sources:
            return CycleResult(results=[], events=[])

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(sources))) as executor:
            results = list(executor.map(self.pipeline.run, sources))

        merged: List[CanonicalEvent] = []
        for result in results:
            merged.extend(result.events)
        merged.sort(key=lambda event: event.start_time)

        cycle = CycleResult(results=results, events=dedupe(merged))
        logger.info(
            f"Scrape cycle finished with status {cycle.status}: "
            f"{len(cycle.events)} events, {len(cycle.failed_sources)} failed sources"
        )
        return cycle
