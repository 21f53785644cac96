"""AWS Lambda handlers for the Denver rink schedule aggregator."""
import dataclasses
import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from processor.deduplication import dedupe
from processor.filter_codec import decode, encode
from processor.filter_engine import FilterEngine
from processor.models import SourceResult
from processor.pipeline import AggregationRunner, SourcePipeline
from processor.registry import load_registry
from scraper.fetcher import SourceFetcher
from scraper.sources import select_sources
from storage.event_store import DynamoDBEventStore

# Attributes every LogRecord has; anything else was passed through `extra`
RESERVED_LOG_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any `extra` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in RESERVED_LOG_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _source_ids(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    return [source_id.strip() for source_id in raw.split(',') if source_id.strip()]


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body)
    }


def _store_result(store: DynamoDBEventStore, result: SourceResult, now: datetime,
                  errors: List[str]) -> Dict[str, Any]:
    """
    Persist one source's poll outcome and return its statistics entry.

    A replace that reported batch errors left the source only partly
    synced, so it is recorded as an error rather than a success.
    """
    if not result.ok:
        # Previous events stay in the store until the source recovers
        store.record_failure(result.source_id, result.error_message or 'Unknown error', now)
        return {
            'status': result.status,
            'error': result.error_message,
            'error_type': result.error_type,
            'duration_seconds': result.duration_seconds
        }

    sync_result = store.replace_source_events(result.source_id, result.events)
    errors.extend(sync_result.errors)
    if sync_result.errors:
        store.record_failure(result.source_id, '; '.join(sync_result.errors), now)
    else:
        store.record_success(result.source_id, len(result.events), now)

    return {
        'status': 'error' if sync_result.errors else result.status,
        'parser': result.parser_used,
        'events': len(result.events),
        'events_added': sync_result.added,
        'events_updated': sync_result.updated,
        'events_deleted': sync_result.deleted,
        'duration_seconds': result.duration_seconds
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Scheduled scrape: poll every source, then replace each successful
    source's stored events and record per-source metadata.

    A failed source keeps its previously stored events. The response is
    500 only when every source failed.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and per-source statistics
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'rink-events')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    max_retries = int(os.environ.get('MAX_RETRIES', '3'))
    retention_days = int(os.environ.get('RETENTION_DAYS', '30'))
    max_workers = int(os.environ.get('MAX_WORKERS', '4'))
    source_ids = _source_ids(os.environ.get('SOURCE_IDS'))

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    now = datetime.now(timezone.utc)
    logger.info(
        "Lambda execution started",
        extra={
            'table_name': table_name,
            'timeout_seconds': timeout_seconds,
            'max_workers': max_workers
        }
    )

    try:
        sources = [
            dataclasses.replace(source, retention_days=retention_days)
            for source in select_sources(source_ids)
        ]
        fetcher = SourceFetcher(timeout=timeout_seconds, max_retries=max_retries)
        runner = AggregationRunner(SourcePipeline(fetcher, now=now), max_workers=max_workers)
        store = DynamoDBEventStore(table_name=table_name)

        cycle = runner.run_cycle(sources)

        statistics = {}
        errors = []
        for result in cycle.results:
            try:
                statistics[result.source_id] = _store_result(store, result, now, errors)
            except ClientError as e:
                error_msg = f"[{result.source_id}] Error storing source results: {e}"
                logger.error(error_msg)
                errors.append(error_msg)
                statistics[result.source_id] = {
                    'status': 'error',
                    'error': error_msg,
                    'error_type': type(e).__name__,
                    'duration_seconds': result.duration_seconds
                }

        duration = time.time() - start_time
        logger.info(
            "Lambda execution completed",
            extra={
                'status': cycle.status,
                'duration_seconds': round(duration, 2),
                'unique_events': len(cycle.events),
                'failed_sources': sorted(cycle.failed_sources)
            }
        )

        cycle.raise_for_status()

        return _response(200, {
            'message': 'Scrape completed' if cycle.status == 'success' else 'Scrape partially completed',
            'status': cycle.status,
            'statistics': {
                'sources': statistics,
                'unique_events': len(cycle.events),
                'duration_seconds': round(duration, 2)
            },
            'errors': errors
        })

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Scrape failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'note': 'Previous events remain in DynamoDB',
            'duration_seconds': round(duration, 2)
        })


def query_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    API query: decode filter settings from the query string, read stored
    events, deduplicate, filter and return the display wire format.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        API Gateway proxy response
    """
    table_name = os.environ.get('TABLE_NAME', 'rink-events')
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    logger = logging.getLogger(__name__)

    try:
        settings = decode((event or {}).get('queryStringParameters') or {})
        registry = load_registry(os.environ.get('RINK_REGISTRY_PATH'))
        store = DynamoDBEventStore(table_name=table_name)

        events = dedupe(store.get_all_events())
        displayed = FilterEngine(registry).evaluate(events, settings)

        logger.info(
            f"Returning {len(displayed)} of {len(events)} events",
            extra={'filters': encode(settings)}
        )

        return _response(200, {
            'events': [display.to_wire() for display in displayed],
            'count': len(displayed),
            'filters': encode(settings),
            'description': settings.describe()
        })

    except Exception as e:
        logger.error(
            f"Query failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, {
            'message': 'Query failed',
            'error': str(e),
            'error_type': type(e).__name__
        })
