"""DynamoDB-backed store for canonical events and source metadata."""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from processor.models import CanonicalEvent, SourceMetadata, SyncResult

logger = logging.getLogger(__name__)

METADATA_ITEM_ID = '#metadata'


class DynamoDBEventStore:
    """
    Event store keyed by (source_id, item_id).

    Each source owns a partition holding its events plus one metadata item,
    so replacing one source's events never touches another source.
    """

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    TTL_GRACE = timedelta(days=1)

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def get_source_events(self, source_id: str) -> Dict[str, CanonicalEvent]:
        """
        Retrieve one source's stored events.

        Returns:
            Dictionary mapping event id to CanonicalEvent
        """
        items = self._query_partition(source_id)
        events = {}
        for item in items:
            if item['item_id'] == METADATA_ITEM_ID:
                continue
            event = self._item_to_event(item)
            if event:
                events[event.id] = event
        return events

    def get_all_events(self) -> List[CanonicalEvent]:
        """Retrieve every stored event across all sources, ordered by start time."""
        logger.info("Scanning DynamoDB table for all events")
        events = []
        for item in self._scan():
            if item['item_id'] == METADATA_ITEM_ID:
                continue
            event = self._item_to_event(item)
            if event:
                events.append(event)

        events.sort(key=lambda event: event.start_time)
        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def replace_source_events(self, source_id: str, new_events: List[CanonicalEvent]) -> SyncResult:
        """
        Make the source's stored events exactly equal to new_events.

        Adds new events, rewrites changed ones and deletes events the source
        no longer publishes. Other sources' partitions are untouched.

        Args:
            source_id: Source whose events are replaced
            new_events: Current events from the source

        Returns:
            SyncResult with counts of added, updated, deleted events. Failed
            batches are listed in errors, so an empty list means the stored
            events now match new_events.
        """
        logger.info(f"[{source_id}] Replacing stored events with {len(new_events)} events")
        errors = []

        try:
            existing_events = self.get_source_events(source_id)
            new_events_dict = {event.id: event for event in new_events}

            events_to_add = [
                event for event_id, event in new_events_dict.items()
                if event_id not in existing_events
            ]
            events_to_update = [
                event for event_id, event in new_events_dict.items()
                if event_id in existing_events and event != existing_events[event_id]
            ]
            event_ids_to_delete = [
                event_id for event_id in existing_events
                if event_id not in new_events_dict
            ]

            logger.info(
                f"[{source_id}] Sync plan: {len(events_to_add)} to add, "
                f"{len(events_to_update)} to update, "
                f"{len(event_ids_to_delete)} to delete"
            )

            added_count = 0
            updated_count = 0
            deleted_count = 0

            if events_to_add or events_to_update:
                write_count = self.batch_write_events(source_id, events_to_add + events_to_update, errors)
                added_count = min(write_count, len(events_to_add))
                updated_count = write_count - added_count

            if event_ids_to_delete:
                deleted_count = self.batch_delete_events(source_id, event_ids_to_delete, errors)

            return SyncResult(
                added=added_count,
                updated=updated_count,
                deleted=deleted_count,
                errors=errors
            )

        except ClientError as e:
            error_msg = f"Error replacing events for {source_id}: {e}"
            logger.error(error_msg)
            errors.append(error_msg)
            return SyncResult(added=0, updated=0, deleted=0, errors=errors)

    def batch_write_events(self, source_id: str, events: List[CanonicalEvent],
                           errors: Optional[List[str]] = None) -> int:
        """
        Write events in batches of 25 items.

        A failed batch is logged, appended to errors when given, and skipped.

        Returns:
            Count of successfully written events
        """
        success_count = 0
        for i in range(0, len(events), self.BATCH_SIZE):
            batch = events[i:i + self.BATCH_SIZE]
            try:
                with self.table.batch_writer() as writer:
                    for event in batch:
                        writer.put_item(Item=self._event_to_item(source_id, event))
                success_count += len(batch)
            except ClientError as e:
                error_msg = f"[{source_id}] Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                logger.error(error_msg)
                if errors is not None:
                    errors.append(error_msg)
                continue
        return success_count

    def batch_delete_events(self, source_id: str, event_ids: List[str],
                            errors: Optional[List[str]] = None) -> int:
        """
        Delete events in batches of 25 items.

        A failed batch is logged, appended to errors when given, and skipped.

        Returns:
            Count of successfully deleted events
        """
        success_count = 0
        for i in range(0, len(event_ids), self.BATCH_SIZE):
            batch = event_ids[i:i + self.BATCH_SIZE]
            try:
                with self.table.batch_writer() as writer:
                    for event_id in batch:
                        writer.delete_item(Key={'source_id': source_id, 'item_id': event_id})
                success_count += len(batch)
            except ClientError as e:
                error_msg = f"[{source_id}] Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                logger.error(error_msg)
                if errors is not None:
                    errors.append(error_msg)
                continue
        return success_count

    def get_metadata(self, source_id: str) -> Optional[SourceMetadata]:
        response = self.table.get_item(Key={'source_id': source_id, 'item_id': METADATA_ITEM_ID})
        item = response.get('Item')
        return SourceMetadata.from_dict(item) if item else None

    def get_all_metadata(self) -> Dict[str, SourceMetadata]:
        return {
            item['source_id']: SourceMetadata.from_dict(item)
            for item in self._scan()
            if item['item_id'] == METADATA_ITEM_ID
        }

    def write_metadata(self, metadata: SourceMetadata) -> None:
        item = metadata.to_dict()
        item['source_id'] = metadata.source_id
        item['item_id'] = METADATA_ITEM_ID
        self.table.put_item(Item=item)

    def record_success(self, source_id: str, event_count: int, now: datetime) -> SourceMetadata:
        metadata = SourceMetadata(
            source_id=source_id,
            last_attempt=now,
            status='success',
            event_count=event_count,
            last_successful_at=now,
        )
        self.write_metadata(metadata)
        return metadata

    def record_failure(self, source_id: str, error_message: str, now: datetime) -> SourceMetadata:
        """
        Record a failed poll.

        The previous lastSuccessfulAt and event count are carried over, and
        the source's stored events are left in place.
        """
        previous = self.get_metadata(source_id)
        metadata = SourceMetadata(
            source_id=source_id,
            last_attempt=now,
            status='error',
            event_count=previous.event_count if previous else 0,
            error_message=error_message,
            last_successful_at=previous.last_successful_at if previous else None,
        )
        self.write_metadata(metadata)
        return metadata

    def _query_partition(self, source_id: str) -> List[dict]:
        response = self.table.query(KeyConditionExpression=Key('source_id').eq(source_id))
        items = response.get('Items', [])

        # Handle pagination
        while 'LastEvaluatedKey' in response:
            response = self.table.query(
                KeyConditionExpression=Key('source_id').eq(source_id),
                ExclusiveStartKey=response['LastEvaluatedKey']
            )
            items.extend(response.get('Items', []))
        return items

    def _scan(self) -> List[dict]:
        try:
            response = self.table.scan()
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(ExclusiveStartKey=response['LastEvaluatedKey'])
                items.extend(response.get('Items', []))
            return items

        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

    def _item_to_event(self, item: dict) -> Optional[CanonicalEvent]:
        try:
            return CanonicalEvent.from_wire(item)
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item {item.get('item_id')} to CanonicalEvent: {e}")
            return None

    def _event_to_item(self, source_id: str, event: CanonicalEvent) -> dict:
        item = event.to_wire()
        item['source_id'] = source_id
        item['item_id'] = event.id
        # DynamoDB TTL expires events a day after they end
        item['ttl'] = int((event.end_time + self.TTL_GRACE).timestamp())
        return item
