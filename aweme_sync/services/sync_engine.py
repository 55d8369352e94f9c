"""
Turns fetched video batches into inserts and updates against destination tables.

One batch per input URL: resolve the table, reconcile its columns, index existing
rows by canonical id, classify each record, then hand both sets to the BatchWriter.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from common_py.error_codes import ErrorCode
from common_py.logging_config import configure_logging
from common_py.metrics import MetricsCollector, TimerContext, metrics
from aweme_sync.clients.video_data_client import (
    VideoDataClient,
    endpoint_for_platform,
    validate_credentials,
)
from aweme_sync.config_loader import config
from aweme_sync.datastore.interface import DatastoreInterface, RecordUpdate, TableInterface
from aweme_sync.models.schema import DEFAULT_TABLE_NAME, VIDEO_ID_FIELD
from aweme_sync.models.video import VideoRecord
from aweme_sync.services.batch_writer import BatchWriter, WriteResult
from aweme_sync.services.date_normalizer import normalize_publish_time
from aweme_sync.services.dedup_index import build_dedup_index
from aweme_sync.services.exceptions import ValidationError
from aweme_sync.services.field_mapper import ensure_fields

logger = configure_logging("aweme-sync:sync_engine", log_level=config.LOG_LEVEL)


@dataclass
class SyncResult:
    urls_total: int = 0
    urls_failed: int = 0
    fetched: int = 0
    skipped: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    tables: Dict[str, str] = field(default_factory=dict)  # table name -> table id
    created_table_ids: Set[str] = field(default_factory=set)
    errors: List[str] = field(default_factory=list)

    def add_write(self, write: WriteResult) -> None:
        self.inserted += write.inserted
        self.updated += write.updated
        self.failed += write.failed


def table_name_for(records: Sequence[VideoRecord]) -> str:
    return (records[0].nickname.strip() if records else "") or DEFAULT_TABLE_NAME


class SyncEngine:
    def __init__(
        self,
        datastore: DatastoreInterface,
        video_client: VideoDataClient,
        writer: Optional[BatchWriter] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self.datastore = datastore
        self.video_client = video_client
        self.writer = writer or BatchWriter()
        self.metrics = metrics_collector or metrics

    async def run(
        self,
        urls: Sequence[str],
        platform: Optional[str] = None,
        link_type: Optional[str] = None,
        update_method: Optional[str] = None,
        page_turns: Optional[int] = None,
    ) -> SyncResult:
        """
        Sync every input URL.

        Raises:
            ValidationError: missing credentials, no URLs or unknown platform (before any request)
        """
        platform = platform or config.PLATFORM
        validate_credentials(self.video_client.username, self.video_client.passtoken)
        endpoint_for_platform(platform)
        urls = [url.strip() for url in urls if url and url.strip()]
        if not urls:
            raise ValidationError("At least one input URL is required", field="INPUT_URLS",
                                  error_code=ErrorCode.MISSING_INPUT_URL)

        result = SyncResult(urls_total=len(urls))
        for position, url in enumerate(urls, start=1):
            logger.info("Syncing input URL", url=url, position=position, total=len(urls))
            try:
                with TimerContext("sync_url", collector=self.metrics):
                    records = await self.video_client.fetch_videos(
                        url,
                        platform=platform,
                        link_type=link_type,
                        update_method=update_method,
                        page_turns=page_turns,
                    )
                    await self.sync_batch(records, result)
            except Exception as e:
                result.urls_failed += 1
                result.errors.append(f"{url}: {e}")
                logger.error("Input URL failed, continuing with next", url=url, error=str(e))

        logger.info("Sync finished", urls=result.urls_total, urls_failed=result.urls_failed,
                    fetched=result.fetched, inserted=result.inserted, updated=result.updated,
                    skipped=result.skipped, failed=result.failed)
        return result

    async def get_or_create_table(self, name: str) -> Tuple[TableInterface, bool]:
        table = await self.datastore.get_table_by_name(name)
        if table is not None:
            return table, False
        table_id = await self.datastore.create_table(name)
        logger.info("Created table", table=name, table_id=table_id)
        return await self.datastore.get_table(table_id), True

    async def sync_batch(self, records: Sequence[VideoRecord], result: Optional[SyncResult] = None) -> SyncResult:
        """Write one fetched batch into the table named after its author."""
        result = result if result is not None else SyncResult()
        result.fetched += len(records)
        self.metrics.increment_counter("records_fetched", len(records))
        if not records:
            logger.info("Batch is empty, nothing to write")
            return result

        name = table_name_for(records)
        table, created = await self.get_or_create_table(name)
        result.tables[name] = table.table_id
        if created:
            result.created_table_ids.add(table.table_id)

        field_map = await ensure_fields(table, is_new_table=created)
        id_field_id = field_map.id_for(VIDEO_ID_FIELD)
        if id_field_id is None:
            # Rows written without an id could never be matched again
            result.skipped += len(records)
            self.metrics.increment_counter("records_skipped", len(records))
            logger.warning("Id column unavailable, skipping batch", table=name,
                           field=VIDEO_ID_FIELD.name, records=len(records))
            return result
        index = await build_dedup_index(table, id_field_id)

        inserts: Dict[str, dict] = {}
        updates: Dict[str, RecordUpdate] = {}
        for record in records:
            key = record.canonical_id
            if not key:
                result.skipped += 1
                self.metrics.increment_counter("records_skipped")
                logger.warning("Skipping record without id", table=name, desc=record.desc[:50])
                continue

            publish_ms = normalize_publish_time(record.conv_create_time, aweme_id=record.aweme_id)
            values = field_map.resolve_values(record.to_row_values(publish_ms))
            if not values:
                result.skipped += 1
                self.metrics.increment_counter("records_skipped")
                continue

            record_id = index.lookup(key)
            if record_id is None:
                # Repeated ids inside one batch collapse to a single insert
                inserts.setdefault(key, {}).update(values)
            elif record_id in updates:
                updates[record_id].fields.update(values)
            else:
                updates[record_id] = RecordUpdate(record_id=record_id, fields=values)

        logger.info("Classified batch", table=name, inserts=len(inserts), updates=len(updates),
                    indexed=len(index))
        write = await self.writer.write(table, list(inserts.values()), list(updates.values()))
        result.add_write(write)
        self.metrics.increment_counter("rows_inserted", write.inserted)
        self.metrics.increment_counter("rows_updated", write.updated)
        self.metrics.increment_counter("rows_failed", write.failed)
        return result
