"""Chunked, best-effort commits of inserts and updates."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, TypeVar

from common_py.logging_config import configure_logging
from aweme_sync.config_loader import config
from aweme_sync.datastore.interface import RecordUpdate, TableInterface
from aweme_sync.services.exceptions import BatchWriteError

logger = configure_logging("aweme-sync:batch_writer", log_level=config.LOG_LEVEL)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    size = max(1, size)
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


@dataclass
class WriteResult:
    inserted: int = 0
    updated: int = 0
    failed_inserts: int = 0
    failed_updates: int = 0
    inserted_ids: List[str] = field(default_factory=list)
    updated_ids: List[str] = field(default_factory=list)
    failed_update_ids: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.inserted + self.updated

    @property
    def failed(self) -> int:
        return self.failed_inserts + self.failed_updates


class BatchWriter:
    """
    Commits rows in fixed-size chunks.

    Insert chunks are independent: a failed chunk is logged and skipped. A failed
    update chunk is retried one record at a time. Nothing is raised to the caller;
    the returned WriteResult carries the counts.
    """

    def __init__(self, chunk_size: Optional[int] = None):
        self.chunk_size = chunk_size or config.WRITE_CHUNK_SIZE

    async def write(
        self,
        table: TableInterface,
        inserts: Sequence[Dict[str, Any]] = (),
        updates: Sequence[RecordUpdate] = (),
    ) -> WriteResult:
        result = WriteResult()
        await self._insert(table, inserts, result)
        await self._update(table, updates, result)
        logger.info("Write finished", table=table.table_id, inserted=result.inserted,
                    updated=result.updated, failed=result.failed)
        return result

    async def _insert(self, table: TableInterface, inserts: Sequence[Dict[str, Any]], result: WriteResult) -> None:
        for index, chunk in enumerate(chunked(inserts, self.chunk_size), start=1):
            try:
                new_ids = await table.add_records(chunk)
            except Exception as e:
                error = BatchWriteError(str(e), operation="insert", chunk_index=index,
                                       chunk_size=len(chunk), table=table.table_id)
                logger.error("Insert chunk failed, skipping", table=table.table_id, chunk=index,
                             size=len(chunk), error_code=error.error_code.value, error=str(e))
                result.failed_inserts += len(chunk)
                continue
            result.inserted += len(chunk)
            result.inserted_ids.extend(new_ids or [])

    async def _update(self, table: TableInterface, updates: Sequence[RecordUpdate], result: WriteResult) -> None:
        for index, chunk in enumerate(chunked(updates, self.chunk_size), start=1):
            try:
                await table.set_records(chunk)
            except Exception as e:
                error = BatchWriteError(str(e), operation="update", chunk_index=index,
                                       chunk_size=len(chunk), table=table.table_id)
                logger.warning("Update chunk failed, falling back to single records", table=table.table_id,
                               chunk=index, size=len(chunk), error_code=error.error_code.value, error=str(e))
                await self._update_one_by_one(table, chunk, result)
                continue
            result.updated += len(chunk)
            result.updated_ids.extend(update.record_id for update in chunk)

    async def _update_one_by_one(self, table: TableInterface, chunk: List[RecordUpdate], result: WriteResult) -> None:
        for update in chunk:
            try:
                await table.set_record(update.record_id, update.fields)
            except Exception as e:
                logger.error("Record update failed", table=table.table_id,
                             record_id=update.record_id, error=str(e))
                result.failed_updates += 1
                result.failed_update_ids.append(update.record_id)
                continue
            result.updated += 1
            result.updated_ids.append(update.record_id)
