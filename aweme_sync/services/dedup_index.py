"""Canonical-id -> row-id index built from a full paginated table scan."""

from dataclasses import dataclass, field
from typing import Dict, Optional

from common_py.logging_config import configure_logging
from aweme_sync.config_loader import config
from aweme_sync.datastore.interface import TableInterface
from aweme_sync.models.video import canonicalize_id

logger = configure_logging("aweme-sync:dedup_index", log_level=config.LOG_LEVEL)


@dataclass
class DedupIndex:
    rows: Dict[str, str] = field(default_factory=dict)
    scanned: int = 0
    unreadable: int = 0
    duplicates: int = 0
    complete: bool = True

    def lookup(self, aweme_id) -> Optional[str]:
        key = canonicalize_id(aweme_id)
        return self.rows.get(key) if key else None

    def __contains__(self, aweme_id) -> bool:
        return self.lookup(aweme_id) is not None

    def __len__(self) -> int:
        return len(self.rows)


async def build_dedup_index(
    table: TableInterface,
    id_field_id: Optional[str],
    page_size: Optional[int] = None,
) -> DedupIndex:
    """
    Scan every row of `table` and index it by canonical id.

    A failed page stops the scan and the partial index is returned with
    `complete=False`. Unreadable cells are skipped. When two rows share a canonical
    id the first one scanned keeps the slot.
    """
    index = DedupIndex()
    if not id_field_id:
        logger.warning("No id column, dedup index is empty", table=table.table_id)
        return index

    page_size = page_size or config.SCAN_PAGE_SIZE
    page_token: Optional[str] = None
    while True:
        try:
            page = await table.get_records(page_size=page_size, page_token=page_token)
        except Exception as e:
            index.complete = False
            logger.error("Page fetch failed, keeping partial index",
                         table=table.table_id, indexed=len(index.rows), error=str(e))
            break

        for record_id in page.record_ids:
            index.scanned += 1
            try:
                raw = await table.get_cell_string(id_field_id, record_id)
            except Exception as e:
                index.unreadable += 1
                logger.debug("Skipping unreadable id cell", record_id=record_id, error=str(e))
                continue
            key = canonicalize_id(raw)
            if not key:
                continue
            if key in index.rows:
                index.duplicates += 1
                logger.warning("Duplicate canonical id, keeping first row",
                               aweme_id=key, kept=index.rows[key], ignored=record_id)
                continue
            index.rows[key] = record_id

        if not page.has_more or not page.page_token:
            break
        page_token = page.page_token

    logger.info("Built dedup index", table=table.table_id, indexed=len(index.rows),
                scanned=index.scanned, unreadable=index.unreadable,
                duplicates=index.duplicates, complete=index.complete)
    return index


async def collect_row_ids(table: TableInterface, id_field_id: Optional[str]) -> Optional[set]:
    """
    Canonical ids currently present in a table (used for before/after snapshots).

    Returns None when the scan failed part way or skipped unreadable ids.
    """
    index = await build_dedup_index(table, id_field_id)
    if not index.complete or index.unreadable:
        return None
    return set(index.rows)
