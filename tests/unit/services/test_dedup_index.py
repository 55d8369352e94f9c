"""Unit tests for the paginated dedup index scan."""

import pytest

from aweme_sync.models.schema import VIDEO_ID_FIELD
from aweme_sync.services.dedup_index import build_dedup_index, collect_row_ids

pytestmark = pytest.mark.unit


class TestBuildDedupIndex:
    @pytest.mark.asyncio
    async def test_canonical_ids_are_case_and_space_insensitive(self, seed):
        table = await seed("t", [{"aweme_id": " ABC123 "}])
        index = await build_dedup_index(table, table.field_id(VIDEO_ID_FIELD.name))

        assert index.lookup("abc123") == next(iter(table.records))
        assert "  abc123" in index
        assert index.lookup("abc124") is None

    @pytest.mark.asyncio
    async def test_scans_every_page(self, seed):
        table = await seed("t", [{"aweme_id": f"id{i}"} for i in range(23)])
        index = await build_dedup_index(table, table.field_id(VIDEO_ID_FIELD.name), page_size=5)

        assert len(index) == 23
        assert index.scanned == 23
        assert index.complete

    @pytest.mark.asyncio
    async def test_page_failure_keeps_partial_index(self, seed):
        table = await seed("t", [{"aweme_id": f"id{i}"} for i in range(12)])
        table.fail_pages = {1}
        index = await build_dedup_index(table, table.field_id(VIDEO_ID_FIELD.name), page_size=5)

        assert len(index) == 5
        assert not index.complete

    @pytest.mark.asyncio
    async def test_unreadable_cells_are_skipped(self, seed):
        table = await seed("t", [{"aweme_id": f"id{i}"} for i in range(4)])
        bad = list(table.records)[1]
        table.unreadable_record_ids = {bad}
        index = await build_dedup_index(table, table.field_id(VIDEO_ID_FIELD.name))

        assert len(index) == 3
        assert index.unreadable == 1
        assert "id1" not in index

    @pytest.mark.asyncio
    async def test_duplicate_ids_first_row_wins(self, seed):
        table = await seed("t", [{"aweme_id": "dup"}, {"aweme_id": "DUP "}, {"aweme_id": "other"}])
        first = list(table.records)[0]
        index = await build_dedup_index(table, table.field_id(VIDEO_ID_FIELD.name))

        assert index.lookup("dup") == first
        assert index.duplicates == 1

    @pytest.mark.asyncio
    async def test_blank_ids_are_ignored(self, seed):
        table = await seed("t", [{"aweme_id": "a"}, {"nickname": "no id"}])
        index = await build_dedup_index(table, table.field_id(VIDEO_ID_FIELD.name))
        assert len(index) == 1

    @pytest.mark.asyncio
    async def test_missing_id_column_gives_empty_index(self, seed):
        table = await seed("t", [{"aweme_id": "a"}])
        index = await build_dedup_index(table, None)
        assert len(index) == 0

    @pytest.mark.asyncio
    async def test_collect_row_ids(self, seed):
        table = await seed("t", [{"aweme_id": "A1"}, {"aweme_id": "b2"}])
        assert await collect_row_ids(table, table.field_id(VIDEO_ID_FIELD.name)) == {"a1", "b2"}

    @pytest.mark.asyncio
    async def test_collect_row_ids_none_when_scan_incomplete(self, seed):
        table = await seed("t", [{"aweme_id": "a1"}, {"aweme_id": "b2"}])
        table.fail_pages = {0}
        assert await collect_row_ids(table, table.field_id(VIDEO_ID_FIELD.name)) is None

        table.fail_pages = set()
        table.unreadable_record_ids = {next(iter(table.records))}
        assert await collect_row_ids(table, table.field_id(VIDEO_ID_FIELD.name)) is None
