"""
In-process datastore used for local dry runs and as the destination fake in tests.

Every table method can be made to fail through the `fail_*` attributes.
"""

from itertools import count
from typing import Any, Dict, List, Optional, Set

from aweme_sync.datastore.interface import (
    DatastoreInterface,
    FieldMeta,
    RecordPage,
    RecordUpdate,
    TableInterface,
    TableMeta,
)
from aweme_sync.models.schema import FieldType

DEFAULT_PRIMARY_FIELD_NAME = "Text"


class InMemoryTable(TableInterface):
    def __init__(self, table_id: str, name: str):
        self._table_id = table_id
        self.name = name
        self._ids = count(1)
        self.fields: List[FieldMeta] = [
            FieldMeta(self._next_id("fld"), DEFAULT_PRIMARY_FIELD_NAME, FieldType.TEXT, is_primary=True)
        ]
        self.records: Dict[str, Dict[str, Any]] = {}

        # Failure injection
        self.fail_pages: Set[int] = set()  # 0-based page numbers
        self.fail_add_records_calls: Set[int] = set()  # 1-based call numbers
        self.fail_set_records_calls: Set[int] = set()  # 1-based call numbers
        self.fail_set_record_ids: Set[str] = set()
        self.fail_add_field_names: Set[str] = set()
        self.fail_rename = False
        self.add_field_returns_id = True
        self.unreadable_record_ids: Set[str] = set()

        # Call log
        self.add_records_batches: List[int] = []
        self.set_records_batches: List[int] = []
        self.set_record_calls: List[str] = []

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids):06d}"

    @property
    def table_id(self) -> str:
        return self._table_id

    async def get_name(self) -> str:
        return self.name

    async def list_fields(self) -> List[FieldMeta]:
        return list(self.fields)

    async def add_field(self, name: str, field_type: FieldType) -> Optional[str]:
        if name in self.fail_add_field_names:
            raise RuntimeError(f"add_field rejected: {name}")
        if any(meta.name == name for meta in self.fields):
            raise RuntimeError(f"duplicate field name: {name}")
        meta = FieldMeta(self._next_id("fld"), name, FieldType(field_type))
        self.fields.append(meta)
        return meta.field_id if self.add_field_returns_id else None

    async def rename_field(self, field_id: str, name: str) -> None:
        if self.fail_rename:
            raise RuntimeError("rename_field rejected")
        for index, meta in enumerate(self.fields):
            if meta.field_id == field_id:
                self.fields[index] = FieldMeta(field_id, name, meta.field_type, meta.is_primary)
                return
        raise KeyError(field_id)

    async def get_records(self, page_size: int, page_token: Optional[str] = None) -> RecordPage:
        offset = int(page_token) if page_token else 0
        if offset // max(page_size, 1) in self.fail_pages:
            raise RuntimeError(f"page fetch failed at offset {offset}")
        ids = list(self.records)
        chunk = ids[offset:offset + page_size]
        next_offset = offset + len(chunk)
        has_more = next_offset < len(ids)
        return RecordPage(
            record_ids=chunk,
            page_token=str(next_offset) if has_more else None,
            has_more=has_more,
            total=len(ids),
        )

    async def list_record_ids(self) -> List[str]:
        return list(self.records)

    def _cell(self, field_id: str, record_id: str) -> Any:
        if record_id in self.unreadable_record_ids:
            raise RuntimeError(f"cell unreadable: {record_id}")
        if record_id not in self.records:
            raise KeyError(record_id)
        return self.records[record_id].get(field_id)

    async def get_cell_string(self, field_id: str, record_id: str) -> Optional[str]:
        value = self._cell(field_id, record_id)
        return None if value is None else str(value)

    async def get_cell_value(self, field_id: str, record_id: str) -> Any:
        return self._cell(field_id, record_id)

    def _check_fields(self, values: Dict[str, Any]) -> None:
        known = {meta.field_id for meta in self.fields}
        unknown = set(values) - known
        if unknown:
            raise KeyError(f"unknown field ids: {sorted(unknown)}")

    async def add_records(self, records: List[Dict[str, Any]]) -> List[str]:
        self.add_records_batches.append(len(records))
        if len(self.add_records_batches) in self.fail_add_records_calls:
            raise RuntimeError("add_records rejected")
        for values in records:
            self._check_fields(values)
        new_ids = []
        for values in records:
            record_id = self._next_id("rec")
            self.records[record_id] = dict(values)
            new_ids.append(record_id)
        return new_ids

    async def set_records(self, updates: List[RecordUpdate]) -> None:
        self.set_records_batches.append(len(updates))
        if len(self.set_records_batches) in self.fail_set_records_calls:
            raise RuntimeError("set_records rejected")
        for update in updates:
            if update.record_id in self.fail_set_record_ids:
                raise RuntimeError(f"set_records rejected row {update.record_id}")
            if update.record_id not in self.records:
                raise KeyError(update.record_id)
            self._check_fields(update.fields)
        for update in updates:
            self.records[update.record_id].update(update.fields)

    async def set_record(self, record_id: str, fields: Dict[str, Any]) -> None:
        self.set_record_calls.append(record_id)
        if record_id in self.fail_set_record_ids:
            raise RuntimeError(f"set_record rejected row {record_id}")
        if record_id not in self.records:
            raise KeyError(record_id)
        self._check_fields(fields)
        self.records[record_id].update(fields)

    # Test helpers
    def field_id(self, name: str) -> Optional[str]:
        for meta in self.fields:
            if meta.name == name:
                return meta.field_id
        return None

    def column(self, name: str) -> List[Any]:
        field_id = self.field_id(name)
        return [values.get(field_id) for values in self.records.values()]


class InMemoryDatastore(DatastoreInterface):
    def __init__(self):
        self.tables: Dict[str, InMemoryTable] = {}
        self._ids = count(1)
        self.fail_create_table = False

    async def list_tables(self) -> List[TableMeta]:
        return [TableMeta(table.table_id, table.name) for table in self.tables.values()]

    async def create_table(self, name: str) -> str:
        if self.fail_create_table:
            raise RuntimeError(f"create_table rejected: {name}")
        table_id = f"tbl{next(self._ids):06d}"
        self.tables[table_id] = InMemoryTable(table_id, name)
        return table_id

    async def get_table(self, table_id: str) -> InMemoryTable:
        return self.tables[table_id]

    def table_named(self, name: str) -> Optional[InMemoryTable]:
        for table in self.tables.values():
            if table.name == name:
                return table
        return None
