from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from aweme_sync.models.schema import FieldType


@dataclass(frozen=True)
class TableMeta:
    table_id: str
    name: str


@dataclass(frozen=True)
class FieldMeta:
    field_id: str
    name: str
    field_type: FieldType
    is_primary: bool = False


@dataclass
class RecordPage:
    """One page of row ids plus the cursor for the next page."""

    record_ids: List[str]
    page_token: Optional[str] = None
    has_more: bool = False
    total: Optional[int] = None


@dataclass
class RecordUpdate:
    record_id: str
    fields: Dict[str, Any] = field(default_factory=dict)


class TableInterface(ABC):
    """Abstract view of one destination table"""

    @property
    @abstractmethod
    def table_id(self) -> str:
        pass

    @abstractmethod
    async def get_name(self) -> str:
        pass

    @abstractmethod
    async def list_fields(self) -> List[FieldMeta]:
        pass

    @abstractmethod
    async def add_field(self, name: str, field_type: FieldType) -> Optional[str]:
        """
        Create a column.

        Returns:
            The new column id, or None when the backend does not report it
            (callers re-read the schema in that case)
        """
        pass

    @abstractmethod
    async def rename_field(self, field_id: str, name: str) -> None:
        pass

    @abstractmethod
    async def get_records(self, page_size: int, page_token: Optional[str] = None) -> RecordPage:
        """
        Fetch one page of row ids.

        Args:
            page_size: Maximum rows per page
            page_token: Cursor returned by the previous page, None for the first page
        """
        pass

    @abstractmethod
    async def list_record_ids(self) -> List[str]:
        pass

    @abstractmethod
    async def get_cell_string(self, field_id: str, record_id: str) -> Optional[str]:
        pass

    @abstractmethod
    async def get_cell_value(self, field_id: str, record_id: str) -> Any:
        pass

    @abstractmethod
    async def add_records(self, records: List[Dict[str, Any]]) -> List[str]:
        """Insert rows given as {field_id: value} maps, returning the new row ids"""
        pass

    @abstractmethod
    async def set_records(self, updates: List[RecordUpdate]) -> None:
        pass

    @abstractmethod
    async def set_record(self, record_id: str, fields: Dict[str, Any]) -> None:
        pass


class DatastoreInterface(ABC):
    """Abstract destination datastore holding many tables"""

    @abstractmethod
    async def list_tables(self) -> List[TableMeta]:
        pass

    @abstractmethod
    async def create_table(self, name: str) -> str:
        pass

    @abstractmethod
    async def get_table(self, table_id: str) -> TableInterface:
        pass

    async def get_table_by_name(self, name: str) -> Optional[TableInterface]:
        for meta in await self.list_tables():
            if meta.name == name:
                return await self.get_table(meta.table_id)
        return None
