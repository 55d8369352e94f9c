"""Reconciles a table's columns against the logical video schema."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from common_py.logging_config import configure_logging
from aweme_sync.config_loader import config
from aweme_sync.datastore.interface import FieldMeta, TableInterface
from aweme_sync.models.schema import VIDEO_SCHEMA, FieldSpec
from aweme_sync.services.exceptions import SchemaError

logger = configure_logging("aweme-sync:field_mapper", log_level=config.LOG_LEVEL)


@dataclass
class FieldMap:
    """Column name -> column id for one table instance, valid for a single run."""

    ids: Dict[str, str] = field(default_factory=dict)
    unavailable: List[str] = field(default_factory=list)

    def get(self, name: str) -> Optional[str]:
        return self.ids.get(name)

    def id_for(self, spec: FieldSpec) -> Optional[str]:
        return self.ids.get(spec.name)

    def __contains__(self, name: str) -> bool:
        return name in self.ids

    def resolve_values(self, values: Dict[str, object], schema: Sequence[FieldSpec] = VIDEO_SCHEMA) -> Dict[str, object]:
        """Translate {logical key: value} into {column id: value}, dropping unresolved columns."""
        resolved = {}
        for spec in schema:
            if spec.key not in values:
                continue
            field_id = self.ids.get(spec.name)
            if field_id:
                resolved[field_id] = values[spec.key]
        return resolved


def _by_name(fields: List[FieldMeta]) -> Dict[str, str]:
    return {meta.name: meta.field_id for meta in fields}


async def ensure_fields(
    table: TableInterface,
    schema: Sequence[FieldSpec] = VIDEO_SCHEMA,
    is_new_table: bool = False,
) -> FieldMap:
    """
    Make sure every logical column exists and return the resulting FieldMap.

    On a freshly created table the default primary column is renamed to the primary
    logical column. Columns that cannot be created are left out of the map; their
    values are dropped from all writes for this run.
    """
    fields = await table.list_fields()
    ids = _by_name(fields)
    unavailable: List[str] = []

    primary_spec = next((spec for spec in schema if spec.primary), None)
    if is_new_table and primary_spec and primary_spec.name not in ids:
        primary = next((meta for meta in fields if meta.is_primary), None)
        if primary is not None:
            try:
                await table.rename_field(primary.field_id, primary_spec.name)
                ids.pop(primary.name, None)
                ids[primary_spec.name] = primary.field_id
                logger.info("Renamed primary column", table=table.table_id,
                            old=primary.name, new=primary_spec.name)
            except Exception as e:
                # The id column stays missing for this run
                logger.error("Failed to rename primary column", table=table.table_id,
                             field=primary_spec.name, error=str(e))
                unavailable.append(primary_spec.name)

    needs_reread = False
    for spec in schema:
        if spec.name in ids or spec.name in unavailable:
            continue
        try:
            field_id = await table.add_field(spec.name, spec.field_type)
        except Exception as e:
            error = SchemaError(f"Could not create column {spec.name}: {e}",
                                field_name=spec.name, table=table.table_id)
            logger.warning("Column unavailable, omitting from writes", table=table.table_id,
                           field=spec.name, error_code=error.error_code.value, error=str(e))
            unavailable.append(spec.name)
            continue
        if field_id:
            ids[spec.name] = field_id
        else:
            needs_reread = True
        logger.info("Created column", table=table.table_id, field=spec.name, type=spec.field_type.name)

    if needs_reread:
        refreshed = _by_name(await table.list_fields())
        for spec in schema:
            if spec.name in refreshed:
                ids.setdefault(spec.name, refreshed[spec.name])
            elif spec.name not in unavailable:
                logger.warning("Created column missing from schema listing",
                               table=table.table_id, field=spec.name)
                unavailable.append(spec.name)

    wanted = {spec.name for spec in schema}
    return FieldMap(ids={name: fid for name, fid in ids.items() if name in wanted}, unavailable=unavailable)
