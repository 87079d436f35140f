"""Column registry for the device compatibility matrix.

Every column the engine knows about is declared exactly once here, together
with its value kind and the features it takes part in (search, filtering,
facets, merge runs, export).  The filter, facet, sort, search and export code
all read this registry instead of keeping their own key maps.

Column keys are snake_case.  :func:`resolve_column` also accepts the
camelCase spelling used by browser front-ends (``"matterSupported"``) and is
case-insensitive.
"""

from enum import Enum
from typing import Literal, NamedTuple

import polars as pl

REGISTRY_VERSION: int = 1

ValueKind = Literal["scalar", "array", "boolean"]


class Column(str, Enum):
    """Identifiers of every :class:`FlatRow` attribute exposed as a column."""

    DEVICE_MODEL = "device_model"
    DEVICE_SOURCE = "device_source"
    DEVICE_BRAND = "device_brand"
    DEVICE_CATEGORY = "device_category"

    EWELINK_SUPPORTED = "ewelink_supported"
    EWELINK_CAPABILITIES = "ewelink_capabilities"

    MATTER_SUPPORTED = "matter_supported"
    MATTER_DEVICE_TYPE = "matter_device_type"
    MATTER_PROTOCOL_VERSION = "matter_protocol_version"
    MATTER_SUPPORTED_CLUSTERS = "matter_supported_clusters"
    MATTER_UNSUPPORTED_CLUSTERS = "matter_unsupported_clusters"

    APPLE_SUPPORTED = "apple_supported"
    APPLE_NOTES = "apple_notes"
    GOOGLE_SUPPORTED = "google_supported"
    GOOGLE_NOTES = "google_notes"
    SMART_THINGS_SUPPORTED = "smart_things_supported"
    SMART_THINGS_NOTES = "smart_things_notes"
    ALEXA_SUPPORTED = "alexa_supported"
    ALEXA_NOTES = "alexa_notes"

    HOME_ASSISTANT_SUPPORTED = "home_assistant_supported"
    HOME_ASSISTANT_ENTITIES = "home_assistant_entities"

    def __str__(self) -> str:
        return self.value


class ColumnSpec(NamedTuple):
    """Static description of one column."""

    column: Column
    kind: ValueKind
    title: str
    searchable: bool = True
    filterable: bool = False
    facet: bool = False
    mergeable: bool = False
    exportable: bool = True

    @property
    def key(self) -> str:
        return self.column.value

    @property
    def dtype(self) -> pl.DataType:
        """Polars dtype used for this column in the row store."""
        if self.kind == "array":
            return pl.List(pl.String)
        if self.kind == "boolean":
            return pl.Boolean()
        return pl.String()


_SPECS: tuple[ColumnSpec, ...] = (
    ColumnSpec(Column.DEVICE_MODEL, "scalar", "Model", filterable=True, facet=True, mergeable=True),
    ColumnSpec(Column.DEVICE_SOURCE, "scalar", "Type", filterable=True, facet=True, mergeable=True),
    ColumnSpec(Column.DEVICE_BRAND, "scalar", "Brand", filterable=True, facet=True, mergeable=True),
    ColumnSpec(Column.DEVICE_CATEGORY, "scalar", "Category", filterable=True, facet=True, mergeable=True),
    ColumnSpec(Column.EWELINK_SUPPORTED, "boolean", "Sync to eWeLink", filterable=True, facet=True, mergeable=True),
    ColumnSpec(Column.EWELINK_CAPABILITIES, "array", "Capabilities of eWeLink", filterable=True, facet=True, mergeable=True),
    ColumnSpec(Column.MATTER_SUPPORTED, "boolean", "Sync to Matter", filterable=True, facet=True),
    ColumnSpec(Column.MATTER_DEVICE_TYPE, "scalar", "Matter Device Type", filterable=True, facet=True),
    ColumnSpec(Column.MATTER_PROTOCOL_VERSION, "scalar", "Matter Version", filterable=True, facet=True),
    ColumnSpec(Column.MATTER_SUPPORTED_CLUSTERS, "array", "Cluster", filterable=True, facet=True),
    ColumnSpec(Column.MATTER_UNSUPPORTED_CLUSTERS, "array", "Unsupported Cluster", exportable=False),
    ColumnSpec(Column.APPLE_SUPPORTED, "array", "Apple Home", filterable=True, facet=True),
    ColumnSpec(Column.APPLE_NOTES, "array", "Apple Home Notes", exportable=False),
    ColumnSpec(Column.GOOGLE_SUPPORTED, "array", "Google Home", filterable=True, facet=True),
    ColumnSpec(Column.GOOGLE_NOTES, "array", "Google Home Notes", exportable=False),
    ColumnSpec(Column.SMART_THINGS_SUPPORTED, "array", "SmartThings", filterable=True, facet=True),
    ColumnSpec(Column.SMART_THINGS_NOTES, "array", "SmartThings Notes", exportable=False),
    ColumnSpec(Column.ALEXA_SUPPORTED, "array", "Alexa", filterable=True, facet=True),
    ColumnSpec(Column.ALEXA_NOTES, "array", "Alexa Notes", exportable=False),
    ColumnSpec(Column.HOME_ASSISTANT_SUPPORTED, "boolean", "Sync to HA", filterable=True, facet=True),
    ColumnSpec(Column.HOME_ASSISTANT_ENTITIES, "array", "Entities", filterable=True, facet=True),
)

COLUMN_SPECS: dict[Column, ColumnSpec] = {spec.column: spec for spec in _SPECS}

FILTER_COLUMNS: tuple[Column, ...] = tuple(s.column for s in _SPECS if s.filterable)
FACET_COLUMNS: tuple[Column, ...] = tuple(s.column for s in _SPECS if s.facet)
MERGE_COLUMNS: tuple[Column, ...] = tuple(s.column for s in _SPECS if s.mergeable)
SEARCH_COLUMNS: tuple[Column, ...] = tuple(s.column for s in _SPECS if s.searchable)

# Identity / bookkeeping fields of a FlatRow that are not user-facing columns.
IDENTITY_SCHEMA: dict[str, pl.DataType] = {
    "row_id": pl.String(),
    "parent_id": pl.String(),
    "is_group_head": pl.Boolean(),
    "device_info_group_id": pl.String(),
    "device_info_group_size": pl.Int64(),
    "device_info_group_index": pl.Int64(),
}


def _camel_to_snake(name: str) -> str:
    out: list[str] = []
    for ch in name:
        if ch.isupper() and out:
            out.append("_")
        out.append(ch.lower())
    return "".join(out)


_LOOKUP: dict[str, Column] = {}
for _col in Column:
    _LOOKUP[_col.value] = _col
    _LOOKUP[_col.value.replace("_", "")] = _col
# "smartThingsSupported" normalises to "smart_things_supported" already;
# keep the single-word spelling seen in older payloads as well.
_LOOKUP["smartthings_supported"] = Column.SMART_THINGS_SUPPORTED
_LOOKUP["smartthings_notes"] = Column.SMART_THINGS_NOTES
_LOOKUP["device_type"] = Column.DEVICE_SOURCE


def resolve_column(key: "str | Column") -> Column | None:
    """Resolve *key* to a :class:`Column`, or ``None`` if it is unknown.

    Accepts the enum itself, snake_case keys and camelCase keys, matched
    case-insensitively::

        resolve_column("matterSupported")  -> Column.MATTER_SUPPORTED
        resolve_column("DEVICE_BRAND")     -> Column.DEVICE_BRAND
    """
    if isinstance(key, Column):
        return key
    if not isinstance(key, str) or not key:
        return None
    snake = _camel_to_snake(key) if not key.isupper() else key.lower()
    return _LOOKUP.get(snake) or _LOOKUP.get(snake.replace("_", ""))


def column_spec(key: "str | Column") -> ColumnSpec | None:
    """Return the :class:`ColumnSpec` for *key*, or ``None`` if unknown."""
    col = resolve_column(key)
    return COLUMN_SPECS[col] if col is not None else None


def row_schema() -> dict[str, pl.DataType]:
    """Full polars schema of the row store (identity fields first)."""
    schema: dict[str, pl.DataType] = dict(IDENTITY_SCHEMA)
    for spec in _SPECS:
        schema[spec.key] = spec.dtype
    return schema
