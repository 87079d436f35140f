"""Pydantic models for the source payload and the engine request/response contract.

Source models mirror the camelCase JSON published for the compatibility
matrix.  Request models accept both camelCase and snake_case keys so the same
payload can come from a browser front-end or from Python callers.
"""

from typing import Any, TypedDict

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from device_matrix.config import DEFAULT_PAGE, DEFAULT_PAGE_SIZE


def _drop_nulls(data: Any) -> Any:
    # Explicit nulls fall back to field defaults, so absent and null lists
    # both become empty lists.
    if isinstance(data, dict):
        return {k: v for k, v in data.items() if v is not None}
    return data


class _SourceModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        return _drop_nulls(data)


# ---------------------------------------------------------------------------
# Source payload
# ---------------------------------------------------------------------------

class DeviceInfo(_SourceModel):
    model: str
    # Older payloads call the device source "type".
    source: str | None = Field(default=None, validation_alias=AliasChoices("source", "type"))
    brand: str | None = None
    category: str | None = None


class EwelinkCloud(_SourceModel):
    is_supported: bool = False
    capabilities: list[str] = []


class ThirdPartyAppSupport(_SourceModel):
    app_name: str
    supported_clusters: list[str] = []
    notes: list[str] = []


class MatterDevice(_SourceModel):
    device_type: str | None = None
    protocol_version: str | None = None
    supported_clusters: list[str] = []
    unsupported_clusters: list[str] = []
    third_party_app_support: list[ThirdPartyAppSupport] = []


class MatterBridge(_SourceModel):
    is_supported: bool = False
    devices: list[MatterDevice] = []


class HomeAssistant(_SourceModel):
    is_supported: bool = False
    entities: list[str] = []


class RawDevice(_SourceModel):
    """One nested device record as published in the source JSON."""

    device_info: DeviceInfo
    ewelink_cloud: EwelinkCloud | None = None
    matter_bridge: MatterBridge | None = None
    home_assistant: HomeAssistant | None = None


class SourcePayload(_SourceModel):
    """Top-level source document: ``{updateTime, supportDevices}``."""

    update_time: float = 0
    support_devices: list[RawDevice] = []


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------

class FlatRow(TypedDict):
    """One renderable table row: a device, or one of its Matter sub-devices."""

    row_id: str
    parent_id: str
    is_group_head: bool
    device_info_group_id: str
    device_info_group_size: int
    device_info_group_index: int

    device_model: str
    device_source: str | None
    device_brand: str | None
    device_category: str | None

    ewelink_supported: bool
    ewelink_capabilities: list[str]

    matter_supported: bool
    matter_device_type: str | None
    matter_protocol_version: str | None
    matter_supported_clusters: list[str]
    matter_unsupported_clusters: list[str]
    apple_supported: list[str]
    apple_notes: list[str]
    google_supported: list[str]
    google_notes: list[str]
    smart_things_supported: list[str]
    smart_things_notes: list[str]
    alexa_supported: list[str]
    alexa_notes: list[str]

    home_assistant_supported: bool
    home_assistant_entities: list[str]


# ---------------------------------------------------------------------------
# Requests / responses
# ---------------------------------------------------------------------------

class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        return _drop_nulls(data)


EnumFilters = dict[str, list[Any]]


class SortSpec(_RequestModel):
    """One sort key.  ``id``/``desc`` are accepted as aliases."""

    column: str = Field(validation_alias=AliasChoices("column", "id", "field"))
    descending: bool = Field(default=False, validation_alias=AliasChoices("descending", "desc"))

    @field_validator("descending", mode="before")
    @classmethod
    def sort_direction(cls, value: Any) -> Any:
        # "asc" and "desc" are directions; other strings ("true", "0") parse as booleans.
        if isinstance(value, str):
            direction = value.strip().lower()
            if direction in ("", "asc", "desc"):
                return direction == "desc"
            return value
        return bool(value) if value is not None else False


class DistinctInput(_RequestModel):
    """Search text and column filters shared by queries and facet requests."""

    q: str | None = None
    enums: EnumFilters = {}

    @field_validator("enums", mode="before")
    @classmethod
    def normalize_enums(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {k: [] if v is None else list(v) if isinstance(v, (list, tuple, set)) else [v] for k, v in value.items()}
        return value


class QueryInput(DistinctInput):
    """A full page request.

    ``page`` is 1-based.  Non-positive or missing ``page``/``page_size`` are
    normalised by the engine rather than rejected.
    """

    sort: list[SortSpec] = []
    page: int | None = DEFAULT_PAGE
    page_size: int | None = DEFAULT_PAGE_SIZE
    visible_columns: list[str] | None = None

    @field_validator("page", "page_size", mode="before")
    @classmethod
    def lenient_int(cls, value: Any) -> Any:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None


class EnumOption(TypedDict):
    value: Any
    count: int


EnumOptionMap = dict[str, list[EnumOption]]


class QueryResult(TypedDict):
    rows: list[dict[str, Any]]
    total: int
    update_time: float
    spans: list[int]


class ExportColumn(_RequestModel):
    """Node of the export header tree; leaves carry a column ``key``."""

    title: str = ""
    key: str | None = None
    children: list["ExportColumn"] = []

    @property
    def is_leaf(self) -> bool:
        return not self.children
