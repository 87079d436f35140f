"""Spreadsheet export of the compatibility matrix.

Layout of the single worksheet:

* row 0 -- title, merged across every leaf column;
* header rows -- one per level of the :class:`ExportColumn` tree; parents
  are merged over their leaves, shallow leaves are merged down to the last
  header row;
* data rows -- one per flat row, rendered with presentation labels;
  consecutive rows with equal device information are merged in the merge
  columns;
* an autofilter on the last header row.

The presentation labels (``√``/``×``, "Bridge Not Yet Adapted", ...) live
only here.  The engine itself keeps the raw values.
"""

import io
import logging
import time
from typing import Any, Iterable, Mapping, Sequence

import xlsxwriter

from device_matrix.columns import COLUMN_SPECS, MERGE_COLUMNS, Column, resolve_column
from device_matrix.config import EXPORT_SHEET_NAME, EXPORT_TITLE
from device_matrix.grouping import build_merge_ranges, merge_enabled
from device_matrix.models import ExportColumn

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"
NO_CAPABILITIES = "No Supported Capabilities"
BRIDGE_NOT_ADAPTED = "Bridge Not Yet Adapted"
NO_MATTER_DEVICE_TYPE = "No Matching Matter Device Type"
CHECK = "√"
CROSS = "×"


def _leaf(column: Column) -> ExportColumn:
    return ExportColumn(title=COLUMN_SPECS[column].title, key=column.value)


DEFAULT_EXPORT_COLUMNS: list[ExportColumn] = [
    ExportColumn(title="Device Info", children=[
        _leaf(Column.DEVICE_MODEL),
        _leaf(Column.DEVICE_SOURCE),
        _leaf(Column.DEVICE_BRAND),
        _leaf(Column.DEVICE_CATEGORY),
    ]),
    ExportColumn(title="eWeLink Cloud", children=[
        _leaf(Column.EWELINK_SUPPORTED),
        _leaf(Column.EWELINK_CAPABILITIES),
    ]),
    ExportColumn(title="Matter", children=[
        _leaf(Column.MATTER_SUPPORTED),
        _leaf(Column.MATTER_DEVICE_TYPE),
        _leaf(Column.MATTER_SUPPORTED_CLUSTERS),
        _leaf(Column.MATTER_PROTOCOL_VERSION),
        _leaf(Column.APPLE_SUPPORTED),
        _leaf(Column.GOOGLE_SUPPORTED),
        _leaf(Column.SMART_THINGS_SUPPORTED),
        _leaf(Column.ALEXA_SUPPORTED),
    ]),
    ExportColumn(title="Home Assistant", children=[
        _leaf(Column.HOME_ASSISTANT_SUPPORTED),
        _leaf(Column.HOME_ASSISTANT_ENTITIES),
    ]),
]


# ---------------------------------------------------------------------------
# Cell labels
# ---------------------------------------------------------------------------

def _ewelink_capabilities_label(row: Mapping[str, Any]) -> str:
    caps = row.get("ewelink_capabilities") or []
    if caps:
        return "\n".join(caps)
    return NO_CAPABILITIES if row.get("ewelink_supported") else NOT_AVAILABLE


def _cluster_label(row: Mapping[str, Any]) -> str:
    supported = row.get("matter_supported_clusters") or []
    unsupported = row.get("matter_unsupported_clusters") or []
    if not supported and not unsupported:
        return BRIDGE_NOT_ADAPTED
    return "\n".join([f"{CHECK}{c}" for c in supported] + [f"{CROSS}{c}" for c in unsupported])


def _ecosystem_label(row: Mapping[str, Any], column: Column) -> str:
    supported = row.get(column.value) or []
    if supported:
        return "\n".join(supported)
    # Same empty list, two readings: a Matter device type exists but the
    # bridge has not mapped it, or there is no Matter device type at all.
    return BRIDGE_NOT_ADAPTED if row.get("matter_device_type") else NO_MATTER_DEVICE_TYPE


_ECOSYSTEM_COLUMNS = {
    Column.APPLE_SUPPORTED,
    Column.GOOGLE_SUPPORTED,
    Column.SMART_THINGS_SUPPORTED,
    Column.ALEXA_SUPPORTED,
}


def cell_label(row: Mapping[str, Any], column: Column) -> str:
    """Presentation text of one cell."""
    value = row.get(column.value)
    if column == Column.DEVICE_BRAND:
        return value or NOT_AVAILABLE
    if column == Column.EWELINK_CAPABILITIES:
        return _ewelink_capabilities_label(row)
    if column == Column.MATTER_SUPPORTED_CLUSTERS:
        return _cluster_label(row)
    if column in (Column.MATTER_DEVICE_TYPE, Column.MATTER_PROTOCOL_VERSION):
        return value or NO_MATTER_DEVICE_TYPE
    if column in _ECOSYSTEM_COLUMNS:
        return _ecosystem_label(row, column)
    if column == Column.HOME_ASSISTANT_ENTITIES:
        return "\n".join(value) if value else NOT_AVAILABLE

    kind = COLUMN_SPECS[column].kind
    if kind == "boolean":
        return CHECK if value else CROSS
    if kind == "array":
        return "\n".join(value or [])
    return "" if value is None else str(value)


# ---------------------------------------------------------------------------
# Header tree
# ---------------------------------------------------------------------------

def _depth(columns: Sequence[ExportColumn], level: int = 1) -> int:
    deepest = level
    for col in columns:
        if not col.is_leaf:
            deepest = max(deepest, _depth(col.children, level + 1))
    return deepest


def build_header_rows(
    columns: Sequence[ExportColumn],
) -> tuple[list[list[str]], list[tuple[int, int, int, int]], list[Column]]:
    """Lay out the header tree.

    Returns:
        ``(rows, merges, leaves)``: the header text grid, merge ranges as
        ``(first_row, first_col, last_row, last_col)`` relative to the first
        header row, and the leaf columns in sheet order.

    Raises:
        ValueError: If a leaf names an unknown column.
    """
    depth = _depth(columns) if columns else 0
    leaves: list[Column] = []
    titles: list[tuple[int, int, str]] = []
    merges: list[tuple[int, int, int, int]] = []

    def fill(cols: Sequence[ExportColumn], level: int) -> None:
        for col in cols:
            if not col.is_leaf:
                start = len(leaves)
                fill(col.children, level + 1)
                end = len(leaves) - 1
                titles.append((level, start, col.title))
                if end > start:
                    merges.append((level, start, level, end))
                continue
            resolved = resolve_column(col.key or "")
            if resolved is None:
                raise ValueError(f"Unknown export column: {col.key!r}")
            titles.append((level, len(leaves), col.title or COLUMN_SPECS[resolved].title))
            if level < depth - 1:
                merges.append((level, len(leaves), depth - 1, len(leaves)))
            leaves.append(resolved)

    fill(columns, 0)
    grid = [[""] * len(leaves) for _ in range(depth)]
    for level, index, title in titles:
        grid[level][index] = title
    return grid, merges, leaves


# ---------------------------------------------------------------------------
# Workbook
# ---------------------------------------------------------------------------

_GROUP_COLORS: dict[str, str] = {
    "device": "#FFE699",
    "ewelink": "#C5E0B4",
    "matter": "#E2F0D9",
    "home_assistant": "#D5FEE9",
}


def _group_of(column: Column) -> str:
    if column.value.startswith("device_"):
        return "device"
    if column.value.startswith("ewelink_"):
        return "ewelink"
    if column.value.startswith("home_assistant_"):
        return "home_assistant"
    return "matter"


def build_export_buffer(
    rows: Sequence[Mapping[str, Any]],
    columns: Iterable[ExportColumn | Mapping[str, Any]] | None = None,
    title: str = EXPORT_TITLE,
) -> bytes:
    """Render *rows* to an ``.xlsx`` file in memory.

    Args:
        rows: Flat rows in the order they should appear.
        columns: Header tree; defaults to :data:`DEFAULT_EXPORT_COLUMNS`.
            Plain dicts are validated into :class:`ExportColumn`.
        title: Text of the title row.

    Returns:
        The workbook bytes.
    """
    t0 = time.perf_counter()
    tree = [c if isinstance(c, ExportColumn) else ExportColumn.model_validate(c) for c in (DEFAULT_EXPORT_COLUMNS if columns is None else columns)]
    header_grid, header_merges, leaves = build_header_rows(tree)
    if not leaves:
        raise ValueError("Export needs at least one leaf column")

    buf = io.BytesIO()
    workbook = xlsxwriter.Workbook(buf, {"in_memory": True})
    sheet = workbook.add_worksheet(EXPORT_SHEET_NAME)

    title_fmt = workbook.add_format({"bold": True, "font_size": 14, "align": "center", "valign": "vcenter", "bg_color": "#A6A6A6"})
    top_fmt = workbook.add_format({"bold": True, "align": "center", "valign": "vcenter", "border": 1, "bg_color": "#A9D18E"})
    group_fmts = {
        name: workbook.add_format({"bold": True, "align": "center", "valign": "vcenter", "text_wrap": True, "border": 1, "bg_color": color})
        for name, color in _GROUP_COLORS.items()
    }
    data_fmt = workbook.add_format({"align": "center", "valign": "vcenter", "text_wrap": True, "border": 1})

    last_col = len(leaves) - 1
    if last_col > 0:
        sheet.merge_range(0, 0, 0, last_col, title, title_fmt)
    else:
        sheet.write_string(0, 0, title, title_fmt)
    sheet.set_row(0, 23.4)

    # Header rows start below the title.
    header_offset = 1
    merged_cells: set[tuple[int, int]] = set()
    for r0, c0, r1, c1 in header_merges:
        level_fmt = top_fmt if r0 == 0 and len(header_grid) > 1 else group_fmts[_group_of(leaves[c0])]
        sheet.merge_range(r0 + header_offset, c0, r1 + header_offset, c1, header_grid[r0][c0], level_fmt)
        merged_cells.update((r, c) for r in range(r0, r1 + 1) for c in range(c0, c1 + 1))
    for r, header_row in enumerate(header_grid):
        for c, text in enumerate(header_row):
            if (r, c) in merged_cells:
                continue
            fmt = top_fmt if r == 0 and len(header_grid) > 1 else group_fmts[_group_of(leaves[c])]
            sheet.write_string(r + header_offset, c, text, fmt)
    last_header_row = header_offset + len(header_grid) - 1
    sheet.set_row(last_header_row, 50.4)

    data_start = last_header_row + 1
    for r, row in enumerate(rows):
        for c, column in enumerate(leaves):
            sheet.write_string(data_start + r, c, cell_label(row, column), data_fmt)

    merge_indexes = [i for i, col in enumerate(leaves) if col in MERGE_COLUMNS]
    if merge_indexes and merge_enabled(leaves):
        for r0, c, r1, _ in build_merge_ranges(rows, data_start, merge_indexes):
            sheet.merge_range(r0, c, r1, c, cell_label(rows[r0 - data_start], leaves[c]), data_fmt)

    sheet.autofilter(last_header_row, 0, last_header_row + len(rows), last_col)
    sheet.set_column(0, last_col, 22)
    workbook.close()

    data = buf.getvalue()
    logger.info(
        "export: %d rows x %d columns, %d bytes (%.1fms)",
        len(rows), len(leaves), len(data), (time.perf_counter() - t0) * 1000,
    )
    return data
