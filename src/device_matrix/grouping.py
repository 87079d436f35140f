"""Row-span runs for visually merging repeated device cells.

A run is a maximal block of *consecutive* rows whose merge columns hold the
same values.  Grouping is positional: it follows whatever order the rows are
in, so a different sort gives different runs.  Spans are computed per
request and never stored on the rows.
"""

import logging
from typing import Any, Iterable, Mapping, Sequence

from device_matrix.columns import COLUMN_SPECS, MERGE_COLUMNS, Column, resolve_column

logger = logging.getLogger(__name__)

# Control characters that never occur in device data.
FIELD_SEPARATOR: str = "\x1e"
ARRAY_SEPARATOR: str = "\x1f"


def _normalize(value: Any, column: Column) -> str:
    kind = COLUMN_SPECS[column].kind
    if kind == "array":
        return ARRAY_SEPARATOR.join(sorted(str(v) for v in (value or [])))
    if kind == "boolean":
        return "true" if value else "false"
    return "" if value is None else str(value)


def build_merge_key(row: Mapping[str, Any], merge_columns: Sequence[Column] = MERGE_COLUMNS) -> str:
    """Key identifying the merge-column values of *row*."""
    return FIELD_SEPARATOR.join(_normalize(row.get(c.value), c) for c in merge_columns)


def _resolve_all(columns: Iterable[Column | str]) -> list[Column]:
    resolved: list[Column] = []
    for key in columns:
        col = resolve_column(key)
        if col is None:
            raise ValueError(f"Unknown column: {key!r}")
        resolved.append(col)
    return resolved


def merge_enabled(
    visible_columns: Iterable[Column | str] | None,
    merge_columns: Sequence[Column] = MERGE_COLUMNS,
) -> bool:
    """Whether spanning applies for the given visible column set.

    When every visible column is a merge column the whole table would collapse
    into one block, so spanning is switched off.  ``None`` means "all columns
    visible".  Keys that name no column, such as a table's action or id
    column, are skipped.
    """
    if visible_columns is None:
        return True
    visible: set[Column] = set()
    for key in visible_columns:
        col = resolve_column(key)
        if col is None:
            logger.debug("ignoring unknown visible column %r", key)
            continue
        visible.add(col)
    return not visible.issubset(set(merge_columns))


def iter_runs(
    rows: Sequence[Mapping[str, Any]],
    merge_columns: Sequence[Column] = MERGE_COLUMNS,
) -> Iterable[tuple[int, int]]:
    """Yield ``(start, stop)`` index pairs of consecutive equal-key runs."""
    keys = [build_merge_key(r, merge_columns) for r in rows]
    i = 0
    while i < len(keys):
        j = i + 1
        while j < len(keys) and keys[j] == keys[i]:
            j += 1
        yield i, j
        i = j


def compute_spans(
    rows: Sequence[Mapping[str, Any]],
    merge_columns: Iterable[Column | str] = MERGE_COLUMNS,
    visible_columns: Iterable[Column | str] | None = None,
) -> list[int]:
    """Span value for every row.

    The first row of a run carries the run length, the rest carry ``0``.  When
    spanning is disabled (see :func:`merge_enabled`) every row gets ``1``.
    """
    cols = _resolve_all(merge_columns)
    if not cols or not merge_enabled(visible_columns, cols):
        return [1] * len(rows)
    spans = [0] * len(rows)
    for start, stop in iter_runs(rows, cols):
        spans[start] = stop - start
    return spans


def build_merge_ranges(
    rows: Sequence[Mapping[str, Any]],
    start_row: int,
    column_indexes: Sequence[int],
    merge_columns: Sequence[Column] = MERGE_COLUMNS,
) -> list[tuple[int, int, int, int]]:
    """Sheet merge ranges ``(first_row, col, last_row, col)`` for runs longer than one.

    Args:
        rows: Rows in sheet order.
        start_row: Sheet row index of the first data row.
        column_indexes: Sheet column indexes holding merge columns.
        merge_columns: Columns that define the run key.
    """
    ranges: list[tuple[int, int, int, int]] = []
    for start, stop in iter_runs(rows, merge_columns):
        if stop - start < 2:
            continue
        for c in column_indexes:
            ranges.append((start_row + start, c, start_row + stop - 1, c))
    return ranges


# ---------------------------------------------------------------------------
# Device-info grouping order
# ---------------------------------------------------------------------------

def _nullable(value: Any) -> tuple[int, str]:
    return (0, "") if value is None else (1, str(value))


def _device_info_key(row: Mapping[str, Any]) -> tuple:
    caps = list(row.get("ewelink_capabilities") or [])
    return (
        _nullable(row.get("device_model")),
        _nullable(row.get("device_brand")),
        _nullable(row.get("device_category")),
        (len(caps), caps),
        _nullable(row.get("row_id")),
    )


def sort_by_device_info_group(rows: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Order rows so identical device information ends up adjacent.

    Keys: model, brand, category, capability list (shorter first, then
    element-wise), row id.  ``None`` sorts first.
    """
    return sorted(rows, key=_device_info_key)


def prepare_rows_for_merge(
    rows: Sequence[Mapping[str, Any]],
    has_custom_sort: bool,
    merge_columns: Sequence[Column] = MERGE_COLUMNS,
) -> tuple[list[dict[str, Any]], list[int]]:
    """Copy *rows* into merge order and compute their spans.

    Without a user sort the rows are first put into device-info order so
    equal devices merge; with one, the user's order is kept.
    """
    ordered = list(rows) if has_custom_sort else sort_by_device_info_group(rows)
    copies = [dict(r) for r in ordered]
    return copies, compute_spans(copies, merge_columns)
