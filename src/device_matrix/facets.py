"""Per-column facets: distinct values with counts under the other filters.

For column X the counts are taken over rows that pass every active filter
*except* the one on X.  Selecting a value in X therefore narrows the options
shown for every other column while X keeps listing its alternatives.

Counts are recomputed from scratch on every call.
"""

import logging
import time
from typing import Any, Iterable, Mapping

import polars as pl

from device_matrix.columns import COLUMN_SPECS, FACET_COLUMNS, Column, resolve_column
from device_matrix.filters import apply_filters
from device_matrix.models import EnumOption, EnumOptionMap

logger = logging.getLogger(__name__)


def count_values(frame: pl.DataFrame, column: Column) -> list[EnumOption]:
    """Count the distinct values of *column* in *frame*.

    Array columns add one per distinct element per row.  ``None`` values are
    skipped.  Ordered by descending count; ties keep first-seen order.
    """
    c = pl.col(column.value)
    if COLUMN_SPECS[column].kind == "array":
        values = frame.select(c.list.unique(maintain_order=True).explode().alias("value"))
    else:
        values = frame.select(c.alias("value"))

    counts = (
        values.drop_nulls("value")
        .group_by("value", maintain_order=True)
        .len(name="count")
        .sort("count", descending=True, maintain_order=True)
    )
    return [{"value": value, "count": count} for value, count in counts.iter_rows()]


def distinct(
    frame: pl.DataFrame,
    enums: Mapping[str, Any] | None,
    column: Column | str,
) -> list[EnumOption]:
    """Facet of one column.

    Args:
        frame: Rows to count over, already narrowed by the search text.
        enums: All active column filters; the filter on *column* is ignored.
        column: Column key or :class:`Column`.

    Raises:
        ValueError: If *column* is unknown.
    """
    col = resolve_column(column)
    if col is None:
        raise ValueError(f"Unknown column: {column!r}")
    return count_values(apply_filters(frame, enums, exclude=col), col)


def distinct_all(
    frame: pl.DataFrame,
    enums: Mapping[str, Any] | None,
    columns: Iterable[Column | str] = FACET_COLUMNS,
) -> EnumOptionMap:
    """Facets for several columns (every facet column by default)."""
    t0 = time.perf_counter()
    result: EnumOptionMap = {}
    for column in columns:
        col = resolve_column(column)
        if col is None:
            raise ValueError(f"Unknown column: {column!r}")
        result[col.value] = distinct(frame, enums, col)
    logger.debug(
        "facets for %d columns over %d rows (%.1fms)",
        len(result), frame.height, (time.perf_counter() - t0) * 1000,
    )
    return result
