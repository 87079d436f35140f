"""Column filters: accepted-value sets per column, AND-ed across columns.

Two evaluators share the same semantics:

* :func:`passes` checks one row dict in plain Python.
* :func:`build_filter_expr` builds a polars expression for whole frames;
  the engine uses this one.

Per column kind:

* **scalar** -- the row value must be in the accepted set; ``None`` and
  ``""`` fail any non-empty filter.
* **array** -- the row list must share at least one element with the
  accepted set; an empty list fails any non-empty filter.
* **boolean** -- the row flag must be in the accepted subset of
  ``{True, False}``.

An empty or missing accepted set means "no restriction".
"""

import logging
from typing import Any, Mapping

import polars as pl

from device_matrix.columns import COLUMN_SPECS, Column, resolve_column

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "1", "yes", "√"}
_FALSE_STRINGS = {"false", "0", "no", "×"}


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def normalize_filters(
    enums: Mapping[str, Any] | None,
    exclude: Column | str | None = None,
) -> dict[Column, list[Any]]:
    """Resolve filter keys against the column registry and drop no-op entries.

    Args:
        enums: Mapping of column key to accepted values.  Keys may be
            snake_case or camelCase; a scalar value is treated as a
            one-element list.
        exclude: Column whose filter should be left out (facet computation).

    Returns:
        ``{Column: accepted_values}`` holding only non-empty, filterable
        columns.  Boolean accepted values are coerced to ``bool``.
    """
    if not enums:
        return {}
    skip = resolve_column(exclude) if exclude is not None else None

    result: dict[Column, list[Any]] = {}
    for key, values in enums.items():
        col = resolve_column(key)
        if col is None or not COLUMN_SPECS[col].filterable:
            logger.debug("ignoring filter on unknown or non-filterable column %r", key)
            continue
        if col == skip:
            continue
        if values is None:
            continue
        if not isinstance(values, (list, tuple, set, frozenset)):
            values = [values]
        if COLUMN_SPECS[col].kind == "boolean":
            accepted = [b for b in (_coerce_bool(v) for v in values) if b is not None]
        else:
            accepted = [str(v) for v in values if v is not None]
        if not accepted:
            continue
        # camelCase and snake_case spellings of one column merge into one set.
        merged = result.setdefault(col, [])
        merged.extend(v for v in dict.fromkeys(accepted) if v not in merged)
    return result


# ---------------------------------------------------------------------------
# Row-at-a-time evaluation
# ---------------------------------------------------------------------------

def _column_passes(row: Mapping[str, Any], col: Column, accepted: list[Any]) -> bool:
    kind = COLUMN_SPECS[col].kind
    value = row.get(col.value)
    if kind == "array":
        if not value:
            return False
        return any(v in accepted for v in value)
    if kind == "boolean":
        return bool(value) in accepted
    if value is None or value == "":
        return False
    return value in accepted


def passes(
    row: Mapping[str, Any],
    enums: Mapping[str, Any] | None,
    exclude: Column | str | None = None,
) -> bool:
    """Return ``True`` if *row* satisfies every active column filter.

    Args:
        row: A flat row dict.
        enums: Column filters (see :func:`normalize_filters`).
        exclude: Optional column whose filter is ignored.
    """
    for col, accepted in normalize_filters(enums, exclude).items():
        if not _column_passes(row, col, accepted):
            return False
    return True


# ---------------------------------------------------------------------------
# Vectorised evaluation
# ---------------------------------------------------------------------------

def _column_expr(col: Column, accepted: list[Any]) -> pl.Expr:
    kind = COLUMN_SPECS[col].kind
    c = pl.col(col.value)
    if kind == "array":
        return c.list.eval(pl.element().is_in(accepted)).list.any().fill_null(False)
    if kind == "boolean":
        return c.fill_null(False).is_in(accepted)
    return c.is_in(accepted).fill_null(False) & c.is_not_null() & (c != "")


def build_filter_expr(
    enums: Mapping[str, Any] | None,
    exclude: Column | str | None = None,
) -> pl.Expr | None:
    """Translate column filters to one polars expression.

    Returns:
        The AND of every active column filter, or ``None`` when no filter is
        active (callers then skip filtering altogether).
    """
    exprs = [_column_expr(col, accepted) for col, accepted in normalize_filters(enums, exclude).items()]
    if not exprs:
        return None
    combined = exprs[0]
    for e in exprs[1:]:
        combined = combined & e
    return combined


def apply_filters(
    frame: pl.DataFrame,
    enums: Mapping[str, Any] | None,
    exclude: Column | str | None = None,
) -> pl.DataFrame:
    """Filter *frame* by *enums*; returns *frame* itself when nothing is active."""
    expr = build_filter_expr(enums, exclude)
    if expr is None:
        return frame
    return frame.filter(expr)
