"""Full-text search over the row store.

The index keeps one lower-cased text haystack per configured field.  Short
queries are parsed with an extended syntax and matched with zero typo
tolerance anywhere in the field; long queries fall back to plain substring
containment.  Either way a row matches when *any* configured field matches,
and results keep the store order.

Extended syntax (``|`` separates OR groups, whitespace separates AND terms)::

    term     field contains "term"
    'term    field contains "term"
    =term    field equals "term"
    ^term    field starts with "term"
    term$    field ends with "term"
    !term    field does not contain "term"
    !^term   field does not start with "term"
    !term$   field does not end with "term"

All terms of a group must hold within the *same* field.
"""

import logging
import re
import time
from typing import Any, Iterable, NamedTuple

import polars as pl

from device_matrix.columns import Column, column_spec, resolve_column
from device_matrix.config import MAX_EXTENDED_QUERY_LENGTH
from device_matrix.store import RowStore

logger = logging.getLogger(__name__)


class SearchTerm(NamedTuple):
    op: str  # "include" | "exact" | "prefix" | "suffix"
    text: str
    inverse: bool = False


# Checked in order; the first pattern that matches decides the operator.
_TERM_PATTERNS: tuple[tuple[re.Pattern[str], str, bool], ...] = (
    (re.compile(r'^="(.*)"$|^=(.*)$'), "exact", False),
    (re.compile(r"^'\"(.*)\"$|^'(.*)$"), "include", False),
    (re.compile(r'^!\^"(.*)"$|^!\^(.*)$'), "prefix", True),
    (re.compile(r'^\^"(.*)"$|^\^(.*)$'), "prefix", False),
    (re.compile(r'^!"(.*)"\$$|^!(.*)\$$'), "suffix", True),
    (re.compile(r'^"(.*)"\$$|^(.*)\$$'), "suffix", False),
    (re.compile(r'^!"(.*)"$|^!(.*)$'), "include", True),
)

# A term is a run of non-space text; double-quoted stretches may hold spaces.
_TOKEN_RE = re.compile(r'(?:[^\s"]+|"[^"]*")+')


def _parse_term(token: str) -> SearchTerm | None:
    for pattern, op, inverse in _TERM_PATTERNS:
        m = pattern.match(token)
        if m is not None:
            text = next((g for g in m.groups() if g is not None), "")
            return SearchTerm(op, text, inverse) if text else None
    return SearchTerm("include", token)


def parse_extended_query(query: str) -> list[list[SearchTerm]]:
    """Parse *query* into OR groups of AND terms.

    Empty groups and terms with an empty payload (``"'"``, ``"!"``) are
    dropped.

    Examples:
        ``"^mini"`` -> ``[[SearchTerm("prefix", "mini")]]``
        ``"zb r2 | !plug"`` -> two groups, the first with two terms.
        ``'="on/off light"'`` -> one exact term containing a space.
    """
    groups: list[list[SearchTerm]] = []
    for part in query.split("|"):
        terms = [t for t in (_parse_term(tok) for tok in _TOKEN_RE.findall(part)) if t is not None]
        if terms:
            groups.append(terms)
    return groups


def _haystack_expr(col: Column) -> pl.Expr:
    """Stringify a column the same way for every row: lists joined by ``,``."""
    spec = column_spec(col)
    expr = pl.col(col.value)
    if spec is not None and spec.kind == "array":
        expr = expr.list.join(",")
    else:
        expr = expr.cast(pl.String)
    return expr.fill_null("").str.to_lowercase().alias(col.value)


def _term_expr(field: str, term: SearchTerm) -> pl.Expr:
    hay = pl.col(field)
    if term.op == "exact":
        expr = hay == term.text
    elif term.op == "prefix":
        expr = hay.str.starts_with(term.text)
    elif term.op == "suffix":
        expr = hay.str.ends_with(term.text)
    else:
        expr = hay.str.contains(term.text, literal=True)
    return ~expr if term.inverse else expr


def _any(exprs: list[pl.Expr]) -> pl.Expr:
    combined = exprs[0]
    for e in exprs[1:]:
        combined = combined | e
    return combined


def _all(exprs: list[pl.Expr]) -> pl.Expr:
    combined = exprs[0]
    for e in exprs[1:]:
        combined = combined & e
    return combined


class SearchIndex:
    """Lower-cased text haystacks for the configured search fields of a store.

    Never updated in place: build a new index when the store reloads or the
    search fields change.
    """

    def __init__(self, store: RowStore, fields: tuple[Column, ...], haystack: pl.DataFrame) -> None:
        self.store = store
        self.fields = fields
        self._haystack = haystack

    @classmethod
    def build(cls, store: RowStore, text_fields: Iterable[Any]) -> "SearchIndex":
        """Build the index for *store* over *text_fields* (keys or :class:`Column`).

        Raises:
            ValueError: If a field is unknown or not searchable.
        """
        fields: list[Column] = []
        for raw in text_fields:
            col = resolve_column(raw)
            spec = column_spec(col) if col is not None else None
            if spec is None or not spec.searchable:
                raise ValueError(f"Unknown or unsearchable search field: {raw!r}")
            if col not in fields:
                fields.append(col)

        t0 = time.perf_counter()
        if fields:
            haystack = store.frame.select([_haystack_expr(c) for c in fields])
        else:
            haystack = pl.DataFrame()
        logger.debug(
            "search index built over %s for %d rows (%.1fms)",
            [c.value for c in fields], len(store), (time.perf_counter() - t0) * 1000,
        )
        return cls(store, tuple(fields), haystack)

    def _mask_expr(self, query: str) -> pl.Expr | None:
        names = [c.value for c in self.fields]
        if len(query) > MAX_EXTENDED_QUERY_LENGTH:
            return _any([pl.col(n).str.contains(query, literal=True) for n in names])

        groups = parse_extended_query(query)
        if not groups:
            return None
        per_field = [
            _any([_all([_term_expr(n, t) for t in group]) for group in groups])
            for n in names
        ]
        return _any(per_field)

    def search(self, query: str | None) -> pl.DataFrame:
        """Return the store rows (as a frame) matching *query*, in store order.

        An empty or whitespace-only query returns the whole store.
        """
        frame = self.store.frame
        if not query or not query.strip():
            return frame
        if not self.fields:
            return frame.clear()

        q = query.strip().lower()
        expr = self._mask_expr(q)
        if expr is None:
            return frame
        mask = self._haystack.select(expr.alias("match")).to_series()
        return frame.filter(mask)

    def search_rows(self, query: str | None) -> list[dict[str, Any]]:
        """Like :meth:`search` but returns row dicts."""
        return self.store.to_rows(self.search(query))
