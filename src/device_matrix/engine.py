"""Query orchestration over the current snapshot.

:class:`DeviceMatrixEngine` owns one snapshot (row store + search index) at a
time and answers page queries, facet requests and exports against it.  A
query runs the steps in a fixed order::

    search -> filter -> sort -> count -> clamp page -> slice -> spans

Every step works on polars frames; only the final page slice is turned into
row dicts.  Reloading builds a complete new snapshot first and swaps it in
with a single assignment, so a failed load leaves the old one serving.

Example::

    engine = DeviceMatrixEngine()
    engine.load("https://example.com/matrix.json")
    page = engine.query({"q": "zigbee", "enums": {"matterSupported": [True]}})
"""

import logging
import math
import time
from pathlib import Path
from typing import Any, Iterable, Mapping, NamedTuple, Sequence

import polars as pl

from device_matrix.columns import COLUMN_SPECS, FACET_COLUMNS, MERGE_COLUMNS, REGISTRY_VERSION, Column, resolve_column
from device_matrix.config import DEFAULT_FETCH_TIMEOUT, DEFAULT_PAGE, DEFAULT_PAGE_SIZE, DEFAULT_SEARCH_FIELDS, EXPORT_TITLE
from device_matrix.errors import IndexUnavailable
from device_matrix.export import build_export_buffer
from device_matrix.facets import distinct_all
from device_matrix.filters import apply_filters
from device_matrix.grouping import compute_spans
from device_matrix.models import DistinctInput, EnumOptionMap, ExportColumn, QueryInput, QueryResult, SortSpec, SourcePayload
from device_matrix.search import SearchIndex
from device_matrix.store import POSITION_COLUMN, RowStore, load_source, parse_payload

logger = logging.getLogger(__name__)


class Snapshot(NamedTuple):
    """One consistent pair of row store and search index."""

    store: RowStore
    index: SearchIndex


# ---------------------------------------------------------------------------
# Sorting and pagination helpers
# ---------------------------------------------------------------------------

def _sort_key_expr(col: Column) -> pl.Expr:
    # Lists compare by their ","-joined text.
    if COLUMN_SPECS[col].kind == "array":
        return pl.col(col.value).list.join(",")
    return pl.col(col.value)


def apply_sort(frame: pl.DataFrame, sort: Sequence[SortSpec | Mapping[str, Any]]) -> pl.DataFrame:
    """Sort *frame* by the given keys.

    ``None`` is the smallest value: first when ascending, last when
    descending.  Rows that tie on every key are ordered by their source
    position.  Unknown columns are skipped.

    Args:
        frame: Store frame (possibly searched/filtered).
        sort: Sort keys, most significant first.

    Returns:
        The sorted frame, or *frame* itself when no usable key is given.
    """
    by: list[pl.Expr] = []
    descending: list[bool] = []
    for entry in sort:
        spec = entry if isinstance(entry, SortSpec) else SortSpec.model_validate(entry)
        col = resolve_column(spec.column)
        if col is None:
            logger.debug("ignoring sort on unknown column %r", spec.column)
            continue
        by.append(_sort_key_expr(col))
        descending.append(spec.descending)

    if not by:
        return frame
    nulls_last = list(descending)
    if POSITION_COLUMN in frame.columns:
        by.append(pl.col(POSITION_COLUMN))
        descending.append(False)
        nulls_last.append(False)
    return frame.sort(by=by, descending=descending, nulls_last=nulls_last, maintain_order=True)


def normalize_page(page: int | None, page_size: int | None, total: int) -> tuple[int, int]:
    """Return a valid ``(page, page_size)`` for *total* rows.

    ``page_size`` falls back to :data:`DEFAULT_PAGE_SIZE` when missing or not
    positive; ``page`` is clamped to ``[1, max(1, ceil(total / page_size))]``.
    """
    size = page_size if page_size is not None and page_size > 0 else DEFAULT_PAGE_SIZE
    max_page = max(1, math.ceil(total / size))
    current = page if page is not None else DEFAULT_PAGE
    return min(max(current, 1), max_page), size


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class DeviceMatrixEngine:
    """In-memory query engine for the device compatibility matrix.

    Args:
        page_size: Page size used when a query does not give a valid one.
        fetch_timeout: Network timeout for :meth:`load`, in seconds.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, fetch_timeout: float = DEFAULT_FETCH_TIMEOUT) -> None:
        self.page_size = page_size if page_size > 0 else DEFAULT_PAGE_SIZE
        self.fetch_timeout = fetch_timeout
        self._snapshot: Snapshot | None = None
        self._search_fields: tuple[Any, ...] = DEFAULT_SEARCH_FIELDS

    # -- state ---------------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def search_fields(self) -> tuple[Column, ...]:
        if self._snapshot is not None:
            return self._snapshot.index.fields
        return tuple(c for c in (resolve_column(f) for f in self._search_fields) if c is not None)

    def _current(self) -> Snapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise IndexUnavailable("No data loaded; call load() first")
        return snapshot

    def stats(self) -> dict[str, Any]:
        """Counts and provenance of the current snapshot."""
        snapshot = self._current()
        return {
            "rows": len(snapshot.store),
            "devices": snapshot.store.device_count,
            "update_time": snapshot.store.update_time,
            "search_fields": [c.value for c in snapshot.index.fields],
            "registry_version": REGISTRY_VERSION,
        }

    # -- loading -------------------------------------------------------------

    def load(
        self,
        data_url: str | Path,
        search_fields: Iterable[Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, int]:
        """Fetch the source, flatten it and replace the current snapshot.

        Args:
            data_url: URL or local path of the source JSON.
            search_fields: Columns covered by full-text search.  Defaults to
                the fields of the previous load, or
                :data:`DEFAULT_SEARCH_FIELDS`.
            timeout: Network timeout override.

        Returns:
            ``{"count": <number of flat rows>}``.

        Raises:
            LoadFailure: If fetching or validation fails.  The previous
                snapshot stays in place.
        """
        payload = load_source(data_url, self.fetch_timeout if timeout is None else timeout)
        return self.load_payload(payload, search_fields)

    def load_payload(
        self,
        payload: SourcePayload | Mapping[str, Any] | list[Any],
        search_fields: Iterable[Any] | None = None,
    ) -> dict[str, int]:
        """Like :meth:`load` for an already decoded source document."""
        t0 = time.perf_counter()
        if not isinstance(payload, SourcePayload):
            payload = parse_payload(payload)
        fields = tuple(search_fields) if search_fields is not None else self._search_fields

        store = RowStore.from_payload(payload)
        index = SearchIndex.build(store, fields)
        self._snapshot = Snapshot(store, index)
        self._search_fields = fields

        logger.info(
            "loaded %d devices -> %d rows, search over %s (%.1fms)",
            store.device_count, len(store), [c.value for c in index.fields],
            (time.perf_counter() - t0) * 1000,
        )
        return {"count": len(store)}

    def set_search_fields(self, search_fields: Iterable[Any]) -> None:
        """Rebuild the search index over *search_fields* for the current rows."""
        fields = tuple(search_fields)
        snapshot = self._snapshot
        if snapshot is not None:
            self._snapshot = Snapshot(snapshot.store, SearchIndex.build(snapshot.store, fields))
        else:
            # Validate now so a bad field fails here rather than at load time.
            for f in fields:
                col = resolve_column(f)
                if col is None or not COLUMN_SPECS[col].searchable:
                    raise ValueError(f"Unknown or unsearchable search field: {f!r}")
        self._search_fields = fields

    # -- queries -------------------------------------------------------------

    def _select(self, snapshot: Snapshot, q: str | None, enums: Mapping[str, Any] | None, sort: Sequence[SortSpec] = ()) -> pl.DataFrame:
        frame = snapshot.index.search(q)
        frame = apply_filters(frame, enums)
        return apply_sort(frame, sort)

    def query(self, request: QueryInput | Mapping[str, Any] | None = None) -> QueryResult:
        """Return one page of rows matching search text, filters and sort.

        Raises:
            IndexUnavailable: Before the first successful load.
        """
        inp = request if isinstance(request, QueryInput) else QueryInput.model_validate(request or {})
        snapshot = self._current()
        t0 = time.perf_counter()

        frame = self._select(snapshot, inp.q, inp.enums, inp.sort)
        total = frame.height
        page_size = inp.page_size if inp.page_size is not None and inp.page_size > 0 else self.page_size
        page, page_size = normalize_page(inp.page, page_size, total)
        rows = snapshot.store.to_rows(frame.slice((page - 1) * page_size, page_size))
        spans = compute_spans(rows, MERGE_COLUMNS, inp.visible_columns)

        logger.debug(
            "query q=%r filters=%d sort=%d -> total=%d page=%d size=%d (%.1fms)",
            inp.q, len(inp.enums), len(inp.sort), total, page, page_size,
            (time.perf_counter() - t0) * 1000,
        )
        return {
            "rows": rows,
            "total": total,
            "update_time": snapshot.store.update_time,
            "spans": spans,
        }

    def distinct(
        self,
        request: DistinctInput | Mapping[str, Any] | None = None,
        columns: Iterable[Column | str] = FACET_COLUMNS,
    ) -> EnumOptionMap:
        """Facet options for every facet column under ``{q, enums}``.

        Raises:
            IndexUnavailable: Before the first successful load.
        """
        inp = request if isinstance(request, DistinctInput) else DistinctInput.model_validate(request or {})
        snapshot = self._current()
        return distinct_all(snapshot.index.search(inp.q), inp.enums, columns)

    def build_export(
        self,
        columns: Iterable[ExportColumn | Mapping[str, Any]] | None = None,
        title: str = EXPORT_TITLE,
        request: QueryInput | Mapping[str, Any] | None = None,
    ) -> bytes:
        """Render the full (unpaginated) row set as an ``.xlsx`` workbook.

        Args:
            columns: Export header tree; defaults to the standard layout.
            title: Title row text.
            request: Optional search/filter/sort narrowing the exported rows.
                Pagination fields are ignored.

        Raises:
            IndexUnavailable: Before the first successful load.
        """
        snapshot = self._current()
        if request is None:
            rows: list[dict[str, Any]] = list(snapshot.store.rows)  # type: ignore[arg-type]
        else:
            inp = request if isinstance(request, QueryInput) else QueryInput.model_validate(request)
            rows = snapshot.store.to_rows(self._select(snapshot, inp.q, inp.enums, inp.sort))
        return build_export_buffer(rows, columns, title)
