"""device-matrix -- in-memory query engine for a device compatibility matrix.

Loads the published eWeLink / Matter / Home Assistant compatibility JSON,
flattens it into one row per Matter sub-device and answers search, filter,
facet, pagination and export requests over the rows::

    pip install device-matrix

    from device_matrix import DeviceMatrixEngine

    engine = DeviceMatrixEngine()
    engine.load("matrix.json")
    engine.query({"q": "mini", "page": 1})

Use :class:`EngineWorker` / :class:`AsyncEngineClient` to run the engine in a
separate process.
"""

from device_matrix.columns import COLUMN_SPECS, FACET_COLUMNS, FILTER_COLUMNS, MERGE_COLUMNS, Column, ColumnSpec, resolve_column
from device_matrix.engine import DeviceMatrixEngine, apply_sort, normalize_page
from device_matrix.errors import DeviceMatrixError, IndexUnavailable, LoadFailure, WorkerError
from device_matrix.export import DEFAULT_EXPORT_COLUMNS, build_export_buffer
from device_matrix.facets import distinct, distinct_all
from device_matrix.filters import apply_filters, build_filter_expr, passes
from device_matrix.flatten import flatten_device, flatten_devices
from device_matrix.grouping import build_merge_key, compute_spans, prepare_rows_for_merge
from device_matrix.models import DistinctInput, ExportColumn, QueryInput, RawDevice, SortSpec, SourcePayload
from device_matrix.search import SearchIndex, parse_extended_query
from device_matrix.store import RowStore, load_source
from device_matrix.worker import AsyncEngineClient, EngineWorker

__all__ = [
    "AsyncEngineClient",
    "COLUMN_SPECS",
    "Column",
    "ColumnSpec",
    "DEFAULT_EXPORT_COLUMNS",
    "DeviceMatrixEngine",
    "DeviceMatrixError",
    "DistinctInput",
    "EngineWorker",
    "ExportColumn",
    "FACET_COLUMNS",
    "FILTER_COLUMNS",
    "IndexUnavailable",
    "LoadFailure",
    "MERGE_COLUMNS",
    "QueryInput",
    "RawDevice",
    "RowStore",
    "SearchIndex",
    "SortSpec",
    "SourcePayload",
    "WorkerError",
    "apply_filters",
    "apply_sort",
    "build_export_buffer",
    "build_filter_expr",
    "build_merge_key",
    "compute_spans",
    "distinct",
    "distinct_all",
    "flatten_device",
    "flatten_devices",
    "load_source",
    "normalize_page",
    "parse_extended_query",
    "passes",
    "prepare_rows_for_merge",
    "resolve_column",
]
