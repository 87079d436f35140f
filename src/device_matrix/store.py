"""Row store and source loading.

A :class:`RowStore` is an immutable snapshot of one load: the flattened rows,
the same rows as a polars ``DataFrame`` (used for every vectorised query
step), and the provenance ``update_time`` of the source payload.  Reloading
builds a new store; nothing is updated in place.
"""

import json
import logging
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any

import polars as pl
from pydantic import ValidationError

from device_matrix.columns import row_schema
from device_matrix.config import DEFAULT_FETCH_TIMEOUT
from device_matrix.errors import LoadFailure
from device_matrix.flatten import flatten_devices
from device_matrix.models import FlatRow, SourcePayload

logger = logging.getLogger(__name__)

POSITION_COLUMN: str = "__position__"


class RowStore:
    """Holds the flattened rows of one load.

    Attributes:
        rows: The flat rows in source order.
        frame: The rows as a DataFrame with an extra ``__position__`` column
            (0-based source order), used as the final sort tie-break.
        update_time: Timestamp carried by the source payload.
        device_count: Number of source devices the rows came from.
    """

    def __init__(self, rows: list[FlatRow], update_time: float = 0, device_count: int | None = None) -> None:
        self.rows: tuple[FlatRow, ...] = tuple(rows)
        self.update_time = update_time
        self.device_count = device_count if device_count is not None else len({r["parent_id"] for r in rows})
        self.frame: pl.DataFrame = (
            pl.DataFrame(list(rows), schema=row_schema())
            .with_row_index(POSITION_COLUMN)
        )

    @classmethod
    def from_payload(cls, payload: SourcePayload) -> "RowStore":
        rows = flatten_devices(payload.support_devices)
        return cls(rows, update_time=payload.update_time, device_count=len(payload.support_devices))

    def __len__(self) -> int:
        return len(self.rows)

    def to_rows(self, frame: pl.DataFrame) -> list[dict[str, Any]]:
        """Turn a (filtered / sorted / sliced) store frame back into row dicts."""
        return frame.drop(POSITION_COLUMN, strict=False).to_dicts()


# ---------------------------------------------------------------------------
# Source loading
# ---------------------------------------------------------------------------

def _read_bytes(source: str | Path, timeout: float) -> bytes:
    text = str(source)
    if text.startswith(("http://", "https://", "file://")):
        req = urllib.request.Request(text, headers={"Cache-Control": "no-cache"})
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as exc:
            raise LoadFailure(f"HTTP {exc.code} while fetching source", {"url": text}) from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise LoadFailure(f"Could not fetch source: {exc}", {"url": text}) from exc

    path = Path(text).expanduser()
    try:
        return path.read_bytes()
    except OSError as exc:
        raise LoadFailure(f"Could not read source file: {exc}", {"path": str(path)}) from exc


def parse_payload(data: Any) -> SourcePayload:
    """Validate decoded JSON into a :class:`SourcePayload`.

    Accepts the standard ``{"updateTime", "supportDevices"}`` object and the
    legacy bare array of devices (``update_time`` is then ``0``).

    Raises:
        LoadFailure: If the document does not match either shape.
    """
    if isinstance(data, list):
        data = {"updateTime": 0, "supportDevices": data}
    if not isinstance(data, dict):
        raise LoadFailure(
            "Source JSON must be an object or an array of devices",
            {"got": type(data).__name__},
        )
    if "supportDevices" not in data and "support_devices" not in data:
        raise LoadFailure("Source JSON has no 'supportDevices' list", {"keys": sorted(data)[:10]})
    devices = data.get("supportDevices", data.get("support_devices"))
    if not isinstance(devices, list):
        raise LoadFailure(
            "Source JSON 'supportDevices' must be a list",
            {"got": type(devices).__name__},
        )
    try:
        return SourcePayload.model_validate(data)
    except ValidationError as exc:
        raise LoadFailure(
            f"Source JSON failed validation ({exc.error_count()} errors)",
            {"first_error": exc.errors()[0].get("msg", "") if exc.errors() else ""},
        ) from exc


def load_source(source: str | Path, timeout: float = DEFAULT_FETCH_TIMEOUT) -> SourcePayload:
    """Fetch and validate the source document.

    Args:
        source: ``http(s)://`` or ``file://`` URL, or a local path.
        timeout: Network timeout in seconds.

    Raises:
        LoadFailure: On any fetch, HTTP, JSON or validation error.  Errors are
            not retried.
    """
    t0 = time.perf_counter()
    raw = _read_bytes(source, timeout)
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise LoadFailure(f"Source is not valid JSON: {exc}", {"source": str(source)}) from exc
    payload = parse_payload(data)
    logger.info(
        "fetched %s: %d devices, %d bytes (%.1fms)",
        source, len(payload.support_devices), len(raw), (time.perf_counter() - t0) * 1000,
    )
    return payload
