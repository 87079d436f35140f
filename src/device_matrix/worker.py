"""Run a :class:`DeviceMatrixEngine` in a separate process.

Loading, flattening, indexing and querying are CPU work; keeping them in a
child process leaves the caller's thread (a UI loop, an asyncio server)
responsive.

Protocol over a :func:`multiprocessing.Pipe`::

    request   {"id": int, "op": str, "args": dict}
    response  {"id": int, "result": ...}
           or {"id": int, "error": {"type": str, "message": str, "context": dict}}

The child serves one request at a time.  On the caller side a reader thread
matches responses to pending :class:`concurrent.futures.Future` objects by
id, so several requests can be in flight.  A request that fails only fails
its own future.

Example::

    with EngineWorker() as worker:
        worker.load("matrix.json")
        page = worker.query({"q": "mini"})
"""

import asyncio
import itertools
import logging
import multiprocessing
import threading
from concurrent.futures import Future
from multiprocessing.connection import Connection
from typing import Any, Callable

from device_matrix.config import DEFAULT_FETCH_TIMEOUT, DEFAULT_PAGE_SIZE
from device_matrix.engine import DeviceMatrixEngine
from device_matrix.errors import DeviceMatrixError, WorkerError, error_from_dict
from device_matrix.logging import setup_logging

logger = logging.getLogger(__name__)

_SHUTDOWN = "shutdown"
_DEFAULT_JOIN_TIMEOUT = 5.0
_BUILTIN_ERRORS = ("ValueError", "TypeError", "KeyError")


# ---------------------------------------------------------------------------
# Child side
# ---------------------------------------------------------------------------

def _error_payload(exc: BaseException) -> dict[str, Any]:
    if isinstance(exc, DeviceMatrixError):
        return exc.to_dict()
    # Report the nearest builtin so pydantic's ValidationError arrives as
    # ValueError on the caller side.
    name = next((k.__name__ for k in type(exc).__mro__ if k.__name__ in _BUILTIN_ERRORS), type(exc).__name__)
    return {"type": name, "message": str(exc), "context": {}}


def _dispatch(engine: DeviceMatrixEngine, op: str, args: dict[str, Any]) -> Any:
    handlers: dict[str, Callable[..., Any]] = {
        "load": engine.load,
        "load_payload": engine.load_payload,
        "set_search_fields": engine.set_search_fields,
        "query": engine.query,
        "distinct": engine.distinct,
        "build_export": engine.build_export,
        "stats": engine.stats,
    }
    handler = handlers.get(op)
    if handler is None:
        raise WorkerError(f"Unknown operation: {op!r}")
    return handler(**args)


def _serve(conn: Connection, page_size: int, fetch_timeout: float, log_level: str) -> None:
    """Child process main loop."""
    setup_logging(log_level)
    engine = DeviceMatrixEngine(page_size=page_size, fetch_timeout=fetch_timeout)
    logger.info("engine worker started")

    while True:
        try:
            message = conn.recv()
        except (EOFError, OSError):
            break
        req_id = message.get("id")
        op = message.get("op")
        if op == _SHUTDOWN:
            conn.send({"id": req_id, "result": None})
            break
        try:
            result = _dispatch(engine, op, message.get("args") or {})
        except Exception as exc:
            logger.warning("request %s (%s) failed: %s", req_id, op, exc)
            conn.send({"id": req_id, "error": _error_payload(exc)})
        else:
            conn.send({"id": req_id, "result": result})

    conn.close()
    logger.info("engine worker stopped")


# ---------------------------------------------------------------------------
# Caller side
# ---------------------------------------------------------------------------

class EngineWorker:
    """Synchronous client owning one engine child process.

    Each operation has a blocking method (``load``, ``query``, ...) and the
    generic :meth:`submit`, which returns a future instead.

    Args:
        page_size: Default page size of the child engine.
        fetch_timeout: Network timeout of the child engine.
        log_level: Log level configured inside the child.
    """

    def __init__(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        log_level: str = "WARNING",
    ) -> None:
        ctx = multiprocessing.get_context("spawn")
        self._conn, child_conn = ctx.Pipe()
        self._process = ctx.Process(
            target=_serve,
            args=(child_conn, page_size, fetch_timeout, log_level),
            name="device-matrix-engine",
            daemon=True,
        )
        self._process.start()
        # Only the child keeps its end open, so its exit shows up as EOF here.
        child_conn.close()

        self._ids = itertools.count(1)
        self._pending: dict[int, Future] = {}
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._closed = False
        self._reader = threading.Thread(target=self._read_loop, name="device-matrix-reader", daemon=True)
        self._reader.start()
        logger.debug("spawned engine worker pid=%s", self._process.pid)

    # -- plumbing ------------------------------------------------------------

    def _read_loop(self) -> None:
        while True:
            try:
                message = self._conn.recv()
            except (EOFError, OSError):
                break
            with self._lock:
                future = self._pending.pop(message.get("id"), None)
            if future is None:
                logger.warning("dropping response for unknown request %r", message.get("id"))
                continue
            if "error" in message:
                future.set_exception(error_from_dict(message["error"]))
            else:
                future.set_result(message.get("result"))
        self._fail_pending(WorkerError("Engine worker exited", {"exitcode": self._process.exitcode}))

    def _fail_pending(self, exc: Exception) -> None:
        with self._lock:
            pending, self._pending = self._pending, {}
            self._closed = True
        for future in pending.values():
            if not future.done():
                future.set_exception(exc)

    def submit(self, op: str, **args: Any) -> Future:
        """Send one request; the returned future resolves with its result.

        Raises:
            WorkerError: If the worker has been closed or has died.
        """
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise WorkerError("Engine worker is closed")
            req_id = next(self._ids)
            self._pending[req_id] = future
        # Sent outside _lock: a large request must not stall the reader thread.
        try:
            with self._send_lock:
                self._conn.send({"id": req_id, "op": op, "args": args})
        except (OSError, ValueError) as exc:
            with self._lock:
                self._pending.pop(req_id, None)
            raise WorkerError(f"Could not reach engine worker: {exc}") from exc
        return future

    def call(self, op: str, **args: Any) -> Any:
        return self.submit(op, **args).result()

    # -- operations ----------------------------------------------------------

    def load(self, data_url: str, search_fields: list[str] | None = None) -> dict[str, int]:
        return self.call("load", data_url=data_url, search_fields=search_fields)

    def load_payload(self, payload: Any, search_fields: list[str] | None = None) -> dict[str, int]:
        return self.call("load_payload", payload=payload, search_fields=search_fields)

    def set_search_fields(self, search_fields: list[str]) -> None:
        return self.call("set_search_fields", search_fields=search_fields)

    def query(self, request: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.call("query", request=request)

    def distinct(self, request: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.call("distinct", request=request)

    def build_export(self, columns: list[dict[str, Any]] | None = None, **kwargs: Any) -> bytes:
        return self.call("build_export", columns=columns, **kwargs)

    def stats(self) -> dict[str, Any]:
        return self.call("stats")

    # -- lifecycle -----------------------------------------------------------

    @property
    def alive(self) -> bool:
        return self._process.is_alive() and not self._closed

    def close(self, timeout: float = _DEFAULT_JOIN_TIMEOUT) -> None:
        """Ask the child to stop and wait for it; terminate it if it hangs."""
        if not self._closed:
            try:
                self.submit(_SHUTDOWN).result(timeout=timeout)
            except Exception as exc:
                logger.debug("shutdown request failed: %s", exc)
        self._process.join(timeout)
        if self._process.is_alive():
            logger.warning("engine worker did not stop, terminating")
            self._process.terminate()
            self._process.join(timeout)
        self._conn.close()
        self._reader.join(timeout)
        self._closed = True

    def __enter__(self) -> "EngineWorker":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class AsyncEngineClient:
    """``asyncio`` front for an :class:`EngineWorker`.

    Example::

        async with AsyncEngineClient() as client:
            await client.load("matrix.json")
            page = await client.query({"page": 2})
    """

    def __init__(self, worker: EngineWorker | None = None, **worker_kwargs: Any) -> None:
        self._worker = worker if worker is not None else EngineWorker(**worker_kwargs)

    async def call(self, op: str, **args: Any) -> Any:
        return await asyncio.wrap_future(self._worker.submit(op, **args))

    async def load(self, data_url: str, search_fields: list[str] | None = None) -> dict[str, int]:
        return await self.call("load", data_url=data_url, search_fields=search_fields)

    async def load_payload(self, payload: Any, search_fields: list[str] | None = None) -> dict[str, int]:
        return await self.call("load_payload", payload=payload, search_fields=search_fields)

    async def query(self, request: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.call("query", request=request)

    async def distinct(self, request: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.call("distinct", request=request)

    async def build_export(self, columns: list[dict[str, Any]] | None = None, **kwargs: Any) -> bytes:
        return await self.call("build_export", columns=columns, **kwargs)

    async def stats(self) -> dict[str, Any]:
        return await self.call("stats")

    async def close(self) -> None:
        await asyncio.to_thread(self._worker.close)

    async def __aenter__(self) -> "AsyncEngineClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
