"""Exceptions raised by the device matrix engine.

Hierarchy::

    DeviceMatrixError
    ├── LoadFailure        fetch / HTTP / JSON / schema problems during load
    ├── IndexUnavailable   query, distinct or export before a successful load
    └── WorkerError        the worker process died or sent a bad message

Pagination problems are never raised; they are normalised by the engine.
"""

from typing import Any


class DeviceMatrixError(Exception):
    """Base exception carrying a message plus structured context.

    Attributes:
        message: Human-readable error message.
        context: Extra details (source URL, status code, ...).
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form used to ship the error across the worker boundary."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }


class LoadFailure(DeviceMatrixError):
    """The source could not be fetched, parsed or validated.

    The engine's previous snapshot (if any) is left untouched.
    """


class IndexUnavailable(DeviceMatrixError):
    """An operation needing data was called before any successful load."""


class WorkerError(DeviceMatrixError):
    """The engine worker process is gone or the protocol broke."""


_BY_NAME: dict[str, type[DeviceMatrixError]] = {
    cls.__name__: cls for cls in (DeviceMatrixError, LoadFailure, IndexUnavailable, WorkerError)
}


def error_from_dict(payload: dict[str, Any]) -> Exception:
    """Rebuild an exception from :meth:`DeviceMatrixError.to_dict` output.

    Unknown types (e.g. a ``ValueError`` raised inside the worker) come back
    as ``ValueError``/``TypeError`` when they are builtins, otherwise as
    :class:`DeviceMatrixError`.
    """
    name = payload.get("type", "")
    message = payload.get("message", "")
    context = payload.get("context") or {}
    cls = _BY_NAME.get(name)
    if cls is not None:
        return cls(message, context)
    if name in ("ValueError", "TypeError", "KeyError"):
        return {"ValueError": ValueError, "TypeError": TypeError, "KeyError": KeyError}[name](message)
    return DeviceMatrixError(message, {"remote_type": name, **context})
