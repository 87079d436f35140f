"""Tests for settings, errors and logging setup."""

import logging

from device_matrix.config import DEFAULT_PAGE_SIZE, get_settings
from device_matrix.errors import DeviceMatrixError, IndexUnavailable, LoadFailure, error_from_dict
from device_matrix.logging import setup_logging


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DEVICE_MATRIX_PAGE_SIZE", raising=False)
        assert get_settings().page_size == DEFAULT_PAGE_SIZE

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("DEVICE_MATRIX_PAGE_SIZE", "25")
        monkeypatch.setenv("DEVICE_MATRIX_DATA_URL", "https://example.com/matrix.json")
        settings = get_settings()
        assert settings.page_size == 25
        assert settings.data_url == "https://example.com/matrix.json"


class TestErrors:
    def test_str_includes_context(self):
        err = LoadFailure("HTTP 404 while fetching source", {"url": "https://x"})
        assert str(err) == "HTTP 404 while fetching source (url=https://x)"

    def test_round_trip(self):
        err = error_from_dict(IndexUnavailable("not loaded").to_dict())
        assert isinstance(err, IndexUnavailable)
        assert err.message == "not loaded"

    def test_builtin_names(self):
        assert isinstance(error_from_dict({"type": "ValueError", "message": "bad"}), ValueError)

    def test_unknown_type(self):
        err = error_from_dict({"type": "ZeroDivisionError", "message": "boom"})
        assert type(err) is DeviceMatrixError
        assert err.context["remote_type"] == "ZeroDivisionError"


class TestLogging:
    def test_handler_added_once(self):
        setup_logging("DEBUG")
        setup_logging("INFO")
        logger = logging.getLogger("device_matrix")
        assert sum(1 for h in logger.handlers if getattr(h, "_device_matrix", False)) == 1
        assert logger.level == logging.INFO
