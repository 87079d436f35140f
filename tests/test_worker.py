"""Tests for the engine worker process and its clients."""

import pytest

from device_matrix.errors import IndexUnavailable, LoadFailure, WorkerError
from device_matrix.worker import AsyncEngineClient, EngineWorker

from conftest import ROW_B0, ROW_B1, ROW_C, row_ids


@pytest.fixture(scope="module")
def worker():
    with EngineWorker() as w:
        yield w


class TestEngineWorker:
    def test_query_before_load_fails_but_worker_survives(self, worker):
        with pytest.raises(IndexUnavailable):
            worker.query({})
        assert worker.alive

    def test_load_and_query(self, worker, sample_payload):
        assert worker.load_payload(sample_payload) == {"count": 4}
        result = worker.query({"enums": {"matterSupported": [True]}})
        assert result["total"] == 3
        assert row_ids(result["rows"]) == [ROW_B0, ROW_B1, ROW_C]

    def test_concurrent_requests(self, worker, sample_payload):
        worker.load_payload(sample_payload)
        futures = [worker.submit("query", request={"page": page, "page_size": 1}) for page in (1, 2, 3, 4)]
        ids = [f.result(timeout=30)["rows"][0]["row_id"] for f in futures]
        assert len(set(ids)) == 4

    def test_load_failure_reraised(self, worker, tmp_path):
        with pytest.raises(LoadFailure):
            worker.load(str(tmp_path / "absent.json"))

    def test_validation_error_arrives_as_value_error(self, worker, sample_payload):
        worker.load_payload(sample_payload)
        with pytest.raises(ValueError):
            worker.query({"enums": "not a mapping"})
        assert worker.stats()["rows"] == 4

    def test_export_bytes(self, worker, sample_payload):
        worker.load_payload(sample_payload)
        data = worker.build_export()
        assert data[:2] == b"PK"

    def test_unknown_operation(self, worker):
        with pytest.raises(WorkerError):
            worker.call("explode")


class TestLifecycle:
    def test_closed_worker_rejects_requests(self):
        w = EngineWorker()
        w.close()
        assert not w.alive
        with pytest.raises(WorkerError):
            w.query({})


class TestAsyncEngineClient:
    @pytest.mark.asyncio
    async def test_round_trip(self, sample_payload):
        async with AsyncEngineClient() as client:
            assert await client.load_payload(sample_payload) == {"count": 4}
            facets = await client.distinct({"enums": {"matterSupported": [False]}})
            assert facets["matter_device_type"] == []
            page = await client.query({"page": 2, "pageSize": 2})
            assert row_ids(page["rows"]) == [ROW_B1, ROW_C]

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        async with AsyncEngineClient() as client:
            with pytest.raises(IndexUnavailable):
                await client.query({})
