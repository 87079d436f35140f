"""Tests for source loading and the row store."""

import json

import pytest

from device_matrix.errors import LoadFailure
from device_matrix.store import POSITION_COLUMN, RowStore, load_source, parse_payload

from conftest import ROW_A, ROW_B0, ROW_B1, ROW_C, SAMPLE_PAYLOAD, row_ids


class TestParsePayload:
    def test_standard_shape(self):
        payload = parse_payload(SAMPLE_PAYLOAD)
        assert payload.update_time == 1700000000000
        assert len(payload.support_devices) == 3

    def test_legacy_bare_array(self):
        payload = parse_payload(SAMPLE_PAYLOAD["supportDevices"])
        assert payload.update_time == 0
        assert len(payload.support_devices) == 3

    def test_missing_device_list(self):
        with pytest.raises(LoadFailure):
            parse_payload({"updateTime": 1})

    @pytest.mark.parametrize("devices", [None, {"deviceInfo": {}}, "devices", 3])
    def test_device_list_must_be_a_list(self, devices):
        with pytest.raises(LoadFailure):
            parse_payload({"updateTime": 1, "supportDevices": devices})
        with pytest.raises(LoadFailure):
            parse_payload({"update_time": 1, "support_devices": devices})

    def test_not_an_object(self):
        with pytest.raises(LoadFailure):
            parse_payload("hello")

    def test_invalid_device(self):
        with pytest.raises(LoadFailure):
            parse_payload({"supportDevices": [{"deviceInfo": {"brand": "no model"}}]})


class TestLoadSource:
    def test_local_path(self, sample_file):
        payload = load_source(sample_file)
        assert len(payload.support_devices) == 3

    def test_file_url(self, sample_file):
        payload = load_source(sample_file.as_uri())
        assert payload.update_time == 1700000000000

    def test_missing_file(self, tmp_path):
        with pytest.raises(LoadFailure):
            load_source(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(LoadFailure, match="not valid JSON"):
            load_source(path)

    def test_legacy_file(self, tmp_path):
        path = tmp_path / "legacy.json"
        path.write_text(json.dumps(SAMPLE_PAYLOAD["supportDevices"]), encoding="utf-8")
        assert load_source(path).update_time == 0


class TestRowStore:
    def test_from_payload(self, sample_store):
        assert len(sample_store) == 4
        assert sample_store.device_count == 3
        assert sample_store.update_time == 1700000000000
        assert row_ids(list(sample_store.rows)) == [ROW_A, ROW_B0, ROW_B1, ROW_C]

    def test_frame_mirrors_rows(self, sample_store):
        assert sample_store.frame.height == 4
        assert sample_store.frame[POSITION_COLUMN].to_list() == [0, 1, 2, 3]

    def test_to_rows_drops_position(self, sample_store):
        rows = sample_store.to_rows(sample_store.frame)
        assert POSITION_COLUMN not in rows[0]
        assert rows[2]["apple_supported"] == ["OnOff"]
        assert row_ids(rows) == [ROW_A, ROW_B0, ROW_B1, ROW_C]

    def test_empty_store(self):
        store = RowStore([])
        assert len(store) == 0
        assert store.frame.height == 0
        assert store.device_count == 0
