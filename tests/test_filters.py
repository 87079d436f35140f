"""Tests for column filters."""

import pytest

from device_matrix.columns import Column
from device_matrix.filters import apply_filters, build_filter_expr, normalize_filters, passes

from conftest import ROW_A, ROW_B0, ROW_B1, ROW_C

FILTER_CASES = [
    {},
    {"device_source": ["Zigbee"]},
    {"device_source": ["Zigbee"], "matter_device_type": ["On/Off Light"]},
    {"apple_supported": ["OnOff"]},
    {"ewelink_capabilities": ["power"]},
    {"matterSupported": [False]},
    {"matterSupported": [True, False]},
    {"device_brand": ["SONOFF"]},
    {"home_assistant_entities": ["sensor", "switch"]},
]


def filtered_ids(store, enums):
    return [r["row_id"] for r in store.to_rows(apply_filters(store.frame, enums))]


class TestNormalizeFilters:
    def test_drops_empty_and_unknown(self):
        assert normalize_filters({"device_model": [], "nope": ["x"], "device_brand": None}) == {}

    def test_scalar_value_wrapped(self):
        assert normalize_filters({"deviceBrand": "SONOFF"}) == {Column.DEVICE_BRAND: ["SONOFF"]}

    def test_boolean_coercion(self):
        assert normalize_filters({"matterSupported": ["true", "0"]}) == {Column.MATTER_SUPPORTED: [True, False]}

    def test_camel_and_snake_spellings_merge(self):
        result = normalize_filters({"device_model": ["A"], "deviceModel": ["B", "A"]})
        assert result == {Column.DEVICE_MODEL: ["A", "B"]}

    def test_exclude(self):
        result = normalize_filters({"device_model": ["A"], "device_brand": ["B"]}, exclude="deviceModel")
        assert list(result) == [Column.DEVICE_BRAND]


class TestApplyFilters:
    def test_no_filters_is_identity(self, sample_store):
        assert apply_filters(sample_store.frame, {}) is sample_store.frame
        assert build_filter_expr(None) is None

    def test_scalar(self, sample_store):
        assert filtered_ids(sample_store, {"device_source": ["Zigbee"]}) == [ROW_B0, ROW_B1, ROW_C]

    def test_columns_are_anded(self, sample_store):
        enums = {"device_source": ["Zigbee"], "matter_device_type": ["On/Off Light"]}
        assert filtered_ids(sample_store, enums) == [ROW_B0]

    def test_array_intersection(self, sample_store):
        assert filtered_ids(sample_store, {"apple_supported": ["OnOff"]}) == [ROW_B1]
        assert filtered_ids(sample_store, {"ewelink_capabilities": ["power"]}) == [ROW_A, ROW_B0, ROW_B1]

    def test_boolean(self, sample_store):
        assert filtered_ids(sample_store, {"matterSupported": [False]}) == [ROW_A]
        assert filtered_ids(sample_store, {"matterSupported": [True]}) == [ROW_B0, ROW_B1, ROW_C]

    def test_null_scalar_fails_filter(self, extended_store):
        ids = filtered_ids(extended_store, {"device_brand": ["SONOFF"]})
        assert "T1-3-0" not in ids
        assert len(ids) == 5

    def test_unknown_key_ignored(self, sample_store):
        assert filtered_ids(sample_store, {"colour": ["red"]}) == [ROW_A, ROW_B0, ROW_B1, ROW_C]


class TestPasses:
    @pytest.mark.parametrize("enums", FILTER_CASES)
    def test_agrees_with_expression(self, extended_store, enums):
        expected = [r["row_id"] for r in extended_store.rows if passes(r, enums)]
        assert filtered_ids(extended_store, enums) == expected

    def test_exclude(self, sample_store):
        row = sample_store.rows[0]
        assert not passes(row, {"device_model": ["other"]})
        assert passes(row, {"device_model": ["other"]}, exclude=Column.DEVICE_MODEL)


class TestMonotonicity:
    @pytest.mark.parametrize(
        "base, extra",
        [
            ({}, {"device_source": ["Zigbee"]}),
            ({"device_source": ["Zigbee"]}, {"matterSupported": [True]}),
            ({"ewelink_capabilities": ["power"]}, {"device_category": ["Switch"]}),
        ],
    )
    def test_adding_a_column_constraint_never_grows_result(self, extended_store, base, extra):
        before = len(filtered_ids(extended_store, base))
        after = len(filtered_ids(extended_store, {**base, **extra}))
        assert after <= before
