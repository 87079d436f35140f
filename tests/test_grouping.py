"""Tests for merge runs and row spans."""

import pytest

from device_matrix.columns import Column
from device_matrix.grouping import (
    build_merge_key,
    build_merge_ranges,
    compute_spans,
    merge_enabled,
    prepare_rows_for_merge,
    sort_by_device_info_group,
)


def make_row(model, brand="SONOFF", caps=("power",), row_id=None, **extra):
    row = {
        "row_id": row_id or model,
        "device_model": model,
        "device_source": "WiFi",
        "device_brand": brand,
        "device_category": "Switch",
        "ewelink_supported": True,
        "ewelink_capabilities": list(caps),
    }
    row.update(extra)
    return row


class TestMergeKey:
    def test_array_order_does_not_matter(self):
        assert build_merge_key(make_row("A", caps=["x", "y"])) == build_merge_key(make_row("A", caps=["y", "x"]))

    def test_none_and_empty_string_share_a_key(self):
        assert build_merge_key(make_row("A", brand=None)) == build_merge_key(make_row("A", brand=""))

    def test_different_values_differ(self):
        assert build_merge_key(make_row("A")) != build_merge_key(make_row("B"))

    def test_comma_inside_value_does_not_collide(self):
        joined = build_merge_key(make_row("A", caps=["a,b"]))
        split = build_merge_key(make_row("A", caps=["a", "b"]))
        assert joined != split


class TestComputeSpans:
    def test_runs(self):
        rows = [make_row("A"), make_row("A"), make_row("B"), make_row("A")]
        assert compute_spans(rows) == [2, 0, 1, 1]

    def test_non_adjacent_equal_rows_are_separate_runs(self):
        rows = [make_row("A"), make_row("B"), make_row("A")]
        assert compute_spans(rows) == [1, 1, 1]

    def test_span_sum_equals_row_count(self):
        rows = [make_row(m) for m in "AABBBCAD"]
        spans = compute_spans(rows)
        assert sum(spans) == len(rows)
        assert spans == [2, 0, 3, 0, 0, 1, 1, 1]

    def test_empty(self):
        assert compute_spans([]) == []

    def test_disabled_when_only_merge_columns_visible(self):
        rows = [make_row("A"), make_row("A")]
        assert compute_spans(rows, visible_columns=["deviceModel", "device_brand"]) == [1, 1]
        assert compute_spans(rows, visible_columns=["device_model", "matter_supported"]) == [2, 0]

    def test_custom_merge_columns(self):
        rows = [make_row("A", brand="X"), make_row("B", brand="X")]
        assert compute_spans(rows, merge_columns=[Column.DEVICE_BRAND]) == [2, 0]

    def test_unknown_merge_column(self):
        with pytest.raises(ValueError):
            compute_spans([make_row("A")], merge_columns=["nope"])


class TestMergeEnabled:
    def test_none_means_all_visible(self):
        assert merge_enabled(None)

    def test_subset(self):
        assert not merge_enabled([Column.DEVICE_MODEL])
        assert merge_enabled([Column.DEVICE_MODEL, Column.MATTER_DEVICE_TYPE])

    def test_unknown_keys_ignored(self):
        assert not merge_enabled(["device_model", "row_id"])
        assert merge_enabled(["device_model", "actions", "matterDeviceType"])

    def test_spans_with_unknown_visible_key(self):
        rows = [make_row("A"), make_row("A")]
        assert compute_spans(rows, visible_columns=["row_id", "device_model", "matter_supported"]) == [2, 0]


class TestMergeRanges:
    def test_ranges_for_long_runs_only(self):
        rows = [make_row("A"), make_row("A"), make_row("A"), make_row("B")]
        assert build_merge_ranges(rows, start_row=3, column_indexes=[0, 2]) == [
            (3, 0, 5, 0),
            (3, 2, 5, 2),
        ]


class TestDeviceInfoGrouping:
    def test_sort_order(self):
        rows = [
            make_row("B", row_id="b"),
            make_row("A", caps=["x", "y"], row_id="a2"),
            make_row("A", caps=["z"], row_id="a1"),
            make_row(None, row_id="none"),
        ]
        assert [r["row_id"] for r in sort_by_device_info_group(rows)] == ["none", "a1", "a2", "b"]

    def test_prepare_without_custom_sort_groups_rows(self):
        rows = [make_row("B", row_id="b"), make_row("A", row_id="a1"), make_row("A", row_id="a2")]
        ordered, spans = prepare_rows_for_merge(rows, has_custom_sort=False)
        assert [r["row_id"] for r in ordered] == ["a1", "a2", "b"]
        assert spans == [2, 0, 1]

    def test_prepare_with_custom_sort_keeps_order(self):
        rows = [make_row("A", row_id="a1"), make_row("B", row_id="b"), make_row("A", row_id="a2")]
        ordered, spans = prepare_rows_for_merge(rows, has_custom_sort=True)
        assert [r["row_id"] for r in ordered] == ["a1", "b", "a2"]
        assert spans == [1, 1, 1]

    def test_prepare_copies_rows(self):
        rows = [make_row("A")]
        ordered, _ = prepare_rows_for_merge(rows, has_custom_sort=True)
        ordered[0]["device_model"] = "changed"
        assert rows[0]["device_model"] == "A"
