"""Tests for List Variable normalization and the list pipeline."""

import copy

import pytest

from workflow.list_pipeline import array_to_list_variable, normalize_list, transform_list


def _customers():
    rows = [
        {"id": "r1", "name": "Carol", "status": "active", "score": "30"},
        {"id": "r2", "name": "alice", "status": "inactive", "score": 5},
        {"id": "r3", "name": "Bob", "status": "active", "score": 100},
        {"id": "r4", "name": "Dave", "status": "active", "score": None},
        {"id": "r5", "name": "Bob", "status": "inactive", "score": 42},
    ]
    return {
        "metadata": {"source": "read_table", "sourceId": "t1"},
        "rows": rows,
        "count": len(rows),
        "columns": [
            {"id": "name", "name": "Name", "type": "text"},
            {"id": "status", "name": "Status", "type": "text"},
            {"id": "score", "name": "Score", "type": "number"},
        ],
    }


@pytest.mark.unit
class TestNormalize:

    def test_none_becomes_empty_list(self):
        result = normalize_list(None)
        assert result["rows"] == []
        assert result["count"] == 0

    def test_plain_array_of_scalars(self):
        result = array_to_list_variable(["a", "b"])
        assert result["rows"] == [{"value": "a", "id": "0"}, {"value": "b", "id": "1"}]
        assert result["columns"] == [{"id": "value", "name": "value", "type": "text"}]

    def test_plain_array_of_objects_keeps_ids(self):
        result = normalize_list([{"id": "x", "n": 1}, {"m": True}])
        assert [r["id"] for r in result["rows"]] == ["x", "1"]
        assert {c["id"]: c["type"] for c in result["columns"]} == {"n": "number", "m": "boolean"}

    def test_count_is_recomputed(self):
        value = _customers()
        value["count"] = 99
        assert normalize_list(value)["count"] == 5

    def test_non_list_input_is_rejected(self):
        assert normalize_list("not a list") is None
        assert normalize_list(42) is None


@pytest.mark.unit
class TestTransformList:

    def test_filter(self):
        result = transform_list(_customers(), {"filters": [{"columnId": "status", "operator": "equals", "value": "active"}]})
        assert [r["id"] for r in result["rows"]] == ["r1", "r3", "r4"]
        assert result["count"] == 3
        assert result["metadata"]["filteredBy"] == ["status"]

    def test_filter_value_resolves_run_data(self):
        result = transform_list(
            _customers(),
            {"filters": [{"columnId": "name", "operator": "equals", "value": "{{wanted}}"}]},
            context_data={"step-1": "bob"},
            alias_map={"wanted": "step-1"},
        )
        assert [r["id"] for r in result["rows"]] == ["r3", "r5"]

    def test_multiple_filters_are_anded(self):
        result = transform_list(
            _customers(),
            {
                "filters": [
                    {"columnId": "status", "operator": "equals", "value": "active"},
                    {"columnId": "score", "operator": "greater_than", "value": 20},
                ]
            },
        )
        assert [r["id"] for r in result["rows"]] == ["r1", "r3"]

    def test_sort_is_numeric_aware_with_empty_last(self):
        result = transform_list(_customers(), {"sort": {"columnId": "score", "direction": "asc"}})
        assert [r["id"] for r in result["rows"]] == ["r2", "r1", "r5", "r3", "r4"]

    def test_sort_desc_keeps_empty_last(self):
        result = transform_list(_customers(), {"sort": {"columnId": "score", "direction": "desc"}})
        assert [r["id"] for r in result["rows"]] == ["r3", "r5", "r1", "r2", "r4"]

    def test_multi_key_sort(self):
        result = transform_list(
            _customers(),
            {"sort": [{"columnId": "name"}, {"columnId": "score", "direction": "desc"}]},
        )
        assert [r["id"] for r in result["rows"]] == ["r2", "r3", "r5", "r1", "r4"]

    def test_dedupe_keeps_first(self):
        result = transform_list(_customers(), {"dedupe": {"columnId": "name"}})
        assert [r["id"] for r in result["rows"]] == ["r1", "r2", "r3", "r4"]

    def test_offset_and_limit(self):
        result = transform_list(_customers(), {"offset": 1, "limit": 2})
        assert [r["id"] for r in result["rows"]] == ["r2", "r3"]
        assert result["count"] == 2

    def test_select_projects_columns(self):
        result = transform_list(_customers(), {"select": ["name"], "limit": 1})
        assert result["rows"] == [{"id": "r1", "name": "Carol"}]
        assert result["columns"] == [{"id": "name", "name": "Name", "type": "text"}]

    def test_stages_run_in_order(self):
        # Limit applies after filter and sort
        result = transform_list(
            _customers(),
            {
                "filters": [{"columnId": "status", "operator": "equals", "value": "active"}],
                "sort": {"columnId": "score", "direction": "desc"},
                "limit": 1,
            },
        )
        assert [r["id"] for r in result["rows"]] == ["r3"]

    def test_input_is_not_mutated(self):
        original = _customers()
        snapshot = copy.deepcopy(original)
        transform_list(original, {"filters": [{"columnId": "status", "value": "active"}], "limit": 1})
        assert original == snapshot

    def test_count_matches_rows_and_is_idempotent(self):
        ops = {
            "filters": [{"columnId": "status", "operator": "equals", "value": "active"}],
            "sort": {"columnId": "name"},
            "limit": 2,
        }
        once = transform_list(_customers(), ops)
        twice = transform_list(once, ops)
        assert once["count"] == len(once["rows"])
        assert twice["rows"] == once["rows"]

    def test_no_ops_returns_copy(self):
        result = transform_list(_customers())
        assert result["count"] == 5
        assert result is not _customers()
