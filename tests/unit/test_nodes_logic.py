"""Tests for the logic node operations."""
import pytest

from flowys.node_sdk import ExpressionError, NodeConfigError
from flowys.nodes import LogicNode, parse_node_config
from flowys.nodes.logic import REDUCERS


@pytest.fixture
def run_logic(make_context):
    node = LogicNode()

    def _run(payload, **config):
        return node.execute(parse_node_config("logic", config), make_context("logic", payload))

    return _run


PEOPLE = {
    "items": [
        {"name": "Ada", "age": 36, "active": True},
        {"name": "Linus", "age": 28, "active": False},
        {"name": "Grace", "age": 45, "active": True},
    ]
}


class TestFilter:
    def test_keeps_matching_items_under_the_same_key(self, run_logic):
        assert run_logic({"items": [1, 2, 3]}, operation="filter", condition="item > 1") == {
            "items": [2, 3]
        }

    def test_item_fields_and_index(self, run_logic):
        result = run_logic(PEOPLE, operation="filter", condition="item.active && index > 0")

        assert [p["name"] for p in result["items"]] == ["Grace"]

    def test_bare_list_payload_uses_data_key(self, run_logic):
        assert run_logic([5, 1, 7], operation="filter", condition="item >= 5") == {"data": [5, 7]}

    def test_no_list(self, run_logic):
        with pytest.raises(NodeConfigError, match="needs a list"):
            run_logic({"count": 3}, operation="filter", condition="item")

    def test_missing_condition(self, run_logic):
        with pytest.raises(NodeConfigError, match="Filter needs a condition"):
            run_logic(PEOPLE, operation="filter")

    def test_bad_expression(self, run_logic):
        with pytest.raises(ExpressionError):
            run_logic(PEOPLE, operation="filter", condition="item.__class__")


class TestMap:
    def test_mappings(self, run_logic):
        result = run_logic(PEOPLE, operation="map", mappings={"who": "item.name", "years": "age"})

        assert result["items"][0] == {"who": "Ada", "years": 36}

    def test_expression(self, run_logic):
        result = run_logic({"data": [1, 2]}, operation="map", expression="item * 10")

        assert result == {"data": [10, 20]}


class TestReduce:
    @pytest.mark.parametrize(
        "expression, expected",
        [
            ("sum:age", 109),
            ("count", 3),
            ("min:age", 28),
            ("max:age", 45),
            ("first:name", "Ada"),
            ("last:name", "Grace"),
            ("concat:name", "AdaLinusGrace"),
        ],
    )
    def test_reducers(self, run_logic, expression, expected):
        assert run_logic(PEOPLE, operation="reduce", expression=expression) == {"result": expected}

    def test_avg_ignores_non_numbers(self):
        assert REDUCERS["avg"]([2, "x", 4]) == 3
        assert REDUCERS["avg"]([]) == 0

    def test_unknown_reducer(self, run_logic):
        with pytest.raises(ExpressionError, match="Unknown reduce operation: median"):
            run_logic(PEOPLE, operation="reduce", expression="median:age")


class TestCondition:
    def test_true_branch(self, run_logic):
        payload = {"status": "active"}
        result = run_logic(payload, operation="condition", condition="status == 'active'")

        assert result == {"result": True, "branch": "true", "data": payload}

    def test_false_branch(self, run_logic):
        result = run_logic({"score": 10}, operation="condition", condition="score > 50")

        assert result["branch"] == "false"
        assert result["result"] is False


class TestReshape:
    def test_transform_mappings(self, run_logic):
        payload = {"user": {"name": "Ada"}, "meta": {"count": 2}}

        assert run_logic(payload, operation="transform", mappings={"name": "user.name", "n": "meta.count"}) == {
            "name": "Ada",
            "n": 2,
        }

    def test_transform_expression_must_be_object(self, run_logic):
        assert run_logic({"a": 2}, operation="transform", expression="{'double': a * 2}") == {"double": 4}

        with pytest.raises(ExpressionError, match="must produce an object"):
            run_logic({"a": 2}, operation="transform", expression="a * 2")

    def test_passthrough(self, run_logic):
        assert run_logic({"x": 1}) == {"x": 1}

    def test_sort_by_field_desc(self, run_logic):
        result = run_logic(PEOPLE, operation="sort", expression="desc:age")

        assert [p["age"] for p in result["items"]] == [45, 36, 28]

    def test_sort_numbers_before_strings(self, run_logic):
        assert run_logic({"data": ["b", 3, "a", 1]}, operation="sort") == {"data": [1, 3, "a", "b"]}

    def test_sort_bad_direction(self, run_logic):
        with pytest.raises(ExpressionError):
            run_logic(PEOPLE, operation="sort", expression="sideways")

    def test_slice(self, run_logic):
        payload = {"data": list(range(20))}

        assert run_logic(payload, operation="slice") == {"data": list(range(10))}
        assert run_logic(payload, operation="slice", expression="5:") == {"data": list(range(5, 20))}

        with pytest.raises(ExpressionError, match="start:end"):
            run_logic(payload, operation="slice", expression="a:b")
