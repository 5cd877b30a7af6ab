"""Tests for trigger expression evaluation and parsing.

Covers:
- contains / and / or / not semantics
- Field precedence on nodes that populate several shapes
- Empty expressions and empty child lists never matching
- Parsing the YAML shapes and shorthands
- Strict mode rejecting ambiguous nodes
"""
from __future__ import annotations

import logging

import pytest

from coda.engine.errors import TriggerSyntaxError
from coda.engine.triggers import evaluate, parse_trigger_expression
from coda.shared.models.microagent import (
    EMPTY_EXPRESSION,
    And,
    Contains,
    Not,
    Or,
    TriggerExpression,
)


# ── Evaluation ──


class TestEvaluate:
    def test_contains_is_case_sensitive_substring(self):
        assert evaluate("please deploy now", Contains("deploy"))
        assert not evaluate("please Deploy now", Contains("deploy"))
        assert not evaluate("hello", Contains("deploy"))

    def test_and_requires_every_child(self):
        expr = And(Contains("deploy"), Contains("prod"))
        assert evaluate("deploy to prod", expr)
        assert not evaluate("deploy to staging", expr)

    def test_or_requires_any_child(self):
        expr = Or(Contains("deploy"), Contains("release"))
        assert evaluate("cut a release", expr)
        assert not evaluate("write docs", expr)

    def test_not_negates(self):
        assert evaluate("hello", Not(Contains("deploy")))
        assert not evaluate("deploy", Not(Contains("deploy")))

    def test_nested_expression(self):
        expr = And(
            Or(Contains("deploy"), Contains("ship")),
            Not(Contains("staging")),
        )
        assert evaluate("ship it to prod", expr)
        assert not evaluate("ship it to staging", expr)
        assert not evaluate("write tests", expr)

    def test_empty_expression_never_matches(self):
        assert not evaluate("anything at all", EMPTY_EXPRESSION)
        assert not evaluate("", TriggerExpression())

    def test_empty_and_is_false(self):
        assert not evaluate("anything", TriggerExpression(and_=()))
        assert not evaluate("anything", And())

    def test_empty_or_is_false(self):
        assert not evaluate("anything", Or())

    def test_not_of_empty_is_true(self):
        # The inner empty node is false, so its negation holds.
        assert evaluate("anything", Not(EMPTY_EXPRESSION))

    def test_empty_contains_counts_as_unpopulated(self):
        assert not evaluate("anything", TriggerExpression(contains=""))


class TestPrecedence:
    def test_contains_wins_over_and(self):
        expr = TriggerExpression(
            contains="deploy",
            and_=(Contains("never-present"),),
        )
        assert evaluate("deploy now", expr)
        assert not evaluate("never-present", expr)

    def test_and_wins_over_or(self):
        expr = TriggerExpression(
            and_=(Contains("a"), Contains("b")),
            or_=(Contains("z"),),
        )
        assert evaluate("a b", expr)
        assert not evaluate("z", expr)

    def test_or_wins_over_not(self):
        expr = TriggerExpression(
            or_=(Contains("x"),),
            not_=Contains("x"),
        )
        assert evaluate("x", expr)

    def test_empty_and_falls_through_to_or(self):
        expr = TriggerExpression(and_=(), or_=(Contains("x"),))
        assert evaluate("x", expr)

    def test_shapes_lists_populated_fields_in_order(self):
        expr = TriggerExpression(
            contains="a", or_=(Contains("b"),), not_=Contains("c"),
        )
        assert expr.shapes() == ["contains", "or", "not"]
        assert EMPTY_EXPRESSION.is_empty


# ── Parsing ──


class TestParse:
    def test_none_is_empty(self):
        assert parse_trigger_expression(None) == EMPTY_EXPRESSION

    def test_string_is_contains(self):
        assert parse_trigger_expression("deploy") == Contains("deploy")

    def test_list_is_or_of_contains(self):
        expr = parse_trigger_expression(["deploy", "release"])
        assert expr == Or(Contains("deploy"), Contains("release"))
        assert evaluate("release notes", expr)

    def test_mapping_shapes(self):
        raw = {
            "and": [
                {"contains": "deploy"},
                {"not": {"contains": "staging"}},
            ]
        }
        expr = parse_trigger_expression(raw)
        assert expr == And(Contains("deploy"), Not(Contains("staging")))

    def test_empty_mapping_is_empty(self):
        assert parse_trigger_expression({}).is_empty

    def test_unknown_key_rejected(self):
        with pytest.raises(TriggerSyntaxError, match="unknown key"):
            parse_trigger_expression({"matches": "deploy"})

    def test_contains_must_be_string(self):
        with pytest.raises(TriggerSyntaxError, match="'contains' must be a string"):
            parse_trigger_expression({"contains": 42})

    def test_and_must_be_list(self):
        with pytest.raises(TriggerSyntaxError, match="'and' must be a list"):
            parse_trigger_expression({"and": {"contains": "x"}})

    def test_not_rejects_list(self):
        with pytest.raises(TriggerSyntaxError, match="single expression"):
            parse_trigger_expression({"not": ["x"]})

    def test_scalar_rejected(self):
        with pytest.raises(TriggerSyntaxError, match="got int"):
            parse_trigger_expression(7)

    def test_error_location_points_at_nested_node(self):
        with pytest.raises(TriggerSyntaxError) as excinfo:
            parse_trigger_expression({"or": ["ok", {"bogus": 1}]})
        assert excinfo.value.location == "triggers.or[1]"

    def test_multi_shape_node_warns_and_keeps_precedence(self, caplog):
        raw = {"contains": "deploy", "and": [{"contains": "never"}]}
        with caplog.at_level(logging.WARNING, logger="coda.engine.triggers"):
            expr = parse_trigger_expression(raw)
        assert "only 'contains' is evaluated" in caplog.text
        assert evaluate("deploy", expr)

    def test_multi_shape_node_rejected_in_strict_mode(self):
        raw = {"contains": "deploy", "and": [{"contains": "never"}]}
        with pytest.raises(TriggerSyntaxError, match="several shapes"):
            parse_trigger_expression(raw, strict=True)
