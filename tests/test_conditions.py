"""
Tests for the attribute condition engine.
"""

import pytest
from pydantic import ValidationError

from serenity_rbac.conditions import (
    MISSING,
    Condition,
    ConditionOperator,
    evaluate_condition,
    evaluate_conditions,
    parse_conditions,
    resolve_path,
)


CONTEXT = {
    "department": "engineering",
    "attributes": {"level": 5, "groups": ["staff", "oncall"], "region": "eu"},
    "items": [{"name": "first"}],
}


def cond(field: str, operator: str, value=None) -> Condition:
    return Condition(field=field, operator=operator, value=value)


def test_resolve_path_nested_and_missing():
    """Dotted paths walk mappings and list indexes."""
    assert resolve_path(CONTEXT, "attributes.level") == 5
    assert resolve_path(CONTEXT, "items.0.name") == "first"
    assert resolve_path(CONTEXT, "attributes.unknown") is MISSING
    assert resolve_path(CONTEXT, "items.3.name") is MISSING
    assert resolve_path(None, "anything") is MISSING


def test_resolve_path_attributes():
    """Objects are read through getattr."""

    class Subject:
        department = "sales"

    assert resolve_path({"subject": Subject()}, "subject.department") == "sales"


@pytest.mark.parametrize(
    "condition,expected",
    [
        (cond("department", "equals", "engineering"), True),
        (cond("department", "not_equals", "engineering"), False),
        (cond("attributes.groups", "contains", "oncall"), True),
        (cond("attributes.region", "in", ["us", "eu"]), True),
        (cond("attributes.region", "not_in", ["us", "eu"]), False),
        (cond("attributes.level", "greater_than", 3), True),
        (cond("attributes.level", "less_than", 3), False),
    ],
)
def test_operators(condition, expected):
    assert evaluate_condition(condition, CONTEXT) is expected


def test_missing_values():
    """Absent fields fail positive operators and pass negative ones."""
    assert evaluate_condition(cond("nope", "equals", "x"), CONTEXT) is False
    assert evaluate_condition(cond("nope", "in", ["x"]), CONTEXT) is False
    assert evaluate_condition(cond("nope", "not_equals", "x"), CONTEXT) is True
    assert evaluate_condition(cond("nope", "not_in", ["x"]), CONTEXT) is True
    assert evaluate_condition(cond("nope", "greater_than", 1), CONTEXT) is False


def test_type_mismatch_does_not_compare():
    """Ordering operators never compare a number with a string."""
    assert evaluate_condition(cond("department", "greater_than", 3), CONTEXT) is False
    assert evaluate_condition(cond("attributes.level", "contains", "5"), CONTEXT) is False
    assert evaluate_condition(cond("department", "contains", 5), CONTEXT) is False


def test_contains_matches_substrings_of_strings():
    assert evaluate_condition(cond("department", "contains", "eng"), CONTEXT) is True
    assert evaluate_condition(cond("department", "contains", "sales"), CONTEXT) is False


def test_operand_validation():
    with pytest.raises(ValidationError):
        cond("department", "in", "engineering")
    with pytest.raises(ValidationError):
        cond("attributes.level", "greater_than", True)
    with pytest.raises(ValidationError):
        cond("attributes.groups", "contains", ["staff"])
    with pytest.raises(ValidationError):
        cond("department", "matches", "eng")


def test_evaluate_conditions_all_must_pass():
    conditions = parse_conditions([
        {"field": "department", "operator": "equals", "value": "engineering"},
        {"field": "attributes.level", "operator": "greater_than", "value": 7},
    ])
    assert conditions[0].operator == ConditionOperator.EQUALS
    assert evaluate_conditions(conditions, CONTEXT) is False
    assert evaluate_conditions(conditions[:1], CONTEXT) is True
    assert evaluate_conditions([], CONTEXT) is True
    assert parse_conditions(None) == []
