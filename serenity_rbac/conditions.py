"""
Attribute conditions.

A condition compares a value looked up in a context (by dotted path)
against a typed operand:

    Condition(field="resource.owner_id", operator="equals", value="u-1")

Conditions are attached to permissions (checked on every authorization)
and to role assignment rules (checked against the principal when a role
is assigned). Each operator is a pure function registered with the
``register_operator`` decorator; operand shapes are validated when the
condition is built, so an operator never silently no-ops on a bad operand.

Missing values:
- equals / in / contains / greater_than / less_than -> False
- not_equals / not_in -> True

``contains`` is a substring test when the looked-up value is a string
and a membership test when it is a list.
"""

from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ConditionOperator(str, Enum):
    """Supported condition operators."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    IN = "in"
    NOT_IN = "not_in"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


# Assignment rules only support membership/equality checks
ASSIGNMENT_OPERATORS = frozenset({
    ConditionOperator.EQUALS,
    ConditionOperator.NOT_EQUALS,
    ConditionOperator.CONTAINS,
    ConditionOperator.IN,
    ConditionOperator.NOT_IN,
})


class _Missing:
    """Sentinel for a path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()

Scalar = str | int | float | bool | None


class Condition(BaseModel):
    """A single typed attribute condition."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    field: str = Field(min_length=1, max_length=200)
    operator: ConditionOperator
    value: Scalar | list[Scalar] = None

    @model_validator(mode="after")
    def validate_operand(self) -> "Condition":
        op = self.operator
        if op in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            if not isinstance(self.value, list):
                raise ValueError(f"operator '{op.value}' requires a list operand")
        elif op in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
            if isinstance(self.value, bool) or not isinstance(self.value, (int, float, str)):
                raise ValueError(f"operator '{op.value}' requires a number or string operand")
        elif op == ConditionOperator.CONTAINS:
            if isinstance(self.value, list):
                raise ValueError("operator 'contains' requires a scalar operand")
        return self


# ============================================================
# PATH RESOLUTION
# ============================================================

def resolve_path(obj: Any, path: str) -> Any:
    """
    Look up a dotted path in nested mappings / attribute objects.

    Returns MISSING as soon as a segment does not resolve.
    """
    current = obj
    for key in path.split("."):
        if current is None or current is MISSING:
            return MISSING
        if isinstance(current, Mapping):
            if key not in current:
                return MISSING
            current = current[key]
        elif isinstance(current, (list, tuple)) and key.isdigit():
            index = int(key)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            current = getattr(current, key, MISSING)
    return current


# ============================================================
# OPERATORS
# ============================================================

OperatorFunc = Callable[[Any, Any], bool]

_OPERATORS: dict[ConditionOperator, OperatorFunc] = {}


def register_operator(op: ConditionOperator) -> Callable[[OperatorFunc], OperatorFunc]:
    """
    Decorator to register an operator implementation.

    Usage:
        @register_operator(ConditionOperator.EQUALS)
        def _equals(actual, expected):
            ...
    """
    def decorator(func: OperatorFunc) -> OperatorFunc:
        _OPERATORS[op] = func
        return func
    return decorator


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _comparable(actual: Any, expected: Any) -> bool:
    if _is_number(actual) and _is_number(expected):
        return True
    return isinstance(actual, str) and isinstance(expected, str)


@register_operator(ConditionOperator.EQUALS)
def _equals(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return False
    return actual == expected


@register_operator(ConditionOperator.NOT_EQUALS)
def _not_equals(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return True
    return actual != expected


@register_operator(ConditionOperator.CONTAINS)
def _contains(actual: Any, expected: Any) -> bool:
    # Substring match on strings, membership on collections
    if isinstance(actual, str):
        return isinstance(expected, str) and expected in actual
    if not isinstance(actual, (list, tuple, set, frozenset)):
        return False
    return expected in actual


@register_operator(ConditionOperator.IN)
def _in(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return False
    return actual in expected


@register_operator(ConditionOperator.NOT_IN)
def _not_in(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return True
    return actual not in expected


@register_operator(ConditionOperator.GREATER_THAN)
def _greater_than(actual: Any, expected: Any) -> bool:
    if not _comparable(actual, expected):
        return False
    return actual > expected


@register_operator(ConditionOperator.LESS_THAN)
def _less_than(actual: Any, expected: Any) -> bool:
    if not _comparable(actual, expected):
        return False
    return actual < expected


# ============================================================
# EVALUATION
# ============================================================

def evaluate_condition(condition: Condition, context: Any) -> bool:
    """Evaluate one condition against a context."""
    actual = resolve_path(context, condition.field)
    return _OPERATORS[condition.operator](actual, condition.value)


def evaluate_conditions(conditions: Iterable[Condition], context: Any) -> bool:
    """True if every condition passes (vacuously true when empty)."""
    return all(evaluate_condition(c, context) for c in conditions)


def parse_conditions(raw: Iterable[Mapping[str, Any] | Condition] | None) -> list[Condition]:
    """Build Condition objects from stored JSON (or pass existing ones through)."""
    if not raw:
        return []
    return [c if isinstance(c, Condition) else Condition.model_validate(c) for c in raw]
