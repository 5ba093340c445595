"""Condition interpreter for conditional permissions.

A permission may carry an ordered list of conditions, each a
(field, operator, value) triple. Conditions are parsed into Condition
objects and evaluated by a dispatch table keyed on ConditionOperator, so a
new operator is one entry in OPERATORS and never touches the evaluator.

Semantics:
- All conditions of one permission must hold (conjunction).
- An unknown operator never holds.
- in / not_in require a list operand.
- contains / starts_with / ends_with require a string value and operand.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union
from uuid import UUID

from .errors import EvaluationFailure


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"


def _normalize(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _both_str(value: Any, operand: Any) -> bool:
    return isinstance(value, str) and isinstance(operand, str)


def _is_list(operand: Any) -> bool:
    return isinstance(operand, (list, tuple))


OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: lambda value, operand: value == operand,
    ConditionOperator.NOT_EQUALS: lambda value, operand: value != operand,
    ConditionOperator.IN: lambda value, operand: _is_list(operand) and value in [_normalize(o) for o in operand],
    ConditionOperator.NOT_IN: lambda value, operand: _is_list(operand) and value not in [_normalize(o) for o in operand],
    ConditionOperator.CONTAINS: lambda value, operand: _both_str(value, operand) and operand in value,
    ConditionOperator.STARTS_WITH: lambda value, operand: _both_str(value, operand) and value.startswith(operand),
    ConditionOperator.ENDS_WITH: lambda value, operand: _both_str(value, operand) and value.endswith(operand),
}


@dataclass(frozen=True)
class Condition:
    """One predicate over the access context.

    operator is None when the stored operator name is not a known
    ConditionOperator; such a condition evaluates to False.
    """
    field: str
    operator: Optional[ConditionOperator]
    value: Any
    raw_operator: str = ""

    @classmethod
    def parse(cls, data: Union["Condition", Mapping[str, Any]]) -> "Condition":
        """Build a Condition from its stored mapping form.

        Raises:
            EvaluationFailure: If the mapping has no field or operator
        """
        if isinstance(data, Condition):
            return data
        if not isinstance(data, Mapping):
            raise EvaluationFailure(f"Malformed condition: {data!r}")
        field = data.get("field")
        raw_operator = data.get("operator")
        if not isinstance(field, str) or not field or not isinstance(raw_operator, str):
            raise EvaluationFailure(f"Malformed condition: {dict(data)!r}")
        try:
            operator = ConditionOperator(raw_operator)
        except ValueError:
            operator = None
        return cls(field=field, operator=operator, value=data.get("value"), raw_operator=raw_operator)

    def evaluate(self, value: Any) -> bool:
        if self.operator is None:
            return False
        return bool(OPERATORS[self.operator](_normalize(value), _normalize(self.value)))

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "operator": self.operator.value if self.operator else self.raw_operator,
            "value": self.value,
        }


def parse_conditions(raw: Optional[Iterable[Any]]) -> List[Condition]:
    """Parse a stored condition list; None and {} mean "no conditions".

    Raises:
        EvaluationFailure: If the stored value is not a list of conditions
    """
    if raw is None or raw == {}:
        return []
    if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple)):
        raise EvaluationFailure(f"Conditions must be a list, got {type(raw).__name__}")
    return [Condition.parse(item) for item in raw]


def evaluate_conditions(conditions: Iterable[Condition], resolve: Callable[[str], Any]) -> bool:
    """True iff every condition holds for the values returned by resolve(field)."""
    return all(condition.evaluate(resolve(condition.field)) for condition in conditions)
