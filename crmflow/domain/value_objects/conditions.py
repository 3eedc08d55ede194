"""Condition value objects: one flat list of field comparisons per rule.

Payload shape (stored on the rule, parsed once when the rule is loaded):

    {"logic": "and", "conditions": [{"field": "priority", "operator": "equals", "value": "Low"}]}

A bare list of conditions is also accepted; logic then comes from the rule's
condition_logic column. Keys may be lowercase or PascalCase.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from crmflow.domain.enums import ConditionLogic, ConditionOperator
from crmflow.domain.exceptions import ValidationException

# Operators that ignore the condition value.
UNARY_OPERATORS = frozenset({
    ConditionOperator.IS_NULL,
    ConditionOperator.IS_NOT_NULL,
    ConditionOperator.CHANGED,
})
# Operators whose value is a list (JSON array or comma-separated string).
LIST_OPERATORS = frozenset({ConditionOperator.IN, ConditionOperator.NOT_IN})


def _freeze(value: Any) -> Any:
    """Turn JSON lists into tuples so conditions stay immutable."""
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _pick(raw: dict[str, Any], key: str) -> Any:
    if key in raw:
        return raw[key]
    return raw.get(key.capitalize())


@dataclass(frozen=True)
class FieldCondition:
    """One comparison: snapshot[field] <operator> value."""

    field: str
    operator: ConditionOperator
    value: Any = None

    @classmethod
    def from_dict(cls, raw: Any, index: int = 0) -> "FieldCondition":
        """Parse one condition dict. Raises ValidationException when malformed."""
        if not isinstance(raw, dict):
            raise ValidationException(
                f"Condition #{index} must be an object", field=f"conditions[{index}]"
            )
        field_name = _pick(raw, "field")
        if not isinstance(field_name, str) or not field_name.strip():
            raise ValidationException(
                f"Condition #{index} requires a non-empty 'field'",
                field=f"conditions[{index}].field",
            )
        try:
            operator = ConditionOperator.parse(_pick(raw, "operator"))
        except ValueError as e:
            raise ValidationException(str(e), field=f"conditions[{index}].operator") from e
        value = _freeze(_pick(raw, "value"))
        if operator in LIST_OPERATORS and not isinstance(value, (tuple, str)):
            raise ValidationException(
                f"Condition #{index} ({operator.value}) requires a list value",
                field=f"conditions[{index}].value",
            )
        if operator is ConditionOperator.BETWEEN:
            bounds = value.split(",") if isinstance(value, str) else value
            if not isinstance(bounds, tuple | list) or len(bounds) != 2:
                raise ValidationException(
                    f"Condition #{index} (between) requires [min, max]",
                    field=f"conditions[{index}].value",
                )
        if operator not in UNARY_OPERATORS and operator not in LIST_OPERATORS:
            if operator is not ConditionOperator.BETWEEN and isinstance(value, tuple):
                raise ValidationException(
                    f"Condition #{index} ({operator.value}) does not accept a list value",
                    field=f"conditions[{index}].value",
                )
        return cls(field=field_name.strip(), operator=operator, value=value)

    def to_dict(self) -> dict[str, Any]:
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return {"field": self.field, "operator": self.operator.value, "value": value}


@dataclass(frozen=True)
class ConditionSet:
    """Flat condition list plus its combining logic. Empty always matches."""

    logic: ConditionLogic = ConditionLogic.AND
    conditions: tuple[FieldCondition, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.conditions

    def to_dict(self) -> dict[str, Any]:
        return {
            "logic": self.logic.value,
            "conditions": [c.to_dict() for c in self.conditions],
        }


def parse_condition_set(
    raw: Any, default_logic: ConditionLogic | str = ConditionLogic.AND
) -> ConditionSet:
    """Parse a stored condition payload into a ConditionSet.

    Args:
        raw: None, JSON string, list of condition dicts, or {"logic", "conditions"} dict.
        default_logic: Logic used when the payload does not carry one.

    Raises:
        ValidationException: Payload is not valid JSON or a condition is malformed.
    """
    try:
        logic = ConditionLogic.parse(default_logic)
    except ValueError as e:
        raise ValidationException(str(e), field="condition_logic") from e
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return ConditionSet(logic=logic)
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationException(
                f"Conditions are not valid JSON: {e.msg}", field="conditions"
            ) from e
    if isinstance(raw, dict):
        if "logic" in raw or "Logic" in raw:
            try:
                logic = ConditionLogic.parse(_pick(raw, "logic"))
            except ValueError as e:
                raise ValidationException(str(e), field="logic") from e
        items = _pick(raw, "conditions")
        if items is None:
            items = []
    else:
        items = raw
    if not isinstance(items, list):
        raise ValidationException("Conditions must be a list", field="conditions")
    return ConditionSet(
        logic=logic,
        conditions=tuple(FieldCondition.from_dict(c, i) for i, c in enumerate(items)),
    )
