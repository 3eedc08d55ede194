"""Condition evaluator: pure function over an immutable entity snapshot.

Reads only the snapshot (and, for the changed* operators, the previous
snapshot of an update). Never touches a repository.

Comparison rules:
- equals / in: case-insensitive for strings; numeric strings compare as Decimal.
- greater_than / less_than / between: Decimal first, then ISO-8601 datetimes;
  a null field never satisfies an ordered comparison.
- contains / starts_with / ends_with: case-insensitive substring; contains on a
  list field tests membership.
- A field missing from the snapshot, or operands that cannot be compared,
  raise ConditionEvaluationError.
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from crmflow.application.dtos.matching import ConditionProof
from crmflow.domain.enums import ConditionLogic, ConditionOperator
from crmflow.domain.exceptions import ConditionEvaluationError
from crmflow.domain.value_objects.conditions import ConditionSet, FieldCondition
from crmflow.shared.utils.datetime import ensure_utc, parse_iso_datetime
from crmflow.shared.utils.serialization import to_jsonable

MISSING = object()

_ORDERED = {
    ConditionOperator.GREATER_THAN: lambda c: c > 0,
    ConditionOperator.GREATER_THAN_OR_EQUAL: lambda c: c >= 0,
    ConditionOperator.LESS_THAN: lambda c: c < 0,
    ConditionOperator.LESS_THAN_OR_EQUAL: lambda c: c <= 0,
}


def resolve_field(snapshot: Mapping[str, Any], path: str) -> Any:
    """Return the value at a dotted path, or MISSING if any segment is absent."""
    current: Any = snapshot
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return MISSING
        current = current[part]
    return current


def _to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int | float):
        value = str(value)
    if isinstance(value, str):
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return ensure_utc(datetime(value.year, value.month, value.day))
    if isinstance(value, str):
        return parse_iso_datetime(value)
    return None


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().casefold()


def _equals(actual: Any, expected: Any) -> bool:
    if actual is None or expected is None:
        return actual is None and expected is None
    if isinstance(actual, list | tuple) or isinstance(expected, list | tuple):
        if not isinstance(actual, list | tuple) or not isinstance(expected, list | tuple):
            return False
        return len(actual) == len(expected) and all(
            _equals(a, e) for a, e in zip(actual, expected, strict=True)
        )
    left, right = _to_decimal(actual), _to_decimal(expected)
    if left is not None and right is not None:
        return left == right
    return _text(actual) == _text(expected)


def _compare(condition: FieldCondition, actual: Any, expected: Any) -> int:
    """Three-way compare as numbers, else as datetimes; raise on mismatch."""
    left, right = _to_decimal(actual), _to_decimal(expected)
    if left is not None and right is not None:
        return (left > right) - (left < right)
    left_dt, right_dt = _to_datetime(actual), _to_datetime(expected)
    if left_dt is not None and right_dt is not None:
        return (left_dt > right_dt) - (left_dt < right_dt)
    raise ConditionEvaluationError(
        condition.field,
        condition.operator.value,
        f"cannot compare {actual!r} with {expected!r}",
    )


def _options(condition: FieldCondition) -> list[Any]:
    value = condition.value
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, Iterable):
        return list(value)
    raise ConditionEvaluationError(
        condition.field, condition.operator.value, "value must be a list"
    )


def _require_value(condition: FieldCondition) -> Any:
    if condition.value is None:
        raise ConditionEvaluationError(
            condition.field, condition.operator.value, "condition value is required"
        )
    return condition.value


def _text_match(condition: FieldCondition, actual: Any) -> bool:
    expected = _text(_require_value(condition))
    if actual is None:
        return False
    if isinstance(actual, Mapping):
        raise ConditionEvaluationError(
            condition.field, condition.operator.value, "field is an object"
        )
    if condition.operator in (ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS):
        if isinstance(actual, list | tuple):
            found = any(_equals(item, condition.value) for item in actual)
        else:
            found = expected in _text(actual)
        return found if condition.operator is ConditionOperator.CONTAINS else not found
    if condition.operator is ConditionOperator.STARTS_WITH:
        return _text(actual).startswith(expected)
    return _text(actual).endswith(expected)


def _between(condition: FieldCondition, actual: Any) -> bool:
    value = _require_value(condition)
    bounds = [b.strip() for b in value.split(",")] if isinstance(value, str) else list(value)
    if len(bounds) != 2:
        raise ConditionEvaluationError(
            condition.field, condition.operator.value, "between requires [min, max]"
        )
    if actual is None:
        return False
    return _compare(condition, actual, bounds[0]) >= 0 and _compare(condition, actual, bounds[1]) <= 0


def evaluate_condition(
    condition: FieldCondition,
    snapshot: Mapping[str, Any],
    previous_snapshot: Mapping[str, Any] | None = None,
) -> ConditionProof:
    """Evaluate one condition and return its proof.

    Raises:
        ConditionEvaluationError: Field missing from the snapshot, or operands not comparable.
    """
    actual = resolve_field(snapshot, condition.field)
    if actual is MISSING:
        raise ConditionEvaluationError(
            condition.field, condition.operator.value, "field not present in snapshot"
        )
    op = condition.operator

    if op is ConditionOperator.EQUALS:
        passed = _equals(actual, condition.value)
    elif op is ConditionOperator.NOT_EQUALS:
        passed = not _equals(actual, condition.value)
    elif op in (
        ConditionOperator.CONTAINS,
        ConditionOperator.NOT_CONTAINS,
        ConditionOperator.STARTS_WITH,
        ConditionOperator.ENDS_WITH,
    ):
        passed = _text_match(condition, actual)
    elif op in _ORDERED:
        expected = _require_value(condition)
        passed = actual is not None and _ORDERED[op](_compare(condition, actual, expected))
    elif op is ConditionOperator.IS_NULL:
        passed = actual is None
    elif op is ConditionOperator.IS_NOT_NULL:
        passed = actual is not None
    elif op in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        found = actual is not None and any(_equals(actual, o) for o in _options(condition))
        passed = found if op is ConditionOperator.IN else not found
    elif op is ConditionOperator.BETWEEN:
        passed = _between(condition, actual)
    else:
        passed = _changed(condition, actual, previous_snapshot)

    return ConditionProof(
        field=condition.field,
        operator=op.value,
        expected=to_jsonable(condition.value),
        actual=to_jsonable(actual),
        passed=passed,
    )


def _changed(
    condition: FieldCondition, actual: Any, previous_snapshot: Mapping[str, Any] | None
) -> bool:
    if previous_snapshot is None:
        return False
    before = resolve_field(previous_snapshot, condition.field)
    if before is MISSING:
        before = None
    if _equals(actual, before):
        return False
    if condition.operator is ConditionOperator.CHANGED_TO:
        return _equals(actual, condition.value)
    if condition.operator is ConditionOperator.CHANGED_FROM:
        return _equals(before, condition.value)
    return True


def evaluate_with_proof(
    snapshot: Mapping[str, Any],
    condition_set: ConditionSet,
    previous_snapshot: Mapping[str, Any] | None = None,
) -> tuple[bool, tuple[ConditionProof, ...]]:
    """Evaluate a condition set, short-circuiting; proof covers evaluated conditions only.

    Raises:
        ConditionEvaluationError: A reached condition could not be evaluated.
    """
    if condition_set.is_empty:
        return True, ()
    proof: list[ConditionProof] = []
    want_all = condition_set.logic is ConditionLogic.AND
    for condition in condition_set.conditions:
        result = evaluate_condition(condition, snapshot, previous_snapshot)
        proof.append(result)
        if want_all and not result.passed:
            return False, tuple(proof)
        if not want_all and result.passed:
            return True, tuple(proof)
    return want_all, tuple(proof)


def evaluate(
    snapshot: Mapping[str, Any],
    conditions: Iterable[FieldCondition],
    logic: ConditionLogic | str = ConditionLogic.AND,
    previous_snapshot: Mapping[str, Any] | None = None,
) -> bool:
    """Return whether the conditions hold for the snapshot under logic."""
    condition_set = ConditionSet(logic=ConditionLogic.parse(logic), conditions=tuple(conditions))
    matched, _ = evaluate_with_proof(snapshot, condition_set, previous_snapshot)
    return matched
