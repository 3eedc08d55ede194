"""Five-field cron matching for Scheduled workflows.

Fields: minute hour day-of-month month day-of-week. Each field accepts ``*``,
numbers, ranges ``a-b``, steps ``*/s`` or ``a-b/s`` and comma lists. Month and
weekday names (``jan``, ``mon``) are accepted; weekday 0 and 7 are Sunday.
When both day-of-month and day-of-week are restricted (neither starts with
``*``), either may match.
"""

from datetime import UTC, datetime
from functools import lru_cache

_MONTHS = {m: i for i, m in enumerate(
    ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"), start=1
)}
_WEEKDAYS = {d: i for i, d in enumerate(("sun", "mon", "tue", "wed", "thu", "fri", "sat"))}

# (min, max, names) per field
_FIELDS = (
    (0, 59, {}),
    (0, 23, {}),
    (1, 31, {}),
    (1, 12, _MONTHS),
    (0, 7, _WEEKDAYS),
)


def _value(token: str, low: int, high: int, names: dict[str, int]) -> int:
    token = token.strip().lower()
    number = names[token] if token in names else None
    if number is None:
        if not token.isdigit():
            raise ValueError(f"Invalid cron value: {token!r}")
        number = int(token)
    if not low <= number <= high:
        raise ValueError(f"Cron value {number} out of range {low}-{high}")
    return number


def _parse_field(expr: str, low: int, high: int, names: dict[str, int]) -> frozenset[int]:
    values: set[int] = set()
    for part in expr.split(","):
        if not part:
            raise ValueError(f"Empty cron list item in {expr!r}")
        base, _, step_text = part.partition("/")
        step = 1
        if step_text:
            if not step_text.isdigit() or int(step_text) == 0:
                raise ValueError(f"Invalid cron step: {part!r}")
            step = int(step_text)
        if base == "*":
            start, end = low, high
        elif "-" in base:
            first, _, last = base.partition("-")
            start, end = _value(first, low, high, names), _value(last, low, high, names)
            if start > end:
                raise ValueError(f"Invalid cron range: {part!r}")
        else:
            start = _value(base, low, high, names)
            end = high if step_text else start
        values.update(range(start, end + 1, step))
    return frozenset(values)


@lru_cache(maxsize=256)
def parse_cron(expression: str) -> tuple[frozenset[int], ...]:
    """Parse a 5-field expression into allowed value sets.

    Raises:
        ValueError: Wrong number of fields or an invalid field.
    """
    parts = expression.split()
    if len(parts) != 5:
        raise ValueError(f"Cron expression must have 5 fields, got {len(parts)}: {expression!r}")
    minutes, hours, days, months, weekdays = (
        _parse_field(part, low, high, names)
        for part, (low, high, names) in zip(parts, _FIELDS, strict=True)
    )
    if 7 in weekdays:
        weekdays = weekdays | {0}
    return minutes, hours, days, months, weekdays


def is_valid_cron(expression: str) -> bool:
    try:
        parse_cron(expression)
    except ValueError:
        return False
    return True


def cron_match(expression: str, dt: datetime) -> bool:
    """Return whether the UTC minute of dt matches the expression.

    Raises:
        ValueError: The expression is invalid.
    """
    minutes, hours, days, months, weekdays = parse_cron(expression)
    current = dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)
    if current.minute not in minutes or current.hour not in hours or current.month not in months:
        return False
    cron_weekday = (current.weekday() + 1) % 7
    # A field starting with "*" (including "*/s") counts as unrestricted.
    fields = expression.split()
    dom_restricted = not fields[2].startswith("*")
    dow_restricted = not fields[4].startswith("*")
    if dom_restricted and dow_restricted:
        return current.day in days or cron_weekday in weekdays
    return current.day in days and cron_weekday in weekdays
