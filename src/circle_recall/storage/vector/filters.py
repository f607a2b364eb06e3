"""
Metadata filter parsing for vector queries.

Callers express filters as a dict, one entry per metadata key, combined
conjunctively:

    {"type": "location"}                                   # equality
    {"type": {"$in": ["health", "location"]}}              # inclusion
    {"timestamp": {"$gte": "2024-01-01", "$lt": "2024-02-01"}}
    {"$and": [{"activity": "running"}, {"steps": {"$gt": 1000}}]}

Against list-valued metadata (e.g. ``participants``) equality and inclusion
match when any element matches.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from circle_recall.errors import ValidationError
from circle_recall.models import OWNER_KEY

EQUALITY_OPS = ("$eq", "$ne")
MEMBERSHIP_OPS = ("$in", "$nin")
RANGE_OPS = ("$gt", "$gte", "$lt", "$lte")
SUPPORTED_OPS = EQUALITY_OPS + MEMBERSHIP_OPS + RANGE_OPS

Scalar = Union[str, int, float, bool]


@dataclass(frozen=True)
class Condition:
    key: str
    op: str
    value: Any


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _parse_entry(key: str, clause: Any) -> List[Condition]:
    if not isinstance(key, str) or not key:
        raise ValidationError(f"Filter keys must be non-empty strings, got {key!r}")

    if _is_scalar(clause):
        return [Condition(key, "$eq", clause)]

    if not isinstance(clause, Mapping) or not clause:
        raise ValidationError(f"Filter for '{key}' must be a scalar or a non-empty operator dict")

    conditions = []
    for op, value in clause.items():
        if op not in SUPPORTED_OPS:
            raise ValidationError(f"Unsupported filter operator '{op}' on '{key}'")

        if op in EQUALITY_OPS:
            if not _is_scalar(value):
                raise ValidationError(f"'{op}' on '{key}' needs a scalar value")
        elif op in MEMBERSHIP_OPS:
            if (
                not isinstance(value, (list, tuple))
                or not value
                or not all(_is_scalar(v) for v in value)
            ):
                raise ValidationError(f"'{op}' on '{key}' needs a non-empty list of scalars")
            value = list(value)
        else:
            if isinstance(value, bool) or not isinstance(value, (int, float, str)):
                raise ValidationError(f"'{op}' on '{key}' needs a number or ISO date string")

        conditions.append(Condition(key, op, value))

    return conditions


def parse_filter(raw: Optional[Mapping[str, Any]]) -> List[Condition]:
    """
    Parse a caller filter into a flat list of conditions.

    Raises:
        ValidationError: If the filter is malformed
    """
    if raw is None:
        return []
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Filter must be a dict, got {type(raw).__name__}")

    conditions: List[Condition] = []
    for key, clause in raw.items():
        if key == "$and":
            if not isinstance(clause, (list, tuple)):
                raise ValidationError("'$and' needs a list of filters")
            for sub_filter in clause:
                conditions.extend(parse_filter(sub_filter))
        else:
            conditions.extend(_parse_entry(key, clause))
    return conditions


def owner_conditions(owner_scope: Union[str, Sequence[str]]) -> List[Condition]:
    """
    Build the owner restriction for a query.

    A single identity becomes an equality condition, a sequence becomes an
    inclusion condition.

    Raises:
        ValidationError: If the scope is empty
    """
    if isinstance(owner_scope, str):
        if not owner_scope:
            raise ValidationError("Owner scope must not be empty")
        return [Condition(OWNER_KEY, "$eq", owner_scope)]

    owners = list(dict.fromkeys(owner_scope))
    if not owners or not all(isinstance(o, str) and o for o in owners):
        raise ValidationError("Owner scope must be a non-empty list of identities")
    return [Condition(OWNER_KEY, "$in", owners)]


def _compare(left: Any, right: Any) -> Optional[int]:
    """Three-way compare, parsing ISO datetimes when both sides are strings."""
    if isinstance(left, str) and isinstance(right, str):
        try:
            left, right = datetime.fromisoformat(left), datetime.fromisoformat(right)
        except ValueError:
            pass
        try:
            return (left > right) - (left < right)
        except TypeError:
            # naive vs aware datetimes
            return None
    if isinstance(left, bool) or isinstance(right, bool):
        return None
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return (left > right) - (left < right)
    return None


def _values(payload_value: Any) -> Iterable[Any]:
    if isinstance(payload_value, (list, tuple)):
        return payload_value
    return [payload_value]


def condition_matches(payload: Mapping[str, Any], condition: Condition) -> bool:
    present = condition.key in payload
    actual = payload.get(condition.key)

    if condition.op == "$eq":
        return present and condition.value in _values(actual)
    if condition.op == "$ne":
        return not (present and condition.value in _values(actual))
    if condition.op == "$in":
        return present and any(v in condition.value for v in _values(actual))
    if condition.op == "$nin":
        return not (present and any(v in condition.value for v in _values(actual)))

    if not present or isinstance(actual, (list, tuple)):
        return False
    result = _compare(actual, condition.value)
    if result is None:
        return False
    if condition.op == "$gt":
        return result > 0
    if condition.op == "$gte":
        return result >= 0
    if condition.op == "$lt":
        return result < 0
    return result <= 0


def matches_all(payload: Mapping[str, Any], conditions: Sequence[Condition]) -> bool:
    return all(condition_matches(payload, condition) for condition in conditions)
