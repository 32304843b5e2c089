"""Filter conditions and boolean filter groups over row views."""

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

from reportlens.core.fields import FieldRef
from reportlens.core.time_buckets import parse_datetime

if TYPE_CHECKING:
    from reportlens.core.views import RowView

FilterOperator = Literal[
    "equals",
    "not_equals",
    "greater_than",
    "less_than",
    "between",
    "contains",
    "in",
    "is_true",
    "is_false",
]


class FilterCondition(BaseModel):
    """Single predicate on a qualified field."""

    field: FieldRef = Field(..., description="Field the condition applies to")
    operator: FilterOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Operand (list for between/in, optional for is_true/is_false)")


class FilterGroup(BaseModel):
    """Conditions combined with AND or OR. No conditions matches every row."""

    conditions: list[FilterCondition] = Field(default_factory=list, description="Conditions to evaluate")
    logic: Literal["AND", "OR"] = Field("AND", description="How conditions are combined")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_number(value: Any) -> float | None:
    if _is_number(value):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _strict_equals(left: Any, right: Any) -> bool:
    # Booleans only ever equal booleans (True is not 1)
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    return left == right


def _equals(row_value: Any, value: Any) -> bool:
    row_date = parse_datetime(row_value)
    value_date = parse_datetime(value)
    if row_date is not None and value_date is not None:
        return row_date.date() == value_date.date()
    return _strict_equals(row_value, value)


def matches_condition(row_value: Any, condition: FilterCondition) -> bool:
    """Test a row value against a condition.

    A missing (None) row value never matches, whatever the operator,
    ``not_equals`` included.
    """
    if row_value is None:
        return False

    operator = condition.operator
    value = condition.value

    if operator == "equals":
        return _equals(row_value, value)

    if operator == "not_equals":
        return not _equals(row_value, value)

    if operator in ("greater_than", "less_than"):
        row_date = parse_datetime(row_value)
        value_date = parse_datetime(value)
        if row_date is not None and value_date is not None:
            return row_date > value_date if operator == "greater_than" else row_date < value_date

        limit = _as_number(value)
        if not _is_number(row_value) or limit is None:
            return False
        return row_value > limit if operator == "greater_than" else row_value < limit

    if operator == "between":
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            return False
        low, high = value

        row_date = parse_datetime(row_value)
        low_date = parse_datetime(low)
        high_date = parse_datetime(high)
        if row_date is not None and low_date is not None and high_date is not None:
            return low_date <= row_date <= high_date

        if _is_number(row_value) and _is_number(low) and _is_number(high):
            return low <= row_value <= high
        return False

    if operator == "contains":
        if not isinstance(row_value, str):
            return False
        haystack = row_value.lower()
        if isinstance(value, str):
            return value.lower() in haystack
        if isinstance(value, (list, tuple)):
            return any(isinstance(v, str) and v.lower() in haystack for v in value)
        return False

    if operator == "in":
        if isinstance(value, (list, tuple, set)):
            return any(_strict_equals(row_value, v) for v in value)
        return False

    if operator == "is_true":
        return row_value is True

    if operator == "is_false":
        return row_value is False

    return False


def get_field_value(row: "RowView", field: FieldRef) -> Any:
    """Get a field from a row view by qualified name (None when absent)."""
    return row.display.get(field.qualified)


def row_matches(row: "RowView", group: FilterGroup) -> bool:
    results = (matches_condition(get_field_value(row, c.field), c) for c in group.conditions)
    if group.logic == "AND":
        return all(results)
    return any(results)


def apply_filters(rows: Iterable["RowView"], group: FilterGroup) -> list["RowView"]:
    """Keep the rows that satisfy a filter group.

    Args:
        rows: Row views to filter
        group: Conditions and AND/OR logic

    Returns:
        Matching rows in their original order (all rows when there are no conditions)
    """
    rows = list(rows)
    if not group.conditions:
        return rows
    return [row for row in rows if row_matches(row, group)]
