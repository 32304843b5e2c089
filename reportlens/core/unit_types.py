"""Unit types for metric blocks and cross-block arithmetic."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from reportlens.core.catalog import SchemaCatalog

UnitType = Literal["count", "currency", "date", "rate"]
CalculationOperator = Literal["add", "subtract", "multiply", "divide"]
ValueKind = Literal["currency", "number", "string"]

# Monetary amounts, stored in cents
CURRENCY_FIELDS = frozenset(
    {
        "amount",
        "unit_amount",
        "amount_received",
        "amount_refunded",
        "amount_captured",
        "balance",
        "amount_due",
        "subtotal",
        "total",
        "starting_balance",
        "ending_balance",
    }
)

DATE_FIELDS = frozenset(
    {
        "created",
        "updated",
        "canceled_at",
        "current_period_start",
        "current_period_end",
        "trial_start",
        "trial_end",
        "paid_at",
    }
)

UNIT_LABELS: dict[str, str] = {
    "currency": "Volume ($)",
    "count": "Count",
    "date": "Date/Timestamp",
    "rate": "Rate (%)",
}


def infer_unit_type(
    object_name: str, field_name: str, op: str, catalog: "SchemaCatalog | None" = None
) -> UnitType:
    """Infer the unit type of a block from its source field and operation.

    Count operations are always ``count``. Otherwise known currency and date
    field names win, then the catalog field type, then ``count``.
    """
    if op in ("count", "distinct_count"):
        return "count"

    if field_name in CURRENCY_FIELDS:
        return "currency"

    if field_name in DATE_FIELDS:
        return "date"

    if catalog is not None:
        obj = catalog.get_object(object_name)
        field = obj.get_field(field_name) if obj else None
        if field is not None and field.type == "date":
            return "date"

    return "count"


def unit_label(unit_type: UnitType) -> str:
    return UNIT_LABELS[unit_type]


@dataclass
class UnitValidation:
    valid: bool
    error: str | None = None


def validate_formula_units(operator: CalculationOperator, left: UnitType, right: UnitType) -> UnitValidation:
    """Check that two operand unit types can be combined.

    Addition and subtraction require matching unit types. Multiplication and
    division accept any combination.
    """
    if operator in ("add", "subtract") and left != right:
        verb = "Addition" if operator == "add" else "Subtraction"
        return UnitValidation(
            valid=False,
            error=(
                f"{verb} requires matching unit types. "
                f"Left is {unit_label(left)}, right is {unit_label(right)}."
            ),
        )
    return UnitValidation(valid=True)


def available_result_unit_types(operator: CalculationOperator, left: UnitType, right: UnitType) -> list[UnitType]:
    """Unit types a calculation result may be displayed as.

    Examples:
        >>> available_result_unit_types("divide", "count", "count")
        ['count', 'rate']
        >>> available_result_unit_types("add", "currency", "currency")
        ['currency']
    """
    if operator in ("add", "subtract"):
        return [left]

    options: list[UnitType] = [left]
    if right != left:
        options.append(right)
    if "rate" not in options:
        options.append("rate")
    return options


def unit_kind(unit_type: UnitType | None) -> ValueKind:
    """Map a unit type to the display kind used by charts and tables."""
    return "currency" if unit_type == "currency" else "number"


def format_value_by_unit(value: float | None, unit_type: UnitType) -> str:
    """Format a value for display.

    Currency values are cents and are shown as dollars.

    Examples:
        >>> format_value_by_unit(123456, "currency")
        '$1,234.56'
        >>> format_value_by_unit(0.7, "rate")
        '70.00%'
    """
    if value is None:
        return "N/A"

    if unit_type == "currency":
        return f"${value / 100:,.2f}"

    if unit_type == "rate":
        return f"{value * 100:.2f}%"

    if unit_type == "date":
        return datetime.fromtimestamp(value, tz=timezone.utc).date().isoformat()

    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")
