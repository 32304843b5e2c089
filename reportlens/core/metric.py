"""Metric block and formula definitions, and their computed results."""

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from reportlens.core.fields import FieldRef
from reportlens.core.filters import FilterCondition
from reportlens.core.unit_types import CalculationOperator, UnitType, ValueKind

MetricOp = Literal["count", "sum", "avg", "distinct_count", "latest", "first", "median", "mode"]
MetricType = Literal["sum_over_period", "average_over_period", "latest", "first"]

# camelCase keys accepted from JSON/YAML report payloads
_CAMEL_ALIASES = {
    "leftOperand": "left_operand",
    "rightOperand": "right_operand",
    "resultUnitType": "result_unit_type",
    "unitType": "unit_type",
}


def _snake_case_keys(data):
    if not isinstance(data, dict):
        return data

    data = dict(data)
    for camel, snake in _CAMEL_ALIASES.items():
        if camel not in data:
            continue
        value = data.pop(camel)
        if snake in data and data[snake] != value:
            raise ValueError(f"Cannot specify both {snake}={data[snake]!r} and {camel}={value!r}")
        data[snake] = value
    return data


class MetricBlock(BaseModel):
    """Independently filterable aggregation over the primary object's rows.

    ``op`` aggregates the source field inside each time bucket; ``type`` turns
    the resulting series into the headline value.
    """

    id: str = Field(..., description="Block id, referenced by calculations")
    name: str = Field(..., description="Display name")
    source: FieldRef | None = Field(None, description="Field to aggregate")
    op: MetricOp = Field("sum", description="Aggregation applied inside each bucket")
    type: MetricType = Field("sum_over_period", description="How buckets become the headline value")
    filters: list[FilterCondition] = Field(
        default_factory=list, description="Block-level conditions (combined with AND)"
    )
    unit_type: UnitType | None = Field(None, description="Explicit unit type (inferred when omitted)")

    @model_validator(mode="before")
    @classmethod
    def accept_camel_case(cls, data):
        return _snake_case_keys(data)


class Calculation(BaseModel):
    """Arithmetic between two blocks of a formula."""

    operator: CalculationOperator = Field(..., description="add, subtract, multiply or divide")
    left_operand: str = Field(..., description="Left block id")
    right_operand: str = Field(..., description="Right block id")
    result_unit_type: UnitType | None = Field(None, description="Unit type of the result")

    @model_validator(mode="before")
    @classmethod
    def accept_camel_case(cls, data):
        return _snake_case_keys(data)


class MetricFormula(BaseModel):
    """One or more blocks, optionally combined by a calculation.

    Construction does not check that calculation operands exist; the engine
    reports that as a note. Use ``validate_formula`` for a strict check.
    """

    blocks: list[MetricBlock] = Field(default_factory=list, description="Metric blocks")
    calculation: Calculation | None = Field(None, description="Optional cross-block calculation")

    def get_block(self, block_id: str) -> MetricBlock | None:
        for block in self.blocks:
            if block.id == block_id:
                return block
        return None


@dataclass
class SeriesPoint:
    """Value of one time bucket."""

    date: str
    value: float


@dataclass
class MetricResult:
    """Headline value and series of a metric or formula.

    ``note`` explains a handled failure (value and series are then None).
    """

    value: float | None
    series: list[SeriesPoint] | None
    note: str | None = None
    unit_type: UnitType | None = None
    kind: ValueKind = "number"


@dataclass
class BlockResult:
    block_id: str
    block_name: str
    value: float | None
    series: list[SeriesPoint] | None
    unit_type: UnitType
    note: str | None = None


@dataclass
class FormulaResult:
    result: MetricResult
    block_results: list[BlockResult] = field(default_factory=list)
