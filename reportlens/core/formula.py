"""Multi-block metric formulas with unit-checked arithmetic."""

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from reportlens.core.fields import FieldRef
from reportlens.core.filters import FilterGroup, apply_filters
from reportlens.core.metric import BlockResult, FormulaResult, MetricBlock, MetricFormula, MetricResult, SeriesPoint
from reportlens.core.metrics import compute_metric
from reportlens.core.time_buckets import Granularity
from reportlens.core.unit_types import (
    CalculationOperator,
    UnitType,
    available_result_unit_types,
    infer_unit_type,
    unit_kind,
    validate_formula_units,
)
from reportlens.core.views import build_row_views, row_key
from reportlens.core.warehouse import Warehouse, as_warehouse
from reportlens.diagnostics import Diagnostics, ensure_diagnostics

if TYPE_CHECKING:
    from reportlens.core.catalog import SchemaCatalog


def combine(left: float, right: float, operator: CalculationOperator) -> float:
    """Apply an operator to two numbers; division by zero yields 0."""
    if operator == "add":
        return left + right
    if operator == "subtract":
        return left - right
    if operator == "multiply":
        return left * right
    if operator == "divide":
        return left / right if right != 0 else 0
    raise ValueError(f"Unknown operator: {operator}")


def apply_series_calculation(
    left: list[SeriesPoint], right: list[SeriesPoint], operator: CalculationOperator
) -> list[SeriesPoint]:
    """Combine two series point by point.

    Labels present in either series are kept, in sorted order. A label missing
    from one side counts as 0 there.

    Example:
        >>> apply_series_calculation([SeriesPoint("2024-01", 10)], [SeriesPoint("2024-01", 0)], "divide")
        [SeriesPoint(date='2024-01', value=0)]
    """
    left_values = {point.date: point.value for point in left}
    right_values = {point.date: point.value for point in right}
    labels = sorted(set(left_values) | set(right_values))

    return [
        SeriesPoint(date=label, value=combine(left_values.get(label, 0), right_values.get(label, 0), operator))
        for label in labels
    ]


def _block_fields(block: MetricBlock, selected_fields: Iterable[Any]) -> list[FieldRef]:
    refs: list[FieldRef] = []
    for ref in selected_fields:
        ref = ref if isinstance(ref, FieldRef) else FieldRef.model_validate(ref)
        if ref not in refs:
            refs.append(ref)
    for condition in block.filters:
        if condition.field not in refs:
            refs.append(condition.field)
    return refs


def block_include_set(
    block: MetricBlock,
    store: "Warehouse | Mapping[str, Any]",
    selected_objects: list[str],
    selected_fields: Iterable[Any],
    catalog: "SchemaCatalog | None" = None,
    diagnostics: Diagnostics | None = None,
) -> set[str] | None:
    """Row keys that pass a block's own filters (None when the block has none)."""
    if not block.filters or not selected_objects:
        return None

    rows = build_row_views(store, selected_objects, _block_fields(block, selected_fields), catalog, diagnostics)
    passed = apply_filters(rows, FilterGroup(conditions=block.filters, logic="AND"))
    return {row_key(row) for row in passed}


def block_unit_type(block: MetricBlock, catalog: "SchemaCatalog | None" = None) -> UnitType:
    """Explicit unit type of a block, or the one inferred from its source."""
    if block.source is not None:
        return block.unit_type or infer_unit_type(block.source.object, block.source.field, block.op, catalog)
    return block.unit_type or "count"


def compute_block(
    block: MetricBlock,
    start: Any,
    end: Any,
    granularity: Granularity,
    store: "Warehouse | Mapping[str, Any]",
    selected_objects: list[str],
    selected_fields: Iterable[Any],
    catalog: "SchemaCatalog | None" = None,
    include: set[str] | None = None,
    diagnostics: Diagnostics | None = None,
) -> BlockResult:
    """Compute one block, restricted to the rows that pass its filters.

    Args:
        block: Block to compute
        start: Range start
        end: Range end (inclusive)
        granularity: Bucket size
        store: Warehouse snapshot or plain mapping
        selected_objects: Selected objects, the first being the primary object
        selected_fields: Selected fields (used to evaluate block filters)
        catalog: Relationships and field types
        include: Row keys allowed by report-level filters (None means all)
        diagnostics: Collector for join warnings

    Returns:
        BlockResult with the block's headline value, series and unit type
    """
    diagnostics = ensure_diagnostics(diagnostics)

    block_include = block_include_set(block, store, selected_objects, selected_fields, catalog, diagnostics)
    if block_include is not None and include is not None:
        allowed: set[str] | None = block_include & include
    elif block_include is not None:
        allowed = block_include
    else:
        allowed = include

    metric = compute_metric(
        block,
        start,
        end,
        granularity,
        store,
        include=allowed,
        catalog=catalog,
        objects=list(selected_objects),
        diagnostics=diagnostics,
    )

    return BlockResult(
        block_id=block.id,
        block_name=block.name,
        value=metric.value,
        series=metric.series,
        unit_type=block_unit_type(block, catalog),
        note=metric.note,
    )


def _failed(note: str) -> MetricResult:
    return MetricResult(value=None, series=None, note=note, kind="number")


def compute_formula(
    formula: MetricFormula,
    start: Any,
    end: Any,
    granularity: Granularity,
    store: "Warehouse | Mapping[str, Any]",
    selected_objects: list[str],
    selected_fields: Iterable[Any],
    catalog: "SchemaCatalog | None" = None,
    include: set[str] | None = None,
    diagnostics: Diagnostics | None = None,
) -> FormulaResult:
    """Compute every block of a formula and combine them.

    Without a calculation (or with a single block) the first block is the
    result. Missing operand blocks and add/subtract unit mismatches are
    reported as a note with a None value and series, never raised.

    The combined scalar is None when either operand value is None; the
    combined series treats missing points as 0.

    Returns:
        FormulaResult with the combined result and each block's result
    """
    diagnostics = ensure_diagnostics(diagnostics)
    warehouse = as_warehouse(store)
    selected_fields = list(selected_fields)

    if not formula.blocks:
        return FormulaResult(result=_failed("No metric blocks defined"), block_results=[])

    block_results = [
        compute_block(
            block, start, end, granularity, warehouse, selected_objects, selected_fields, catalog, include, diagnostics
        )
        for block in formula.blocks
    ]

    calc = formula.calculation
    if calc is None or len(formula.blocks) == 1:
        first = block_results[0]
        return FormulaResult(
            result=MetricResult(
                value=first.value,
                series=first.series,
                note=first.note,
                unit_type=first.unit_type,
                kind=unit_kind(first.unit_type),
            ),
            block_results=block_results,
        )

    by_id = {result.block_id: result for result in block_results}
    left = by_id.get(calc.left_operand)
    right = by_id.get(calc.right_operand)
    if left is None or right is None:
        note = f"Calculation references missing blocks: {calc.left_operand}, {calc.right_operand}"
        diagnostics.warning("formula.missing_block", note, left=calc.left_operand, right=calc.right_operand)
        return FormulaResult(result=_failed(note), block_results=block_results)

    validation = validate_formula_units(calc.operator, left.unit_type, right.unit_type)
    if not validation.valid:
        diagnostics.info("formula.unit_mismatch", validation.error, operator=calc.operator)
        return FormulaResult(result=_failed(validation.error), block_results=block_results)

    if calc.result_unit_type:
        unit_type = calc.result_unit_type
    elif calc.operator in ("add", "subtract"):
        unit_type = left.unit_type
    else:
        unit_type = available_result_unit_types(calc.operator, left.unit_type, right.unit_type)[0]

    value = None
    if left.value is not None and right.value is not None:
        value = combine(left.value, right.value, calc.operator)

    series = None
    if left.series is not None and right.series is not None:
        series = apply_series_calculation(left.series, right.series, calc.operator)

    return FormulaResult(
        result=MetricResult(value=value, series=series, unit_type=unit_type, kind=unit_kind(unit_type)),
        block_results=block_results,
    )
