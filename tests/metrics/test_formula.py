"""Test multi-block formulas."""

import pytest

from reportlens.core.formula import (
    apply_series_calculation,
    block_include_set,
    combine,
    compute_block,
    compute_formula,
)
from reportlens.core.metric import Calculation, MetricBlock, MetricFormula, SeriesPoint
from reportlens.diagnostics import Diagnostics

OBJECTS = ["charge"]
FIELDS = ["charge.id", "charge.amount", "charge.status"]


def succeeded(block_id="succeeded", name="Successful"):
    return MetricBlock(
        id=block_id,
        name=name,
        source="charge.id",
        op="count",
        filters=[{"field": "charge.status", "operator": "equals", "value": "succeeded"}],
    )


def total(block_id="total"):
    return MetricBlock(id=block_id, name="All", source="charge.id", op="count")


def volume(block_id="volume"):
    return MetricBlock(id=block_id, name="Volume", source="charge.amount", op="sum")


def run(formula, store, catalog, **kwargs):
    return compute_formula(formula, "2025-01-01", "2025-02-28", "month", store, OBJECTS, FIELDS, catalog, **kwargs)


def test_success_rate(store, catalog):
    """Test a filtered count divided by an unfiltered count."""
    formula = MetricFormula.model_validate(
        {
            "blocks": [
                {
                    "id": "b1",
                    "name": "Successful",
                    "source": {"object": "charge", "field": "id"},
                    "op": "count",
                    "filters": [{"field": "charge.status", "operator": "equals", "value": "succeeded"}],
                },
                {"id": "b2", "name": "All", "source": {"object": "charge", "field": "id"}, "op": "count"},
            ],
            "calculation": {"operator": "divide", "leftOperand": "b1", "rightOperand": "b2", "resultUnitType": "rate"},
        }
    )

    result = run(formula, store, catalog)

    assert result.result.value == pytest.approx(0.7)
    assert [point.date for point in result.result.series] == ["2025-01", "2025-02"]
    assert [point.value for point in result.result.series] == pytest.approx([0.8, 0.6])
    assert result.result.unit_type == "rate"
    assert result.result.note is None
    assert [(b.block_id, b.value) for b in result.block_results] == [("b1", 7), ("b2", 10)]


def test_block_filters_are_independent(store, catalog):
    """Test that one block's filters do not restrict another block."""
    formula = MetricFormula(blocks=[succeeded(), volume()])

    result = run(formula, store, catalog)

    assert result.block_results[0].value == 7
    assert result.block_results[1].value == 17100


def test_block_include_set(store, catalog):
    """Test the keys passing a block's filters."""
    keys = block_include_set(succeeded(), store, OBJECTS, ["charge.id"], catalog)

    assert len(keys) == 7
    assert "charge:ch_03" not in keys
    assert block_include_set(total(), store, OBJECTS, FIELDS, catalog) is None


def test_block_filter_on_joined_field(store, catalog):
    """Test a block filter on a field of a joined object."""
    block = MetricBlock(
        id="de",
        name="German volume",
        source="charge.amount",
        op="sum",
        filters=[{"field": "customer.country", "operator": "equals", "value": "DE"}],
    )
    formula = MetricFormula(blocks=[block])

    result = compute_formula(
        formula, "2025-01-01", "2025-02-28", "month", store, ["charge", "customer"], ["charge.amount"], catalog
    )

    assert result.result.value == 1500 + 500 + 800


def test_global_include_intersects_block_filters(store, catalog):
    """Test that report-level selection and block filters both apply."""
    formula = MetricFormula(
        blocks=[succeeded(), total()],
        calculation=Calculation(operator="divide", left_operand="succeeded", right_operand="total"),
    )

    result = run(formula, store, catalog, include={"charge:ch_01", "charge:ch_03"})

    assert [b.value for b in result.block_results] == [1, 2]
    assert result.result.value == 0.5


def test_unit_mismatch_is_a_note(store, catalog):
    """Test that adding currency to a count is refused with an explanation."""
    diagnostics = Diagnostics()
    formula = MetricFormula(
        blocks=[volume(), total()],
        calculation=Calculation(operator="add", left_operand="volume", right_operand="total"),
    )

    result = run(formula, store, catalog, diagnostics=diagnostics)

    assert result.result.value is None
    assert result.result.series is None
    assert result.result.note == "Addition requires matching unit types. Left is Volume ($), right is Count."
    assert len(result.block_results) == 2
    assert diagnostics.by_code("formula.unit_mismatch")


def test_subtract_matching_units(store, catalog):
    """Test subtraction keeps the operands' unit type."""
    formula = MetricFormula(
        blocks=[total("all"), succeeded()],
        calculation=Calculation(operator="subtract", left_operand="all", right_operand="succeeded"),
    )

    result = run(formula, store, catalog)

    assert result.result.value == 3
    assert [point.value for point in result.result.series] == [1, 2]
    assert result.result.unit_type == "count"


def test_missing_block_is_a_note(store, catalog):
    """Test a calculation naming an unknown block."""
    diagnostics = Diagnostics()
    formula = MetricFormula(
        blocks=[total("a"), total("b")],
        calculation=Calculation(operator="divide", left_operand="a", right_operand="zzz"),
    )

    result = run(formula, store, catalog, diagnostics=diagnostics)

    assert result.result.value is None
    assert result.result.note == "Calculation references missing blocks: a, zzz"
    assert diagnostics.by_code("formula.missing_block")


def test_division_by_zero_bucket_is_zero(store, catalog):
    """Test that a zero denominator bucket yields 0 instead of failing."""
    pending = MetricBlock(
        id="pending",
        name="Pending",
        source="charge.id",
        op="count",
        filters=[{"field": "charge.status", "operator": "equals", "value": "pending"}],
    )
    formula = MetricFormula(
        blocks=[volume(), pending],
        calculation=Calculation(operator="divide", left_operand="volume", right_operand="pending"),
    )

    result = run(formula, store, catalog)

    assert [point.value for point in result.result.series] == [0, 9600]
    assert result.result.value == 17100


def test_missing_operand_value_propagates(store, catalog):
    """Test that a block without data makes the combined value None."""
    disputed = MetricBlock(
        id="disputed",
        name="Disputed",
        source="charge.id",
        op="count",
        filters=[{"field": "charge.status", "operator": "equals", "value": "disputed"}],
    )
    formula = MetricFormula(
        blocks=[total(), disputed],
        calculation=Calculation(operator="divide", left_operand="total", right_operand="disputed"),
    )

    result = run(formula, store, catalog)

    assert result.block_results[1].note == "No data in selection"
    assert result.result.value is None
    assert result.result.series is None


def test_no_blocks(store, catalog):
    """Test an empty formula."""
    result = run(MetricFormula(), store, catalog)

    assert result.result.value is None
    assert result.result.note == "No metric blocks defined"
    assert result.block_results == []


def test_single_block_is_the_result(store, catalog):
    """Test that one block without a calculation is returned as is."""
    result = run(MetricFormula(blocks=[volume()]), store, catalog)

    assert result.result.value == 17100
    assert result.result.unit_type == "currency"
    assert result.result.kind == "currency"


def test_calculation_ignored_with_one_block(store, catalog):
    """Test that a calculation over a single block falls back to that block."""
    formula = MetricFormula(
        blocks=[total("a")],
        calculation=Calculation(operator="divide", left_operand="a", right_operand="b"),
    )

    assert run(formula, store, catalog).result.value == 10


@pytest.mark.parametrize(
    "operator,left,right,expected",
    [("divide", total, total, "count"), ("multiply", volume, total, "currency")],
)
def test_default_result_unit_type(store, catalog, operator, left, right, expected):
    """Test the result unit type when none is given."""
    formula = MetricFormula(
        blocks=[left("l"), right("r")],
        calculation=Calculation(operator=operator, left_operand="l", right_operand="r"),
    )

    assert run(formula, store, catalog).result.unit_type == expected


def test_explicit_block_unit_type(store, catalog):
    """Test that an explicit unit type overrides inference."""
    block = MetricBlock(id="a", name="Amount", source="charge.amount", op="avg", unitType="count")

    result = run(MetricFormula(blocks=[block]), store, catalog)

    assert result.block_results[0].unit_type == "count"
    assert result.result.kind == "number"


def test_camel_and_snake_keys_conflict():
    """Test that conflicting duplicate keys are rejected."""
    with pytest.raises(ValueError):
        Calculation.model_validate(
            {"operator": "add", "left_operand": "a", "leftOperand": "b", "right_operand": "c"}
        )


def test_combine():
    """Test scalar arithmetic."""
    assert combine(6, 3, "add") == 9
    assert combine(6, 3, "subtract") == 3
    assert combine(6, 3, "multiply") == 18
    assert combine(6, 3, "divide") == 2
    assert combine(6, 0, "divide") == 0


def test_series_calculation_union_of_labels():
    """Test labels missing on one side count as 0."""
    left = [SeriesPoint("2025-01", 10), SeriesPoint("2025-03", 4)]
    right = [SeriesPoint("2025-02", 2), SeriesPoint("2025-03", 2)]

    result = apply_series_calculation(left, right, "subtract")

    assert result == [SeriesPoint("2025-01", 10), SeriesPoint("2025-02", -2), SeriesPoint("2025-03", 2)]


def test_compute_block_intersects_include_sets(store, catalog):
    """Test that a block's own filters combine with report-level row keys."""
    us_keys = {f"charge:{charge_id}" for charge_id in ["ch_01", "ch_02", "ch_05", "ch_06", "ch_07", "ch_09", "ch_10"]}

    everywhere = compute_block(succeeded(), "2025-01-01", "2025-02-28", "month", store, OBJECTS, FIELDS, catalog)
    us_only = compute_block(
        succeeded(), "2025-01-01", "2025-02-28", "month", store, OBJECTS, FIELDS, catalog, include=us_keys
    )

    assert everywhere.value == 7
    assert us_only.value == 6
