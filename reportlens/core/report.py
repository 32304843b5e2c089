"""Report definitions and end-to-end evaluation."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, model_validator

from reportlens.core.fields import FieldRef
from reportlens.core.filters import FilterGroup, apply_filters
from reportlens.core.formula import compute_formula
from reportlens.core.metric import FormulaResult, MetricFormula
from reportlens.core.time_buckets import (
    DEFAULT_MAX_BUCKETS,
    BucketValidation,
    Granularity,
    suggest_granularity,
    validate_granularity_range,
)
from reportlens.core.views import RowView, build_row_views, row_key
from reportlens.core.warehouse import Warehouse, as_warehouse
from reportlens.diagnostics import Diagnostics, ensure_diagnostics

if TYPE_CHECKING:
    from reportlens.core.catalog import SchemaCatalog


class ReportSpec(BaseModel):
    """Everything needed to evaluate a report.

    ``selected_objects[0]`` is the primary object. When ``granularity`` is
    omitted it is suggested from the length of the range.
    """

    selected_objects: list[str] = Field(default_factory=list, description="Objects, primary first")
    selected_fields: list[FieldRef] = Field(default_factory=list, description="Fields shown per row")
    filters: FilterGroup = Field(default_factory=FilterGroup, description="Report-level filters")
    formula: MetricFormula | None = Field(None, description="Metric blocks and calculation")
    start: date = Field(..., description="Range start")
    end: date = Field(..., description="Range end (inclusive)")
    granularity: Granularity | None = Field(None, description="Bucket size")

    @model_validator(mode="before")
    @classmethod
    def accept_camel_case(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            for camel, snake in (("selectedObjects", "selected_objects"), ("selectedFields", "selected_fields")):
                if camel in data and snake not in data:
                    data[snake] = data.pop(camel)
        return data

    @model_validator(mode="after")
    def check_range(self):
        if self.start > self.end:
            raise ValueError(f"start {self.start} is after end {self.end}")
        return self

    @property
    def primary_object(self) -> str | None:
        return self.selected_objects[0] if self.selected_objects else None

    def resolved_granularity(self) -> Granularity:
        return self.granularity or suggest_granularity(self.start, self.end)


@dataclass
class ReportResult:
    rows: list[RowView]
    filtered_rows: list[RowView]
    granularity: Granularity
    bucket_validation: BucketValidation
    formula: FormulaResult | None = None
    diagnostics: list = field(default_factory=list)


def run_report(
    spec: ReportSpec,
    store: "Warehouse | Mapping[str, Any]",
    catalog: "SchemaCatalog | None" = None,
    diagnostics: Diagnostics | None = None,
    max_buckets: int = DEFAULT_MAX_BUCKETS,
) -> ReportResult:
    """Evaluate a report: build rows, apply report filters and compute the formula.

    Rows carry the selected fields plus any field a report filter reads.
    Report-level filters restrict the rows every block aggregates over. The
    formula is still computed when the bucket count exceeds ``max_buckets``;
    the advisory is returned for the caller to act on.

    Args:
        spec: Report definition
        store: Warehouse snapshot or plain mapping
        catalog: Relationships and field types
        diagnostics: Collector for engine events
        max_buckets: Bucket count above which the range is flagged

    Returns:
        ReportResult with rows, filtered rows, formula result and bucket advisory
    """
    diagnostics = ensure_diagnostics(diagnostics)
    warehouse = as_warehouse(store)
    granularity = spec.resolved_granularity()

    validation = validate_granularity_range(spec.start, spec.end, granularity, max_buckets)
    if not validation.valid:
        diagnostics.warning("report.too_many_buckets", validation.warning, bucket_count=validation.bucket_count)

    fields = list(spec.selected_fields)
    for condition in spec.filters.conditions:
        if condition.field not in fields:
            fields.append(condition.field)

    rows = build_row_views(warehouse, spec.selected_objects, fields, catalog, diagnostics)
    filtered = apply_filters(rows, spec.filters)

    formula_result = None
    if spec.formula is not None:
        include = {row_key(row) for row in filtered} if spec.filters.conditions else None
        formula_result = compute_formula(
            spec.formula,
            spec.start,
            spec.end,
            granularity,
            warehouse,
            spec.selected_objects,
            spec.selected_fields,
            catalog=catalog,
            include=include,
            diagnostics=diagnostics,
        )

    return ReportResult(
        rows=rows,
        filtered_rows=filtered,
        granularity=granularity,
        bucket_validation=validation,
        formula=formula_result,
        diagnostics=list(diagnostics.events),
    )
