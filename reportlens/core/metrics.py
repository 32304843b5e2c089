"""Single metric computation: bucketing, per-bucket aggregation and headline values."""

import math
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from reportlens.core.fields import FieldRef
from reportlens.core.metric import MetricBlock, MetricResult, SeriesPoint
from reportlens.core.time_buckets import Granularity, bucket_label, parse_datetime, range_by_granularity, to_date
from reportlens.core.unit_types import ValueKind, infer_unit_type
from reportlens.core.views import RowView, build_row_views, row_key
from reportlens.core.warehouse import Warehouse, as_warehouse
from reportlens.diagnostics import Diagnostics, ensure_diagnostics

if TYPE_CHECKING:
    from reportlens.core.catalog import SchemaCatalog

# Substrings marking a field as a money amount for display purposes
_CURRENCY_NAME_HINTS = ("amount", "price", "unit_amount", "balance", "total", "amount_paid", "amount_due")


def infer_value_kind(object_name: str, field_name: str, catalog: "SchemaCatalog | None" = None) -> ValueKind:
    """Infer how a source field's values should be displayed."""
    if catalog is None:
        return "number"

    lowered = field_name.lower()
    if any(hint in lowered for hint in _CURRENCY_NAME_HINTS):
        return "currency"

    obj = catalog.get_object(object_name)
    field = obj.get_field(field_name) if obj else None
    if field is not None and field.type == "string":
        return "string"
    return "number"


def bucket_rows(
    rows: Iterable[RowView], start: Any, end: Any, granularity: Granularity
) -> dict[str, list[RowView]]:
    """Place rows into time buckets by their timestamp.

    Every bucket of the range exists in the result, empty or not, keyed by
    label in chronological order. The bucket holding ``end`` is always
    included so rows late in the range are never dropped. Rows without a
    timestamp or outside [start, end] (calendar days) are skipped.
    """
    start_day = to_date(start)
    end_day = to_date(end)

    labels = [bucket_label(day, granularity) for day in range_by_granularity(start, end, granularity)]
    if start_day <= end_day:
        labels.append(bucket_label(end_day, granularity))

    buckets: dict[str, list[RowView]] = {label: [] for label in sorted(set(labels))}

    for row in rows:
        day = to_date(row.ts)
        if day is None or day < start_day or day > end_day:
            continue
        bucket = buckets.get(bucket_label(day, granularity))
        if bucket is not None:
            bucket.append(row)

    return buckets


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and math.isnan(value) else value
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def _chronological(rows: list[RowView]) -> list[RowView]:
    return sorted(rows, key=lambda row: parse_datetime(row.ts) or parse_datetime("0001-01-01"))


def apply_operation(rows: list[RowView], source: FieldRef, op: str) -> float | None:
    """Aggregate the source field over the rows of one bucket.

    Args:
        rows: Rows of the bucket
        source: Field to aggregate
        op: count, distinct_count, sum, avg, median, mode, latest or first

    Returns:
        Aggregated value, or None when no row carries a usable value
    """
    if op == "count":
        return len(rows)

    qualified = source.qualified

    if op == "distinct_count":
        return len({row.display.get(qualified) for row in rows if row.display.get(qualified) is not None})

    if op in ("latest", "first"):
        ordered = _chronological(rows)
        if op == "latest":
            ordered.reverse()
        for row in ordered:
            number = _as_number(row.display.get(qualified))
            if number is not None:
                return number
        return None

    values = [number for number in (_as_number(row.display.get(qualified)) for row in rows) if number is not None]
    if not values:
        return None

    if op == "sum":
        return sum(values)

    if op == "avg":
        return sum(values) / len(values)

    if op == "median":
        ordered = sorted(values)
        mid = len(ordered) // 2
        if len(ordered) % 2 == 0:
            return (ordered[mid - 1] + ordered[mid]) / 2
        return ordered[mid]

    if op == "mode":
        counts: dict[float, int] = {}
        for value in values:
            counts[value] = counts.get(value, 0) + 1
        mode, best = None, 0
        for value, count in counts.items():
            if count > best:
                mode, best = value, count
        return mode

    return None


def headline_value(series: list[SeriesPoint], metric_type: str) -> float | None:
    """Reduce a bucket series to the headline value of a metric type.

    ``average_over_period`` averages the non-zero buckets only.
    """
    if metric_type == "sum_over_period":
        return sum(point.value for point in series)

    if metric_type == "average_over_period":
        non_zero = [point.value for point in series if point.value != 0]
        return sum(non_zero) / len(non_zero) if non_zero else None

    if metric_type == "latest":
        return series[-1].value if series else None

    if metric_type == "first":
        return series[0].value if series else None

    return None


def compute_metric(
    block: MetricBlock,
    start: Any,
    end: Any,
    granularity: Granularity,
    store: "Warehouse | Mapping[str, Any]",
    include: set[str] | None = None,
    catalog: "SchemaCatalog | None" = None,
    objects: list[str] | None = None,
    diagnostics: Diagnostics | None = None,
) -> MetricResult:
    """Compute one metric over the primary object's rows.

    Args:
        block: Metric definition (source, op, type)
        start: Range start
        end: Range end (inclusive)
        granularity: Bucket size
        store: Warehouse snapshot or plain mapping
        include: Allowed row keys (``"object:id"``); None means every row
        catalog: Relationships and field types
        objects: Selected objects, the first being the primary object
        diagnostics: Collector for join warnings

    Returns:
        MetricResult with one series point per bucket, or a note explaining why
        nothing could be computed
    """
    diagnostics = ensure_diagnostics(diagnostics)

    source = block.source
    if source is None:
        return MetricResult(value=None, series=None, note="Select a metric source field")

    if objects:
        primary = objects[0]
    elif include:
        primary = next(iter(include)).split(":", 1)[0]
    else:
        primary = source.object

    warehouse = as_warehouse(store)
    if not warehouse.has(primary):
        return MetricResult(value=None, series=None, note=f"No data found for {primary}")

    others = [obj for obj in (objects or [])[1:] if obj != primary]
    rows = build_row_views(warehouse, [primary, *others], [source], catalog, diagnostics)

    if include is not None:
        rows = [row for row in rows if row_key(row) in include]

    if not rows:
        return MetricResult(value=None, series=None, note="No data in selection")

    buckets = bucket_rows(rows, start, end, granularity)
    series = []
    for label, bucket in buckets.items():
        value = apply_operation(bucket, source, block.op)
        series.append(SeriesPoint(date=label, value=value if value is not None else 0))

    diagnostics.debug(
        "metric.computed",
        f"{block.name}: {len(rows)} rows in {len(series)} buckets",
        block=block.id,
        rows=len(rows),
        buckets=len(series),
    )

    return MetricResult(
        value=headline_value(series, block.type),
        series=series,
        unit_type=block.unit_type or infer_unit_type(source.object, source.field, block.op, catalog),
        kind=infer_value_kind(source.object, source.field, catalog),
    )
