"""reportlens: in-memory query and aggregation engine for report building."""

__version__ = "0.1.0"

from reportlens.core.catalog import Relationship, SchemaCatalog, SchemaField, SchemaObject
from reportlens.core.fields import FieldRef
from reportlens.core.filters import FilterCondition, FilterGroup, apply_filters, matches_condition
from reportlens.core.metric import Calculation, MetricBlock, MetricFormula, SeriesPoint
from reportlens.core.views import RowView, build_row_views
from reportlens.core.warehouse import Warehouse, WarehouseLoader, load_warehouse
from reportlens.diagnostics import Diagnostics

__all__ = [
    "Calculation",
    "Diagnostics",
    "FieldRef",
    "FilterCondition",
    "FilterGroup",
    "MetricBlock",
    "MetricFormula",
    "Relationship",
    "ReportSpec",
    "RowView",
    "SchemaCatalog",
    "SchemaField",
    "SchemaObject",
    "SeriesPoint",
    "Warehouse",
    "WarehouseLoader",
    "apply_filters",
    "build_row_views",
    "compute_formula",
    "generate_sql",
    "load_warehouse",
    "matches_condition",
    "run_report",
]


def __getattr__(name):  # Lazy import to avoid importing sqlglot on package import
    if name == "generate_sql":
        from reportlens.sql.generator import generate_sql

        return generate_sql
    if name in ("ReportSpec", "run_report"):
        from reportlens.core import report

        return getattr(report, name)
    if name == "compute_formula":
        from reportlens.core.formula import compute_formula

        return compute_formula
    raise AttributeError(name)
