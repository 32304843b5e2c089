"""SQL preview of a report using SQLGlot builder API."""

import re
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from sqlglot import exp, select

from reportlens.core.fields import FieldRef, primary_timestamp_field
from reportlens.core.filters import FilterCondition, FilterGroup
from reportlens.core.metric import MetricBlock

if TYPE_CHECKING:
    from reportlens.core.catalog import SchemaCatalog
    from reportlens.core.report import ReportSpec

EMPTY_SELECTION = "-- Select objects to generate SQL"


def _column(ref: FieldRef) -> exp.Column:
    return exp.column(ref.field, table=ref.object)


def metric_column_name(name: str) -> str:
    """Snake-case a block name for use as a column alias."""
    return re.sub(r"\s+", "_", name.strip().lower())


class SQLGenerator:
    """Renders a report definition as a readable SELECT statement.

    The statement mirrors the report (columns, joins, date range, filters and
    block aggregates). It is a preview for humans; the engine never runs it.
    """

    def __init__(self, catalog: "SchemaCatalog | None" = None, dialect: str = "duckdb"):
        """Initialize SQL generator.

        Args:
            catalog: Catalog providing relationships and timestamp fields
            dialect: SQL dialect for generation (default: duckdb)
        """
        self.catalog = catalog
        self.dialect = dialect

    def generate(self, spec: "ReportSpec") -> str:
        """Generate SQL for a report.

        Args:
            spec: Report definition

        Returns:
            Pretty-printed SQL, or a comment line when no object is selected
        """
        if not spec.selected_objects:
            return EMPTY_SELECTION

        primary = spec.selected_objects[0]
        field_columns = [_column(ref) for ref in spec.selected_fields]
        aggregates = self._aggregates(spec, primary)

        select_exprs: list[Any] = field_columns + aggregates
        if not select_exprs:
            select_exprs = [f"{primary}.*"]

        query = select(*select_exprs).from_(primary)

        joined = {primary}
        for other in spec.selected_objects[1:]:
            query = self._join(query, primary, other, joined)

        ts_column = exp.column(primary_timestamp_field(primary, self.catalog), table=primary)
        conditions = [
            ts_column.copy() >= exp.Literal.string(spec.start.isoformat()),
            ts_column.copy() < exp.Literal.string((spec.end + timedelta(days=1)).isoformat()),
        ]
        filter_condition = self.filter_group(spec.filters)
        if filter_condition is not None:
            conditions.append(filter_condition)
        query = query.where(*conditions)

        if aggregates and field_columns:
            query = query.group_by(*field_columns).order_by(*field_columns)
        elif not aggregates:
            query = query.order_by(exp.Ordered(this=ts_column.copy(), desc=True))

        return query.sql(dialect=self.dialect, pretty=True)

    def _aggregates(self, spec: "ReportSpec", primary: str) -> list[exp.Expression]:
        if spec.formula is None:
            return []

        ts_column = exp.column(primary_timestamp_field(primary, self.catalog), table=primary)
        aggregates = []
        for block in spec.formula.blocks:
            if block.source is None:
                continue
            aggregate = self.aggregate(block, ts_column)
            condition = self.filter_group(FilterGroup(conditions=block.filters, logic="AND"))
            if condition is not None:
                aggregate = exp.Filter(this=aggregate, expression=exp.Where(this=condition))
            aggregates.append(exp.alias_(aggregate, metric_column_name(block.name)))
        return aggregates

    def aggregate(self, block: MetricBlock, ts_column: exp.Column) -> exp.Expression:
        """Build the aggregate expression of a block's operation."""
        column = _column(block.source)
        op = block.op

        if op == "count":
            return exp.Count(this=column)
        if op == "distinct_count":
            return exp.Count(this=exp.Distinct(expressions=[column]))
        if op == "avg":
            return exp.Avg(this=column)
        if op == "median":
            return exp.Median(this=column)
        if op == "mode":
            return exp.func("MODE", column, dialect=self.dialect)
        if op == "latest":
            return exp.ArgMax(this=column, expression=ts_column.copy())
        if op == "first":
            return exp.ArgMin(this=column, expression=ts_column.copy())
        return exp.Sum(this=column)

    def _join(self, query: exp.Select, primary: str, other: str, joined: set[str]) -> exp.Select:
        if other in joined:
            return query

        catalog = self.catalog
        forward = catalog.foreign_key(primary, other) if catalog else None
        reverse = catalog.foreign_key(other, primary) if catalog else None

        if forward:
            on = exp.column(forward, table=primary).eq(exp.column("id", table=other))
            joined.add(other)
            return query.join(other, on=on, join_type="left")

        if reverse:
            on = exp.column(reverse, table=other).eq(exp.column("id", table=primary))
            joined.add(other)
            return query.join(other, on=on, join_type="left")

        if catalog and catalog.get_object(primary) and catalog.get_object(other):
            try:
                path = catalog.find_relationship_path(primary, other)
            except ValueError:
                path = []
            for hop in path:
                if hop.to_object in joined:
                    continue
                on = exp.column(hop.from_key, table=hop.from_object).eq(exp.column(hop.to_key, table=hop.to_object))
                query = query.join(hop.to_object, on=on, join_type="left")
                joined.add(hop.to_object)
            if other in joined:
                return query

        # Naming convention fallback
        on = exp.column(f"{other}_id", table=primary).eq(exp.column("id", table=other))
        joined.add(other)
        return query.join(other, on=on, join_type="left")

    def filter_group(self, group: FilterGroup) -> exp.Expression | None:
        """Combine a filter group into one condition (None when empty)."""
        conditions = [self.condition(condition) for condition in group.conditions]
        if not conditions:
            return None
        if len(conditions) == 1:
            return conditions[0]
        combined = exp.and_(*conditions) if group.logic == "AND" else exp.or_(*conditions)
        return exp.paren(combined)

    def condition(self, condition: FilterCondition) -> exp.Expression:
        """Translate one filter condition into a SQL predicate."""
        column = _column(condition.field)
        operator = condition.operator
        value = condition.value

        if operator == "equals":
            if isinstance(value, (list, tuple)):
                return column.isin(*value) if value else column.is_(exp.null()).not_()
            return column.eq(exp.convert(value))

        if operator == "not_equals":
            if isinstance(value, (list, tuple)):
                return column.isin(*value).not_() if value else column.is_(exp.null())
            return column.neq(exp.convert(value))

        if operator in ("greater_than", "less_than") and not isinstance(value, (list, tuple)):
            literal = exp.convert(value)
            return column > literal if operator == "greater_than" else column < literal

        if operator == "between" and isinstance(value, (list, tuple)) and len(value) == 2:
            return exp.Between(this=column, low=exp.convert(value[0]), high=exp.convert(value[1]))

        if operator == "contains":
            if isinstance(value, str):
                return exp.ILike(this=column, expression=exp.Literal.string(f"%{value}%"))
            if isinstance(value, (list, tuple)) and value:
                likes = [exp.ILike(this=column.copy(), expression=exp.Literal.string(f"%{v}%")) for v in value]
                return exp.paren(exp.or_(*likes))

        if operator == "in" and isinstance(value, (list, tuple)) and value:
            return column.isin(*value)

        if operator == "is_true":
            return column.eq(exp.true())

        if operator == "is_false":
            return column.eq(exp.false())

        return column.is_(exp.null()).not_()


def generate_sql(spec: "ReportSpec", catalog: "SchemaCatalog | None" = None, dialect: str = "duckdb") -> str:
    """Generate a SQL preview of a report.

    Args:
        spec: Report definition
        catalog: Catalog providing relationships and timestamp fields
        dialect: SQL dialect (default: duckdb)

    Returns:
        Pretty-printed SQL string
    """
    return SQLGenerator(catalog, dialect).generate(spec)
