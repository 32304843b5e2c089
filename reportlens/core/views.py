"""Join resolution: normalized entity tables to flat, qualified row views."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import TYPE_CHECKING, Any, Literal

from reportlens.core.fields import FieldRef, pick_timestamp
from reportlens.core.time_buckets import to_date
from reportlens.core.warehouse import Record, Warehouse, as_warehouse
from reportlens.diagnostics import Diagnostics, ensure_diagnostics

if TYPE_CHECKING:
    from reportlens.core.catalog import SchemaCatalog

_MISSING = object()


@dataclass(frozen=True)
class PrimaryKey:
    """Identity of the primary-object record behind a row."""

    object: str
    id: Any


@dataclass
class RowView:
    """Flattened, join-resolved projection of one primary-object record.

    Example:
        RowView(
            display={"charge.id": "ch_001", "charge.amount": 2900, "customer.email": "a@example.com"},
            pk=PrimaryKey(object="charge", id="ch_001"),
            ts="2025-03-15",
        )
    """

    display: dict[str, Any] = field(default_factory=dict)
    pk: PrimaryKey | None = None
    ts: str | None = None


@dataclass(frozen=True)
class _Strategy:
    kind: Literal["direct", "reverse_bridge", "forward"]
    first_key: str
    intermediate: str | None = None
    second_key: str | None = None


class JoinResolver:
    """Resolves fields of secondary objects for records of the primary object.

    Edges come from the catalog's relationship table. Without a catalog (or for
    objects the catalog does not know) the ``<object>_id`` column convention is
    used instead.

    Only many-to-one paths resolve. A field whose object points back at the
    primary object (one primary record, many target records) resolves to None
    rather than to a list or an arbitrary first match.
    """

    def __init__(
        self,
        warehouse: Warehouse,
        primary: str,
        secondary: list[str],
        catalog: "SchemaCatalog | None" = None,
        diagnostics: Diagnostics | None = None,
    ):
        self.warehouse = warehouse
        self.primary = primary
        self.secondary = [obj for obj in secondary if obj != primary]
        self.catalog = catalog
        self.diagnostics = ensure_diagnostics(diagnostics)
        self._indexes: dict[str, dict[Any, Record] | None] = {}
        self._reverse: dict[tuple[str, str], dict[Any, list[Record]]] = {}
        self._plans: dict[str, list[_Strategy] | None] = {}

    def edge(self, from_object: str, to_object: str) -> str | None:
        """Foreign key on ``from_object`` referencing ``to_object``, if any."""
        catalog = self.catalog
        if catalog is not None and catalog.get_object(from_object) and catalog.get_object(to_object):
            return catalog.foreign_key(from_object, to_object)

        table = self.warehouse.table(from_object)
        convention = f"{to_object}_id"
        if table and convention in table[0]:
            return convention
        return None

    def index(self, object_name: str) -> dict[Any, Record] | None:
        """Id-indexed map of an object's table (None when not loaded)."""
        if object_name not in self._indexes:
            table = self.warehouse.table(object_name)
            self._indexes[object_name] = {r.get("id"): r for r in table} if table is not None else None
        return self._indexes[object_name]

    def reverse_index(self, object_name: str, key: str) -> dict[Any, list[Record]]:
        """Records of ``object_name`` grouped by the value of ``key``."""
        cache_key = (object_name, key)
        if cache_key not in self._reverse:
            grouped: dict[Any, list[Record]] = {}
            for record in self.warehouse.table(object_name) or ():
                value = record.get(key)
                if value:
                    grouped.setdefault(value, []).append(record)
            self._reverse[cache_key] = grouped
        return self._reverse[cache_key]

    def plan(self, target: str) -> list[_Strategy] | None:
        """Ordered join strategies for a target object.

        Returns:
            Strategies to try per record, or None when the target is only
            reachable one-to-many from the primary object
        """
        if target in self._plans:
            return self._plans[target]

        strategies: list[_Strategy] = []
        plan: list[_Strategy] | None = strategies

        direct = self.edge(self.primary, target)
        if direct:
            strategies.append(_Strategy("direct", direct))

        if self.edge(target, self.primary):
            # One-to-many from the primary: documented to resolve to None
            plan = strategies if direct else None
            if plan is None:
                self.diagnostics.warn_once(
                    (self.primary, target),
                    "join.one_to_many",
                    f"{target} has many records per {self.primary}; {target} fields resolve to null",
                    primary=self.primary,
                    target=target,
                )
        else:
            for intermediate in self.secondary:
                if intermediate == target:
                    continue
                to_target = self.edge(intermediate, target)
                if not to_target:
                    continue
                back_to_primary = self.edge(intermediate, self.primary)
                if back_to_primary:
                    strategies.append(_Strategy("reverse_bridge", back_to_primary, intermediate, to_target))
                from_primary = self.edge(self.primary, intermediate)
                if from_primary:
                    strategies.append(_Strategy("forward", from_primary, intermediate, to_target))

        if plan is not None and not plan:
            self.diagnostics.warn_once(
                (self.primary, target),
                "join.unresolved",
                f"No join path from {self.primary} to {target} through {self.secondary}",
                primary=self.primary,
                target=target,
                via=list(self.secondary),
            )

        self._plans[target] = plan
        return plan

    def resolve(self, record: Record, ref: FieldRef) -> Any:
        """Resolve ``ref`` for one primary record (None when no path resolves)."""
        plan = self.plan(ref.object)
        if not plan:
            return None

        targets = self.index(ref.object)
        if targets is None:
            return None

        for strategy in plan:
            found = self._apply(strategy, record, targets)
            if found is not _MISSING:
                return found.get(ref.field)
        return None

    def _apply(self, strategy: _Strategy, record: Record, targets: dict[Any, Record]) -> Any:
        if strategy.kind == "direct":
            target_id = record.get(strategy.first_key)
            if not target_id:
                return _MISSING
            # A present foreign key settles the lookup, even if the target is missing
            return targets.get(target_id, {})

        if strategy.kind == "reverse_bridge":
            bridges = self.reverse_index(strategy.intermediate, strategy.first_key).get(record.get("id"), [])
            for bridge in bridges:
                target_id = bridge.get(strategy.second_key)
                if target_id and target_id in targets:
                    return targets[target_id]
            return _MISSING

        intermediates = self.index(strategy.intermediate)
        intermediate_id = record.get(strategy.first_key)
        if not intermediate_id or intermediates is None:
            return _MISSING
        intermediate = intermediates.get(intermediate_id)
        if intermediate is None:
            return _MISSING
        target_id = intermediate.get(strategy.second_key)
        if target_id and target_id in targets:
            return targets[target_id]
        return _MISSING


def _field_refs(selected_fields: Iterable[Any]) -> list[FieldRef]:
    return [ref if isinstance(ref, FieldRef) else FieldRef.model_validate(ref) for ref in selected_fields]


def build_row_views(
    store: "Warehouse | Mapping[str, Any]",
    selected_objects: list[str],
    selected_fields: Iterable[Any],
    catalog: "SchemaCatalog | None" = None,
    diagnostics: Diagnostics | None = None,
) -> list[RowView]:
    """Build one row view per record of the primary object.

    A field of an unselected object still resolves when the store holds that
    object and the primary object references it directly. Two-hop paths only
    go through the selected objects.

    Args:
        store: Warehouse snapshot or plain mapping of entity name to records
        selected_objects: Objects to include; the first one is the primary object
        selected_fields: Fields to project (FieldRef, dicts or "object.field")
        catalog: Relationship source; naming convention when omitted
        diagnostics: Collector for unresolved join warnings

    Returns:
        Row views in primary table order (empty when the primary table is not loaded)

    Example:
        >>> build_row_views({"charge": [{"id": "ch_1", "amount": 500, "created": "2025-03-15"}]},
        ...                 ["charge"], ["charge.amount"])[0].display
        {'charge.amount': 500}
    """
    if not selected_objects:
        return []

    warehouse = as_warehouse(store)
    diagnostics = ensure_diagnostics(diagnostics)
    primary = selected_objects[0]

    primary_table = warehouse.table(primary)
    if primary_table is None:
        diagnostics.debug("views.missing_table", f"{primary} is not loaded", object=primary)
        return []

    refs = _field_refs(selected_fields)
    resolver = JoinResolver(warehouse, primary, list(selected_objects[1:]), catalog, diagnostics)

    rows = []
    for record in primary_table:
        display = {}
        for ref in refs:
            if ref.object == primary:
                display[ref.qualified] = record.get(ref.field)
            else:
                display[ref.qualified] = resolver.resolve(record, ref)

        rows.append(
            RowView(
                display=display,
                pk=PrimaryKey(object=primary, id=record.get("id")),
                ts=pick_timestamp(primary, record, catalog),
            )
        )

    return rows


def row_key(row: RowView) -> str:
    """Selection key of a row: ``"object:id"``."""
    return f"{row.pk.object}:{row.pk.id}"


def filter_rows_by_date(rows: Iterable[RowView], start: Any, end: Any) -> list[RowView]:
    """Keep rows whose timestamp falls within [start, end] (calendar days, inclusive)."""
    start_day = to_date(start)
    end_day = to_date(end)
    if start_day is None or end_day is None:
        raise ValueError(f"Invalid date range: {start!r} - {end!r}")

    kept = []
    for row in rows:
        day = to_date(row.ts)
        if day is not None and start_day <= day <= end_day:
            kept.append(row)
    return kept


def _compare_values(left: Any, right: Any) -> int:
    if left is None and right is None:
        return 0
    if left is None:
        return 1
    if right is None:
        return -1

    numeric = (int, float)
    if isinstance(left, bool) and isinstance(right, bool):
        return (left > right) - (left < right)
    if isinstance(left, numeric) and isinstance(right, numeric):
        return (left > right) - (left < right)

    left_text, right_text = str(left), str(right)
    return (left_text > right_text) - (left_text < right_text)


def sort_rows_by_field(
    rows: Iterable[RowView], qualified_field: str, direction: Literal["asc", "desc"] = "asc"
) -> list[RowView]:
    """Sort rows by a qualified field.

    Nulls sort last ascending; a descending sort is the exact reverse.
    """

    def compare(a: RowView, b: RowView) -> int:
        return _compare_values(a.display.get(qualified_field), b.display.get(qualified_field))

    ordered = sorted(rows, key=cmp_to_key(compare))
    if direction == "desc":
        ordered.reverse()
    return ordered


def to_unqualified_record(row: RowView, object_name: str) -> dict[str, Any]:
    """Extract one object's fields from a row with unqualified names.

    Example:
        >>> to_unqualified_record(RowView({"charge.amount": 5}, PrimaryKey("charge", "ch_1")), "charge")
        {'id': 'ch_1', 'amount': 5}
    """
    record: dict[str, Any] = {"id": row.pk.id}
    prefix = f"{object_name}."
    for qualified, value in row.display.items():
        if qualified.startswith(prefix):
            record[qualified[len(prefix):]] = value
    return record
