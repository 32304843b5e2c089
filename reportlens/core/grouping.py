"""Group-by helpers for segmenting rows by categorical fields."""

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from reportlens.core.fields import FieldRef
from reportlens.core.warehouse import Warehouse, as_warehouse

if TYPE_CHECKING:
    from reportlens.core.catalog import SchemaCatalog
    from reportlens.core.views import RowView


@dataclass(frozen=True)
class GroupField:
    object: str
    field: str
    label: str

    @property
    def ref(self) -> FieldRef:
        return FieldRef(object=self.object, field=self.field)


def available_group_fields(selected_objects: Iterable[str], catalog: "SchemaCatalog") -> list[GroupField]:
    """List categorical fields (string type or with enum values) of the selected objects."""
    group_fields = []
    for object_name in selected_objects:
        obj = catalog.get_object(object_name)
        if obj is None:
            continue
        for field in obj.fields:
            if field.type == "string" or field.enum is not None:
                group_fields.append(
                    GroupField(object=obj.name, field=field.name, label=f"{obj.display_label}.{field.display_label}")
                )
    return group_fields


def group_values(store: "Warehouse | Mapping[str, Any]", field: FieldRef, limit: int = 100) -> list[str]:
    """Distinct values of a field, most frequent first.

    Values are compared as strings; ties keep first-seen order.
    """
    table = as_warehouse(store).table(field.object)
    if table is None:
        return []

    counts = Counter(str(record[field.field]) for record in table if record.get(field.field) is not None)
    return [value for value, _ in counts.most_common(limit)]


def group_rows(
    rows: Iterable["RowView"], field: FieldRef, selected_values: Iterable[str]
) -> dict[str, list["RowView"]]:
    """Split rows into one group per selected value.

    Rows whose value is missing or not selected are left out.
    """
    grouped: dict[str, list[RowView]] = {value: [] for value in selected_values}
    for row in rows:
        value = row.display.get(field.qualified)
        if value is None:
            continue
        bucket = grouped.get(str(value))
        if bucket is not None:
            bucket.append(row)
    return grouped
