"""Test group-by helpers."""

from reportlens.core.fields import FieldRef
from reportlens.core.grouping import GroupField, available_group_fields, group_rows, group_values
from reportlens.core.views import build_row_views

STATUS = FieldRef(object="charge", field="status")


def test_available_group_fields(catalog):
    """Test that string and enum fields are offered with display labels."""
    fields = available_group_fields(["charge", "unknown"], catalog)

    assert fields == [
        GroupField(object="charge", field="currency", label="Charge.Currency"),
        GroupField(object="charge", field="status", label="Charge.Status"),
    ]
    assert fields[1].ref == STATUS


def test_group_values_by_frequency(store):
    """Test distinct values ordered by count."""
    assert group_values(store, STATUS) == ["succeeded", "failed", "pending"]
    assert group_values(store, STATUS, limit=1) == ["succeeded"]


def test_group_values_stringifies(store):
    """Test that non-string values are compared as strings."""
    assert group_values(store, FieldRef(object="charge", field="paid")) == ["True", "False"]


def test_group_values_missing_table(store):
    """Test an unloaded object has no values."""
    assert group_values(store, FieldRef(object="dispute", field="status")) == []


def test_group_rows(store, catalog):
    """Test splitting rows by the selected values only."""
    rows = build_row_views(store, ["charge"], ["charge.status"], catalog)

    groups = group_rows(rows, STATUS, ["failed", "pending", "refunded"])

    assert [row.pk.id for row in groups["failed"]] == ["ch_03", "ch_08"]
    assert [row.pk.id for row in groups["pending"]] == ["ch_06"]
    assert groups["refunded"] == []
    assert "succeeded" not in groups
