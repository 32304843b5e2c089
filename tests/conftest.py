"""Pytest configuration and fixtures."""

import copy

import pytest

from reportlens.core.warehouse import Warehouse
from reportlens.diagnostics import Diagnostics
from reportlens.loaders import default_catalog


def _charge(charge_id, customer, amount, status, created, invoice=None, payment=None):
    return {
        "id": charge_id,
        "customer_id": customer,
        "payment_intent_id": payment,
        "invoice_id": invoice,
        "amount": amount,
        "currency": "usd",
        "status": status,
        "paid": status == "succeeded",
        "refunded": False,
        "created": created,
    }


BILLING_TABLES = {
    "customer": [
        {"id": "cus_1", "email": "a@example.com", "name": "Ada", "country": "US", "created": "2024-12-01T09:00:00Z", "delinquent": False},
        {"id": "cus_2", "email": "b@example.com", "name": "Bo", "country": "DE", "created": "2024-12-05T09:00:00Z", "delinquent": True},
        {"id": "cus_3", "email": "c@example.com", "name": "Cy", "country": "US", "created": "2025-01-10T09:00:00Z", "delinquent": False},
    ],
    "product": [
        {"id": "prod_1", "name": "Pro", "description": "Pro plan", "active": True, "created": "2024-11-01T00:00:00Z"},
    ],
    "price": [
        {"id": "price_1", "product_id": "prod_1", "unit_amount": 2900, "currency": "usd", "recurring_interval": "month", "active": True, "created": "2024-11-01T00:00:00Z"},
    ],
    "subscription": [
        {"id": "sub_1", "customer_id": "cus_1", "price_id": "price_1", "status": "active", "created": "2025-01-01T00:00:00Z", "current_period_start": "2025-03-01T00:00:00Z", "current_period_end": "2025-04-01T00:00:00Z", "canceled_at": None, "cancel_at_period_end": False},
        {"id": "sub_2", "customer_id": "cus_2", "price_id": "price_1", "status": "canceled", "created": "2025-01-15T00:00:00Z", "current_period_start": "2025-02-15T00:00:00Z", "current_period_end": "2025-03-15T00:00:00Z", "canceled_at": "2025-02-20T00:00:00Z", "cancel_at_period_end": False},
    ],
    "invoice": [
        {"id": "in_1", "customer_id": "cus_1", "subscription_id": "sub_1", "total": 2900, "amount_due": 2900, "amount_paid": 2900, "currency": "usd", "status": "paid", "paid": True, "created": "2025-01-01T00:00:00Z"},
        {"id": "in_2", "customer_id": "cus_2", "subscription_id": "sub_2", "total": 2900, "amount_due": 2900, "amount_paid": 0, "currency": "usd", "status": "open", "paid": False, "created": "2025-01-15T00:00:00Z"},
    ],
    "payment": [
        {"id": "pay_1", "customer_id": "cus_1", "invoice_id": "in_1", "amount": 2900, "currency": "usd", "status": "succeeded", "captured": True, "created": "2025-01-01T00:00:00Z"},
    ],
    "charge": [
        _charge("ch_01", "cus_1", 1000, "succeeded", "2025-01-03T10:00:00Z", invoice="in_1", payment="pay_1"),
        _charge("ch_02", "cus_1", 2000, "succeeded", "2025-01-10T10:00:00Z"),
        _charge("ch_03", "cus_2", 1500, "failed", "2025-01-15T10:00:00Z", invoice="in_2"),
        _charge("ch_04", "cus_2", 500, "succeeded", "2025-01-20T10:00:00Z"),
        _charge("ch_05", "cus_3", 2500, "succeeded", "2025-01-28T10:00:00Z"),
        _charge("ch_06", "cus_1", 3000, "pending", "2025-02-02T10:00:00Z"),
        _charge("ch_07", "cus_3", 1200, "succeeded", "2025-02-07T10:00:00Z"),
        _charge("ch_08", "cus_2", 800, "failed", "2025-02-14T10:00:00Z"),
        _charge("ch_09", "cus_1", 4000, "succeeded", "2025-02-20T10:00:00Z"),
        _charge("ch_10", "cus_3", 600, "succeeded", "2025-02-27T10:00:00Z"),
    ],
    "refund": [
        {"id": "re_1", "charge_id": "ch_02", "amount": 500, "currency": "usd", "status": "succeeded", "reason": "requested_by_customer", "created": "2025-01-12T00:00:00Z"},
    ],
}


@pytest.fixture
def billing_tables():
    """Plain mapping of entity name to records (a fresh copy per test)."""
    return copy.deepcopy(BILLING_TABLES)


@pytest.fixture
def store(billing_tables):
    """Warehouse snapshot holding the billing fixture."""
    return Warehouse(billing_tables)


@pytest.fixture
def catalog():
    """The bundled billing catalog."""
    return default_catalog()


@pytest.fixture
def diagnostics():
    return Diagnostics()


@pytest.fixture
def fixture_dir(tmp_path, billing_tables):
    """Directory with one ``<entity>.json`` file per billing entity."""
    import json

    data_dir = tmp_path / "data"
    data_dir.mkdir()
    for name, records in billing_tables.items():
        (data_dir / f"{name}.json").write_text(json.dumps(records))
    return data_dir
