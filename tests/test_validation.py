"""Test validation helpers."""

from reportlens.core.catalog import Relationship, SchemaCatalog, SchemaField, SchemaObject
from reportlens.core.metric import MetricFormula
from reportlens.validation import validate_catalog, validate_formula, validate_warehouse


def test_validate_catalog_reports_every_problem():
    """Test duplicate names, empty enums and unknown timestamp fields."""
    catalog = SchemaCatalog.model_construct(
        objects=[
            SchemaObject(
                name="charge",
                fields=[
                    SchemaField(name="id", type="id"),
                    SchemaField(name="id", type="id"),
                    SchemaField(name="status", type="enum"),
                ],
                timestamp_fields=["created"],
            ),
            SchemaObject(name="charge"),
        ],
        relationships=[Relationship(from_object="charge", to="customer", via="customer_id")],
    )

    errors = validate_catalog(catalog)

    assert errors == [
        "Object 'charge': field 'id' is defined more than once",
        "Object 'charge': enum field 'status' has no enum values",
        "Object 'charge': timestamp field 'created' is not a field of the object",
        "Object 'charge' is defined more than once",
        "Relationship charge -> customer: unknown object 'customer'",
        "Relationship charge -> customer: field 'customer_id' does not exist on 'charge'",
    ]


def test_validate_catalog_accepts_bundled(catalog):
    """Test that the bundled catalog is valid."""
    assert validate_catalog(catalog) == []


def test_validate_formula():
    """Test duplicate block ids and missing calculation operands."""
    formula = MetricFormula.model_validate(
        {
            "blocks": [{"id": "a", "name": "A"}, {"id": "a", "name": "A again"}],
            "calculation": {"operator": "add", "leftOperand": "a", "rightOperand": "b"},
        }
    )

    assert validate_formula(formula) == [
        "Block id 'a' is used more than once",
        "Calculation references missing block 'b'",
    ]
    assert validate_formula(MetricFormula()) == []


def test_validate_warehouse_consistent(store, catalog):
    """Test that the billing fixture has no dangling references."""
    assert validate_warehouse(store, catalog) == []


def test_validate_warehouse_dangling(billing_tables, catalog):
    """Test dangling foreign keys, skipping empty keys and unloaded objects."""
    billing_tables["charge"][1]["customer_id"] = "cus_404"
    billing_tables["charge"][2]["customer_id"] = ""
    del billing_tables["invoice"]

    issues = validate_warehouse(billing_tables, catalog)

    assert issues == ["charge ch_02 missing customer cus_404"]
