"""Validation and error handling for the report engine."""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from reportlens.core.catalog import SchemaCatalog
    from reportlens.core.metric import MetricFormula
    from reportlens.core.warehouse import Warehouse


class ReportlensError(Exception):
    """Base class for load-time failures."""

    pass


class CatalogValidationError(ReportlensError):
    """Raised when a schema catalog is malformed."""

    pass


class FixtureError(ReportlensError):
    """Raised when an entity fixture cannot be loaded."""

    pass


class FormulaValidationError(ReportlensError):
    """Raised when a metric formula definition is inconsistent."""

    pass


class ConfigError(ReportlensError):
    """Raised when a configuration or report file cannot be read."""

    pass


def validate_catalog(catalog: "SchemaCatalog") -> list[str]:
    """Validate a schema catalog definition.

    Args:
        catalog: Catalog to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    seen: set[str] = set()
    for obj in catalog.objects:
        if obj.name in seen:
            errors.append(f"Object '{obj.name}' is defined more than once")
        seen.add(obj.name)

        field_names: set[str] = set()
        for field in obj.fields:
            if field.name in field_names:
                errors.append(f"Object '{obj.name}': field '{field.name}' is defined more than once")
            field_names.add(field.name)

            if field.type == "enum" and not field.enum:
                errors.append(f"Object '{obj.name}': enum field '{field.name}' has no enum values")

        for ts_field in obj.timestamp_fields or []:
            if ts_field not in field_names:
                errors.append(f"Object '{obj.name}': timestamp field '{ts_field}' is not a field of the object")

    for rel in catalog.relationships:
        source = catalog.get_object(rel.from_object)
        if source is None:
            errors.append(f"Relationship {rel.from_object} -> {rel.to}: unknown object '{rel.from_object}'")
            continue
        if catalog.get_object(rel.to) is None:
            errors.append(f"Relationship {rel.from_object} -> {rel.to}: unknown object '{rel.to}'")
        if source.get_field(rel.via) is None:
            errors.append(
                f"Relationship {rel.from_object} -> {rel.to}: field '{rel.via}' does not exist on '{rel.from_object}'"
            )

    return errors


def validate_formula(formula: "MetricFormula") -> list[str]:
    """Validate a metric formula definition.

    Args:
        formula: Formula to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    block_ids = [block.id for block in formula.blocks]
    duplicates = sorted({block_id for block_id in block_ids if block_ids.count(block_id) > 1})
    for block_id in duplicates:
        errors.append(f"Block id '{block_id}' is used more than once")

    calc = formula.calculation
    if calc is not None:
        for operand in (calc.left_operand, calc.right_operand):
            if operand not in block_ids:
                errors.append(f"Calculation references missing block '{operand}'")

    return errors


def validate_warehouse(store: "Warehouse | Mapping[str, Any]", catalog: "SchemaCatalog") -> list[str]:
    """Check referential integrity of loaded entities against catalog relationships.

    Only relationships whose both ends are loaded are checked. Empty foreign
    keys are allowed.

    Args:
        store: Warehouse snapshot or plain mapping of entity name to records
        catalog: Catalog declaring the relationships

    Returns:
        List of dangling foreign key descriptions (empty if consistent)
    """
    from reportlens.core.warehouse import as_warehouse

    warehouse = as_warehouse(store)
    issues = []

    for rel in catalog.relationships:
        source = warehouse.table(rel.from_object)
        target = warehouse.table(rel.to)
        if source is None or target is None:
            continue

        target_ids = {record.get("id") for record in target}
        for record in source:
            fk_value = record.get(rel.via)
            if fk_value in (None, ""):
                continue
            if fk_value not in target_ids:
                issues.append(f"{rel.from_object} {record.get('id')} missing {rel.to} {fk_value}")

    return issues
