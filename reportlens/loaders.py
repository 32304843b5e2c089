"""Loaders for catalogs and report definitions."""

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from reportlens.config import read_structured_file
from reportlens.validation import CatalogValidationError, ConfigError

if TYPE_CHECKING:
    from reportlens.core.catalog import SchemaCatalog
    from reportlens.core.report import ReportSpec
    from reportlens.core.warehouse import Warehouse

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "catalog.yaml"

_default_catalog: "SchemaCatalog | None" = None


def load_catalog(path: str | Path) -> "SchemaCatalog":
    """Load a schema catalog from a YAML or JSON file.

    Args:
        path: Catalog file with ``objects`` and ``relationships``

    Returns:
        Validated catalog

    Raises:
        CatalogValidationError: If the definition is malformed
        ConfigError: If the file cannot be read
    """
    from reportlens.core.catalog import SchemaCatalog

    path = Path(path)
    data = read_structured_file(path)

    try:
        catalog = SchemaCatalog(**data)
    except ValidationError as e:
        raise CatalogValidationError(f"Invalid catalog {path}:\n{e}") from e

    logger.debug(
        "Loaded catalog %s: %d objects, %d relationships", path, len(catalog.objects), len(catalog.relationships)
    )
    return catalog


def default_catalog() -> "SchemaCatalog":
    """Return the bundled billing catalog (loaded once)."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = load_catalog(DEFAULT_CATALOG_PATH)
    return _default_catalog


def infer_relationships(catalog: "SchemaCatalog", store: "Warehouse | None" = None) -> "SchemaCatalog":
    """Infer relationships from foreign key naming conventions.

    Looks for patterns like:
    - charge.customer_id -> customer.id
    - refund.charge_id -> charge.id
    - subscription_item.subscription_id -> subscription.id

    Fields come from the catalog objects and, when a store is given, from the
    first record of each loaded entity. Declared relationships are kept; an
    inferred edge is only added where none exists between the two objects.

    Args:
        catalog: Catalog to extend
        store: Optional warehouse whose records reveal undeclared columns

    Returns:
        New catalog with the inferred relationships appended
    """
    from reportlens.core.catalog import Relationship, SchemaCatalog, SchemaField

    objects = [obj.model_copy(deep=True) for obj in catalog.objects]
    names = {obj.name for obj in objects}
    relationships = list(catalog.relationships)
    declared = {(rel.from_object, rel.to) for rel in relationships}

    for obj in objects:
        columns = [field.name for field in obj.fields]
        if store is not None:
            table = store.table(obj.name)
            if table:
                for column in table[0]:
                    if column not in columns:
                        columns.append(column)

        for column in columns:
            if not column.lower().endswith("_id"):
                continue

            referenced = column[:-3]
            potential_targets = [
                referenced,
                referenced + "s",
                referenced[:-1] if referenced.endswith("s") else referenced + "s",
            ]

            for target in potential_targets:
                if target in names and target != obj.name:
                    if (obj.name, target) not in declared:
                        if obj.get_field(column) is None:
                            obj.fields.append(SchemaField(name=column, type="id"))
                        relationships.append(Relationship(from_object=obj.name, to=target, via=column))
                        declared.add((obj.name, target))
                        logger.debug("Inferred relationship %s.%s -> %s.id", obj.name, column, target)
                    break

    return SchemaCatalog(objects=objects, relationships=relationships)


def load_report(path: str | Path) -> "ReportSpec":
    """Load a report definition from a YAML or JSON file.

    Raises:
        ConfigError: If the file cannot be read or the definition is invalid
    """
    from reportlens.core.report import ReportSpec

    path = Path(path)
    data = read_structured_file(path)

    try:
        return ReportSpec(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid report {path}:\n{e}") from e
