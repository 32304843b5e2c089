"""Schema catalog: objects, fields and foreign key relationships."""

from collections import deque
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

FieldType = Literal["string", "number", "date", "boolean", "enum", "id"]


class SchemaField(BaseModel):
    """Field (column) of a catalog object."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Field name, unique within its object")
    label: str | None = Field(None, description="Display label")
    type: FieldType = Field(..., description="Semantic field type")
    enum: list[str] | None = Field(None, description="Allowed values for enum fields")

    @property
    def display_label(self) -> str:
        return self.label or self.name.replace("_", " ").title()


class SchemaObject(BaseModel):
    """Entity (table) definition in the catalog."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique object name")
    label: str | None = Field(None, description="Display label")
    fields: list[SchemaField] = Field(default_factory=list, description="Ordered field definitions")
    timestamp_fields: list[str] | None = Field(
        None, description="Canonical timestamp candidates in priority order"
    )

    def get_field(self, name: str) -> SchemaField | None:
        """Get field by name."""
        for field in self.fields:
            if field.name == name:
                return field
        return None

    @property
    def display_label(self) -> str:
        return self.label or self.name.replace("_", " ").title()


class Relationship(BaseModel):
    """Foreign key edge: ``from.via`` references ``to.id``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    from_object: str = Field(..., alias="from", description="Object holding the foreign key")
    to: str = Field(..., description="Referenced object")
    via: str = Field(..., description="Foreign key field on the 'from' object")
    type: Literal["many_to_one", "one_to_one"] = Field("many_to_one", description="Cardinality along the foreign key")
    description: str | None = Field(None, description="Human-readable description")


@dataclass
class JoinPath:
    """Represents one hop between two objects."""

    from_object: str
    to_object: str
    from_key: str
    to_key: str
    relationship: str  # many_to_one or one_to_many, seen from from_object


class SchemaCatalog(BaseModel):
    """Static description of entity objects and their relationships.

    Loaded once and treated as read-only. Construction fails with
    ``CatalogValidationError`` when a relationship points at an unknown
    object or a missing foreign key field.
    """

    model_config = ConfigDict(frozen=True)

    objects: list[SchemaObject] = Field(default_factory=list, description="Object definitions")
    relationships: list[Relationship] = Field(default_factory=list, description="Foreign key edges")

    _adjacency: dict[str, list[JoinPath]] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def check_catalog(self):
        from reportlens.validation import CatalogValidationError, validate_catalog

        errors = validate_catalog(self)
        if errors:
            raise CatalogValidationError(
                "Catalog validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )
        return self

    def model_post_init(self, __context) -> None:
        self.build_adjacency()

    def get_object(self, name: str) -> SchemaObject | None:
        """Get object by name (None if unknown)."""
        for obj in self.objects:
            if obj.name == name:
                return obj
        return None

    def get_all_objects(self) -> list[SchemaObject]:
        return list(self.objects)

    def get_related(self, name: str) -> list[Relationship]:
        """Get relationships in which the object takes part, either side."""
        return [rel for rel in self.relationships if rel.from_object == name or rel.to == name]

    def foreign_key(self, from_object: str, to_object: str) -> str | None:
        """Get the field on ``from_object`` referencing ``to_object``, if declared."""
        for rel in self.relationships:
            if rel.from_object == from_object and rel.to == to_object:
                return rel.via
        return None

    def build_adjacency(self) -> None:
        """Build adjacency lists for join path discovery.

        Every relationship yields a many_to_one edge along the foreign key and
        the reverse one_to_many edge.
        """
        self._adjacency = {}
        for rel in self.relationships:
            self._adjacency.setdefault(rel.from_object, []).append(
                JoinPath(
                    from_object=rel.from_object,
                    to_object=rel.to,
                    from_key=rel.via,
                    to_key="id",
                    relationship="many_to_one",
                )
            )
            self._adjacency.setdefault(rel.to, []).append(
                JoinPath(
                    from_object=rel.to,
                    to_object=rel.from_object,
                    from_key="id",
                    to_key=rel.via,
                    relationship="one_to_many",
                )
            )

    def find_relationship_path(self, from_object: str, to_object: str) -> list[JoinPath]:
        """Find the shortest join path between two objects using BFS.

        Args:
            from_object: Source object name
            to_object: Target object name

        Returns:
            List of JoinPath hops (empty when both are the same object)

        Raises:
            KeyError: If either object is unknown
            ValueError: If no join path exists
        """
        if from_object == to_object:
            return []

        if self.get_object(from_object) is None:
            raise KeyError(f"Object {from_object} not found")
        if self.get_object(to_object) is None:
            raise KeyError(f"Object {to_object} not found")

        if not self._adjacency:
            self.build_adjacency()

        queue = deque([(from_object, [])])
        visited = {from_object}

        while queue:
            current, path = queue.popleft()

            for hop in self._adjacency.get(current, []):
                if hop.to_object in visited:
                    continue
                visited.add(hop.to_object)

                new_path = path + [hop]
                if hop.to_object == to_object:
                    return new_path
                queue.append((hop.to_object, new_path))

        raise ValueError(f"No join path found between {from_object} and {to_object}")
