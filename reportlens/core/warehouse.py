"""Warehouse store: immutable entity snapshots and async fixture loading."""

import asyncio
import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from reportlens.diagnostics import Diagnostics, ensure_diagnostics
from reportlens.validation import FixtureError

Record = dict[str, Any]


class Warehouse:
    """Immutable snapshot of loaded entity tables.

    Each entity is either absent or fully present. Adding an entity returns a
    new snapshot with a higher ``version``; existing snapshots never change, so
    readers holding one are unaffected by later loads.

    Args:
        tables: Mapping of entity name to its records
        version: Monotonic sequence number of this snapshot
    """

    def __init__(self, tables: Mapping[str, Iterable[Record]] | None = None, version: int = 0):
        frozen = {}
        for name, records in (tables or {}).items():
            if not isinstance(records, (list, tuple)):
                raise TypeError(f"Entity '{name}' must be a list of records, got {type(records).__name__}")
            frozen[name] = tuple(records)
        self._tables = MappingProxyType(frozen)
        self.version = version

    def has(self, name: str) -> bool:
        """Check whether an entity is loaded."""
        return self.table(name) is not None

    def table(self, name: str) -> tuple[Record, ...] | None:
        """Get the raw records of an entity.

        Falls back to the plural key (``charge`` -> ``charges``) when the
        singular name is not loaded.
        """
        records = self._tables.get(name)
        if records is None and not name.endswith("s"):
            records = self._tables.get(f"{name}s")
        return records

    @property
    def entities(self) -> tuple[str, ...]:
        return tuple(self._tables)

    def with_entity(self, name: str, records: Iterable[Record]) -> "Warehouse":
        """Return a new snapshot that also contains ``name``.

        Raises:
            ValueError: If the entity is already loaded (entities load once)
        """
        if name in self._tables:
            raise ValueError(f"Entity {name} is already loaded")
        tables = dict(self._tables)
        tables[name] = list(records)
        return Warehouse(tables, version=self.version + 1)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __len__(self) -> int:
        return len(self._tables)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{name}={len(records)}" for name, records in self._tables.items())
        return f"Warehouse(version={self.version}, {sizes})"


def as_warehouse(store: "Warehouse | Mapping[str, Iterable[Record]] | None") -> Warehouse:
    """Wrap a plain mapping in a Warehouse snapshot (no-op for snapshots)."""
    if isinstance(store, Warehouse):
        return store
    return Warehouse(store)


def validate_entity_records(name: str, data: Any, diagnostics: Diagnostics | None = None) -> list[Record]:
    """Validate a decoded fixture payload.

    Args:
        name: Entity name (for messages)
        data: Decoded JSON payload
        diagnostics: Collector for non-fatal findings

    Returns:
        The records, unchanged

    Raises:
        FixtureError: If the payload is not a list of records with unique ids
    """
    diagnostics = ensure_diagnostics(diagnostics)

    if not isinstance(data, list):
        raise FixtureError(f"{name} is not an array")

    if not data:
        diagnostics.warning("warehouse.empty_entity", f"{name} has no records", entity=name)
        return data

    seen_ids = set()
    for index, record in enumerate(data):
        if not isinstance(record, dict):
            raise FixtureError(f"{name}[{index}] is not an object")
        record_id = record.get("id")
        if record_id is None:
            raise FixtureError(f"{name}[{index}] has no id")
        if record_id in seen_ids:
            raise FixtureError(f"{name} has duplicate id {record_id!r}")
        seen_ids.add(record_id)

    diagnostics.debug("warehouse.validated", f"Validated {name}: {len(data)} records", entity=name, count=len(data))
    return data


def _read_fixture(path: Path, name: str) -> Any:
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise FixtureError(f"Failed to parse {path}: {e}") from e


class WarehouseLoader:
    """Loads entity fixtures (``<data_dir>/<entity>.json``) into snapshots.

    Loads for different entities may run concurrently; a second request for an
    entity that is already loading waits on the first one instead of reading
    the file again.

    Args:
        data_dir: Directory containing one JSON array per entity
        diagnostics: Collector for load events
    """

    def __init__(self, data_dir: str | Path, diagnostics: Diagnostics | None = None):
        self.data_dir = Path(data_dir)
        self.diagnostics = ensure_diagnostics(diagnostics)
        self._snapshot = Warehouse()
        self._inflight: dict[str, asyncio.Future] = {}

    @property
    def snapshot(self) -> Warehouse:
        """Current immutable snapshot."""
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def has(self, name: str) -> bool:
        return self._snapshot.has(name)

    def fixture_path(self, name: str) -> Path:
        """Resolve the fixture file of an entity, trying the plural name second.

        Raises:
            FixtureError: If neither file exists
        """
        path = self.data_dir / f"{name}.json"
        if path.exists():
            return path
        if not name.endswith("s"):
            plural = self.data_dir / f"{name}s.json"
            if plural.exists():
                return plural
        raise FixtureError(f"No fixture found for {name} in {self.data_dir}")

    async def load_entity(self, name: str) -> None:
        """Load one entity unless it is loaded or already loading."""
        if self._snapshot.has(name):
            return

        pending = self._inflight.get(name)
        if pending is None:
            pending = asyncio.ensure_future(self._load(name))
            self._inflight[name] = pending
        await pending

    async def load_many(self, names: Iterable[str]) -> Warehouse:
        """Load several entities concurrently and return the resulting snapshot."""
        await asyncio.gather(*(self.load_entity(name) for name in names))
        return self._snapshot

    async def _load(self, name: str) -> None:
        try:
            path = self.fixture_path(name)
            data = await asyncio.to_thread(_read_fixture, path, name)
            records = validate_entity_records(name, data, self.diagnostics)
            if not self._snapshot.has(name):
                self._snapshot = self._snapshot.with_entity(name, records)
            self.diagnostics.info(
                "warehouse.loaded",
                f"Loaded {name}: {len(records)} records",
                entity=name,
                count=len(records),
                version=self._snapshot.version,
            )
        finally:
            self._inflight.pop(name, None)


def discover_entities(data_dir: str | Path) -> list[str]:
    """List entity names available as ``*.json`` fixtures in a directory."""
    return sorted(path.stem for path in Path(data_dir).glob("*.json"))


def load_warehouse(
    data_dir: str | Path, names: Iterable[str] | None = None, diagnostics: Diagnostics | None = None
) -> Warehouse:
    """Synchronously load fixtures into a snapshot.

    Args:
        data_dir: Directory containing entity fixtures
        names: Entities to load (defaults to every fixture in the directory)
        diagnostics: Collector for load events

    Returns:
        Snapshot containing the requested entities
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        raise FixtureError(f"Data directory {data_dir} does not exist")

    loader = WarehouseLoader(data_dir, diagnostics)
    entity_names = list(names) if names is not None else discover_entities(data_dir)
    return asyncio.run(loader.load_many(entity_names))
