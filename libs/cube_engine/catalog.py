"""
Registry of cube definitions.

A CubeCatalog is created once per process (usually at startup) and passed
to the components that need it. Writers are serialised by a lock and
replace the internal mapping wholesale, so readers always see a complete,
immutable snapshot without taking the lock.
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime

import structlog

from .connectors.base import validate_sql_identifier
from .errors import DuplicateCubeError, SchemaError, UnknownCubeError
from .expression import ExpressionError
from .models import CubeDefinition


@dataclass(frozen=True)
class CatalogEntry:
    """A registered cube and its published refresh version."""

    source: CubeDefinition
    definition: CubeDefinition
    version: int = 0
    refreshed_at: datetime | None = None


def _duplicates(names: list[str]) -> list[str]:
    seen: set[str] = set()
    duplicates: list[str] = []
    for name in names:
        if name in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(name)
    return duplicates


def validate_definition(definition: CubeDefinition) -> None:
    """
    Check a cube definition for internal consistency.

    Raises:
        SchemaError: On name collisions, empty hierarchies, invalid SQL
            identifiers or malformed calculated members
    """
    name = definition.name

    def fail(reason: str) -> SchemaError:
        return SchemaError(name, reason)

    if not name:
        raise fail("cube name must not be empty")

    duplicates = _duplicates([dim.name for dim in definition.dimensions])
    if duplicates:
        raise fail(f"duplicate dimension names: {', '.join(duplicates)}")

    measure_names = [measure.name for measure in definition.measures]
    duplicates = _duplicates(measure_names)
    if duplicates:
        raise fail(f"duplicate measure names: {', '.join(duplicates)}")

    member_names = [member.name for member in definition.calculated_members]
    duplicates = _duplicates(measure_names + member_names)
    if duplicates:
        raise fail(f"duplicate measure or calculated member names: {', '.join(duplicates)}")

    try:
        validate_sql_identifier(definition.fact_table, "fact table")
        for measure in definition.measures:
            validate_sql_identifier(measure.name, "measure name")
            validate_sql_identifier(measure.column, "measure column")

        for dim in definition.dimensions:
            validate_sql_identifier(dim.name, "dimension name")
            validate_sql_identifier(dim.table, "dimension table")
            validate_sql_identifier(dim.key_column, "key column")
            validate_sql_identifier(dim.name_column, "name column")
            for attribute in dim.attributes:
                validate_sql_identifier(attribute.column, "attribute column")

            if not dim.hierarchies:
                raise fail(f"dimension '{dim.name}' has no hierarchies")
            for hierarchy in dim.hierarchies:
                if not hierarchy.levels:
                    raise fail(
                        f"hierarchy '{hierarchy.name}' of dimension '{dim.name}' has no levels"
                    )
                duplicates = _duplicates([level.name for level in hierarchy.levels])
                if duplicates:
                    raise fail(
                        f"duplicate level names in hierarchy '{hierarchy.name}': {', '.join(duplicates)}"
                    )
                for level in hierarchy.levels:
                    validate_sql_identifier(level.name, "level name")
                    validate_sql_identifier(level.column, "level column")
                    validate_sql_identifier(level.sort_column, "level order column")
    except ValueError as e:
        raise fail(str(e)) from e

    for member in definition.calculated_members:
        try:
            referenced = member.referenced_measures()
        except ExpressionError as e:
            raise fail(f"calculated member '{member.name}': {e}") from e
        unknown = [ref for ref in referenced if ref not in measure_names]
        if unknown:
            raise fail(
                f"calculated member '{member.name}' references unknown measures: {', '.join(unknown)}"
            )


class CubeCatalog:
    """In-memory registry of cube definitions, in registration order."""

    def __init__(self, definitions: list[CubeDefinition] | None = None):
        self._entries: dict[str, CatalogEntry] = {}
        self._lock = threading.Lock()
        self.logger = structlog.get_logger(__name__)
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: CubeDefinition, replace: bool = False) -> None:
        """
        Register a cube definition.

        Args:
            definition: Cube to register
            replace: Re-register over an existing cube of the same name

        Raises:
            DuplicateCubeError: If the name is taken and ``replace`` is False
            SchemaError: If the definition is inconsistent
        """
        validate_definition(definition)

        with self._lock:
            previous = self._entries.get(definition.name)
            if previous is not None and not replace:
                raise DuplicateCubeError(definition.name)
            entries = dict(self._entries)
            # Keep the version counter so later snapshots never reuse a name
            entries[definition.name] = CatalogEntry(
                source=definition,
                definition=definition,
                version=previous.version if previous else 0,
            )
            self._entries = entries

        self.logger.info(
            "cube_registered",
            cube=definition.name,
            dimensions=len(definition.dimensions),
            measures=len(definition.measures),
            calculated_members=len(definition.calculated_members),
            replaced=replace,
        )

    def unregister(self, name: str) -> None:
        """Remove a cube.

        Raises:
            UnknownCubeError: If no cube has that name
        """
        with self._lock:
            if name not in self._entries:
                raise UnknownCubeError(name)
            entries = dict(self._entries)
            del entries[name]
            self._entries = entries
        self.logger.info("cube_unregistered", cube=name)

    def get(self, name: str) -> CubeDefinition | None:
        """Published definition of a cube; exact, case-sensitive name match."""
        entry = self._entries.get(name)
        return entry.definition if entry else None

    def require(self, name: str) -> CubeDefinition:
        """Like :meth:`get` but raises UnknownCubeError for a missing cube."""
        definition = self.get(name)
        if definition is None:
            raise UnknownCubeError(name)
        return definition

    def list(self) -> list[CubeDefinition]:
        """All published definitions in registration order."""
        return [entry.definition for entry in self._entries.values()]

    def entry(self, name: str) -> CatalogEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise UnknownCubeError(name)
        return entry

    def source(self, name: str) -> CubeDefinition:
        """Definition as registered, pointing at the live warehouse tables."""
        return self.entry(name).source

    def version(self, name: str) -> int:
        return self.entry(name).version

    def publish(self, name: str, definition: CubeDefinition, version: int) -> None:
        """
        Atomically swap in a refreshed definition for a registered cube.

        Raises:
            UnknownCubeError: If the cube was unregistered meanwhile
            ValueError: If ``version`` does not advance the current one
        """
        with self._lock:
            current = self._entries.get(name)
            if current is None:
                raise UnknownCubeError(name)
            if version <= current.version:
                raise ValueError(
                    f"Version {version} of cube '{name}' is not newer than {current.version}"
                )
            entries = dict(self._entries)
            entries[name] = replace(
                current,
                definition=definition,
                version=version,
                refreshed_at=datetime.now(),
            )
            self._entries = entries

        self.logger.info("cube_version_published", cube=name, version=version)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
