"""
Cube refresh by versioned snapshot swap.

The warehouse tables behind a cube are mutated in place by the ETL
process. A refresh copies the fact table and every dimension table of the
cube into new snapshot tables (``<table>__<cube>_v<version>``), then
publishes a definition pointing at those snapshots in one atomic catalog
swap. Snapshot names carry the cube name, so cubes sharing a warehouse
table never share a snapshot.

Readers executing against a snapshot hold a lease on its tables. Once a
snapshot falls out of the retention window it is dropped, unless a lease
is still held, in which case the drop waits for a later refresh. At least
two versions are always kept, so SQL compiled just before a swap still
finds its tables.
"""

import asyncio
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from .catalog import CubeCatalog
from .connectors.base import DataWarehouseConnector, validate_sql_identifier
from .errors import RefreshError
from .models import CubeDefinition

MIN_KEEP_VERSIONS = 2


def snapshot_table_name(table: str, cube_name: str, version: int) -> str:
    return f"{table}__{cube_name.lower()}_v{version}"


class CubeRefresher:
    """Builds and publishes snapshot versions of cubes."""

    def __init__(
        self,
        catalog: CubeCatalog,
        connector: DataWarehouseConnector,
        keep_versions: int = MIN_KEEP_VERSIONS,
    ):
        if keep_versions < MIN_KEEP_VERSIONS:
            raise ValueError(f"keep_versions must be at least {MIN_KEEP_VERSIONS}")
        self.catalog = catalog
        self.connector = connector
        self.keep_versions = keep_versions
        self._locks: dict[str, asyncio.Lock] = {}
        self._readers: Counter[str] = Counter()
        self._retired: dict[str, set[str]] = {}
        self.logger = structlog.get_logger(__name__)

    def _lock_for(self, cube_name: str) -> asyncio.Lock:
        if cube_name not in self._locks:
            self._locks[cube_name] = asyncio.Lock()
        return self._locks[cube_name]

    @contextmanager
    def reading(self, cube: CubeDefinition) -> Iterator[None]:
        """Lease the tables of a published definition while a query runs on them."""
        tables = cube.table_names()
        self._readers.update(tables)
        try:
            yield
        finally:
            self._readers.subtract(tables)
            for table in tables:
                if self._readers[table] <= 0:
                    del self._readers[table]

    def retired_tables(self, cube_name: str) -> set[str]:
        """Expired snapshot tables whose drop is waiting for readers to finish."""
        return set(self._retired.get(cube_name, ()))

    async def refresh(self, cube_name: str) -> int:
        """
        Rebuild the snapshot of a cube and publish it.

        Returns:
            The newly published version number

        Raises:
            UnknownCubeError: If the cube is not registered
            RefreshError: If building or publishing the snapshot fails
        """
        source = self.catalog.source(cube_name)

        async with self._lock_for(cube_name):
            version = self.catalog.version(cube_name) + 1
            tables = source.table_names()
            mapping = {
                table: snapshot_table_name(table, cube_name, version) for table in tables
            }
            log = self.logger.bind(cube=cube_name, version=version)
            log.info("cube_refresh_started", tables=len(tables))

            created: list[str] = []
            try:
                for table, snapshot in mapping.items():
                    validate_sql_identifier(table, "table name")
                    validate_sql_identifier(snapshot, "snapshot table name")
                for table, snapshot in mapping.items():
                    await self.connector.execute_statements(
                        [f"CREATE TABLE {snapshot} AS SELECT * FROM {table}"]
                    )
                    created.append(snapshot)
                self.catalog.publish(cube_name, source.with_tables(mapping), version)
            except Exception as e:
                log.error("cube_refresh_failed", error=str(e), error_type=type(e).__name__)
                if created:
                    await self._drop_snapshots(created, log)
                raise RefreshError(cube_name, e) from e

            expired = version - self.keep_versions
            candidates = set(self._retired.pop(cube_name, set()))
            if expired >= 1:
                candidates.update(
                    snapshot_table_name(table, cube_name, expired) for table in tables
                )
            await self._expire(cube_name, candidates, log)

            log.info("cube_refresh_completed")
            return version

    async def _expire(self, cube_name: str, tables: set[str], log) -> None:
        in_use = {table for table in tables if self._readers[table] > 0}
        if in_use:
            self._retired[cube_name] = in_use
            log.info("cube_snapshot_drop_deferred", tables=sorted(in_use))
        idle = sorted(tables - in_use)
        if idle:
            await self._drop_snapshots(idle, log)

    async def _drop_snapshots(self, tables: list[str], log) -> None:
        """Best-effort removal; a leftover snapshot only costs storage."""
        try:
            await self.connector.execute_statements(
                [f"DROP TABLE IF EXISTS {table}" for table in tables]
            )
        except Exception as e:
            log.warning(
                "cube_snapshot_cleanup_failed", tables=tables, error=str(e)
            )
