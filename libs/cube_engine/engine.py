"""
OLAP engine facade.

This module wires the catalog, parser, compiler, executor, formatter and
operations together and exposes the calls the API layer uses.
"""

from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from .catalog import CubeCatalog
from .config import CubeEngineSettings, get_settings
from .connectors.base import DataWarehouseConnector
from .connectors.sqlalchemy_connector import SQLAlchemyConnector
from .cubes import build_default_catalog
from .errors import CubeEngineError, SemanticError, error_details
from .executor import QueryExecutor, Row
from .formatter import ResultFormatter
from .logging import query_context
from .models import CubeData, CubeDefinition, CubeStatistics, GrowthPoint, Ranking
from .operations import CubeOperations
from .query.compiler import CompiledQuery, QueryCompiler
from .query.models import ParsedQuery
from .query.parser import QueryParser
from .refresh import CubeRefresher


class OLAPEngine:
    """
    Main entry point for cube queries.

    The engine keeps no per-query state and no cache; one instance can serve
    concurrent requests over a shared, pooled connector.
    """

    def __init__(
        self,
        connector: DataWarehouseConnector,
        catalog: CubeCatalog | None = None,
        settings: CubeEngineSettings | None = None,
    ):
        """
        Initialize the engine.

        Args:
            connector: Warehouse connector used for every statement
            catalog: Cube catalog (an empty one is created if omitted)
            settings: Engine settings (read from the environment if omitted)
        """
        self.connector = connector
        self.catalog = catalog if catalog is not None else CubeCatalog()
        self.settings = settings or get_settings()

        self.parser = QueryParser()
        self.compiler = QueryCompiler()
        self.formatter = ResultFormatter()
        self.executor = QueryExecutor(connector, timeout=self.settings.query_timeout)
        self.refresher = CubeRefresher(
            self.catalog, connector, keep_versions=self.settings.refresh_keep_versions
        )
        self.operations = CubeOperations(
            self.catalog,
            self.executor,
            self.refresher,
            compiler=self.compiler,
            formatter=self.formatter,
            current_flag_column=self.settings.current_flag_column,
            statistics_date_column=self.settings.statistics_date_column,
        )
        self.logger = structlog.get_logger(__name__)

    @classmethod
    def from_settings(cls, settings: CubeEngineSettings | None = None) -> "OLAPEngine":
        """Engine over a SQLAlchemy connector with the built-in cubes registered."""
        settings = settings or get_settings()
        connector = SQLAlchemyConnector(settings.connection_params())
        return cls(connector, catalog=build_default_catalog(), settings=settings)

    async def connect(self) -> None:
        await self.connector.connect()

    async def close(self) -> None:
        await self.connector.disconnect()

    async def __aenter__(self) -> "OLAPEngine":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def register_cube(self, definition: CubeDefinition, replace: bool = False) -> None:
        self.catalog.register(definition, replace=replace)

    def list_cubes(self) -> list[CubeDefinition]:
        """All registered cubes in registration order."""
        return self.catalog.list()

    def get_cube_metadata(self, cube_name: str) -> CubeDefinition | None:
        return self.catalog.get(cube_name)

    def _prepare(
        self, cube_name: str, query_text: str
    ) -> tuple[CubeDefinition, ParsedQuery, CompiledQuery]:
        cube = self.catalog.require(cube_name)
        parsed = self.parser.parse(query_text)
        if parsed.cube != cube.name:
            raise SemanticError(
                f"Query selects FROM '{parsed.cube}' but was submitted for cube '{cube.name}'"
            )
        return cube, parsed, self.compiler.compile(parsed, cube)

    def compile_query(self, cube_name: str, query_text: str) -> CompiledQuery:
        """
        Parse and compile query text without executing it.

        Raises:
            UnknownCubeError: If ``cube_name`` is not registered
            QuerySyntaxError: If the text does not parse
            SemanticError: If the query does not match the cube schema
        """
        return self._prepare(cube_name, query_text)[2]

    async def execute_query(self, cube_name: str, query_text: str) -> CubeData:
        """
        Run query text against a cube.

        Raises:
            UnknownCubeError: If ``cube_name`` is not registered
            QuerySyntaxError: If the text does not parse
            SemanticError: If the query references unknown schema elements
            ExecutionError: If the warehouse fails
        """
        with query_context(cube=cube_name, operation="execute_query"):
            try:
                cube, parsed, compiled = self._prepare(cube_name, query_text)
            except CubeEngineError as e:
                self.logger.warning("cube_query_rejected", **error_details(e))
                raise

            with self.refresher.reading(cube):
                rows = await self.executor.execute(compiled.sql, compiled.params)
            return self.formatter.format(parsed, cube, rows)

    async def get_dimension_members(
        self, cube_name: str, dimension: str, hierarchy: str | None = None
    ) -> list[Row]:
        with query_context(cube=cube_name, operation="get_dimension_members"):
            return await self.operations.get_dimension_members(
                cube_name, dimension, hierarchy
            )

    async def drill_down(
        self, cube_name: str, query_text: str, drill_path: Sequence[str]
    ) -> CubeData:
        """Run query text with the levels in ``drill_path`` added to its select list."""
        with query_context(cube=cube_name, operation="drill_down"):
            try:
                _, parsed, _ = self._prepare(cube_name, query_text)
            except CubeEngineError as e:
                self.logger.warning("cube_query_rejected", **error_details(e))
                raise

            return await self.operations.drill_down(parsed, drill_path)

    async def slice_and_dice(
        self,
        cube_name: str,
        dimensions: Sequence[str],
        measures: Sequence[str],
        filters: Mapping[str, Any] | None = None,
    ) -> CubeData:
        with query_context(cube=cube_name, operation="slice_and_dice"):
            return await self.operations.slice_and_dice(
                cube_name, dimensions, measures, filters
            )

    async def calculate_rankings(
        self,
        cube_name: str,
        dimension: str,
        measure: str,
        top_n: int | None = None,
    ) -> list[Ranking]:
        if top_n is None:
            top_n = self.settings.default_top_n
        with query_context(cube=cube_name, operation="calculate_rankings"):
            return await self.operations.calculate_rankings(
                cube_name, dimension, measure, top_n
            )

    async def calculate_growth_rates(
        self,
        cube_name: str,
        time_dimension: str,
        measure: str,
        periods: int | None = None,
    ) -> list[GrowthPoint]:
        if periods is None:
            periods = self.settings.default_growth_periods
        with query_context(cube=cube_name, operation="calculate_growth_rates"):
            return await self.operations.calculate_growth_rates(
                cube_name, time_dimension, measure, periods
            )

    async def get_cube_statistics(self, cube_name: str) -> CubeStatistics:
        with query_context(cube=cube_name, operation="get_cube_statistics"):
            return await self.operations.get_cube_statistics(cube_name)

    async def refresh_cube(self, cube_name: str) -> int:
        """
        Publish a fresh snapshot of the cube's tables.

        Returns:
            The published version number

        Raises:
            UnknownCubeError: If the cube is not registered
            RefreshError: If the snapshot cannot be built
        """
        with query_context(cube=cube_name, operation="refresh_cube"):
            return await self.operations.refresh_cube(cube_name)
