"""
Higher-level cube operations.

Slice-and-dice, rankings and growth rates are expressed as ParsedQuery
objects and run through the same compile/execute/format pipeline as
hand-written queries. Member enumeration and statistics query the
dimension and fact tables directly from the schema.
"""

import asyncio
import re
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from .catalog import CubeCatalog
from .connectors.base import validate_sql_identifier
from .errors import UnknownDimensionError, UnknownHierarchyError
from .executor import QueryExecutor, Row
from .formatter import ResultFormatter
from .models import (
    CubeData,
    CubeDefinition,
    CubeStatistics,
    DateRange,
    DimensionStatistics,
    GrowthPoint,
    Ranking,
)
from .query.compiler import QueryCompiler
from .query.models import DimensionLevelItem, InPredicate, MeasureItem, ParsedQuery
from .refresh import CubeRefresher

_BRACKETED_PART = re.compile(r"\[([^\]]+)\]")


def parse_member_reference(reference: str) -> tuple[str, str | None, str | None]:
    """
    Split a dimension reference into ``(dimension, hierarchy, level)``.

    Accepts ``Dim``, ``Dim.Level``, ``Dim.Hierarchy.Level`` and the
    bracketed forms ``[Dim].[Level]`` / ``[Dim].[Hierarchy].[Level]``.
    """
    reference = reference.strip()
    if reference.startswith("["):
        parts = [part.strip() for part in _BRACKETED_PART.findall(reference)]
    else:
        parts = [part.strip() for part in reference.split(".")]

    if not parts or not all(parts) or len(parts) > 3:
        raise ValueError(f"Invalid dimension reference: {reference!r}")
    if len(parts) == 1:
        return parts[0], None, None
    if len(parts) == 2:
        return parts[0], None, parts[1]
    return parts[0], parts[1], parts[2]


def _as_number(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class CubeOperations:
    """Derived cube operations on top of the query pipeline."""

    def __init__(
        self,
        catalog: CubeCatalog,
        executor: QueryExecutor,
        refresher: CubeRefresher,
        compiler: QueryCompiler | None = None,
        formatter: ResultFormatter | None = None,
        current_flag_column: str = "is_current",
        statistics_date_column: str = "created_at",
    ):
        self.catalog = catalog
        self.executor = executor
        self.refresher = refresher
        self.compiler = compiler or QueryCompiler()
        self.formatter = formatter or ResultFormatter()
        self.current_flag_column = validate_sql_identifier(
            current_flag_column, "current flag column"
        )
        self.statistics_date_column = validate_sql_identifier(
            statistics_date_column, "statistics date column"
        )
        self.logger = structlog.get_logger(__name__)

    async def run_query(self, query: ParsedQuery) -> CubeData:
        """Compile, execute and format a parsed query."""
        cube = self.catalog.require(query.cube)
        compiled = self.compiler.compile(query, cube)
        with self.refresher.reading(cube):
            rows = await self.executor.execute(compiled.sql, compiled.params)
        return self.formatter.format(query, cube, rows)

    def level_item(self, cube: CubeDefinition, reference: str) -> DimensionLevelItem:
        """
        Resolve a dimension reference to a select item.

        A bare dimension name selects the finest level of its first hierarchy.
        """
        dimension_name, hierarchy, level = parse_member_reference(reference)
        if level is not None:
            return DimensionLevelItem(
                dimension=dimension_name, hierarchy=hierarchy, level=level
            )

        dimension = cube.get_dimension(dimension_name)
        if dimension is None:
            raise UnknownDimensionError(dimension_name, cube.name)
        finest = dimension.hierarchies[0].levels[-1]
        return DimensionLevelItem(dimension=dimension_name, level=finest.name)

    async def get_dimension_members(
        self, cube_name: str, dimension_name: str, hierarchy_name: str | None = None
    ) -> list[Row]:
        """
        Distinct current members of a dimension hierarchy.

        Reads the dimension table only. Rows hold one entry per level column,
        coarsest first, ordered by each level's sort column.
        """
        cube = self.catalog.require(cube_name)
        dimension = cube.get_dimension(dimension_name)
        if dimension is None:
            raise UnknownDimensionError(dimension_name, cube_name)

        if hierarchy_name is not None:
            hierarchy = dimension.get_hierarchy(hierarchy_name)
            if hierarchy is None:
                raise UnknownHierarchyError(dimension_name, hierarchy_name)
        else:
            hierarchy = dimension.hierarchies[0]

        level_columns: list[str] = []
        sort_columns: list[str] = []
        for level in hierarchy.levels:
            if level.column not in level_columns:
                level_columns.append(validate_sql_identifier(level.column, "column name"))
            if level.sort_column not in sort_columns:
                sort_columns.append(
                    validate_sql_identifier(level.sort_column, "column name")
                )
        # DISTINCT requires ORDER BY columns to be selected
        select_columns = level_columns + [
            column for column in sort_columns if column not in level_columns
        ]

        table = validate_sql_identifier(dimension.table, "table name")
        sql = (
            f"SELECT DISTINCT {', '.join(select_columns)}\n"
            f"FROM {table}\n"
            f"WHERE {self.current_flag_column} = ?\n"
            f"ORDER BY {', '.join(sort_columns)}"
        )
        with self.refresher.reading(cube):
            rows = await self.executor.execute(sql, [True])

        members: list[Row] = []
        seen: set[tuple] = set()
        for row in rows:
            member = {column: row.get(column) for column in level_columns}
            key = tuple(member.values())
            if key in seen:
                continue
            seen.add(key)
            members.append(member)
        return members

    async def slice_and_dice(
        self,
        cube_name: str,
        dimensions: Sequence[str],
        measures: Sequence[str],
        filters: Mapping[str, Any] | None = None,
    ) -> CubeData:
        """
        Aggregate selected measures by selected dimension levels.

        Each filter entry restricts one dimension level to a set of values;
        entries are combined with AND.
        """
        cube = self.catalog.require(cube_name)
        select: list[DimensionLevelItem | MeasureItem] = [
            self.level_item(cube, reference) for reference in dimensions
        ]
        select.extend(MeasureItem(name=name) for name in measures)

        where: list[InPredicate] = []
        for reference, values in (filters or {}).items():
            item = self.level_item(cube, reference)
            if isinstance(values, str | bytes) or not isinstance(values, Sequence):
                values = [values]
            where.append(
                InPredicate(
                    dimension=item.dimension,
                    hierarchy=item.hierarchy,
                    level=item.level,
                    values=list(values),
                )
            )

        return await self.run_query(
            ParsedQuery(select=select, cube=cube_name, where=where)
        )

    async def drill_down(
        self, query: ParsedQuery, drill_path: Sequence[str]
    ) -> CubeData:
        """
        Re-run a parsed query with extra dimension levels in front of its select list.

        Levels the query already selects are not added again.
        """
        cube = self.catalog.require(query.cube)
        selected = {item.column_name for item in query.dimension_items}
        added: list[DimensionLevelItem] = []
        for reference in drill_path:
            item = self.level_item(cube, reference)
            if item.column_name in selected:
                continue
            selected.add(item.column_name)
            added.append(item)

        return await self.run_query(
            query.model_copy(update={"select": [*added, *query.select]})
        )

    async def calculate_rankings(
        self, cube_name: str, dimension: str, measure: str, top_n: int = 10
    ) -> list[Ranking]:
        """Top ``top_n`` members of a dimension level by a measure, descending."""
        if top_n < 0:
            raise ValueError("top_n must not be negative")

        cube = self.catalog.require(cube_name)
        query = ParsedQuery(
            select=[self.level_item(cube, dimension), MeasureItem(name=measure)],
            cube=cube_name,
        )
        result = await self.run_query(query)

        # Stable sort: equal values keep the order the store returned
        ordered = sorted(
            result.data,
            key=lambda row: (row[1] is not None, row[1] if row[1] is not None else 0),
            reverse=True,
        )
        return [
            Ranking(rank=index + 1, dimension=row[0], value=row[1])
            for index, row in enumerate(ordered[:top_n])
        ]

    async def calculate_growth_rates(
        self, cube_name: str, time_dimension: str, measure: str, periods: int = 12
    ) -> list[GrowthPoint]:
        """
        Period-over-period growth of a measure along a time level.

        Each period is compared with the one before it in ascending order;
        the most recent ``periods`` points are returned.
        """
        if periods < 0:
            raise ValueError("periods must not be negative")

        cube = self.catalog.require(cube_name)
        query = ParsedQuery(
            select=[self.level_item(cube, time_dimension), MeasureItem(name=measure)],
            cube=cube_name,
        )
        result = await self.run_query(query)

        points: list[GrowthPoint] = []
        previous = 0.0
        for period, value in result.data:
            current = _as_number(value)
            growth = 0.0 if previous == 0 else (current - previous) / previous * 100
            points.append(
                GrowthPoint(
                    period=period,
                    current=current,
                    previous=previous,
                    growth_rate=round(growth, 2),
                )
            )
            previous = current

        if periods == 0:
            return []
        return points[-periods:]

    async def get_cube_statistics(self, cube_name: str) -> CubeStatistics:
        """Record count, date coverage and member counts of a cube."""
        entry = self.catalog.entry(cube_name)
        cube = entry.definition
        fact_table = validate_sql_identifier(cube.fact_table, "table name")
        date_column = self.statistics_date_column

        fact_sql = (
            "SELECT COUNT(*) AS total_records, "
            f"MIN({date_column}) AS earliest_date, "
            f"MAX({date_column}) AS latest_date\n"
            f"FROM {fact_table}"
        )

        async def member_count(dimension) -> DimensionStatistics:
            table = validate_sql_identifier(dimension.table, "table name")
            key_column = validate_sql_identifier(dimension.key_column, "column name")
            rows = await self.executor.execute(
                f"SELECT COUNT(DISTINCT {key_column}) AS member_count\n"
                f"FROM {table}\n"
                f"WHERE {self.current_flag_column} = ?",
                [True],
            )
            count = rows[0].get("member_count") if rows else 0
            return DimensionStatistics(
                dimension=dimension.name, member_count=int(count or 0)
            )

        with self.refresher.reading(cube):
            fact_rows, *dimension_stats = await asyncio.gather(
                self.executor.execute(fact_sql),
                *(member_count(dimension) for dimension in cube.dimensions),
            )
        fact = fact_rows[0] if fact_rows else {}

        return CubeStatistics(
            cube_name=cube.name,
            fact_table=cube.fact_table,
            total_records=int(fact.get("total_records") or 0),
            date_range=DateRange(
                earliest=fact.get("earliest_date"), latest=fact.get("latest_date")
            ),
            dimensions=dimension_stats,
            measure_count=len(cube.measures),
            calculated_member_count=len(cube.calculated_members),
            version=entry.version,
            last_refresh=entry.refreshed_at,
        )

    async def refresh_cube(self, cube_name: str) -> int:
        """Rebuild and publish a new snapshot version of the cube."""
        return await self.refresher.refresh(cube_name)
