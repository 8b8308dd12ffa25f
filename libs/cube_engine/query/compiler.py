"""
Compile parsed cube queries into parameterized SQL.

Every identifier written into the SQL text comes from the validated cube
definition. Values from the query are only ever bound as ``?`` parameters.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from ..connectors.base import validate_sql_identifier
from ..errors import (
    SemanticError,
    UnknownDimensionError,
    UnknownHierarchyError,
    UnknownLevelError,
    UnknownMeasureError,
)
from ..models import CubeDefinition, Dimension, HierarchyLevel
from .models import (
    DimensionLevelItem,
    EqualsPredicate,
    InPredicate,
    MeasureItem,
    ParsedQuery,
    Predicate,
)

FACT_ALIAS = "fact"

logger = structlog.get_logger(__name__)


@dataclass
class CompiledQuery:
    """SQL text with ``?`` placeholders and the values to bind, in order."""

    sql: str
    params: list[Any] = field(default_factory=list)


def resolve_level(
    dimension: Dimension, level: str, hierarchy: str | None = None
) -> HierarchyLevel:
    """
    Resolve a level of a dimension.

    With a hierarchy name only that hierarchy is searched; without one every
    hierarchy is searched in declaration order.

    Raises:
        UnknownHierarchyError: If the named hierarchy does not exist
        UnknownLevelError: If no searched hierarchy has the level
    """
    if hierarchy is not None:
        found_hierarchy = dimension.get_hierarchy(hierarchy)
        if found_hierarchy is None:
            raise UnknownHierarchyError(dimension.name, hierarchy)
        found = found_hierarchy.get_level(level)
    else:
        found = dimension.find_level(level)

    if found is None:
        raise UnknownLevelError(dimension.name, level, hierarchy)
    return found


class _Builder:
    """Accumulates the clauses of one statement."""

    def __init__(self, cube: CubeDefinition):
        self.cube = cube
        self.select: list[str] = []
        self.joins: list[str] = []
        self.joined: set[str] = set()
        self.where: list[str] = []
        self.group_by: list[str] = []
        self.order_by: list[str] = []
        self.params: list[Any] = []

    def dimension(self, name: str) -> Dimension:
        dimension = self.cube.get_dimension(name)
        if dimension is None:
            raise UnknownDimensionError(name, self.cube.name)
        self.join(dimension)
        return dimension

    def join(self, dimension: Dimension) -> None:
        if dimension.name in self.joined:
            return
        alias = dimension.alias
        table = validate_sql_identifier(dimension.table, "table name")
        fact_key = validate_sql_identifier(dimension.fact_key, "column name")
        key_column = validate_sql_identifier(dimension.key_column, "column name")
        self.joins.append(
            f"LEFT JOIN {table} {alias} ON {FACT_ALIAS}.{fact_key} = {alias}.{key_column}"
        )
        self.joined.add(dimension.name)

    def add_group(self, column: str) -> None:
        if column not in self.group_by:
            self.group_by.append(column)

    def add_order(self, column: str) -> None:
        if column not in self.order_by:
            self.order_by.append(column)


class QueryCompiler:
    """Resolves a ParsedQuery against a CubeDefinition into SQL."""

    def compile(self, query: ParsedQuery, cube: CubeDefinition) -> CompiledQuery:
        """
        Compile a parsed query.

        Raises:
            UnknownMeasureError: For a measure the cube does not define
            UnknownDimensionError: For a dimension the cube does not define
            UnknownHierarchyError: For a qualified hierarchy that does not exist
            UnknownLevelError: For a level no hierarchy defines
            SemanticError: If two select items produce the same result column
        """
        builder = _Builder(cube)

        labels: set[str] = set()
        for item in query.select:
            label = item.name if isinstance(item, MeasureItem) else item.column_name
            if label in labels:
                raise SemanticError(f"Column '{label}' is selected more than once")
            labels.add(label)
            if isinstance(item, MeasureItem):
                self._compile_measure(builder, item)
            else:
                self._compile_dimension_level(builder, item)

        for predicate in query.where:
            self._compile_predicate(builder, predicate)

        fact_table = validate_sql_identifier(cube.fact_table, "table name")
        parts = [
            "SELECT " + ", ".join(builder.select),
            f"FROM {fact_table} {FACT_ALIAS}",
            *builder.joins,
        ]
        if builder.where:
            parts.append("WHERE " + " AND ".join(builder.where))
        if query.dimension_items:
            parts.append("GROUP BY " + ", ".join(builder.group_by))
            parts.append("ORDER BY " + ", ".join(builder.order_by))

        compiled = CompiledQuery(sql="\n".join(parts), params=builder.params)
        logger.debug(
            "cube_query_compiled",
            cube=cube.name,
            joins=len(builder.joins),
            params=len(compiled.params),
        )
        return compiled

    def _compile_measure(self, builder: _Builder, item: MeasureItem) -> None:
        measure = builder.cube.get_measure(item.name)
        if measure is None:
            raise UnknownMeasureError(item.name, builder.cube.name)
        validate_sql_identifier(measure.column, "column name")
        validate_sql_identifier(measure.name, "measure name")
        builder.select.append(
            f"{measure.get_sql_expression(FACT_ALIAS)} AS {measure.name}"
        )

    def _compile_dimension_level(
        self, builder: _Builder, item: DimensionLevelItem
    ) -> None:
        dimension = builder.dimension(item.dimension)
        level = resolve_level(dimension, item.level, item.hierarchy)
        column = f"{dimension.alias}.{validate_sql_identifier(level.column, 'column name')}"
        sort_column = (
            f"{dimension.alias}.{validate_sql_identifier(level.sort_column, 'column name')}"
        )
        label = validate_sql_identifier(item.column_name, "column alias")

        builder.select.append(f"{column} AS {label}")
        builder.add_group(column)
        # Strict stores reject ORDER BY on a column that is not grouped
        builder.add_group(sort_column)
        builder.add_order(sort_column)

    def _compile_predicate(self, builder: _Builder, predicate: Predicate) -> None:
        dimension = builder.dimension(predicate.dimension)
        level = resolve_level(dimension, predicate.level, predicate.hierarchy)
        column = f"{dimension.alias}.{validate_sql_identifier(level.column, 'column name')}"

        if isinstance(predicate, EqualsPredicate):
            builder.where.append(f"{column} = ?")
            builder.params.append(predicate.value)
        elif isinstance(predicate, InPredicate):
            if not predicate.values:
                builder.where.append("1 = 0")
                return
            placeholders = ", ".join("?" for _ in predicate.values)
            builder.where.append(f"{column} IN ({placeholders})")
            builder.params.extend(predicate.values)
