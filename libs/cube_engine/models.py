"""
Cube definitions and result structures.

This module defines the star-schema model the engine compiles against
(cubes, dimensions, hierarchies, levels, measures, calculated members)
and the shapes returned to callers (CubeData, rankings, growth points,
statistics).
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .expression import Expression, parse_expression, referenced_measures


class AggregationType(str, Enum):
    """Supported aggregation types for measures."""

    SUM = "sum"
    AVG = "avg"
    COUNT = "count"
    MIN = "min"
    MAX = "max"
    COUNT_DISTINCT = "count_distinct"


class MeasureDataType(str, Enum):
    """Display type of a measure or calculated member."""

    NUMBER = "number"
    CURRENCY = "currency"
    PERCENTAGE = "percentage"


class AttributeDataType(str, Enum):
    """Data type of a descriptive dimension attribute."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class _SchemaModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class HierarchyLevel(_SchemaModel):
    """A level in a dimension hierarchy."""

    name: str
    column: str
    order_by: str | None = None

    @property
    def sort_column(self) -> str:
        return self.order_by or self.column


class Hierarchy(_SchemaModel):
    """An ordered drill-down path, coarsest level first."""

    name: str
    levels: list[HierarchyLevel]

    def get_level(self, name: str) -> HierarchyLevel | None:
        for level in self.levels:
            if level.name == name:
                return level
        return None


class DimensionAttribute(_SchemaModel):
    """A descriptive, non-hierarchical column of a dimension table."""

    name: str
    column: str
    data_type: AttributeDataType


class Dimension(_SchemaModel):
    """A dimension of a cube, backed by its own table."""

    name: str
    table: str
    key_column: str
    name_column: str
    hierarchies: list[Hierarchy]
    attributes: list[DimensionAttribute] = Field(default_factory=list)

    @property
    def fact_key(self) -> str:
        """Foreign key column on the fact table referencing this dimension."""
        return f"{self.name.lower()}_key"

    @property
    def alias(self) -> str:
        """Stable table alias used when joining this dimension."""
        return f"d_{self.name.lower()}"

    def get_hierarchy(self, name: str) -> Hierarchy | None:
        for hierarchy in self.hierarchies:
            if hierarchy.name == name:
                return hierarchy
        return None

    def find_level(self, level: str) -> HierarchyLevel | None:
        """Find a level by name across all hierarchies, first match wins."""
        for hierarchy in self.hierarchies:
            found = hierarchy.get_level(level)
            if found is not None:
                return found
        return None


class Measure(_SchemaModel):
    """A numeric fact column with its aggregation."""

    name: str
    column: str
    aggregation: AggregationType
    data_type: MeasureDataType = MeasureDataType.NUMBER
    format_string: str | None = None

    def get_sql_expression(self, table_alias: str = "fact") -> str:
        """Aggregate SQL expression for this measure."""
        column = f"{table_alias}.{self.column}"
        if self.aggregation == AggregationType.COUNT_DISTINCT:
            return f"COUNT(DISTINCT {column})"
        return f"{self.aggregation.value.upper()}({column})"


class CalculatedMember(_SchemaModel):
    """A named arithmetic expression over measures, kept as metadata."""

    name: str
    expression: str
    data_type: MeasureDataType = MeasureDataType.NUMBER
    format_string: str | None = None

    def parsed(self) -> Expression:
        """Expression AST.

        Raises:
            ExpressionError: If the expression is malformed
        """
        return parse_expression(self.expression)

    def referenced_measures(self) -> list[str]:
        return referenced_measures(self.parsed())


class CubeDefinition(_SchemaModel):
    """Schema definition for an OLAP cube."""

    name: str
    description: str = ""
    fact_table: str
    dimensions: list[Dimension]
    measures: list[Measure]
    calculated_members: list[CalculatedMember] = Field(default_factory=list)

    def get_dimension(self, name: str) -> Dimension | None:
        """Get dimension by name."""
        for dim in self.dimensions:
            if dim.name == name:
                return dim
        return None

    def get_measure(self, name: str) -> Measure | None:
        """Get measure by name."""
        for measure in self.measures:
            if measure.name == name:
                return measure
        return None

    def get_calculated_member(self, name: str) -> CalculatedMember | None:
        for member in self.calculated_members:
            if member.name == name:
                return member
        return None

    def table_names(self) -> list[str]:
        """Fact table followed by each distinct dimension table."""
        tables = [self.fact_table]
        for dim in self.dimensions:
            if dim.table not in tables:
                tables.append(dim.table)
        return tables

    def with_tables(self, mapping: dict[str, str]) -> "CubeDefinition":
        """Copy of this definition with tables renamed through ``mapping``."""
        return self.model_copy(
            update={
                "fact_table": mapping.get(self.fact_table, self.fact_table),
                "dimensions": [
                    dim.model_copy(update={"table": mapping.get(dim.table, dim.table)})
                    for dim in self.dimensions
                ],
            }
        )


class MeasureInfo(BaseModel):
    """Display metadata for a measure column in a result."""

    data_type: MeasureDataType
    format_string: str | None = None
    aggregation: AggregationType


class CubeDataMetadata(BaseModel):
    dimension_members: dict[str, list[Any]] = Field(default_factory=dict)
    measure_info: dict[str, MeasureInfo] = Field(default_factory=dict)


class CubeData(BaseModel):
    """Multidimensional query result.

    Each row of ``data`` holds the dimension columns in ``dimensions`` order
    followed by the measure columns in ``measures`` order.
    """

    dimensions: list[str]
    measures: list[str]
    data: list[list[Any]]
    metadata: CubeDataMetadata = Field(default_factory=CubeDataMetadata)

    def to_dataframe(self):
        """Convert result to a pandas DataFrame."""
        import pandas as pd

        return pd.DataFrame(self.data, columns=[*self.dimensions, *self.measures])


class Ranking(BaseModel):
    rank: int
    dimension: Any
    value: Any


class GrowthPoint(BaseModel):
    period: Any
    current: float
    previous: float
    growth_rate: float


class DateRange(BaseModel):
    earliest: Any = None
    latest: Any = None


class DimensionStatistics(BaseModel):
    dimension: str
    member_count: int


class CubeStatistics(BaseModel):
    """Size and coverage summary of a cube."""

    cube_name: str
    fact_table: str
    total_records: int
    date_range: DateRange
    dimensions: list[DimensionStatistics]
    measure_count: int
    calculated_member_count: int
    version: int = 0
    last_refresh: datetime | None = None
