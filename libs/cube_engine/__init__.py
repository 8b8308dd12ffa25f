"""
Cube Engine Library

OLAP cube catalog and query engine over a star-schema warehouse.

Features:
- Cube catalog with schema validation (dimensions, hierarchies, measures)
- Small declarative query language compiled to parameterized SQL
- Multidimensional results with member and measure metadata
- Slice-and-dice, top-N rankings and period-over-period growth
- Snapshot-based cube refresh with atomic version swap
"""

from .catalog import CubeCatalog
from .config import CubeEngineSettings, get_settings
from .connectors.base import DataWarehouseConnector, QueryResult
from .connectors.sqlalchemy_connector import SQLAlchemyConnector
from .cubes import build_default_catalog
from .engine import OLAPEngine
from .errors import (
    CatalogError,
    CubeEngineError,
    DuplicateCubeError,
    ExecutionError,
    QuerySyntaxError,
    RefreshError,
    SchemaError,
    SemanticError,
    UnknownCubeError,
    UnknownDimensionError,
    UnknownHierarchyError,
    UnknownLevelError,
    UnknownMeasureError,
)
from .models import (
    AggregationType,
    CalculatedMember,
    CubeData,
    CubeDefinition,
    CubeStatistics,
    Dimension,
    GrowthPoint,
    Hierarchy,
    HierarchyLevel,
    Measure,
    MeasureDataType,
    Ranking,
)

__all__ = [
    # Engine
    "OLAPEngine",
    "CubeCatalog",
    "build_default_catalog",
    "CubeEngineSettings",
    "get_settings",
    # Connectors
    "DataWarehouseConnector",
    "QueryResult",
    "SQLAlchemyConnector",
    # Models
    "AggregationType",
    "CalculatedMember",
    "CubeData",
    "CubeDefinition",
    "CubeStatistics",
    "Dimension",
    "GrowthPoint",
    "Hierarchy",
    "HierarchyLevel",
    "Measure",
    "MeasureDataType",
    "Ranking",
    # Errors
    "CubeEngineError",
    "CatalogError",
    "DuplicateCubeError",
    "SchemaError",
    "QuerySyntaxError",
    "SemanticError",
    "UnknownCubeError",
    "UnknownDimensionError",
    "UnknownMeasureError",
    "UnknownLevelError",
    "UnknownHierarchyError",
    "ExecutionError",
    "RefreshError",
]
