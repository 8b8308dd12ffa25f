"""
Error taxonomy for the cube engine.

Every failure raised by the catalog, parser, compiler, executor and
operations is a subclass of CubeEngineError so callers can handle the
whole engine with a single except clause.
"""

from typing import Any


class CubeEngineError(Exception):
    """Base class for all cube engine errors."""


class CatalogError(CubeEngineError):
    """Raised when a cube definition cannot be registered."""


class DuplicateCubeError(CatalogError):
    """Raised when a cube with the same name is already registered."""

    def __init__(self, cube_name: str):
        super().__init__(f"Cube '{cube_name}' is already registered")
        self.cube_name = cube_name


class SchemaError(CatalogError):
    """Raised when a cube definition is internally inconsistent."""

    def __init__(self, cube_name: str, reason: str):
        super().__init__(f"Invalid cube '{cube_name}': {reason}")
        self.cube_name = cube_name
        self.reason = reason


class QuerySyntaxError(CubeEngineError):
    """Raised when query text does not match the query grammar."""

    def __init__(self, line: int, reason: str, column: int | None = None):
        location = f"line {line}" if column is None else f"line {line}, column {column}"
        super().__init__(f"Syntax error at {location}: {reason}")
        self.line = line
        self.column = column
        self.reason = reason


class SemanticError(CubeEngineError):
    """Raised when a query references something the cube does not define."""


class UnknownCubeError(SemanticError):
    def __init__(self, cube_name: str):
        super().__init__(f"Cube '{cube_name}' not found")
        self.cube_name = cube_name


class UnknownDimensionError(SemanticError):
    def __init__(self, dimension: str, cube_name: str | None = None):
        message = f"Dimension '{dimension}' not found"
        if cube_name:
            message += f" in cube '{cube_name}'"
        super().__init__(message)
        self.dimension = dimension
        self.cube_name = cube_name


class UnknownMeasureError(SemanticError):
    def __init__(self, measure: str, cube_name: str | None = None):
        message = f"Measure '{measure}' not found"
        if cube_name:
            message += f" in cube '{cube_name}'"
        super().__init__(message)
        self.measure = measure
        self.cube_name = cube_name


class UnknownLevelError(SemanticError):
    def __init__(self, dimension: str, level: str, hierarchy: str | None = None):
        scope = f"hierarchy '{hierarchy}'" if hierarchy else "any hierarchy"
        super().__init__(
            f"Level '{level}' not found in {scope} of dimension '{dimension}'"
        )
        self.dimension = dimension
        self.level = level
        self.hierarchy = hierarchy


class UnknownHierarchyError(SemanticError):
    def __init__(self, dimension: str, hierarchy: str):
        super().__init__(
            f"Hierarchy '{hierarchy}' not found in dimension '{dimension}'"
        )
        self.dimension = dimension
        self.hierarchy = hierarchy


class ExecutionError(CubeEngineError):
    """Raised when the warehouse fails to execute a compiled statement."""

    def __init__(self, cause: BaseException, sql: str | None = None):
        super().__init__(f"Query execution failed: {cause}")
        self.cause = cause
        self.sql = sql


class RefreshError(CubeEngineError):
    """Raised when a cube refresh cannot be completed."""

    def __init__(self, cube_name: str, cause: BaseException):
        super().__init__(f"Refresh of cube '{cube_name}' failed: {cause}")
        self.cube_name = cube_name
        self.cause = cause


def error_details(error: CubeEngineError) -> dict[str, Any]:
    """Structured representation of an engine error for logs and API layers."""
    details: dict[str, Any] = {
        "error_type": type(error).__name__,
        "message": str(error),
    }
    for attribute in (
        "cube_name",
        "dimension",
        "measure",
        "level",
        "hierarchy",
        "line",
        "column",
        "reason",
    ):
        value = getattr(error, attribute, None)
        if value is not None:
            details[attribute] = value
    return details
