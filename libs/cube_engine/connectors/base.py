"""
Base warehouse connector interface and common data structures.

This module defines the abstract base class the cube engine uses to talk
to the star-schema warehouse, plus the result and error types shared by
all connector implementations.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from typing import Any

from pydantic import BaseModel


def sanitize_error_message(error_message: str) -> str:
    """
    Sanitize error messages to remove sensitive information.

    Args:
        error_message: The raw error message

    Returns:
        str: Sanitized error message
    """
    sensitive_patterns = [
        (r'password[=:]\s*[\'"][^\'";]+[\'"]', "password=***"),
        (r"password[=:]\s*\w+", "password=***"),
        (r'user[=:]\s*[\'"][^\'";]+[\'"]', "user=***"),
        (r'token[=:]\s*[\'"][^\'";]+[\'"]', "token=***"),
        (r'host[=:]\s*[\'"][^\'";]+[\'"]', "host=***"),
        (r"://[^/\s:@]+:[^/\s@]+@", "://***:***@"),
    ]

    sanitized_message = error_message
    for pattern, replacement in sensitive_patterns:
        sanitized_message = re.sub(
            pattern, replacement, sanitized_message, flags=re.IGNORECASE
        )

    return sanitized_message


_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


def validate_sql_identifier(
    identifier: str, identifier_type: str = "identifier"
) -> str:
    """
    Validate a SQL identifier taken from a cube definition.

    Only letters, digits and underscores are allowed, optionally dotted for
    schema-qualified table names.

    Args:
        identifier: The identifier to validate
        identifier_type: Type of identifier for error messages

    Returns:
        The validated identifier

    Raises:
        ValueError: If the identifier is empty, too long or malformed
    """
    if not identifier:
        raise ValueError(f"Empty {identifier_type} not allowed")

    if len(identifier) > 128:
        raise ValueError(f"{identifier_type} too long: {identifier}")

    if not _IDENTIFIER_PATTERN.match(identifier):
        raise ValueError(
            f"Invalid {identifier_type}: {identifier}. Only alphanumeric characters, underscores, and dots allowed"
        )

    return identifier


class ConnectionStatus(str, Enum):
    """Connection status states."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ERROR = "error"


class QueryMetadata(BaseModel):
    """Metadata about query execution."""

    execution_time_ms: int
    rows_returned: int = 0


class QueryResult(BaseModel):
    """Result of a warehouse query execution."""

    columns: list[str]
    data: list[list[Any]]
    metadata: QueryMetadata

    def rows(self) -> list[dict[str, Any]]:
        """Rows as ordered column-name mappings."""
        return [dict(zip(self.columns, row, strict=False)) for row in self.data]


Params = Sequence[Any] | None


class DataWarehouseConnector(ABC):
    """
    Abstract base class for warehouse connectors.

    Statements use ``?`` positional placeholders; implementations bind
    ``params`` in order and never interpolate them into the SQL text.
    """

    def __init__(self, connection_params: dict[str, Any]):
        """Initialize the connector with connection parameters."""
        self.connection_params = connection_params
        self._status = ConnectionStatus.DISCONNECTED

    @property
    def status(self) -> ConnectionStatus:
        """Get current connection status."""
        return self._status

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the warehouse.

        Raises:
            ConnectionError: If connection cannot be established
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection to the warehouse."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Return True if the warehouse answers a trivial query."""
        pass

    @abstractmethod
    async def execute_query(
        self,
        query: str,
        params: Params = None,
        timeout: float | None = None,
    ) -> QueryResult:
        """
        Execute a SQL query and return results.

        Args:
            query: SQL query string with ``?`` placeholders
            params: Positional parameter values
            timeout: Optional deadline in seconds

        Returns:
            QueryResult: Query execution results

        Raises:
            QueryError: If query execution fails
            TimeoutError: If the deadline passes
        """
        pass

    @abstractmethod
    async def execute_statements(self, statements: Sequence[str]) -> None:
        """
        Execute DDL/DML statements inside a single transaction.

        Either every statement is committed or none is.

        Raises:
            QueryError: If any statement fails
        """
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()


class QueryError(Exception):
    """Exception raised for query execution errors."""

    def __init__(self, message: str, query: str, error_code: str | None = None):
        super().__init__(message)
        self.query = query
        self.error_code = error_code


class ConnectionError(Exception):
    """Exception raised for connection errors."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url
