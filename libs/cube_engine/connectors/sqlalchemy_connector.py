"""
SQLAlchemy-backed warehouse connector.

Runs compiled cube statements on any database SQLAlchemy has an async
dialect for (PostgreSQL via asyncpg, SQLite via aiosqlite, ...). The
AsyncEngine owns the connection pool, so a single connector instance is
safe to share between concurrent queries.
"""

import asyncio
import re
import time
from collections.abc import Sequence
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from .base import (
    ConnectionStatus,
    DataWarehouseConnector,
    Params,
    QueryError,
    QueryMetadata,
    QueryResult,
    sanitize_error_message,
)
from .base import (
    ConnectionError as ConnectorConnectionError,
)

# Single-quoted literals are matched first so a "?" inside them is skipped.
_PLACEHOLDER_PATTERN = re.compile(r"'(?:[^']|'')*'|\?")


def to_named_binds(query: str, params: Params) -> tuple[str, dict[str, Any]]:
    """
    Rewrite ``?`` placeholders into SQLAlchemy ``:p<n>`` bind parameters.

    Raises:
        QueryError: If the placeholder count does not match ``params``
    """
    values = list(params or [])
    bind_values: dict[str, Any] = {}

    def replace(match: re.Match[str]) -> str:
        token = match.group(0)
        if token != "?":
            return token
        index = len(bind_values)
        if index >= len(values):
            raise QueryError(
                f"Statement has more placeholders than the {len(values)} parameters given",
                query,
            )
        name = f"p{index}"
        bind_values[name] = values[index]
        return f":{name}"

    rewritten = _PLACEHOLDER_PATTERN.sub(replace, query)
    if len(bind_values) != len(values):
        raise QueryError(
            f"Statement has {len(bind_values)} placeholders but {len(values)} parameters were given",
            query,
        )
    return rewritten, bind_values


class SQLAlchemyConnector(DataWarehouseConnector):
    """Warehouse connector on top of a SQLAlchemy AsyncEngine."""

    def __init__(self, connection_params: dict[str, Any]):
        """
        Initialize the connector.

        Args:
            connection_params: ``url`` plus optional ``echo``, ``pool_size``,
                ``max_overflow``, ``pool_timeout`` and ``pool_recycle``
        """
        super().__init__(connection_params)
        if not connection_params.get("url"):
            raise ValueError("connection_params must include a database 'url'")
        self.url: str = connection_params["url"]
        self._engine: AsyncEngine | None = None
        self.logger = structlog.get_logger(__name__)

    @property
    def engine(self) -> AsyncEngine | None:
        return self._engine

    def _engine_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"echo": self.connection_params.get("echo", False)}
        if self.url.startswith("sqlite"):
            options["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.url:
                # One shared connection so the database survives between checkouts
                options["poolclass"] = StaticPool
        else:
            for key in ("pool_size", "max_overflow", "pool_timeout", "pool_recycle"):
                if self.connection_params.get(key) is not None:
                    options[key] = self.connection_params[key]
            options["pool_pre_ping"] = True
        return options

    async def connect(self) -> None:
        """Create the async engine and verify it can reach the warehouse."""
        if self._engine is not None:
            return

        self._status = ConnectionStatus.CONNECTING
        try:
            self._engine = create_async_engine(self.url, **self._engine_options())
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self._status = ConnectionStatus.CONNECTED
            self.logger.info("warehouse_connected", dialect=self._engine.dialect.name)
        except Exception as e:
            self._status = ConnectionStatus.ERROR
            if self._engine is not None:
                await self._engine.dispose()
                self._engine = None
            raise ConnectorConnectionError(
                f"Failed to connect to warehouse: {sanitize_error_message(str(e))}",
                sanitize_error_message(self.url),
            ) from e

    async def disconnect(self) -> None:
        """Dispose of the engine and its pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        self._status = ConnectionStatus.DISCONNECTED

    async def test_connection(self) -> bool:
        """Test warehouse connection health."""
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception as e:
            self.logger.warning(
                "warehouse_health_check_failed",
                error=sanitize_error_message(str(e)),
            )
            return False

    def _require_engine(self, query: str) -> AsyncEngine:
        if self._engine is None:
            raise QueryError("Not connected to warehouse", query)
        return self._engine

    async def execute_query(
        self,
        query: str,
        params: Params = None,
        timeout: float | None = None,
    ) -> QueryResult:
        """Execute a SQL query, enforcing ``timeout`` as a deadline."""
        engine = self._require_engine(query)
        statement, bind_values = to_named_binds(query, params)
        start_time = time.time()

        async def run() -> tuple[list[str], list[list[Any]]]:
            async with engine.connect() as conn:
                result = await conn.execute(text(statement), bind_values)
                if not result.returns_rows:
                    return [], []
                columns = list(result.keys())
                return columns, [list(row) for row in result.fetchall()]

        try:
            if timeout:
                columns, data = await asyncio.wait_for(run(), timeout)
            else:
                columns, data = await run()
        except TimeoutError:
            raise
        except Exception as e:
            raise QueryError(sanitize_error_message(str(e)), query) from e

        execution_time = int((time.time() - start_time) * 1000)
        return QueryResult(
            columns=columns,
            data=data,
            metadata=QueryMetadata(
                execution_time_ms=execution_time, rows_returned=len(data)
            ),
        )

    async def execute_statements(self, statements: Sequence[str]) -> None:
        """Run statements in one transaction; roll back on the first failure."""
        engine = self._require_engine("; ".join(statements))
        current = ""
        try:
            async with engine.begin() as conn:
                for current in statements:
                    await conn.execute(text(current))
        except Exception as e:
            raise QueryError(
                f"Statement failed: {sanitize_error_message(str(e))}", current
            ) from e
