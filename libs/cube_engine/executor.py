"""Execution of compiled statements against the warehouse."""

import time
from collections.abc import Sequence
from typing import Any

import structlog

from .connectors.base import DataWarehouseConnector, sanitize_error_message
from .errors import ExecutionError

Row = dict[str, Any]


class QueryExecutor:
    """
    Runs compiled SQL on an injected warehouse connector.

    Any failure of the store, including a missed deadline, is raised as
    ExecutionError with the original exception as ``cause``. Nothing is
    retried here; callers decide whether a read is worth repeating.
    """

    def __init__(
        self, connector: DataWarehouseConnector, timeout: float | None = None
    ):
        """
        Args:
            connector: Warehouse connector shared by all queries
            timeout: Default per-query deadline in seconds
        """
        self.connector = connector
        self.timeout = timeout
        self.logger = structlog.get_logger(__name__)

    async def execute(
        self,
        sql: str,
        params: Sequence[Any] | None = None,
        timeout: float | None = None,
    ) -> list[Row]:
        """
        Execute a statement and return its rows as column-name mappings.

        Raises:
            ExecutionError: If the warehouse fails or the deadline passes
        """
        deadline = timeout if timeout is not None else self.timeout
        start_time = time.time()

        try:
            result = await self.connector.execute_query(
                sql, list(params or []), timeout=deadline
            )
        except TimeoutError as e:
            self.logger.error(
                "cube_query_timed_out", timeout_seconds=deadline, sql=sql
            )
            raise ExecutionError(e, sql) from e
        except Exception as e:
            self.logger.error(
                "cube_query_failed",
                error=sanitize_error_message(str(e)),
                error_type=type(e).__name__,
                sql=sql,
            )
            raise ExecutionError(e, sql) from e

        rows = result.rows()
        self.logger.info(
            "cube_query_executed",
            rows=len(rows),
            execution_time_ms=int((time.time() - start_time) * 1000),
        )
        return rows
