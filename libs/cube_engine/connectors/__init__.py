"""Warehouse connector implementations."""

from .base import (
    ConnectionError,
    ConnectionStatus,
    DataWarehouseConnector,
    QueryError,
    QueryResult,
)
from .sqlalchemy_connector import SQLAlchemyConnector

__all__ = [
    "DataWarehouseConnector",
    "QueryResult",
    "QueryError",
    "ConnectionError",
    "ConnectionStatus",
    "SQLAlchemyConnector",
]
