"""Pytest configuration and shared fixtures."""

from collections.abc import Sequence
from typing import Any

import pytest
import pytest_asyncio

from libs.cube_engine.catalog import CubeCatalog
from libs.cube_engine.config import CubeEngineSettings
from libs.cube_engine.connectors.base import (
    ConnectionStatus,
    DataWarehouseConnector,
    QueryError,
    QueryMetadata,
    QueryResult,
)
from libs.cube_engine.connectors.sqlalchemy_connector import SQLAlchemyConnector
from libs.cube_engine.engine import OLAPEngine
from libs.cube_engine.models import (
    AggregationType,
    CalculatedMember,
    CubeDefinition,
    Dimension,
    Hierarchy,
    HierarchyLevel,
    Measure,
    MeasureDataType,
)

WAREHOUSE_SCHEMA = [
    """
    CREATE TABLE dim_time (
        time_key INTEGER PRIMARY KEY,
        date_actual TEXT,
        year INTEGER,
        quarter INTEGER,
        month INTEGER,
        month_name TEXT,
        is_current BOOLEAN
    )
    """,
    """
    CREATE TABLE dim_vessel (
        vessel_key INTEGER PRIMARY KEY,
        vessel_name TEXT,
        vessel_type TEXT,
        flag TEXT,
        is_current BOOLEAN
    )
    """,
    """
    CREATE TABLE dim_vendor (
        vendor_key INTEGER PRIMARY KEY,
        vendor_name TEXT,
        country TEXT,
        vendor_type TEXT,
        is_current BOOLEAN
    )
    """,
    """
    CREATE TABLE fact_procurement (
        procurement_key INTEGER PRIMARY KEY,
        time_key INTEGER,
        vessel_key INTEGER,
        vendor_key INTEGER,
        po_amount NUMERIC,
        requisition_amount NUMERIC,
        approval_cycle_time REAL,
        created_at TEXT
    )
    """,
]

WAREHOUSE_DATA = [
    "INSERT INTO dim_time VALUES (1, '2024-01-15', 2024, 1, 1, 'January', 1)",
    "INSERT INTO dim_time VALUES (2, '2024-02-15', 2024, 1, 2, 'February', 1)",
    "INSERT INTO dim_time VALUES (3, '2024-03-15', 2024, 1, 3, 'March', 1)",
    "INSERT INTO dim_vessel VALUES (1, 'Nordic Star', 'TANKER', 'PA', 1)",
    "INSERT INTO dim_vessel VALUES (2, 'Ocean Pride', 'TANKER', 'LR', 1)",
    "INSERT INTO dim_vessel VALUES (3, 'Bulk Carrier One', 'BULK', 'PA', 1)",
    "INSERT INTO dim_vessel VALUES (4, 'Old Tanker', 'TANKER', 'PA', 0)",
    "INSERT INTO dim_vendor VALUES (1, 'Acme Marine', 'NO', 'SUPPLIER', 1)",
    "INSERT INTO dim_vendor VALUES (2, 'Blue Ports', 'SG', 'SERVICE', 1)",
    "INSERT INTO fact_procurement VALUES (1, 1, 1, 1, 100, 120, 2.0, '2024-01-15')",
    "INSERT INTO fact_procurement VALUES (2, 2, 2, 2, 50, 40, 4.0, '2024-02-15')",
    "INSERT INTO fact_procurement VALUES (3, 3, 3, 1, 30, 30, 3.0, '2024-03-15')",
]


class MockConnector(DataWarehouseConnector):
    """Connector returning queued results and recording every statement."""

    def __init__(self, connection_params: dict[str, Any] | None = None):
        super().__init__(connection_params or {})
        self._mock_results: list[QueryResult | Exception] = []
        self.executed: list[tuple[str, list[Any]]] = []
        self.statements: list[str] = []
        self.fail_statements = False
        self.fail_on: str | None = None

    def queue_result(self, columns: list[str], data: list[list[Any]]) -> None:
        self._mock_results.append(
            QueryResult(
                columns=columns,
                data=data,
                metadata=QueryMetadata(execution_time_ms=1, rows_returned=len(data)),
            )
        )

    def queue_error(self, error: Exception) -> None:
        self._mock_results.append(error)

    async def connect(self) -> None:
        self._status = ConnectionStatus.CONNECTED

    async def disconnect(self) -> None:
        self._status = ConnectionStatus.DISCONNECTED

    async def test_connection(self) -> bool:
        return self._status == ConnectionStatus.CONNECTED

    async def execute_query(
        self, query: str, params: Sequence[Any] | None = None, timeout=None
    ) -> QueryResult:
        self.executed.append((query, list(params or [])))
        if self._mock_results:
            result = self._mock_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return QueryResult(
            columns=[], data=[], metadata=QueryMetadata(execution_time_ms=1)
        )

    async def execute_statements(self, statements: Sequence[str]) -> None:
        self.statements.extend(statements)
        if self.fail_statements:
            raise QueryError("Mock statement failed", statements[0])
        for statement in statements:
            if self.fail_on is not None and self.fail_on in statement:
                raise QueryError("Mock statement failed", statement)


@pytest.fixture
def procurement_cube() -> CubeDefinition:
    """A MaritimeProcurement cube over the unqualified test tables."""
    return CubeDefinition(
        name="MaritimeProcurement",
        description="Maritime procurement analytics cube",
        fact_table="fact_procurement",
        dimensions=[
            Dimension(
                name="Time",
                table="dim_time",
                key_column="time_key",
                name_column="date_actual",
                hierarchies=[
                    Hierarchy(
                        name="Calendar",
                        levels=[
                            HierarchyLevel(name="Year", column="year"),
                            HierarchyLevel(name="Quarter", column="quarter"),
                            HierarchyLevel(
                                name="Month", column="month_name", order_by="month"
                            ),
                        ],
                    )
                ],
            ),
            Dimension(
                name="Vessel",
                table="dim_vessel",
                key_column="vessel_key",
                name_column="vessel_name",
                hierarchies=[
                    Hierarchy(
                        name="VesselHierarchy",
                        levels=[
                            HierarchyLevel(name="VesselType", column="vessel_type"),
                            HierarchyLevel(name="Vessel", column="vessel_name"),
                        ],
                    )
                ],
            ),
            Dimension(
                name="Vendor",
                table="dim_vendor",
                key_column="vendor_key",
                name_column="vendor_name",
                hierarchies=[
                    Hierarchy(
                        name="Geography",
                        levels=[
                            HierarchyLevel(name="Country", column="country"),
                            HierarchyLevel(name="Vendor", column="vendor_name"),
                        ],
                    ),
                    Hierarchy(
                        name="VendorType",
                        levels=[
                            HierarchyLevel(name="VendorType", column="vendor_type"),
                            HierarchyLevel(name="Vendor", column="vendor_name"),
                        ],
                    ),
                ],
            ),
        ],
        measures=[
            Measure(
                name="POAmount",
                column="po_amount",
                aggregation=AggregationType.SUM,
                data_type=MeasureDataType.CURRENCY,
                format_string="$#,##0.00",
            ),
            Measure(
                name="RequisitionAmount",
                column="requisition_amount",
                aggregation=AggregationType.SUM,
                data_type=MeasureDataType.CURRENCY,
                format_string="$#,##0.00",
            ),
            Measure(
                name="TransactionCount",
                column="procurement_key",
                aggregation=AggregationType.COUNT,
                format_string="#,##0",
            ),
            Measure(
                name="ApprovalCycleTime",
                column="approval_cycle_time",
                aggregation=AggregationType.AVG,
            ),
            Measure(
                name="VendorCount",
                column="vendor_key",
                aggregation=AggregationType.COUNT_DISTINCT,
            ),
        ],
        calculated_members=[
            CalculatedMember(
                name="AverageOrderValue",
                expression="[Measures].[POAmount] / [Measures].[TransactionCount]",
                data_type=MeasureDataType.CURRENCY,
            )
        ],
    )


@pytest.fixture
def catalog(procurement_cube) -> CubeCatalog:
    return CubeCatalog([procurement_cube])


@pytest.fixture
def settings(tmp_path) -> CubeEngineSettings:
    return CubeEngineSettings(
        warehouse_url=f"sqlite+aiosqlite:///{tmp_path / 'warehouse.db'}",
        query_timeout=10,
        refresh_keep_versions=2,
    )


@pytest.fixture
def mock_connector() -> MockConnector:
    return MockConnector({"url": "mock://"})


@pytest_asyncio.fixture
async def warehouse(settings):
    """SQLite warehouse seeded with a small procurement star schema."""
    connector = SQLAlchemyConnector(settings.connection_params())
    await connector.connect()
    await connector.execute_statements(WAREHOUSE_SCHEMA)
    await connector.execute_statements(WAREHOUSE_DATA)
    yield connector
    await connector.disconnect()


@pytest_asyncio.fixture
async def engine(warehouse, catalog, settings) -> OLAPEngine:
    return OLAPEngine(warehouse, catalog=catalog, settings=settings)
