"""Built-in cube definitions for the maritime procurement warehouse."""

from .catalog import CubeCatalog
from .models import (
    AggregationType,
    AttributeDataType,
    CalculatedMember,
    CubeDefinition,
    Dimension,
    DimensionAttribute,
    Hierarchy,
    HierarchyLevel,
    Measure,
    MeasureDataType,
)

CURRENCY_FORMAT = "$#,##0.00"
COUNT_FORMAT = "#,##0"
DURATION_FORMAT = "#,##0.0"
PERCENT_FORMAT = "#,##0.0%"


def _levels(*levels: tuple) -> list[HierarchyLevel]:
    return [
        HierarchyLevel(name=level[0], column=level[1], order_by=level[2] if len(level) > 2 else None)
        for level in levels
    ]


def _attributes(*attributes: tuple[str, str, AttributeDataType]) -> list[DimensionAttribute]:
    return [
        DimensionAttribute(name=name, column=column, data_type=data_type)
        for name, column, data_type in attributes
    ]


def _currency(name: str, column: str) -> Measure:
    return Measure(
        name=name,
        column=column,
        aggregation=AggregationType.SUM,
        data_type=MeasureDataType.CURRENCY,
        format_string=CURRENCY_FORMAT,
    )


def _count(name: str, column: str, aggregation=AggregationType.SUM) -> Measure:
    return Measure(
        name=name,
        column=column,
        aggregation=aggregation,
        data_type=MeasureDataType.NUMBER,
        format_string=COUNT_FORMAT,
    )


def _duration(name: str, column: str) -> Measure:
    return Measure(
        name=name,
        column=column,
        aggregation=AggregationType.AVG,
        data_type=MeasureDataType.NUMBER,
        format_string=DURATION_FORMAT,
    )


def _percentage(name: str, expression: str) -> CalculatedMember:
    return CalculatedMember(
        name=name,
        expression=expression,
        data_type=MeasureDataType.PERCENTAGE,
        format_string=PERCENT_FORMAT,
    )


def maritime_procurement_cube() -> CubeDefinition:
    """Requisition-to-payment facts by time, vessel, vendor, category and port."""
    string, number, boolean = (
        AttributeDataType.STRING,
        AttributeDataType.NUMBER,
        AttributeDataType.BOOLEAN,
    )
    return CubeDefinition(
        name="MaritimeProcurement",
        description="Maritime procurement analytics cube",
        fact_table="warehouse.fact_procurement",
        dimensions=[
            Dimension(
                name="Time",
                table="warehouse.dim_time",
                key_column="time_key",
                name_column="date_actual",
                hierarchies=[
                    Hierarchy(
                        name="Calendar",
                        levels=_levels(
                            ("Year", "year"),
                            ("Quarter", "quarter", "quarter"),
                            ("Month", "month_name", "month"),
                            ("Date", "date_actual"),
                        ),
                    ),
                    Hierarchy(
                        name="Fiscal",
                        levels=_levels(
                            ("FiscalYear", "fiscal_year"),
                            ("FiscalQuarter", "fiscal_quarter", "fiscal_quarter"),
                            ("Month", "month_name", "month"),
                        ),
                    ),
                ],
                attributes=_attributes(
                    ("DayOfWeek", "day_of_week", number),
                    ("IsWeekend", "is_weekend", boolean),
                    ("IsHoliday", "is_holiday", boolean),
                ),
            ),
            Dimension(
                name="Vessel",
                table="warehouse.dim_vessel",
                key_column="vessel_key",
                name_column="vessel_name",
                hierarchies=[
                    Hierarchy(
                        name="VesselHierarchy",
                        levels=_levels(
                            ("VesselType", "vessel_type"),
                            ("Flag", "flag"),
                            ("Vessel", "vessel_name"),
                        ),
                    )
                ],
                attributes=_attributes(
                    ("IMONumber", "imo_number", string),
                    ("EngineType", "engine_type", string),
                    ("CargoCapacity", "cargo_capacity", number),
                    ("FuelConsumption", "fuel_consumption", number),
                    ("CrewComplement", "crew_complement", number),
                ),
            ),
            Dimension(
                name="Vendor",
                table="warehouse.dim_vendor",
                key_column="vendor_key",
                name_column="vendor_name",
                hierarchies=[
                    Hierarchy(
                        name="Geography",
                        levels=_levels(
                            ("Country", "country"),
                            ("City", "city"),
                            ("Vendor", "vendor_name"),
                        ),
                    ),
                    Hierarchy(
                        name="VendorType",
                        levels=_levels(
                            ("VendorType", "vendor_type"),
                            ("Vendor", "vendor_name"),
                        ),
                    ),
                ],
                attributes=_attributes(
                    ("VendorCode", "vendor_code", string),
                    ("PaymentTerms", "payment_terms", string),
                    ("CreditLimit", "credit_limit", number),
                    ("QualityRating", "quality_rating", number),
                    ("DeliveryRating", "delivery_rating", number),
                    ("OverallScore", "overall_score", number),
                ),
            ),
            Dimension(
                name="Category",
                table="warehouse.dim_category",
                key_column="category_key",
                name_column="category_name",
                hierarchies=[
                    Hierarchy(
                        name="CategoryHierarchy",
                        levels=_levels(
                            ("Level1", "category_level"),
                            ("Category", "category_name"),
                        ),
                    )
                ],
                attributes=_attributes(
                    ("IMPACode", "impa_code", string),
                    ("ISSACode", "issa_code", string),
                    ("CriticalityLevel", "criticality_level", string),
                ),
            ),
            Dimension(
                name="Geography",
                table="warehouse.dim_geography",
                key_column="geography_key",
                name_column="port_name",
                hierarchies=[
                    Hierarchy(
                        name="Geographic",
                        levels=_levels(
                            ("Continent", "continent"),
                            ("Region", "region"),
                            ("Country", "country"),
                            ("City", "city"),
                            ("Port", "port_name"),
                        ),
                    )
                ],
                attributes=_attributes(
                    ("PortCode", "port_code", string),
                    ("Latitude", "latitude", number),
                    ("Longitude", "longitude", number),
                    ("TimeZone", "time_zone", string),
                ),
            ),
        ],
        measures=[
            _currency("RequisitionAmount", "requisition_amount"),
            _currency("POAmount", "po_amount"),
            _currency("InvoiceAmount", "invoice_amount"),
            _currency("PaidAmount", "paid_amount"),
            _count("QuantityRequested", "quantity_requested"),
            _count("QuantityOrdered", "quantity_ordered"),
            _count("QuantityDelivered", "quantity_delivered"),
            _duration("ApprovalCycleTime", "approval_cycle_time"),
            _duration("ProcurementCycleTime", "procurement_cycle_time"),
            _duration("DeliveryCycleTime", "delivery_cycle_time"),
            _duration("PaymentCycleTime", "payment_cycle_time"),
            _count("TransactionCount", "procurement_key", AggregationType.COUNT),
            _count("EmergencyCount", "is_emergency"),
            _count("OnTimeDeliveryCount", "is_on_time"),
        ],
        calculated_members=[
            CalculatedMember(
                name="AverageOrderValue",
                expression="[Measures].[POAmount] / [Measures].[TransactionCount]",
                data_type=MeasureDataType.CURRENCY,
                format_string=CURRENCY_FORMAT,
            ),
            _percentage(
                "DeliveryEfficiency",
                "[Measures].[OnTimeDeliveryCount] / [Measures].[TransactionCount] * 100",
            ),
            _percentage(
                "EmergencyRate",
                "[Measures].[EmergencyCount] / [Measures].[TransactionCount] * 100",
            ),
            _percentage(
                "FulfillmentRate",
                "[Measures].[QuantityDelivered] / [Measures].[QuantityOrdered] * 100",
            ),
            _percentage(
                "BudgetVariance",
                "([Measures].[POAmount] - [Measures].[RequisitionAmount]) / [Measures].[RequisitionAmount] * 100",
            ),
        ],
    )


def spend_analysis_cube() -> CubeDefinition:
    """Multi-currency spend facts by time, vessel and currency."""
    return CubeDefinition(
        name="SpendAnalysis",
        description="Financial spend analysis cube",
        fact_table="warehouse.fact_spend",
        dimensions=[
            Dimension(
                name="Time",
                table="warehouse.dim_time",
                key_column="time_key",
                name_column="date_actual",
                hierarchies=[
                    Hierarchy(
                        name="Calendar",
                        levels=_levels(
                            ("Year", "year"),
                            ("Quarter", "quarter"),
                            ("Month", "month_name"),
                        ),
                    )
                ],
            ),
            Dimension(
                name="Vessel",
                table="warehouse.dim_vessel",
                key_column="vessel_key",
                name_column="vessel_name",
                hierarchies=[
                    Hierarchy(
                        name="VesselHierarchy",
                        levels=_levels(
                            ("VesselType", "vessel_type"),
                            ("Vessel", "vessel_name"),
                        ),
                    )
                ],
            ),
            Dimension(
                name="Currency",
                table="warehouse.dim_currency",
                key_column="currency_key",
                name_column="currency_name",
                hierarchies=[
                    Hierarchy(
                        name="CurrencyHierarchy",
                        levels=_levels(("Currency", "currency_name")),
                    )
                ],
                attributes=_attributes(
                    ("CurrencyCode", "currency_code", AttributeDataType.STRING),
                    ("Symbol", "symbol", AttributeDataType.STRING),
                ),
            ),
        ],
        measures=[
            _currency("GrossAmount", "gross_amount"),
            _currency("NetAmount", "net_amount"),
            _currency("USDAmount", "usd_amount"),
            _currency("DiscountAmount", "discount_amount"),
            _currency("TaxAmount", "tax_amount"),
        ],
        calculated_members=[
            _percentage(
                "DiscountRate",
                "[Measures].[DiscountAmount] / [Measures].[GrossAmount] * 100",
            ),
            _percentage(
                "TaxRate", "[Measures].[TaxAmount] / [Measures].[NetAmount] * 100"
            ),
        ],
    )


def build_default_catalog() -> CubeCatalog:
    """Catalog holding the built-in maritime cubes."""
    return CubeCatalog([maritime_procurement_cube(), spend_analysis_cube()])
