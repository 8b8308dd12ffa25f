"""Tests for cube definitions, the cube catalog and the built-in cubes."""

import pytest
from pydantic import ValidationError

from libs.cube_engine.catalog import CubeCatalog, validate_definition
from libs.cube_engine.cubes import (
    build_default_catalog,
    maritime_procurement_cube,
    spend_analysis_cube,
)
from libs.cube_engine.errors import (
    CatalogError,
    DuplicateCubeError,
    SchemaError,
    UnknownCubeError,
)
from libs.cube_engine.models import (
    AggregationType,
    CalculatedMember,
    CubeDefinition,
    Dimension,
    Hierarchy,
    HierarchyLevel,
    Measure,
)
from libs.cube_engine.query import QueryCompiler, QueryParser


def _update(cube: CubeDefinition, **changes) -> CubeDefinition:
    return cube.model_copy(update=changes)


class TestCubeDefinition:
    """Test cube schema models."""

    def test_dimension_alias_and_fact_key(self, procurement_cube):
        vessel = procurement_cube.get_dimension("Vessel")

        assert vessel.alias == "d_vessel"
        assert vessel.fact_key == "vessel_key"

    def test_find_level_searches_hierarchies_in_order(self, procurement_cube):
        vendor = procurement_cube.get_dimension("Vendor")

        assert vendor.find_level("Country").column == "country"
        assert vendor.find_level("VendorType").column == "vendor_type"
        assert vendor.find_level("Port") is None
        assert vendor.get_hierarchy("VendorType").get_level("Country") is None

    def test_level_sort_column(self, procurement_cube):
        calendar = procurement_cube.get_dimension("Time").get_hierarchy("Calendar")

        assert calendar.get_level("Month").sort_column == "month"
        assert calendar.get_level("Year").sort_column == "year"

    @pytest.mark.parametrize(
        "aggregation,expected",
        [
            (AggregationType.SUM, "SUM(fact.amount)"),
            (AggregationType.AVG, "AVG(fact.amount)"),
            (AggregationType.COUNT, "COUNT(fact.amount)"),
            (AggregationType.MIN, "MIN(fact.amount)"),
            (AggregationType.MAX, "MAX(fact.amount)"),
            (AggregationType.COUNT_DISTINCT, "COUNT(DISTINCT fact.amount)"),
        ],
    )
    def test_measure_sql_expression(self, aggregation, expected):
        measure = Measure(name="Amount", column="amount", aggregation=aggregation)

        assert measure.get_sql_expression() == expected

    def test_table_names_and_with_tables(self, procurement_cube):
        assert procurement_cube.table_names() == [
            "fact_procurement",
            "dim_time",
            "dim_vessel",
            "dim_vendor",
        ]

        renamed = procurement_cube.with_tables(
            {"fact_procurement": "fact_procurement__v1", "dim_vessel": "dim_vessel__v1"}
        )

        assert renamed.fact_table == "fact_procurement__v1"
        assert renamed.get_dimension("Vessel").table == "dim_vessel__v1"
        assert renamed.get_dimension("Time").table == "dim_time"
        assert procurement_cube.fact_table == "fact_procurement"

    def test_calculated_member_references(self, procurement_cube):
        member = procurement_cube.get_calculated_member("AverageOrderValue")

        assert member.referenced_measures() == ["POAmount", "TransactionCount"]

    def test_definitions_are_immutable(self, procurement_cube):
        with pytest.raises(ValidationError):
            procurement_cube.name = "Other"


class TestDefinitionValidation:
    """Test schema checks applied at registration."""

    def test_valid_definition(self, procurement_cube):
        validate_definition(procurement_cube)

    def test_duplicate_dimension_names(self, procurement_cube):
        cube = _update(
            procurement_cube,
            dimensions=[*procurement_cube.dimensions, procurement_cube.dimensions[0]],
        )

        with pytest.raises(SchemaError, match="duplicate dimension names: Time"):
            validate_definition(cube)

    def test_duplicate_measure_names(self, procurement_cube):
        cube = _update(
            procurement_cube,
            measures=[*procurement_cube.measures, procurement_cube.measures[0]],
        )

        with pytest.raises(SchemaError, match="duplicate measure names"):
            validate_definition(cube)

    def test_calculated_member_shadowing_measure(self, procurement_cube):
        cube = _update(
            procurement_cube,
            calculated_members=[
                CalculatedMember(name="POAmount", expression="[Measures].[POAmount] * 2")
            ],
        )

        with pytest.raises(SchemaError, match="calculated member names"):
            validate_definition(cube)

    def test_calculated_member_unknown_measure(self, procurement_cube):
        cube = _update(
            procurement_cube,
            calculated_members=[
                CalculatedMember(
                    name="FreightShare",
                    expression="[Measures].[Freight] / [Measures].[POAmount]",
                )
            ],
        )

        with pytest.raises(SchemaError, match="unknown measures: Freight"):
            validate_definition(cube)

    def test_calculated_member_malformed_expression(self, procurement_cube):
        cube = _update(
            procurement_cube,
            calculated_members=[
                CalculatedMember(name="Broken", expression="[Measures].[POAmount] /")
            ],
        )

        with pytest.raises(SchemaError, match="calculated member 'Broken'"):
            validate_definition(cube)

    def test_invalid_table_identifier(self, procurement_cube):
        cube = _update(procurement_cube, fact_table="fact; DROP TABLE x")

        with pytest.raises(SchemaError):
            validate_definition(cube)

    def test_dimension_without_hierarchies(self, procurement_cube):
        dimension = Dimension(
            name="Port",
            table="dim_port",
            key_column="port_key",
            name_column="port_name",
            hierarchies=[],
        )
        cube = _update(
            procurement_cube, dimensions=[*procurement_cube.dimensions, dimension]
        )

        with pytest.raises(SchemaError, match="has no hierarchies"):
            validate_definition(cube)

    def test_hierarchy_without_levels(self, procurement_cube):
        dimension = Dimension(
            name="Port",
            table="dim_port",
            key_column="port_key",
            name_column="port_name",
            hierarchies=[Hierarchy(name="Ports", levels=[])],
        )
        cube = _update(
            procurement_cube, dimensions=[*procurement_cube.dimensions, dimension]
        )

        with pytest.raises(SchemaError, match="has no levels"):
            validate_definition(cube)

    def test_duplicate_level_names(self, procurement_cube):
        dimension = Dimension(
            name="Port",
            table="dim_port",
            key_column="port_key",
            name_column="port_name",
            hierarchies=[
                Hierarchy(
                    name="Ports",
                    levels=[
                        HierarchyLevel(name="Port", column="port_name"),
                        HierarchyLevel(name="Port", column="port_code"),
                    ],
                )
            ],
        )
        cube = _update(
            procurement_cube, dimensions=[*procurement_cube.dimensions, dimension]
        )

        with pytest.raises(SchemaError, match="duplicate level names"):
            validate_definition(cube)


class TestCubeCatalog:
    """Test cube registration and lookup."""

    def test_register_and_get(self, procurement_cube):
        catalog = CubeCatalog()
        catalog.register(procurement_cube)

        assert catalog.get("MaritimeProcurement") == procurement_cube
        assert catalog.require("MaritimeProcurement") == procurement_cube
        assert "MaritimeProcurement" in catalog
        assert len(catalog) == 1

    def test_lookup_is_case_sensitive(self, catalog):
        assert catalog.get("maritimeprocurement") is None
        with pytest.raises(UnknownCubeError):
            catalog.require("maritimeprocurement")

    def test_duplicate_registration_rejected(self, catalog, procurement_cube):
        with pytest.raises(DuplicateCubeError) as exc_info:
            catalog.register(procurement_cube)

        assert exc_info.value.cube_name == "MaritimeProcurement"
        assert isinstance(exc_info.value, CatalogError)

    def test_invalid_definition_not_registered(self, procurement_cube):
        catalog = CubeCatalog()
        broken = _update(procurement_cube, fact_table="")

        with pytest.raises(SchemaError):
            catalog.register(broken)
        assert "MaritimeProcurement" not in catalog

    def test_replace_keeps_version_counter(self, catalog, procurement_cube):
        refreshed = procurement_cube.with_tables(
            {"fact_procurement": "fact_procurement__v1"}
        )
        catalog.publish("MaritimeProcurement", refreshed, 1)

        updated = _update(procurement_cube, description="Updated")
        catalog.register(updated, replace=True)

        entry = catalog.entry("MaritimeProcurement")
        assert entry.version == 1
        assert entry.definition.description == "Updated"
        assert entry.source == updated

    def test_list_preserves_registration_order(self, procurement_cube):
        other = _update(procurement_cube, name="Another")
        catalog = CubeCatalog([other, procurement_cube])

        assert [cube.name for cube in catalog.list()] == [
            "Another",
            "MaritimeProcurement",
        ]

    def test_unregister(self, catalog):
        catalog.unregister("MaritimeProcurement")

        assert catalog.get("MaritimeProcurement") is None
        with pytest.raises(UnknownCubeError):
            catalog.unregister("MaritimeProcurement")

    def test_publish_swaps_definition_and_keeps_source(self, catalog, procurement_cube):
        snapshot = procurement_cube.with_tables(
            {"fact_procurement": "fact_procurement__v1"}
        )

        catalog.publish("MaritimeProcurement", snapshot, 1)

        assert catalog.get("MaritimeProcurement").fact_table == "fact_procurement__v1"
        assert catalog.source("MaritimeProcurement").fact_table == "fact_procurement"
        assert catalog.version("MaritimeProcurement") == 1
        assert catalog.entry("MaritimeProcurement").refreshed_at is not None

    def test_publish_requires_newer_version(self, catalog, procurement_cube):
        catalog.publish("MaritimeProcurement", procurement_cube, 2)

        with pytest.raises(ValueError):
            catalog.publish("MaritimeProcurement", procurement_cube, 2)

    def test_publish_unknown_cube(self, catalog, procurement_cube):
        with pytest.raises(UnknownCubeError):
            catalog.publish("Missing", procurement_cube, 1)

    def test_readers_keep_previous_snapshot(self, catalog, procurement_cube):
        before = catalog.get("MaritimeProcurement")

        catalog.publish(
            "MaritimeProcurement",
            procurement_cube.with_tables({"fact_procurement": "fact_procurement__v1"}),
            1,
        )

        assert before.fact_table == "fact_procurement"


class TestBuiltInCubes:
    """Test the maritime cubes shipped with the engine."""

    def test_default_catalog(self):
        catalog = build_default_catalog()

        assert [cube.name for cube in catalog.list()] == [
            "MaritimeProcurement",
            "SpendAnalysis",
        ]

    def test_maritime_procurement_schema(self):
        cube = maritime_procurement_cube()

        assert cube.fact_table == "warehouse.fact_procurement"
        assert [dim.name for dim in cube.dimensions] == [
            "Time",
            "Vessel",
            "Vendor",
            "Category",
            "Geography",
        ]
        assert len(cube.measures) == 14
        assert {member.name for member in cube.calculated_members} == {
            "AverageOrderValue",
            "DeliveryEfficiency",
            "EmergencyRate",
            "FulfillmentRate",
            "BudgetVariance",
        }

    def test_built_in_cubes_compile(self):
        parser = QueryParser()
        compiler = QueryCompiler()

        compiled = compiler.compile(
            parser.parse(
                "SELECT [Geography].[Port], [Time].[Fiscal].[Month], [Measures].[POAmount] "
                "FROM [MaritimeProcurement] WHERE [Vessel].[Flag] = 'PA'"
            ),
            maritime_procurement_cube(),
        )
        assert "FROM warehouse.fact_procurement fact" in compiled.sql
        assert (
            "LEFT JOIN warehouse.dim_geography d_geography "
            "ON fact.geography_key = d_geography.geography_key"
        ) in compiled.sql
        assert compiled.params == ["PA"]

        compiled = compiler.compile(
            parser.parse(
                "SELECT [Currency].[Currency], [Measures].[USDAmount] FROM [SpendAnalysis]"
            ),
            spend_analysis_cube(),
        )
        assert "SUM(fact.usd_amount) AS USDAmount" in compiled.sql
