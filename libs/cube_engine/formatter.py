"""Reshaping of raw warehouse rows into CubeData."""

from typing import Any

from .errors import UnknownMeasureError
from .executor import Row
from .models import CubeData, CubeDataMetadata, CubeDefinition, MeasureInfo
from .query.models import DimensionLevelItem, ParsedQuery


def _lookup(row: Row, column: str) -> Any:
    # Some stores fold unquoted aliases to lower case
    if column in row:
        return row[column]
    lowered = column.lower()
    for key, value in row.items():
        if key.lower() == lowered:
            return value
    return None


class ResultFormatter:
    """Builds CubeData from the rows of a compiled query."""

    def format(
        self, query: ParsedQuery, cube: CubeDefinition, rows: list[Row]
    ) -> CubeData:
        dimensions: list[str] = []
        measures: list[str] = []
        measure_info: dict[str, MeasureInfo] = {}

        for item in query.select:
            if isinstance(item, DimensionLevelItem):
                dimensions.append(item.column_name)
                continue
            measure = cube.get_measure(item.name)
            if measure is None:
                raise UnknownMeasureError(item.name, cube.name)
            measures.append(measure.name)
            measure_info[measure.name] = MeasureInfo(
                data_type=measure.data_type,
                format_string=measure.format_string,
                aggregation=measure.aggregation,
            )

        columns = dimensions + measures
        data = [[_lookup(row, column) for column in columns] for row in rows]

        dimension_members: dict[str, list[Any]] = {}
        for index, name in enumerate(dimensions):
            members: list[Any] = []
            seen: set[Any] = set()
            for values in data:
                value = values[index]
                if value is None or value in seen:
                    continue
                seen.add(value)
                members.append(value)
            dimension_members[name] = members

        return CubeData(
            dimensions=dimensions,
            measures=measures,
            data=data,
            metadata=CubeDataMetadata(
                dimension_members=dimension_members,
                measure_info=measure_info,
            ),
        )
