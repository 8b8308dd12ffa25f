"""Typed AST produced by the query parser."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field


class MeasureItem(BaseModel):
    """``[Measures].[Name]`` in a select list."""

    kind: Literal["measure"] = "measure"
    name: str


class DimensionLevelItem(BaseModel):
    """``[Dimension].[Level]`` or ``[Dimension].[Hierarchy].[Level]``."""

    kind: Literal["dimension_level"] = "dimension_level"
    dimension: str
    level: str
    hierarchy: str | None = None

    @property
    def column_name(self) -> str:
        """Result column name for this item."""
        return f"{self.dimension}_{self.level}"


SelectItem = Annotated[MeasureItem | DimensionLevelItem, Field(discriminator="kind")]


class EqualsPredicate(BaseModel):
    kind: Literal["equals"] = "equals"
    dimension: str
    level: str
    hierarchy: str | None = None
    value: Any


class InPredicate(BaseModel):
    kind: Literal["in"] = "in"
    dimension: str
    level: str
    hierarchy: str | None = None
    values: list[Any]


Predicate = Annotated[EqualsPredicate | InPredicate, Field(discriminator="kind")]


class ParsedQuery(BaseModel):
    """A validated-syntax, not-yet-resolved cube query."""

    select: list[SelectItem]
    cube: str
    where: list[Predicate] = Field(default_factory=list)

    @property
    def measure_items(self) -> list[MeasureItem]:
        return [item for item in self.select if isinstance(item, MeasureItem)]

    @property
    def dimension_items(self) -> list[DimensionLevelItem]:
        return [item for item in self.select if isinstance(item, DimensionLevelItem)]
