"""Command-specific result models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from sheetchat.contracts.cells import CellType, CellValue, Scalar


class SheetMeta(BaseModel):
    """Metadata for a single worksheet."""

    name: str
    index: int
    row_count: int = 0
    col_count: int = 0
    used_range: str = "A1"


class CellResult(BaseModel):
    """Result of reading one cell."""

    sheet: str
    cell: str
    value: Scalar = None
    type: CellType = CellType.EMPTY
    formula: str | None = None

    @classmethod
    def from_value(cls, sheet: str, cell: str, cell_value: CellValue) -> "CellResult":
        return cls(
            sheet=sheet,
            cell=cell,
            value=cell_value.value,
            type=cell_value.type,
            formula=cell_value.formula,
        )


class FormulaResult(BaseModel):
    """Result of reading the formula of one cell."""

    sheet: str
    cell: str
    formula: str | None = None
    has_formula: bool = False


class RangeResult(BaseModel):
    """A rectangular block of cells.

    ``values`` mirrors ``cells`` with only the raw values, which is what
    the agent and the grid renderer consume.
    """

    sheet: str
    range: str
    cells: list[list[CellValue]] = Field(default_factory=list)
    values: list[list[Scalar]] = Field(default_factory=list)
    row_count: int = 0
    col_count: int = 0
