"""Cell-level models: addresses, ranges and typed cell values."""

from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

Scalar = Union[str, bool, int, float, None]


class CellAddress(BaseModel):
    """Zero-based (row, col) coordinate of a cell."""

    model_config = ConfigDict(frozen=True)

    row: int = Field(ge=0)
    col: int = Field(ge=0)


class CellRange(BaseModel):
    """Rectangle bounded by two corner addresses (inclusive)."""

    model_config = ConfigDict(frozen=True)

    start: CellAddress
    end: CellAddress

    @property
    def is_single_cell(self) -> bool:
        return self.start == self.end

    @property
    def row_count(self) -> int:
        return abs(self.end.row - self.start.row) + 1

    @property
    def col_count(self) -> int:
        return abs(self.end.col - self.start.col) + 1


class ReferencePair(BaseModel):
    """A range serialized as two cell references, e.g. ``{"from": "A1", "to": "C3"}``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_ref: str = Field(alias="from")
    to_ref: str = Field(alias="to")


class CellType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ERROR = "error"
    EMPTY = "empty"


# Python types each tag may carry.  Dates and errors travel as display strings.
_ALLOWED_VALUE_TYPES: dict[CellType, tuple[type, ...]] = {
    CellType.STRING: (str,),
    CellType.NUMBER: (int, float),
    CellType.BOOLEAN: (bool,),
    CellType.DATE: (str,),
    CellType.ERROR: (str,),
    CellType.EMPTY: (type(None),),
}


class CellValue(BaseModel):
    """A typed cell value plus the formula text that produced it, if any.

    When ``formula`` is set, ``value`` is the result last cached in the
    workbook file; it is never recomputed.
    """

    model_config = ConfigDict(frozen=True)

    type: CellType = CellType.EMPTY
    value: Scalar = None
    formula: str | None = None

    @model_validator(mode="after")
    def _check_tag(self) -> "CellValue":
        allowed = _ALLOWED_VALUE_TYPES[self.type]
        value = self.value
        if isinstance(value, bool) and self.type is not CellType.BOOLEAN:
            raise ValueError(f"{self.type.value} cell cannot hold a boolean")
        if not isinstance(value, allowed):
            raise ValueError(
                f"{self.type.value} cell cannot hold {type(value).__name__}"
            )
        return self

    @classmethod
    def empty(cls) -> "CellValue":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.type is CellType.EMPTY and self.formula is None

    @property
    def has_formula(self) -> bool:
        return self.formula is not None
