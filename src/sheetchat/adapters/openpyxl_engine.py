"""openpyxl-based workbook operations: sheet/cell/range reads and bounded row/cell writes."""

from __future__ import annotations

from typing import Any, Sequence

from openpyxl.worksheet.worksheet import Worksheet

from sheetchat.contracts.cells import CellRange, Scalar
from sheetchat.contracts.common import ChangeRecord, LimitExceeded, RowOutOfBounds
from sheetchat.contracts.responses import CellResult, FormulaResult, RangeResult, SheetMeta
from sheetchat.engine.ranges import format_range, parse_range_reference, resolve_from_references
from sheetchat.engine.refs import format_cell_address, parse_cell_reference
from sheetchat.engine.store import (
    SheetSnapshot,
    WorkbookStore,
    formula_cache_warnings,
    get_worksheet,
    sheet_extent,
)
from sheetchat.validation.policy import EnginePolicy

# Header text (casefolded) that marks the first column as a row identifier.
IDENTIFIER_HEADERS = frozenset({"id", "no", "№"})


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_limits(policy: EnginePolicy, row: int, col: int) -> None:
    if row > policy.max_write_row:
        raise LimitExceeded(
            f"Row index {row} exceeds the write limit of {policy.max_write_row}",
            details={"row": row, "limit": policy.max_write_row},
        )
    if col > policy.max_write_col:
        raise LimitExceeded(
            f"Column index {col} exceeds the write limit of {policy.max_write_col}",
            details={"col": col, "limit": policy.max_write_col},
        )


def _coerce_for_write(value: Scalar) -> Scalar:
    """Value as it will be stored: ``None`` becomes an empty literal, ``"=..."`` a formula."""
    if value is None:
        return ""
    if isinstance(value, (str, bool, int, float)):
        return value
    raise ValueError(f"Unsupported cell value type: {type(value).__name__}")


def _row_count(ws: Worksheet) -> int:
    extent = sheet_extent(ws)
    return extent[2] if extent else 0


# ---------------------------------------------------------------------------
# reads
# ---------------------------------------------------------------------------
def list_sheets(store: WorkbookStore) -> list[SheetMeta]:
    return store.list_sheets()


def read_cell(store: WorkbookStore, sheet_name: str, ref: str) -> CellResult:
    """Read a cell. Addresses outside the used range read as empty."""
    sheet = store.snapshot().sheet(sheet_name)
    addr = parse_cell_reference(ref)
    return CellResult.from_value(sheet_name, format_cell_address(addr), sheet.get(addr.row, addr.col))


def read_formula(store: WorkbookStore, sheet_name: str, ref: str) -> FormulaResult:
    sheet = store.snapshot().sheet(sheet_name)
    addr = parse_cell_reference(ref)
    formula = sheet.get(addr.row, addr.col).formula
    return FormulaResult(
        sheet=sheet_name,
        cell=format_cell_address(addr),
        formula=formula,
        has_formula=formula is not None,
    )


def _read_block(sheet: SheetSnapshot, rng: CellRange) -> RangeResult:
    cells = [
        [sheet.get(row, col) for col in range(rng.start.col, rng.end.col + 1)]
        for row in range(rng.start.row, rng.end.row + 1)
    ]
    return RangeResult(
        sheet=sheet.name,
        range=format_range(rng),
        cells=cells,
        values=[[c.value for c in row] for row in cells],
        row_count=rng.row_count,
        col_count=rng.col_count,
    )


def read_range(store: WorkbookStore, sheet_name: str, from_ref: str, to_ref: str) -> RangeResult:
    """Read the rectangle spanned by two corners, given in either order."""
    sheet = store.snapshot().sheet(sheet_name)
    return _read_block(sheet, resolve_from_references(from_ref, to_ref))


def read_sheet(store: WorkbookStore, sheet_name: str) -> RangeResult:
    """Read a sheet's whole used range."""
    sheet = store.snapshot().sheet(sheet_name)
    return _read_block(sheet, parse_range_reference(sheet.used_range))


# ---------------------------------------------------------------------------
# writes
# ---------------------------------------------------------------------------
def write_cell(store: WorkbookStore, sheet_name: str, ref: str, value: Scalar) -> ChangeRecord:
    """Write one cell.

    Strings starting with ``=`` are stored as formulas, ``None`` clears the
    cell to an empty literal, anything else is stored with its own type.
    """
    addr = parse_cell_reference(ref)
    _check_limits(store.policy, addr.row, addr.col)
    stored = _coerce_for_write(value)
    cell_ref = format_cell_address(addr)

    with store.mutate() as wb:
        ws = get_worksheet(wb, sheet_name)
        cell = ws.cell(row=addr.row + 1, column=addr.col + 1)
        before = cell.value
        cell.value = stored
        warnings = formula_cache_warnings(wb)

    return ChangeRecord(
        type="cell.set",
        target=f"{sheet_name}!{cell_ref}",
        before=before,
        after=stored,
        impact={"cells": 1},
        warnings=warnings,
    )


def delete_row(store: WorkbookStore, sheet_name: str, row_index: int) -> ChangeRecord:
    """Remove the zero-based row ``row_index``; later rows shift up."""
    with store.mutate() as wb:
        ws = get_worksheet(wb, sheet_name)
        row_count = _row_count(ws)
        if not 0 <= row_index < row_count:
            raise RowOutOfBounds(
                f"Row index {row_index} is out of bounds for sheet '{sheet_name}' "
                f"({row_count} rows)",
                details={"row_index": row_index, "row_count": row_count},
            )
        removed = list(next(ws.iter_rows(
            min_row=row_index + 1, max_row=row_index + 1, values_only=True,
        )))
        ws.delete_rows(row_index + 1, 1)
        warnings = formula_cache_warnings(wb)

    return ChangeRecord(
        type="row.delete",
        target=f"{sheet_name}!{row_index + 1}:{row_index + 1}",
        before=removed,
        after={"row_count": row_count - 1},
        impact={"rows": 1, "cells": len(removed)},
        warnings=warnings,
    )


def next_identifier(ws: Worksheet) -> int | float:
    """One more than the largest number below the header in the first column (1 if none)."""
    current = max(
        (v for (v,) in ws.iter_rows(min_row=2, max_col=1, values_only=True) if _is_number(v)),
        default=0,
    )
    if isinstance(current, float) and current.is_integer():
        current = int(current)
    return current + 1


def has_identifier_column(ws: Worksheet) -> bool:
    header = ws.cell(row=1, column=1).value
    return isinstance(header, str) and header.strip().casefold() in IDENTIFIER_HEADERS


def add_row(
    store: WorkbookStore,
    sheet_name: str,
    row_index: int | None,
    row_values: Sequence[Scalar],
) -> ChangeRecord:
    """Insert a row at zero-based ``row_index``; later rows shift down.

    ``None`` or an index past the end appends.  When the first column is an
    identifier column and the data does not start with a number, the next
    free identifier is prepended.
    """
    if row_index is not None and row_index < 0:
        raise RowOutOfBounds(f"Row index must be non-negative: {row_index}")
    values = list(row_values)

    with store.mutate() as wb:
        ws = get_worksheet(wb, sheet_name)
        row_count = _row_count(ws)
        assigned_id = None
        if row_count and has_identifier_column(ws) and not (values and _is_number(values[0])):
            assigned_id = next_identifier(ws)
            values.insert(0, assigned_id)

        target = row_count if row_index is None else min(row_index, row_count)
        _check_limits(store.policy, max(target, row_count), max(len(values) - 1, 0))

        ws.insert_rows(target + 1, 1)
        for col, value in enumerate(values, start=1):
            if value is not None:
                ws.cell(row=target + 1, column=col, value=_coerce_for_write(value))
        warnings = formula_cache_warnings(wb)

    return ChangeRecord(
        type="row.add",
        target=f"{sheet_name}!{target + 1}:{target + 1}",
        after={"row_index": target, "values": values, "assigned_id": assigned_id},
        impact={"rows": 1, "cells": len(values)},
        warnings=warnings,
    )
