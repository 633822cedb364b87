"""WorkbookStore: owns the backing workbook file and its read cache."""

from __future__ import annotations

import time
from contextlib import contextmanager
from datetime import date, datetime, time as dtime, timedelta
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Iterator

import openpyxl
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from sheetchat.contracts.cells import CellType, CellValue
from sheetchat.contracts.common import SheetNotFound, WarningDetail, WorkbookCorruptError
from sheetchat.contracts.responses import SheetMeta
from sheetchat.engine.refs import column_index_to_letters
from sheetchat.io.fileops import WorkbookLock, atomic_write
from sheetchat.observe.events import EventEmitter
from sheetchat.validation.policy import EnginePolicy


def _display_date(value: Any) -> str:
    if isinstance(value, datetime):
        if value.time() == dtime(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (date, dtime)):
        return value.isoformat()
    return str(value)


def _formula_text(raw: Any) -> str | None:
    """Formula text without the leading ``=``, or None for literal cells."""
    if isinstance(raw, str):
        return raw[1:] if raw.startswith("=") else None
    text = getattr(raw, "text", None)  # ArrayFormula
    if isinstance(text, str):
        return text[1:] if text.startswith("=") else text
    return None


def formula_cache_warnings(wb: Workbook) -> list[WarningDetail]:
    """Saving through openpyxl drops every cached formula result in the file."""
    count = sum(
        1
        for ws in wb.worksheets
        for cell in ws._cells.values()
        if _formula_text(cell.value) is not None
    )
    if not count:
        return []
    return [WarningDetail(
        code="WARN_FORMULA_VALUES_DROPPED",
        message=(
            f"{count} formula cell(s) will read without a computed value "
            "until the workbook is recalculated in Excel"
        ),
    )]


def classify(value: Any, *, formula: str | None = None, is_error: bool = False) -> CellValue:
    """Map a raw openpyxl value onto the tagged CellValue."""
    if value is None or value == "":
        return CellValue(type=CellType.EMPTY, value=None, formula=formula)
    if isinstance(value, bool):
        return CellValue(type=CellType.BOOLEAN, value=value, formula=formula)
    if isinstance(value, (int, float)):
        return CellValue(type=CellType.NUMBER, value=value, formula=formula)
    if isinstance(value, (datetime, date, dtime, timedelta)):
        return CellValue(type=CellType.DATE, value=_display_date(value), formula=formula)
    if is_error:
        return CellValue(type=CellType.ERROR, value=str(value), formula=formula)
    return CellValue(type=CellType.STRING, value=str(value), formula=formula)


def sheet_extent(ws: Worksheet) -> tuple[int, int, int, int] | None:
    """1-based (min_row, min_col, max_row, max_col) recorded for a sheet, or None if it has no cells."""
    if not ws._cells:
        return None
    return ws.min_row, ws.min_column, ws.max_row, ws.max_column


class SheetSnapshot:
    """Immutable view of one sheet: typed cells keyed by zero-based (row, col)."""

    def __init__(
        self,
        name: str,
        index: int,
        cells: dict[tuple[int, int], CellValue],
        extent: tuple[int, int, int, int] | None,
    ) -> None:
        self.name = name
        self.index = index
        self._cells = cells
        self.extent = extent

    @property
    def row_count(self) -> int:
        """Rows in the grid, counted from the first sheet row."""
        return self.extent[2] if self.extent else 0

    @property
    def col_count(self) -> int:
        return self.extent[3] if self.extent else 0

    @property
    def used_range(self) -> str:
        if self.extent is None:
            return "A1"
        min_row, min_col, max_row, max_col = self.extent
        start = f"{column_index_to_letters(min_col - 1)}{min_row}"
        end = f"{column_index_to_letters(max_col - 1)}{max_row}"
        return start if start == end else f"{start}:{end}"

    def get(self, row: int, col: int) -> CellValue:
        return self._cells.get((row, col)) or CellValue.empty()

    def meta(self) -> SheetMeta:
        if self.extent is None:
            rows = cols = 0
        else:
            min_row, min_col, max_row, max_col = self.extent
            rows = max_row - min_row + 1
            cols = max_col - min_col + 1
        return SheetMeta(
            name=self.name,
            index=self.index,
            row_count=rows,
            col_count=cols,
            used_range=self.used_range,
        )


class WorkbookSnapshot:
    """All sheets of the workbook as loaded at ``loaded_at`` (store clock)."""

    def __init__(self, sheets: list[SheetSnapshot], loaded_at: float) -> None:
        self._sheets = {s.name: s for s in sheets}
        self.loaded_at = loaded_at

    @property
    def sheet_names(self) -> list[str]:
        return list(self._sheets)

    def sheets(self) -> list[SheetSnapshot]:
        return list(self._sheets.values())

    def sheet(self, name: str) -> SheetSnapshot:
        try:
            return self._sheets[name]
        except KeyError:
            raise SheetNotFound(
                f"Sheet not found: {name}. Available sheets: {', '.join(self._sheets)}",
                details={"available": self.sheet_names},
            ) from None


def get_worksheet(wb: Workbook, name: str) -> Worksheet:
    if name not in wb.sheetnames:
        raise SheetNotFound(
            f"Sheet not found: {name}. Available sheets: {', '.join(wb.sheetnames)}",
            details={"available": list(wb.sheetnames)},
        )
    return wb[name]


class WorkbookStore:
    """Single access point to one workbook file.

    Reads go through ``snapshot()``, cached for ``policy.cache_ttl_seconds``.
    Writes go through ``mutate()``, which always loads the file fresh,
    saves it atomically, and invalidates the cache on success.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        policy: EnginePolicy | None = None,
        emitter: EventEmitter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.path = Path(path).resolve()
        if not self.path.exists():
            raise FileNotFoundError(f"Workbook not found: {self.path}")
        self.policy = policy or EnginePolicy.for_workbook(self.path)
        self.emitter = emitter or EventEmitter()
        self._clock = clock
        self._snapshot: WorkbookSnapshot | None = None

    def _load(self, *, data_only: bool) -> Workbook:
        try:
            return openpyxl.load_workbook(str(self.path), data_only=data_only)
        except FileNotFoundError:
            raise
        except Exception as e:
            raise WorkbookCorruptError(f"Cannot open workbook {self.path}: {e}") from e

    def _build_snapshot(self) -> WorkbookSnapshot:
        formulas_wb = self._load(data_only=False)
        values_wb = self._load(data_only=True)
        try:
            sheets: list[SheetSnapshot] = []
            for idx, name in enumerate(formulas_wb.sheetnames):
                f_ws = formulas_wb[name]
                v_ws = values_wb[name]
                extent = sheet_extent(f_ws)
                cells: dict[tuple[int, int], CellValue] = {}
                for (row, col), f_cell in list(f_ws._cells.items()):
                    formula = _formula_text(f_cell.value)
                    if formula is None:
                        value, is_error = f_cell.value, f_cell.data_type == "e"
                    else:
                        v_cell = v_ws._cells.get((row, col))
                        value = v_cell.value if v_cell is not None else None
                        is_error = v_cell is not None and v_cell.data_type == "e"
                    cell_value = classify(value, formula=formula, is_error=is_error)
                    if not cell_value.is_empty:
                        cells[(row - 1, col - 1)] = cell_value
                sheets.append(SheetSnapshot(name, idx, cells, extent))
        finally:
            formulas_wb.close()
            values_wb.close()
        return WorkbookSnapshot(sheets, loaded_at=self._clock())

    def snapshot(self) -> WorkbookSnapshot:
        """Cached snapshot, reloaded when older than the cache TTL."""
        now = self._clock()
        cached = self._snapshot
        if cached is not None and now - cached.loaded_at < self.policy.cache_ttl_seconds:
            return cached
        self._snapshot = self._build_snapshot()
        self.emitter.emit("cache.reload", {"file": str(self.path)})
        return self._snapshot

    @property
    def is_cached(self) -> bool:
        return self._snapshot is not None

    def invalidate(self) -> None:
        self._snapshot = None
        self.emitter.emit("cache.invalidate", {"file": str(self.path)})

    def list_sheets(self) -> list[SheetMeta]:
        return [s.meta() for s in self.snapshot().sheets()]

    @contextmanager
    def mutate(self) -> Iterator[Workbook]:
        """Lock, load fresh, yield the workbook for mutation, then save and invalidate.

        If the block raises, nothing is written and the cache is left as is.
        """
        with WorkbookLock(self.path, timeout=self.policy.lock_timeout_seconds):
            wb = self._load(data_only=False)
            try:
                yield wb
                buf = BytesIO()
                wb.save(buf)
                atomic_write(self.path, buf.getvalue())
            finally:
                wb.close()
        self.invalidate()
        self.emitter.emit("workbook.write", {"file": str(self.path)})
