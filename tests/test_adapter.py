"""Tests for the openpyxl-backed read and write operations."""

from __future__ import annotations

from pathlib import Path

import openpyxl
import pytest

from sheetchat.adapters.openpyxl_engine import (
    add_row,
    delete_row,
    has_identifier_column,
    list_sheets,
    next_identifier,
    read_cell,
    read_formula,
    read_range,
    read_sheet,
    write_cell,
)
from sheetchat.contracts.cells import CellType
from sheetchat.contracts.common import InvalidReference, LimitExceeded, RowOutOfBounds, SheetNotFound
from sheetchat.engine.store import WorkbookStore
from sheetchat.validation.policy import EnginePolicy


def _rows(path: Path, sheet: str) -> list[tuple]:
    wb = openpyxl.load_workbook(str(path))
    try:
        return list(wb[sheet].iter_rows(values_only=True))
    finally:
        wb.close()


# ---------------------------------------------------------------------------
# reads
# ---------------------------------------------------------------------------
class TestReads:
    def test_list_sheets(self, store: WorkbookStore):
        assert [s.name for s in list_sheets(store)] == ["Users", "Sales", "Inventory", "Empty"]

    def test_read_cell(self, store: WorkbookStore):
        result = read_cell(store, "Users", "b2")
        assert result.cell == "B2"
        assert result.value == "Firdavs"
        assert result.type is CellType.STRING

    def test_read_number(self, store: WorkbookStore):
        result = read_cell(store, "Users", "E3")
        assert result.value == 4500
        assert result.type is CellType.NUMBER

    def test_read_outside_used_range_is_empty(self, store: WorkbookStore):
        result = read_cell(store, "Users", "Z100")
        assert result.type is CellType.EMPTY
        assert result.value is None

    def test_read_formula(self, store: WorkbookStore):
        result = read_formula(store, "Sales", "E8")
        assert result.formula == "SUM(E2:E7)"
        assert result.has_formula
        assert not read_formula(store, "Sales", "A1").has_formula

    def test_read_range_any_corner_order(self, store: WorkbookStore):
        fwd = read_range(store, "Users", "A1", "C3")
        back = read_range(store, "Users", "C3", "A1")
        assert fwd.values == back.values
        assert fwd.range == "A1:C3"
        assert fwd.values == [
            ["ID", "Name", "Email"],
            [1, "Firdavs", "firdavs@example.com"],
            [2, "Jasur", "jasur@example.com"],
        ]
        assert (fwd.row_count, fwd.col_count) == (3, 3)

    def test_read_range_beyond_data(self, store: WorkbookStore):
        result = read_range(store, "Users", "E6", "F7")
        assert result.values == [[4800, None], [None, None]]

    def test_read_sheet(self, store: WorkbookStore):
        result = read_sheet(store, "Inventory")
        assert result.range == "A1:E6"
        assert result.values[0] == ["Item", "Category", "Stock", "Min Stock", "Status"]
        assert result.cells[1][4].formula == 'IF(C2>D2,"OK","Low")'

    def test_unknown_sheet(self, store: WorkbookStore):
        with pytest.raises(SheetNotFound):
            read_cell(store, "Nope", "A1")

    def test_invalid_reference(self, store: WorkbookStore):
        with pytest.raises(InvalidReference):
            read_cell(store, "Users", "A0")


# ---------------------------------------------------------------------------
# write_cell
# ---------------------------------------------------------------------------
class TestWriteCell:
    def test_warns_formula_results_dropped(self, store: WorkbookStore):
        change = write_cell(store, "Users", "E2", 6000)
        (warning,) = change.warnings
        assert warning.code == "WARN_FORMULA_VALUES_DROPPED"
        assert read_cell(store, "Sales", "E8").formula == "SUM(E2:E7)"

    def test_no_warning_without_formulas(self, plain_workbook: Path):
        store = WorkbookStore(plain_workbook, policy=EnginePolicy())
        assert write_cell(store, "Data", "B2", 5).warnings == []
        assert delete_row(store, "Data", 1).warnings == []
        assert add_row(store, "Data", None, ["Delta", 400, "B"]).warnings == []

    def test_new_formula_is_counted(self, plain_workbook: Path):
        store = WorkbookStore(plain_workbook, policy=EnginePolicy())
        change = write_cell(store, "Data", "D2", "=B2*2")
        assert [w.code for w in change.warnings] == ["WARN_FORMULA_VALUES_DROPPED"]
        assert change.warnings[0].message.startswith("1 formula cell(s)")
    def test_write_then_read_immediately(self, store: WorkbookStore):
        store.snapshot()
        change = write_cell(store, "Users", "E2", 6000)
        assert change.before == 5000
        assert change.after == 6000
        assert change.target == "Users!E2"
        assert read_cell(store, "Users", "E2").value == 6000

    def test_write_formula(self, store: WorkbookStore, example_workbook: Path):
        write_cell(store, "Users", "F2", "=E2*2")
        assert read_formula(store, "Users", "F2").formula == "E2*2"

    def test_write_null_clears(self, store: WorkbookStore):
        write_cell(store, "Users", "B2", None)
        assert read_cell(store, "Users", "B2").type is CellType.EMPTY

    def test_write_new_sheet_cell_grows_extent(self, store: WorkbookStore):
        write_cell(store, "Empty", "C4", "x")
        meta = {m.name: m for m in list_sheets(store)}["Empty"]
        assert meta.used_range == "C4"

    def test_row_limit(self, store: WorkbookStore):
        with pytest.raises(LimitExceeded):
            write_cell(store, "Users", "A20002", "x")  # row index 20001
        write_cell(store, "Users", "A20000", "ok")  # row index 19999
        assert read_cell(store, "Users", "A20000").value == "ok"

    def test_col_limit(self, store: WorkbookStore):
        from sheetchat.engine.refs import column_index_to_letters

        with pytest.raises(LimitExceeded):
            write_cell(store, "Users", f"{column_index_to_letters(1001)}1", "x")

    def test_configured_limit(self, example_workbook: Path):
        store = WorkbookStore(example_workbook, policy=EnginePolicy(max_write_row=10))
        with pytest.raises(LimitExceeded):
            write_cell(store, "Users", "A12", "x")

    def test_unknown_sheet_writes_nothing(self, store: WorkbookStore, example_workbook: Path):
        from sheetchat.io.fileops import fingerprint

        before = fingerprint(example_workbook)
        with pytest.raises(SheetNotFound):
            write_cell(store, "Nope", "A1", 1)
        assert fingerprint(example_workbook) == before


# ---------------------------------------------------------------------------
# delete_row
# ---------------------------------------------------------------------------
class TestDeleteRow:
    def test_rows_shift_up(self, store: WorkbookStore, example_workbook: Path):
        change = delete_row(store, "Users", 2)
        assert change.before == [2, "Jasur", "jasur@example.com", "Marketing", 4500]
        rows = _rows(example_workbook, "Users")
        assert len(rows) == 5
        assert rows[2][1] == "Nodira"

    def test_visible_immediately(self, store: WorkbookStore):
        store.snapshot()
        delete_row(store, "Users", 1)
        meta = {m.name: m for m in list_sheets(store)}["Users"]
        assert meta.row_count == 5
        assert read_cell(store, "Users", "B2").value == "Jasur"

    @pytest.mark.parametrize("row_index", [-1, 6, 100])
    def test_out_of_bounds(self, store: WorkbookStore, row_index):
        with pytest.raises(RowOutOfBounds):
            delete_row(store, "Users", row_index)

    def test_empty_sheet(self, store: WorkbookStore):
        with pytest.raises(RowOutOfBounds):
            delete_row(store, "Empty", 0)


# ---------------------------------------------------------------------------
# add_row
# ---------------------------------------------------------------------------
class TestAddRow:
    def test_identifier_assigned(self, store: WorkbookStore, example_workbook: Path):
        change = add_row(store, "Users", None, ["Alexsandr", "alex@gmail.com", "Developer", 4760])
        assert change.after["assigned_id"] == 6
        assert change.after["row_index"] == 6
        rows = _rows(example_workbook, "Users")
        assert list(rows[-1]) == [6, "Alexsandr", "alex@gmail.com", "Developer", 4760]

    def test_explicit_identifier_kept(self, store: WorkbookStore, example_workbook: Path):
        change = add_row(store, "Users", None, [42, "Kamola", "kamola@example.com", "Sales", 3900])
        assert change.after["assigned_id"] is None
        assert _rows(example_workbook, "Users")[-1][0] == 42

    def test_insert_shifts_down(self, store: WorkbookStore, example_workbook: Path):
        add_row(store, "Users", 1, ["Kamola", "kamola@example.com", "Sales", 3900])
        rows = _rows(example_workbook, "Users")
        assert len(rows) == 7
        assert rows[1] == (6, "Kamola", "kamola@example.com", "Sales", 3900)
        assert rows[2][1] == "Firdavs"

    def test_index_past_end_appends(self, store: WorkbookStore, example_workbook: Path):
        change = add_row(store, "Users", 500, ["Late", "late@example.com", "Ops", 1])
        assert change.after["row_index"] == 6
        assert len(_rows(example_workbook, "Users")) == 7

    def test_no_identifier_column(self, plain_workbook: Path):
        store = WorkbookStore(plain_workbook, policy=EnginePolicy())
        change = add_row(store, "Data", None, ["Delta", 400, "B"])
        assert change.after["assigned_id"] is None
        assert _rows(plain_workbook, "Data")[-1] == ("Delta", 400, "B")

    def test_negative_index(self, store: WorkbookStore):
        with pytest.raises(RowOutOfBounds):
            add_row(store, "Users", -1, ["x"])

    def test_row_limit(self, example_workbook: Path):
        store = WorkbookStore(example_workbook, policy=EnginePolicy(max_write_row=5))
        with pytest.raises(LimitExceeded):
            add_row(store, "Users", None, ["x"])

    def test_empty_sheet_has_no_identifier(self, store: WorkbookStore, example_workbook: Path):
        change = add_row(store, "Empty", None, ["ID", "Name"])
        assert change.after["row_index"] == 0
        assert _rows(example_workbook, "Empty") == [("ID", "Name")]


class TestIdentifierHelpers:
    def test_next_identifier(self, example_workbook: Path):
        wb = openpyxl.load_workbook(str(example_workbook))
        assert has_identifier_column(wb["Users"])
        assert next_identifier(wb["Users"]) == 6
        assert not has_identifier_column(wb["Sales"])
        wb.close()

    @pytest.mark.parametrize("header", ["id", " ID ", "No", "№"])
    def test_identifier_headers(self, header):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append([header, "Name"])
        ws.append([7.0, "x"])
        ws.append(["n/a", "y"])
        assert has_identifier_column(ws)
        assert next_identifier(ws) == 8
