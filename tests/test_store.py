"""Tests for WorkbookStore: snapshots, cell typing and the read cache."""

from __future__ import annotations

import io
import json
from datetime import date, datetime
from pathlib import Path

import pytest
from openpyxl import Workbook

from sheetchat.contracts.cells import CellType
from sheetchat.contracts.common import SheetNotFound, WorkbookCorruptError
from sheetchat.engine.store import WorkbookStore, classify
from sheetchat.observe.events import EventEmitter
from sheetchat.validation.policy import EnginePolicy


class TestClassify:
    def test_empty(self):
        assert classify(None).type is CellType.EMPTY
        assert classify("").type is CellType.EMPTY
        assert classify(None).is_empty

    def test_scalars(self):
        assert classify("x").type is CellType.STRING
        assert classify(3).type is CellType.NUMBER
        assert classify(2.5).value == 2.5
        assert classify(True).type is CellType.BOOLEAN

    def test_dates_as_display_text(self):
        assert classify(datetime(2024, 3, 1)).value == "2024-03-01"
        assert classify(datetime(2024, 3, 1, 9, 30)).value == "2024-03-01 09:30:00"
        assert classify(date(2024, 3, 1)).type is CellType.DATE

    def test_error(self):
        cv = classify("#DIV/0!", is_error=True)
        assert cv.type is CellType.ERROR
        assert cv.value == "#DIV/0!"

    def test_formula_without_cached_value_is_not_empty(self):
        cv = classify(None, formula="SUM(A1:A3)")
        assert cv.type is CellType.EMPTY
        assert cv.has_formula
        assert not cv.is_empty


class TestSnapshot:
    def test_sheet_order_and_names(self, store: WorkbookStore):
        snap = store.snapshot()
        assert snap.sheet_names == ["Users", "Sales", "Inventory", "Empty"]

    def test_list_sheets_meta(self, store: WorkbookStore):
        metas = {m.name: m for m in store.list_sheets()}
        users = metas["Users"]
        assert users.index == 0
        assert (users.row_count, users.col_count) == (6, 5)
        assert users.used_range == "A1:E6"
        assert metas["Sales"].used_range == "A1:E8"

    def test_empty_sheet(self, store: WorkbookStore):
        empty = store.snapshot().sheet("Empty")
        assert empty.used_range == "A1"
        assert empty.meta().row_count == 0
        assert empty.meta().col_count == 0
        assert empty.get(0, 0).is_empty

    def test_values_and_formulas(self, store: WorkbookStore):
        sales = store.snapshot().sheet("Sales")
        assert sales.get(0, 0).value == "Month"
        assert sales.get(1, 2).value == 10
        total = sales.get(1, 4)
        assert total.formula == "C2*D2"
        # openpyxl never stores computed values, so there is no cached result
        assert total.value is None

    def test_unknown_sheet(self, store: WorkbookStore):
        with pytest.raises(SheetNotFound, match="Available sheets: Users, Sales"):
            store.snapshot().sheet("Nope")

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            WorkbookStore(tmp_path / "missing.xlsx")

    def test_corrupt_file(self, tmp_path: Path):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a zip file")
        store = WorkbookStore(path, policy=EnginePolicy())
        with pytest.raises(WorkbookCorruptError):
            store.snapshot()


class TestCache:
    def test_reuses_snapshot_within_ttl(self, store: WorkbookStore, clock):
        first = store.snapshot()
        clock.advance(4.9)
        assert store.snapshot() is first

    def test_reloads_after_ttl(self, store: WorkbookStore, clock):
        first = store.snapshot()
        clock.advance(5.0)
        assert store.snapshot() is not first

    def test_external_edit_visible_after_ttl(self, store: WorkbookStore, example_workbook: Path, clock):
        assert store.snapshot().sheet("Users").get(1, 1).value == "Firdavs"

        import openpyxl
        wb = openpyxl.load_workbook(str(example_workbook))
        wb["Users"]["B2"] = "Changed"
        wb.save(str(example_workbook))
        wb.close()

        assert store.snapshot().sheet("Users").get(1, 1).value == "Firdavs"
        clock.advance(6)
        assert store.snapshot().sheet("Users").get(1, 1).value == "Changed"

    def test_invalidate(self, store: WorkbookStore):
        store.snapshot()
        assert store.is_cached
        store.invalidate()
        assert not store.is_cached

    def test_mutate_invalidates(self, store: WorkbookStore):
        store.snapshot()
        with store.mutate() as wb:
            wb["Users"]["B2"] = "Updated"
        assert not store.is_cached
        assert store.snapshot().sheet("Users").get(1, 1).value == "Updated"

    def test_failed_mutation_writes_nothing(self, store: WorkbookStore, example_workbook: Path):
        from sheetchat.io.fileops import fingerprint

        before = fingerprint(example_workbook)
        with pytest.raises(RuntimeError):
            with store.mutate() as wb:
                wb["Users"]["B2"] = "Never saved"
                raise RuntimeError("boom")
        assert fingerprint(example_workbook) == before


def test_events_emitted(example_workbook: Path, clock):
    stream = io.StringIO()
    store = WorkbookStore(
        example_workbook,
        policy=EnginePolicy(),
        emitter=EventEmitter(enabled=True, stream=stream),
        clock=clock,
    )
    store.snapshot()
    with store.mutate() as wb:
        wb["Users"]["B2"] = "x"

    events = [json.loads(line)["event"] for line in stream.getvalue().splitlines()]
    assert events == ["cache.reload", "cache.invalidate", "workbook.write"]


def test_policy_next_to_workbook(tmp_path: Path):
    wb = Workbook()
    wb.active.title = "S"
    path = tmp_path / "book.xlsx"
    wb.save(str(path))
    (tmp_path / "sheetchat-policy.yaml").write_text("cache_ttl_seconds: 0\n")

    store = WorkbookStore(path)
    assert store.policy.cache_ttl_seconds == 0
    assert store.snapshot() is not store.snapshot()
