"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from openpyxl import Workbook

from sheetchat.engine.store import WorkbookStore
from sheetchat.validation.policy import EnginePolicy

USERS = [
    ["ID", "Name", "Email", "Department", "Salary"],
    [1, "Firdavs", "firdavs@example.com", "Engineering", 5000],
    [2, "Jasur", "jasur@example.com", "Marketing", 4500],
    [3, "Nodira", "nodira@example.com", "HR", 4000],
    [4, "Bekzod", "bekzod@example.com", "Engineering", 5500],
    [5, "Dilnoza", "dilnoza@example.com", "Finance", 4800],
]

SALES = [
    ["Month", "Product", "Quantity", "Price", "Total"],
    ["January", "Laptop", 10, 1200, "=C2*D2"],
    ["January", "Phone", 25, 800, "=C3*D3"],
    ["February", "Laptop", 15, 1200, "=C4*D4"],
    ["February", "Phone", 30, 800, "=C5*D5"],
    ["March", "Laptop", 20, 1200, "=C6*D6"],
    ["March", "Phone", 40, 800, "=C7*D7"],
    [None, None, None, "Grand Total:", "=SUM(E2:E7)"],
]

INVENTORY = [
    ["Item", "Category", "Stock", "Min Stock", "Status"],
    ["Laptop", "Electronics", 50, 10, '=IF(C2>D2,"OK","Low")'],
    ["Phone", "Electronics", 5, 10, '=IF(C3>D3,"OK","Low")'],
    ["Desk", "Furniture", 30, 5, '=IF(C4>D4,"OK","Low")'],
    ["Chair", "Furniture", 100, 20, '=IF(C5>D5,"OK","Low")'],
    ["Monitor", "Electronics", 8, 15, '=IF(C6>D6,"OK","Low")'],
]


class FakeClock:
    """Manually advanced clock for cache TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _write_rows(ws, rows: list[list]) -> None:
    for row in rows:
        ws.append(row)


@pytest.fixture()
def example_workbook(tmp_path: Path) -> Path:
    """The Users/Sales/Inventory sample workbook."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Users"
    _write_rows(ws, USERS)
    _write_rows(wb.create_sheet("Sales"), SALES)
    _write_rows(wb.create_sheet("Inventory"), INVENTORY)
    wb.create_sheet("Empty")

    path = tmp_path / "example.xlsx"
    wb.save(str(path))
    wb.close()
    return path


@pytest.fixture()
def plain_workbook(tmp_path: Path) -> Path:
    """A sheet without an identifier column."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Data"
    ws.append(["Name", "Value", "Category"])
    ws.append(["Alpha", 100, "A"])
    ws.append(["Beta", 200, "B"])
    ws.append(["Gamma", 300, "A"])
    path = tmp_path / "plain.xlsx"
    wb.save(str(path))
    wb.close()
    return path


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(example_workbook: Path, clock: FakeClock) -> WorkbookStore:
    return WorkbookStore(example_workbook, policy=EnginePolicy(), clock=clock)
