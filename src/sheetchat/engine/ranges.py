"""Range normalization, serialization and drag-gesture selection."""

from __future__ import annotations

from typing import Iterable

from sheetchat.contracts.cells import CellAddress, CellRange, ReferencePair
from sheetchat.contracts.common import InvalidReference
from sheetchat.engine.refs import format_cell_address, parse_cell_reference


def normalize(rng: CellRange) -> CellRange:
    """Return the same rectangle with ``start`` top-left and ``end`` bottom-right."""
    return CellRange(
        start=CellAddress(
            row=min(rng.start.row, rng.end.row),
            col=min(rng.start.col, rng.end.col),
        ),
        end=CellAddress(
            row=max(rng.start.row, rng.end.row),
            col=max(rng.start.col, rng.end.col),
        ),
    )


def resolve_from_references(from_ref: str, to_ref: str) -> CellRange:
    """Build a normalized range from two corner references given in any order."""
    return normalize(CellRange(
        start=parse_cell_reference(from_ref),
        end=parse_cell_reference(to_ref),
    ))


def parse_range_reference(ref: str) -> CellRange:
    """Parse ``"A1:C3"`` or a single ``"B2"`` into a normalized range."""
    parts = ref.split(":")
    if len(parts) == 1:
        return resolve_from_references(parts[0], parts[0])
    if len(parts) == 2:
        return resolve_from_references(parts[0], parts[1])
    raise InvalidReference(f"Invalid range reference: {ref!r}")


def range_to_reference_pair(rng: CellRange) -> ReferencePair:
    return ReferencePair(
        from_ref=format_cell_address(rng.start),
        to_ref=format_cell_address(rng.end),
    )


def format_range(rng: CellRange) -> str:
    """``"A1"`` for a single cell, ``"A1:C3"`` otherwise."""
    pair = range_to_reference_pair(rng)
    if pair.from_ref == pair.to_ref:
        return pair.from_ref
    return f"{pair.from_ref}:{pair.to_ref}"


def contains(rng: CellRange | None, row: int, col: int) -> bool:
    if rng is None:
        return False
    n = normalize(rng)
    return n.start.row <= row <= n.end.row and n.start.col <= col <= n.end.col


def is_start(rng: CellRange | None, row: int, col: int) -> bool:
    """True when (row, col) is the top-left corner of the normalized range."""
    if rng is None:
        return False
    n = normalize(rng)
    return (row, col) == (n.start.row, n.start.col)


def is_end(rng: CellRange | None, row: int, col: int) -> bool:
    """True when (row, col) is the bottom-right corner of the normalized range."""
    if rng is None:
        return False
    n = normalize(rng)
    return (row, col) == (n.end.row, n.end.col)


class RangeSelection:
    """Press → move → release selection, anchored at the press point.

    ``selection`` keeps anchor and live end un-normalized while dragging;
    direction only matters when the result is read, through ``normalize``.
    """

    def __init__(self) -> None:
        self._anchor: CellAddress | None = None
        self._end: CellAddress | None = None
        self.is_selecting = False

    @property
    def selection(self) -> CellRange | None:
        if self._anchor is None or self._end is None:
            return None
        return CellRange(start=self._anchor, end=self._end)

    def press(self, row: int, col: int) -> None:
        self._anchor = CellAddress(row=row, col=col)
        self._end = self._anchor
        self.is_selecting = True

    def move(self, row: int, col: int) -> None:
        if not self.is_selecting or self._anchor is None:
            return
        self._end = CellAddress(row=row, col=col)

    def release(self) -> CellRange | None:
        self.is_selecting = False
        current = self.selection
        return normalize(current) if current is not None else None

    def clear(self) -> None:
        self._anchor = None
        self._end = None
        self.is_selecting = False

    def result(self) -> ReferencePair | None:
        current = self.selection
        if current is None:
            return None
        return range_to_reference_pair(normalize(current))


def select_from_samples(samples: Iterable[tuple[int, int]]) -> CellRange | None:
    """Fold sampled drag coordinates into the released range.

    The first sample is the press point, every later one a move; the
    gesture is released after the last sample.
    """
    selection = RangeSelection()
    for i, (row, col) in enumerate(samples):
        if i == 0:
            selection.press(row, col)
        else:
            selection.move(row, col)
    return selection.release()
