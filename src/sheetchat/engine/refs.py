"""Conversion between A1-style references and zero-based coordinates.

Column letters are a bijective base-26 numeral (A=1 … Z=26, AA=27).
openpyxl does the conversion for columns A..ZZZ, the widest it accepts;
wider labels are computed here so the two functions stay inverses for
any non-negative index.
"""

from __future__ import annotations

import re

from openpyxl.utils import column_index_from_string, get_column_letter

from sheetchat.contracts.cells import CellAddress
from sheetchat.contracts.common import InvalidReference

_LETTERS_RE = re.compile(r"[A-Za-z]+")
_CELL_RE = re.compile(r"\$?([A-Za-z]+)\$?(\d+)")

# ZZZ
_OPENPYXL_MAX_COLUMN = 18278


def column_index_to_letters(index: int) -> str:
    """Zero-based column index to letters: 0 -> A, 25 -> Z, 26 -> AA."""
    if index < 0:
        raise InvalidReference(f"Column index must be non-negative: {index}")
    n = index + 1
    if n <= _OPENPYXL_MAX_COLUMN:
        return get_column_letter(n)
    letters = []
    while n:
        n, rem = divmod(n - 1, 26)
        letters.append(chr(ord("A") + rem))
    return "".join(reversed(letters))


def letters_to_column_index(letters: str) -> int:
    """Letters to zero-based column index: A -> 0, AA -> 26."""
    if not _LETTERS_RE.fullmatch(letters or ""):
        raise InvalidReference(f"Invalid column letters: {letters!r}")
    letters = letters.upper()
    if len(letters) <= 3:
        return column_index_from_string(letters) - 1
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


def parse_cell_reference(ref: str) -> CellAddress:
    """Parse ``"B5"`` (any case, ``$`` markers allowed) into ``CellAddress(row=4, col=1)``."""
    m = _CELL_RE.fullmatch(ref.strip()) if isinstance(ref, str) else None
    if not m:
        raise InvalidReference(f"Invalid cell reference: {ref!r}")
    row = int(m.group(2))
    if row <= 0:
        raise InvalidReference(f"Invalid cell reference: {ref!r} (rows start at 1)")
    return CellAddress(row=row - 1, col=letters_to_column_index(m.group(1)))


def format_cell_address(addr: CellAddress) -> str:
    return f"{column_index_to_letters(addr.col)}{addr.row + 1}"


def normalize_reference(ref: str) -> str:
    """Canonical uppercase form of a cell reference (``"b05"`` -> ``"B5"``)."""
    return format_cell_address(parse_cell_reference(ref))


def split_sheet_ref(ref: str) -> tuple[str, str]:
    """Split ``'Sheet!A1:B2'`` into ``('Sheet', 'A1:B2')``.

    Quoted sheet names (``'My Sheet'!A1``) are unquoted.
    """
    if "!" not in ref:
        raise InvalidReference(f"Ref must include a sheet name (e.g. Sheet1!B2): {ref!r}")
    sheet, cell_ref = ref.rsplit("!", 1)
    if len(sheet) >= 2 and sheet[0] == sheet[-1] == "'":
        sheet = sheet[1:-1].replace("''", "'")
    if not sheet:
        raise InvalidReference(f"Empty sheet name in ref: {ref!r}")
    return sheet, cell_ref
