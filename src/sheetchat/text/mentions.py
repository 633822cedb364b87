"""Inline sheet references in chat text: ``@Sheet!A1`` and ``@Sheet!A1:B3``.

Sheet names are ``[A-Za-z_][A-Za-z0-9_]*``; cell parts must already be
uppercase (``generate`` uppercases them).
"""

from __future__ import annotations

import re

from sheetchat.contracts.cells import ReferencePair
from sheetchat.contracts.mentions import (
    InsertResult,
    Mention,
    RangeParams,
    SegmentKind,
    TextSegment,
)

MENTION_PATTERN = r"@([A-Za-z_][A-Za-z0-9_]*)!([A-Z]+[0-9]+)(?::([A-Z]+[0-9]+))?"
MENTION_RE = re.compile(MENTION_PATTERN)


def _to_mention(m: re.Match[str]) -> Mention:
    return Mention(
        full=m.group(0),
        sheet=m.group(1),
        from_ref=m.group(2),
        to_ref=m.group(3),
        start=m.start(),
        end=m.end(),
    )


def parse_all(text: str) -> list[Mention]:
    """All mentions in ``text``, left to right, with their character offsets."""
    return [_to_mention(m) for m in MENTION_RE.finditer(text)]


def parse_one(candidate: str) -> Mention | None:
    """Parse a string that must consist of exactly one mention."""
    m = MENTION_RE.fullmatch(candidate)
    return _to_mention(m) if m else None


def has_mentions(text: str) -> bool:
    return MENTION_RE.search(text) is not None


def is_valid_mention(candidate: str) -> bool:
    return parse_one(candidate) is not None


def generate(sheet: str, from_ref: str, to_ref: str | None = None) -> str:
    from_cell = from_ref.upper()
    to_cell = to_ref.upper() if to_ref else None
    if not to_cell or to_cell == from_cell:
        return f"@{sheet}!{from_cell}"
    return f"@{sheet}!{from_cell}:{to_cell}"


def generate_from_selection(sheet: str, pair: ReferencePair) -> str:
    return generate(sheet, pair.from_ref, pair.to_ref)


def insert_at_cursor(text: str, cursor: int, mention: str) -> InsertResult:
    """Insert ``mention`` at ``cursor`` and return the text and the cursor after it.

    A space is added before the mention unless it starts the text or follows
    whitespace; one space always follows it.
    """
    cursor = max(0, min(cursor, len(text)))
    before, after = text[:cursor], text[cursor:]
    lead = " " if before and not before[-1].isspace() else ""
    inserted = f"{lead}{mention} "
    return InsertResult(text=before + inserted + after, cursor=cursor + len(inserted))


def replace_mention(text: str, mention: Mention, replacement: str) -> str:
    return text[:mention.start] + replacement + text[mention.end:]


def segment(text: str) -> list[TextSegment]:
    """Split text into plain and mention segments; joining them gives ``text`` back."""
    segments: list[TextSegment] = []
    last = 0
    for mention in parse_all(text):
        if mention.start > last:
            segments.append(TextSegment(text=text[last:mention.start]))
        segments.append(TextSegment(text=mention.full, kind=SegmentKind.MENTION, mention=mention))
        last = mention.end
    if last < len(text):
        segments.append(TextSegment(text=text[last:]))
    return segments


def extract_range_params(text: str) -> list[RangeParams]:
    """Range-read arguments for every mention; single cells read as ``from == to``."""
    return [
        RangeParams(sheet=m.sheet, from_ref=m.from_ref, to_ref=m.to_ref or m.from_ref)
        for m in parse_all(text)
    ]
