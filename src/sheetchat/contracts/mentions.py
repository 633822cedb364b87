"""Models produced by the reference-mention grammar."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Mention(BaseModel):
    """A ``@Sheet!A1`` or ``@Sheet!A1:B3`` token found in text.

    ``start``/``end`` are character offsets of ``full`` in the source text
    (end exclusive).  Mentions parsed from a standalone string span it from 0.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    full: str
    sheet: str
    from_ref: str = Field(alias="from")
    to_ref: str | None = Field(default=None, alias="to")
    start: int = 0
    end: int = 0

    @property
    def is_range(self) -> bool:
        return self.to_ref is not None


class SegmentKind(str, Enum):
    PLAIN = "plain"
    MENTION = "mention"


class TextSegment(BaseModel):
    text: str
    kind: SegmentKind = SegmentKind.PLAIN
    mention: Mention | None = None


class InsertResult(BaseModel):
    """Text after inserting a mention, and where the cursor should go."""

    text: str
    cursor: int


class RangeParams(BaseModel):
    """Arguments for a range read derived from a mention."""

    model_config = ConfigDict(populate_by_name=True)

    sheet: str
    from_ref: str = Field(alias="from")
    to_ref: str = Field(alias="to")
