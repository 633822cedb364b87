"""Pydantic models for cells, responses, mentions and actions."""

from sheetchat.contracts.actions import (
    ActionDecision,
    ActionKind,
    ActionParameters,
    ActionProposal,
    ActionResult,
    DecisionStatus,
)
from sheetchat.contracts.cells import (
    CellAddress,
    CellRange,
    CellType,
    CellValue,
    ReferencePair,
)
from sheetchat.contracts.common import (
    ChangeRecord,
    ErrorDetail,
    InvalidReference,
    LimitExceeded,
    Metrics,
    MissingParameters,
    ResponseEnvelope,
    RowOutOfBounds,
    SheetChatError,
    SheetNotFound,
    Target,
    UnknownAction,
    WarningDetail,
    WorkbookCorruptError,
)
from sheetchat.contracts.mentions import InsertResult, Mention, SegmentKind, TextSegment
from sheetchat.contracts.responses import CellResult, FormulaResult, RangeResult, SheetMeta

__all__ = [
    "ActionDecision",
    "ActionKind",
    "ActionParameters",
    "ActionProposal",
    "ActionResult",
    "CellAddress",
    "CellRange",
    "CellResult",
    "CellType",
    "CellValue",
    "ChangeRecord",
    "DecisionStatus",
    "ErrorDetail",
    "FormulaResult",
    "InsertResult",
    "InvalidReference",
    "LimitExceeded",
    "Mention",
    "Metrics",
    "MissingParameters",
    "RangeResult",
    "ReferencePair",
    "ResponseEnvelope",
    "RowOutOfBounds",
    "SegmentKind",
    "SheetChatError",
    "SheetMeta",
    "SheetNotFound",
    "Target",
    "TextSegment",
    "UnknownAction",
    "WarningDetail",
    "WorkbookCorruptError",
]
