"""Common Pydantic models: response envelope, errors, warnings, metrics."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SheetChatError(Exception):
    """Base class for recoverable sheetchat errors.

    ``code`` is the machine-readable error code placed in response envelopes.
    """

    code = "ERR_INTERNAL"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details


class InvalidReference(SheetChatError):
    """Raised for malformed cell, column or range text."""

    code = "ERR_INVALID_REFERENCE"


class SheetNotFound(SheetChatError):
    code = "ERR_SHEET_NOT_FOUND"


class RowOutOfBounds(SheetChatError):
    code = "ERR_ROW_OUT_OF_BOUNDS"


class LimitExceeded(SheetChatError):
    """Raised when a write would land beyond the configured row/column ceiling."""

    code = "ERR_LIMIT_EXCEEDED"


class UnknownAction(SheetChatError):
    code = "ERR_UNKNOWN_ACTION"


class MissingParameters(SheetChatError):
    code = "ERR_MISSING_PARAMETERS"


class WorkbookCorruptError(SheetChatError):
    """Raised when a workbook file cannot be parsed."""

    code = "ERR_WORKBOOK_CORRUPT"


class Target(BaseModel):
    """Identifies the target workbook/sheet/range for a command."""

    file: str | None = None
    sheet: str | None = None
    ref: str | None = None


class WarningDetail(BaseModel):
    """Structured warning."""

    code: str
    message: str
    path: str | None = None


class ErrorDetail(BaseModel):
    """Structured error."""

    code: str
    message: str
    details: dict[str, Any] | None = None


class Metrics(BaseModel):
    """Execution metrics."""

    duration_ms: int = 0


class ChangeRecord(BaseModel):
    """Describes a single change made by a mutating operation."""

    type: str
    target: str
    before: Any | None = None
    after: Any | None = None
    impact: dict[str, Any] | None = None
    warnings: list[WarningDetail] = Field(default_factory=list)


class ResponseEnvelope(BaseModel):
    """Standard response envelope returned by every command."""

    ok: bool = True
    command: str = ""
    target: Target = Field(default_factory=Target)
    result: Any = None
    changes: list[ChangeRecord] = Field(default_factory=list)
    warnings: list[WarningDetail] = Field(default_factory=list)
    errors: list[ErrorDetail] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)
