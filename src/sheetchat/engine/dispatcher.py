"""Command dispatch and response envelope helpers."""

from __future__ import annotations

import sys
from typing import Any

import orjson
import portalocker

from sheetchat.contracts.actions import ActionResult
from sheetchat.contracts.common import (
    ErrorDetail,
    Metrics,
    ResponseEnvelope,
    SheetChatError,
    Target,
    WarningDetail,
)

# Exit code mapping
EXIT_CODES = {
    "success": 0,
    "validation": 10,
    "conflict": 40,
    "io": 50,
    "internal": 90,
}

VALIDATION_CODES = frozenset({
    "ERR_INVALID_REFERENCE",
    "ERR_MISSING_PARAMETERS",
    "ERR_UNKNOWN_ACTION",
    "ERR_LIMIT_EXCEEDED",
    "ERR_ROW_OUT_OF_BOUNDS",
    "ERR_NOT_CONFIRMED",
    "ERR_PROPOSAL_NOT_FOUND",
    "ERR_WORKBOOK_MISMATCH",
    "ERR_USAGE",
})

CONFLICT_CODES = frozenset({"ERR_ALREADY_EXECUTED", "ERR_ALREADY_DECIDED"})

IO_CODES = frozenset({
    "ERR_SHEET_NOT_FOUND",
    "ERR_WORKBOOK_NOT_FOUND",
    "ERR_WORKBOOK_CORRUPT",
    "ERR_LOCK_HELD",
    "ERR_IO",
})


def success_envelope(
    command: str,
    result: Any,
    *,
    target: Target | None = None,
    changes: list | None = None,
    warnings: list | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        ok=True,
        command=command,
        target=target or Target(),
        result=result,
        changes=changes or [],
        warnings=warnings or [],
        metrics=Metrics(duration_ms=duration_ms),
    )


def error_envelope(
    command: str,
    code: str,
    message: str,
    *,
    target: Target | None = None,
    details: dict | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        ok=False,
        command=command,
        target=target or Target(),
        errors=[ErrorDetail(code=code, message=message, details=details)],
        metrics=Metrics(duration_ms=duration_ms),
    )


def envelope_for_exception(
    command: str,
    exc: Exception,
    *,
    target: Target | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    """Translate a raised error into an error envelope with the matching code."""
    if isinstance(exc, SheetChatError):
        return error_envelope(
            command, exc.code, str(exc),
            target=target, details=exc.details, duration_ms=duration_ms,
        )
    if isinstance(exc, FileNotFoundError):
        return error_envelope(command, "ERR_WORKBOOK_NOT_FOUND", str(exc), target=target, duration_ms=duration_ms)
    if isinstance(exc, portalocker.LockException):
        return error_envelope(
            command, "ERR_LOCK_HELD", "Workbook is locked by another writer",
            target=target, duration_ms=duration_ms,
        )
    if isinstance(exc, OSError):
        return error_envelope(command, "ERR_IO", str(exc), target=target, duration_ms=duration_ms)
    return error_envelope(command, "ERR_INTERNAL", str(exc), target=target, duration_ms=duration_ms)


def action_envelope(
    command: str,
    result: ActionResult,
    *,
    target: Target | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    """Envelope for an executed (or declined) action.

    A declined action is a normal outcome and stays ``ok``; a repeat or a
    failed operation becomes an error carrying the result in ``details``.
    Warnings from the change record are lifted onto the envelope.
    """
    data = result.data or {}
    status = data.get("status")
    payload = result.model_dump(mode="json")
    if result.success or status == "cancelled":
        warnings = [WarningDetail.model_validate(w) for w in data.get("warnings") or []]
        return success_envelope(
            command, payload, target=target, warnings=warnings, duration_ms=duration_ms,
        )
    if status == "already_executed":
        code = "ERR_ALREADY_EXECUTED"
    elif status == "not_confirmed":
        code = "ERR_NOT_CONFIRMED"
    else:
        code = data.get("code") or "ERR_INTERNAL"
    return error_envelope(
        command, code, result.message,
        target=target, details=payload, duration_ms=duration_ms,
    )


def dump_model(model: Any, *, exclude_unset: bool = False) -> Any:
    """JSON-ready form of a model (or list of models), using wire aliases.

    ``exclude_unset`` keeps proposals round-trippable: a parameter that was
    never supplied must not come back as an explicit null.
    """
    if isinstance(model, list):
        return [dump_model(m, exclude_unset=exclude_unset) for m in model]
    if hasattr(model, "model_dump"):
        return model.model_dump(mode="json", by_alias=True, exclude_unset=exclude_unset)
    return model


def output_json(envelope: ResponseEnvelope, *, indent: bool = True) -> str:
    """Serialize envelope to JSON string using orjson."""
    data = envelope.model_dump(mode="json", by_alias=True)
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(data, option=option).decode()


def print_response(envelope: ResponseEnvelope) -> None:
    """Print response as JSON to stdout."""
    sys.stdout.write(output_json(envelope) + "\n")


def exit_code_for(envelope: ResponseEnvelope) -> int:
    """Determine exit code from envelope errors."""
    if envelope.ok:
        return EXIT_CODES["success"]
    if not envelope.errors:
        return EXIT_CODES["internal"]
    code = envelope.errors[0].code.upper()
    if code in VALIDATION_CODES:
        return EXIT_CODES["validation"]
    if code in CONFLICT_CODES:
        return EXIT_CODES["conflict"]
    if code in IO_CODES or code.endswith("NOT_FOUND"):
        return EXIT_CODES["io"]
    return EXIT_CODES["internal"]
