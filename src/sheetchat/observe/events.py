"""Structured event emission and timing."""

from __future__ import annotations

import sys
import time
from datetime import datetime, timezone
from typing import Any, TextIO

import orjson


class Timer:
    """Context-manager timer for measuring duration_ms."""

    def __init__(self) -> None:
        self.start: float = 0
        self.elapsed_ms: int = 0

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed_ms = int((time.perf_counter() - self.start) * 1000)


class EventEmitter:
    """Emits NDJSON lifecycle events (cache reloads, writes, action steps).

    Disabled emitters are no-ops, so components can always hold one.
    ``stream`` defaults to stderr at emit time, keeping stdout for envelopes.
    """

    def __init__(self, enabled: bool = False, stream: TextIO | None = None) -> None:
        self.enabled = enabled
        self._stream = stream

    def emit(self, event: str, data: dict[str, Any] | None = None) -> None:
        if not self.enabled:
            return
        payload = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": data or {},
        }
        stream = self._stream or sys.stderr
        stream.write(orjson.dumps(payload, default=str).decode() + "\n")
        stream.flush()
