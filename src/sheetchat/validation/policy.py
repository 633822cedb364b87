"""Engine policy — load write ceilings and cache settings from sheetchat-policy.yaml."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

from sheetchat.io.fileops import read_text_safe

POLICY_FILENAME = "sheetchat-policy.yaml"

DEFAULT_MAX_WRITE_ROW = 20000
DEFAULT_MAX_WRITE_COL = 1000
DEFAULT_CACHE_TTL_SECONDS = 5.0


class EnginePolicy(BaseModel):
    """Limits and timings applied by the data engine.

    ``max_write_row``/``max_write_col`` are the highest zero-based row and
    column index a write may touch.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    cache_ttl_seconds: float = Field(default=DEFAULT_CACHE_TTL_SECONDS, ge=0)
    max_write_row: int = Field(default=DEFAULT_MAX_WRITE_ROW, ge=0)
    max_write_col: int = Field(default=DEFAULT_MAX_WRITE_COL, ge=0)
    lock_timeout_seconds: float = Field(default=0, ge=0)

    @classmethod
    def load(cls, path: str | Path) -> "EnginePolicy":
        """Load policy from a YAML file."""
        text = read_text_safe(path)
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Policy file must contain a mapping: {path}")
        return cls(**data)

    @classmethod
    def load_from_dir(cls, directory: str | Path) -> "EnginePolicy | None":
        """Try to load sheetchat-policy.yaml from a directory. Returns None if not found."""
        path = Path(directory) / POLICY_FILENAME
        if path.exists():
            return cls.load(path)
        return None

    @classmethod
    def for_workbook(cls, workbook_path: str | Path) -> "EnginePolicy":
        """Policy next to the workbook, or the defaults."""
        return cls.load_from_dir(Path(workbook_path).resolve().parent) or cls()
