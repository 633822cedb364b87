"""Files next to a workbook: content fingerprint, atomic replace, the
writer lock, and the ledger of executed proposals.

Every confirmed edit goes through one read-modify-write cycle: take
``WorkbookLock``, load the file fresh, change it, ``atomic_write`` the
saved bytes over the original.  ``ExecutedLedger`` sits beside that cycle
and makes sure one proposal is applied at most once, across processes.
"""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
import time
from datetime import datetime, timezone
from io import TextIOWrapper
from pathlib import Path

import portalocker

LOCK_SUFFIX = ".sheetchat.lock"
LEDGER_SUFFIX = ".sheetchat.executed"


def fingerprint(path: str | Path) -> str:
    """``sha256:<hex>`` of the file bytes; used to prove a workbook was left untouched."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return f"sha256:{h.hexdigest()}"


def atomic_write(target: str | Path, data: bytes) -> None:
    """Replace the workbook with freshly saved bytes.

    The temp file lives in the same directory so the final rename never
    crosses filesystems; a reader opening the workbook mid-save sees the
    previous version, never a truncated zip.
    """
    target = Path(target)
    fd, tmp_path = tempfile.mkstemp(
        dir=target.parent, suffix=target.suffix, prefix=".sheetchat_tmp_"
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        shutil.move(tmp_path, target)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def _sidecar(workbook_path: str | Path, suffix: str) -> Path:
    path = Path(workbook_path).resolve()
    return path.parent / (path.name + suffix)


def lock_path_for(workbook_path: str | Path) -> Path:
    return _sidecar(workbook_path, LOCK_SUFFIX)


def ledger_path_for(workbook_path: str | Path) -> Path:
    return _sidecar(workbook_path, LEDGER_SUFFIX)


class WorkbookLock:
    """Exclusive sidecar lock held for one load-change-save cycle.

    Two writers on the same workbook would each save their own fresh copy
    and the later save would silently drop the earlier edit; the lock makes
    the second writer fail instead.  ``timeout=0`` fails at once with
    ``portalocker.LockException``; a positive timeout retries until the
    deadline.  The OS releases the lock if the process dies.
    """

    def __init__(self, workbook_path: str | Path, *, timeout: float = 0) -> None:
        self.workbook_path = Path(workbook_path).resolve()
        self.timeout = timeout
        self._lock_path = lock_path_for(self.workbook_path)
        self._lock_file: TextIOWrapper | None = None

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    def _try_lock(self) -> None:
        portalocker.lock(self._lock_file, portalocker.LOCK_EX | portalocker.LOCK_NB)

    def __enter__(self) -> "WorkbookLock":
        self._lock_file = open(self._lock_path, "a+")  # noqa: SIM115
        try:
            if self.timeout <= 0:
                self._try_lock()
            else:
                deadline = time.monotonic() + self.timeout
                interval = min(0.1, max(0.01, self.timeout / 20))
                while True:
                    try:
                        self._try_lock()
                        break
                    except portalocker.LockException:
                        if time.monotonic() >= deadline:
                            raise
                        time.sleep(interval)
        except portalocker.LockException:
            self._lock_file.close()
            self._lock_file = None
            raise

        self._lock_file.seek(0)
        self._lock_file.truncate()
        self._lock_file.write(f"pid={os.getpid()}\n")
        self._lock_file.write(f"time={datetime.now(timezone.utc).isoformat()}\n")
        self._lock_file.flush()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        if self._lock_file is not None:
            try:
                portalocker.unlock(self._lock_file)
            finally:
                self._lock_file.close()
                self._lock_file = None


class ExecutedLedger:
    """Proposal ids already applied to a workbook, one per line in a sidecar.

    ``claim`` checks and records an id under an exclusive lock on the
    ledger file, so two processes running the same confirmed proposal
    cannot both get through.  A claimed id stays claimed even if the
    operation then fails.
    """

    def __init__(self, workbook_path: str | Path, *, timeout: float = 5) -> None:
        self.path = ledger_path_for(workbook_path)
        self.timeout = timeout

    def _lock(self) -> portalocker.Lock:
        return portalocker.Lock(
            str(self.path), mode="a+", timeout=self.timeout,
            flags=portalocker.LOCK_EX | portalocker.LOCK_NB,
        )

    @staticmethod
    def _ids(fh) -> set[str]:
        fh.seek(0)
        return {line.strip() for line in fh if line.strip()}

    def __contains__(self, proposal_id: str) -> bool:
        if not self.path.exists():
            return False
        with self._lock() as fh:
            return proposal_id in self._ids(fh)

    def claim(self, proposal_id: str) -> bool:
        """Record ``proposal_id``; False if it was already recorded."""
        with self._lock() as fh:
            if proposal_id in self._ids(fh):
                return False
            fh.write(f"{proposal_id}\n")
            fh.flush()
            os.fsync(fh.fileno())
        return True


def read_text_safe(path: str | Path) -> str:
    """Read a text file, tolerating a UTF-8 BOM."""
    return Path(path).read_text(encoding="utf-8-sig")
