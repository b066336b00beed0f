"""Audit logger: append-only JSON Lines with size rotation and a hash chain.

Each line carries ``prev_hash``, the SHA-256 of the line written before it
(``None`` for the first line of a file), so truncation or edits are detectable
with :func:`validate_audit_chain`.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from src.config import RelayConfig
from src.models import AuditEvent

logger = logging.getLogger(__name__)


@dataclass
class ChainValidationResult:
    valid: bool
    broken_at_line: int | None = None


def _line_hash(line: str) -> str:
    return hashlib.sha256(line.encode()).hexdigest()


def validate_audit_chain(log_path: Path) -> ChainValidationResult:
    """Check that every entry's prev_hash matches the line before it."""
    text = log_path.read_text().strip()
    if not text:
        return ChainValidationResult(valid=True)

    previous: str | None = None
    for number, line in enumerate(text.split("\n"), start=1):
        expected = _line_hash(previous) if previous is not None else None
        if json.loads(line).get("prev_hash") != expected:
            return ChainValidationResult(valid=False, broken_at_line=number)
        previous = line

    return ChainValidationResult(valid=True)


class AuditLogger:
    """Append-only structured audit log for relay decisions."""

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._last_line = self._read_last_line()

    @classmethod
    def from_config(cls, config: RelayConfig) -> AuditLogger | None:
        """Return a logger for the configured path, or None when auditing is off."""
        if not config.audit_log_path:
            return None
        return cls(
            log_path=config.audit_log_path,
            max_bytes=config.audit_log_max_bytes,
            backup_count=config.audit_log_backup_count,
        )

    def _read_last_line(self) -> str | None:
        if not self.log_path.exists():
            return None
        text = self.log_path.read_text().strip()
        return text.split("\n")[-1] if text else None

    def _backup_path(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _rotate_if_needed(self) -> None:
        if not self.log_path.exists() or self.log_path.stat().st_size < self._max_bytes:
            return

        self._backup_path(self._backup_count).unlink(missing_ok=True)
        for index in range(self._backup_count - 1, 0, -1):
            backup = self._backup_path(index)
            if backup.exists():
                backup.rename(self._backup_path(index + 1))
        self.log_path.rename(self._backup_path(1))
        # A fresh file starts a fresh chain
        self._last_line = None

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        lock_path = self.log_path.with_name(f".{self.log_path.name}.lock")

        with open(lock_path, "w") as lock:
            fcntl.flock(lock, fcntl.LOCK_EX)
            try:
                self._rotate_if_needed()
                record = json.loads(event.model_dump_json())
                record["prev_hash"] = (
                    _line_hash(self._last_line) if self._last_line is not None else None
                )
                line = json.dumps(record, separators=(",", ":"))
                with open(self.log_path, "a") as f:
                    f.write(line + "\n")
                self._last_line = line
            finally:
                fcntl.flock(lock, fcntl.LOCK_UN)


def log_audit_event(audit_logger: AuditLogger | None, event: AuditEvent) -> bool:
    """Write event if auditing is enabled. Returns False if the write failed.

    Audit write failures are logged and swallowed so they never change a
    webhook acknowledgment or block a reply.
    """
    if not audit_logger:
        return False
    try:
        audit_logger.log(event)
    except OSError as exc:
        logger.warning("Audit log write failed: %s", exc)
        return False
    return True
