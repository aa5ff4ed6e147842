"""Audit logger: append-only JSON Lines record of pipeline outcomes, with rotation."""

from __future__ import annotations

import fcntl
import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from src.config import DEFAULT_AUDIT_BACKUP_COUNT, DEFAULT_AUDIT_MAX_BYTES, Settings
from src.models import AuditEvent, AuditEventType, PipelineReport, PipelineStage, Severity

logger = logging.getLogger(__name__)


# Parse and filter stops are routine traffic and leave no record.
_STAGE_EVENTS: dict[PipelineStage, tuple[AuditEventType, Severity, str]] = {
    PipelineStage.DELIVERED: (AuditEventType.REPLY_DELIVERED, Severity.INFO, "success"),
    PipelineStage.DELIVERY_FAILED: (AuditEventType.DELIVERY_FAILED, Severity.ERROR, "failure"),
    PipelineStage.GENERATION_FAILED: (
        AuditEventType.GENERATION_FAILED, Severity.ERROR, "failure",
    ),
    PipelineStage.CRASHED: (AuditEventType.PIPELINE_CRASHED, Severity.ERROR, "failure"),
}


def event_from_report(report: PipelineReport) -> AuditEvent | None:
    """Derive the audit record for a finished pipeline run, if the stage needs one."""
    entry = _STAGE_EVENTS.get(report.stage)
    if entry is None:
        return None
    event_type, severity, result = entry

    details: dict[str, object] = {}
    outcome = report.outcome
    if outcome is not None and outcome.delivered:
        details["external_message_id"] = outcome.external_message_id
    elif report.reason is not None:
        details["error"] = report.reason
    if outcome is not None:
        details["attempts"] = outcome.attempts

    return AuditEvent(
        event_type=event_type,
        severity=severity,
        message_id=report.message_id,
        sender_id=report.sender_id,
        action="reply",
        result=result,
        details=details,
    )


def write_event(audit_logger: AuditLogger | None, event: AuditEvent | None) -> None:
    """Best-effort write: an unwritable audit file is logged, never raised."""
    if audit_logger is None or event is None:
        return
    try:
        audit_logger.log(event)
    except OSError:
        logger.warning("Failed to write audit event %s", event.event_type.value, exc_info=True)


def read_events(log_path: Path) -> list[dict[str, object]]:
    """Load every event from an audit log file (oldest first)."""
    if not log_path.exists():
        return []
    with open(log_path) as f:
        return [json.loads(line) for line in f if line.strip()]


class AuditLogger:
    """Writes one JSON object per line; concurrent writers serialize on a lock file."""

    def __init__(
        self,
        log_path: str | Path,
        max_bytes: int = DEFAULT_AUDIT_MAX_BYTES,
        backup_count: int = DEFAULT_AUDIT_BACKUP_COUNT,
    ) -> None:
        self.log_path = Path(log_path)
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self._lock_path = self.log_path.with_name(f".{self.log_path.name}.lock")

    @classmethod
    def from_settings(cls, settings: Settings) -> AuditLogger | None:
        if not settings.audit_log_path:
            return None
        return cls(
            settings.audit_log_path,
            max_bytes=settings.audit_log_max_bytes,
            backup_count=settings.audit_log_backup_count,
        )

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        with open(self._lock_path, "w") as lock:
            fcntl.flock(lock, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock, fcntl.LOCK_UN)

    def _rotate(self) -> None:
        # audit.jsonl -> audit.jsonl.1 -> ... -> audit.jsonl.N; N is discarded.
        chain = [self.log_path] + [
            self.log_path.with_name(f"{self.log_path.name}.{i}")
            for i in range(1, self.backup_count + 1)
        ]
        chain[-1].unlink(missing_ok=True)
        for newer, older in zip(reversed(chain[:-1]), reversed(chain[1:])):
            if newer.exists():
                newer.rename(older)

    def log(self, event: AuditEvent) -> None:
        """Append ``event``. Raises OSError if the log cannot be written."""
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        line = event.model_dump_json(exclude_none=True) + "\n"
        with self._exclusive():
            if self.log_path.exists() and self.log_path.stat().st_size >= self.max_bytes:
                self._rotate()
            with open(self.log_path, "a") as f:
                f.write(line)
