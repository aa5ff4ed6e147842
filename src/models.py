"""Shared Pydantic data models for dm-autoreply."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class EnvelopeShape(str, Enum):
    MESSAGING = "messaging"  # entry[].messaging[] (older format)
    CHANGES = "changes"  # entry[].changes[] (field-change notifications)
    UNRECOGNIZED = "unrecognized"


class RejectionReason(str, Enum):
    """Eligibility rules, in the order they are evaluated."""

    INVALID_EVENT = "invalid_event"
    NO_TEXT = "no_text"
    HAS_ATTACHMENTS = "has_attachments"
    OWN_MESSAGE = "own_message"


class PipelineStage(str, Enum):
    PARSED = "parsed"
    FILTERED = "filtered"
    GENERATION_FAILED = "generation_failed"
    DELIVERED = "delivered"
    DELIVERY_FAILED = "delivery_failed"
    CRASHED = "crashed"


class AuditEventType(str, Enum):
    REPLY_DELIVERED = "reply_delivered"
    DELIVERY_FAILED = "delivery_failed"
    GENERATION_FAILED = "generation_failed"
    PIPELINE_CRASHED = "pipeline_crashed"
    VERIFICATION_FAILURE = "verification_failure"
    SIGNATURE_FAILURE = "signature_failure"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# --- Parser Models ---


class ParsedMessage(BaseModel):
    """Canonical message extracted from either webhook envelope shape."""

    model_config = ConfigDict(frozen=True)

    sender_id: str = Field(min_length=1)
    message_text: str | None = None
    has_attachments: bool = False
    timestamp: int | None = None
    message_id: str = Field(min_length=1)


class ParseResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: ParsedMessage | None = None
    shape: EnvelopeShape = EnvelopeShape.UNRECOGNIZED
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.message is not None


# --- Filter Models ---


class EligibilityDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool
    reason: RejectionReason | None = None


# --- Collaborator Results ---


class GenerationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.text is not None


class DeliveryOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    delivered: bool
    external_message_id: str | None = None
    error_description: str | None = None
    attempts: int = Field(default=0, ge=0)


class PipelineReport(BaseModel):
    """Where a single pipeline run stopped, and why."""

    model_config = ConfigDict(frozen=True)

    stage: PipelineStage
    message_id: str | None = None
    sender_id: str | None = None
    reason: str | None = None
    outcome: DeliveryOutcome | None = None


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    severity: Severity
    source_ip: str | None = None
    message_id: str | None = None
    sender_id: str | None = None
    action: str
    result: str  # "success" | "failure" | "rejected"
    details: dict[str, object] | None = None
