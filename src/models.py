"""Shared Pydantic data models for line-dify-relay."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

# --- Enums ---


class AuditEventType(str, Enum):
    AUTH_FAILURE = "auth_failure"
    WEBHOOK_RECEIVED = "webhook_received"
    AI_QUERY = "ai_query"
    REPLY_DISPATCH = "reply_dispatch"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    user_id: str | None = None
    action: str
    result: str  # "success" | "failure" | "fallback" | "dropped"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
