"""Shared Pydantic data models for the WhatsApp responder."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# --- Enums ---


class AuditEventType(str, Enum):
    DUPLICATE_DROPPED = "duplicate_dropped"
    RATE_LIMITED = "rate_limited"
    UNSUPPORTED_TYPE = "unsupported_type"
    REPLY_SENT = "reply_sent"
    OPERATOR_NOTIFIED = "operator_notified"
    REPLY_FAILED = "reply_failed"
    SIGNATURE_REJECTED = "signature_rejected"


# --- Template Models ---


class ReplyTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = Field(min_length=1)
    reaction: str = ""


class ErrorTemplates(BaseModel):
    model_config = ConfigDict(frozen=True)

    unsupported_type: str = Field(min_length=1)
    general_error: str = Field(min_length=1)


class TemplateCatalog(BaseModel):
    """Reply templates keyed by intent, loaded once at startup."""

    model_config = ConfigDict(frozen=True)

    fallback_intent: str = "welcome"
    placeholders: dict[str, str] = Field(default_factory=dict)
    intents: dict[str, ReplyTemplate]
    errors: ErrorTemplates

    @model_validator(mode="after")
    def _fallback_defined(self) -> TemplateCatalog:
        if self.fallback_intent not in self.intents:
            raise ValueError(
                f"fallback intent '{self.fallback_intent}' has no template"
            )
        return self


# --- Classifier Models ---


class IntentRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: str = Field(min_length=1)
    keywords: list[str] = Field(min_length=1)
    notify_operator: bool = False

    @field_validator("keywords")
    @classmethod
    def _normalize_keywords(cls, keywords: list[str]) -> list[str]:
        cleaned = [k.strip().lower() for k in keywords]
        if any(not k for k in cleaned):
            raise ValueError("keywords must not be blank")
        return cleaned


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    message_id: str | None = None
    sender_id: str | None = None
    action: str
    result: str  # "success" | "failure" | "dropped"
    details: dict[str, object] | None = None
