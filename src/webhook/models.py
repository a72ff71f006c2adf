"""Data models for the webhook ingest pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class InboundMessage:
    """One user message unpacked from a Cloud API delivery."""

    id: str
    sender: str
    type: str  # "text" or any unsupported provider type
    text: str
    timestamp: str | None = None

    @property
    def is_text(self) -> bool:
        return self.type == "text"

    @classmethod
    def from_payload(cls, payload: Any) -> InboundMessage | None:
        """Extract ``entry[0].changes[0].value.messages[0]``.

        Returns None for status callbacks and anything not shaped like a
        message delivery.
        """
        try:
            msg = payload["entry"][0]["changes"][0]["value"]["messages"][0]
            message_id = msg["id"]
            sender = msg["from"]
        except (KeyError, IndexError, TypeError):
            return None
        if not isinstance(message_id, str) or not isinstance(sender, str):
            return None

        text_obj = msg.get("text")
        text = text_obj.get("body", "") if isinstance(text_obj, dict) else ""
        timestamp = msg.get("timestamp")
        return cls(
            id=message_id,
            sender=sender,
            type=str(msg.get("type", "")),
            text=text if isinstance(text, str) else "",
            timestamp=str(timestamp) if timestamp is not None else None,
        )


@dataclass(frozen=True)
class Classification:
    """Classifier output: which intent matched and what to answer."""

    intent: str
    reply: str
    reaction: str
    notify_operator: bool = False


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of the GET subscription handshake."""

    status_code: int
    content: str = ""
