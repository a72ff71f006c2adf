"""Shared test fixtures for the WhatsApp responder."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.config import Settings
from src.models import IntentRule, TemplateCatalog
from src.webhook.classifier import KeywordClassifier
from src.webhook.whatsapp import WhatsAppClient

TEMPLATES: dict[str, Any] = {
    "fallback_intent": "welcome",
    "placeholders": {"business_name": "Toko Uji", "phone": "0800-1111"},
    "intents": {
        "welcome": {"message": "Halo dari {{business_name}}!", "reaction": "👋"},
        "harga": {"message": "Daftar harga {{business_name}}", "reaction": "💰"},
        "promo": {"message": "Promo bulan ini", "reaction": "🎉"},
        "konsultasi": {"message": "Konsultan kami akan menghubungi Anda", "reaction": "🙏"},
    },
    "errors": {
        "unsupported_type": "Maaf, hanya pesan teks.",
        "general_error": "Maaf, terjadi kesalahan. Hubungi {{phone}}.",
    },
}

RULES: list[dict[str, Any]] = [
    {
        "intent": "konsultasi",
        "keywords": ["konsultasi", "konsultan", "hubungi"],
        "notify_operator": True,
    },
    {"intent": "harga", "keywords": ["harga", "price"]},
    {"intent": "promo", "keywords": ["promo", "diskon"]},
]

OPERATOR_NUMBER = "628000000001"


@pytest.fixture
def templates_path(tmp_path: Path) -> str:
    path = tmp_path / "templates.json"
    path.write_text(json.dumps(TEMPLATES))
    return str(path)


@pytest.fixture
def rules_path(tmp_path: Path) -> str:
    path = tmp_path / "intent-rules.json"
    path.write_text(json.dumps(RULES))
    return str(path)


@pytest.fixture
def catalog() -> TemplateCatalog:
    return TemplateCatalog.model_validate(TEMPLATES)


@pytest.fixture
def classifier(catalog: TemplateCatalog) -> KeywordClassifier:
    rules = [IntentRule.model_validate(r) for r in RULES]
    return KeywordClassifier(rules, catalog)


@pytest.fixture
def mock_client() -> AsyncMock:
    return AsyncMock(spec=WhatsAppClient)


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


# --- Factory functions for test data ---


def make_settings(**kwargs: Any) -> Settings:
    """Factory for Settings with sensible defaults."""
    defaults: dict[str, Any] = {
        "access_token": "test-access-token",
        "phone_number_id": "123456",
        "verify_token": "test-verify",
        "operator_number": OPERATOR_NUMBER,
        "reply_delay_min": 0.0,
        "reply_delay_max": 0.0,
    }
    defaults.update(kwargs)
    return Settings(**defaults)


def make_message(
    message_id: str = "wamid.1",
    sender: str = "6281234567890",
    text: str | None = "halo",
    msg_type: str = "text",
    timestamp: str | None = "1700000000",
) -> dict[str, Any]:
    """Factory for a single Cloud API message object."""
    msg: dict[str, Any] = {"from": sender, "id": message_id, "type": msg_type}
    if timestamp is not None:
        msg["timestamp"] = timestamp
    if msg_type == "text" and text is not None:
        msg["text"] = {"body": text}
    elif msg_type == "image":
        msg["image"] = {"id": "media-1", "mime_type": "image/jpeg"}
    return msg


def make_payload(*messages: dict[str, Any]) -> dict[str, Any]:
    """Factory for a Cloud API delivery envelope carrying ``messages``."""
    value: dict[str, Any] = {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": "6280000", "phone_number_id": "123456"},
    }
    if messages:
        value["messages"] = list(messages)
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA_ID", "changes": [{"value": value, "field": "messages"}]}],
    }
