"""WhatsApp Cloud API plumbing.

Outbound Graph API calls (text, reaction, read receipt, typing indicator),
the GET subscription handshake and X-Hub-Signature-256 verification.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

import httpx

from src.webhook.models import VerificationResult

logger = logging.getLogger(__name__)

_SUBSCRIBE_MODE = "subscribe"


class WhatsAppAPIError(Exception):
    """An outbound Graph API call failed.

    ``status_code`` is None when no response was received. ``payload`` holds
    the provider's ``error`` object when the response body carried one.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


def verify_subscription(
    mode: str | None,
    token: str | None,
    challenge: str | None,
    verify_token: str,
) -> VerificationResult:
    """Answer Meta's webhook verification challenge.

    200 with the challenge echoed only for mode ``subscribe`` and a matching
    token; 403 with an empty body otherwise.
    """
    if mode != _SUBSCRIBE_MODE or token is None:
        return VerificationResult(status_code=403)
    if not hmac.compare_digest(token.encode(), verify_token.encode()):
        return VerificationResult(status_code=403)
    return VerificationResult(status_code=200, content=challenge or "")


def verify_signature(app_secret: str, body: bytes, signature: str | None) -> bool:
    """Check the X-Hub-Signature-256 header against the raw request body."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature[7:], expected)


class WhatsAppClient:
    """Bearer-authenticated client for the phone number's /messages endpoint."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_base: str = "https://graph.facebook.com",
        api_version: str = "v24.0",
        timeout: float = 10.0,
    ) -> None:
        self._access_token = access_token
        self._url = f"{api_base.rstrip('/')}/{api_version}/{phone_number_id}/messages"
        self._timeout = timeout

    async def send_text(self, to: str, body: str) -> dict[str, Any]:
        return await self._post({
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"body": body},
        })

    async def send_reaction(self, to: str, message_id: str, emoji: str) -> dict[str, Any]:
        return await self._post({
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "reaction",
            "reaction": {"message_id": message_id, "emoji": emoji},
        })

    async def mark_read(self, message_id: str) -> dict[str, Any]:
        return await self._post({
            "messaging_product": "whatsapp",
            "status": "read",
            "message_id": message_id,
        })

    async def send_typing_indicator(self, to: str, message_id: str) -> dict[str, Any]:
        """Show "typing…" to ``to``.

        The Cloud API attaches the indicator to the inbound message being
        answered, so the message id is required alongside the recipient.
        The request carries ``status: read``, so it also marks that message
        read; the sender sees a read receipt even where no separate
        mark_read call follows.
        """
        logger.debug("Typing indicator for %s on %s", to, message_id)
        return await self._post({
            "messaging_product": "whatsapp",
            "status": "read",
            "message_id": message_id,
            "typing_indicator": {"type": "text"},
        })

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(verify=True, timeout=self._timeout) as client:
                resp = await client.post(self._url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise WhatsAppAPIError(f"Graph API request failed: {e!r}") from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code >= 400:
            error = data.get("error") if isinstance(data, dict) else None
            raise WhatsAppAPIError(
                f"Graph API returned {resp.status_code}",
                status_code=resp.status_code,
                payload=error if isinstance(error, dict) else None,
            )
        return data if isinstance(data, dict) else {}
