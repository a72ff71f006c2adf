"""Webhook ingest pipeline.

Runs after the HTTP request has been acknowledged. One delivery flows
through these stages:

1. Extract the first message from the delivery envelope
2. Duplicate suppression (message cache)
3. Per-sender rate limit
4. Message type check
5. Keyword classification
6. Reply steps: the operator branch for intents that notify a human,
   the standard branch for everything else

Reply steps are tagged critical or best-effort. A best-effort failure is
logged and the pipeline continues; a critical failure stops it and sends
the general error template to the user once.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.models import AuditEvent, AuditEventType
from src.webhook.models import Classification, InboundMessage
from src.webhook.whatsapp import WhatsAppAPIError

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.webhook.classifier import KeywordClassifier
    from src.webhook.message_cache import MessageCache
    from src.webhook.rate_limiter import SenderRateLimiter
    from src.webhook.whatsapp import WhatsAppClient

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, Enum):
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    RATE_LIMITED = "rate_limited"
    UNSUPPORTED = "unsupported"
    REPLIED = "replied"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineStep:
    name: str
    run: Callable[[], Awaitable[Any]]
    critical: bool


@dataclass(frozen=True)
class StepResult:
    name: str
    ok: bool
    error: WhatsAppAPIError | None = None


class WebhookIngestHandler:
    """Runs the reply pipeline for acknowledged webhook deliveries.

    The cache and rate limiter are owned by the caller and shared across
    concurrent calls.
    """

    def __init__(
        self,
        client: WhatsAppClient,
        classifier: KeywordClassifier,
        cache: MessageCache,
        rate_limiter: SenderRateLimiter,
        operator_number: str,
        reply_delay: tuple[float, float] = (1.0, 3.0),
        audit_logger: AuditLogger | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._classifier = classifier
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._operator_number = operator_number
        self._reply_delay = reply_delay
        self._audit = audit_logger
        self._sleep = sleep

    async def handle(self, payload: Any) -> DeliveryOutcome:
        message = InboundMessage.from_payload(payload)
        if message is None:
            logger.debug("Delivery carries no message, ignoring")
            return DeliveryOutcome.IGNORED

        if not self._cache.claim(message.id):
            logger.info("Duplicate message ignored: %s", message.id)
            await self._record(AuditEventType.DUPLICATE_DROPPED, message, "dedup", "dropped")
            return DeliveryOutcome.DUPLICATE

        # The id stays recorded, so a redelivery of a throttled message is a duplicate
        if self._rate_limiter.is_limited(message.sender):
            logger.info("Rate limited sender %s, dropping %s", message.sender, message.id)
            await self._record(AuditEventType.RATE_LIMITED, message, "rate_limit", "dropped")
            return DeliveryOutcome.RATE_LIMITED

        logger.info(
            "Incoming message id=%s from=%s type=%s", message.id, message.sender, message.type,
        )

        if not message.is_text:
            return await self._reply_unsupported(message)

        classification = self._classifier.classify(message.text)
        logger.info("Message %s classified as %s", message.id, classification.intent)

        if classification.notify_operator:
            steps = self._operator_steps(message, classification)
        else:
            steps = self._standard_steps(message, classification)

        failed = await self._run_pipeline(steps)
        if failed is not None:
            await self._send_fallback(message, failed)
            await self._record(
                AuditEventType.REPLY_FAILED, message, failed.name, "failure",
                intent=classification.intent,
                status_code=failed.error.status_code if failed.error else None,
            )
            return DeliveryOutcome.FAILED

        await self._record(
            AuditEventType.OPERATOR_NOTIFIED if classification.notify_operator
            else AuditEventType.REPLY_SENT,
            message, "reply", "success",
            intent=classification.intent,
        )
        return DeliveryOutcome.REPLIED

    # --- Branches ---

    def _standard_steps(
        self, message: InboundMessage, classification: Classification,
    ) -> list[PipelineStep]:
        steps: list[PipelineStep] = []
        if classification.reaction:
            steps.append(self._reaction_step(message, classification.reaction, critical=False))
        steps += [
            PipelineStep(
                "typing",
                lambda: self._client.send_typing_indicator(message.sender, message.id),
                critical=False,
            ),
            PipelineStep("delay", self._delay, critical=False),
            PipelineStep(
                "reply",
                lambda: self._client.send_text(message.sender, classification.reply),
                critical=True,
            ),
            PipelineStep(
                "mark_read", lambda: self._client.mark_read(message.id), critical=False,
            ),
        ]
        return steps

    def _operator_steps(
        self, message: InboundMessage, classification: Classification,
    ) -> list[PipelineStep]:
        steps = [
            PipelineStep(
                "typing",
                lambda: self._client.send_typing_indicator(message.sender, message.id),
                critical=False,
            ),
            PipelineStep("delay", self._delay, critical=False),
            PipelineStep(
                "reply",
                lambda: self._client.send_text(message.sender, classification.reply),
                critical=True,
            ),
            PipelineStep(
                "notify_operator",
                lambda: self._client.send_text(
                    self._operator_number, format_operator_notification(message),
                ),
                critical=True,
            ),
        ]
        if classification.reaction:
            steps.append(self._reaction_step(message, classification.reaction, critical=True))
        return steps

    def _reaction_step(
        self, message: InboundMessage, emoji: str, critical: bool,
    ) -> PipelineStep:
        return PipelineStep(
            "reaction",
            lambda: self._client.send_reaction(message.sender, message.id, emoji),
            critical=critical,
        )

    # --- Execution ---

    async def _run_pipeline(self, steps: list[PipelineStep]) -> StepResult | None:
        """Run steps in order. Returns the failed critical step, if any."""
        for step in steps:
            result = await self._run_step(step)
            if result.ok:
                continue
            if step.critical:
                return result
            logger.warning(
                "Best-effort step %s failed: %s (payload=%s)",
                step.name, result.error,
                result.error.payload if result.error else None,
            )
        return None

    async def _run_step(self, step: PipelineStep) -> StepResult:
        try:
            await step.run()
        except WhatsAppAPIError as e:
            return StepResult(name=step.name, ok=False, error=e)
        return StepResult(name=step.name, ok=True)

    async def _send_fallback(self, message: InboundMessage, failed: StepResult) -> None:
        logger.error(
            "Critical step %s failed for %s: %s (payload=%s)",
            failed.name, message.id, failed.error,
            failed.error.payload if failed.error else None,
        )
        try:
            await self._client.send_text(message.sender, self._classifier.general_error_reply())
        except WhatsAppAPIError as e:
            logger.error("Fallback error message to %s failed: %s", message.sender, e)

    async def _reply_unsupported(self, message: InboundMessage) -> DeliveryOutcome:
        logger.info("Unsupported message type: %s", message.type)
        try:
            await self._client.send_text(
                message.sender, self._classifier.unsupported_type_reply(),
            )
        except WhatsAppAPIError as e:
            logger.error("Unsupported-type reply to %s failed: %s", message.sender, e)
            await self._record(
                AuditEventType.UNSUPPORTED_TYPE, message, "unsupported_reply", "failure",
                type=message.type,
            )
            return DeliveryOutcome.FAILED
        await self._record(
            AuditEventType.UNSUPPORTED_TYPE, message, "unsupported_reply", "success",
            type=message.type,
        )
        return DeliveryOutcome.UNSUPPORTED

    async def _delay(self) -> None:
        low, high = self._reply_delay
        await self._sleep(random.uniform(low, high))

    async def _record(
        self,
        event_type: AuditEventType,
        message: InboundMessage,
        action: str,
        result: str,
        **details: object,
    ) -> None:
        if self._audit is None:
            return
        await self._audit.record(AuditEvent(
            event_type=event_type,
            message_id=message.id,
            sender_id=message.sender,
            action=action,
            result=result,
            details=details or None,
        ))


def format_operator_notification(message: InboundMessage) -> str:
    """Text sent to the operator when a user asks for a human."""
    return (
        "🔔 *Permintaan Konsultasi Baru*\n\n"
        f"Dari: +{message.sender.lstrip('+')}\n"
        f"Pesan: {message.text}\n"
        f"Waktu: {_message_time(message)}"
    )


def _message_time(message: InboundMessage) -> str:
    if message.timestamp is not None:
        try:
            sent = datetime.fromtimestamp(int(message.timestamp), UTC)
        except (ValueError, OverflowError, OSError):
            pass
        else:
            return sent.isoformat()
    return datetime.now(UTC).isoformat()
