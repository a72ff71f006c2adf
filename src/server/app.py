"""FastAPI application exposing the WhatsApp webhook."""

from __future__ import annotations

import json
import logging
import time

from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from src.audit.logger import AuditLogger
from src.config import Settings
from src.models import AuditEvent, AuditEventType
from src.webhook.classifier import KeywordClassifier
from src.webhook.handler import WebhookIngestHandler
from src.webhook.message_cache import MessageCache
from src.webhook.rate_limiter import SenderRateLimiter
from src.webhook.templates import load_rules, load_templates
from src.webhook.whatsapp import WhatsAppClient, verify_signature, verify_subscription

logger = logging.getLogger(__name__)


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables.

    Raises ConfigError when settings, templates or rules are missing.
    """
    return create_app(Settings.from_env())


def build_classifier(settings: Settings) -> KeywordClassifier:
    catalog = load_templates(settings.templates_path)
    rules = load_rules(settings.intent_rules_path, catalog)
    return KeywordClassifier(rules, catalog)


def create_app(
    settings: Settings,
    classifier: KeywordClassifier | None = None,
    client: WhatsAppClient | None = None,
    audit_logger: AuditLogger | None = None,
    cache: MessageCache | None = None,
    rate_limiter: SenderRateLimiter | None = None,
) -> FastAPI:
    """Wire the ingest handler and register the webhook routes."""
    if classifier is None:
        classifier = build_classifier(settings)
    if client is None:
        client = WhatsAppClient(
            access_token=settings.access_token,
            phone_number_id=settings.phone_number_id,
            api_base=settings.api_base,
            api_version=settings.api_version,
            timeout=settings.http_timeout,
        )
    if audit_logger is None and settings.audit_log_path:
        audit_logger = AuditLogger(settings.audit_log_path)
    cache = cache if cache is not None else MessageCache()
    rate_limiter = (
        rate_limiter if rate_limiter is not None
        else SenderRateLimiter(window_seconds=settings.rate_limit_window)
    )

    handler = WebhookIngestHandler(
        client=client,
        classifier=classifier,
        cache=cache,
        rate_limiter=rate_limiter,
        operator_number=settings.operator_number,
        reply_delay=(settings.reply_delay_min, settings.reply_delay_max),
        audit_logger=audit_logger,
    )
    started_at = time.monotonic()

    app = FastAPI(docs_url=None, redoc_url=None)
    app.state.handler = handler
    app.state.cache = cache
    app.state.rate_limiter = rate_limiter

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/status")
    async def status() -> dict[str, object]:
        return {
            "status": "ok",
            "uptime_seconds": round(time.monotonic() - started_at, 3),
            "cache_size": len(cache),
            "tracked_senders": len(rate_limiter),
        }

    @app.get("/webhook")
    async def verify_webhook(request: Request) -> Response:
        params = request.query_params
        result = verify_subscription(
            mode=params.get("hub.mode", params.get("mode")),
            token=params.get("hub.verify_token", params.get("verify_token")),
            challenge=params.get("hub.challenge", params.get("challenge")),
            verify_token=settings.verify_token,
        )
        if result.status_code == 200:
            logger.info("Webhook verified successfully")
            return PlainTextResponse(result.content, status_code=200)
        logger.warning("Webhook verification failed")
        return Response(status_code=result.status_code)

    @app.post("/webhook")
    async def receive_webhook(request: Request, background: BackgroundTasks) -> Response:
        # Always 200: the provider retries anything else
        body = await request.body()

        if settings.app_secret and not verify_signature(
            settings.app_secret, body, request.headers.get("x-hub-signature-256"),
        ):
            logger.warning("Rejected delivery with invalid signature")
            if audit_logger:
                await audit_logger.record(AuditEvent(
                    event_type=AuditEventType.SIGNATURE_REJECTED,
                    action="verify_signature",
                    result="dropped",
                ))
            return Response(status_code=200)

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug("Ignoring non-JSON delivery")
            return Response(status_code=200)

        background.add_task(handler.handle, payload)
        return Response(status_code=200)

    return app
