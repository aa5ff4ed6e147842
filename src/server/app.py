"""FastAPI webhook application."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from src.audit.logger import AuditLogger, write_event
from src.config import Settings, load_settings
from src.logging_config import configure_logging
from src.models import AuditEvent, AuditEventType, Severity
from src.services.delivery import DeliveryClient
from src.services.generator import ReplyGenerator
from src.webhook.dispatcher import EventDispatcher
from src.webhook.pipeline import MessagePipeline
from src.webhook.verification import WebhookVerifier

logger = logging.getLogger(__name__)

_MAX_WEBHOOK_BODY_SIZE = 1024 * 1024  # 1MB; DM payloads are a few KB

ACK_BODY = "EVENT_RECEIVED"


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    settings = load_settings()
    configure_logging(settings.log_level)
    return create_app(settings)


def build_pipeline(
    settings: Settings, audit_logger: AuditLogger | None = None,
) -> MessagePipeline:
    generator = ReplyGenerator(
        api_key=settings.ai_api_key,
        base_url=settings.ai_api_base_url,
        model=settings.ai_model,
        timeout=settings.generator_timeout,
    )
    delivery = DeliveryClient(
        access_token=settings.instagram_access_token,
        api_base=settings.instagram_api_base,
        timeout=settings.delivery_timeout,
    )
    return MessagePipeline(
        bot_account_id=settings.bot_account_id,
        generator=generator,
        delivery=delivery,
        audit_logger=audit_logger,
    )


def create_app(
    settings: Settings,
    pipeline: MessagePipeline | None = None,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create the webhook app. ``pipeline`` is injectable for tests."""
    if audit_logger is None:
        audit_logger = AuditLogger.from_settings(settings)
    if pipeline is None:
        pipeline = build_pipeline(settings, audit_logger)

    verifier = WebhookVerifier(settings.verify_token, settings.app_secret)
    dispatcher = EventDispatcher(
        pipeline,
        workers=settings.pipeline_workers,
        max_queue_size=settings.event_queue_max_size,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        dispatcher.start()
        logger.info("Instagram DM auto-reply bot started on port %d", settings.port)
        yield
        await dispatcher.stop()
        logger.info("Pipeline workers stopped")

    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.state.settings = settings

    def _audit(request: Request, event_type: AuditEventType, reason: str) -> None:
        write_event(audit_logger, AuditEvent(
            event_type=event_type,
            severity=Severity.WARNING,
            source_ip=request.client.host if request.client else None,
            action=f"{request.method} {request.url.path}",
            result="rejected",
            details={"reason": reason},
        ))

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}

    @app.get("/webhook")
    async def verify_subscription(request: Request) -> Response:
        result = verifier.handle_verification(dict(request.query_params))
        if result.status_code != 200:
            _audit(request, AuditEventType.VERIFICATION_FAILURE, "invalid_mode_or_token")
        return PlainTextResponse(result.content, status_code=result.status_code)

    @app.post("/webhook")
    async def receive_event(request: Request) -> Response:
        body = await request.body()
        if len(body) > _MAX_WEBHOOK_BODY_SIZE:
            return JSONResponse({"error": "Request body too large"}, status_code=413)

        if not verifier.verify_signature(dict(request.headers), body):
            logger.warning("Rejected webhook with invalid signature")
            _audit(request, AuditEventType.SIGNATURE_FAILURE, "invalid_signature")
            return JSONResponse({"error": "Invalid webhook signature"}, status_code=401)

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            # Still acknowledged so the platform does not retry a bad delivery.
            logger.debug("Ignoring webhook with non-JSON body")
        else:
            dispatcher.submit(payload)

        return PlainTextResponse(ACK_BODY, status_code=200)

    return app
