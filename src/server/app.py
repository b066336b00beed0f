"""FastAPI application for the LINE to Dify webhook relay."""

from __future__ import annotations

import logging

from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from src.audit.logger import AuditLogger, log_audit_event
from src.config import RelayConfig
from src.models import AuditEvent, AuditEventType, RiskLevel
from src.webhook.dify import DifyClient
from src.webhook.line import LineReplyClient
from src.webhook.models import WebhookBatch
from src.webhook.relay import WebhookRelayPipeline
from src.webhook.signature import SignatureVerifier

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-line-signature"


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables.

    Raises ConfigurationError when a required variable is missing, so the
    server never starts accepting connections without credentials.
    """
    return create_app(RelayConfig.from_env())


def create_app(
    config: RelayConfig,
    audit_logger: AuditLogger | None = None,
    pipeline: WebhookRelayPipeline | None = None,
) -> FastAPI:
    """Create the relay app. audit_logger defaults to the configured path."""
    if audit_logger is None:
        audit_logger = AuditLogger.from_config(config)
    verifier = SignatureVerifier(config.channel_secret)
    if pipeline is None:
        pipeline = WebhookRelayPipeline(
            dify_client=DifyClient(config.dify_api_url, config.dify_api_key),
            line_client=LineReplyClient(config.channel_access_token),
            audit_logger=audit_logger,
        )

    app = FastAPI(docs_url=None, redoc_url=None)

    @app.get("/")
    async def health() -> PlainTextResponse:
        return PlainTextResponse("OK")

    @app.post("/webhook")
    async def webhook(request: Request, background_tasks: BackgroundTasks) -> Response:
        # Signature is computed over the raw bytes, before any parsing
        body = await request.body()
        signature = request.headers.get(SIGNATURE_HEADER)
        if not verifier.verify(body, signature):
            logger.warning("Invalid LINE signature")
            log_audit_event(audit_logger, AuditEvent(
                event_type=AuditEventType.AUTH_FAILURE,
                source_ip=request.client.host if request.client else None,
                action="POST /webhook",
                result="failure",
                risk_level=RiskLevel.HIGH,
                details={"reason": "missing_signature" if not signature else "invalid_signature"},
            ))
            return JSONResponse({"error": "Invalid webhook signature"}, status_code=401)

        try:
            batch = WebhookBatch.from_json(body)
        except ValueError:
            logger.warning("Verified webhook body is not JSON")
            return JSONResponse({"error": "Invalid webhook payload"}, status_code=400)

        log_audit_event(audit_logger, AuditEvent(
            event_type=AuditEventType.WEBHOOK_RECEIVED,
            source_ip=request.client.host if request.client else None,
            action="POST /webhook",
            result="success",
            risk_level=RiskLevel.INFO,
            details={
                "events": len(batch.events),
                "text_events": len(batch.text_events),
                "skipped": batch.skipped,
            },
        ))

        # Acknowledge first; relaying runs after the response is sent
        if batch.events:
            background_tasks.add_task(pipeline.dispatch, batch.events)
        return JSONResponse({"status": "ok"}, status_code=200)

    return app
