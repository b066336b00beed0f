"""Webhook relay pipeline.

Runs after the webhook has been acknowledged. Each text event goes through
two sequential stages:

1. Ask Dify for an answer (falls back to a fixed apology on any failure)
2. Send the answer to LINE with the event's reply token (dropped on failure)

Events in a batch run concurrently and fail independently.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from src.audit.logger import log_audit_event
from src.models import AuditEvent, AuditEventType, RiskLevel
from src.webhook.line import mask_token

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.webhook.dify import DifyClient
    from src.webhook.line import LineReplyClient
    from src.webhook.models import LineEvent

logger = logging.getLogger(__name__)


class WebhookRelayPipeline:
    """Relays LINE text events to Dify and replies with the answer."""

    def __init__(
        self,
        dify_client: DifyClient,
        line_client: LineReplyClient,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._dify = dify_client
        self._line = line_client
        self._audit = audit_logger

    async def relay(self, event: LineEvent) -> bool:
        """Run both stages for one text event. Returns True if the reply was sent."""
        if not event.reply_token:
            logger.warning("Text event without reply token skipped")
            return False
        token = event.reply_token

        # Stage 1: AI query
        answer, answered = await self._dify.ask(event.text, event.user_id)
        self._log_audit(
            AuditEventType.AI_QUERY,
            event,
            result="success" if answered else "fallback",
            risk_level=RiskLevel.INFO if answered else RiskLevel.MEDIUM,
        )

        # Stage 2: Reply dispatch
        sent = await self._line.reply(token, answer)
        self._log_audit(
            AuditEventType.REPLY_DISPATCH,
            event,
            result="success" if sent else "dropped",
            risk_level=RiskLevel.INFO if sent else RiskLevel.MEDIUM,
        )
        if sent:
            logger.info("Replied to %s (fallback=%s)", mask_token(token), not answered)
        return sent

    async def dispatch(self, events: list[LineEvent]) -> None:
        """Relay every text event concurrently, isolating failures per event.

        Never raises; called after the webhook response has been sent.
        """
        try:
            text_events = [event for event in events if event.is_text_message]
            skipped = len(events) - len(text_events)
            if skipped:
                logger.debug("Skipped %d non-text event(s)", skipped)
            if not text_events:
                return

            results = await asyncio.gather(
                *(self.relay(event) for event in text_events),
                return_exceptions=True,
            )
            for event, result in zip(text_events, results):
                if isinstance(result, Exception):
                    logger.error(
                        "Event processing failed for token %s",
                        mask_token(event.reply_token or ""),
                        exc_info=result,
                    )
        except Exception:
            logger.exception("Webhook handler error")

    def _log_audit(
        self,
        event_type: AuditEventType,
        event: LineEvent,
        result: str,
        risk_level: RiskLevel,
    ) -> None:
        log_audit_event(self._audit, AuditEvent(
            event_type=event_type,
            user_id=event.user_id,
            action=event_type.value,
            result=result,
            risk_level=risk_level,
            details={"reply_token": mask_token(event.reply_token or "")},
        ))
