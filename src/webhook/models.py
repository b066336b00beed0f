"""Data models for the LINE webhook event batch.

Parsing is lenient: every event is validated on its own, and an event with
an unexpected shape is skipped without affecting the rest of the batch.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

UNKNOWN_USER_ID = "unknown"


class LineSource(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(default=None, alias="userId")


class LineMessage(BaseModel):
    type: str | None = None
    text: str | None = None


class LineEvent(BaseModel):
    """A single webhook event. Only text messages are relayed."""

    model_config = ConfigDict(populate_by_name=True)

    type: str | None = None
    reply_token: str | None = Field(default=None, alias="replyToken")
    source: LineSource | None = None
    message: LineMessage | None = None

    @property
    def is_text_message(self) -> bool:
        return (
            self.type == "message"
            and self.message is not None
            and self.message.type == "text"
            and self.message.text is not None
        )

    @property
    def text(self) -> str:
        if self.message is None or self.message.text is None:
            return ""
        return self.message.text

    @property
    def user_id(self) -> str:
        if self.source is None or not self.source.user_id:
            return UNKNOWN_USER_ID
        return self.source.user_id


class WebhookBatch(BaseModel):
    """Parsed body of POST /webhook."""

    destination: str | None = None
    events: list[LineEvent] = Field(default_factory=list)
    skipped: int = 0

    @classmethod
    def from_json(cls, body: bytes) -> WebhookBatch:
        """Parse a verified body. Raises ValueError only if it is not JSON."""
        payload = json.loads(body)
        if not isinstance(payload, dict):
            logger.debug("Webhook body is not a JSON object; treating as empty batch")
            return cls()
        return cls.from_payload(payload)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> WebhookBatch:
        raw_events = payload.get("events")
        if not isinstance(raw_events, list):
            raw_events = []

        events: list[LineEvent] = []
        skipped = 0
        for index, raw in enumerate(raw_events):
            try:
                events.append(LineEvent.model_validate(raw))
            except ValidationError:
                logger.debug("Skipping malformed event at index %d", index)
                skipped += 1

        destination = payload.get("destination")
        return cls(
            destination=destination if isinstance(destination, str) else None,
            events=events,
            skipped=skipped,
        )

    @property
    def text_events(self) -> list[LineEvent]:
        return [event for event in self.events if event.is_text_message]
