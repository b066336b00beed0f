"""Shared test fixtures for line-dify-relay."""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.config import RelayConfig

CHANNEL_SECRET = "test-channel-secret"
ACCESS_TOKEN = "test-access-token"
DIFY_KEY = "test-dify-key"


@pytest.fixture
def config() -> RelayConfig:
    return RelayConfig(
        channel_secret=CHANNEL_SECRET,
        channel_access_token=ACCESS_TOKEN,
        dify_api_key=DIFY_KEY,
        dify_api_url="http://dify.test/v1/chat-messages",
    )


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


# --- Factory functions for test data ---


def sign_body(body: bytes, secret: str = CHANNEL_SECRET) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def make_text_event(
    text: str = "hello",
    reply_token: str = "reply-token-0001",
    user_id: str | None = "U123",
) -> dict[str, Any]:
    event: dict[str, Any] = {
        "type": "message",
        "replyToken": reply_token,
        "timestamp": 1700000000000,
        "mode": "active",
        "message": {"id": "m1", "type": "text", "text": text},
    }
    if user_id is not None:
        event["source"] = {"type": "user", "userId": user_id}
    return event


def make_http_client_mock(response: Any = None, side_effect: Any = None) -> AsyncMock:
    """AsyncMock standing in for httpx.AsyncClient used as a context manager."""
    client = AsyncMock()
    if side_effect is not None:
        client.post.side_effect = side_effect
    else:
        client.post.return_value = response
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client
