"""LINE Messaging API reply client.

A reply token is single-use and expires quickly, so a failed send is logged
and dropped rather than retried.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

LINE_REPLY_URL = "https://api.line.me/v2/bot/message/reply"

_TIMEOUT_SECONDS = 15.0


def mask_token(reply_token: str) -> str:
    """Shorten a reply token for log output."""
    return f"...{reply_token[-6:]}" if len(reply_token) > 6 else "***"


class LineReplyClient:
    """Sends text replies through the LINE reply endpoint."""

    def __init__(self, channel_access_token: str) -> None:
        self._access_token = channel_access_token

    def to_reply_request(self, reply_token: str, text: str) -> dict[str, Any]:
        return {
            "replyToken": reply_token,
            "messages": [{"type": "text", "text": text}],
        }

    async def reply(self, reply_token: str, text: str) -> bool:
        """Send text as the reply to reply_token. Returns True on 2xx."""
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    LINE_REPLY_URL,
                    json=self.to_reply_request(reply_token, text),
                    headers=headers,
                    timeout=_TIMEOUT_SECONDS,
                )
        except httpx.HTTPError as exc:
            logger.error(
                "LINE reply failed for token %s: %s",
                mask_token(reply_token), type(exc).__name__,
            )
            return False

        if not 200 <= resp.status_code < 300:
            logger.error(
                "LINE reply failed for token %s: status %s",
                mask_token(reply_token), resp.status_code,
            )
            return False
        return True
