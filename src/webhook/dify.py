"""Dify chat-messages client: blocking query with fallback reply."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "すみません、うまく返答を作れませんでした。もう一度送ってみてください。"

_TIMEOUT_SECONDS = 30.0

# Where the answer lives differs between Dify versions; first hit wins.
_ANSWER_PATHS: tuple[tuple[str, ...], ...] = (
    ("answer",),
    ("data", "answer"),
    ("message",),
)


def extract_answer(payload: Any) -> str | None:
    """Return the first string value found along _ANSWER_PATHS.

    Null or non-string values count as absent.
    """
    for path in _ANSWER_PATHS:
        node = payload
        for key in path:
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(key)
        if isinstance(node, str):
            return node
    return None


class DifyClient:
    """Queries the Dify chat-messages API on behalf of a LINE user."""

    def __init__(self, api_url: str, api_key: str) -> None:
        self._api_url = api_url
        self._api_key = api_key

    def to_dify_request(self, text: str, user_id: str) -> dict[str, Any]:
        return {
            "inputs": {},
            "query": text,
            "response_mode": "blocking",
            "user": user_id,
        }

    async def ask(self, text: str, user_id: str) -> tuple[str, bool]:
        """Return (reply text, answered).

        answered is False when FALLBACK_REPLY was substituted. Errors are
        logged here and never raised.
        """
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    self._api_url,
                    json=self.to_dify_request(text, user_id),
                    headers=headers,
                    timeout=_TIMEOUT_SECONDS,
                )
        except httpx.TimeoutException:
            logger.error("Dify request timed out after %.0fs", _TIMEOUT_SECONDS)
            return FALLBACK_REPLY, False
        except httpx.HTTPError as exc:
            logger.error("Dify request failed: %s", type(exc).__name__)
            return FALLBACK_REPLY, False

        if not 200 <= resp.status_code < 300:
            logger.error("Dify request failed: status %s", resp.status_code)
            return FALLBACK_REPLY, False

        try:
            answer = extract_answer(resp.json())
        except ValueError:
            logger.error("Dify response was not valid JSON")
            return FALLBACK_REPLY, False

        if answer is None:
            logger.warning("Dify response had no recognized answer field")
            return FALLBACK_REPLY, False
        return answer, True
