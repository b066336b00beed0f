"""Tests for the webhook relay pipeline."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models import AuditEventType
from src.webhook.dify import FALLBACK_REPLY
from src.webhook.models import LineEvent
from src.webhook.relay import WebhookRelayPipeline
from tests.conftest import make_text_event


def _make_pipeline(**kwargs: Any) -> WebhookRelayPipeline:
    dify = MagicMock()
    dify.ask = AsyncMock(return_value=("answer", True))
    line = MagicMock()
    line.reply = AsyncMock(return_value=True)
    defaults: dict[str, Any] = {
        "dify_client": dify,
        "line_client": line,
        "audit_logger": None,
    }
    defaults.update(kwargs)
    return WebhookRelayPipeline(**defaults)


def _event(**kwargs: Any) -> LineEvent:
    return LineEvent.model_validate(make_text_event(**kwargs))


class TestRelayStages:
    @pytest.mark.asyncio
    async def test_answer_is_sent_with_reply_token(self) -> None:
        pipeline = _make_pipeline()
        sent = await pipeline.relay(_event(text="hi", reply_token="rt-1", user_id="U9"))

        assert sent is True
        pipeline._dify.ask.assert_awaited_once_with("hi", "U9")
        pipeline._line.reply.assert_awaited_once_with("rt-1", "answer")

    @pytest.mark.asyncio
    async def test_fallback_text_is_still_dispatched(self) -> None:
        dify = MagicMock()
        dify.ask = AsyncMock(return_value=(FALLBACK_REPLY, False))
        pipeline = _make_pipeline(dify_client=dify)

        await pipeline.relay(_event(reply_token="rt-2"))

        pipeline._line.reply.assert_awaited_once_with("rt-2", FALLBACK_REPLY)

    @pytest.mark.asyncio
    async def test_missing_user_id_sent_as_unknown(self) -> None:
        pipeline = _make_pipeline()
        await pipeline.relay(_event(user_id=None))
        assert pipeline._dify.ask.await_args[0][1] == "unknown"

    @pytest.mark.asyncio
    async def test_event_without_reply_token_skipped(self) -> None:
        pipeline = _make_pipeline()
        event = LineEvent.model_validate({**make_text_event(), "replyToken": None})

        assert await pipeline.relay(event) is False
        pipeline._dify.ask.assert_not_called()
        pipeline._line.reply.assert_not_called()

    @pytest.mark.asyncio
    async def test_reply_failure_reported(self) -> None:
        line = MagicMock()
        line.reply = AsyncMock(return_value=False)
        pipeline = _make_pipeline(line_client=line)
        assert await pipeline.relay(_event()) is False


class TestDispatch:
    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_calls(self) -> None:
        pipeline = _make_pipeline()
        await pipeline.dispatch([])
        pipeline._dify.ask.assert_not_called()
        pipeline._line.reply.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_text_events_skipped(self) -> None:
        pipeline = _make_pipeline()
        events = [
            LineEvent.model_validate({"type": "follow", "replyToken": "rt"}),
            LineEvent.model_validate({
                "type": "message",
                "replyToken": "rt",
                "message": {"id": "1", "type": "sticker"},
            }),
        ]
        await pipeline.dispatch(events)
        pipeline._dify.ask.assert_not_called()
        pipeline._line.reply.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_in_one_event_does_not_affect_others(self) -> None:
        dify = MagicMock()

        async def ask(text: str, user_id: str) -> tuple[str, bool]:
            if text == "boom":
                raise RuntimeError("unexpected")
            return f"re: {text}", True

        dify.ask = AsyncMock(side_effect=ask)
        pipeline = _make_pipeline(dify_client=dify)
        events = [
            _event(text="boom", reply_token="rt-boom"),
            _event(text="fine", reply_token="rt-fine"),
        ]

        await pipeline.dispatch(events)

        pipeline._line.reply.assert_awaited_once_with("rt-fine", "re: fine")

    @pytest.mark.asyncio
    async def test_events_processed_concurrently(self) -> None:
        started: list[str] = []
        release = asyncio.Event()
        dify = MagicMock()

        async def ask(text: str, user_id: str) -> tuple[str, bool]:
            started.append(text)
            if len(started) == 2:
                release.set()
            await asyncio.wait_for(release.wait(), timeout=1)
            return text, True

        dify.ask = AsyncMock(side_effect=ask)
        pipeline = _make_pipeline(dify_client=dify)

        await pipeline.dispatch([_event(text="a"), _event(text="b")])

        assert sorted(started) == ["a", "b"]
        assert pipeline._line.reply.await_count == 2

    @pytest.mark.asyncio
    async def test_dispatch_never_raises(self) -> None:
        line = MagicMock()
        line.reply = AsyncMock(side_effect=RuntimeError("broken"))
        pipeline = _make_pipeline(line_client=line)
        await pipeline.dispatch([_event()])


class TestRelayAudit:
    @pytest.mark.asyncio
    async def test_audit_records_both_stages(self) -> None:
        audit = MagicMock()
        pipeline = _make_pipeline(audit_logger=audit)

        await pipeline.relay(_event(user_id="U7"))

        types = [c[0][0].event_type for c in audit.log.call_args_list]
        assert types == [AuditEventType.AI_QUERY, AuditEventType.REPLY_DISPATCH]
        assert all(c[0][0].user_id == "U7" for c in audit.log.call_args_list)

    @pytest.mark.asyncio
    async def test_audit_marks_fallback_and_drop(self) -> None:
        audit = MagicMock()
        dify = MagicMock()
        dify.ask = AsyncMock(return_value=(FALLBACK_REPLY, False))
        line = MagicMock()
        line.reply = AsyncMock(return_value=False)
        pipeline = _make_pipeline(dify_client=dify, line_client=line, audit_logger=audit)

        await pipeline.relay(_event())

        results = [c[0][0].result for c in audit.log.call_args_list]
        assert results == ["fallback", "dropped"]

    @pytest.mark.asyncio
    async def test_audit_write_failure_does_not_block_reply(self) -> None:
        audit = MagicMock()
        audit.log.side_effect = OSError("disk full")
        pipeline = _make_pipeline(audit_logger=audit)

        assert await pipeline.relay(_event()) is True
        pipeline._line.reply.assert_awaited_once()
