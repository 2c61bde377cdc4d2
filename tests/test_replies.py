import asyncio
import json

import pytest

from remicat.events import (
    DoneEvent,
    ErrorEvent,
    StatsEvent,
    TextEvent,
    ThinkingEvent,
    ToolCallEvent,
    ToolCallResultEvent,
)
from remicat.replies import (
    AgentErrorPayload,
    AgentMessage,
    Done,
    Stats,
    TextDelta,
    Thinking,
    ToolCall,
    ToolResult,
    TIMEOUT_NOTICE,
    event_to_payload,
    forward_stream,
    next_backoff,
)


async def _events(*items, delay=0.0):
    for item in items:
        if delay:
            await asyncio.sleep(delay)
        yield item


def _collector():
    sent = []

    async def send(message):
        sent.append(message)

    return sent, send


def test_text_event_becomes_text_delta():
    assert event_to_payload(TextEvent("hello")) == TextDelta("hello")


def test_thinking_event():
    assert event_to_payload(ThinkingEvent("hmm")) == Thinking("hmm")


def test_tool_call_args_round_trip():
    args = {"url": "https://example.com", "raw": True}
    payload = event_to_payload(ToolCallEvent("fetch", args))
    assert isinstance(payload, ToolCall)
    assert payload.name == "fetch"
    assert json.loads(payload.args_json) == args


def test_tool_result_and_stats():
    assert event_to_payload(ToolCallResultEvent("fetch", "ok")) == ToolResult("fetch", "ok")
    assert event_to_payload(StatsEvent(10, 20, 30)) == Stats(10, 20, 30)


def test_error_event_message():
    payload = event_to_payload(ErrorEvent("boom"))
    assert payload == AgentErrorPayload("boom")


@pytest.mark.asyncio
async def test_forward_stream_ends_with_done():
    sent, send = _collector()
    await forward_stream("m1", _events(TextEvent("a"), TextEvent("b"), DoneEvent()), send)
    assert [m.payload for m in sent] == [TextDelta("a"), TextDelta("b"), Done()]
    assert all(m.reply_to_message_id == "m1" for m in sent)


@pytest.mark.asyncio
async def test_forward_stream_stops_at_done():
    sent, send = _collector()
    await forward_stream("m1", _events(DoneEvent(), TextEvent("late")), send)
    assert sent == [AgentMessage("m1", Done())]


@pytest.mark.asyncio
async def test_forward_stream_error_has_no_done():
    sent, send = _collector()
    await forward_stream("m2", _events(TextEvent("x"), ErrorEvent("bad")), send)
    assert [m.payload for m in sent] == [TextDelta("x"), AgentErrorPayload("bad")]


@pytest.mark.asyncio
async def test_forward_stream_exhausted_stream_sends_done():
    sent, send = _collector()
    await forward_stream("m3", _events(TextEvent("only")), send)
    assert sent[-1].payload == Done()
    assert len(sent) == 2


@pytest.mark.asyncio
async def test_forward_stream_timeout():
    sent, send = _collector()
    await forward_stream("m4", _events(TextEvent("slow"), delay=1.0), send, timeout=0.05)
    assert [m.payload for m in sent] == [TextDelta(TIMEOUT_NOTICE), Done()]


@pytest.mark.asyncio
async def test_forward_stream_stops_when_send_fails():
    calls = []

    async def send(message):
        calls.append(message)
        raise ConnectionError("gone")

    await forward_stream("m5", _events(TextEvent("a"), TextEvent("b"), DoneEvent()), send)
    assert len(calls) == 1
    assert calls[0].payload == TextDelta("a")


def test_next_backoff_doubles_and_caps():
    assert next_backoff(1) == 2
    assert next_backoff(40) == 60
    assert next_backoff(60) == 60