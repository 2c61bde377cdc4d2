"""Agent reply messages and forwarding of bot events to the daemon."""

from __future__ import annotations

import asyncio
import dataclasses
import json
from dataclasses import dataclass
from typing import Any, AsyncIterable, Awaitable, Callable, Union

from remicat.events import (
    DoneEvent,
    ErrorEvent,
    StateUpdateEvent,
    StatsEvent,
    TextEvent,
    ThinkingEvent,
    ToolCallEvent,
    ToolCallResultEvent,
)

REPLY_TIMEOUT = 300.0
MAX_BACKOFF = 60.0
TIMEOUT_NOTICE = "\n\n⚠️ *[回复超时，已自动中断]*"


@dataclass(frozen=True)
class TextDelta:
    """A chunk of reply text."""

    text: str


@dataclass(frozen=True)
class Thinking:
    """Model reasoning content."""

    content: str


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation with JSON-encoded arguments."""

    name: str
    args_json: str


@dataclass(frozen=True)
class ToolResult:
    """The output of a tool invocation."""

    name: str
    result: str


@dataclass(frozen=True)
class Stats:
    """Token usage and elapsed time of a run."""

    prompt_tokens: int
    completion_tokens: int
    elapsed_ms: int


@dataclass(frozen=True)
class TodoState:
    """Rendered todo card."""

    markdown: str


@dataclass(frozen=True)
class AgentErrorPayload:
    """A run aborted with an error."""

    message: str


@dataclass(frozen=True)
class Done:
    """The reply is finished."""


Payload = Union[TextDelta, Thinking, ToolCall, ToolResult, Stats, TodoState, AgentErrorPayload, Done]


@dataclass(frozen=True)
class AgentMessage:
    """A payload addressed to the IM message it answers."""

    reply_to_message_id: str
    payload: Payload


def _values(event: Any) -> tuple[Any, ...]:
    return tuple(getattr(event, f.name) for f in dataclasses.fields(event))


def _todo_markdown(user_state: Any) -> str:
    return user_state if isinstance(user_state, str) else ""


def event_to_payload(event: Any) -> Payload | None:
    """The outgoing payload for a bot event, or None for events that are not forwarded."""
    if isinstance(event, TextEvent):
        return TextDelta(_values(event)[0])
    if isinstance(event, ThinkingEvent):
        return Thinking(_values(event)[0])
    if isinstance(event, ToolCallEvent):
        name, args = _values(event)[:2]
        try:
            args_json = json.dumps(args, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            args_json = ""
        return ToolCall(name, args_json)
    if isinstance(event, ToolCallResultEvent):
        name, result = _values(event)[:2]
        return ToolResult(name, result)
    if isinstance(event, StatsEvent):
        prompt, completion, elapsed = _values(event)[:3]
        return Stats(prompt, completion, elapsed)
    if isinstance(event, StateUpdateEvent):
        return TodoState(_todo_markdown(_values(event)[0]))
    if isinstance(event, ErrorEvent):
        return AgentErrorPayload(str(_values(event)[0]))
    if isinstance(event, DoneEvent):
        return Done()
    return None


async def _try_send(send: Callable[[AgentMessage], Awaitable[Any]], message: AgentMessage) -> bool:
    try:
        await send(message)
    except Exception:
        return False
    return True


async def forward_stream(
    reply_to: str,
    events: AsyncIterable[Any],
    send: Callable[[AgentMessage], Awaitable[Any]],
    timeout: float = REPLY_TIMEOUT,
) -> None:
    """Forward bot events as agent messages, ending with Done unless an error or disconnect occurs."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    iterator = events.__aiter__()
    timed_out = False

    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            timed_out = True
            break
        try:
            event = await asyncio.wait_for(iterator.__anext__(), remaining)
        except StopAsyncIteration:
            break
        except asyncio.TimeoutError:
            timed_out = True
            break

        payload = event_to_payload(event)
        if isinstance(payload, Done):
            break
        if isinstance(payload, AgentErrorPayload):
            await _try_send(send, AgentMessage(reply_to, payload))
            return
        if payload is not None and not await _try_send(send, AgentMessage(reply_to, payload)):
            return

    if timed_out:
        await _try_send(send, AgentMessage(reply_to, TextDelta(TIMEOUT_NOTICE)))
    await _try_send(send, AgentMessage(reply_to, Done()))


def next_backoff(current: float) -> float:
    """Double a reconnect delay, capped at one minute."""
    return min(current * 2, MAX_BACKOFF)