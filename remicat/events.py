"""Events emitted while a bot run streams its output."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class SkillSaved:
    """A skill was written to the skill store."""

    name: str
    path: str


@dataclass(frozen=True)
class SkillDeleted:
    """A skill was removed from the skill store."""

    name: str


@dataclass(frozen=True)
class TodoAdded:
    """A todo item was added."""

    id: int
    content: str


@dataclass(frozen=True)
class TodoCompleted:
    """A todo item was marked as done."""

    id: int


@dataclass(frozen=True)
class TodoUpdated:
    """A todo item's text changed."""

    id: int
    content: str


@dataclass(frozen=True)
class TodoRemoved:
    """A todo item was deleted."""

    id: int


SkillChange = Union[SkillSaved, SkillDeleted]
TodoChange = Union[TodoAdded, TodoCompleted, TodoUpdated, TodoRemoved]


@dataclass(frozen=True)
class TextEvent:
    """Streaming text delta from the assistant."""

    text: str


@dataclass(frozen=True)
class ThinkingEvent:
    """Model reasoning content."""

    content: str


@dataclass(frozen=True)
class ToolCallEvent:
    """A tool is about to be called with JSON arguments."""

    name: str
    args: Any = None


@dataclass(frozen=True)
class ToolCallResultEvent:
    """A tool returned its result."""

    name: str
    result: str


@dataclass(frozen=True)
class StatsEvent:
    """Token usage and elapsed time for a completed run."""

    prompt_tokens: int
    completion_tokens: int
    elapsed_ms: int


@dataclass(frozen=True)
class StateUpdateEvent:
    """User state snapshot taken after a tool round."""

    user_state: Any = None


@dataclass(frozen=True)
class HistoryEvent:
    """Full message history and user state captured at run completion."""

    messages: list = field(default_factory=list)
    user_state: Any = None


@dataclass(frozen=True)
class SkillEvent:
    """A skill tool mutated the skill store."""

    change: SkillChange


@dataclass(frozen=True)
class TodoEvent:
    """A todo tool mutated the todo list."""

    change: TodoChange


@dataclass(frozen=True)
class DoneEvent:
    """The run completed normally."""


@dataclass(frozen=True)
class ErrorEvent:
    """The run was aborted by an error."""

    error: BaseException

    def __str__(self) -> str:
        return str(self.error)


CatEvent = Union[
    TextEvent,
    HistoryEvent,
    SkillEvent,
    TodoEvent,
    DoneEvent,
    ErrorEvent,
    ThinkingEvent,
    ToolCallEvent,
    ToolCallResultEvent,
    StatsEvent,
    StateUpdateEvent,
]