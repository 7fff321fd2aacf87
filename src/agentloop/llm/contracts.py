"""
LLM Contracts — the event vocabulary shared by invokers, the normalizer,
the dispatcher and the processor.

Raw model output and canonical output use the same StreamEvent type.
A raw stream may carry inline <think> markers inside text-delta events;
a canonical stream (after agentloop.stream.normalizer) never does, and
frames every text run with text-start / text-end.

Canonical event types:
- reasoning-start / reasoning-delta(text) / reasoning-end
- text-start / text-delta(text) / text-end
- tool-call(id, name, args) / tool-result(id, name, output)
- step-start / step-end: one internal model step of execute()
- finish(finish_reason, usage)
- error(error)
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    REASONING_START = "reasoning-start"
    REASONING_DELTA = "reasoning-delta"
    REASONING_END = "reasoning-end"
    TEXT_START = "text-start"
    TEXT_DELTA = "text-delta"
    TEXT_END = "text-end"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"
    STEP_START = "step-start"
    STEP_END = "step-end"
    FINISH = "finish"
    ERROR = "error"


class FinishReason:
    """Canonical finish reasons. Anything else is passed through verbatim."""

    STOP = "stop"
    END_TURN = "end-turn"
    TOOL_CALLS = "tool-calls"
    LENGTH = "length"
    CONTENT_FILTER = "content-filter"


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool call requested by the model."""

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolOutcome:
    """The executed result of one tool call.

    ``content`` is the JSON encoding of the tool's output.
    """

    tool_call_id: str
    tool_name: str
    content: str
    is_error: bool = False

    @property
    def output(self) -> Any:
        try:
            return json.loads(self.content)
        except (TypeError, ValueError):
            return self.content


@dataclass(frozen=True)
class StreamEvent:
    """One event of a raw or canonical model stream."""

    type: EventType
    text: str = ""
    tool_call_id: str = ""
    tool_name: str = ""
    args: dict[str, Any] = field(default_factory=dict)
    output: Any = None
    is_error: bool = False
    finish_reason: str = ""
    usage: Usage | None = None
    step: int = 0
    error: str = ""

    @classmethod
    def reasoning_start(cls) -> StreamEvent:
        return cls(type=EventType.REASONING_START)

    @classmethod
    def reasoning_delta(cls, text: str) -> StreamEvent:
        return cls(type=EventType.REASONING_DELTA, text=text)

    @classmethod
    def reasoning_end(cls) -> StreamEvent:
        return cls(type=EventType.REASONING_END)

    @classmethod
    def text_start(cls) -> StreamEvent:
        return cls(type=EventType.TEXT_START)

    @classmethod
    def text_delta(cls, text: str) -> StreamEvent:
        return cls(type=EventType.TEXT_DELTA, text=text)

    @classmethod
    def text_end(cls) -> StreamEvent:
        return cls(type=EventType.TEXT_END)

    @classmethod
    def tool_call(
        cls, tool_call_id: str, tool_name: str, args: dict[str, Any] | None = None
    ) -> StreamEvent:
        return cls(
            type=EventType.TOOL_CALL,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            args=args or {},
        )

    @classmethod
    def tool_result(
        cls, tool_call_id: str, tool_name: str, output: Any, is_error: bool = False
    ) -> StreamEvent:
        return cls(
            type=EventType.TOOL_RESULT,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            output=output,
            is_error=is_error,
        )

    @classmethod
    def step_start(cls, step: int) -> StreamEvent:
        return cls(type=EventType.STEP_START, step=step)

    @classmethod
    def step_end(cls, step: int, finish_reason: str = "") -> StreamEvent:
        return cls(type=EventType.STEP_END, step=step, finish_reason=finish_reason)

    @classmethod
    def finish(cls, finish_reason: str, usage: Usage | None = None) -> StreamEvent:
        return cls(type=EventType.FINISH, finish_reason=finish_reason, usage=usage)

    @classmethod
    def failure(cls, error: str) -> StreamEvent:
        return cls(type=EventType.ERROR, error=error)


@dataclass(frozen=True)
class InvokeOptions:
    """Per-call budgets handed to the model invoker."""

    max_retries: int = 3
    timeout_ms: int | None = None
    abort: asyncio.Event | None = None
