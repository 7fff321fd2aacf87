"""
Merging step results into sessions, and shaping history for tool-less steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from agentloop.llm.contracts import ToolCallRequest, ToolOutcome, Usage
from agentloop.session import ops
from agentloop.session.context import SessionContext
from agentloop.session.models import (
    BlockType,
    ContentBlock,
    Message,
    ReasoningBlock,
    Role,
    Session,
    TextBlock,
    ToolCallBlock,
    ToolResultBlock,
)


@dataclass(frozen=True)
class ProcessorStepResult:
    """Output of one processor call. Merged into the session exactly once.

    ``text`` and ``reasoning`` aggregate the whole call. ``messages`` holds
    the call's history in step order (assistant turn, its tool results,
    next assistant turn ...); when empty, the merge derives it from
    ``message`` and the tool traffic.
    """

    text: str
    reasoning: str
    finish_reason: str
    message: Message
    usage: Usage | None = None
    tool_calls: tuple[ToolCallRequest, ...] = field(default_factory=tuple)
    tool_results: tuple[ToolOutcome, ...] = field(default_factory=tuple)
    messages: tuple[Message, ...] = field(default_factory=tuple)

    @property
    def has_content(self) -> bool:
        return bool(self.text or self.reasoning or self.tool_calls)


def build_assistant_message(text: str, reasoning: str = "") -> Message:
    """[Reasoning, Text] when there is reasoning, plain text otherwise."""
    if reasoning:
        return Message.assistant((ReasoningBlock(reasoning), TextBlock(text)))
    return Message.assistant(text)


def tool_call_messages(
    message: Message,
    tool_calls: Sequence[ToolCallRequest],
    tool_results: Sequence[ToolOutcome],
) -> list[Message]:
    """Assistant message carrying the calls, then one tool message per result."""
    blocks: list[ContentBlock] = [
        b for b in message.blocks if b.type in (BlockType.REASONING, BlockType.TEXT)
    ]
    blocks.extend(ToolCallBlock(id=c.id, name=c.name, args=c.args) for c in tool_calls)
    out = [Message.assistant(tuple(blocks))]
    for r in tool_results:
        out.append(
            Message.tool(
                ToolResultBlock(
                    tool_call_id=r.tool_call_id,
                    tool_name=r.tool_name,
                    output=r.output,
                    is_error=r.is_error,
                )
            )
        )
    return out


def process_result_to_session(
    result: ProcessorStepResult, session: Session | None = None
) -> Session:
    """Append one step result to a session and return the new session.

    Uses the context's current session when none is given. The input
    session is left as it was; making the returned one current is the
    caller's job.
    """
    if session is None:
        session = SessionContext.current()

    if result.messages:
        new_messages = list(result.messages)
    elif result.tool_calls:
        new_messages = tool_call_messages(
            result.message, result.tool_calls, result.tool_results
        )
    else:
        new_messages = [result.message]

    merged = ops.add_messages(session, new_messages)
    if result.usage is not None and result.usage.total_tokens:
        merged = ops.add_tokens(merged, result.usage.total_tokens)
    return merged


def strip_tool_traffic(messages: Sequence[Message]) -> list[Message]:
    """History for tool-less personas.

    Drops tool messages and tool-call blocks; an assistant message left with
    nothing in it is dropped too.
    """
    cleaned: list[Message] = []
    for msg in messages:
        if msg.role == Role.TOOL:
            continue
        if msg.role != Role.ASSISTANT or isinstance(msg.content, str):
            cleaned.append(msg)
            continue
        blocks = tuple(
            b for b in msg.content if b.type in (BlockType.TEXT, BlockType.REASONING)
        )
        if any(b.type == BlockType.TEXT and b.text for b in blocks):
            cleaned.append(Message.assistant(blocks))
    return cleaned
