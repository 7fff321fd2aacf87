"""
Session Models — the immutable conversation state.

    Session → Message → ContentBlock

A Message's content is either plain text or an ordered tuple of tagged
content blocks (text, reasoning, tool-call, tool-result). Code that needs
to branch on a block looks at its ``type`` tag.

All models are frozen dataclasses. Use agentloop.session.ops to derive
new sessions; nothing here is mutated in place.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class BlockType(str, Enum):
    TEXT = "text"
    REASONING = "reasoning"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"


@dataclass(frozen=True)
class TextBlock:
    text: str
    type: BlockType = field(default=BlockType.TEXT, init=False)


@dataclass(frozen=True)
class ReasoningBlock:
    text: str
    type: BlockType = field(default=BlockType.REASONING, init=False)


@dataclass(frozen=True)
class ToolCallBlock:
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    type: BlockType = field(default=BlockType.TOOL_CALL, init=False)


@dataclass(frozen=True)
class ToolResultBlock:
    """Result of a tool call. Must follow the ToolCallBlock with the same id."""

    tool_call_id: str
    tool_name: str
    output: Any = None
    is_error: bool = False
    type: BlockType = field(default=BlockType.TOOL_RESULT, init=False)


ContentBlock = Union[TextBlock, ReasoningBlock, ToolCallBlock, ToolResultBlock]


@dataclass(frozen=True)
class Message:
    """One conversation turn. ``content`` is a str or a tuple of blocks."""

    role: Role
    content: str | tuple[ContentBlock, ...] = ""

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(cls, content: str | tuple[ContentBlock, ...]) -> Message:
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def tool(cls, result: ToolResultBlock) -> Message:
        return cls(role=Role.TOOL, content=(result,))

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        """Content as blocks. Plain text becomes a single TextBlock."""
        if isinstance(self.content, str):
            return (TextBlock(self.content),) if self.content else ()
        return self.content

    def text(self) -> str:
        """Concatenated text blocks (reasoning excluded)."""
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if b.type == BlockType.TEXT)

    def tool_calls(self) -> list[ToolCallBlock]:
        return [b for b in self.blocks if b.type == BlockType.TOOL_CALL]

    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.blocks if b.type == BlockType.TOOL_RESULT]

    def has_tool_calls(self) -> bool:
        return any(b.type == BlockType.TOOL_CALL for b in self.blocks)


@dataclass(frozen=True)
class SessionMetadata:
    total_tokens: int = 0
    total_iterations: int = 0
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    last_compaction_at: float | None = None


@dataclass(frozen=True)
class Session:
    """
    A conversation session — owned by one loop invocation at a time.

    Sub-agent sessions carry parent_session_id pointing to the session
    whose tool call spawned them.
    """

    id: str
    agent_name: str
    messages: tuple[Message, ...] = ()
    metadata: SessionMetadata = field(default_factory=SessionMetadata)
    parent_session_id: str | None = None

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None
