"""
Session Ops — pure transformations over Session values.

Every function takes a Session and returns a new one; the input is
never touched. ``add_messages(s, [])`` is the one case that hands back
the same object.
"""

from __future__ import annotations

import json
import time
from dataclasses import replace
from typing import Any, Iterable

from agentloop.session.models import (
    BlockType,
    ContentBlock,
    Message,
    ReasoningBlock,
    Role,
    Session,
    SessionMetadata,
    TextBlock,
    ToolCallBlock,
    ToolResultBlock,
)


def _touch(metadata: SessionMetadata, **changes: Any) -> SessionMetadata:
    return replace(metadata, updated_at=time.time(), **changes)


def create(
    session_id: str, agent_name: str, parent_session_id: str | None = None
) -> Session:
    """Empty session with zeroed metadata."""
    now = time.time()
    return Session(
        id=session_id,
        agent_name=agent_name,
        messages=(),
        metadata=SessionMetadata(created_at=now, updated_at=now),
        parent_session_id=parent_session_id,
    )


def add_message(session: Session, message: Message) -> Session:
    return replace(
        session,
        messages=session.messages + (message,),
        metadata=_touch(session.metadata),
    )


def add_messages(session: Session, messages: Iterable[Message]) -> Session:
    new = tuple(messages)
    if not new:
        return session
    return replace(
        session,
        messages=session.messages + new,
        metadata=_touch(session.metadata),
    )


def add_tokens(session: Session, n: int) -> Session:
    return replace(
        session,
        metadata=_touch(
            session.metadata, total_tokens=session.metadata.total_tokens + n
        ),
    )


def increment_iterations(session: Session, n: int = 1) -> Session:
    return replace(
        session,
        metadata=_touch(
            session.metadata,
            total_iterations=session.metadata.total_iterations + n,
        ),
    )


def update_metadata(session: Session, **changes: Any) -> Session:
    return replace(session, metadata=_touch(session.metadata, **changes))


def set_parent(session: Session, parent_session_id: str | None) -> Session:
    return replace(
        session,
        parent_session_id=parent_session_id,
        metadata=_touch(session.metadata),
    )


def replace_messages(session: Session, messages: Iterable[Message]) -> Session:
    return replace(
        session, messages=tuple(messages), metadata=_touch(session.metadata)
    )


def get_recent_messages(session: Session, n: int) -> tuple[Message, ...]:
    if n <= 0:
        return ()
    return session.messages[-n:]


def compress_messages(session: Session, keep_count: int) -> Session:
    """Keep at most ``keep_count`` most recent messages.

    Tool results whose call fell outside the kept window are dropped, and a
    tool message left with no blocks is dropped entirely, so the result
    never holds an orphaned tool result.
    """
    window = get_recent_messages(session, keep_count)

    kept_call_ids = {
        block.id
        for msg in window
        for block in msg.blocks
        if block.type == BlockType.TOOL_CALL
    }

    kept: list[Message] = []
    for msg in window:
        if isinstance(msg.content, str):
            kept.append(msg)
            continue
        blocks = tuple(
            b
            for b in msg.content
            if b.type != BlockType.TOOL_RESULT or b.tool_call_id in kept_call_ids
        )
        if len(blocks) == len(msg.content):
            kept.append(msg)
        elif blocks:
            kept.append(replace(msg, content=blocks))

    now = time.time()
    return replace(
        session,
        messages=tuple(kept),
        metadata=replace(session.metadata, updated_at=now, last_compaction_at=now),
    )


# ─── Serialization ────────────────────────────────────────────


def block_to_dict(block: ContentBlock) -> dict[str, Any]:
    if block.type == BlockType.TEXT or block.type == BlockType.REASONING:
        return {"type": block.type.value, "text": block.text}
    if block.type == BlockType.TOOL_CALL:
        return {
            "type": block.type.value,
            "id": block.id,
            "name": block.name,
            "args": block.args,
        }
    return {
        "type": block.type.value,
        "tool_call_id": block.tool_call_id,
        "tool_name": block.tool_name,
        "output": block.output,
        "is_error": block.is_error,
    }


def block_from_dict(data: dict[str, Any]) -> ContentBlock:
    kind = BlockType(data["type"])
    if kind == BlockType.TEXT:
        return TextBlock(data["text"])
    if kind == BlockType.REASONING:
        return ReasoningBlock(data["text"])
    if kind == BlockType.TOOL_CALL:
        return ToolCallBlock(
            id=data["id"], name=data["name"], args=data.get("args") or {}
        )
    return ToolResultBlock(
        tool_call_id=data["tool_call_id"],
        tool_name=data["tool_name"],
        output=data.get("output"),
        is_error=bool(data.get("is_error", False)),
    )


def message_to_dict(message: Message) -> dict[str, Any]:
    if isinstance(message.content, str):
        content: Any = message.content
    else:
        content = [block_to_dict(b) for b in message.content]
    return {"role": message.role.value, "content": content}


def message_from_dict(data: dict[str, Any]) -> Message:
    content = data.get("content", "")
    if not isinstance(content, str):
        content = tuple(block_from_dict(b) for b in content)
    return Message(role=Role(data["role"]), content=content)


def to_dict(session: Session) -> dict[str, Any]:
    meta = session.metadata
    return {
        "id": session.id,
        "agent_name": session.agent_name,
        "parent_session_id": session.parent_session_id,
        "messages": [message_to_dict(m) for m in session.messages],
        "metadata": {
            "total_tokens": meta.total_tokens,
            "total_iterations": meta.total_iterations,
            "created_at": meta.created_at,
            "updated_at": meta.updated_at,
            "last_compaction_at": meta.last_compaction_at,
        },
    }


def from_dict(data: dict[str, Any]) -> Session:
    meta = data.get("metadata") or {}
    return Session(
        id=data["id"],
        agent_name=data["agent_name"],
        parent_session_id=data.get("parent_session_id"),
        messages=tuple(message_from_dict(m) for m in data.get("messages", [])),
        metadata=SessionMetadata(
            total_tokens=int(meta.get("total_tokens", 0)),
            total_iterations=int(meta.get("total_iterations", 0)),
            created_at=float(meta.get("created_at", 0.0)),
            updated_at=float(meta.get("updated_at", 0.0)),
            last_compaction_at=meta.get("last_compaction_at"),
        ),
    )


def to_json(session: Session) -> str:
    return json.dumps(to_dict(session), default=str)


def from_json(raw: str) -> Session:
    return from_dict(json.loads(raw))
