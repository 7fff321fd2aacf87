"""
Session management — immutable conversation state and the agent loop.

Key components:
- Session / Message / content blocks: frozen data model (models)
- ops: pure Session → Session transformations
- SessionContext: task-scoped "current session"
- SessionStore: persistence (in-memory, SQLite)
- decide: the loop's decision policy
- AgentLoop: the outer state machine (agentloop.session.loop)
"""

from agentloop.session.context import SessionContext
from agentloop.session.models import (
    BlockType,
    Message,
    ReasoningBlock,
    Role,
    Session,
    SessionMetadata,
    TextBlock,
    ToolCallBlock,
    ToolResultBlock,
)
from agentloop.session.state import (
    AgentLoopContext,
    AgentLoopState,
    LoopDecision,
    LoopResult,
)
from agentloop.session.store import (
    InMemorySessionStore,
    SessionStore,
    SQLiteSessionStore,
)

__all__ = [
    "Session",
    "SessionMetadata",
    "Message",
    "Role",
    "BlockType",
    "TextBlock",
    "ReasoningBlock",
    "ToolCallBlock",
    "ToolResultBlock",
    "SessionContext",
    "SessionStore",
    "InMemorySessionStore",
    "SQLiteSessionStore",
    "AgentLoopContext",
    "AgentLoopState",
    "LoopDecision",
    "LoopResult",
]
