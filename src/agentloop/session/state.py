"""
Loop state — the state machine's vocabulary and per-run context.

    INIT → PLANNING → EXECUTING → OBSERVING → PLANNING | COMPACTING | COMPLETED
    COMPACTING → PLANNING
    any state → FAILED
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from agentloop.session.models import Message, Session


class AgentLoopState(str, Enum):
    INIT = "INIT"
    PLANNING = "PLANNING"
    EXECUTING = "EXECUTING"
    OBSERVING = "OBSERVING"
    COMPACTING = "COMPACTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self in (AgentLoopState.COMPLETED, AgentLoopState.FAILED)


class LoopDecision(str, Enum):
    CONTINUE = "continue"
    COMPACT = "compact"
    STOP = "stop"


@dataclass
class AgentLoopContext:
    """Mutable state of one loop() call. Touched only by that call."""

    session: Session
    max_iterations: int
    compact_threshold: int
    state: AgentLoopState = AgentLoopState.INIT
    iteration: int = 0
    needs_compaction: bool = False
    last_finish_reason: str | None = None
    last_tool_call_count: int = 0
    error: BaseException | None = None


@dataclass(frozen=True)
class LoopResult:
    """What loop() returns, success or failure."""

    success: bool
    session: Session
    messages: tuple[Message, ...]
    iterations: int
    error: str | None = None
