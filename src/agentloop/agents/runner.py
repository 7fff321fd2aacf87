"""
LoopRunner — what a tool needs to start a nested agent run.

The agent loop implements this; tools that delegate (spawn_agent) depend
on it by injection, so the tool layer never imports the loop.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Sequence

from agentloop.session.state import LoopResult


class LoopRunner(ABC):
    @abstractmethod
    async def loop(
        self,
        session_id: str,
        message: str,
        *,
        persona: str = "agent",
        max_iterations: int | None = None,
        compact_threshold: int | None = None,
        tool_names: Sequence[str] | None = None,
        abort: asyncio.Event | None = None,
        parent_session_id: str | None = None,
    ) -> LoopResult:
        """Run the agent loop for one user message until it stops."""
        ...
