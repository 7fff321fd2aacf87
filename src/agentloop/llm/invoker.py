"""
Model invoker — the one boundary to the language model.

Retries and timeouts are the invoker's job; callers only hand over
budgets through InvokeOptions and consume the raw event stream.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, AsyncIterator, Sequence

from agentloop.llm.contracts import InvokeOptions, StreamEvent

if TYPE_CHECKING:
    from agentloop.agents.personas import Persona
    from agentloop.session.models import Message
    from agentloop.tools.base import AgentTool


class ModelInvoker(ABC):
    """Language model invocation interface."""

    @abstractmethod
    def invoke(
        self,
        persona: "Persona",
        messages: Sequence["Message"],
        tools: Sequence["AgentTool"] | None = None,
        options: InvokeOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream raw events for one model call.

        Implementations are usually ``async def`` generators. The stream
        should end with a finish event carrying the finish reason and usage.
        """
        ...
