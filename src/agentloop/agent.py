"""
Agent — wires the loop together.

One place that owns the tool registry, the personas, the processor and
the session store, and hands them to the AgentLoop. Built-in tools
(finish_task, ask_user, spawn_agent) are registered here; spawn_agent
gets the loop itself as its LoopRunner. The registry is locked once
composition is done.

Usage:
    agent = create_agent(tools=[MyTool()])
    await agent.start()
    result = await agent.run("session-1", "What's in the README?")
    await agent.stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from agentloop.agents.personas import PersonaRegistry
from agentloop.llm.invoker import ModelInvoker
from agentloop.processor.core import Processor
from agentloop.session.loop import AgentLoop, LoopObserver
from agentloop.session.state import LoopResult
from agentloop.session.store import InMemorySessionStore, SessionStore
from agentloop.tools.base import AgentTool
from agentloop.tools.control import AskUserHandler, AskUserTool, FinishTaskTool
from agentloop.tools.orchestrator import ToolOrchestrator
from agentloop.tools.registry import ToolRegistry
from agentloop.tools.spawn_agent import SpawnAgentTool

logger = logging.getLogger(__name__)


class Agent:
    """Facade over a composed AgentLoop and its collaborators."""

    def __init__(
        self,
        loop: AgentLoop,
        registry: ToolRegistry,
        processor: Processor,
        store: SessionStore,
    ) -> None:
        self.loop = loop
        self.registry = registry
        self.processor = processor
        self.store = store

    async def start(self) -> None:
        await self.store.start()

    async def stop(self) -> None:
        await self.store.stop()

    async def run(
        self,
        session_id: str,
        message: str,
        *,
        persona: str = "agent",
        observer: LoopObserver | None = None,
        abort: asyncio.Event | None = None,
        **kwargs: Any,
    ) -> LoopResult:
        return await self.loop.loop(
            session_id,
            message,
            persona=persona,
            observer=observer,
            abort=abort,
            **kwargs,
        )


def create_agent(
    invoker: ModelInvoker | None = None,
    *,
    store: SessionStore | None = None,
    tools: Iterable[AgentTool] = (),
    personas: PersonaRegistry | None = None,
    ask_user_handler: AskUserHandler | None = None,
    enable_sub_agents: bool = True,
    lock_registry: bool = True,
) -> Agent:
    """Compose an Agent. Defaults: OpenAI invoker, in-memory store, built-in tools."""
    if invoker is None:
        from agentloop.llm.openai_invoker import OpenAIModelInvoker

        invoker = OpenAIModelInvoker()

    personas = personas or PersonaRegistry()
    store = store or InMemorySessionStore()

    registry = ToolRegistry()
    registry.register(FinishTaskTool())
    registry.register(AskUserTool(ask_user_handler))
    registry.register_batch(tools)

    processor = Processor(invoker, ToolOrchestrator(registry), personas)
    loop = AgentLoop(store, processor, registry)

    if enable_sub_agents:
        registry.register(SpawnAgentTool(loop, personas=personas))

    personas.validate_tools(registry)
    if lock_registry:
        registry.lock()

    logger.info("Agent composed with tools: %s", ", ".join(registry.tool_names()))
    return Agent(loop=loop, registry=registry, processor=processor, store=store)
