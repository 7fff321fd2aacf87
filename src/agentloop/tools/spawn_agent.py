"""
Spawn Agent tool — delegate a sub-task to an isolated nested agent run.

The nested run gets a fresh session (subagent-<task>-<millis>-<hex>), its own
persona and a conservative iteration budget, and is told to call
finish_task when done. Only the plain-data summary comes back to the
parent; its intermediate steps stay out of the parent's context.

A crash inside the nested run is reported as a "crashed" result, never
raised into the parent's tool call.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING, Sequence

import agentloop.core.config as config_module
from agentloop.core.metrics import metrics
from agentloop.session.context import SessionContext
from agentloop.session.models import BlockType, Role
from agentloop.tools.base import AgentTool, ToolParam, ToolResult

if TYPE_CHECKING:
    from agentloop.agents.personas import PersonaRegistry
    from agentloop.agents.runner import LoopRunner
    from agentloop.core.config import SubAgentConfig
    from agentloop.session.state import LoopResult

logger = logging.getLogger(__name__)

NO_SUMMARY = "Sub-agent finished without reporting a summary."


def build_instruction(instruction: str, terminal_tool: str) -> str:
    return (
        "[Task delegated by the coordinating agent]\n"
        f"Objective:\n{instruction}\n\n"
        "Requirements:\n"
        "Use the available tools to carry out the objective. Whether you succeed "
        "or are blocked, finish by calling "
        f"`{terminal_tool}` with a detailed summary of your results and progress."
    )


def extract_summary(result: "LoopResult", terminal_tool: str = "finish_task") -> str:
    """Terminal tool's summary arg, else the last assistant text, else NO_SUMMARY."""
    for message in reversed(result.messages):
        if message.role != Role.ASSISTANT:
            continue
        for block in message.blocks:
            if block.type == BlockType.TOOL_CALL and block.name == terminal_tool:
                summary = block.args.get("summary")
                if summary:
                    return str(summary)

    for message in reversed(result.messages):
        if message.role == Role.ASSISTANT:
            text = message.text().strip()
            if text:
                return text

    return NO_SUMMARY


class SpawnAgentTool(AgentTool):
    name = "spawn_agent"
    description = (
        "Delegate a heavy or many-step sub-task (a broad search, a long chain of "
        "reasoning, edits across several modules) to a sub-agent. It runs in a "
        "fully isolated session so its intermediate steps do not pollute this "
        "conversation, and returns with a summary of its work."
    )
    parameters = [
        ToolParam(
            name="task_name",
            type="string",
            description="Short readable name for the sub-task, e.g. explore-frontend",
        ),
        ToolParam(
            name="instruction",
            type="string",
            description=(
                "Specific, complete instructions: background, goal, and what the "
                "sub-agent should report back"
            ),
        ),
    ]

    def __init__(
        self,
        runner: "LoopRunner",
        personas: "PersonaRegistry | None" = None,
        sub_agent_config: "SubAgentConfig | None" = None,
        tool_names: Sequence[str] | None = None,
        terminal_tool: str | None = None,
    ):
        self._runner = runner
        self._personas = personas
        self._config = sub_agent_config
        self._tool_names = tool_names
        self._terminal_tool = terminal_tool

    @property
    def config(self) -> "SubAgentConfig":
        return self._config or config_module.config.sub_agent

    @property
    def terminal_tool(self) -> str:
        return self._terminal_tool or config_module.config.loop.terminal_tool

    def _persona_name(self) -> str:
        cfg = self.config
        if self._personas is None or self._personas.has(cfg.persona):
            return cfg.persona
        logger.info(
            "Sub-agent persona '%s' not found, using '%s'",
            cfg.persona,
            cfg.fallback_persona,
        )
        return cfg.fallback_persona

    async def execute(self, task_name: str, instruction: str) -> ToolResult:
        cfg = self.config
        sub_session_id = (
            f"subagent-{task_name}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"
        )
        parent = SessionContext.try_current()
        logger.info(
            "Spawning sub-agent %s (parent=%s)",
            sub_session_id,
            parent.id if parent else None,
        )
        metrics.inc("subagents.spawned")

        try:
            result = await self._runner.loop(
                sub_session_id,
                build_instruction(instruction, self.terminal_tool),
                persona=self._persona_name(),
                max_iterations=cfg.max_iterations,
                compact_threshold=cfg.compact_threshold,
                tool_names=self._tool_names,
                parent_session_id=parent.id if parent else None,
            )
        except Exception as e:
            logger.error("Sub-agent %s crashed: %s", sub_session_id, e, exc_info=True)
            metrics.inc("subagents.crashed")
            return ToolResult.fail(
                {
                    "status": "crashed",
                    "sub_session_id": sub_session_id,
                    "message": "Sub-agent failed with an internal error.",
                    "error": str(e),
                }
            )

        logger.info(
            "Sub-agent %s returned (success=%s, iterations=%d)",
            sub_session_id,
            result.success,
            result.iterations,
        )
        return ToolResult.success(
            {
                "status": "success" if result.success else "failed",
                "sub_session_id": sub_session_id,
                "iterations_used": result.iterations,
                "summary": extract_summary(result, self.terminal_tool),
            }
        )
