"""
Personas — named model configurations the processor calls into.

Each persona fixes a system prompt, model overrides, sampling settings
and which tools it may see. Four are built in:

- planner:   whole-task planning on the first iteration, no tools
- reasoner:  next-step reasoning on later iterations, no tools
- agent:     the acting persona, the only one that calls tools
- sub_agent: acting persona for nested runs started by spawn_agent

Usage:
    personas = PersonaRegistry()
    persona = personas.get("agent")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agentloop.core.errors import ConfigurationError

if TYPE_CHECKING:
    from agentloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Persona:
    """Definition of one model persona."""

    name: str
    description: str
    prompt: str
    model: str | None = None  # None = LLMConfig.model
    tools: tuple[str, ...] | None = None  # None = every registered tool
    denied_tools: tuple[str, ...] = ()
    max_output_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_retries: int | None = None
    max_steps: int | None = None
    timeout_ms: int | None = None
    tool_choice: str = "auto"
    extra_body: dict[str, Any] = field(default_factory=dict)


# ─── Built-in Personas ────────────────────────────────────────

PLANNER = Persona(
    name="planner",
    description="Whole-task planning before the first action",
    prompt=(
        "You are the planning stage of an autonomous agent. Read the task and "
        "write a short, numbered plan of the steps needed to complete it. "
        "Do not perform the steps and do not call tools."
    ),
    tools=(),
)

REASONER = Persona(
    name="reasoner",
    description="Observation-driven next-step reasoning",
    prompt=(
        "You are the reasoning stage of an autonomous agent. Look at what has "
        "been done and observed so far and decide the single next step. "
        "Be brief. Do not call tools."
    ),
    tools=(),
)

AGENT = Persona(
    name="agent",
    description="Acting agent with tool access",
    prompt=(
        "You are an autonomous agent. Carry out the current step using the "
        "available tools. When the whole task is complete, call finish_task "
        "with a summary of the outcome."
    ),
)

SUB_AGENT = Persona(
    name="sub_agent",
    description="Acting agent for delegated sub-tasks",
    prompt=(
        "You are a worker agent handling one delegated sub-task. Complete it "
        "efficiently with the available tools, then call finish_task with a "
        "concise summary of what you did and found."
    ),
    denied_tools=("spawn_agent",),
    max_steps=8,
)

BUILTIN_PERSONAS = (PLANNER, REASONER, AGENT, SUB_AGENT)


class PersonaRegistry:
    """Name → Persona map. One instance per composed loop."""

    def __init__(self, personas: tuple[Persona, ...] = BUILTIN_PERSONAS):
        self._personas: dict[str, Persona] = {p.name: p for p in personas}

    def register(self, persona: Persona) -> None:
        if persona.name in self._personas:
            logger.warning("Persona '%s' overwritten", persona.name)
        self._personas[persona.name] = persona

    def get(self, name: str) -> Persona:
        persona = self._personas.get(name)
        if persona is None:
            raise ConfigurationError(
                f"Unknown persona '{name}'. Available: {', '.join(self.names())}"
            )
        return persona

    def has(self, name: str) -> bool:
        return name in self._personas

    def names(self) -> list[str]:
        return list(self._personas.keys())

    def validate_tools(self, registry: "ToolRegistry") -> list[str]:
        """Log and return 'persona:tool' pairs naming unregistered tools."""
        missing = []
        for persona in self._personas.values():
            for tool_name in persona.tools or ():
                if not registry.has(tool_name):
                    missing.append(f"{persona.name}:{tool_name}")
        if missing:
            logger.warning("Personas reference unregistered tools: %s", missing)
        return missing
