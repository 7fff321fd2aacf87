"""
Tool Registry — name → tool, owned by whoever composes the loop.

There is no global registry: build one, register tools, inject it into
the orchestrator and the loop. Lock it once setup is done to catch late
mutation.
"""

from __future__ import annotations

import logging
from typing import Iterable

from agentloop.core.errors import ConfigurationError
from agentloop.tools.base import AgentTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for the tools available to one composed loop."""

    def __init__(self, tools: Iterable[AgentTool] = ()):
        self._tools: dict[str, AgentTool] = {}
        self._locked = False
        for tool in tools:
            self.register(tool)

    # ─── Mutation ─────────────────────────────────────────────────

    def _check_unlocked(self, action: str) -> None:
        if self._locked:
            raise ConfigurationError(f"Tool registry is locked; cannot {action}")

    def register(self, tool: AgentTool) -> None:
        """Register a tool. Overwrites (with a warning) if the name exists."""
        self._check_unlocked(f"register '{tool.name}'")
        if not tool.name:
            raise ConfigurationError(f"Tool must have a name: {tool!r}")
        if tool.name in self._tools:
            logger.warning("Tool '%s' already registered, overwriting", tool.name)
        self._tools[tool.name] = tool
        logger.debug("Registered tool: %s", tool.name)

    def register_batch(self, tools: Iterable[AgentTool]) -> None:
        for tool in tools:
            self.register(tool)

    def unregister(self, name: str) -> bool:
        self._check_unlocked(f"unregister '{name}'")
        removed = self._tools.pop(name, None) is not None
        if removed:
            logger.debug("Unregistered tool: %s", name)
        return removed

    def reset(self) -> None:
        self._check_unlocked("reset")
        self._tools.clear()

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    @property
    def locked(self) -> bool:
        return self._locked

    # ─── Lookup ───────────────────────────────────────────────────

    def get(self, name: str) -> AgentTool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> list[AgentTool]:
        return list(self._tools.values())

    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def get_by_names(self, names: Iterable[str]) -> list[AgentTool]:
        """Tools for the given names, in order. Unknown names are dropped."""
        found = []
        unknown = []
        for name in names:
            tool = self._tools.get(name)
            if tool is None:
                unknown.append(name)
            else:
                found.append(tool)
        if unknown:
            logger.warning("Unknown tools ignored: %s", ", ".join(unknown))
        return found

    def stats(self) -> dict:
        return {
            "total": len(self._tools),
            "names": self.tool_names(),
            "locked": self._locked,
        }

    # ─── Schema export ────────────────────────────────────────────

    def to_openai_tools(self, names: Iterable[str] | None = None) -> list[dict]:
        tools = self.list_tools() if names is None else self.get_by_names(names)
        return [tool.to_openai_schema() for tool in tools]
