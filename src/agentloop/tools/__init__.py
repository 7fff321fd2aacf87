"""agentloop tools — base class, registry, orchestrator and built-ins."""

from agentloop.tools.base import AgentTool, ToolParam, ToolResult
from agentloop.tools.registry import ToolRegistry

__all__ = ["AgentTool", "ToolParam", "ToolResult", "ToolRegistry"]
