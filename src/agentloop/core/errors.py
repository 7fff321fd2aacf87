"""
agentloop errors — one hierarchy for everything the loop can raise.

    AgentLoopError
    ├── ConfigurationError   unknown persona / tool, locked registry
    ├── ModelCallError       model collaborator failed or streamed an error
    ├── ToolExecutionError   a tool raised; converted to an error result
    ├── CompactionError      compaction broke its contract (fatal)
    └── ContextError         SessionContext used outside run()
"""

from __future__ import annotations


class AgentLoopError(Exception):
    """Base class for all agentloop errors."""


class ConfigurationError(AgentLoopError):
    """Setup-time misconfiguration. Never retried."""


class ModelCallError(AgentLoopError):
    """The model invocation failed after the collaborator's own retries."""

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class ToolExecutionError(AgentLoopError):
    """A tool failed. Caught per call and turned into an error result."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class CompactionError(AgentLoopError):
    """Context compaction failed. The loop transitions to FAILED."""


class ContextError(AgentLoopError):
    """No session is active in the current context."""
