"""
Tool Orchestrator — runs the model's tool calls against the registry.

Bridge between the processor and the registry:
1. The model emits a tool call
2. The orchestrator looks the tool up (restricted to the step's tool set)
3. The tool runs through safe_execute, so bad arguments and failures
   become error results
4. The output is JSON-encoded into a ToolOutcome carrying the call id
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Collection

from agentloop.core.metrics import metrics
from agentloop.llm.contracts import ToolCallRequest, ToolOutcome

if TYPE_CHECKING:
    from agentloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def encode_output(output: object) -> str:
    return json.dumps(output, default=str, ensure_ascii=False)


class ToolOrchestrator:
    """Executes tool calls. Never raises for a failing or unknown tool."""

    def __init__(self, tool_registry: "ToolRegistry"):
        self.tool_registry = tool_registry

    async def execute(
        self,
        call: ToolCallRequest,
        allowed: Collection[str] | None = None,
    ) -> ToolOutcome:
        """Run one tool call.

        Args:
            call: The model's request (id, name, args)
            allowed: Tool names visible to this step; None allows any registered tool
        """
        tool = self.tool_registry.get(call.name)
        if tool is None or (allowed is not None and call.name not in allowed):
            logger.warning("Model called unknown tool '%s'", call.name)
            metrics.inc("tools.errors", labels={"tool": call.name})
            return ToolOutcome(
                tool_call_id=call.id,
                tool_name=call.name,
                content=encode_output(f"Unknown tool: {call.name}"),
                is_error=True,
            )

        logger.info("Executing tool: %s (call=%s)", call.name, call.id)
        started = time.monotonic()
        result = await tool.safe_execute(call.args)
        metrics.inc("tools.calls", labels={"tool": call.name})
        metrics.observe(
            "tools.duration_ms",
            (time.monotonic() - started) * 1000,
            labels={"tool": call.name},
        )
        if result.error:
            metrics.inc("tools.errors", labels={"tool": call.name})

        return ToolOutcome(
            tool_call_id=call.id,
            tool_name=call.name,
            content=encode_output(result.output),
            is_error=result.error,
        )
