"""
Control tools — finish_task ends a run, ask_user asks the human.

finish_task is the terminal tool: once the model calls it, execute()
starts no further internal step and reports finish reason "stop".
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from agentloop.tools.base import AgentTool, ToolParam, ToolResult

logger = logging.getLogger(__name__)

AskUserHandler = Callable[[str], Awaitable[str]]


class FinishTaskTool(AgentTool):
    name = "finish_task"
    description = (
        "Call this when the whole task is complete. Provide a summary of what "
        "was done and the final result. No further steps run after this call."
    )
    parameters = [
        ToolParam(
            name="summary",
            type="string",
            description="Summary of the completed work and its outcome",
        ),
    ]

    async def execute(self, summary: str) -> ToolResult:
        return ToolResult.success(
            {
                "status": "finished",
                "summary": summary,
                "message": "Task marked as finished.",
            }
        )


class AskUserTool(AgentTool):
    name = "ask_user"
    description = (
        "Ask the user a clarifying question when the task cannot continue "
        "without their input."
    )
    parameters = [
        ToolParam(
            name="question",
            type="string",
            description="The question to ask the user",
        ),
    ]

    def __init__(self, handler: AskUserHandler | None = None):
        self._handler = handler

    async def execute(self, question: str) -> ToolResult:
        if self._handler is None:
            return ToolResult.success(
                {
                    "status": "waiting_for_user",
                    "question": question,
                    "message": "No interactive user is attached; wait for their reply.",
                }
            )
        try:
            answer = await self._handler(question)
        except Exception as e:
            logger.warning("ask_user handler failed: %s", e)
            return ToolResult.fail(
                {"status": "error", "question": question, "message": str(e)}
            )
        return ToolResult.success(
            {"status": "answered", "question": question, "answer": answer}
        )
