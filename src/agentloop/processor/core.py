"""
Processor — the four step functions the agent loop calls.

- plan(messages):    first iteration, planner persona, no tools
- reason(messages):  later iterations, reasoner persona, no tools
- execute(messages, tools): acting persona, the inner model ↔ tool loop
- compress(messages, threshold): pass-through placeholder

Each step routes the model's raw stream through the normalizer and the
dispatcher and returns one ProcessorStepResult. The processor keeps no
state between calls.

execute() runs up to ``max_steps`` model calls. After each one the
requested tools are executed and their results fed back as history for
the next call. It stops when the model finishes without asking for
tools, when the step cap is hit, or as soon as the terminal tool
(finish_task) has been called, in which case the reported finish reason
is "stop". The result lists every step's assistant turn and tool results
in the order they happened.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Sequence

import agentloop.core.config as config_module
from agentloop.agents.personas import Persona, PersonaRegistry
from agentloop.core.errors import AgentLoopError, ModelCallError
from agentloop.core.metrics import metrics
from agentloop.llm.contracts import (
    EventType,
    FinishReason,
    InvokeOptions,
    StreamEvent,
    ToolCallRequest,
    ToolOutcome,
    Usage,
)
from agentloop.llm.invoker import ModelInvoker
from agentloop.processor.merge import (
    ProcessorStepResult,
    build_assistant_message,
    strip_tool_traffic,
    tool_call_messages,
)
from agentloop.session.models import Message
from agentloop.stream.dispatcher import StreamHandlers, dispatch, logging_handlers
from agentloop.stream.normalizer import normalize
from agentloop.tools.base import AgentTool
from agentloop.tools.orchestrator import ToolOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class _ExecuteTrace:
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    tool_results: list[ToolOutcome] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    steps: int = 0


class Processor:
    """Stateless step functions over a message history."""

    def __init__(
        self,
        invoker: ModelInvoker,
        orchestrator: ToolOrchestrator,
        personas: PersonaRegistry | None = None,
        *,
        terminal_tool: str | None = None,
        think_open: str | None = None,
        think_close: str | None = None,
    ):
        loop_cfg = config_module.config.loop
        self._invoker = invoker
        self._orchestrator = orchestrator
        self._personas = personas or PersonaRegistry()
        self.terminal_tool = terminal_tool or loop_cfg.terminal_tool
        self._think_open = think_open or loop_cfg.think_open
        self._think_close = think_close or loop_cfg.think_close

    @property
    def personas(self) -> PersonaRegistry:
        return self._personas

    # ─── Tool-less steps ──────────────────────────────────────────

    async def plan(
        self,
        messages: Sequence[Message],
        handlers: StreamHandlers | None = None,
        options: InvokeOptions | None = None,
    ) -> ProcessorStepResult:
        return await self._single_step("planner", messages, handlers, options)

    async def reason(
        self,
        messages: Sequence[Message],
        handlers: StreamHandlers | None = None,
        options: InvokeOptions | None = None,
    ) -> ProcessorStepResult:
        return await self._single_step("reasoner", messages, handlers, options)

    async def _single_step(
        self,
        persona_name: str,
        messages: Sequence[Message],
        handlers: StreamHandlers | None,
        options: InvokeOptions | None,
    ) -> ProcessorStepResult:
        persona = self._personas.get(persona_name)
        history = strip_tool_traffic(messages)
        started = time.monotonic()

        raw = self._invoker.invoke(persona, history, None, options or InvokeOptions())
        summary = await dispatch(
            normalize(self._guard(persona, raw), self._think_open, self._think_close),
            handlers or logging_handlers(persona_name),
        )
        self._observe(persona, started)

        return ProcessorStepResult(
            text=summary.text,
            reasoning=summary.reasoning,
            finish_reason=summary.finish_reason,
            usage=summary.usage,
            message=build_assistant_message(summary.text, summary.reasoning),
        )

    # ─── Execute ──────────────────────────────────────────────────

    async def execute(
        self,
        messages: Sequence[Message],
        tools: Sequence[AgentTool] = (),
        handlers: StreamHandlers | None = None,
        *,
        persona: str = "agent",
        max_retries: int | None = None,
        timeout_ms: int | None = None,
        abort: asyncio.Event | None = None,
        max_steps: int | None = None,
    ) -> ProcessorStepResult:
        """Run the inner model ↔ tool loop and return its aggregate."""
        loop_cfg = config_module.config.loop
        agent = self._personas.get(persona)
        options = InvokeOptions(
            max_retries=_first(max_retries, agent.max_retries, loop_cfg.max_retries),
            timeout_ms=_first(timeout_ms, agent.timeout_ms, loop_cfg.timeout_ms),
            abort=abort,
        )
        step_cap = _first(max_steps, agent.max_steps, loop_cfg.execute_max_steps)
        trace = _ExecuteTrace()
        started = time.monotonic()

        summary = await dispatch(
            self._execute_stream(agent, list(messages), list(tools), options, step_cap, trace),
            handlers or logging_handlers("execute"),
        )
        self._observe(agent, started)
        logger.debug(
            "execute finished after %d step(s): %d tool call(s), reason=%s",
            trace.steps,
            len(trace.tool_calls),
            summary.finish_reason or "-",
        )

        return ProcessorStepResult(
            text=summary.text,
            reasoning=summary.reasoning,
            finish_reason=summary.finish_reason,
            usage=summary.usage,
            message=build_assistant_message(summary.text, summary.reasoning),
            tool_calls=tuple(trace.tool_calls),
            tool_results=tuple(trace.tool_results),
            messages=tuple(trace.messages),
        )

    async def _execute_stream(
        self,
        persona: Persona,
        history: list[Message],
        tools: list[AgentTool],
        options: InvokeOptions,
        max_steps: int,
        trace: _ExecuteTrace,
    ) -> AsyncIterator[StreamEvent]:
        allowed = {t.name for t in tools}
        usage: Usage | None = None
        finish_reason = ""

        while True:
            trace.steps += 1
            step = trace.steps
            yield StreamEvent.step_start(step)

            step_calls: list[ToolCallRequest] = []
            step_text: list[str] = []
            step_reasoning: list[str] = []
            step_finish = ""

            raw = self._invoker.invoke(persona, history, tools or None, options)
            async for event in normalize(
                self._guard(persona, raw), self._think_open, self._think_close
            ):
                if event.type == EventType.FINISH:
                    # One aggregated finish is emitted after the last step
                    step_finish = event.finish_reason
                    if event.usage is not None:
                        usage = event.usage if usage is None else usage + event.usage
                    continue
                if event.type == EventType.TOOL_CALL:
                    step_calls.append(
                        ToolCallRequest(event.tool_call_id, event.tool_name, event.args)
                    )
                elif event.type == EventType.TEXT_DELTA:
                    step_text.append(event.text)
                elif event.type == EventType.REASONING_DELTA:
                    step_reasoning.append(event.text)
                yield event

            finish_reason = step_finish
            outcomes: list[ToolOutcome] = []
            for call in step_calls:
                outcome = await self._orchestrator.execute(call, allowed)
                outcomes.append(outcome)
                yield StreamEvent.tool_result(
                    outcome.tool_call_id,
                    outcome.tool_name,
                    outcome.output,
                    outcome.is_error,
                )
            trace.tool_calls.extend(step_calls)
            trace.tool_results.extend(outcomes)
            step_messages = _step_messages(
                "".join(step_text), "".join(step_reasoning), step_calls, outcomes
            )
            trace.messages.extend(step_messages)
            yield StreamEvent.step_end(step, step_finish)

            if any(c.name == self.terminal_tool for c in step_calls):
                logger.debug("Terminal tool '%s' called, ending execute", self.terminal_tool)
                finish_reason = FinishReason.STOP
                break
            if not step_calls or step_finish != FinishReason.TOOL_CALLS:
                break
            if step >= max_steps:
                logger.info("execute hit its step cap (%d)", max_steps)
                break

            history = history + step_messages

        yield StreamEvent.finish(finish_reason, usage)

    # ─── Compress ─────────────────────────────────────────────────

    def compress(self, messages: Sequence[Message], threshold: int) -> list[Message]:
        """Placeholder: returns the messages unchanged (never more of them)."""
        return list(messages)

    # ─── Internal ─────────────────────────────────────────────────

    async def _guard(
        self, persona: Persona, raw: AsyncIterator[StreamEvent]
    ) -> AsyncIterator[StreamEvent]:
        """Surface invoker failures as ModelCallError."""
        try:
            async for event in raw:
                yield event
        except AgentLoopError:
            raise
        except Exception as e:
            metrics.inc("processor.model_errors", labels={"persona": persona.name})
            raise ModelCallError(
                f"Model call for persona '{persona.name}' failed: {e}", cause=e
            ) from e

    def _observe(self, persona: Persona, started: float) -> None:
        metrics.observe(
            "processor.step_ms",
            (time.monotonic() - started) * 1000,
            labels={"persona": persona.name},
        )


def _step_messages(
    text: str,
    reasoning: str,
    calls: list[ToolCallRequest],
    outcomes: list[ToolOutcome],
) -> list[Message]:
    """One internal step as history: its assistant turn, then its tool results."""
    message = build_assistant_message(text, reasoning)
    if calls:
        return tool_call_messages(message, calls, outcomes)
    if text or reasoning:
        return [message]
    return []


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None
