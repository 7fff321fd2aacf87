"""
Stream Dispatcher — canonical events in, callbacks out, one summary back.

    summary = await dispatch(events, StreamHandlers(on_text_delta=print))

Every callback is optional and may be a plain function or a coroutine
function. Errors are never swallowed: a raising callback, a failing
source stream, or an ``error`` event all call ``on_error`` first and
then propagate (an ``error`` event surfaces as ModelCallError).
``on_finish`` runs once, after the stream is fully drained.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable

from agentloop.core.errors import ModelCallError
from agentloop.llm.contracts import EventType, StreamEvent, Usage

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]


@dataclass
class StreamHandlers:
    """Per-category callbacks.

    on_*_start()            segment opened
    on_*_delta(text)        one chunk of the segment
    on_*_end(segment_text)  segment closed, with its full text
    on_tool_call(event) / on_tool_result(event) / on_step_start(event) / on_step_end(event)
    on_error(exc)
    on_finish(summary)
    """

    on_reasoning_start: Callback | None = None
    on_reasoning_delta: Callback | None = None
    on_reasoning_end: Callback | None = None
    on_text_start: Callback | None = None
    on_text_delta: Callback | None = None
    on_text_end: Callback | None = None
    on_tool_call: Callback | None = None
    on_tool_result: Callback | None = None
    on_step_start: Callback | None = None
    on_step_end: Callback | None = None
    on_error: Callback | None = None
    on_finish: Callback | None = None


@dataclass
class StreamSummary:
    """Aggregate of one dispatched stream."""

    text: str = ""
    reasoning: str = ""
    finish_reason: str = ""
    usage: Usage | None = None
    tool_calls: list[StreamEvent] = field(default_factory=list)
    tool_results: list[StreamEvent] = field(default_factory=list)


async def _call(callback: Callback | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


async def dispatch(
    events: AsyncIterator[StreamEvent],
    handlers: StreamHandlers | None = None,
) -> StreamSummary:
    """Drain ``events`` through ``handlers`` and return the summary."""
    handlers = handlers or StreamHandlers()
    summary = StreamSummary()
    text_parts: list[str] = []
    reasoning_parts: list[str] = []
    segment: list[str] = []

    try:
        async for event in events:
            kind = event.type
            if kind == EventType.TEXT_START:
                segment = []
                await _call(handlers.on_text_start)
            elif kind == EventType.TEXT_DELTA:
                segment.append(event.text)
                text_parts.append(event.text)
                await _call(handlers.on_text_delta, event.text)
            elif kind == EventType.TEXT_END:
                await _call(handlers.on_text_end, "".join(segment))
                segment = []
            elif kind == EventType.REASONING_START:
                segment = []
                await _call(handlers.on_reasoning_start)
            elif kind == EventType.REASONING_DELTA:
                segment.append(event.text)
                reasoning_parts.append(event.text)
                await _call(handlers.on_reasoning_delta, event.text)
            elif kind == EventType.REASONING_END:
                await _call(handlers.on_reasoning_end, "".join(segment))
                segment = []
            elif kind == EventType.TOOL_CALL:
                summary.tool_calls.append(event)
                await _call(handlers.on_tool_call, event)
            elif kind == EventType.TOOL_RESULT:
                summary.tool_results.append(event)
                await _call(handlers.on_tool_result, event)
            elif kind == EventType.STEP_START:
                await _call(handlers.on_step_start, event)
            elif kind == EventType.STEP_END:
                await _call(handlers.on_step_end, event)
            elif kind == EventType.FINISH:
                summary.finish_reason = event.finish_reason
                if event.usage is not None:
                    summary.usage = event.usage
            elif kind == EventType.ERROR:
                raise ModelCallError(event.error or "Model stream reported an error")

        summary.text = "".join(text_parts)
        summary.reasoning = "".join(reasoning_parts)
        await _call(handlers.on_finish, summary)
    except Exception as exc:
        try:
            await _call(handlers.on_error, exc)
        except Exception:
            logger.exception("on_error handler failed while handling %r", exc)
        raise

    return summary


def logging_handlers(phase: str) -> StreamHandlers:
    """Handlers that report a phase's stream through the logging module."""

    def on_tool_call(event: StreamEvent) -> None:
        logger.debug("[%s] tool call %s(%s)", phase, event.tool_name, event.tool_call_id)

    def on_tool_result(event: StreamEvent) -> None:
        logger.debug(
            "[%s] tool result %s error=%s", phase, event.tool_name, event.is_error
        )

    def on_error(exc: BaseException) -> None:
        logger.warning("[%s] stream error: %s", phase, exc)

    def on_finish(summary: StreamSummary) -> None:
        logger.debug(
            "[%s] finished (reason=%s, text=%d chars, reasoning=%d chars)",
            phase,
            summary.finish_reason or "-",
            len(summary.text),
            len(summary.reasoning),
        )

    return StreamHandlers(
        on_tool_call=on_tool_call,
        on_tool_result=on_tool_result,
        on_error=on_error,
        on_finish=on_finish,
    )
