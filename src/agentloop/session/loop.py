"""
Agent Loop — the outer Plan / Execute / Observe / Compact state machine.

    INIT → PLANNING → EXECUTING → OBSERVING → PLANNING | COMPACTING | COMPLETED
    COMPACTING → PLANNING
    any state → FAILED

INIT        fetch-or-create the session, append the user message, save
PLANNING    stop at the iteration cap; otherwise count the iteration,
            compact if the history is at the threshold, else plan (first
            iteration) or reason (later ones), merge, save
EXECUTING   run the inner model ↔ tool loop, merge, save
OBSERVING   apply the decision policy to the last message
COMPACTING  keep floor(threshold * 0.7) messages, save
COMPLETED / FAILED
            record iterations on the session, save (best effort), return

The processor's inner loop handles model → tool_call → execute → feed back.
This loop handles session state, persistence, compaction and termination.

Usage:
    loop = AgentLoop(store, processor, registry)
    result = await loop.loop("session-1", "Summarize the repo")

    # with cancellation
    abort = asyncio.Event()
    task = asyncio.create_task(loop.loop("session-1", "...", abort=abort))
    abort.set()

One loop() call per session id at a time; callers serialize calls that
share a session id.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from functools import partial
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Sequence

import agentloop.core.config as config_module
from agentloop.agents.runner import LoopRunner
from agentloop.core.errors import CompactionError
from agentloop.core.logging import PhaseTimer
from agentloop.core.metrics import metrics
from agentloop.processor.merge import process_result_to_session
from agentloop.session import ops
from agentloop.session.context import SessionContext
from agentloop.session.decision import decide, needs_compaction
from agentloop.session.models import Message
from agentloop.session.state import (
    AgentLoopContext,
    AgentLoopState,
    LoopDecision,
    LoopResult,
)

if TYPE_CHECKING:
    from agentloop.processor.core import Processor
    from agentloop.session.store import SessionStore
    from agentloop.stream.dispatcher import StreamHandlers
    from agentloop.tools.base import AgentTool
    from agentloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

# Share of the compact threshold kept after compaction
COMPACT_KEEP_RATIO = 0.7


class LoopObserver:
    """Optional hooks into a loop run. Override what you need.

    Hooks are informational: an exception raised by one is logged and
    ignored. Hooks may be sync or async.
    """

    plan_handlers: "StreamHandlers | None" = None
    reason_handlers: "StreamHandlers | None" = None
    execute_handlers: "StreamHandlers | None" = None

    def on_loop_start(self, session_id: str, message: str) -> Any: ...

    def on_state_change(
        self, from_state: AgentLoopState, to_state: AgentLoopState, iteration: int
    ) -> Any: ...

    def on_iteration_start(self, iteration: int, max_iterations: int) -> Any: ...

    def on_iteration_end(self, iteration: int) -> Any: ...

    def on_decision(self, decision: LoopDecision, iteration: int) -> Any: ...

    def on_loop_end(self, result: LoopResult) -> Any: ...

    def on_error(self, error: BaseException, state: AgentLoopState) -> Any: ...


class AgentLoop(LoopRunner):
    """
    The outer agent loop.

    Dependencies are injected: the session store, the processor and the
    tool registry the run's tools are picked from.
    """

    def __init__(
        self,
        session_store: "SessionStore",
        processor: "Processor",
        tool_registry: "ToolRegistry",
    ) -> None:
        self._store = session_store
        self._processor = processor
        self._registry = tool_registry

    async def loop(
        self,
        session_id: str,
        message: str,
        *,
        persona: str = "agent",
        max_iterations: int | None = None,
        compact_threshold: int | None = None,
        tool_names: Sequence[str] | None = None,
        abort: asyncio.Event | None = None,
        parent_session_id: str | None = None,
        observer: LoopObserver | None = None,
    ) -> LoopResult:
        """Run until COMPLETED or FAILED and return the structured result.

        Raises ConfigurationError for an unknown persona; every other
        failure is reported through the result.
        """
        loop_cfg = config_module.config.loop
        persona_def = self._processor.personas.get(persona)
        tools = self._resolve_tools(
            persona_def.tools, persona_def.denied_tools, tool_names
        )
        if max_iterations is None:
            max_iterations = loop_cfg.max_iterations
        if compact_threshold is None:
            compact_threshold = loop_cfg.compact_threshold

        ctx = AgentLoopContext(
            session=ops.create(session_id, persona, parent_session_id),
            max_iterations=max_iterations,
            compact_threshold=compact_threshold,
        )
        run = _Run(
            ctx=ctx,
            message=message,
            persona=persona,
            parent_session_id=parent_session_id,
            tools=tools,
            abort=abort,
            observer=observer,
        )

        logger.info(
            "AgentLoop %s started (persona=%s, max_iterations=%d, tools=%d)",
            session_id,
            persona,
            ctx.max_iterations,
            len(tools),
            extra={"session_id": session_id, "persona": persona},
        )
        metrics.gauge_inc("loop.active")
        await run.notify("on_loop_start", session_id, message)

        handlers: dict[AgentLoopState, Callable[[_Run], Awaitable[AgentLoopState]]] = {
            AgentLoopState.INIT: self._init,
            AgentLoopState.PLANNING: self._planning,
            AgentLoopState.EXECUTING: self._executing,
            AgentLoopState.OBSERVING: self._observing,
            AgentLoopState.COMPACTING: self._compacting,
        }

        try:
            while not ctx.state.terminal:
                state = ctx.state
                try:
                    with run.timer.phase(state.value):
                        next_state = await handlers[state](run)
                except Exception as e:
                    ctx.error = e
                    next_state = AgentLoopState.FAILED
                    logger.error(
                        "AgentLoop %s failed in %s: %s",
                        session_id,
                        state.value,
                        e,
                        exc_info=True,
                        extra={"session_id": session_id, "state": state.value},
                    )
                    await run.notify("on_error", e, state)
                await self._transition(run, next_state)

            result = await self._finalize(run)
        finally:
            metrics.gauge_dec("loop.active")

        await run.notify("on_loop_end", result)
        return result

    # ─── States ───────────────────────────────────────────────────

    async def _init(self, run: "_Run") -> AgentLoopState:
        ctx = run.ctx
        session = await self._store.get_or_create(
            ctx.session.id, run.persona, run.parent_session_id
        )
        if run.parent_session_id and session.parent_session_id is None:
            session = ops.set_parent(session, run.parent_session_id)
        ctx.session = ops.add_message(session, Message.user(run.message))
        await self._store.save(ctx.session)
        return AgentLoopState.PLANNING

    async def _planning(self, run: "_Run") -> AgentLoopState:
        ctx = run.ctx
        if ctx.iteration >= ctx.max_iterations:
            logger.info(
                "AgentLoop %s reached max iterations (%d)",
                ctx.session.id,
                ctx.max_iterations,
            )
            return AgentLoopState.COMPLETED

        ctx.iteration += 1
        metrics.inc("loop.iterations")
        await run.notify("on_iteration_start", ctx.iteration, ctx.max_iterations)

        if needs_compaction(ctx):
            ctx.needs_compaction = True
            return AgentLoopState.COMPACTING

        history = list(ctx.session.messages)
        observer = run.observer
        if ctx.iteration == 1:
            handlers = observer.plan_handlers if observer else None
            step = partial(self._processor.plan, history, handlers)
        else:
            handlers = observer.reason_handlers if observer else None
            step = partial(self._processor.reason, history, handlers)

        result = await SessionContext.run(ctx.session, step)
        # A planner that produced nothing leaves the history alone
        if result.has_content:
            ctx.session = process_result_to_session(result, ctx.session)
            await self._store.save(ctx.session)
        return AgentLoopState.EXECUTING

    async def _executing(self, run: "_Run") -> AgentLoopState:
        ctx = run.ctx
        handlers = run.observer.execute_handlers if run.observer else None
        history = list(ctx.session.messages)

        step = partial(
            self._processor.execute,
            history,
            run.tools,
            handlers,
            persona=run.persona,
            abort=run.abort,
        )
        result = await SessionContext.run(ctx.session, step)
        ctx.session = process_result_to_session(result, ctx.session)
        ctx.last_finish_reason = result.finish_reason or None
        ctx.last_tool_call_count = len(result.tool_calls)
        await self._store.save(ctx.session)
        logger.info(
            "AgentLoop %s iteration %d: %d tool call(s), finish=%s",
            ctx.session.id,
            ctx.iteration,
            ctx.last_tool_call_count,
            ctx.last_finish_reason or "-",
            extra={"session_id": ctx.session.id, "iteration": ctx.iteration},
        )
        return AgentLoopState.OBSERVING

    async def _observing(self, run: "_Run") -> AgentLoopState:
        ctx = run.ctx
        decision = decide(ctx, ctx.session.last_message)
        metrics.inc("loop.decisions", labels={"decision": decision.value})
        logger.debug(
            "AgentLoop %s decision: %s",
            ctx.session.id,
            decision.value,
            extra={"session_id": ctx.session.id, "decision": decision.value},
        )
        await run.notify("on_decision", decision, ctx.iteration)
        await run.notify("on_iteration_end", ctx.iteration)

        if decision == LoopDecision.COMPACT:
            ctx.needs_compaction = True
            return AgentLoopState.COMPACTING
        if decision == LoopDecision.STOP:
            return AgentLoopState.COMPLETED
        return AgentLoopState.PLANNING

    async def _compacting(self, run: "_Run") -> AgentLoopState:
        ctx = run.ctx
        before = list(ctx.session.messages)
        keep = math.floor(ctx.compact_threshold * COMPACT_KEEP_RATIO)

        compressed = self._processor.compress(before, ctx.compact_threshold)
        if len(compressed) > len(before):
            raise CompactionError(
                f"compress returned {len(compressed)} messages for {len(before)} input"
            )
        session = ctx.session
        if compressed != before:
            session = ops.replace_messages(session, compressed)
        ctx.session = ops.compress_messages(session, keep)
        ctx.needs_compaction = False
        await self._store.save(ctx.session)

        logger.info(
            "AgentLoop %s compacted %d → %d messages",
            ctx.session.id,
            len(before),
            len(ctx.session.messages),
        )
        metrics.inc("loop.compactions")
        return AgentLoopState.PLANNING

    # ─── Finalize ─────────────────────────────────────────────────

    async def _finalize(self, run: "_Run") -> LoopResult:
        ctx = run.ctx
        success = ctx.state == AgentLoopState.COMPLETED
        ctx.session = ops.increment_iterations(ctx.session, ctx.iteration)
        try:
            await self._store.save(ctx.session)
        except Exception as e:
            logger.error("AgentLoop %s final save failed: %s", ctx.session.id, e)

        metrics.inc("loop.runs", labels={"state": ctx.state.value})
        logger.info(
            "AgentLoop %s %s after %d iteration(s) (%s)",
            ctx.session.id,
            "completed" if success else "failed",
            ctx.iteration,
            run.timer.summary(),
            extra={"session_id": ctx.session.id, "iteration": ctx.iteration},
        )
        return LoopResult(
            success=success,
            session=ctx.session,
            messages=ctx.session.messages,
            iterations=ctx.iteration,
            error=None if ctx.error is None else str(ctx.error),
        )

    # ─── Helpers ──────────────────────────────────────────────────

    async def _transition(self, run: "_Run", to_state: AgentLoopState) -> None:
        ctx = run.ctx
        from_state = ctx.state
        ctx.state = to_state
        logger.debug(
            "AgentLoop %s %s → %s (iteration %d)",
            ctx.session.id,
            from_state.value,
            to_state.value,
            ctx.iteration,
        )
        await run.notify("on_state_change", from_state, to_state, ctx.iteration)

    def _resolve_tools(
        self,
        persona_tools: Sequence[str] | None,
        denied: Sequence[str],
        tool_names: Sequence[str] | None,
    ) -> list["AgentTool"]:
        if tool_names is not None:
            names = list(tool_names)
        elif persona_tools is not None:
            names = list(persona_tools)
        else:
            names = self._registry.tool_names()
        return self._registry.get_by_names(n for n in names if n not in denied)


class _Run:
    """Everything one loop() call carries between its states."""

    def __init__(
        self,
        ctx: AgentLoopContext,
        message: str,
        persona: str,
        parent_session_id: str | None,
        tools: list["AgentTool"],
        abort: asyncio.Event | None,
        observer: LoopObserver | None,
    ):
        self.ctx = ctx
        self.message = message
        self.persona = persona
        self.parent_session_id = parent_session_id
        self.tools = tools
        self.abort = abort
        self.observer = observer
        self.timer = PhaseTimer()

    async def notify(self, hook: str, *args: Any) -> None:
        if self.observer is None:
            return
        callback = getattr(self.observer, hook, None)
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("Loop observer hook %s failed: %s", hook, e)
