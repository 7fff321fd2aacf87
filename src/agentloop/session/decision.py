"""
Decision Policy — what the loop does after observing a step.

Priority order, first match wins:

P0  compaction flagged, or message count at the threshold  → compact
P1  finish reason: stop / end-turn → stop, tool-calls → continue,
    length → stop, content-filter → stop, anything else falls through
P2  last message: tool → continue, assistant with a tool call → continue,
    assistant with plain text → stop, none → stop
P3  continue

P2 only runs when the model gave no usable finish reason.
"""

from __future__ import annotations

from agentloop.llm.contracts import FinishReason
from agentloop.session.models import Message, Role
from agentloop.session.state import AgentLoopContext, LoopDecision

_BY_FINISH_REASON = {
    FinishReason.STOP: LoopDecision.STOP,
    FinishReason.END_TURN: LoopDecision.STOP,
    FinishReason.TOOL_CALLS: LoopDecision.CONTINUE,
    # Truncated output: tool intent is unknowable
    FinishReason.LENGTH: LoopDecision.STOP,
    FinishReason.CONTENT_FILTER: LoopDecision.STOP,
}


def needs_compaction(context: AgentLoopContext) -> bool:
    return (
        context.needs_compaction
        or len(context.session.messages) >= context.compact_threshold
    )


def decide(context: AgentLoopContext, last_message: Message | None) -> LoopDecision:
    if needs_compaction(context):
        return LoopDecision.COMPACT

    by_reason = _BY_FINISH_REASON.get(context.last_finish_reason or "")
    if by_reason is not None:
        return by_reason

    if last_message is None:
        return LoopDecision.STOP
    if last_message.role == Role.TOOL:
        return LoopDecision.CONTINUE
    if last_message.role == Role.ASSISTANT:
        if last_message.has_tool_calls():
            return LoopDecision.CONTINUE
        return LoopDecision.STOP

    return LoopDecision.CONTINUE
