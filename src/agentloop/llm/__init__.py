"""
LLM package — the event contracts and the model invocation boundary.

- StreamEvent / EventType: raw and canonical stream events
- Usage, FinishReason, ToolCallRequest, ToolOutcome, InvokeOptions
- ModelInvoker: abstract invoker; OpenAIModelInvoker in openai_invoker
"""

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

__all__ = [
    "EventType",
    "FinishReason",
    "InvokeOptions",
    "StreamEvent",
    "ToolCallRequest",
    "ToolOutcome",
    "Usage",
    "ModelInvoker",
]
