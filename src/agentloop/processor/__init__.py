"""Processor — plan / reason / execute / compress step functions."""

from agentloop.processor.core import Processor
from agentloop.processor.merge import (
    ProcessorStepResult,
    build_assistant_message,
    process_result_to_session,
)

__all__ = [
    "Processor",
    "ProcessorStepResult",
    "build_assistant_message",
    "process_result_to_session",
]
