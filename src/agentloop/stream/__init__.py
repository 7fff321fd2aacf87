"""Stream normalization and dispatch."""

from agentloop.stream.dispatcher import StreamHandlers, StreamSummary, dispatch
from agentloop.stream.normalizer import StreamNormalizer, normalize

__all__ = [
    "StreamHandlers",
    "StreamSummary",
    "dispatch",
    "StreamNormalizer",
    "normalize",
]
