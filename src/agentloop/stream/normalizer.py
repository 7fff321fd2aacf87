"""
Stream Normalizer — one canonical event sequence from any model output.

Reasoning arrives either as native reasoning events (passed through
untouched) or inline in text between think markers:

    text-delta("Sure <thi") text-delta("nk>plan</think>Done")
        ↓
    text-start, text-delta("Sure "), text-end,
    reasoning-start, reasoning-delta("plan"), reasoning-end,
    text-start, text-delta("Done"), text-end

A buffer tail that could still grow into the marker being searched for
is held back until the next chunk settles it, so a marker split across
chunks yields the same events as an unsplit one.

Text runs are framed here: raw text-start / text-end events are dropped
and re-emitted around each non-empty run. Any structural event
(tool-call, tool-result, step-*, native reasoning, error, finish) first
flushes held text and closes whatever segment is open.
"""

from __future__ import annotations

from typing import AsyncIterator, Iterator

from agentloop.llm.contracts import EventType, StreamEvent

DEFAULT_THINK_OPEN = "<think>"
DEFAULT_THINK_CLOSE = "</think>"


def _partial_marker_len(buffer: str, marker: str) -> int:
    """Length of the longest buffer suffix that is a strict prefix of marker."""
    for k in range(min(len(buffer), len(marker) - 1), 0, -1):
        if buffer.endswith(marker[:k]):
            return k
    return 0


class StreamNormalizer:
    """Incremental normalizer. Feed raw events, collect canonical ones."""

    def __init__(
        self,
        think_open: str = DEFAULT_THINK_OPEN,
        think_close: str = DEFAULT_THINK_CLOSE,
    ):
        if not think_open or not think_close:
            raise ValueError("Think markers must be non-empty")
        self.think_open = think_open
        self.think_close = think_close
        self._buffer = ""
        self._inside = False  # between think markers
        self._text_open = False

    def feed(self, event: StreamEvent) -> list[StreamEvent]:
        return list(self._feed(event))

    def end(self) -> list[StreamEvent]:
        """Flush held text and close open segments at stream end."""
        return list(self._flush())

    def _feed(self, event: StreamEvent) -> Iterator[StreamEvent]:
        if event.type == EventType.TEXT_DELTA:
            yield from self._scan(event.text)
        elif event.type in (EventType.TEXT_START, EventType.TEXT_END):
            return
        else:
            yield from self._flush()
            yield event

    def _scan(self, chunk: str) -> Iterator[StreamEvent]:
        self._buffer += chunk
        while True:
            marker = self.think_close if self._inside else self.think_open
            idx = self._buffer.find(marker)
            if idx >= 0:
                before = self._buffer[:idx]
                self._buffer = self._buffer[idx + len(marker):]
                yield from self._emit(before)
                if self._inside:
                    self._inside = False
                    yield StreamEvent.reasoning_end()
                else:
                    yield from self._close_text()
                    self._inside = True
                    yield StreamEvent.reasoning_start()
                continue

            hold = _partial_marker_len(self._buffer, marker)
            ready = self._buffer[: len(self._buffer) - hold]
            self._buffer = self._buffer[len(self._buffer) - hold:]
            yield from self._emit(ready)
            return

    def _emit(self, text: str) -> Iterator[StreamEvent]:
        if not text:
            return
        if self._inside:
            yield StreamEvent.reasoning_delta(text)
            return
        if not self._text_open:
            self._text_open = True
            yield StreamEvent.text_start()
        yield StreamEvent.text_delta(text)

    def _close_text(self) -> Iterator[StreamEvent]:
        if self._text_open:
            self._text_open = False
            yield StreamEvent.text_end()

    def _flush(self) -> Iterator[StreamEvent]:
        held, self._buffer = self._buffer, ""
        yield from self._emit(held)
        if self._inside:
            self._inside = False
            yield StreamEvent.reasoning_end()
        yield from self._close_text()


async def normalize(
    events: AsyncIterator[StreamEvent],
    think_open: str = DEFAULT_THINK_OPEN,
    think_close: str = DEFAULT_THINK_CLOSE,
) -> AsyncIterator[StreamEvent]:
    """Normalize a raw event stream into canonical events."""
    normalizer = StreamNormalizer(think_open, think_close)
    async for event in events:
        for out in normalizer.feed(event):
            yield out
    for out in normalizer.end():
        yield out
