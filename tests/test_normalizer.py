"""Tests for the stream normalizer."""

import pytest

from agentloop.llm.contracts import EventType, StreamEvent
from agentloop.stream.normalizer import StreamNormalizer, _partial_marker_len, normalize


def run(*events, **markers):
    n = StreamNormalizer(**markers)
    out = []
    for e in events:
        out.extend(n.feed(e))
    out.extend(n.end())
    return out


def shape(events):
    """Compact (type, text) view, adjacent deltas of the same kind merged."""
    result = []
    for e in events:
        if e.type in (EventType.TEXT_DELTA, EventType.REASONING_DELTA):
            if result and result[-1][0] == e.type:
                result[-1] = (e.type, result[-1][1] + e.text)
                continue
            result.append((e.type, e.text))
        else:
            result.append((e.type, ""))
    return result


async def _aiter(events):
    for e in events:
        yield e


T = StreamEvent.text_delta


# ─── Think markers ────────────────────────────────────────────


class TestThinkMarkers:
    def test_plain_text_framed(self):
        assert shape(run(T("hello "), T("world"))) == [
            (EventType.TEXT_START, ""),
            (EventType.TEXT_DELTA, "hello world"),
            (EventType.TEXT_END, ""),
        ]

    def test_inline_reasoning(self):
        assert shape(run(T("Sure <think>plan</think>Done"))) == [
            (EventType.TEXT_START, ""),
            (EventType.TEXT_DELTA, "Sure "),
            (EventType.TEXT_END, ""),
            (EventType.REASONING_START, ""),
            (EventType.REASONING_DELTA, "plan"),
            (EventType.REASONING_END, ""),
            (EventType.TEXT_START, ""),
            (EventType.TEXT_DELTA, "Done"),
            (EventType.TEXT_END, ""),
        ]

    @pytest.mark.parametrize(
        "chunks",
        [
            ["Sure <thi", "nk>plan</think>Done"],
            ["Sure <", "think>pl", "an</", "think", ">Done"],
            list("Sure <think>plan</think>Done"),
        ],
        ids=["split-open", "split-both", "char-by-char"],
    )
    def test_split_marker_same_as_whole(self, chunks):
        whole = shape(run(T("Sure <think>plan</think>Done")))
        assert shape(run(*[T(c) for c in chunks])) == whole

    def test_partial_marker_that_never_completes_is_text(self):
        out = shape(run(T("a <thi"), T("s is fine")))
        assert out == [
            (EventType.TEXT_START, ""),
            (EventType.TEXT_DELTA, "a <this is fine"),
            (EventType.TEXT_END, ""),
        ]

    def test_held_tail_flushed_at_end(self):
        out = shape(run(T("x <thi")))
        assert (EventType.TEXT_DELTA, "x <thi") in out
        assert out[-1] == (EventType.TEXT_END, "")

    def test_unclosed_think_closed_at_end(self):
        out = shape(run(T("<think>still going")))
        assert out == [
            (EventType.REASONING_START, ""),
            (EventType.REASONING_DELTA, "still going"),
            (EventType.REASONING_END, ""),
        ]

    def test_custom_markers(self):
        out = shape(run(T("[[r]]why[[/r]]ok"), think_open="[[r]]", think_close="[[/r]]"))
        assert (EventType.REASONING_DELTA, "why") in out
        assert (EventType.TEXT_DELTA, "ok") in out

    def test_empty_markers_rejected(self):
        with pytest.raises(ValueError):
            StreamNormalizer(think_open="")


# ─── Structural events ────────────────────────────────────────


class TestStructure:
    def test_native_reasoning_passes_through(self):
        events = [
            StreamEvent.reasoning_start(),
            StreamEvent.reasoning_delta("native"),
            StreamEvent.reasoning_end(),
        ]
        assert run(*events) == events

    def test_raw_text_framing_dropped(self):
        out = run(StreamEvent.text_start(), T("hi"), StreamEvent.text_end())
        assert [e.type for e in out] == [
            EventType.TEXT_START,
            EventType.TEXT_DELTA,
            EventType.TEXT_END,
        ]

    def test_tool_call_flushes_and_closes_text(self):
        call = StreamEvent.tool_call("c1", "grep", {"q": "x"})
        out = run(T("look <th"), call, StreamEvent.finish("tool-calls"))
        types = [e.type for e in out]
        assert types == [
            EventType.TEXT_START,
            EventType.TEXT_DELTA,
            EventType.TEXT_DELTA,
            EventType.TEXT_END,
            EventType.TOOL_CALL,
            EventType.FINISH,
        ]
        assert "".join(e.text for e in out if e.type == EventType.TEXT_DELTA) == "look <th"

    def test_finish_closes_open_reasoning(self):
        out = run(T("<think>hm"), StreamEvent.finish("stop"))
        assert [e.type for e in out][-2:] == [EventType.REASONING_END, EventType.FINISH]

    def test_no_empty_deltas(self):
        out = run(T(""), T("<think>"), T("</think>"), T(""), StreamEvent.finish("stop"))
        assert all(e.text for e in out if e.type in (EventType.TEXT_DELTA, EventType.REASONING_DELTA))

    def test_segments_balanced(self):
        out = run(T("a<think>b</think>c<think>d"), StreamEvent.tool_call("1", "t"), T("e"))
        depth = 0
        for e in out:
            if e.type in (EventType.TEXT_START, EventType.REASONING_START):
                depth += 1
                assert depth == 1
            elif e.type in (EventType.TEXT_END, EventType.REASONING_END):
                depth -= 1
        assert depth == 0


@pytest.mark.asyncio
async def test_normalize_async():
    events = [T("<think>x</think>"), T("y"), StreamEvent.finish("stop")]
    out = [e async for e in normalize(_aiter(events))]
    assert shape(out) == [
        (EventType.REASONING_START, ""),
        (EventType.REASONING_DELTA, "x"),
        (EventType.REASONING_END, ""),
        (EventType.TEXT_START, ""),
        (EventType.TEXT_DELTA, "y"),
        (EventType.TEXT_END, ""),
        (EventType.FINISH, ""),
    ]


def test_partial_marker_len():
    assert _partial_marker_len("abc<th", "<think>") == 3
    assert _partial_marker_len("abc", "<think>") == 0
    assert _partial_marker_len("<think", "<think>") == 6
