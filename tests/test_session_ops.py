"""Tests for the session model and its pure operations."""

import dataclasses

import pytest

from agentloop.session import ops
from agentloop.session.models import (
    BlockType,
    Message,
    ReasoningBlock,
    Role,
    TextBlock,
    ToolCallBlock,
    ToolResultBlock,
)


def _conversation():
    s = ops.create("s-1", "agent")
    return ops.add_messages(
        s,
        [
            Message.user("find the config"),
            Message.assistant((TextBlock("Looking."), ToolCallBlock("c1", "grep", {"q": "cfg"}))),
            Message.tool(ToolResultBlock("c1", "grep", ["a.toml"])),
            Message.assistant("It is in a.toml"),
        ],
    )


# ─── Model ────────────────────────────────────────────────────


class TestMessage:
    def test_plain_text_blocks(self):
        msg = Message.user("hi")
        assert msg.text() == "hi"
        assert msg.blocks == (TextBlock("hi"),)
        assert not msg.has_tool_calls()

    def test_empty_text_has_no_blocks(self):
        assert Message.assistant("").blocks == ()

    def test_block_tags(self):
        assert TextBlock("x").type == BlockType.TEXT
        assert ReasoningBlock("x").type == BlockType.REASONING
        assert ToolCallBlock("1", "t").type == BlockType.TOOL_CALL
        assert ToolResultBlock("1", "t").type == BlockType.TOOL_RESULT

    def test_text_skips_reasoning(self):
        msg = Message.assistant((ReasoningBlock("hmm"), TextBlock("answer")))
        assert msg.text() == "answer"

    def test_tool_calls(self):
        msg = Message.assistant((TextBlock("ok"), ToolCallBlock("c1", "grep")))
        assert msg.has_tool_calls()
        assert [c.id for c in msg.tool_calls()] == ["c1"]

    def test_frozen(self):
        msg = Message.user("hi")
        with pytest.raises(dataclasses.FrozenInstanceError):
            msg.content = "changed"


# ─── Ops ──────────────────────────────────────────────────────


class TestCreate:
    def test_zeroed_metadata(self):
        s = ops.create("s-1", "agent")
        assert s.id == "s-1"
        assert s.agent_name == "agent"
        assert s.messages == ()
        assert s.metadata.total_tokens == 0
        assert s.metadata.total_iterations == 0
        assert s.metadata.last_compaction_at is None
        assert s.parent_session_id is None

    def test_parent(self):
        s = ops.create("child", "sub_agent", parent_session_id="parent")
        assert s.parent_session_id == "parent"


class TestImmutability:
    @pytest.mark.parametrize(
        "op",
        [
            lambda s: ops.add_message(s, Message.user("more")),
            lambda s: ops.add_messages(s, [Message.user("a"), Message.user("b")]),
            lambda s: ops.add_tokens(s, 42),
            lambda s: ops.increment_iterations(s, 2),
            lambda s: ops.compress_messages(s, 1),
        ],
        ids=["add_message", "add_messages", "add_tokens", "increment_iterations", "compress"],
    )
    def test_input_untouched(self, op):
        s = _conversation()
        count = len(s.messages)
        meta = s.metadata

        result = op(s)

        assert result is not s
        assert len(s.messages) == count
        assert s.metadata is meta
        assert s.metadata.total_tokens == 0
        assert s.metadata.total_iterations == 0
        assert s.metadata.last_compaction_at is None

    def test_add_messages_empty_is_same_object(self):
        s = _conversation()
        assert ops.add_messages(s, []) is s

    def test_add_message_appends(self):
        s = ops.add_message(ops.create("s", "a"), Message.user("hi"))
        assert [m.role for m in s.messages] == [Role.USER]

    def test_counters(self):
        s = ops.add_tokens(ops.add_tokens(ops.create("s", "a"), 10), 5)
        s = ops.increment_iterations(ops.increment_iterations(s), 3)
        assert s.metadata.total_tokens == 15
        assert s.metadata.total_iterations == 4

    def test_set_parent(self):
        s = ops.set_parent(ops.create("s", "a"), "p")
        assert s.parent_session_id == "p"

    def test_recent_messages(self):
        s = _conversation()
        assert ops.get_recent_messages(s, 2) == s.messages[-2:]
        assert ops.get_recent_messages(s, 0) == ()


class TestCompressMessages:
    @pytest.mark.parametrize("k", [0, 1, 2, 3, 4, 10])
    def test_bound(self, k):
        s = ops.compress_messages(_conversation(), k)
        assert len(s.messages) <= k
        assert s.metadata.last_compaction_at is not None

    def test_negative_keeps_nothing(self):
        assert ops.compress_messages(_conversation(), -3).messages == ()

    def test_keeps_most_recent(self):
        s = ops.compress_messages(_conversation(), 3)
        assert [m.role for m in s.messages] == [Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]

    def test_drops_orphaned_tool_result(self):
        # Window of 2 starts at the tool message; its call is outside
        s = ops.compress_messages(_conversation(), 2)
        assert [m.role for m in s.messages] == [Role.ASSISTANT]
        assert s.messages[0].text() == "It is in a.toml"

    def test_no_result_without_its_call(self):
        s = ops.compress_messages(_conversation(), 2)
        call_ids = {c.id for m in s.messages for c in m.tool_calls()}
        for m in s.messages:
            for r in m.tool_results():
                assert r.tool_call_id in call_ids

    def test_deterministic(self):
        s = _conversation()
        assert ops.compress_messages(s, 2).messages == ops.compress_messages(s, 2).messages


class TestSerialization:
    def test_json_round_trip(self):
        s = ops.add_tokens(ops.increment_iterations(_conversation(), 2), 99)
        s = ops.compress_messages(s, 10)
        again = ops.from_json(ops.to_json(s))
        assert again == s

    def test_block_dict_tags(self):
        data = ops.message_to_dict(
            Message.assistant((ToolCallBlock("c1", "grep", {"q": 1}),))
        )
        assert data == {
            "role": "assistant",
            "content": [{"type": "tool-call", "id": "c1", "name": "grep", "args": {"q": 1}}],
        }

    def test_plain_content_stays_string(self):
        msg = ops.message_from_dict({"role": "user", "content": "hi"})
        assert msg == Message.user("hi")
