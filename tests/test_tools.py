"""Tests for the tool layer — base, registry, orchestrator and control tools."""

import json
from unittest.mock import AsyncMock

import pytest

from agentloop.core.errors import ConfigurationError
from agentloop.core.metrics import metrics
from agentloop.llm.contracts import ToolCallRequest
from agentloop.tools.base import ToolParam
from agentloop.tools.control import AskUserTool, FinishTaskTool
from agentloop.tools.orchestrator import ToolOrchestrator, encode_output
from agentloop.tools.registry import ToolRegistry
from fakes import BrokenTool, EchoTool


@pytest.fixture(autouse=True)
def _fresh_metrics():
    metrics.reset()
    yield
    metrics.reset()


# ─── AgentTool ────────────────────────────────────────────────


class TestAgentTool:
    def test_openai_schema(self):
        schema = EchoTool().to_openai_schema()
        assert schema["type"] == "function"
        fn = schema["function"]
        assert fn["name"] == "echo"
        assert set(fn["parameters"]["properties"]) == {"text", "times"}
        assert fn["parameters"]["required"] == ["text"]

    def test_validate_fills_defaults(self):
        assert EchoTool().validate_args({"text": "a"}) == {"text": "a", "times": 1}

    def test_validate_drops_unknown(self):
        assert EchoTool().validate_args({"text": "a", "extra": 1}) == {"text": "a", "times": 1}

    @pytest.mark.asyncio
    async def test_missing_required(self):
        result = await EchoTool().safe_execute({})
        assert result.error
        assert "Invalid arguments" in result.output
        assert "text" in result.output

    @pytest.mark.asyncio
    async def test_exception_becomes_error_result(self):
        result = await BrokenTool().safe_execute({})
        assert result.error
        assert result.output == "Tool 'broken' failed: disk on fire"

    @pytest.mark.asyncio
    async def test_success(self):
        result = await EchoTool().safe_execute({"text": "ab", "times": 2})
        assert not result.error
        assert result.output == {"echo": "abab"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("args", [["hi"], None, "hi", 3], ids=["list", "null", "str", "int"])
    async def test_non_object_args(self, args):
        result = await EchoTool().safe_execute(args)
        assert result.error
        assert "must be a JSON object" in result.output

    @pytest.mark.parametrize(
        "args",
        [{"text": 5}, {"text": "a", "times": "2"}, {"text": "a", "times": True}],
        ids=["int-for-string", "string-for-integer", "bool-for-integer"],
    )
    def test_wrong_json_type(self, args):
        with pytest.raises(ValueError, match="expects"):
            EchoTool().validate_args(args)

    def test_enum(self):
        tool = EchoTool()
        tool.parameters = [ToolParam("mode", "string", "Mode", enum=["fast", "slow"])]
        assert tool.validate_args({"mode": "fast"}) == {"mode": "fast"}
        with pytest.raises(ValueError, match="one of"):
            tool.validate_args({"mode": "medium"})
        assert tool.to_openai_schema()["function"]["parameters"]["properties"]["mode"][
            "enum"
        ] == ["fast", "slow"]


# ─── Registry ─────────────────────────────────────────────────


class TestRegistry:
    def test_register_and_lookup(self):
        registry = ToolRegistry([EchoTool()])
        assert registry.has("echo")
        assert registry.get("echo").name == "echo"
        assert registry.get("nope") is None
        assert registry.tool_names() == ["echo"]

    def test_overwrite_keeps_latest(self):
        first, second = EchoTool(), EchoTool()
        registry = ToolRegistry([first, second])
        assert registry.get("echo") is second
        assert len(registry.list_tools()) == 1

    def test_nameless_tool_rejected(self):
        tool = EchoTool()
        tool.name = ""
        with pytest.raises(ConfigurationError):
            ToolRegistry().register(tool)

    def test_lock_blocks_mutation(self):
        registry = ToolRegistry([EchoTool()])
        registry.lock()
        assert registry.locked
        with pytest.raises(ConfigurationError):
            registry.register(BrokenTool())
        with pytest.raises(ConfigurationError):
            registry.unregister("echo")
        with pytest.raises(ConfigurationError):
            registry.reset()

        registry.unlock()
        assert registry.unregister("echo") is True
        assert registry.unregister("echo") is False

    def test_get_by_names_drops_unknown(self):
        registry = ToolRegistry([EchoTool(), BrokenTool()])
        tools = registry.get_by_names(["broken", "ghost", "echo"])
        assert [t.name for t in tools] == ["broken", "echo"]

    def test_stats(self):
        registry = ToolRegistry([EchoTool()])
        assert registry.stats() == {"total": 1, "names": ["echo"], "locked": False}

    def test_to_openai_tools_subset(self):
        registry = ToolRegistry([EchoTool(), BrokenTool()])
        assert len(registry.to_openai_tools()) == 2
        names = [t["function"]["name"] for t in registry.to_openai_tools(["echo"])]
        assert names == ["echo"]

    def test_registries_are_independent(self):
        a = ToolRegistry([EchoTool()])
        b = ToolRegistry()
        assert not b.has("echo")
        assert a.has("echo")


# ─── Orchestrator ─────────────────────────────────────────────


class TestOrchestrator:
    @pytest.fixture
    def orchestrator(self):
        return ToolOrchestrator(ToolRegistry([EchoTool(), BrokenTool()]))

    @pytest.mark.asyncio
    async def test_success_is_json_encoded(self, orchestrator):
        outcome = await orchestrator.execute(ToolCallRequest("c1", "echo", {"text": "hi"}))
        assert outcome.tool_call_id == "c1"
        assert outcome.tool_name == "echo"
        assert not outcome.is_error
        assert json.loads(outcome.content) == {"echo": "hi"}
        assert outcome.output == {"echo": "hi"}
        assert metrics.counter("tools.calls", {"tool": "echo"}) == 1

    @pytest.mark.asyncio
    async def test_unknown_tool(self, orchestrator):
        outcome = await orchestrator.execute(ToolCallRequest("c2", "ghost"))
        assert outcome.is_error
        assert outcome.output == "Unknown tool: ghost"
        assert metrics.counter("tools.errors", {"tool": "ghost"}) == 1

    @pytest.mark.asyncio
    async def test_tool_outside_allowed_set(self, orchestrator):
        outcome = await orchestrator.execute(
            ToolCallRequest("c3", "echo", {"text": "x"}), allowed={"broken"}
        )
        assert outcome.is_error
        assert outcome.output == "Unknown tool: echo"

    @pytest.mark.asyncio
    async def test_failing_tool(self, orchestrator):
        outcome = await orchestrator.execute(ToolCallRequest("c4", "broken"))
        assert outcome.is_error
        assert "disk on fire" in outcome.output
        assert metrics.counter("tools.errors", {"tool": "broken"}) == 1

    @pytest.mark.asyncio
    async def test_non_object_args_become_error_outcome(self, orchestrator):
        outcome = await orchestrator.execute(ToolCallRequest("c5", "echo", ["hi"]))
        assert outcome.tool_call_id == "c5"
        assert outcome.is_error
        assert "must be a JSON object" in outcome.output
        assert metrics.counter("tools.errors", {"tool": "echo"}) == 1

    def test_encode_non_json_values(self):
        assert encode_output({"n": 1, "s": "é"}) == '{"n": 1, "s": "é"}'
        assert json.loads(encode_output({"obj": object()}))["obj"].startswith("<object")


# ─── Control tools ────────────────────────────────────────────


class TestControlTools:
    @pytest.mark.asyncio
    async def test_finish_task(self):
        result = await FinishTaskTool().execute(summary="all good")
        assert result.output["status"] == "finished"
        assert result.output["summary"] == "all good"

    @pytest.mark.asyncio
    async def test_ask_user_without_handler(self):
        result = await AskUserTool().execute(question="which branch?")
        assert not result.error
        assert result.output["status"] == "waiting_for_user"
        assert result.output["question"] == "which branch?"

    @pytest.mark.asyncio
    async def test_ask_user_with_handler(self):
        handler = AsyncMock(return_value="main")
        result = await AskUserTool(handler).execute(question="which branch?")
        handler.assert_awaited_once_with("which branch?")
        assert result.output == {
            "status": "answered",
            "question": "which branch?",
            "answer": "main",
        }

    @pytest.mark.asyncio
    async def test_ask_user_handler_failure(self):
        handler = AsyncMock(side_effect=RuntimeError("hung up"))
        result = await AskUserTool(handler).execute(question="?")
        assert result.error
        assert result.output["status"] == "error"
        assert result.output["message"] == "hung up"
