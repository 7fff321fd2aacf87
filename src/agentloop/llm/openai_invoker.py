"""
OpenAI Model Invoker — streaming chat completions with tool calling.

Works against any OpenAI-compatible endpoint (base_url). Maps chunks to
raw StreamEvents:

- delta.content            → text-delta (may still hold <think> markers)
- delta.reasoning_content  → native reasoning-start / -delta / -end
- delta.tool_calls         → accumulated by index, one tool-call event
                             each once the choice finishes
- final usage chunk        → usage on the closing finish event

Retries and timeouts are delegated to the client (with_options). The
abort event is checked between chunks.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Sequence

from openai import AsyncOpenAI

import agentloop.core.config as config_module
from agentloop.core.errors import ModelCallError
from agentloop.llm.contracts import FinishReason, InvokeOptions, StreamEvent, Usage
from agentloop.llm.invoker import ModelInvoker
from agentloop.session.models import BlockType, Message, Role

if TYPE_CHECKING:
    from agentloop.agents.personas import Persona
    from agentloop.tools.base import AgentTool

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
}


def map_finish_reason(reason: str | None) -> str:
    if not reason:
        return ""
    return _FINISH_REASONS.get(reason, reason)


def _encode(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, default=str)


def to_openai_messages(persona: "Persona", messages: Sequence[Message]) -> list[dict]:
    """Persona prompt as the system message, then the history in OpenAI form."""
    out: list[dict] = []
    if persona.prompt:
        out.append({"role": "system", "content": persona.prompt})

    for msg in messages:
        if msg.role == Role.USER:
            out.append({"role": "user", "content": msg.text()})
        elif msg.role == Role.ASSISTANT:
            entry: dict[str, Any] = {"role": "assistant", "content": msg.text() or None}
            calls = msg.tool_calls()
            if calls:
                entry["tool_calls"] = [
                    {
                        "id": c.id,
                        "type": "function",
                        "function": {"name": c.name, "arguments": json.dumps(c.args)},
                    }
                    for c in calls
                ]
            elif entry["content"] is None:
                entry["content"] = ""
            out.append(entry)
        else:
            for block in msg.blocks:
                if block.type == BlockType.TOOL_RESULT:
                    out.append(
                        {
                            "role": "tool",
                            "tool_call_id": block.tool_call_id,
                            "content": _encode(block.output),
                        }
                    )
    return out


class OpenAIModelInvoker(ModelInvoker):
    def __init__(self, client: AsyncOpenAI | None = None):
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            llm = config_module.config.llm
            client_kwargs: dict[str, Any] = {}
            if llm.api_key:
                client_kwargs["api_key"] = llm.api_key
            if llm.base_url:
                client_kwargs["base_url"] = llm.base_url
                logger.info("Using custom base_url: %s", llm.base_url)
            self._client = AsyncOpenAI(**client_kwargs)
        return self._client

    def _request(
        self,
        persona: "Persona",
        messages: Sequence[Message],
        tools: Sequence["AgentTool"] | None,
    ) -> dict[str, Any]:
        llm = config_module.config.llm
        kwargs: dict[str, Any] = {
            "model": persona.model or llm.model,
            "messages": to_openai_messages(persona, messages),
            "max_tokens": persona.max_output_tokens or llm.max_tokens,
            "temperature": (
                persona.temperature if persona.temperature is not None else llm.temperature
            ),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if persona.top_p is not None:
            kwargs["top_p"] = persona.top_p
        if tools:
            kwargs["tools"] = [t.to_openai_schema() for t in tools]
            kwargs["tool_choice"] = persona.tool_choice
        if persona.extra_body:
            kwargs["extra_body"] = persona.extra_body
        return kwargs

    async def invoke(
        self,
        persona: "Persona",
        messages: Sequence[Message],
        tools: Sequence["AgentTool"] | None = None,
        options: InvokeOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        options = options or InvokeOptions()
        client_options: dict[str, Any] = {"max_retries": options.max_retries}
        if options.timeout_ms is not None:
            client_options["timeout"] = options.timeout_ms / 1000
        client = self.client.with_options(**client_options)

        stream = await client.chat.completions.create(
            **self._request(persona, messages, tools)
        )

        # OpenAI sends tool calls incrementally: index, name, then argument chunks
        pending_tool_calls: dict[int, dict] = {}
        in_reasoning = False
        finish_reason = ""
        usage: Usage | None = None

        async for chunk in stream:
            if options.abort is not None and options.abort.is_set():
                await stream.close()
                raise ModelCallError(f"Model call for '{persona.name}' aborted")

            if chunk.usage is not None:
                usage = Usage(
                    prompt_tokens=chunk.usage.prompt_tokens or 0,
                    completion_tokens=chunk.usage.completion_tokens or 0,
                    total_tokens=chunk.usage.total_tokens or 0,
                )
            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            delta = choice.delta

            reasoning = getattr(delta, "reasoning_content", None)
            if reasoning:
                if not in_reasoning:
                    in_reasoning = True
                    yield StreamEvent.reasoning_start()
                yield StreamEvent.reasoning_delta(reasoning)

            if delta.content:
                if in_reasoning:
                    in_reasoning = False
                    yield StreamEvent.reasoning_end()
                yield StreamEvent.text_delta(delta.content)

            if delta.tool_calls:
                for tc in delta.tool_calls:
                    idx = tc.index
                    if idx not in pending_tool_calls:
                        pending_tool_calls[idx] = {
                            "id": tc.id or "",
                            "name": (tc.function.name or "") if tc.function else "",
                            "arguments": "",
                        }
                    else:
                        if tc.id:
                            pending_tool_calls[idx]["id"] = tc.id
                        if tc.function and tc.function.name:
                            pending_tool_calls[idx]["name"] = tc.function.name

                    if tc.function and tc.function.arguments:
                        pending_tool_calls[idx]["arguments"] += tc.function.arguments

            if choice.finish_reason:
                finish_reason = map_finish_reason(choice.finish_reason)

        if in_reasoning:
            yield StreamEvent.reasoning_end()

        for idx in sorted(pending_tool_calls):
            tc_data = pending_tool_calls[idx]
            try:
                args = json.loads(tc_data["arguments"]) if tc_data["arguments"] else {}
            except json.JSONDecodeError:
                logger.warning(
                    "Failed to parse tool args: %s", tc_data["arguments"][:100]
                )
                args = {}
            if not isinstance(args, dict):
                logger.warning(
                    "Tool args for %s are not an object: %s",
                    tc_data["name"],
                    tc_data["arguments"][:100],
                )
                args = {}
            yield StreamEvent.tool_call(tc_data["id"], tc_data["name"], args)

        if pending_tool_calls and finish_reason == FinishReason.STOP:
            finish_reason = FinishReason.TOOL_CALLS

        yield StreamEvent.finish(finish_reason, usage)
