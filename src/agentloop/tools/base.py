"""
Tool contract: declared parameters in, ToolResult out.

A tool declares a name, a description and its parameters, and implements
execute(). The model sees the declaration as an OpenAI function schema;
the orchestrator hands the model's arguments to safe_execute().

safe_execute() is the call-site boundary: arguments that are not a JSON
object, miss a required parameter or carry the wrong JSON type, and any
exception raised by execute(), all come back as error results. Output is
any JSON-serializable value.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

from agentloop.core.errors import ToolExecutionError

logger = logging.getLogger(__name__)

# JSON schema type → accepted Python types
_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


@dataclass
class ToolParam:
    """One named argument of a tool."""

    name: str
    type: str  # a key of _JSON_TYPES
    description: str
    required: bool = True
    default: Any = None
    enum: list[str] | None = None
    items: dict | None = None  # element schema for arrays

    def schema(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            prop["enum"] = list(self.enum)
        if self.items:
            prop["items"] = self.items
        return prop

    def check(self, value: Any) -> None:
        """Raise ValueError if value does not fit this parameter."""
        accepted = _JSON_TYPES.get(self.type)
        # bool is an int subclass; only "boolean" takes it
        if accepted and (
            not isinstance(value, accepted)
            or (isinstance(value, bool) and self.type != "boolean")
        ):
            raise ValueError(
                f"Parameter '{self.name}' expects {self.type}, got {type(value).__name__}"
            )
        if self.enum and value not in self.enum:
            raise ValueError(
                f"Parameter '{self.name}' must be one of {', '.join(self.enum)}"
            )


@dataclass
class ToolResult:
    """What a tool hands back: a JSON-serializable output, flagged on error."""

    output: Any
    metadata: dict = field(default_factory=dict)
    error: bool = False

    @classmethod
    def success(cls, output: Any, **metadata) -> ToolResult:
        return cls(output=output, metadata=metadata)

    @classmethod
    def fail(cls, error: Any, **metadata) -> ToolResult:
        return cls(output=error, metadata=metadata, error=True)


class AgentTool(ABC):
    """Subclass, set name / description / parameters, implement execute()."""

    name: str = ""
    description: str = ""
    parameters: list[ToolParam] = []

    @abstractmethod
    async def execute(self, **kwargs) -> ToolResult: ...

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {p.name: p.schema() for p in self.parameters},
                    "required": [p.name for p in self.parameters if p.required],
                },
            },
        }

    def validate_args(self, args: Any) -> dict[str, Any]:
        """Checked keyword arguments for execute(), defaults filled in.

        Unknown keys are dropped. Raises ValueError on anything else that
        does not match the declared parameters.
        """
        if not isinstance(args, Mapping):
            raise ValueError(
                f"arguments must be a JSON object, got {type(args).__name__}"
            )
        cleaned: dict[str, Any] = {}
        for param in self.parameters:
            if param.name in args:
                param.check(args[param.name])
                cleaned[param.name] = args[param.name]
            elif param.required:
                raise ValueError(f"Missing required parameter: {param.name}")
            elif param.default is not None:
                cleaned[param.name] = param.default
        return cleaned

    async def safe_execute(self, args: Any) -> ToolResult:
        """Validate ``args`` and run the tool. Never raises."""
        try:
            cleaned = self.validate_args(args)
        except ValueError as e:
            return ToolResult.fail(f"Invalid arguments: {e}")
        try:
            return await self.execute(**cleaned)
        except Exception as e:
            err = ToolExecutionError(self.name, str(e))
            logger.error("%s", err, exc_info=True)
            return ToolResult.fail(str(err))

    def __repr__(self) -> str:
        return f"<Tool:{self.name}>"
