"""
Tool and ToolResult types.

A Tool pairs a JSON-schema input definition with a handler. Handlers may be
plain functions or coroutines and may return a ToolResult, a string, or any
JSON-serialisable value. ``Tool.execute`` never raises: a handler failure is
captured into an error ToolResult so the agent loop can hand it back to the
model.

Usage:
    from tools.tool import Tool, ToolResult

    echo = Tool(
        name="echo",
        description="Echo the input text",
        input_schema={
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
        handler=lambda args: args["text"],
    )
    result = await echo.execute({"text": "hi"})
"""

import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


def _serialize_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False, default=str)


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool invocation."""
    content: str = ""
    is_error: bool = False

    @classmethod
    def success(cls, content: Any) -> "ToolResult":
        """Successful result; non-string content is serialised to JSON."""
        return cls(content=_serialize_content(content), is_error=False)

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls(content=message, is_error=True)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ToolResult":
        return cls(content=f"Error: {exc}", is_error=True)

    @property
    def is_success(self) -> bool:
        return not self.is_error

    def to_api_format(self, tool_use_id: str) -> Dict[str, Any]:
        """
        Protocol tool_result block answering ``tool_use_id``.

        The ``is_error`` key is only present on failures.
        """
        block = {
            "type": "tool_result",
            "tool_use_id": tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            block["is_error"] = True
        return block


@dataclass
class Tool:
    """A named capability the model can invoke."""
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict)
    handler: Optional[Callable[[Dict[str, Any]], Any]] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Tool name cannot be empty")
        schema = {"type": "object", "properties": {}, "required": []}
        schema.update(self.input_schema or {})
        self.input_schema = schema

    @classmethod
    def from_definition(cls, definition: Dict[str, Any], handler: Optional[Callable] = None) -> "Tool":
        """Build a tool from an API-style definition dict."""
        return cls(
            name=definition["name"],
            description=definition.get("description", ""),
            input_schema=definition.get("input_schema", {}),
            handler=handler,
        )

    def to_definition(self) -> Dict[str, Any]:
        """Tool definition in the format the model API expects."""
        schema = dict(self.input_schema)
        schema["properties"] = dict(schema.get("properties") or {})
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": schema,
        }

    async def execute(self, tool_input: Dict[str, Any]) -> ToolResult:
        """Run the handler, capturing any failure into an error result."""
        if self.handler is None:
            return ToolResult.error(f"Tool '{self.name}' has no handler defined")

        try:
            result = self.handler(tool_input)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, ToolResult):
                return result
            return ToolResult.success(result)
        except Exception as e:
            logger.warning("Tool %s handler raised: %s", self.name, e)
            return ToolResult.from_exception(e)
