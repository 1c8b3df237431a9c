"""
ReAct (reason, act, observe) loop.

Drives one agent run against a model client:
1. Sends the message log, tool definitions and run config to the model
2. Records token usage and appends the assistant turn
3. Executes every tool_use block in the turn and appends the tool results
4. Repeats until the model ends its turn without tool use, a model call
   fails, or the iteration budget runs out

The model client follows the Anthropic SDK shape: ``client.messages.create(**params)``,
sync or async, returning either a dict or an object with ``model_dump()``.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from agent.context import AgentContext
from agent.errors import MaxIterationsExceeded, TransportError
from model_tools import handle_function_call
from tools.parallel_executor import ParallelToolExecutor
from tools.tool import ToolResult

logger = logging.getLogger(__name__)

IterationCallback = Callable[[int, Any, AgentContext], None]
ToolExecutionCallback = Callable[[str, Dict[str, Any], ToolResult], None]


def _to_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return dict(obj)
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dict__"):
        return {key: value for key, value in vars(obj).items() if not key.startswith("_")}
    raise TypeError(f"Cannot interpret {type(obj).__name__} as a response object")


def normalize_response(raw_response: Any) -> Dict[str, Any]:
    """Convert a model client response into ``{content, stop_reason, usage}`` dicts."""
    response = _to_dict(raw_response)

    content = response.get("content") or []
    if isinstance(content, str):
        content = [{"type": "text", "text": content}]

    usage = response.get("usage") or {}
    return {
        "content": [_to_dict(block) for block in content],
        "stop_reason": response.get("stop_reason") or "end_turn",
        "usage": _to_dict(usage),
    }


def normalize_content_blocks(content: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Ensure every tool_use block's input is a dict.

    Clients that decode an empty JSON object as an empty list (or drop it)
    would otherwise send ``[]`` back, which the API rejects.
    """
    normalized = []
    for block in content:
        if block.get("type") == "tool_use":
            block = dict(block)
            tool_input = block.get("input")
            block["input"] = dict(tool_input) if tool_input else {}
        normalized.append(block)
    return normalized


def extract_tool_uses(content: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [block for block in content if block.get("type") == "tool_use"]


def extract_text_content(content: List[Dict[str, Any]]) -> str:
    return "\n".join(
        block["text"] for block in content
        if block.get("type") == "text" and block.get("text") is not None
    )


class ReactLoop:
    """Reasoning loop for a single run; all run state lives in the AgentContext."""

    def __init__(self, client: Any):
        self.client = client
        self._on_iteration: Optional[IterationCallback] = None
        self._on_tool_execution: Optional[ToolExecutionCallback] = None

    def on_iteration(self, callback: IterationCallback) -> "ReactLoop":
        """Register ``fn(iteration, raw_response, context)``, called after every model turn."""
        self._on_iteration = callback
        return self

    def on_tool_execution(self, callback: ToolExecutionCallback) -> "ReactLoop":
        """Register ``fn(tool_name, tool_input, result)``, called after every tool call."""
        self._on_tool_execution = callback
        return self

    @staticmethod
    def _fire(callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning("Observer callback %s raised: %s",
                           getattr(callback, "__name__", repr(callback)), e)

    async def _call_model(self, params: Dict[str, Any]) -> Any:
        try:
            response = self.client.messages.create(**params)
            if inspect.isawaitable(response):
                response = await response
            return response
        except Exception as e:
            raise TransportError(str(e) or type(e).__name__) from e

    async def _execute_tools(self, context: AgentContext, tool_uses: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        calls = [{"tool": block.get("name", ""), "input": block.get("input") or {}} for block in tool_uses]

        if len(calls) == 1:
            call = calls[0]
            logger.debug("Executing tool: %s", call["tool"])
            outcomes = [{
                "tool": call["tool"],
                "input": call["input"],
                "result": await handle_function_call(context.tools, call["tool"], call["input"]),
            }]
        else:
            executor = ParallelToolExecutor(context.tools)
            outcomes = await executor.execute_batched(calls, concurrency=context.config.tool_concurrency)

        tool_results = []
        for block, outcome in zip(tool_uses, outcomes):
            result: ToolResult = outcome["result"]
            context.record_tool_call(outcome["tool"], outcome["input"], result.content, result.is_error)
            self._fire(self._on_tool_execution, outcome["tool"], outcome["input"], result)
            tool_results.append(result.to_api_format(block.get("id", "")))

        return tool_results

    async def execute(self, context: AgentContext) -> AgentContext:
        """Run the loop until ``context`` reaches a terminal state."""
        config = context.config

        while not context.is_completed() and not context.has_reached_max_iterations():
            iteration = context.increment_iteration()
            logger.debug("ReAct loop iteration %s", iteration)

            params = config.to_api_params()
            params["messages"] = context.get_messages()
            params["tools"] = context.get_tool_definitions()

            try:
                raw_response = await self._call_model(params)
                try:
                    response = normalize_response(raw_response)
                    usage = response["usage"]
                    context.add_token_usage(
                        int(usage.get("input_tokens") or 0),
                        int(usage.get("output_tokens") or 0),
                    )
                except (TypeError, ValueError, AttributeError) as e:
                    raise TransportError(f"Malformed model response: {e}") from e
            except TransportError as e:
                logger.error("Error in iteration %s: %s", iteration, e)
                context.fail(str(e))
                break

            self._fire(self._on_iteration, iteration, raw_response, context)

            content = normalize_content_blocks(response["content"])
            context.add_message({"role": "assistant", "content": content})

            stop_reason = response["stop_reason"]

            # Every tool_use needs a tool_result in the next message, whatever
            # the stop reason (a max_tokens turn can still hold complete calls).
            tool_uses = extract_tool_uses(content)

            if tool_uses:
                tool_results = await self._execute_tools(context, tool_uses)
                context.add_message({"role": "user", "content": tool_results})
            elif stop_reason == "end_turn":
                context.complete(extract_text_content(content))
                logger.info("Agent completed in %s iterations", iteration)
                break
            else:
                logger.warning("Stop reason '%s' in iteration %s, continuing", stop_reason, iteration)

        if not context.is_completed():
            error = MaxIterationsExceeded(config.max_iterations)
            context.fail(str(error))
            logger.warning("Max iterations reached (%s)", config.max_iterations)

        return context

    def run(self, context: AgentContext) -> AgentContext:
        """Blocking wrapper around ``execute`` for synchronous callers."""
        return asyncio.run(self.execute(context))
