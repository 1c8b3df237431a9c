"""
Parallel tool execution.

Runs a batch of tool calls against a tool set on the event loop. Calls are
``{"tool": name, "input": {...}}`` dicts and every result is
``{"tool": name, "input": {...}, "result": ToolResult}``. A failing or unknown
tool only affects its own slot; sibling calls always run.

Three modes:
- execute(calls): blocking wrapper for synchronous callers
- execute_async(calls): one Future per call, combine with Future.all/race/all_settled
- execute_batched(calls, concurrency): at most ``concurrency`` calls in flight
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Set, Union

from agent.future import Future
from agent.pool import run_bounded
from model_tools import handle_function_call
from tools.registry import ToolRegistry
from tools.tool import Tool

logger = logging.getLogger(__name__)

ToolCall = Dict[str, Any]


class ParallelToolExecutor:
    """Executes tool calls concurrently while keeping submission order."""

    def __init__(self, tools: Union[ToolRegistry, Iterable[Tool]]):
        self.tools = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)
        self._background: Set[asyncio.Task] = set()

    async def _execute_call(self, call: ToolCall) -> Dict[str, Any]:
        tool_name = call.get("tool", "")
        tool_input = call.get("input") or {}

        logger.debug("Executing tool: %s", tool_name)
        result = await handle_function_call(self.tools, tool_name, tool_input)
        if result.is_error:
            logger.debug("Tool %s returned an error: %s", tool_name, result.content)

        return {
            "tool": tool_name,
            "input": tool_input,
            "result": result,
        }

    def execute(self, calls: List[ToolCall]) -> List[Dict[str, Any]]:
        """
        Run every call concurrently and block until all have finished.

        Must not be called from inside a running event loop; use
        ``execute_batched`` there instead.
        """
        calls = list(calls)
        if not calls:
            return []
        return asyncio.run(self.execute_batched(calls, concurrency=len(calls)))

    def execute_async(self, calls: List[ToolCall]) -> List[Future]:
        """
        Start every call and return one Future per call immediately.

        Requires a running event loop.
        """
        loop = asyncio.get_running_loop()
        futures = []

        for call in calls:
            future = Future()

            async def _run(call=call, future=future):
                try:
                    future.resolve(await self._execute_call(call))
                except Exception as e:
                    future.reject(e)

            task = loop.create_task(_run())
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            futures.append(future)

        return futures

    @staticmethod
    async def wait_all(futures: List[Future], timeout: float = None) -> List[Any]:
        """Wait for every future; raises the first rejection."""
        return await Future.all(futures).wait(timeout)

    async def execute_batched(self, calls: List[ToolCall], concurrency: int = 5) -> List[Dict[str, Any]]:
        """
        Run calls with at most ``concurrency`` in flight.

        As each call finishes the next queued one starts. Results are returned
        in submission order regardless of completion order.
        """
        calls = list(calls)
        logger.debug("Executing %s tools with concurrency %s", len(calls), concurrency)
        results = await run_bounded(calls, self._execute_call, concurrency)
        logger.debug("Completed %s tool executions", len(results))
        return results
