#!/usr/bin/env python3
"""
AI Agent Runner

Binds a model client, a tool set and a run configuration together. Every call
to ``run``/``arun`` builds a fresh AgentContext and drives it with a ReactLoop,
so one AIAgent can serve many concurrent runs without sharing mutable state.

Usage:
    from run_agent import AIAgent
    from tools import Tool

    agent = AIAgent(client=anthropic.Anthropic(), tools=[calculator])
    result = agent.run("What is 17 * 23?")
    print(result.answer if result.success else result.error)
"""

import asyncio
import logging
from typing import Any, Iterable, List, Optional, Union

from agent.config import AgentConfig
from agent.context import AgentContext
from agent.react_loop import IterationCallback, ReactLoop, ToolExecutionCallback
from agent.result import AgentResult
from model_tools import filter_tools
from tools.registry import ToolRegistry
from tools.tool import Tool

logger = logging.getLogger(__name__)


class AIAgent:
    """
    Tool-using agent backed by a model client.
    """

    def __init__(
        self,
        client: Any,
        tools: Union[ToolRegistry, Iterable[Tool], None] = None,
        config: Optional[AgentConfig] = None,
        enabled_tools: List[str] = None,
        disabled_tools: List[str] = None,
        on_iteration: Optional[IterationCallback] = None,
        on_tool_execution: Optional[ToolExecutionCallback] = None,
    ):
        """
        Initialize the agent.

        Args:
            client: Model client exposing ``messages.create(**params)``
            tools: Tools the model may call (names must be unique)
            config: Run configuration (defaults to AgentConfig())
            enabled_tools (List[str]): Only expose these tools to the model
            disabled_tools (List[str]): Hide these tools from the model
            on_iteration: Observer called after every model turn
            on_tool_execution: Observer called after every tool call
        """
        registry = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)
        self.tools = filter_tools(registry, enabled_tools, disabled_tools)
        self.config = config or AgentConfig()
        self.loop = ReactLoop(client)

        if on_iteration is not None:
            self.loop.on_iteration(on_iteration)
        if on_tool_execution is not None:
            self.loop.on_tool_execution(on_tool_execution)

        logger.debug("AIAgent ready with tools %s (max_iterations=%s)",
                     self.tools.names(), self.config.max_iterations)

    @property
    def client(self) -> Any:
        return self.loop.client

    def create_context(self, task: str) -> AgentContext:
        return AgentContext(task, tools=self.tools, config=self.config)

    async def arun(self, task: str) -> AgentResult:
        """Run one task to completion on the current event loop."""
        context = self.create_context(task)
        await self.loop.execute(context)
        return context.to_result()

    def run(self, task: str) -> AgentResult:
        """Blocking wrapper around ``arun``."""
        return asyncio.run(self.arun(task))
