#!/usr/bin/env python3
"""
Tools Package

This package contains the tool primitives the agent loop executes:

- tool: Tool definitions and the ToolResult value returned by every call
- registry: ToolRegistry, the unique-name tool set handed to a run
- parallel_executor: ParallelToolExecutor for concurrent, order-preserving batches

Dispatching a single call by name lives in model_tools.py, which the agent
loop and the executor both go through. parallel_executor is not re-exported
here because it depends on model_tools, which in turn imports this package.
"""

from .tool import Tool, ToolResult
from .registry import ToolRegistry

__all__ = [
    'Tool',
    'ToolResult',
    'ToolRegistry',
]
