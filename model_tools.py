#!/usr/bin/env python3
"""
Model Tools Module

This module builds the tool definitions sent with each model request and
dispatches the tool calls the model asks for. It is the single place where a
tool invocation crosses from the agent loop into user code, so it is also the
place where every failure is turned into an error ToolResult instead of an
exception.

Usage:
    from model_tools import get_tool_definitions, handle_function_call

    # Definitions for every registered tool
    tools = get_tool_definitions(registry)

    # Only specific tools
    tools = get_tool_definitions(registry, enabled_tools=["web_search"])

    # Handle a function call from the model
    result = await handle_function_call(registry, "web_search", {"query": "Python"})
"""

import logging
from typing import Any, Dict, List

from agent.errors import ToolExecutionError, UnknownToolError
from tools.registry import ToolRegistry
from tools.tool import ToolResult

logger = logging.getLogger(__name__)


def filter_tools(
    registry: ToolRegistry,
    enabled_tools: List[str] = None,
    disabled_tools: List[str] = None,
) -> ToolRegistry:
    """
    Build a registry holding only the tools that pass the filters.

    Filter Priority (higher priority overrides lower):
    1. enabled_tools (only these tools, overrides disabled_tools)
    2. disabled_tools (exclude these tools)

    Args:
        registry (ToolRegistry): Full tool set
        enabled_tools (List[str]): Only include these specific tools
        disabled_tools (List[str]): Exclude these specific tools

    Returns:
        ToolRegistry: Filtered tool set, in registration order
    """
    if enabled_tools and disabled_tools:
        overlap = set(enabled_tools) & set(disabled_tools)
        if overlap:
            logger.warning("Conflicting tools %s in both enabled and disabled; enabled_tools takes priority",
                           sorted(overlap))

    # HIGHEST PRIORITY: enabled_tools (overrides everything)
    if enabled_tools:
        tool_names_to_include = set(enabled_tools)
        filtered = ToolRegistry(tool for tool in registry if tool.name in tool_names_to_include)

        # Warn about requested tools that aren't available
        missing_tools = tool_names_to_include - set(filtered.names())
        if missing_tools:
            logger.warning("Requested tools not available: %s", sorted(missing_tools))

        return filtered

    if disabled_tools:
        tool_names_to_exclude = set(disabled_tools)
        filtered = ToolRegistry(tool for tool in registry if tool.name not in tool_names_to_exclude)

        # Show what was actually filtered out
        actually_excluded = set(registry.names()) & tool_names_to_exclude
        if actually_excluded:
            logger.debug("Excluded tools: %s", sorted(actually_excluded))

        return filtered

    return ToolRegistry(registry)


def get_tool_definitions(
    registry: ToolRegistry,
    enabled_tools: List[str] = None,
    disabled_tools: List[str] = None,
) -> List[Dict[str, Any]]:
    """
    Get tool definitions for model API calls with optional filtering.

    Args:
        registry (ToolRegistry): Available tools
        enabled_tools (List[str]): Only include these specific tools
        disabled_tools (List[str]): Exclude these specific tools

    Returns:
        List[Dict]: Tool definitions (name, description, input_schema)
    """
    return filter_tools(registry, enabled_tools, disabled_tools).definitions()


async def handle_function_call(
    registry: ToolRegistry,
    function_name: str,
    function_args: Dict[str, Any],
) -> ToolResult:
    """
    Main function call dispatcher: find the tool by name and run it.

    Args:
        registry (ToolRegistry): Tools the model may call
        function_name (str): Name of the tool to call
        function_args (Dict): Arguments for the tool

    Returns:
        ToolResult: The tool's result, or an error result

    Raises:
        None: Returns errors as ToolResult instead of raising exceptions
    """
    tool = registry.get(function_name)
    if tool is None:
        error = UnknownToolError(function_name)
        logger.warning("%s", error)
        return ToolResult.error(str(error))

    try:
        return await tool.execute(function_args)
    except Exception as e:
        error = ToolExecutionError(function_name, str(e))
        logger.error("Error executing %s: %s", function_name, e)
        return ToolResult.error(str(error))
