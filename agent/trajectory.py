"""Trajectory conversion and JSONL saving for finished runs.

Message logs are converted to ShareGPT-style ``{"from", "value"}`` turns:
user text becomes ``human``, assistant turns become ``gpt`` (tool calls
rendered as ``<tool_call>`` tags) and tool results become ``tool`` turns
(rendered as ``<tool_response>`` tags).
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Union

from agent.result import AgentResult

logger = logging.getLogger(__name__)


def _render_assistant(content: Any) -> str:
    if isinstance(content, str):
        return content

    parts = []
    for block in content:
        if block.get("type") == "text" and block.get("text"):
            parts.append(block["text"])
        elif block.get("type") == "tool_use":
            call = {"name": block.get("name"), "arguments": block.get("input") or {}}
            parts.append(f"<tool_call>\n{json.dumps(call, ensure_ascii=False)}\n</tool_call>")
    return "\n".join(parts)


def _render_tool_results(content: List[Dict[str, Any]]) -> str:
    parts = []
    for block in content:
        response = {
            "tool_call_id": block.get("tool_use_id"),
            "content": block.get("content"),
        }
        if block.get("is_error"):
            response["is_error"] = True
        parts.append(f"<tool_response>\n{json.dumps(response, ensure_ascii=False)}\n</tool_response>")
    return "\n".join(parts)


def convert_to_trajectory_format(messages: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Convert a protocol message log into ShareGPT-format turns."""
    trajectory = []
    for message in messages:
        content = message.get("content")
        if message.get("role") == "assistant":
            trajectory.append({"from": "gpt", "value": _render_assistant(content)})
        elif isinstance(content, list) and any(block.get("type") == "tool_result" for block in content):
            trajectory.append({"from": "tool", "value": _render_tool_results(content)})
        else:
            trajectory.append({"from": "human", "value": content if isinstance(content, str) else json.dumps(content)})
    return trajectory


def build_trajectory_entry(key: str, result: AgentResult, model: str = None) -> Dict[str, Any]:
    """JSONL entry for one finished batch task."""
    return {
        "task_id": key,
        "conversations": convert_to_trajectory_format(result.messages),
        "completed": result.success,
        "answer": result.answer,
        "error": result.error,
        "iterations": result.iterations,
        "token_usage": result.token_usage,
        "tool_calls": result.tool_calls,
        "timestamp": datetime.now().isoformat(),
        "model": model,
    }


def save_trajectories(entries: List[Dict[str, Any]], filename: Union[str, Path]) -> Path:
    """Write trajectory entries to a JSONL file, one entry per line.

    Args:
        entries: Entries built by ``build_trajectory_entry``.
        filename: Output path; parent directories are created.

    Returns:
        The path written.
    """
    path = Path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        for entry in entries:
            f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")

    logger.info("Saved %s trajectories to %s", len(entries), path)
    return path
