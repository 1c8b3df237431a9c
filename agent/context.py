"""Conversation state owned by a single agent run."""

import copy
import logging
import time
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from agent.config import AgentConfig
from agent.result import AgentResult
from tools.registry import ToolRegistry
from tools.tool import Tool

logger = logging.getLogger(__name__)


class RunStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class MessageLog:
    """
    Append-only, position-indexed message sequence.

    Messages are copied on the way in and on the way out, so readers (observer
    hooks, results) can never alter what the owning run sends to the model.
    """

    def __init__(self, messages: Optional[Iterable[Dict[str, Any]]] = None):
        self._messages: List[Dict[str, Any]] = []
        for message in messages or []:
            self.append(message)

    def append(self, message: Dict[str, Any]) -> int:
        """Append a message and return its position."""
        if message.get("role") not in ("user", "assistant"):
            raise ValueError(f"Invalid message role: {message.get('role')!r}")
        self._messages.append(copy.deepcopy(message))
        return len(self._messages) - 1

    def snapshot(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._messages)

    def __getitem__(self, index: int) -> Dict[str, Any]:
        return copy.deepcopy(self._messages[index])

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self.snapshot())


class AgentContext:
    """
    Execution context for one agent run.

    Holds the task, the message log (starting with the task as a user message),
    the read-only tool set and configuration, the iteration counter, token
    usage, tool-call records and the terminal status.
    """

    def __init__(
        self,
        task: str,
        tools: Union[ToolRegistry, Iterable[Tool], None] = None,
        config: Optional[AgentConfig] = None,
    ):
        self.task = task
        self.tools = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)
        self.config = config or AgentConfig()

        self._log = MessageLog([{"role": "user", "content": task}])
        self._iteration = 0
        self._status = RunStatus.PENDING
        self._answer: Optional[str] = None
        self._error: Optional[str] = None
        self._tool_calls: List[Dict[str, Any]] = []
        self._token_usage = {"input": 0, "output": 0}
        self._metadata: Dict[str, Any] = {}
        self._start_time = time.time()
        self._end_time: Optional[float] = None

    def __repr__(self) -> str:
        return (
            f"<AgentContext {self._status.value}: {self._iteration} iterations, "
            f"{len(self._log)} messages, {self.get_execution_time():.2f}s>"
        )

    # =========================================================================
    # Messages and tools
    # =========================================================================

    def get_messages(self) -> List[Dict[str, Any]]:
        return self._log.snapshot()

    def add_message(self, message: Dict[str, Any]) -> None:
        self._log.append(message)

    @property
    def message_count(self) -> int:
        return len(self._log)

    def get_tool(self, name: str) -> Optional[Tool]:
        return self.tools.get(name)

    def get_tool_definitions(self) -> List[Dict[str, Any]]:
        return self.tools.definitions()

    def record_tool_call(
        self,
        tool_name: str,
        tool_input: Dict[str, Any],
        output: str,
        is_error: bool = False,
    ) -> None:
        self._tool_calls.append({
            "tool": tool_name,
            "input": copy.deepcopy(tool_input),
            "output": output,
            "is_error": is_error,
            "iteration": self._iteration,
            "timestamp": time.time(),
        })

    def get_tool_calls(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._tool_calls)

    # =========================================================================
    # Iterations and usage
    # =========================================================================

    @property
    def iteration(self) -> int:
        return self._iteration

    def increment_iteration(self) -> int:
        self._iteration += 1
        return self._iteration

    def has_reached_max_iterations(self) -> bool:
        return self._iteration >= self.config.max_iterations

    def add_token_usage(self, input_tokens: int, output_tokens: int) -> None:
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("Token counts cannot be negative")
        self._token_usage["input"] += input_tokens
        self._token_usage["output"] += output_tokens

    def get_token_usage(self) -> Dict[str, int]:
        return {
            "input": self._token_usage["input"],
            "output": self._token_usage["output"],
            "total": self._token_usage["input"] + self._token_usage["output"],
        }

    def add_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self._metadata.get(key, default)

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def status(self) -> RunStatus:
        return self._status

    def is_completed(self) -> bool:
        """True once the run reached a terminal state, successful or not."""
        return self._status is not RunStatus.PENDING

    def has_failed(self) -> bool:
        return self._status is RunStatus.FAILED

    @property
    def answer(self) -> Optional[str]:
        return self._answer

    @property
    def error(self) -> Optional[str]:
        return self._error

    def complete(self, answer: str) -> None:
        if self.is_completed():
            logger.debug("Ignoring complete() on a %s context", self._status.value)
            return
        self._status = RunStatus.COMPLETED
        self._answer = answer
        self._end_time = time.time()

    def fail(self, reason: str) -> None:
        if self.is_completed():
            logger.debug("Ignoring fail() on a %s context", self._status.value)
            return
        self._status = RunStatus.FAILED
        self._error = reason or "Unknown error"
        self._end_time = time.time()

    def get_execution_time(self) -> float:
        end_time = self._end_time if self._end_time is not None else time.time()
        return end_time - self._start_time

    # =========================================================================
    # Export
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.task,
            "status": self._status.value,
            "messages": self.get_messages(),
            "iteration": self._iteration,
            "answer": self._answer,
            "error": self._error,
            "tool_calls": self.get_tool_calls(),
            "token_usage": self.get_token_usage(),
            "metadata": dict(self._metadata),
            "execution_time": self.get_execution_time(),
        }

    def to_result(self) -> AgentResult:
        """Build the AgentResult for this run."""
        metadata = {
            "execution_time": self.get_execution_time(),
            "start_time": self._start_time,
            "end_time": self._end_time,
        }
        metadata.update(self._metadata)

        if self._status is RunStatus.COMPLETED:
            return AgentResult.succeeded(
                answer=self._answer or "",
                messages=self.get_messages(),
                iterations=self._iteration,
                token_usage=self.get_token_usage(),
                tool_calls=self.get_tool_calls(),
                metadata=metadata,
            )

        return AgentResult.failed(
            error=self._error or "Run did not complete",
            messages=self.get_messages(),
            iterations=self._iteration,
            token_usage=self.get_token_usage(),
            tool_calls=self.get_tool_calls(),
            metadata=metadata,
        )
