"""Structured outcome of an agent run."""

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


def _empty_usage() -> Dict[str, int]:
    return {"input": 0, "output": 0, "total": 0}


@dataclass
class AgentResult:
    """
    Result of one agent run.

    A failed run always carries a human-readable ``error``; a successful one
    carries the final ``answer``.
    """
    success: bool
    answer: str = ""
    error: Optional[str] = None
    iterations: int = 0
    messages: List[Dict[str, Any]] = field(default_factory=list)
    token_usage: Dict[str, int] = field(default_factory=_empty_usage)
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(cls, answer: str, **kwargs) -> "AgentResult":
        return cls(success=True, answer=answer, **kwargs)

    @classmethod
    def failed(cls, error: str, **kwargs) -> "AgentResult":
        if not error or not error.strip():
            raise ValueError("Error message cannot be empty for a failed result")
        return cls(success=False, error=error, **kwargs)

    @property
    def input_tokens(self) -> int:
        return self.token_usage.get("input", 0)

    @property
    def output_tokens(self) -> int:
        return self.token_usage.get("output", 0)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentResult":
        return cls(
            success=bool(data.get("success", False)),
            answer=data.get("answer") or "",
            error=data.get("error"),
            iterations=data.get("iterations", 0),
            messages=list(data.get("messages") or []),
            token_usage={**_empty_usage(), **(data.get("token_usage") or {})},
            tool_calls=list(data.get("tool_calls") or []),
            metadata=dict(data.get("metadata") or {}),
        )

    @classmethod
    def from_json(cls, payload: str) -> "AgentResult":
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("Invalid JSON for AgentResult")
        return cls.from_dict(data)
