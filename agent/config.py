"""
Run configuration for agent executions.

Defaults can be overridden from ~/.agentloop/config.yaml (or
$AGENTLOOP_HOME/config.yaml) and from environment variables:
- AGENTLOOP_MODEL           - Model name sent to the client
- AGENTLOOP_MAX_ITERATIONS  - Iteration budget per run

Usage:
    from agent.config import AgentConfig

    config = AgentConfig.load()
    config = AgentConfig(max_iterations=5, model="claude-sonnet-4-20250514")
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


# =============================================================================
# Config paths
# =============================================================================

def get_agentloop_home() -> Path:
    """Get the agentloop home directory (~/.agentloop)."""
    return Path(os.getenv("AGENTLOOP_HOME", Path.home() / ".agentloop"))

def get_config_path() -> Path:
    """Get the main config file path."""
    return get_agentloop_home() / "config.yaml"

def get_env_path() -> Path:
    """Get the .env file path (for API keys)."""
    return get_agentloop_home() / ".env"


# =============================================================================
# Config loading
# =============================================================================

DEFAULT_CONFIG = {
    "model": "claude-sonnet-4-20250514",
    "max_tokens": 4096,
    "max_iterations": 10,
    "temperature": None,
    "system": None,
    "tool_concurrency": 5,

    "batch": {
        "concurrency": 3,
    },
}


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from config.yaml merged over DEFAULT_CONFIG."""
    config_path = Path(path) if path else get_config_path()

    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}

            if not isinstance(user_config, dict):
                logger.warning("Ignoring config %s: expected a mapping, got %s",
                               config_path, type(user_config).__name__)
                user_config = {}

            # Deep merge
            for key, value in user_config.items():
                if isinstance(value, dict) and key in config and isinstance(config[key], dict):
                    config[key].update(value)
                else:
                    config[key] = value
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Failed to load config %s: %s", config_path, e)

    if os.getenv("AGENTLOOP_MODEL"):
        config["model"] = os.environ["AGENTLOOP_MODEL"]
    if os.getenv("AGENTLOOP_MAX_ITERATIONS"):
        try:
            config["max_iterations"] = int(os.environ["AGENTLOOP_MAX_ITERATIONS"])
        except ValueError:
            logger.warning("Ignoring non-integer AGENTLOOP_MAX_ITERATIONS=%r",
                           os.environ["AGENTLOOP_MAX_ITERATIONS"])

    return config


@dataclass(frozen=True)
class AgentConfig:
    """
    Read-only configuration for one agent run.

    ``extra_params`` is merged into the request sent to the model client, for
    vendor options this core does not know about.
    """
    model: str = DEFAULT_CONFIG["model"]
    max_tokens: int = DEFAULT_CONFIG["max_tokens"]
    max_iterations: int = DEFAULT_CONFIG["max_iterations"]
    temperature: Optional[float] = None
    system: Optional[str] = None
    tool_concurrency: int = DEFAULT_CONFIG["tool_concurrency"]
    extra_params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.max_iterations < 0:
            raise ValueError(f"max_iterations must be non-negative, got {self.max_iterations}")
        if self.tool_concurrency < 1:
            raise ValueError(f"tool_concurrency must be at least 1, got {self.tool_concurrency}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentConfig":
        """Build a config from a dict, ignoring keys that are not config fields."""
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AgentConfig":
        """Build a config from config.yaml and the environment."""
        return cls.from_dict(load_config(path))

    def to_api_params(self) -> Dict[str, Any]:
        """Request parameters for the model client (messages and tools excluded)."""
        params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
        }
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if self.system:
            params["system"] = self.system
        params.update(self.extra_params)
        return params
