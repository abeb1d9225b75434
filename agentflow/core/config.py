# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
agentflow configuration - single source of truth.
YAML for settings. Env vars ONLY for secrets and the log level override.
"""

import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from agentflow.core.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "configs/agentflow.yaml"


# =============================================================================
# CONFIGURATION DATACLASS
# =============================================================================

@dataclass(frozen=True)
class Config:
    """
    Immutable runtime configuration.
    All values from YAML. No hidden state.
    """

    # -- LLM --
    llm_provider: Optional[str] = None  # anthropic | openai; inferred from llm_model when unset
    llm_model: str = "claude-sonnet-4-5"
    llm_max_tokens: int = 4096
    llm_temperature: float = 0.7

    # -- Action round-loop --
    max_rounds: int = 10

    # -- Logging --
    log_level: str = "INFO"
    log_format: str = "json"
    history_max_length: int = 10
    include_timestamp: bool = True
    debug_image_path: Optional[str] = None

    # -- Event sink --
    event_sink_url: Optional[str] = None
    http_timeout: float = 10.0

    def get_anthropic_api_key(self) -> Optional[str]:
        """Get Anthropic API key from environment"""
        return get_anthropic_api_key()

    def get_openai_api_key(self) -> Optional[str]:
        """Get OpenAI API key from environment"""
        return get_openai_api_key()


# =============================================================================
# SECRETS - The ONLY thing from environment variables
# =============================================================================

def get_anthropic_api_key() -> Optional[str]:
    """API keys cannot be in version control."""
    return os.getenv("ANTHROPIC_API_KEY")


def get_openai_api_key() -> Optional[str]:
    """API keys cannot be in version control."""
    return os.getenv("OPENAI_API_KEY")


# =============================================================================
# LOADER
# =============================================================================

def load_config(path: str = DEFAULT_CONFIG_PATH) -> Config:
    """
    Load configuration from YAML.
    Returns defaults if file doesn't exist.
    """
    if not Path(path).exists():
        return Config(log_level=os.getenv("LOG_LEVEL", "INFO"))

    try:
        with open(path) as f:
            y = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config: {e}", config_file=path)

    if not isinstance(y, dict):
        raise ConfigurationError("Config root must be a mapping", config_file=path)

    # Helper to safely navigate nested dicts
    def get(d: dict, *keys, default=None):
        for k in keys:
            if not isinstance(d, dict):
                return default
            d = d.get(k, {})
        return d if d != {} else default

    max_rounds = get(y, "action", "max_rounds", default=10)
    if not isinstance(max_rounds, int) or max_rounds < 1:
        raise ConfigurationError("action.max_rounds must be a positive integer", config_file=path)

    include_timestamp = get(y, "logging", "include_timestamp")

    return Config(
        # LLM
        llm_provider=get(y, "llm", "provider"),
        llm_model=get(y, "llm", "model") or "claude-sonnet-4-5",
        llm_max_tokens=get(y, "llm", "max_tokens") or 4096,
        llm_temperature=get(y, "llm", "temperature", default=0.7),

        # Action
        max_rounds=max_rounds,

        # Logging
        log_level=os.getenv("LOG_LEVEL") or get(y, "logging", "level") or "INFO",
        log_format=get(y, "logging", "format") or "json",
        history_max_length=get(y, "logging", "history_max_length") or 10,
        include_timestamp=True if include_timestamp is None else bool(include_timestamp),
        debug_image_path=get(y, "logging", "debug_image_path"),

        # Events
        event_sink_url=get(y, "events", "sink_url"),
        http_timeout=get(y, "http", "timeout") or 10.0,
    )


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global config instance."""
    global _config
    if _config is None:
        config_path = os.getenv("AGENTFLOW_CONFIG_PATH", DEFAULT_CONFIG_PATH)
        _config = load_config(config_path)
    return _config


def reload_config() -> Config:
    """Force reload configuration."""
    global _config
    _config = None
    return get_config()
