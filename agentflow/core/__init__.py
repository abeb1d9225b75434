# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Core utilities and shared modules for agentflow.

This package contains:
- config: Configuration management
- errors: Custom exceptions
- logging: Structured logging
"""

from agentflow.core.config import get_config, load_config, Config
from agentflow.core.errors import AgentflowError, ConfigurationError, ExecutionError
from agentflow.core.logging import get_logger, log_event

__all__ = [
    "get_config",
    "load_config",
    "Config",
    "AgentflowError",
    "ConfigurationError",
    "ExecutionError",
    "get_logger",
    "log_event",
]
