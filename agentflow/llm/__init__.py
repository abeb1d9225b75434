# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
LLM provider contract and adapters.
"""

from agentflow.llm.types import (
    LLMParameters,
    LLMProvider,
    LLMResponse,
    LLMStreamHandler,
    Message,
    ToolCall,
    ToolDefinition,
)
from agentflow.llm.factory import build_provider, provider_for_model

__all__ = [
    "LLMParameters",
    "LLMProvider",
    "LLMResponse",
    "LLMStreamHandler",
    "Message",
    "ToolCall",
    "ToolDefinition",
    "build_provider",
    "provider_for_model",
]
