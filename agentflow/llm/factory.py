# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Provider selection by model name
"""

from typing import Optional

from agentflow.core.config import Config, get_config
from agentflow.core.errors import ConfigurationError
from agentflow.llm.types import LLMProvider

PROVIDERS = ("anthropic", "openai")


def provider_for_model(model_name: str) -> str:
    """Determine which provider serves a model"""
    if model_name.startswith("gpt-") or model_name.startswith("o1-"):
        return "openai"
    # Default to Anthropic for claude-* and unknown models
    return "anthropic"


def build_provider(config: Optional[Config] = None, model: Optional[str] = None) -> LLMProvider:
    """
    Build the LLM provider for a model.

    Args:
        config: Runtime configuration (global config when omitted)
        model: Model name overriding config.llm_model; routed by its prefix

    Returns:
        Provider instance ready for generate_text / generate_stream
    """
    config = config or get_config()
    model_name = model or config.llm_model
    if model is None and config.llm_provider:
        provider = config.llm_provider.lower()
        if provider not in PROVIDERS:
            raise ConfigurationError(
                f"Unknown LLM provider: {config.llm_provider}",
                details={"supported": list(PROVIDERS)},
            )
    else:
        provider = provider_for_model(model_name)

    if provider == "openai":
        api_key = config.get_openai_api_key()
        if not api_key:
            raise ConfigurationError(f"OPENAI_API_KEY is not set but model {model_name} requires it")
        from agentflow.llm.openai_provider import OpenAIProvider
        return OpenAIProvider(model_name, api_key=api_key, default_max_tokens=config.llm_max_tokens)

    api_key = config.get_anthropic_api_key()
    if not api_key:
        raise ConfigurationError(f"ANTHROPIC_API_KEY is not set but model {model_name} requires it")
    from agentflow.llm.anthropic_provider import AnthropicProvider
    return AnthropicProvider(model_name, api_key=api_key, default_max_tokens=config.llm_max_tokens)
