# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Anthropic Messages API provider
"""

import logging
from typing import Any, Dict, List, Optional

import anthropic

from agentflow.llm.types import (
    LLMParameters,
    LLMResponse,
    LLMStreamHandler,
    Message,
    ToolCall,
    response_text,
)

logger = logging.getLogger(__name__)


class AnthropicProvider:
    """LLM provider backed by anthropic.AsyncAnthropic"""

    def __init__(
        self,
        model: str,
        client: Optional[anthropic.AsyncAnthropic] = None,
        api_key: Optional[str] = None,
        default_max_tokens: int = 4096,
    ):
        self.model = model
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self.default_max_tokens = default_max_tokens

    def _build_request(self, messages: List[Message], params: LLMParameters) -> Dict[str, Any]:
        # System messages travel in the top-level `system` field
        system_parts = []
        conversation = []
        for message in messages:
            if message["role"] == "system":
                content = message["content"]
                system_parts.append(content if isinstance(content, str) else response_text(content))
            else:
                conversation.append(message)

        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": params.max_tokens or self.default_max_tokens,
            "messages": conversation,
        }
        if system_parts:
            request["system"] = "\n\n".join(system_parts)
        if params.temperature is not None:
            request["temperature"] = params.temperature
        if params.tools:
            request["tools"] = [tool.model_dump() for tool in params.tools]
            if params.tool_choice:
                request["tool_choice"] = params.tool_choice
        return request

    @staticmethod
    def _to_response(message: Any) -> LLMResponse:
        content: List[Dict[str, Any]] = []
        tool_calls: List[ToolCall] = []
        for block in message.content:
            if block.type == "text":
                content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                tool_input = dict(block.input or {})
                content.append({
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": tool_input,
                })
                tool_calls.append(ToolCall(id=block.id, name=block.name, input=tool_input))

        usage = {}
        if getattr(message, "usage", None) is not None:
            usage = {
                "input_tokens": message.usage.input_tokens,
                "output_tokens": message.usage.output_tokens,
            }

        text = response_text(content)
        return LLMResponse(
            content=content,
            tool_calls=tool_calls,
            stop_reason=message.stop_reason,
            text_content=text or None,
            usage=usage,
        )

    async def generate_text(self, messages: List[Message], params: LLMParameters) -> LLMResponse:
        message = await self.client.messages.create(**self._build_request(messages, params))
        return self._to_response(message)

    async def generate_stream(
        self,
        messages: List[Message],
        params: LLMParameters,
        handler: LLMStreamHandler
    ) -> None:
        request = self._build_request(messages, params)
        handler.on_start()
        try:
            async with self.client.messages.stream(**request) as stream:
                async for event in stream:
                    if event.type == "text":
                        handler.on_content(event.text)
                    elif event.type == "content_block_stop" and event.content_block.type == "tool_use":
                        block = event.content_block
                        handler.on_tool_use(
                            ToolCall(id=block.id, name=block.name, input=dict(block.input or {}))
                        )
                final_message = await stream.get_final_message()
        except anthropic.APIError as e:
            logger.error(f"Anthropic stream failed: {e}", extra={"model": self.model})
            handler.on_error(e)
            return

        handler.on_complete(self._to_response(final_message))
