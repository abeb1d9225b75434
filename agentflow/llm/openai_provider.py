# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
OpenAI Chat Completions provider

Translates the Anthropic-shaped conversation used throughout agentflow into
OpenAI's format and converts responses back, so the round-loop only ever sees
one message shape.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import openai

from agentflow.llm.types import (
    LLMParameters,
    LLMResponse,
    LLMStreamHandler,
    Message,
    ToolCall,
    ToolDefinition,
)

logger = logging.getLogger(__name__)

_STOP_REASONS = {
    "tool_calls": "tool_use",
    "stop": "end_turn",
    "length": "max_tokens",
}


def convert_tools_to_openai_format(tools: List[ToolDefinition]) -> List[Dict]:
    """Convert Claude tool format to OpenAI function tools"""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            }
        }
        for tool in tools
    ]


def convert_tool_choice_to_openai_format(tool_choice: Optional[Dict[str, Any]]) -> Optional[Any]:
    if not tool_choice:
        return None
    choice_type = tool_choice.get("type")
    if choice_type == "tool":
        return {"type": "function", "function": {"name": tool_choice["name"]}}
    if choice_type == "any":
        return "required"
    return "auto"


def _image_part(block: Dict[str, Any]) -> Dict[str, Any]:
    source = block.get("source", {})
    if source.get("type") == "base64":
        url = f"data:{source.get('media_type', 'image/png')};base64,{source.get('data', '')}"
    else:
        url = source.get("url", "")
    return {"type": "image_url", "image_url": {"url": url}}


def _tool_result_text(content: Any) -> str:
    # Tool messages only carry text; images are replaced by a marker
    if isinstance(content, str):
        return content
    parts = []
    for item in content or []:
        if item.get("type") == "text":
            parts.append(item.get("text", ""))
        elif item.get("type") == "image":
            parts.append("[image]")
    return "\n".join(parts)


def convert_messages_to_openai_format(messages: List[Message]) -> List[Dict]:
    """Convert message history to OpenAI format"""
    openai_messages = []

    for msg in messages:
        role = msg["role"]
        content = msg["content"]

        if role == "system":
            openai_messages.append({"role": "system", "content": content})

        elif role == "user":
            if isinstance(content, str):
                openai_messages.append({"role": "user", "content": content})
                continue

            user_parts = []
            for block in content:
                block_type = block.get("type")
                if block_type == "tool_result":
                    text = _tool_result_text(block.get("content"))
                    if block.get("is_error"):
                        text = text or "Error"
                    openai_messages.append({
                        "role": "tool",
                        "tool_call_id": block.get("tool_use_id"),
                        "content": text,
                    })
                elif block_type == "text":
                    user_parts.append({"type": "text", "text": block.get("text", "")})
                elif block_type == "image":
                    user_parts.append(_image_part(block))
            if user_parts:
                openai_messages.append({"role": "user", "content": user_parts})

        elif role == "assistant":
            if isinstance(content, str):
                openai_messages.append({"role": "assistant", "content": content})
                continue

            text_parts = []
            tool_calls = []
            for block in content:
                if block.get("type") == "text":
                    text_parts.append(block.get("text", ""))
                elif block.get("type") == "tool_use":
                    tool_calls.append({
                        "id": block["id"],
                        "type": "function",
                        "function": {
                            "name": block["name"],
                            "arguments": json.dumps(block.get("input", {})),
                        }
                    })

            assistant_msg: Dict[str, Any] = {
                "role": "assistant",
                "content": "\n".join(text_parts) if text_parts else None,
            }
            if tool_calls:
                assistant_msg["tool_calls"] = tool_calls
            openai_messages.append(assistant_msg)

    return openai_messages


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Tool call arguments are not valid JSON: {raw[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


def _build_response(
    text: str,
    tool_calls: List[ToolCall],
    finish_reason: Optional[str],
    usage: Dict[str, int]
) -> LLMResponse:
    content: List[Dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    for call in tool_calls:
        content.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.input})
    return LLMResponse(
        content=content,
        tool_calls=tool_calls,
        stop_reason=_STOP_REASONS.get(finish_reason, finish_reason),
        text_content=text or None,
        usage=usage,
    )


class OpenAIProvider:
    """LLM provider backed by openai.AsyncOpenAI"""

    def __init__(
        self,
        model: str,
        client: Optional[openai.AsyncOpenAI] = None,
        api_key: Optional[str] = None,
        default_max_tokens: int = 4096,
    ):
        self.model = model
        self.client = client or openai.AsyncOpenAI(api_key=api_key)
        self.default_max_tokens = default_max_tokens

    def _build_request(self, messages: List[Message], params: LLMParameters) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": convert_messages_to_openai_format(messages),
            "max_tokens": params.max_tokens or self.default_max_tokens,
        }
        if params.temperature is not None:
            request["temperature"] = params.temperature
        if params.tools:
            request["tools"] = convert_tools_to_openai_format(params.tools)
            tool_choice = convert_tool_choice_to_openai_format(params.tool_choice)
            if tool_choice:
                request["tool_choice"] = tool_choice
        return request

    async def generate_text(self, messages: List[Message], params: LLMParameters) -> LLMResponse:
        completion = await self.client.chat.completions.create(**self._build_request(messages, params))
        choice = completion.choices[0]
        message = choice.message

        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                input=_parse_arguments(call.function.arguments),
            )
            for call in (message.tool_calls or [])
        ]
        usage = {}
        if completion.usage is not None:
            usage = {
                "input_tokens": completion.usage.prompt_tokens,
                "output_tokens": completion.usage.completion_tokens,
            }
        return _build_response(message.content or "", tool_calls, choice.finish_reason, usage)

    async def generate_stream(
        self,
        messages: List[Message],
        params: LLMParameters,
        handler: LLMStreamHandler
    ) -> None:
        request = self._build_request(messages, params)
        handler.on_start()

        text_parts: List[str] = []
        # index -> {"id", "name", "arguments"}; tool call deltas arrive in fragments
        pending_calls: Dict[int, Dict[str, str]] = {}
        finish_reason = None
        usage: Dict[str, int] = {}

        try:
            stream = await self.client.chat.completions.create(
                **request,
                stream=True,
                stream_options={"include_usage": True},
            )
            async for chunk in stream:
                if chunk.usage is not None:
                    usage = {
                        "input_tokens": chunk.usage.prompt_tokens,
                        "output_tokens": chunk.usage.completion_tokens,
                    }
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta
                if delta.content:
                    text_parts.append(delta.content)
                    handler.on_content(delta.content)
                for call_delta in delta.tool_calls or []:
                    entry = pending_calls.setdefault(
                        call_delta.index, {"id": "", "name": "", "arguments": ""}
                    )
                    if call_delta.id:
                        entry["id"] = call_delta.id
                    if call_delta.function is not None:
                        if call_delta.function.name:
                            entry["name"] += call_delta.function.name
                        if call_delta.function.arguments:
                            entry["arguments"] += call_delta.function.arguments
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except openai.APIError as e:
            logger.error(f"OpenAI stream failed: {e}", extra={"model": self.model})
            handler.on_error(e)
            return

        tool_calls = []
        for index in sorted(pending_calls):
            entry = pending_calls[index]
            call = ToolCall(
                id=entry["id"],
                name=entry["name"],
                input=_parse_arguments(entry["arguments"]),
            )
            tool_calls.append(call)
            handler.on_tool_use(call)

        handler.on_complete(_build_response("".join(text_parts), tool_calls, finish_reason, usage))
