# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
LLM provider contract.

Messages are plain dicts in Anthropic wire shape:
    {"role": "system" | "user" | "assistant", "content": str | [block, ...]}
with block types text, image, tool_use and tool_result.
"""

from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

Message = Dict[str, Any]


class ToolDefinition(BaseModel):
    """Tool advertised to the LLM"""
    name: str
    description: str
    input_schema: Dict[str, Any]


class ToolCall(BaseModel):
    """Tool invocation requested by the LLM"""
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class LLMParameters(BaseModel):
    """Per-request generation parameters"""
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    tools: List[ToolDefinition] = Field(default_factory=list)
    tool_choice: Optional[Dict[str, Any]] = None  # e.g. {"type": "tool", "name": "return_output"}

    def with_tools(
        self,
        tools: List[ToolDefinition],
        tool_choice: Optional[Dict[str, Any]] = None
    ) -> "LLMParameters":
        return self.model_copy(update={"tools": list(tools), "tool_choice": tool_choice})


class LLMResponse(BaseModel):
    """Completed LLM turn"""
    content: List[Dict[str, Any]] = Field(default_factory=list)
    tool_calls: List[ToolCall] = Field(default_factory=list)
    stop_reason: Optional[str] = None
    text_content: Optional[str] = None
    usage: Dict[str, int] = Field(default_factory=dict)


class LLMStreamHandler:
    """
    Receives streaming events from a provider.

    Callbacks are synchronous; a handler that needs to do async work from
    on_tool_use schedules it as a task and exposes it for the caller to join.
    """

    def on_start(self) -> None:
        pass

    def on_content(self, text: str) -> None:
        pass

    def on_tool_use(self, call: ToolCall) -> None:
        pass

    def on_complete(self, response: LLMResponse) -> None:
        pass

    def on_error(self, error: BaseException) -> None:
        pass


class LLMProvider(Protocol):
    async def generate_text(
        self,
        messages: List[Message],
        params: LLMParameters
    ) -> LLMResponse:
        ...

    async def generate_stream(
        self,
        messages: List[Message],
        params: LLMParameters,
        handler: LLMStreamHandler
    ) -> None:
        ...


def response_text(content: List[Dict[str, Any]]) -> str:
    """Concatenate the text blocks of a response."""
    return "".join(
        block.get("text", "") for block in content if block.get("type") == "text"
    )
