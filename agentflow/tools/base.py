# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Tool capability interface.

A tool is any object exposing name, description, input_schema and an
execute(context, params) callable. execute may be a plain function or a
coroutine function. Tools holding resources may also expose destroy(context).
"""

import inspect
from typing import Any, Dict, Protocol, runtime_checkable

from agentflow.llm.types import ToolDefinition


@runtime_checkable
class Tool(Protocol):
    name: str
    description: str
    input_schema: Dict[str, Any]

    def execute(self, context: Any, params: Dict[str, Any]) -> Any:
        ...


async def maybe_await(value: Any) -> Any:
    """Resolve a value that may or may not be awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


async def run_tool(tool: Tool, context: Any, params: Dict[str, Any]) -> Any:
    """Call tool.execute, awaiting it when the tool is asynchronous."""
    return await maybe_await(tool.execute(context, params))


async def destroy_tool(tool: Tool, context: Any) -> bool:
    """Release a tool's resources. Returns False when the tool has nothing to destroy."""
    destroy = getattr(tool, "destroy", None)
    if destroy is None:
        return False
    await maybe_await(destroy(context))
    return True


def tool_definition(tool: Tool) -> ToolDefinition:
    """Project a tool onto the name/description/schema triple advertised to the LLM."""
    return ToolDefinition(
        name=tool.name,
        description=tool.description,
        input_schema=tool.input_schema,
    )


class FunctionTool:
    """Wrap a callable taking (context, params) as a Tool."""

    def __init__(self, name: str, description: str, input_schema: Dict[str, Any], func):
        self.name = name
        self.description = description
        self.input_schema = input_schema
        self._func = func

    def execute(self, context: Any, params: Dict[str, Any]) -> Any:
        return self._func(context, params)

    def __repr__(self) -> str:
        return f"FunctionTool(name={self.name!r})"
