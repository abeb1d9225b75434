# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Tool Registry

Name-keyed collection of tool capabilities available to workflows.
"""

import logging
from typing import Any, Dict, Iterable, List, Union

from agentflow.llm.types import ToolDefinition
from agentflow.tools.base import Tool, tool_definition
from agentflow.workflow.exceptions import DuplicateToolError, ToolNotFoundError
from agentflow.workflow.schema import workflow_schema_with_tools

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Registry of tools keyed by name.

    Registration order is preserved and is the order tools are enumerated
    and advertised in.
    """

    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: Dict[str, Tool] = {}
        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: Tool) -> None:
        """Register a tool. Raises DuplicateToolError if the name is taken."""
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def unregister_tool(self, tool_name: str) -> bool:
        """Remove a tool. Returns whether anything was removed."""
        return self._tools.pop(tool_name, None) is not None

    def get_tool(self, tool_name: str) -> Tool:
        tool = self._tools.get(tool_name)
        if tool is None:
            raise ToolNotFoundError(tool_name)
        return tool

    def has_tools(self, tool_names: Iterable[str]) -> bool:
        return all(name in self._tools for name in tool_names)

    def get_all_tools(self) -> List[Tool]:
        return list(self._tools.values())

    def get_tool_definitions(self) -> List[ToolDefinition]:
        return [tool_definition(tool) for tool in self._tools.values()]

    def get_tool_enum(self) -> List[str]:
        return list(self._tools.keys())

    def get_workflow_schema(self) -> Dict[str, Any]:
        """Workflow JSON schema with action tools constrained to registered names."""
        return workflow_schema_with_tools(self.get_tool_enum())

    def resolve(self, tools: Iterable[Union[str, Tool]]) -> List[Tool]:
        """Turn a mix of tool names and tool objects into tool objects."""
        return [self.get_tool(tool) if isinstance(tool, str) else tool for tool in tools]

    def __contains__(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
