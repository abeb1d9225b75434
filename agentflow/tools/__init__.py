# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Tool capability interface, registry and built-in tools.
"""

from agentflow.tools.base import FunctionTool, Tool, run_tool, tool_definition
from agentflow.tools.builtin import (
    RETURN_OUTPUT_TOOL,
    WRITE_CONTEXT_TOOL,
    ReturnOutputTool,
    WriteContextTool,
    output_sentinel_key,
)
from agentflow.tools.registry import ToolRegistry
from agentflow.tools.universal import universal_tools

__all__ = [
    "FunctionTool",
    "Tool",
    "ToolRegistry",
    "run_tool",
    "tool_definition",
    "RETURN_OUTPUT_TOOL",
    "WRITE_CONTEXT_TOOL",
    "ReturnOutputTool",
    "WriteContextTool",
    "output_sentinel_key",
    "universal_tools",
]
