# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Built-in tools every action carries: write_context and return_output.
"""

import json
from typing import Any, Dict, Optional

WRITE_CONTEXT_TOOL = "write_context"
RETURN_OUTPUT_TOOL = "return_output"


def output_sentinel_key(node_id: str) -> str:
    """Variable key return_output writes a node's final params under."""
    return f"__output_{node_id}"


class WriteContextTool:
    """Persist an intermediate value into the workflow-wide variables."""

    name = WRITE_CONTEXT_TOOL
    description = (
        "Write a value to the global workflow context. Use this to store important "
        "intermediate results, but only when a piece of information is essential for "
        "future reference and is missing from the final output specification of the "
        "current action."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "key": {
                "type": "string",
                "description": "The key to store the value under",
            },
            "value": {
                "type": "string",
                "description": "The value to store (objects and arrays must be passed as a JSON string)",
            },
        },
        "required": ["key", "value"],
    }

    def execute(self, context: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        key = params["key"]
        value = params["value"]
        try:
            stored = json.loads(value) if isinstance(value, str) else value
        except json.JSONDecodeError:
            stored = value
        context.variables[key] = stored
        return {"success": True, "key": key, "value": value}


class ReturnOutputTool:
    """
    Terminates an action's round-loop.

    The params are parked under the node's sentinel variable; the action reads
    and deletes it once the loop ends.
    """

    name = RETURN_OUTPUT_TOOL

    def __init__(
        self,
        node_id: str,
        output_description: str,
        output_schema: Optional[Dict[str, Any]] = None
    ):
        self.node_id = node_id
        self.description = (
            "Return the final output of this action. Use it to return a value matching the "
            "required output schema (if specified) and the following description:\n"
            f"  {output_description}\n\n"
            "You can either set 'use_tool_result=true' to return the result of the previous "
            "tool call, or set 'use_tool_result=false' and give 'value' explicitly based on "
            "your understanding. Reuse tool results whenever possible to avoid redundancy."
        )
        self.input_schema = {
            "type": "object",
            "properties": {
                "use_tool_result": {
                    "type": "boolean",
                    "description": "Whether to use the latest tool result as output. When true, 'value' is ignored.",
                },
                "value": output_schema or {
                    "type": ["string", "number", "boolean", "object", "null"],
                    "description": (
                        "The output value. Only provide a value if the previous tool result "
                        "does not fit the output description. Otherwise leave it null."
                    ),
                },
            },
            "required": ["use_tool_result", "value"],
        }

    def execute(self, context: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        context.variables[output_sentinel_key(self.node_id)] = dict(params)
        return {"success": True}
