# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow JSON schema.

Handed to workflow generators so externally produced documents stay within
what the parser accepts. ToolRegistry.get_workflow_schema() fills in the
allowed tool names.
"""

import copy
from typing import Any, Dict, List

ACTION_TYPES = ["prompt"]

WORKFLOW_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["id", "name", "nodes"],
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string"},
        "description": {"type": "string"},
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "action"],
                "properties": {
                    "id": {"type": "string"},
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "dependencies": {
                        "type": "array",
                        "items": {"type": "string"},
                    },
                    "output": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string"},
                            "description": {"type": "string"},
                        },
                    },
                    "action": {
                        "type": "object",
                        "required": ["type", "name", "description"],
                        "properties": {
                            "type": {"type": "string", "enum": ACTION_TYPES},
                            "name": {"type": "string"},
                            "description": {"type": "string"},
                            "params": {"type": "object"},
                            "tools": {
                                "type": "array",
                                "items": {"type": "string"},
                            },
                        },
                    },
                },
            },
        },
        "variables": {
            "type": "object",
            "additionalProperties": True,
        },
    },
}


def workflow_schema_with_tools(tool_names: List[str]) -> Dict[str, Any]:
    """Deep copy of the workflow schema restricting action tools to tool_names."""
    schema = copy.deepcopy(WORKFLOW_SCHEMA)
    action_properties = schema["properties"]["nodes"]["items"]["properties"]["action"]["properties"]
    action_properties["tools"] = {
        "type": "array",
        "items": {
            "type": "string",
            "enum": list(tool_names),
        },
    }
    return schema
