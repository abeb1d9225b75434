# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
agentflow - LLM agent workflows as dependency graphs of tool-using actions.
"""

from agentflow.tools.registry import ToolRegistry
from agentflow.workflow.action import Action
from agentflow.workflow.callbacks import WorkflowCallback
from agentflow.workflow.context import ExecutionContext
from agentflow.workflow.engine import NodeState, Workflow
from agentflow.workflow.logging import EventSink, ExecutionLogger
from agentflow.workflow.models import NodeInput, NodeOutput, WorkflowNode
from agentflow.workflow.parser import WorkflowParser

__version__ = "0.1.0"

__all__ = [
    "Action",
    "EventSink",
    "ExecutionContext",
    "ExecutionLogger",
    "NodeInput",
    "NodeOutput",
    "NodeState",
    "ToolRegistry",
    "Workflow",
    "WorkflowCallback",
    "WorkflowNode",
    "WorkflowParser",
]
