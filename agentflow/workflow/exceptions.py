# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Exceptions

Structural errors fail fast before or at execution start. Cancellation is
kept apart from ordinary failures so the engine can tell them apart when
choosing which error to surface.
"""

from typing import List, Optional

from agentflow.core.errors import AgentflowError


class WorkflowException(AgentflowError):
    """Base exception for workflow errors"""
    pass


# Structural errors

class WorkflowValidationError(WorkflowException):
    """Workflow document or graph failed validation"""
    def __init__(self, message: str, field: str = None, issues: Optional[List] = None):
        self.field = field
        self.issues = issues or []
        super().__init__(message, status_code=400)


class WorkflowParseError(WorkflowValidationError):
    """Workflow JSON could not be decoded"""
    pass


class CycleDetectedError(WorkflowException):
    """Dependency graph contains a cycle"""
    def __init__(self, node_id: Optional[str] = None):
        self.node_id = node_id
        if node_id:
            message = f"Circular dependency detected at node '{node_id}'"
        else:
            message = "Invalid workflow: circular dependency detected"
        super().__init__(message, status_code=400)


class DuplicateNodeError(WorkflowException):
    """Node id already present in the workflow"""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node with id '{node_id}' already exists", status_code=409)


class NodeNotFoundError(WorkflowException):
    """Node id is not part of the workflow"""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node with id '{node_id}' not found", status_code=404)


class DependencyError(WorkflowException):
    """Node cannot be removed while other nodes depend on it"""
    def __init__(self, node_id: str, dependents: List[str]):
        self.node_id = node_id
        self.dependents = dependents
        super().__init__(
            f"Cannot remove node '{node_id}': nodes depending on it: {', '.join(dependents)}",
            status_code=409
        )


class WorkflowRunningError(WorkflowException):
    """Operation not allowed while the workflow is executing"""
    def __init__(self, workflow_id: str, operation: str):
        self.workflow_id = workflow_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} while workflow '{workflow_id}' is executing",
            status_code=409
        )


# Tool errors

class DuplicateToolError(WorkflowException):
    """Tool name already registered"""
    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' is already registered", status_code=409)


class ToolNotFoundError(WorkflowException):
    """Tool name is not registered"""
    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' not found", status_code=404)


# Runtime errors

class WorkflowCancelledError(WorkflowException):
    """Execution was cancelled through the workflow or a node token"""
    def __init__(self, message: str = "Workflow cancelled", node_id: Optional[str] = None):
        self.node_id = node_id
        super().__init__(message, status_code=499)


class LLMProviderError(WorkflowException):
    """LLM transport failed during a round"""
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message, status_code=502)


class NodeExecutionError(WorkflowException):
    """Node execution failed"""
    def __init__(self, node_id: str, message: str, context: dict = None):
        self.node_id = node_id
        self.context = context or {}
        super().__init__(f"Node '{node_id}' failed: {message}", details=self.context)
