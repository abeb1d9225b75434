# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Models

Pydantic models for workflow nodes and their input/output contract, plus the
validation report produced by the parser.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class NodeOutput(BaseModel):
    """Output slot of a node. value is written once per successful run."""
    name: str
    description: str = ""
    output_schema: Optional[Dict[str, Any]] = None
    value: Any = None


class NodeInput(BaseModel):
    """Outputs of a node's dependencies, in declaration order"""
    items: List[NodeOutput] = Field(default_factory=list)


class WorkflowNode(BaseModel):
    """Unit of work in the workflow DAG"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    dependencies: List[str] = Field(default_factory=list)
    input: NodeInput = Field(default_factory=NodeInput)
    output: Optional[NodeOutput] = None
    action: Any

    def model_post_init(self, __context: Any) -> None:
        if self.name is None:
            self.name = self.id
        if self.output is None:
            self.output = NodeOutput(
                name=f"{self.name}_output",
                description=f"Output of node {self.name}",
            )


class ValidationIssue(BaseModel):
    """Single problem found while validating a workflow document"""
    type: Literal["schema", "reference", "type", "tool"]
    message: str
    path: Optional[str] = None  # JSON pointer to the offending location


class ValidationResult(BaseModel):
    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
