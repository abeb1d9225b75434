# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Parser

Turns workflow JSON documents into runtime Workflow objects and back.
"""

import json
from typing import Any, Dict, List, Optional

from agentflow.core.config import Config
from agentflow.llm.types import LLMParameters
from agentflow.tools.builtin import RETURN_OUTPUT_TOOL, WRITE_CONTEXT_TOOL
from agentflow.workflow.action import Action
from agentflow.workflow.engine import Workflow
from agentflow.workflow.exceptions import WorkflowParseError, WorkflowValidationError
from agentflow.workflow.logging import EventSink, ExecutionLogger
from agentflow.workflow.models import NodeOutput, ValidationIssue, ValidationResult, WorkflowNode
from agentflow.workflow.schema import ACTION_TYPES

BUILTIN_TOOLS = (WRITE_CONTEXT_TOOL, RETURN_OUTPUT_TOOL)


class WorkflowParser:
    """Parse, validate and serialize workflow documents"""

    @classmethod
    def parse(
        cls,
        json_text: str,
        registry: Any = None,
        llm_provider: Any = None,
        config: Optional[Config] = None
    ) -> Workflow:
        """
        Build a Workflow from a JSON document.

        Raises WorkflowParseError for malformed JSON and WorkflowValidationError
        (carrying every issue found) for a document that fails validation.
        """
        try:
            document = json.loads(json_text)
        except json.JSONDecodeError as e:
            raise WorkflowParseError(f"Invalid workflow JSON: {e}") from e

        result = cls.validate(document, registry)
        if not result.valid:
            raise WorkflowValidationError(
                f"Invalid workflow: {', '.join(issue.message for issue in result.errors)}",
                issues=result.errors,
            )

        return cls._to_runtime(document, registry, llm_provider, config)

    @classmethod
    def validate(cls, document: Any, registry: Any = None) -> ValidationResult:
        """Collect every structural problem in a workflow document."""
        errors: List[ValidationIssue] = []

        if not isinstance(document, dict):
            errors.append(ValidationIssue(type="schema", message="Workflow must be an object"))
            return ValidationResult(valid=False, errors=errors)

        for field in ("id", "name", "nodes"):
            if field not in document:
                errors.append(ValidationIssue(
                    type="schema",
                    message=f"Missing required field: {field}",
                    path=f"/{field}",
                ))

        nodes = document.get("nodes")
        if not isinstance(nodes, list):
            errors.append(ValidationIssue(type="type", message="Nodes must be an array", path="/nodes"))
            return ValidationResult(valid=False, errors=errors)

        node_ids = set()
        for index, node in enumerate(nodes):
            if not isinstance(node, dict):
                errors.append(ValidationIssue(
                    type="type",
                    message=f"Node at index {index} must be an object",
                    path=f"/nodes/{index}",
                ))
                continue

            node_id = node.get("id")
            if not node_id:
                errors.append(ValidationIssue(
                    type="schema",
                    message=f"Node at index {index} is missing an id",
                    path=f"/nodes/{index}/id",
                ))
            elif node_id in node_ids:
                errors.append(ValidationIssue(
                    type="reference",
                    message=f"Duplicate node id: {node_id}",
                    path=f"/nodes/{index}/id",
                ))
            else:
                node_ids.add(node_id)

            dependencies = node.get("dependencies")
            if dependencies is not None:
                if not isinstance(dependencies, list):
                    errors.append(ValidationIssue(
                        type="type",
                        message=f"Dependencies of node {node_id} must be an array",
                        path=f"/nodes/{index}/dependencies",
                    ))
                elif not all(isinstance(dep, str) for dep in dependencies):
                    errors.append(ValidationIssue(
                        type="type",
                        message=f"Dependency ids of node {node_id} must be strings",
                        path=f"/nodes/{index}/dependencies",
                    ))

            errors.extend(cls._validate_action(node.get("action"), node_id, index, registry))
            if node.get("output") is not None:
                errors.extend(cls._validate_output(node["output"], node_id, index))

        for index, node in enumerate(nodes):
            if not isinstance(node, dict) or not isinstance(node.get("dependencies"), list):
                continue
            for dep in node["dependencies"]:
                if isinstance(dep, str) and dep not in node_ids:
                    errors.append(ValidationIssue(
                        type="reference",
                        message=f"Node {node.get('id')} references unknown dependency: {dep}",
                        path=f"/nodes/{index}/dependencies",
                    ))

        variables = document.get("variables")
        if variables is not None and not isinstance(variables, dict):
            errors.append(ValidationIssue(type="type", message="Variables must be an object", path="/variables"))

        return ValidationResult(valid=not errors, errors=errors)

    @staticmethod
    def _validate_output(output: Any, node_id: Any, index: int) -> List[ValidationIssue]:
        path = f"/nodes/{index}/output"
        if not isinstance(output, dict):
            return [ValidationIssue(type="type", message=f"Output of node {node_id} must be an object", path=path)]

        errors = []
        if not isinstance(output.get("name"), str) or not output["name"]:
            errors.append(ValidationIssue(
                type="schema",
                message=f"Output of node {node_id} is missing a name",
                path=f"{path}/name",
            ))
        if not isinstance(output.get("description", ""), str):
            errors.append(ValidationIssue(
                type="type",
                message=f"Output description of node {node_id} must be a string",
                path=f"{path}/description",
            ))
        if output.get("output_schema") is not None and not isinstance(output["output_schema"], dict):
            errors.append(ValidationIssue(
                type="type",
                message=f"Output schema of node {node_id} must be an object",
                path=f"{path}/output_schema",
            ))
        return errors

    @staticmethod
    def _validate_action(action: Any, node_id: Any, index: int, registry: Any) -> List[ValidationIssue]:
        path = f"/nodes/{index}/action"
        if not action:
            return [ValidationIssue(type="schema", message=f"Node {node_id} is missing an action", path=path)]
        if not isinstance(action, dict):
            return [ValidationIssue(type="type", message=f"Action of node {node_id} must be an object", path=path)]

        errors = []
        if action.get("type") not in ACTION_TYPES:
            errors.append(ValidationIssue(
                type="type",
                message=f"Invalid action type for node {node_id}: {action.get('type')}",
                path=f"{path}/type",
            ))

        tools = action.get("tools", [])
        if not isinstance(tools, list) or not all(isinstance(t, str) for t in tools):
            errors.append(ValidationIssue(
                type="type",
                message=f"Tools of node {node_id} must be an array of tool names",
                path=f"{path}/tools",
            ))
        elif registry is not None:
            for tool_name in tools:
                if tool_name not in BUILTIN_TOOLS and tool_name not in registry:
                    errors.append(ValidationIssue(
                        type="tool",
                        message=f"Node {node_id} uses unknown tool: {tool_name}",
                        path=f"{path}/tools",
                    ))
        return errors

    @classmethod
    def _to_runtime(
        cls,
        document: Dict[str, Any],
        registry: Any,
        llm_provider: Any,
        config: Optional[Config]
    ) -> Workflow:
        if config is not None:
            logger = ExecutionLogger.from_config(config)
            llm_config = LLMParameters(max_tokens=config.llm_max_tokens, temperature=config.llm_temperature)
            max_rounds = config.max_rounds
            event_sink = EventSink(config.event_sink_url, config.http_timeout) if config.event_sink_url else None
        else:
            logger = ExecutionLogger()
            llm_config = LLMParameters()
            max_rounds = None
            event_sink = None

        workflow = Workflow(
            id=document["id"],
            name=document["name"],
            description=document.get("description"),
            variables=dict(document.get("variables") or {}),
            llm_provider=llm_provider,
            tool_registry=registry,
            logger=logger,
            event_sink=event_sink,
        )

        for node_doc in document["nodes"]:
            action_doc = node_doc["action"]
            # Tool names stay strings here; the engine resolves them per run
            tools = [name for name in action_doc.get("tools", []) if name not in BUILTIN_TOOLS]
            action = Action(
                type=action_doc["type"],
                name=action_doc.get("name", node_doc["id"]),
                description=action_doc.get("description", ""),
                tools=tools,
                llm_config=llm_config,
                max_rounds=max_rounds,
                logger=logger,
            )

            output_doc = node_doc.get("output")
            output = None
            if output_doc is not None:
                output = NodeOutput(
                    name=output_doc["name"],
                    description=output_doc.get("description", ""),
                    output_schema=output_doc.get("output_schema"),
                )
            workflow.add_node(WorkflowNode(
                id=node_doc["id"],
                name=node_doc.get("name"),
                description=node_doc.get("description"),
                dependencies=list(node_doc.get("dependencies") or []),
                output=output,
                action=action,
            ))

        return workflow

    @classmethod
    def serialize(cls, workflow: Workflow) -> str:
        return json.dumps(cls._from_runtime(workflow), indent=2, default=str, ensure_ascii=False)

    @staticmethod
    def _from_runtime(workflow: Workflow) -> Dict[str, Any]:
        return {
            "version": "1.0",
            "id": workflow.id,
            "name": workflow.name,
            "description": workflow.description,
            "nodes": [
                {
                    "id": node.id,
                    "name": node.name,
                    "description": node.description,
                    "dependencies": list(node.dependencies),
                    "output": node.output.model_dump(exclude_none=True),
                    "action": {
                        "type": node.action.type,
                        "name": node.action.name,
                        "description": node.action.description,
                        "tools": [
                            name for name in node.action.tool_names
                            if name not in BUILTIN_TOOLS
                        ],
                    },
                }
                for node in workflow.nodes
            ],
            "variables": dict(workflow.variables),
        }
