# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow DAG Engine

Runs a workflow by fanning out over its terminal nodes (nodes nothing depends
on) and walking each branch back through its dependencies.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from agentflow.core.logging import log_event
from agentflow.tools.base import Tool, destroy_tool
from agentflow.workflow.callbacks import WorkflowCallback
from agentflow.workflow.cancellation import CancellationToken
from agentflow.workflow.context import ExecutionContext
from agentflow.workflow.exceptions import (
    CycleDetectedError,
    DependencyError,
    DuplicateNodeError,
    NodeExecutionError,
    NodeNotFoundError,
    ToolNotFoundError,
    WorkflowCancelledError,
    WorkflowRunningError,
)
from agentflow.workflow.logging import EventSink, ExecutionLogger
from agentflow.workflow.models import NodeInput, NodeOutput, WorkflowNode

logger = logging.getLogger(__name__)


class NodeState(str, Enum):
    NOT_STARTED = "not_started"
    EXECUTING = "executing"
    EXECUTED = "executed"
    SKIPPED = "skipped"
    FAILED = "failed"


# validate_dag colours
_UNVISITED, _ON_STACK, _DONE = 0, 1, 2


def _is_cancellation(error: BaseException) -> bool:
    return isinstance(error, (WorkflowCancelledError, asyncio.CancelledError))


class NodeRun:
    """Run state of one node; done is set once the node settles or fails"""

    def __init__(self):
        self.state = NodeState.EXECUTING
        self.error: Optional[BaseException] = None
        self.done = asyncio.Event()


class Workflow:
    """
    Workflow DAG and its executor.

    `variables` is shared by every node of a run and outlives it. Node outputs
    written before a failure stay in place.
    """

    def __init__(
        self,
        id: str,
        name: str,
        description: Optional[str] = None,
        nodes: Optional[List[WorkflowNode]] = None,
        variables: Optional[Dict[str, Any]] = None,
        llm_provider: Any = None,
        tool_registry: Any = None,
        logger: Optional[ExecutionLogger] = None,
        event_sink: Optional[EventSink] = None,
    ):
        self.id = id
        self.name = name
        self.description = description
        self.variables: Dict[str, Any] = variables if variables is not None else {}
        self.llm_provider = llm_provider
        self.tool_registry = tool_registry
        self.logger = logger or ExecutionLogger()
        self.event_sink = event_sink

        self.nodes: List[WorkflowNode] = []
        self._nodes_by_id: Dict[str, WorkflowNode] = {}

        self._running = False
        self._abort = False
        self._callback: Optional[WorkflowCallback] = None
        self._runs: Dict[str, NodeRun] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._executed_nodes: List[str] = []
        self._handed_tools: Dict[int, Tuple[Tool, ExecutionContext]] = {}
        self._first_error: Optional[BaseException] = None

        for node in nodes or []:
            self.add_node(node)

    # Structure

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def executed_nodes(self) -> List[str]:
        """Node ids of the last run, in completion order"""
        return list(self._executed_nodes)

    def node_state(self, node_id: str) -> NodeState:
        self.get_node(node_id)
        run = self._runs.get(node_id)
        return run.state if run else NodeState.NOT_STARTED

    def get_node(self, node_id: str) -> WorkflowNode:
        node = self._nodes_by_id.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def add_node(self, node: WorkflowNode) -> None:
        if self._running:
            raise WorkflowRunningError(self.id, "add node")
        if node.id in self._nodes_by_id:
            raise DuplicateNodeError(node.id)
        self.nodes.append(node)
        self._nodes_by_id[node.id] = node

    def remove_node(self, node_id: str) -> None:
        if self._running:
            raise WorkflowRunningError(self.id, "remove node")
        node = self.get_node(node_id)
        dependents = [n.id for n in self.nodes if node_id in n.dependencies]
        if dependents:
            raise DependencyError(node_id, dependents)
        self.nodes.remove(node)
        del self._nodes_by_id[node_id]

    def terminal_nodes(self) -> List[WorkflowNode]:
        """Nodes no other node lists as a dependency, in node-list order"""
        referenced: Set[str] = set()
        for node in self.nodes:
            referenced.update(node.dependencies)
        return [node for node in self.nodes if node.id not in referenced]

    def validate_dag(self) -> bool:
        """
        Check the dependency graph for cycles.

        Iterative depth-first search; a dependency reached while still on the
        stack closes a cycle. Raises NodeNotFoundError for a dependency that
        names no node.
        """
        colour: Dict[str, int] = {}

        for start in self.nodes:
            if colour.get(start.id, _UNVISITED) != _UNVISITED:
                continue

            colour[start.id] = _ON_STACK
            stack: List[Tuple[str, Iterator[str]]] = [(start.id, iter(start.dependencies))]
            while stack:
                node_id, deps = stack[-1]
                dep_id = next(deps, None)
                if dep_id is None:
                    colour[node_id] = _DONE
                    stack.pop()
                    continue

                dep = self.get_node(dep_id)
                state = colour.get(dep_id, _UNVISITED)
                if state == _ON_STACK:
                    logger.warning(f"Cycle detected in workflow {self.id} at node {dep_id}")
                    return False
                if state == _UNVISITED:
                    colour[dep_id] = _ON_STACK
                    stack.append((dep_id, iter(dep.dependencies)))

        return True

    # Execution

    async def execute(self, callback: Optional[WorkflowCallback] = None) -> List[NodeOutput]:
        """
        Execute the workflow and return the terminal nodes' outputs.

        All terminal branches run concurrently. When one fails the others are
        aborted and awaited, then the first non-cancellation error is raised.
        """
        if self._running:
            raise WorkflowRunningError(self.id, "execute")
        if not self.validate_dag():
            raise CycleDetectedError()

        self._running = True
        self._abort = False
        self._callback = callback
        self._runs = {}
        self._tokens = {}
        self._executed_nodes = []
        self._handed_tools = {}
        self._first_error = None

        await self._emit("workflow_start", name=self.name, nodes=[n.id for n in self.nodes])

        try:
            if callback is not None:
                await callback.call("before_workflow", self)

            terminal = self.terminal_nodes()
            results = await asyncio.gather(
                *(self._execute_branch(node.id) for node in terminal),
                return_exceptions=True
            )

            errors = [r for r in results if isinstance(r, BaseException)]
            if errors:
                error = self._first_error or errors[0]
                if isinstance(error, asyncio.CancelledError):
                    raise WorkflowCancelledError("Workflow cancelled") from error
                raise error

            if callback is not None:
                await callback.call("after_workflow", self, self.variables)

            log_event(logger, "workflow_complete", workflow_id=self.id, status="completed")
            await self._emit("workflow_complete", status="completed", executed_nodes=self.executed_nodes)
            return [node.output for node in terminal]

        except Exception as e:
            self.logger.log("error", f"Workflow {self.id} failed: {e}")
            log_event(logger, "workflow_complete", level="ERROR", workflow_id=self.id, status="failed")
            await self._emit("workflow_complete", status="failed", error=str(e))
            raise
        finally:
            await self._destroy_tools()
            self._running = False
            self._callback = None

    async def _execute_branch(self, node_id: str) -> None:
        try:
            await self.execute_node(node_id)
        except BaseException as e:
            if self._first_error is None and not _is_cancellation(e):
                self._first_error = e
            self.abort_all()
            raise

    async def execute_node(self, node_id: str) -> None:
        """
        Run a node after all of its dependencies.

        Dependencies resolve one after another in declaration order. A node
        being run by another branch is waited for; a node met again on the
        current path raises CycleDetectedError.
        """
        node = self.get_node(node_id)
        if not await self._claim_or_wait(node_id):
            return

        on_path = {node_id}
        stack: List[Tuple[WorkflowNode, Iterator[str]]] = [(node, iter(node.dependencies))]
        try:
            while stack:
                if self._abort:
                    raise WorkflowCancelledError("Workflow cancelled", node_id=stack[-1][0].id)

                current, deps = stack[-1]
                dep_id = next(deps, None)
                if dep_id is None:
                    await self._run_node(current)
                    stack.pop()
                    on_path.discard(current.id)
                    continue

                if dep_id in on_path:
                    raise CycleDetectedError(dep_id)
                dep = self.get_node(dep_id)
                if await self._claim_or_wait(dep_id):
                    on_path.add(dep_id)
                    stack.append((dep, iter(dep.dependencies)))
        except BaseException as e:
            for claimed, _ in stack:
                self._mark_failed(claimed.id, e)
            raise

    async def _claim_or_wait(self, node_id: str) -> bool:
        """
        Claim a node for the calling branch.

        Returns False when the node is already settled, after waiting for it if
        another branch is running it.
        """
        run = self._runs.get(node_id)
        if run is None:
            self._runs[node_id] = NodeRun()
            return True

        if run.state == NodeState.EXECUTING:
            await run.done.wait()

        if run.state == NodeState.FAILED:
            if _is_cancellation(run.error):
                raise WorkflowCancelledError("Workflow cancelled", node_id=node_id)
            raise NodeExecutionError(node_id, str(run.error), {"error_type": type(run.error).__name__})
        return False

    def _settle(self, node_id: str, state: NodeState) -> None:
        run = self._runs[node_id]
        run.state = state
        run.done.set()

    def _mark_failed(self, node_id: str, error: BaseException) -> None:
        run = self._runs.get(node_id)
        if run is None or run.state != NodeState.EXECUTING:
            return
        run.state = NodeState.FAILED
        run.error = error
        run.done.set()

    async def _run_node(self, node: WorkflowNode) -> None:
        node.input = NodeInput(items=[self.get_node(dep_id).output for dep_id in node.dependencies])

        token = CancellationToken(node.id)
        self._tokens[node.id] = token
        context = ExecutionContext(
            variables=self.variables,
            tools=self._resolve_tools(node),
            workflow=self,
            node_id=node.id,
            llm_provider=self.llm_provider,
            callback=self._callback,
            logger=self.logger,
            signal=token,
            on_abort_all=self.abort_all,
        )
        for tool in context.tools.values():
            self._handed_tools[id(tool)] = (tool, context)

        await self._emit("node_start", node_id=node.id)
        self.logger.log("info", f"Executing node {node.id}", context)

        try:
            if self._callback is not None:
                await self._callback.call("before_subtask", node, context)
            if context.aborted or self._abort:
                raise WorkflowCancelledError("Workflow cancelled", node_id=node.id)
            if context.skip:
                self.logger.log("info", f"Node {node.id} skipped", context)
                self._settle(node.id, NodeState.SKIPPED)
                await self._emit("node_complete", node_id=node.id, status="skipped")
                return

            value = await node.action.execute(node.input, node.output, context, node.output.output_schema)
        except Exception as e:
            await self._emit("node_error", node_id=node.id, error=str(e), error_type=type(e).__name__)
            raise
        finally:
            self._tokens.pop(node.id, None)

        node.output.value = value
        self._settle(node.id, NodeState.EXECUTED)
        self._executed_nodes.append(node.id)
        await self._emit("node_complete", node_id=node.id, status="executed")

        if self._callback is not None:
            await self._callback.call("after_subtask", node, context, value)

    def _resolve_tools(self, node: WorkflowNode) -> Dict[str, Tool]:
        tools: Dict[str, Tool] = {}
        for tool in node.action.tools:
            if isinstance(tool, str):
                if self.tool_registry is None:
                    raise ToolNotFoundError(tool)
                tool = self.tool_registry.get_tool(tool)
            tools[tool.name] = tool
        return tools

    async def _destroy_tools(self) -> None:
        handed, self._handed_tools = self._handed_tools, {}
        for tool, context in handed.values():
            try:
                await destroy_tool(tool, context)
            except Exception as e:
                logger.warning(f"Failed to destroy tool {tool.name}: {e}", exc_info=True)

    # Cancellation

    def abort_all(self) -> None:
        """Set the abort flag and cancel every running node's token."""
        self._abort = True
        for token in list(self._tokens.values()):
            token.cancel("Workflow cancelled")

    async def cancel(self) -> None:
        """Cancel the current run. Idempotent; a no-op between runs beyond setting the flag."""
        if not self._abort:
            self.logger.log("info", f"Cancelling workflow {self.id}")
        self.abort_all()

    async def close(self) -> None:
        """Release the event sink's HTTP client. The workflow cannot report events afterwards."""
        if self._running:
            raise WorkflowRunningError(self.id, "close")
        if self.event_sink is not None:
            await self.event_sink.close()

    async def _emit(self, event: str, **payload: Any) -> None:
        if self.event_sink is not None:
            await self.event_sink.emit(event, workflow_id=self.id, **payload)

    def __repr__(self) -> str:
        return f"Workflow(id={self.id!r}, nodes={[n.id for n in self.nodes]!r})"
