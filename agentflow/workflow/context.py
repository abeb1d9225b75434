# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Execution Context

Per-node state bundle handed to the action and to every tool it runs.
Only `variables` is shared with other nodes: it is the workflow's own dict.
"""

from typing import Any, Callable, Dict, Optional

from agentflow.workflow.cancellation import CancellationToken


class ExecutionContext:
    """
    Execution context for one node execution attempt.

    Tracks:
    - Shared workflow variables
    - The node's resolved tools
    - Cancellation token and the skip / abort control flags
    - Callback hooks and the execution logger
    """

    def __init__(
        self,
        variables: Dict[str, Any],
        tools: Optional[Dict[str, Any]] = None,
        workflow: Any = None,
        node_id: Optional[str] = None,
        llm_provider: Any = None,
        callback: Any = None,
        logger: Any = None,
        signal: Optional[CancellationToken] = None,
        on_abort_all: Optional[Callable[[], None]] = None,
    ):
        self.variables = variables
        self.tools: Dict[str, Any] = tools or {}
        self.workflow = workflow
        self.node_id = node_id
        self.llm_provider = llm_provider
        self.callback = callback
        self.logger = logger
        self.signal = signal or CancellationToken(node_id or "")
        self._on_abort_all = on_abort_all

        # Control flags
        self.skip = False
        self.aborted = False

    def next(self) -> None:
        """Veto the current node (from before_subtask) or the current tool call (from before_tool_use)."""
        self.skip = True

    def abort_all(self) -> None:
        """Cancel the whole workflow run."""
        self.aborted = True
        if self._on_abort_all is not None:
            self._on_abort_all()
        else:
            self.signal.cancel("Workflow cancelled")

    @property
    def is_cancelled(self) -> bool:
        return self.aborted or self.signal.cancelled

    def summary(self) -> Dict[str, Any]:
        """Variables and tool names, for log output"""
        return {
            "variables": dict(self.variables),
            "tools": list(self.tools.keys()),
        }
