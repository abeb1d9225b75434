# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow lifecycle hooks

Every hook is optional and may be a plain function or a coroutine function.
"""

from dataclasses import dataclass, fields
from typing import Any, Callable, Optional

from agentflow.tools.base import maybe_await

Hook = Optional[Callable[..., Any]]


@dataclass
class WorkflowCallback:
    before_workflow: Hook = None          # (workflow)
    after_workflow: Hook = None           # (workflow, variables)
    before_subtask: Hook = None           # (node, context)
    after_subtask: Hook = None            # (node, context, output)
    before_tool_use: Hook = None          # (tool, context, input) -> input | None
    after_tool_use: Hook = None           # (tool, context, result) -> result | None
    on_llm_message: Hook = None           # (text)
    on_human_input_text: Hook = None      # (question) -> str | None
    on_human_input_single_choice: Hook = None    # (question, choices) -> str | None
    on_human_input_multiple_choice: Hook = None  # (question, choices) -> list | None
    on_human_operate: Hook = None         # (reason) -> str | None
    on_summary_workflow: Hook = None      # (summary)

    def has(self, hook: str) -> bool:
        return getattr(self, hook, None) is not None

    async def call(self, hook: str, *args: Any) -> Any:
        """Invoke a hook by name. Returns None when the hook is not set."""
        if hook not in _HOOK_NAMES:
            raise AttributeError(f"Unknown workflow hook: {hook}")
        func = getattr(self, hook)
        if func is None:
            return None
        return await maybe_await(func(*args))


_HOOK_NAMES = frozenset(f.name for f in fields(WorkflowCallback))
