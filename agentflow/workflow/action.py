# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Action round-loop

Drives one node's conversation with the LLM: stream a turn, run the tools it
asks for, feed the results back, until the model calls return_output or the
round budget runs out.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Union

from agentflow.core.errors import ConfigurationError, ExecutionError, sanitize_error_for_user
from agentflow.llm.types import LLMParameters, LLMResponse, LLMStreamHandler, Message, ToolCall
from agentflow.tools.base import Tool, run_tool, tool_definition
from agentflow.tools.builtin import (
    RETURN_OUTPUT_TOOL,
    ReturnOutputTool,
    WriteContextTool,
    output_sentinel_key,
)
from agentflow.workflow.context import ExecutionContext
from agentflow.workflow.exceptions import LLMProviderError, WorkflowCancelledError
from agentflow.workflow.history import strip_history_images
from agentflow.workflow.logging import ExecutionLogger, _parse_image
from agentflow.workflow.models import NodeInput, NodeOutput

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 10

EXPLICIT_RETURN_PROMPT = (
    "Please process the above information and return the final result using the "
    "return_output tool."
)
MAX_ROUNDS_PROMPT = (
    "Maximum number of rounds reached. Please use the return_output tool to return "
    "the best result you can."
)

_MISSING = object()


def build_tool_result_block(tool_use_id: str, result: Any) -> Dict[str, Any]:
    """
    Tool-result block for a tool's return value.

    A dict carrying an `image` becomes an image block, followed by a text
    block when it also carries `text`. Anything else is serialized to JSON.
    """
    if isinstance(result, dict) and result.get("image"):
        image = result["image"]
        if isinstance(image, str):
            parsed = _parse_image(image)
            if parsed is not None:
                image = {"type": "base64", "media_type": f"image/{parsed[0]}", "data": parsed[1]}
        content = [{"type": "image", "source": image}]
        if result.get("text"):
            content.append({"type": "text", "text": result["text"]})
    else:
        content = [{"type": "text", "text": json.dumps(result, default=str, ensure_ascii=False)}]

    return {"type": "tool_result", "tool_use_id": tool_use_id, "content": content}


def build_tool_error_block(tool_use_id: str, message: str) -> Dict[str, Any]:
    return {
        "type": "tool_result",
        "tool_use_id": tool_use_id,
        "content": [{"type": "text", "text": f"Error: {message}"}],
        "is_error": True,
    }


class RoundOutcome:
    """What one round added to the conversation"""

    def __init__(
        self,
        messages: List[Message],
        text: str,
        called_tools: List[str],
        response: Optional[LLMResponse]
    ):
        self.messages = messages
        self.text = text
        self.called_tools = called_tools
        self.response = response


class RoundStreamHandler(LLMStreamHandler):
    """
    Collects one streamed turn.

    on_tool_use starts tool execution as a detached task; several calls in one
    turn are chained so they run in call order. The round joins the task
    after the stream itself has finished.
    """

    def __init__(self, action: "Action", tool_map: Dict[str, Tool], context: ExecutionContext):
        self._action = action
        self._tool_map = tool_map
        self._context = context
        self.text_parts: List[str] = []
        self.tool_use_blocks: List[Dict[str, Any]] = []
        self.tool_result_blocks: List[Dict[str, Any]] = []
        self.called_tools: List[str] = []
        self.response: Optional[LLMResponse] = None
        self.error: Optional[BaseException] = None
        self.tool_task: Optional[asyncio.Task] = None

    def on_content(self, text: str) -> None:
        if text:
            self.text_parts.append(text)

    def on_tool_use(self, call: ToolCall) -> None:
        self._action.logger.log("info", f"Assistant: {''.join(self.text_parts)}")
        self.called_tools.append(call.name)
        self.tool_use_blocks.append({
            "type": "tool_use",
            "id": call.id,
            "name": call.name,
            "input": dict(call.input),
        })
        self.tool_task = asyncio.create_task(self._run_after(self.tool_task, call))

    def on_complete(self, response: LLMResponse) -> None:
        self.response = response

    def on_error(self, error: BaseException) -> None:
        self.error = error

    async def _run_after(self, previous: Optional[asyncio.Task], call: ToolCall) -> None:
        if previous is not None:
            await previous
        block = await self._action.execute_tool_call(call, self._tool_map, self._context)
        self.tool_result_blocks.append(block)

    async def join(self) -> None:
        if self.tool_task is not None:
            await self.tool_task

    async def discard(self) -> None:
        """Stop pending tool work after the stream itself failed."""
        if self.tool_task is None:
            return
        if not self.tool_task.done():
            self.tool_task.cancel()
        await asyncio.gather(self.tool_task, return_exceptions=True)

    @property
    def text(self) -> str:
        return "".join(self.text_parts)


class Action:
    """
    Executable behaviour of a node.

    Keeps per-run bookkeeping (tool results, round counter), so one instance
    belongs to exactly one node.
    """

    def __init__(
        self,
        type: str,
        name: str,
        description: str,
        tools: Optional[List[Union[str, Tool]]] = None,
        llm_provider: Any = None,
        llm_config: Optional[LLMParameters] = None,
        max_rounds: Optional[int] = None,
        logger: Optional[ExecutionLogger] = None,
    ):
        self.type = type
        self.name = name
        self.description = description
        self.write_context_tool = WriteContextTool()
        self.tools: List[Union[str, Tool]] = [*(tools or []), self.write_context_tool]
        self.llm_provider = llm_provider
        self.llm_config = llm_config or LLMParameters()
        self.max_rounds = max_rounds or DEFAULT_MAX_ROUNDS
        self.logger = logger or ExecutionLogger()
        self.round_count = 0
        self._tool_results: List[Any] = []

    @classmethod
    def create_prompt_action(
        cls,
        name: str,
        description: str,
        tools: Optional[List[Union[str, Tool]]] = None,
        llm_provider: Any = None,
        llm_config: Optional[LLMParameters] = None,
        max_rounds: Optional[int] = None,
    ) -> "Action":
        return cls("prompt", name, description, tools, llm_provider, llm_config, max_rounds)

    @property
    def tool_names(self) -> List[str]:
        return [tool if isinstance(tool, str) else tool.name for tool in self.tools]

    def _build_tool_map(self, context: ExecutionContext, return_tool: ReturnOutputTool) -> Dict[str, Tool]:
        tool_map: Dict[str, Tool] = {}
        for tool in self.tools:
            if isinstance(tool, str):
                if tool not in context.tools:
                    self.logger.log("warn", f"Tool '{tool}' was not resolved for action {self.name}", context)
                continue
            tool_map[tool.name] = tool
        tool_map.update(context.tools)
        tool_map[return_tool.name] = return_tool
        return tool_map

    async def execute(
        self,
        node_input: NodeInput,
        node_output: NodeOutput,
        context: ExecutionContext,
        output_schema: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Run the round-loop and return the node's output value.

        Returns {} with a warning when the model never produced an output.
        Raises WorkflowCancelledError on cancellation and LLMProviderError when
        the provider reports a transport failure.
        """
        if context.logger is not None:
            self.logger = context.logger
        if self.type != "prompt":
            raise ExecutionError(f"Action type '{self.type}' is not supported")

        provider = self.llm_provider or context.llm_provider
        if provider is None:
            raise ConfigurationError(f"No LLM provider configured for action '{self.name}'")

        self._tool_results = []
        self.round_count = 0
        node_id = context.node_id or self.name

        return_tool = ReturnOutputTool(
            node_id,
            node_output.description,
            output_schema or node_output.output_schema,
        )
        tool_map = self._build_tool_map(context, return_tool)

        messages: List[Message] = [
            {"role": "system", "content": self._format_system_prompt()},
            {"role": "user", "content": self._format_user_prompt(context, node_input)},
        ]

        self.logger.log_action_start(self.name, node_input, context)

        params = self.llm_config.with_tools([tool_definition(tool) for tool in tool_map.values()])
        return_only_params = self.llm_config.with_tools(
            [tool_definition(return_tool)],
            tool_choice={"type": "tool", "name": RETURN_OUTPUT_TOOL},
        )
        return_only_map: Dict[str, Tool] = {return_tool.name: return_tool}

        def on_abort(reason: Optional[str]) -> None:
            context.aborted = True

        sentinel_key = output_sentinel_key(node_id)
        # Left over from an earlier run of this node
        context.variables.pop(sentinel_key, None)

        context.signal.add_listener(on_abort)
        try:
            while self.round_count < self.max_rounds:
                if context.is_cancelled:
                    raise WorkflowCancelledError("Workflow cancelled", node_id=context.node_id)

                self.round_count += 1
                self.logger.log_round_start(self.round_count, self.max_rounds, context)

                outcome = await self._execute_round(messages, params, tool_map, context, provider)
                if outcome.text and context.callback is not None:
                    await context.callback.call("on_llm_message", outcome.text)

                messages.extend(outcome.messages)
                self.logger.log(
                    "debug",
                    f"Round {self.round_count} messages: {json.dumps(outcome.messages, default=str)}",
                    context,
                )

                if not outcome.called_tools:
                    # Text-only reply: ask once more, offering nothing but return_output
                    self.logger.log("info", f"Assistant: {outcome.text}")
                    self.logger.log("warn", "LLM sent a message without using tools; requesting explicit return")
                    _append_user_text(messages, EXPLICIT_RETURN_PROMPT)
                    final = await self._execute_round(
                        messages, return_only_params, return_only_map, context, provider
                    )
                    messages.extend(final.messages)
                    break

                if RETURN_OUTPUT_TOOL in outcome.called_tools:
                    break

                if self.round_count == self.max_rounds:
                    self.logger.log("warn", "Reached max rounds, requesting explicit return")
                    _append_user_text(messages, MAX_ROUNDS_PROMPT)
                    final = await self._execute_round(
                        messages, return_only_params, return_only_map, context, provider
                    )
                    messages.extend(final.messages)
        finally:
            context.signal.remove_listener(on_abort)
            self.logger.update_history(messages)
            output_params = context.variables.pop(sentinel_key, None)

        value = self._resolve_output(output_params)
        if value is _MISSING:
            self.logger.log("warn", f"Action {self.name} completed without returning a value", context)
            return {}

        self.logger.log_action_complete(self.name, value, context)
        return value

    def _resolve_output(self, output_params: Any) -> Any:
        if not isinstance(output_params, dict):
            return _MISSING
        if output_params.get("use_tool_result"):
            return self._tool_results[-1] if self._tool_results else _MISSING
        return output_params.get("value", _MISSING)

    async def _execute_round(
        self,
        messages: List[Message],
        params: LLMParameters,
        tool_map: Dict[str, Tool],
        context: ExecutionContext,
        provider: Any
    ) -> RoundOutcome:
        handler = RoundStreamHandler(self, tool_map, context)

        removed = strip_history_images(messages)
        if removed:
            self.logger.log("info", f"Removed {removed} images from history")

        try:
            await provider.generate_stream(messages, params, handler)
        except BaseException:
            await handler.discard()
            raise

        # The stream can finish before the tool it announced has finished
        await handler.join()

        if handler.error is not None:
            self.logger.log("error", f"Stream error: {handler.error}", context)
            self.logger.log("debug", f"Last messages sent to LLM: {json.dumps(messages, default=str)}")
            raise LLMProviderError(f"LLM stream failed: {handler.error}", cause=handler.error)

        if context.is_cancelled:
            raise WorkflowCancelledError("Workflow cancelled", node_id=context.node_id)

        round_messages: List[Message] = []
        assistant_content: List[Dict[str, Any]] = []
        if handler.text.strip():
            assistant_content.append({"type": "text", "text": handler.text})
        assistant_content.extend(handler.tool_use_blocks)
        if assistant_content:
            round_messages.append({"role": "assistant", "content": assistant_content})
        if handler.tool_result_blocks:
            round_messages.append({"role": "user", "content": handler.tool_result_blocks})

        text = handler.text
        if not text and handler.response is not None:
            text = handler.response.text_content or ""

        return RoundOutcome(round_messages, text, handler.called_tools, handler.response)

    async def execute_tool_call(
        self,
        call: ToolCall,
        tool_map: Dict[str, Tool],
        context: ExecutionContext
    ) -> Dict[str, Any]:
        """
        Run one tool call and build its tool-result block.

        Failures become error-flagged results so the model can react to them.
        Cancellation is the exception: it propagates.
        """
        self.logger.log_tool_execution(call.name, call.input, context)

        tool = tool_map.get(call.name)
        if tool is None:
            self.logger.log("error", f"Tool not found: {call.name}", context)
            return build_tool_error_block(call.id, f"Tool not found: {call.name}")

        tool_input = call.input
        callback = context.callback
        try:
            context.skip = False
            if callback is not None:
                modified_input = await callback.call("before_tool_use", tool, context, tool_input)
                if modified_input:
                    tool_input = modified_input

            if context.skip or context.is_cancelled:
                return {"type": "tool_result", "tool_use_id": call.id, "content": "skipped"}

            result = await run_tool(tool, context, tool_input)

            if callback is not None:
                modified_result = await callback.call("after_tool_use", tool, context, result)
                if modified_result:
                    result = modified_result
        except WorkflowCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Tool {call.name} failed: {e}", exc_info=True)
            self.logger.log_error(e, context)
            return build_tool_error_block(call.id, sanitize_error_for_user(e, include_type=False))

        self.logger.log_tool_result(tool.name, result, context)
        if tool.name != RETURN_OUTPUT_TOOL:
            self._tool_results.append(result)
        return build_tool_result_block(call.id, result)

    def _format_system_prompt(self) -> str:
        return (
            "You are a subtask executor. You need to complete the subtask specified by the user, "
            "which is a consisting part of the overall task. Help the user by calling the tools "
            "provided.\n\n"
            "Remember to:\n"
            "1. Use tools when needed to accomplish the task\n"
            "2. Think step by step about what needs to be done\n"
            "3. Return the output of the subtask using the 'return_output' tool when you are done; "
            "prefer 'use_tool_result=true' to return a previous tool result instead of repeating a "
            "long text as the value\n"
            "4. Use the context to store important information for later reference, but use it "
            "sparingly: most of the time the output of the subtask should be enough for the next steps\n"
            "5. If there are any unclear points during the task execution, use the human-related "
            "tools to ask the user\n"
            "6. If user intervention is required during the task execution, use the human-related "
            "tools to transfer the operation rights to the user\n"
        )

    def _format_user_prompt(self, context: ExecutionContext, node_input: NodeInput) -> str:
        workflow = context.workflow
        workflow_description = getattr(workflow, "description", None) or "null"
        action_description = f"{self.name} -- {self.description}"
        input_description = json.dumps(node_input.model_dump(), indent=2, default=str, ensure_ascii=False)
        context_variables = "\n".join(
            f"{key}: {json.dumps(value, default=str, ensure_ascii=False)}"
            for key, value in context.variables.items()
        )

        return (
            "You are executing a subtask in the workflow. The workflow description is as follows:\n"
            f"{workflow_description}\n\n"
            "The subtask description is as follows:\n"
            f"{action_description}\n\n"
            "The input of the subtask is as follows:\n"
            f"{input_description}\n\n"
            "There are some variables stored in the context that can be used for reference:\n"
            f"{context_variables}\n"
        )

    def __repr__(self) -> str:
        return f"Action(type={self.type!r}, name={self.name!r})"


def _append_user_text(messages: List[Message], text: str) -> None:
    # Consecutive user turns are folded into one so providers see strict alternation
    last = messages[-1] if messages else None
    if last is not None and last["role"] == "user" and isinstance(last["content"], list):
        last["content"].append({"type": "text", "text": text})
    else:
        messages.append({"role": "user", "content": text})
