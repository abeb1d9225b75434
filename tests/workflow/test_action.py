# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Unit tests for the action round-loop

Each test scripts the LLM turn by turn and inspects what the loop sent back.
"""

import asyncio

import pytest
from unittest.mock import MagicMock

from agentflow.core.errors import ConfigurationError, ExecutionError
from agentflow.tools.base import FunctionTool
from agentflow.workflow.action import (
    DEFAULT_MAX_ROUNDS,
    EXPLICIT_RETURN_PROMPT,
    MAX_ROUNDS_PROMPT,
    Action,
)
from agentflow.workflow.callbacks import WorkflowCallback
from agentflow.workflow.context import ExecutionContext
from agentflow.workflow.exceptions import LLMProviderError, WorkflowCancelledError
from agentflow.workflow.history import count_tool_result_images
from agentflow.workflow.models import NodeInput, NodeOutput
from tests.fakes import ScriptedProvider, Turn, call, return_tool_result, return_value

ECHO_SCHEMA = {"type": "object", "properties": {"text": {"type": "string"}}}
PNG = {"type": "base64", "media_type": "image/png", "data": "iVBORw0KGgo="}


def echo_tool(calls=None):
    def echo(context, params):
        if calls is not None:
            calls.append(params.get("text"))
        return {"echo": params.get("text")}
    return FunctionTool("echo", "Echo the text back", ECHO_SCHEMA, echo)


def failing_tool():
    def fail(context, params):
        raise ValueError("disk full")
    return FunctionTool("save", "Save a file", ECHO_SCHEMA, fail)


def tool_names(params):
    return [tool.name for tool in params.tools]


def last_message(provider, request_index):
    messages, _ = provider.requests[request_index]
    return messages[-1]


@pytest.fixture
def node_output():
    return NodeOutput(name="result", description="The processed data")


@pytest.fixture
def context(execution_logger):
    return ExecutionContext(variables={"city": "Paris"}, node_id="node1", logger=execution_logger)


def make_action(provider, tools=None, max_rounds=None):
    return Action.create_prompt_action(
        "fetch",
        "Fetch data",
        tools=tools or [echo_tool()],
        llm_provider=provider,
        max_rounds=max_rounds,
    )


class TestActionSetup:
    """Test action construction and prompts"""

    def test_defaults(self):
        action = make_action(ScriptedProvider([]))

        assert action.type == "prompt"
        assert action.max_rounds == DEFAULT_MAX_ROUNDS
        assert action.tool_names == ["echo", "write_context"]

    @pytest.mark.asyncio
    async def test_first_request_prompts(self, context, node_output):
        """System prompt then a user prompt with action, input and variables"""
        provider = ScriptedProvider([Turn(tool_calls=[return_value("done")])])
        action = make_action(provider)

        await action.execute(NodeInput(), node_output, context)

        messages, params = provider.requests[0]
        assert [m["role"] for m in messages] == ["system", "user"]
        assert "return_output" in messages[0]["content"]
        assert "fetch -- Fetch data" in messages[1]["content"]
        assert 'city: "Paris"' in messages[1]["content"]
        assert tool_names(params) == ["echo", "write_context", "return_output"]
        assert params.tool_choice is None

    @pytest.mark.asyncio
    async def test_requires_provider(self, context, node_output):
        action = Action.create_prompt_action("fetch", "Fetch data")

        with pytest.raises(ConfigurationError):
            await action.execute(NodeInput(), node_output, context)

    @pytest.mark.asyncio
    async def test_uses_context_provider(self, execution_logger, node_output):
        provider = ScriptedProvider([Turn(tool_calls=[return_value(1)])])
        context = ExecutionContext(variables={}, node_id="n", llm_provider=provider, logger=execution_logger)
        action = Action.create_prompt_action("fetch", "Fetch data")

        assert await action.execute(NodeInput(), node_output, context) == 1

    @pytest.mark.asyncio
    async def test_unsupported_action_type(self, context, node_output):
        action = Action("script", "run", "Run a script", llm_provider=ScriptedProvider([]))

        with pytest.raises(ExecutionError):
            await action.execute(NodeInput(), node_output, context)


class TestOutputResolution:
    """Test how return_output resolves the node output"""

    @pytest.mark.asyncio
    async def test_use_tool_result_returns_previous_tool_result(self, context, node_output):
        """One tool call then return_output(use_tool_result=true)"""
        provider = ScriptedProvider([
            Turn(tool_calls=[call("echo", text="hello")]),
            Turn(tool_calls=[return_tool_result()]),
        ])

        result = await make_action(provider).execute(NodeInput(), node_output, context)

        assert result == {"echo": "hello"}
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_explicit_value(self, context, node_output):
        provider = ScriptedProvider([Turn(tool_calls=[return_value({"temp": 21})])])

        result = await make_action(provider).execute(NodeInput(), node_output, context)

        assert result == {"temp": 21}

    @pytest.mark.asyncio
    async def test_explicit_null_value(self, context, node_output):
        provider = ScriptedProvider([Turn(tool_calls=[return_value(None)])])

        assert await make_action(provider).execute(NodeInput(), node_output, context) is None

    @pytest.mark.asyncio
    async def test_use_tool_result_without_prior_tool(self, context, node_output):
        """Nothing to reuse resolves to an empty object"""
        provider = ScriptedProvider([Turn(tool_calls=[return_tool_result()])])

        assert await make_action(provider).execute(NodeInput(), node_output, context) == {}

    @pytest.mark.asyncio
    async def test_sentinel_removed_from_variables(self, context, node_output):
        provider = ScriptedProvider([Turn(tool_calls=[return_value("x")])])

        await make_action(provider).execute(NodeInput(), node_output, context)

        assert context.variables == {"city": "Paris"}

    @pytest.mark.asyncio
    async def test_output_schema_used_for_return_tool(self, context, node_output):
        schema = {"type": "object", "properties": {"temp": {"type": "number"}}}
        provider = ScriptedProvider([Turn(tool_calls=[return_value({"temp": 1})])])

        await make_action(provider).execute(NodeInput(), node_output, context, output_schema=schema)

        _, params = provider.requests[0]
        return_def = next(t for t in params.tools if t.name == "return_output")
        assert return_def.input_schema["properties"]["value"] == schema
        assert "The processed data" in return_def.description

    @pytest.mark.asyncio
    async def test_write_context_stores_json(self, context, node_output):
        provider = ScriptedProvider([
            Turn(tool_calls=[
                call("write_context", key="coords", value='{"lat": 48.8}'),
                call("write_context", key="note", value="not json"),
            ]),
            Turn(tool_calls=[return_value("ok")]),
        ])

        await make_action(provider).execute(NodeInput(), node_output, context)

        assert context.variables["coords"] == {"lat": 48.8}
        assert context.variables["note"] == "not json"


class TestTermination:
    """Test forced return rounds"""

    @pytest.mark.asyncio
    async def test_max_rounds_forces_one_final_round(self, context, node_output):
        provider = ScriptedProvider([
            Turn(tool_calls=[call("echo", text="1")]),
            Turn(tool_calls=[call("echo", text="2")]),
            Turn(tool_calls=[return_value("final")]),
        ])
        action = make_action(provider, max_rounds=2)

        result = await action.execute(NodeInput(), node_output, context)

        assert result == "final"
        assert provider.calls == 3
        _, forced_params = provider.requests[2]
        assert tool_names(forced_params) == ["return_output"]
        assert forced_params.tool_choice == {"type": "tool", "name": "return_output"}
        final_user = last_message(provider, 2)
        assert final_user["content"][-1] == {"type": "text", "text": MAX_ROUNDS_PROMPT}

    @pytest.mark.asyncio
    async def test_max_rounds_declined_returns_empty(self, context, node_output):
        provider = ScriptedProvider([
            Turn(tool_calls=[call("echo", text="1")]),
            Turn(text="I refuse"),
        ])

        result = await make_action(provider, max_rounds=1).execute(NodeInput(), node_output, context)

        assert result == {}
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_text_only_reply_gets_explicit_return_round(self, context, node_output):
        provider = ScriptedProvider([
            Turn(text="The answer is 42"),
            Turn(tool_calls=[return_value(42)]),
        ])

        result = await make_action(provider).execute(NodeInput(), node_output, context)

        assert result == 42
        assert provider.calls == 2
        messages, params = provider.requests[1]
        assert messages[-2] == {"role": "assistant", "content": [{"type": "text", "text": "The answer is 42"}]}
        assert messages[-1] == {"role": "user", "content": EXPLICIT_RETURN_PROMPT}
        assert tool_names(params) == ["return_output"]

    @pytest.mark.asyncio
    async def test_text_only_twice_ends_loop(self, context, node_output):
        """Only one explicit-return round is injected"""
        provider = ScriptedProvider([Turn(text="thinking"), Turn(text="still thinking")])

        result = await make_action(provider).execute(NodeInput(), node_output, context)

        assert result == {}
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_history_recorded_in_logger(self, context, node_output, execution_logger):
        provider = ScriptedProvider([Turn(tool_calls=[return_value("x")])])

        await make_action(provider).execute(NodeInput(), node_output, context)

        history = execution_logger.get_history()
        assert history[0]["role"] == "system"
        assert history[-1]["role"] == "user"


class TestToolExecution:
    """Test tool calls inside rounds"""

    @pytest.mark.asyncio
    async def test_round_messages(self, context, node_output):
        """One assistant message with text and tool use, one user message with results"""
        provider = ScriptedProvider([
            Turn(text="Let me check", tool_calls=[call("echo", text="hi")]),
            Turn(tool_calls=[return_value("done")]),
        ])

        await make_action(provider).execute(NodeInput(), node_output, context)

        messages, _ = provider.requests[1]
        assistant, results = messages[-2], messages[-1]
        assert assistant["role"] == "assistant"
        assert assistant["content"][0] == {"type": "text", "text": "Let me check"}
        assert assistant["content"][1]["type"] == "tool_use"
        assert results["role"] == "user"
        assert results["content"] == [{
            "type": "tool_result",
            "tool_use_id": assistant["content"][1]["id"],
            "content": [{"type": "text", "text": '{"echo": "hi"}'}],
        }]

    @pytest.mark.asyncio
    async def test_multiple_calls_run_in_order(self, context, node_output):
        order = []
        provider = ScriptedProvider([
            Turn(tool_calls=[call("echo", text="first"), call("echo", text="second")]),
            Turn(tool_calls=[return_tool_result()]),
        ])

        result = await make_action(provider, tools=[echo_tool(order)]).execute(NodeInput(), node_output, context)

        assert order == ["first", "second"]
        assert result == {"echo": "second"}
        results = last_message(provider, 1)["content"]
        assert [r["content"][0]["text"] for r in results] == ['{"echo": "first"}', '{"echo": "second"}']

    @pytest.mark.asyncio
    async def test_slow_tool_joined_after_stream(self, context, node_output):
        """Tool still running when the stream ends is awaited before the round closes"""
        async def slow(context, params):
            await asyncio.sleep(0.01)
            return {"done": True}

        provider = ScriptedProvider([
            Turn(tool_calls=[call("slow")]),
            Turn(tool_calls=[return_tool_result()]),
        ])
        tool = FunctionTool("slow", "Slow tool", {"type": "object"}, slow)

        result = await make_action(provider, tools=[tool]).execute(NodeInput(), node_output, context)

        assert result == {"done": True}
        assert last_message(provider, 1)["content"][0]["content"][0]["text"] == '{"done": true}'

    @pytest.mark.asyncio
    async def test_failing_tool_continues_conversation(self, context, node_output):
        """Error becomes an error-flagged result and a later return_output still ends the node"""
        provider = ScriptedProvider([
            Turn(tool_calls=[call("save", text="x")]),
            Turn(tool_calls=[return_value("recovered")]),
        ])

        result = await make_action(provider, tools=[failing_tool()]).execute(NodeInput(), node_output, context)

        assert result == "recovered"
        error_result = last_message(provider, 1)["content"][0]
        assert error_result["is_error"] is True
        assert error_result["content"] == [{"type": "text", "text": "Error: disk full"}]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_error_result(self, context, node_output):
        provider = ScriptedProvider([
            Turn(tool_calls=[call("teleport")]),
            Turn(tool_calls=[return_value("ok")]),
        ])

        await make_action(provider).execute(NodeInput(), node_output, context)

        error_result = last_message(provider, 1)["content"][0]
        assert error_result["is_error"] is True
        assert "Tool not found: teleport" in error_result["content"][0]["text"]

    @pytest.mark.asyncio
    async def test_context_tools_are_offered(self, execution_logger, node_output):
        """Tools resolved by the engine are merged with the action's own"""
        registry_tool = FunctionTool("lookup", "Lookup", {"type": "object"}, lambda ctx, params: 7)
        context = ExecutionContext(
            variables={}, node_id="n", tools={"lookup": registry_tool}, logger=execution_logger
        )
        provider = ScriptedProvider([
            Turn(tool_calls=[call("lookup")]),
            Turn(tool_calls=[return_tool_result()]),
        ])
        action = Action.create_prompt_action("fetch", "Fetch", tools=["lookup"], llm_provider=provider)

        result = await action.execute(NodeInput(), node_output, context)

        assert result == 7
        assert tool_names(provider.requests[0][1]) == ["write_context", "lookup", "return_output"]

    @pytest.mark.asyncio
    async def test_hooks_replace_input_and_result(self, context, node_output):
        seen = []
        context.callback = WorkflowCallback(
            before_tool_use=lambda tool, ctx, tool_input: {"text": tool_input["text"].upper()},
            after_tool_use=lambda tool, ctx, result: {**result, "hooked": True},
            on_llm_message=lambda text: seen.append(text),
        )
        provider = ScriptedProvider([
            Turn(text="calling echo", tool_calls=[call("echo", text="hi")]),
            Turn(tool_calls=[return_tool_result()]),
        ])

        result = await make_action(provider).execute(NodeInput(), node_output, context)

        assert result == {"echo": "HI", "hooked": True}
        assert seen == ["calling echo"]

    @pytest.mark.asyncio
    async def test_before_tool_use_can_skip(self, context, node_output):
        calls = []
        context.callback = WorkflowCallback(before_tool_use=lambda tool, ctx, tool_input: ctx.next())
        provider = ScriptedProvider([
            Turn(tool_calls=[call("echo", text="hi")]),
            Turn(tool_calls=[return_value("skipped it")]),
        ])

        await make_action(provider, tools=[echo_tool(calls)]).execute(NodeInput(), node_output, context)

        assert calls == []
        assert last_message(provider, 1)["content"][0]["content"] == "skipped"

    @pytest.mark.asyncio
    async def test_image_results_and_history_trimming(self, context, node_output):
        """Only the latest user turn keeps its screenshot"""
        shot = FunctionTool(
            "screenshot", "Take a screenshot", {"type": "object"},
            lambda ctx, params: {"image": PNG, "text": "page"},
        )
        provider = ScriptedProvider([
            Turn(tool_calls=[call("screenshot")]),
            Turn(tool_calls=[call("screenshot")]),
            Turn(tool_calls=[return_value("seen")]),
        ])

        await make_action(provider, tools=[shot]).execute(NodeInput(), node_output, context)

        second_request, _ = provider.requests[1]
        assert second_request[-1]["content"][0]["content"] == [
            {"type": "image", "source": PNG},
            {"type": "text", "text": "page"},
        ]
        third_request, _ = provider.requests[2]
        assert count_tool_result_images(third_request) == 1
        assert third_request[-3]["content"][0]["content"] == [{"type": "text", "text": "page"}]


class TestFailures:
    """Test cancellation and transport errors"""

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, context, node_output):
        provider = ScriptedProvider([Turn(error=ConnectionError("socket closed"))])

        with pytest.raises(LLMProviderError) as exc_info:
            await make_action(provider).execute(NodeInput(), node_output, context)

        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_cancelled_before_first_round(self, context, node_output):
        provider = ScriptedProvider([Turn(tool_calls=[return_value("x")])])
        context.signal.cancel()

        with pytest.raises(WorkflowCancelledError):
            await make_action(provider).execute(NodeInput(), node_output, context)

        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_cancelled_during_tool(self, context, node_output):
        """Abort observed after the tool join ends the loop without output"""
        def cancel(ctx, params):
            ctx.signal.cancel("user stop")
            return "stopped"

        provider = ScriptedProvider([
            Turn(tool_calls=[call("stop")]),
            Turn(tool_calls=[return_value("never")]),
        ])
        tool = FunctionTool("stop", "Stop", {"type": "object"}, cancel)

        with pytest.raises(WorkflowCancelledError):
            await make_action(provider, tools=[tool]).execute(NodeInput(), node_output, context)

        assert provider.calls == 1
        assert context.aborted is True

    @pytest.mark.asyncio
    async def test_cancellation_error_from_tool_escalates(self, context, node_output):
        def cancelled(ctx, params):
            raise WorkflowCancelledError(node_id=ctx.node_id)

        provider = ScriptedProvider([Turn(tool_calls=[call("stop")])])
        tool = FunctionTool("stop", "Stop", {"type": "object"}, cancelled)

        with pytest.raises(WorkflowCancelledError):
            await make_action(provider, tools=[tool]).execute(NodeInput(), node_output, context)

    @pytest.mark.asyncio
    async def test_provider_exception_discards_tool_task(self, context, node_output):
        """A provider raising mid-stream leaves no tool task behind"""
        started = MagicMock()

        async def slow(ctx, params):
            started()
            await asyncio.sleep(1)

        class BrokenProvider(ScriptedProvider):
            async def generate_stream(self, messages, params, handler):
                handler.on_tool_use(call("slow"))
                await asyncio.sleep(0)
                raise RuntimeError("stream broke")

        tool = FunctionTool("slow", "Slow", {"type": "object"}, slow)

        with pytest.raises(RuntimeError, match="stream broke"):
            await make_action(BrokenProvider([]), tools=[tool]).execute(NodeInput(), node_output, context)

        started.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancelled_run_leaves_no_output_behind(self, context, node_output, execution_logger):
        """A rerun after a cancelled run must not reuse the cancelled run's output"""
        def stop(ctx, params):
            ctx.signal.cancel("user stop")
            return "stopped"

        tool = FunctionTool("stop", "Stop", {"type": "object"}, stop)
        action = make_action(
            ScriptedProvider([Turn(tool_calls=[return_value("STALE"), call("stop")])]),
            tools=[tool],
        )

        with pytest.raises(WorkflowCancelledError):
            await action.execute(NodeInput(), node_output, context)

        assert context.variables == {"city": "Paris"}

        action.llm_provider = ScriptedProvider([Turn(text="All done"), Turn(text="Still done")])
        rerun_context = ExecutionContext(variables=context.variables, node_id="node1", logger=execution_logger)

        assert await action.execute(NodeInput(), node_output, rerun_context) == {}

    @pytest.mark.asyncio
    async def test_stale_output_entry_is_ignored(self, context, node_output):
        context.variables["__output_node1"] = {"use_tool_result": False, "value": "STALE"}
        provider = ScriptedProvider([Turn(text="No tools"), Turn(text="Still none")])

        assert await make_action(provider).execute(NodeInput(), node_output, context) == {}
        assert "__output_node1" not in context.variables
