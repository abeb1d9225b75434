# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Unit tests for ExecutionLogger and EventSink
"""

import json
import logging

import httpx
import pytest
from unittest.mock import MagicMock

from agentflow.core.config import Config
from agentflow.workflow.context import ExecutionContext
from agentflow.workflow.logging import EventSink, ExecutionLogger

PNG_B64 = "iVBORw0KGgo="


@pytest.fixture
def std_logger():
    return MagicMock(spec=logging.Logger)


class TestLevels:
    """Test level filtering"""

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError):
            ExecutionLogger(log_level="verbose")

    def test_messages_below_level_dropped(self, std_logger):
        execution_logger = ExecutionLogger(log_level="warn", include_timestamp=False, logger=std_logger)

        execution_logger.log("info", "chatter")
        execution_logger.log("error", "broken")
        execution_logger.log("warn", "careful")

        assert [c.args[1] for c in std_logger.log.call_args_list] == ["broken", "careful"]
        assert std_logger.log.call_args_list[0].args[0] == logging.ERROR

    def test_context_attached_as_extra(self, std_logger):
        execution_logger = ExecutionLogger(include_timestamp=False, logger=std_logger)
        context = ExecutionContext(variables={"k": 1}, node_id="n1")

        execution_logger.log("info", "hello", context)

        extra = std_logger.log.call_args.kwargs["extra"]
        assert extra["node_id"] == "n1"
        assert extra["context"] == {"variables": {"k": 1}, "tools": []}

    def test_timestamp_prefix(self, std_logger):
        execution_logger = ExecutionLogger(include_timestamp=True, logger=std_logger)

        execution_logger.log("info", "hello")

        message = std_logger.log.call_args.args[1]
        assert message.endswith(" hello")
        assert message != "hello"

    def test_from_config(self):
        config = Config(log_level="WARNING", history_max_length=3, include_timestamp=False)

        execution_logger = ExecutionLogger.from_config(config)

        assert execution_logger.log_level == "warn"
        assert execution_logger.max_history_length == 3
        assert execution_logger.include_timestamp is False


class TestHistory:
    """Test bounded history"""

    def test_keeps_system_and_recent_messages(self):
        execution_logger = ExecutionLogger(max_history_length=2)
        messages = [{"role": "system", "content": "s"}] + [
            {"role": "user" if i % 2 == 0 else "assistant", "content": str(i)} for i in range(5)
        ]

        execution_logger.update_history(messages)

        assert [m["content"] for m in execution_logger.get_history()] == ["s", "3", "4"]

    def test_history_is_a_copy(self):
        execution_logger = ExecutionLogger()
        execution_logger.update_history([{"role": "user", "content": "u"}])

        execution_logger.get_history().clear()

        assert len(execution_logger.get_history()) == 1


class TestToolResultFormatting:
    """Test image placeholders in tool result logs"""

    def test_image_replaced_with_placeholder(self):
        execution_logger = ExecutionLogger()

        formatted = json.loads(execution_logger.format_tool_result(
            {"image": {"type": "base64", "media_type": "image/png", "data": PNG_B64}, "text": "page"}
        ))

        assert formatted == {"image": "[image]", "text": "page"}

    def test_data_url_saved_to_debug_path(self, tmp_path):
        execution_logger = ExecutionLogger(debug_image_path=str(tmp_path))

        formatted = json.loads(execution_logger.format_tool_result(
            {"shot": f"data:image/png;base64,{PNG_B64}"}, "screenshot"
        ))

        saved = list(tmp_path.iterdir())
        assert len(saved) == 1
        assert saved[0].name.startswith("shot_")
        assert formatted["shot"] == f"[image saved to: {saved[0]}]"

    def test_custom_image_saver(self):
        saver = MagicMock(return_value="[image at s3://bucket/x.png]")
        execution_logger = ExecutionLogger(image_saver=saver)

        formatted = json.loads(execution_logger.format_tool_result(
            {"image": {"type": "base64", "media_type": "image/jpeg", "data": PNG_B64}}, "camera"
        ))

        assert formatted["image"] == "[image at s3://bucket/x.png]"
        source, filename = saver.call_args.args
        assert source["media_type"] == "image/jpeg"
        assert filename.startswith("camera_") and filename.endswith(".jpeg")

    def test_non_dict_results(self):
        execution_logger = ExecutionLogger()

        assert execution_logger.format_tool_result(None) == "null"
        assert execution_logger.format_tool_result([1, 2]) == json.dumps([1, 2], indent=2)


class TestEventSink:
    """Test HTTP event sink"""

    @pytest.mark.asyncio
    async def test_posts_events(self):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        sink = EventSink("http://sink.test/events", client=client)

        await sink.emit("node_start", workflow_id="wf", node_id="A")
        await sink.close()

        assert received[0]["event"] == "node_start"
        assert received[0]["node_id"] == "A"
        assert "timestamp" in received[0]

    @pytest.mark.asyncio
    async def test_disables_after_failure(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        sink = EventSink("http://sink.test/events", client=client)

        await sink.emit("workflow_start")
        await sink.emit("workflow_complete")

        assert sink.enabled is False
        assert len(calls) == 1
        await sink.close()

    @pytest.mark.asyncio
    async def test_http_error_status_disables(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
        sink = EventSink("http://sink.test/events", client=client)

        await sink.emit("workflow_start", payload={"unserializable": object()})

        assert sink.enabled is False
        await sink.close()

    @pytest.mark.asyncio
    async def test_close_only_closes_own_client(self):
        shared = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        borrowed = EventSink("http://sink.test/events", client=shared)
        owned = EventSink("http://sink.test/events", timeout=1.0)

        await borrowed.close()
        await owned.close()

        assert shared.is_closed is False
        assert owned.client.is_closed is True
        assert borrowed.enabled is False
        await shared.aclose()
