# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow execution logging

ExecutionLogger is the observability sink used by the engine and the action
round-loop: level filtering, tool/action entry points and a bounded copy of
the conversation for replay. EventSink posts run events to an HTTP endpoint
and fails gracefully if the endpoint is unavailable.
"""

import base64
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx

from agentflow.core.config import Config
from agentflow.core.logging import get_logger

LEVELS = {
    "error": 0,
    "warn": 1,
    "info": 2,
    "debug": 3,
}

_STDLIB_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_DATA_URL = re.compile(r"^data:image/([a-zA-Z0-9]+);base64,(.+)$", re.DOTALL)

ImageSaver = Callable[[Dict[str, str], str], str]


class ExecutionLogger:
    """
    Execution log for actions and tools.

    Messages below `log_level` are dropped before they reach the underlying
    logger. History keeps all system messages plus the most recent
    `max_history_length` others.
    """

    def __init__(
        self,
        max_history_length: int = 10,
        log_level: str = "info",
        include_timestamp: bool = True,
        debug_image_path: Optional[str] = None,
        image_saver: Optional[ImageSaver] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if log_level not in LEVELS:
            raise ValueError(f"Unknown log level: {log_level}")
        self.max_history_length = max_history_length
        self.log_level = log_level
        self.include_timestamp = include_timestamp
        self.debug_image_path = debug_image_path
        self.image_saver = image_saver
        self._logger = logger or logging.getLogger("agentflow.execution")
        self._history: List[Dict[str, Any]] = []

    @classmethod
    def from_config(cls, config: Config) -> "ExecutionLogger":
        level = config.log_level.lower()
        level = "warn" if level == "warning" else level
        if level not in LEVELS:
            level = "info"
        return cls(
            max_history_length=config.history_max_length,
            log_level=level,
            include_timestamp=config.include_timestamp,
            debug_image_path=config.debug_image_path,
            logger=get_logger(
                "agentflow.execution",
                log_level=config.log_level,
                log_format=config.log_format,
            ),
        )

    def should_log(self, level: str) -> bool:
        return LEVELS.get(level, LEVELS["debug"]) <= LEVELS[self.log_level]

    def log(self, level: str, message: str, context: Any = None) -> None:
        if not self.should_log(level):
            return
        if self.include_timestamp:
            message = f"{datetime.now(timezone.utc).isoformat()} {message}"
        extra = {}
        if context is not None:
            extra["context"] = context.summary()
            if context.node_id:
                extra["node_id"] = context.node_id
        self._logger.log(_STDLIB_LEVELS.get(level, logging.DEBUG), message, extra=extra)

    # History

    def update_history(self, messages: List[Dict[str, Any]]) -> None:
        system_messages = [m for m in messages if m.get("role") == "system"]
        others = [m for m in messages if m.get("role") != "system"]
        recent = others[-self.max_history_length:] if self.max_history_length > 0 else []
        self._history = system_messages + recent

    def get_history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    # Entry points

    def log_action_start(self, action_name: str, node_input: Any, context: Any = None) -> None:
        self.log("info", f"Starting action: {action_name}", context)
        self.log("info", f"Input: {_to_json(node_input)}")

    def log_action_complete(self, action_name: str, result: Any, context: Any = None) -> None:
        self.log("info", f"Completed action: {action_name}", context)
        self.log("info", f"Result: {_to_json(result)}")

    def log_round_start(self, round_number: int, max_rounds: int, context: Any = None) -> None:
        self.log("info", f"Starting round {round_number}/{max_rounds}", context)

    def log_tool_execution(self, tool_name: str, tool_input: Any, context: Any = None) -> None:
        self.log("info", f"Executing tool: {tool_name}")
        self.log("info", f"Tool input: {_to_json(tool_input)}")

    def log_tool_result(self, tool_name: str, result: Any, context: Any = None) -> None:
        if not self.should_log("info"):
            return
        self.log("info", f"Tool executed: {tool_name}")
        self.log("info", f"Tool result: {self.format_tool_result(result, tool_name)}", context)

    def log_error(self, error: BaseException, context: Any = None) -> None:
        self.log("error", f"Error occurred: {error}", context)
        if self.should_log("debug"):
            self._logger.debug("Error details", exc_info=error)

    # Image handling

    def format_tool_result(self, result: Any, tool_name: str = "tool") -> str:
        """Render a tool result for the log with images replaced by placeholders."""
        if result is None:
            return "null"
        if not isinstance(result, dict):
            return _to_json(result)

        formatted = dict(result)
        for key, value in formatted.items():
            if key == "image" or _is_image_value(value):
                formatted[key] = self.save_debug_image(value, tool_name if key == "image" else key)
        return _to_json(formatted)

    def save_debug_image(self, image: Any, name: str) -> str:
        """Save an image to debug_image_path (or via image_saver); return a placeholder."""
        parsed = _parse_image(image)
        if parsed is None:
            return "[image]"
        extension, data = parsed
        filename = f"{name}_{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S%f')}.{extension}"

        if self.image_saver is not None:
            return self.image_saver(
                {"type": "base64", "media_type": f"image/{extension}", "data": data},
                filename,
            )

        if self.debug_image_path:
            try:
                directory = Path(self.debug_image_path)
                directory.mkdir(parents=True, exist_ok=True)
                filepath = directory / filename
                filepath.write_bytes(base64.b64decode(data))
            except (OSError, ValueError) as e:
                self._logger.warning(f"Failed to save debug image: {e}")
                return "[image]"
            return f"[image saved to: {filepath}]"

        return "[image]"


def _is_image_value(value: Any) -> bool:
    if isinstance(value, str):
        return value.startswith("data:image/")
    return isinstance(value, dict) and value.get("type") == "base64"


def _parse_image(image: Any) -> Optional[tuple]:
    if isinstance(image, str):
        match = _DATA_URL.match(image)
        if not match:
            return None
        return match.group(1), match.group(2)
    if isinstance(image, dict) and image.get("type") == "base64":
        media_type = image.get("media_type", "image/png")
        extension = media_type.split("/")[-1] or "png"
        return extension, image.get("data", "")
    return None


def _to_json(value: Any) -> str:
    if hasattr(value, "model_dump"):
        value = value.model_dump()
    return json.dumps(value, indent=2, default=str, ensure_ascii=False)


class EventSink:
    """
    Posts workflow run events to an HTTP endpoint.

    Fails gracefully: the first transport error disables the sink for the
    rest of its life and execution carries on.
    """

    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        # A client passed in stays owned by the caller
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.enabled = True
        self._logger = logging.getLogger(__name__)

    async def emit(self, event: str, **payload: Any) -> None:
        if not self.enabled:
            return

        body = json.loads(json.dumps(
            {
                "event": event,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **payload,
            },
            default=str,
        ))
        try:
            response = await self.client.post(self.url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._logger.warning(f"Event sink unavailable, disabling: {e}", extra={"sink_url": self.url})
            self.enabled = False

    async def close(self) -> None:
        self.enabled = False
        if self._owns_client:
            await self.client.aclose()
