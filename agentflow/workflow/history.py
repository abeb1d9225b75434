# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Conversation history trimming.

Screenshots returned by tools pile up quickly. Only the most recent user
message keeps its tool-result images; older ones are reduced to their text.
"""

from typing import Any, Dict, List

IMAGE_PLACEHOLDER = {"type": "text", "text": "ok"}


def count_tool_result_images(messages: List[Dict[str, Any]]) -> int:
    count = 0
    for message in messages:
        content = message.get("content")
        if not isinstance(content, list):
            continue
        for block in content:
            if block.get("type") == "tool_result" and isinstance(block.get("content"), list):
                count += sum(1 for item in block["content"] if item.get("type") == "image")
    return count


def strip_history_images(messages: List[Dict[str, Any]]) -> int:
    """
    Remove images from tool results of every user message but the latest one.

    Mutates messages in place. A tool result left empty gets an "ok" text
    block. Returns the number of images removed; running it again on the same
    history removes nothing.
    """
    removed = 0
    seen_latest_user = False

    for message in reversed(messages):
        if message.get("role") != "user":
            continue
        if not seen_latest_user:
            seen_latest_user = True
            continue

        content = message.get("content")
        if not isinstance(content, list):
            continue

        for block in content:
            if block.get("type") != "tool_result":
                continue
            items = block.get("content")
            if not isinstance(items, list) or not items:
                continue
            kept = [item for item in items if item.get("type") != "image"]
            removed += len(items) - len(kept)
            block["content"] = kept or [dict(IMAGE_PLACEHOLDER)]

    return removed
