# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Universal tools

Human interaction, workflow cancellation and summary. They reach the caller
through WorkflowCallback hooks; a hook that is missing or returns nothing
yields an error status rather than an exception so the model can carry on.
"""

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


async def _ask(context: Any, hook: str, *args: Any) -> Optional[Any]:
    callback = getattr(context, "callback", None)
    if callback is None:
        return None
    return await callback.call(hook, *args)


def _require(params: Any, *fields: str) -> None:
    if not isinstance(params, dict) or any(not params.get(field) for field in fields):
        quoted = " and ".join(f"'{field}'" for field in fields)
        raise ValueError(f"Invalid parameters. Expected an object with {quoted}")


class HumanInputText:
    name = "human_input_text"
    description = (
        "When you are unsure about the details of the next action, call this tool and ask "
        "the user in the 'question' field. The user will reply with text."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "question": {"type": "string", "description": "Ask the user here."},
        },
        "required": ["question"],
    }

    async def execute(self, context: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        _require(params, "question")
        question = params["question"]
        logger.info(f"Question: {question}")
        answer = await _ask(context, "on_human_input_text", question)
        if not answer:
            logger.error("Cannot get user's answer")
            return {"status": "Error: Cannot get user's answer.", "answer": ""}
        logger.info(f"Answer: {answer}")
        return {"status": "OK", "answer": answer}


class HumanInputSingleChoice:
    name = "human_input_single_choice"
    description = (
        "When you are unsure about the details of the next action, call this tool and ask "
        "the user in the 'question' field with at least 2 choices. The user will reply with "
        "one of the choices."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "question": {"type": "string", "description": "Ask the user here."},
            "choices": {"type": "array", "items": {"type": "string"}, "description": "All of the choices."},
        },
        "required": ["question", "choices"],
    }

    async def execute(self, context: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        _require(params, "question", "choices")
        question = params["question"]
        choices: List[str] = params["choices"]
        logger.info(f"Question: {question}", extra={"choices": choices})
        answer = await _ask(context, "on_human_input_single_choice", question, choices)
        if not answer:
            logger.error("Cannot get user's answer")
            return {"status": "Error: Cannot get user's answer.", "answer": ""}
        logger.info(f"Answer: {answer}")
        return {"status": "OK", "answer": answer}


class HumanInputMultipleChoice:
    name = "human_input_multiple_choice"
    description = (
        "When you are unsure about the details of the next action, call this tool and ask "
        "the user in the 'question' field with at least 2 choices. The user will reply with "
        "one or more of the choices."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "question": {"type": "string", "description": "Ask the user here."},
            "choices": {"type": "array", "items": {"type": "string"}, "description": "All of the choices."},
        },
        "required": ["question", "choices"],
    }

    async def execute(self, context: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        _require(params, "question", "choices")
        question = params["question"]
        choices: List[str] = params["choices"]
        logger.info(f"Question: {question}", extra={"choices": choices})
        answer = await _ask(context, "on_human_input_multiple_choice", question, choices)
        if not answer:
            logger.error("Cannot get user's answer")
            return {"status": "Error: Cannot get user's answer.", "answer": []}
        logger.info(f"Answer: {answer}")
        return {"status": "OK", "answer": list(answer)}


class HumanOperate:
    name = "human_operate"
    description = (
        "When you encounter operations that require login, CAPTCHA verification or anything "
        "else you cannot complete on your own, call this tool to hand control to the user "
        "and explain why."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "reason": {"type": "string", "description": "The reason why you need to transfer control."},
        },
        "required": ["reason"],
    }

    async def execute(self, context: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        _require(params, "reason")
        reason = params["reason"]
        logger.info(f"Handing control to user: {reason}")
        user_operation = await _ask(context, "on_human_operate", reason)
        if not user_operation:
            logger.error("Cannot get user's operation")
            return {"status": "Error: Cannot get user's operation.", "userOperation": ""}
        logger.info(f"User operation: {user_operation}")
        return {"status": "OK", "userOperation": user_operation}


class CancelWorkflow:
    name = "cancel_workflow"
    description = (
        "Cancel the workflow. If any tool consistently encounters exceptions, call this "
        "tool to cancel the workflow."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "reason": {"type": "string", "description": "Why the workflow should be cancelled."},
        },
        "required": ["reason"],
    }

    async def execute(self, context: Any, params: Dict[str, Any]) -> None:
        _require(params, "reason")
        logger.warning(f"Workflow cancelled by model: {params['reason']}")
        workflow = getattr(context, "workflow", None)
        if workflow is not None:
            await workflow.cancel()
        return None


class SummaryWorkflow:
    name = "summary_workflow"
    description = "Summarize what this workflow has done from start to finish as an ordered list."
    input_schema = {
        "type": "object",
        "properties": {
            "summary": {"type": "string", "description": "Your summary in markdown format."},
        },
        "required": ["summary"],
    }

    async def execute(self, context: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        _require(params, "summary")
        summary = params["summary"]
        logger.info(f"Summary: {summary}")
        await _ask(context, "on_summary_workflow", summary)
        return {"status": "OK"}


def universal_tools() -> List[Any]:
    """Fresh instances of every universal tool, in a stable order."""
    return [
        HumanInputText(),
        HumanInputSingleChoice(),
        HumanInputMultipleChoice(),
        HumanOperate(),
        CancelWorkflow(),
        SummaryWorkflow(),
    ]
