from __future__ import annotations

import logging
from uuid import uuid4

from ...capabilities.base import ExecutionContext
from ...errors import HookBlockingError, HookTimeoutError, ParameterValidationError
from ...hooks.manager import HookManager, HookSession
from ...schemas.domain import PermissionDecision
from ..models import ExecutionRecord

logger = logging.getLogger(__name__)


def hook_session(ctx: ExecutionContext) -> HookSession:
    return HookSession(
        session_id=ctx.session_id,
        project_dir=ctx.workspace_root,
        permission_mode=ctx.permission_mode,
    )


class HookStage:
    """Run pre-action hooks; they may deny, ask, or rewrite the parameters."""

    name = "hook"

    def __init__(self, hooks: HookManager) -> None:
        self._hooks = hooks

    async def process(self, record: ExecutionRecord) -> None:
        ctx = record.context
        action = record.action
        tool_use_id = ctx.message_id or f"tool_{uuid4().hex}"
        record.hook_tool_use_id = tool_use_id

        result = await self._hooks.run_pre_tool_use(
            hook_session(ctx),
            tool_name=record.tool_name,
            tool_use_id=tool_use_id,
            tool_input=record.params,
            validate=lambda params: action.validate(params, ctx),
        )

        if result.invalid_input_error is not None:
            raise ParameterValidationError(f"Hook modified parameters are invalid: {result.invalid_input_error}")
        if result.decision == PermissionDecision.deny:
            if result.timed_out:
                raise HookTimeoutError(result.reason or "Hook timed out")
            raise HookBlockingError(result.reason or "Hook blocked execution")
        if result.decision == PermissionDecision.ask:
            record.require_confirmation(result.reason or "Hook requested confirmation")
        if result.updated_input is not None:
            logger.warning(f"Parameters of {record.tool_name} were modified by a PreToolUse hook")
            record.params = result.updated_input
