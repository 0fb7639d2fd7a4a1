"""Confirmation stage.

When an earlier stage flagged the call for confirmation, this stage first lets
permission-request hooks answer on the user's behalf, then builds a
type-specific preview with risk annotations and asks the host through the
context's confirmation callback.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Mapping, Optional

from ...errors import ConfirmationRejectedError, HookBlockingError, PermissionDeniedError
from ...hooks.manager import HookManager
from ...policy.engine import extract_paths
from ...policy.signature import abstract_rule
from ...schemas.domain import ConfirmationDetails, ConfirmationScope, ToolKind
from ..models import ExecutionRecord, SessionApprovals
from .hook import hook_session

logger = logging.getLogger(__name__)

_EDIT_PREVIEW_LINES = 10
_WRITE_PREVIEW_LINES = 20

_RM_RE = re.compile(r"(^|[\s;&|(])rm(\s|$)")
_SUDO_RE = re.compile(r"(^|[\s;&|(])sudo(\s|$)")


def truncate_lines(text: str, max_lines: int) -> str:
    lines = text.split("\n")
    if len(lines) <= max_lines:
        return text
    return "\n".join(lines[:max_lines]) + f"\n... ({len(lines) - max_lines} more lines)"


def build_preview(tool_name: str, params: Mapping[str, Any]) -> Optional[str]:
    """Render a markdown preview of what the call is about to do."""
    if tool_name == "Edit":
        return (
            f"**File:** {params.get('file_path')}\n\n"
            f"**Before:**\n```\n{truncate_lines(str(params.get('old_string', '')), _EDIT_PREVIEW_LINES)}\n```\n\n"
            f"**After:**\n```\n{truncate_lines(str(params.get('new_string', '')), _EDIT_PREVIEW_LINES)}\n```"
        )
    if tool_name == "Write":
        return (
            f"**File:** {params.get('file_path')}\n\n"
            f"```\n{truncate_lines(str(params.get('contents', '')), _WRITE_PREVIEW_LINES)}\n```"
        )
    if tool_name == "Bash":
        preview = f"**Command:** `{params.get('command')}`"
        if params.get("working_directory"):
            preview += f"\n**Directory:** {params['working_directory']}"
        return preview
    if not params:
        return None
    return truncate_lines(json.dumps(dict(params), indent=2, default=str), _WRITE_PREVIEW_LINES)


def build_risks(kind: ToolKind, tool_name: str, params: Mapping[str, Any], reason: Optional[str]) -> List[str]:
    risks: List[str] = []
    if kind == ToolKind.write:
        risks.append("This operation will modify files")
    elif kind == ToolKind.execute:
        risks.append("This operation will execute system commands")

    if tool_name == "Bash":
        command = str(params.get("command", ""))
        if _RM_RE.search(command):
            risks.append("Command may delete files")
        if _SUDO_RE.search(command):
            risks.append("Command requires elevated privileges")
        if "|" in command:
            risks.append("Command uses piping")

    if reason and "Sensitive file" in reason:
        risks.append("Operation involves sensitive files")
    return risks


class ConfirmationStage:
    name = "confirmation"

    def __init__(self, approvals: SessionApprovals, hooks: HookManager) -> None:
        self._approvals = approvals
        self._hooks = hooks

    async def process(self, record: ExecutionRecord) -> None:
        if not record.needs_confirmation:
            return
        signature = record.permission_signature
        if self._approvals.has(signature):
            return

        ctx = record.context
        hook_answer = await self._hooks.run_permission_request(
            hook_session(ctx),
            tool_name=record.tool_name,
            tool_use_id=record.hook_tool_use_id or signature or record.tool_name,
            tool_input=record.params,
        )
        if hook_answer.decision == "approve":
            logger.info(f"{record.tool_name} approved by PermissionRequest hook")
            return
        if hook_answer.decision == "deny":
            raise HookBlockingError(hook_answer.reason or "Permission denied by hook")

        if ctx.confirm is None:
            raise PermissionDeniedError("No confirmation handler available - operation requires user approval")

        action = record.action
        details = ConfirmationDetails(
            title=f"Permission Required: {record.tool_name}",
            message=record.confirmation_reason or "This operation requires your confirmation",
            details=build_preview(record.tool_name, record.params),
            risks=build_risks(action.kind, record.tool_name, record.params, record.confirmation_reason),
            affected_files=extract_paths(record.params),
            suggested_rule=abstract_rule(record.tool_name, record.params, action),
        )
        response = await ctx.confirm(details)
        if not response.approved:
            raise ConfirmationRejectedError(f"User rejected: {response.reason or 'No reason provided'}")
        if response.scope == ConfirmationScope.session and signature:
            self._approvals.add(signature)
            logger.info(f"{signature} approved for the rest of the session")
