from __future__ import annotations

import pytest

from codeloop_ai.agent_core.capabilities.base import ExecutionContext
from codeloop_ai.agent_core.pipeline.models import AbortedRecordError, ExecutionRecord, SessionApprovals
from codeloop_ai.agent_core.schemas.domain import ToolErrorType, ToolResult


def _record() -> ExecutionRecord:
    return ExecutionRecord(tool_name="Write", params={"file_path": "a"}, context=ExecutionContext(session_id="s"))


def test_abort_freezes_record() -> None:
    record = _record()
    record.abort("denied", ToolErrorType.permission_denied)

    with pytest.raises(AbortedRecordError):
        record.params = {}
    with pytest.raises(AbortedRecordError):
        record.set_result(ToolResult.ok("done"))
    assert record.result is None


def test_first_abort_reason_wins() -> None:
    record = _record()
    record.abort("first", ToolErrorType.hook_blocked)
    record.abort("second", ToolErrorType.permission_denied)
    assert record.abort_reason == "first"
    assert record.abort_kind == ToolErrorType.hook_blocked


def test_confirmation_reasons_accumulate() -> None:
    record = _record()
    record.require_confirmation("rule says ask")
    record.require_confirmation("sensitive file")
    assert record.needs_confirmation
    assert record.confirmation_reason == "rule says ask\nsensitive file"


def test_session_approvals() -> None:
    approvals = SessionApprovals()
    approvals.add("Bash(ls)")
    approvals.add("Bash(ls)")
    assert approvals.has("Bash(ls)")
    assert not approvals.has(None)
    assert approvals.snapshot() == ["Bash(ls)"]
    assert len(approvals) == 1
    approvals.clear()
    assert len(approvals) == 0
