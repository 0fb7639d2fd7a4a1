from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List

import pytest
from pydantic import BaseModel

from codeloop_ai.agent_core.capabilities.base import ActionDescription, BaseAction, ExecutionContext
from codeloop_ai.agent_core.capabilities.registry import ToolRegistry
from codeloop_ai.agent_core.factory import build_default_registry
from codeloop_ai.agent_core.hooks.manager import HookManager
from codeloop_ai.agent_core.hooks.models import HookCommand, HookConfig, HookMatcherGroup, MatcherConfig
from codeloop_ai.agent_core.pipeline.models import PipelineObserver
from codeloop_ai.agent_core.pipeline.pipeline import ExecutionPipeline
from codeloop_ai.agent_core.policy.checker import PermissionChecker
from codeloop_ai.agent_core.policy.engine import PermissionEngine
from codeloop_ai.agent_core.policy.models import PermissionConfig
from codeloop_ai.agent_core.schemas.domain import ConfirmationScope, PermissionMode, ToolErrorType, ToolKind, ToolResult

STAGES = ["discovery", "permission", "hook", "confirmation", "execution", "post_hook", "formatting"]


class _EchoInput(BaseModel):
    text: str


class _ExplodingAction(BaseAction[_EchoInput]):
    name = "Explode"
    kind = ToolKind.read_only
    input_model = _EchoInput
    description = ActionDescription(short="Always raises")

    async def run(self, params: _EchoInput, ctx: ExecutionContext) -> ToolResult:
        raise RuntimeError(f"kaboom: {params.text}")


def _hooks(event: str, command: str, matcher: MatcherConfig | None = None) -> HookManager:
    return HookManager(
        HookConfig.model_validate({event: [HookMatcherGroup(matcher=matcher, hooks=[HookCommand(command=command)])]})
    )


def _echo_json(data: Dict[str, Any]) -> str:
    return f"echo '{json.dumps(data)}'"


@pytest.mark.asyncio
async def test_read_runs_every_stage(workspace: Path, make_ctx) -> None:
    (workspace / "a.txt").write_text("hello\n", encoding="utf-8")
    pipeline = ExecutionPipeline(build_default_registry())

    result = await pipeline.execute("Read", {"file_path": "a.txt"}, make_ctx())

    assert result.success
    assert "hello" in result.llm_content
    assert result.metadata["tool_name"] == "Read"
    assert result.metadata["permission_mode"] == "default"
    entry = pipeline.history()[-1]
    assert list(entry.stages) == STAGES
    assert pipeline.stage_names == STAGES


@pytest.mark.asyncio
async def test_unknown_action_aborts_at_discovery(make_ctx) -> None:
    pipeline = ExecutionPipeline(ToolRegistry())
    result = await pipeline.execute("Nope", {}, make_ctx())

    assert not result.success
    assert result.error.kind == ToolErrorType.not_found
    assert result.llm_content == "Tool execution aborted: Tool not found: Nope"
    assert result.display_content == "❌ Nope: Tool not found: Nope"
    assert list(pipeline.history()[-1].stages) == ["discovery"]


@pytest.mark.asyncio
async def test_ambiguous_edit_aborts_before_any_write(workspace: Path, make_ctx, confirm_factory) -> None:
    target = workspace / "a.py"
    target.write_text("x = 1\nx = 1\nx = 1\n", encoding="utf-8")
    confirm = confirm_factory()
    pipeline = ExecutionPipeline(build_default_registry())

    result = await pipeline.execute(
        "Edit", {"file_path": "a.py", "old_string": "x = 1", "new_string": "x = 2"}, make_ctx(confirm=confirm)
    )

    assert not result.success
    assert result.error.kind == ToolErrorType.validation_error
    assert "Multiple matches" in result.error.message
    assert target.read_text(encoding="utf-8") == "x = 1\nx = 1\nx = 1\n"
    assert confirm.requests == []


@pytest.mark.asyncio
async def test_edit_of_undecodable_file_is_a_validation_error(workspace: Path, make_ctx) -> None:
    (workspace / "blob.bin").write_bytes(b"\xff\xfe abc abc")
    pipeline = ExecutionPipeline(build_default_registry())

    result = await pipeline.execute(
        "Edit", {"file_path": "blob.bin", "old_string": "abc", "new_string": "x", "replace_all": True}, make_ctx()
    )

    assert result.error.kind == ToolErrorType.validation_error
    assert "Cannot read" in result.error.message
    assert (workspace / "blob.bin").read_bytes() == b"\xff\xfe abc abc"


@pytest.mark.asyncio
async def test_pre_hook_deny_prevents_execution(workspace: Path, make_ctx) -> None:
    hooks = _hooks(
        "PreToolUse",
        _echo_json({"permissionDecision": "deny", "permissionDecisionReason": "env files are off limits"}),
        MatcherConfig(tools="Write", paths="*.env"),
    )
    pipeline = ExecutionPipeline(build_default_registry(), hook_manager=hooks)
    # skip the permission checks so the hook is what decides
    pipeline.add_session_approval("Write(.env)")

    result = await pipeline.execute("Write", {"file_path": ".env", "contents": "SECRET=1"}, make_ctx())

    assert not result.success
    assert result.error.kind == ToolErrorType.hook_blocked
    assert result.error.message == "env files are off limits"
    assert not (workspace / ".env").exists()
    assert "execution" not in pipeline.history()[-1].stages


@pytest.mark.asyncio
async def test_pre_hook_timeout_with_deny_behavior_aborts(workspace: Path, make_ctx) -> None:
    hooks = HookManager(
        HookConfig.model_validate(
            {
                "timeoutBehavior": "deny",
                "PreToolUse": [{"hooks": [{"command": "sleep 5", "timeout": 0.2}]}],
            }
        )
    )
    pipeline = ExecutionPipeline(build_default_registry(), hook_manager=hooks)
    pipeline.add_session_approval("Write(notes.txt)")

    result = await pipeline.execute("Write", {"file_path": "notes.txt", "contents": "x"}, make_ctx())

    assert result.error.kind == ToolErrorType.hook_timeout
    assert not (workspace / "notes.txt").exists()


@pytest.mark.asyncio
async def test_high_sensitivity_denies_even_in_yolo(workspace: Path, make_ctx) -> None:
    pipeline = ExecutionPipeline(build_default_registry())
    result = await pipeline.execute(
        "Write", {"file_path": "deploy/.env", "contents": "x"}, make_ctx(mode=PermissionMode.yolo)
    )
    assert not result.success
    assert result.error.kind == ToolErrorType.permission_denied
    assert "highly sensitive" in result.error.message
    assert not (workspace / "deploy" / ".env").exists()


@pytest.mark.asyncio
async def test_medium_sensitivity_forces_confirmation_over_allow(workspace: Path, make_ctx, confirm_factory) -> None:
    confirm = confirm_factory()
    pipeline = ExecutionPipeline(build_default_registry())

    result = await pipeline.execute(
        "Write", {"file_path": "app.log", "contents": "x"}, make_ctx(mode=PermissionMode.auto_edit, confirm=confirm)
    )

    assert result.success
    assert len(confirm.requests) == 1
    details = confirm.requests[0]
    assert "Sensitive file access detected" in details.message
    assert "Operation involves sensitive files" in details.risks
    assert details.affected_files == ["app.log"]


@pytest.mark.asyncio
async def test_write_without_confirm_handler_is_denied(workspace: Path, make_ctx) -> None:
    pipeline = ExecutionPipeline(build_default_registry())
    result = await pipeline.execute("Write", {"file_path": "a.txt", "contents": "x"}, make_ctx())

    assert not result.success
    assert result.error.kind == ToolErrorType.permission_denied
    assert "No confirmation handler" in result.error.message
    assert not (workspace / "a.txt").exists()


@pytest.mark.asyncio
async def test_user_rejection_aborts(workspace: Path, make_ctx, confirm_factory) -> None:
    pipeline = ExecutionPipeline(build_default_registry())
    confirm = confirm_factory(approved=False)
    result = await pipeline.execute("Write", {"file_path": "a.txt", "contents": "x"}, make_ctx(confirm=confirm))

    assert result.error.kind == ToolErrorType.confirmation_rejected
    assert result.error.message == "User rejected: not today"
    assert not (workspace / "a.txt").exists()


@pytest.mark.asyncio
async def test_confirmation_preview_and_suggested_rule(workspace: Path, make_ctx, confirm_factory) -> None:
    pipeline = ExecutionPipeline(build_default_registry())
    confirm = confirm_factory()
    await pipeline.execute("Bash", {"command": "cat a | sort"}, make_ctx(confirm=confirm))

    details = confirm.requests[0]
    assert details.title == "Permission Required: Bash"
    assert "**Command:** `cat a | sort`" in details.details
    assert "Command uses piping" in details.risks
    assert details.suggested_rule == "Bash(cat:*)"


@pytest.mark.asyncio
async def test_session_scope_remembers_signature(workspace: Path, make_ctx, confirm_factory) -> None:
    pipeline = ExecutionPipeline(build_default_registry())
    confirm = confirm_factory(scope=ConfirmationScope.session)
    ctx = make_ctx(confirm=confirm)

    first = await pipeline.execute("Write", {"file_path": "a.txt", "contents": "1"}, ctx)
    second = await pipeline.execute("Write", {"file_path": "a.txt", "contents": "2"}, ctx)

    assert first.success and second.success
    assert len(confirm.requests) == 1
    assert pipeline.has_session_approval("Write(a.txt)")
    assert (workspace / "a.txt").read_text(encoding="utf-8") == "2"

    pipeline.clear_session_approvals()
    assert pipeline.session_approvals() == []


@pytest.mark.asyncio
async def test_deny_rule_aborts_without_confirmation(make_ctx, confirm_factory) -> None:
    engine = PermissionEngine(PermissionChecker(PermissionConfig(deny=["Bash(curl:*)"])))
    pipeline = ExecutionPipeline(build_default_registry(), permission_engine=engine)
    confirm = confirm_factory()

    result = await pipeline.execute("Bash", {"command": "curl http://x"}, make_ctx(confirm=confirm))

    assert result.error.kind == ToolErrorType.permission_denied
    assert confirm.requests == []


@pytest.mark.asyncio
async def test_plan_mode_denies_write(make_ctx) -> None:
    pipeline = ExecutionPipeline(build_default_registry())
    result = await pipeline.execute(
        "Write", {"file_path": "a.txt", "contents": "x"}, make_ctx(mode=PermissionMode.plan)
    )
    assert result.error.kind == ToolErrorType.permission_denied


@pytest.mark.asyncio
async def test_permission_request_hook_approves_on_behalf_of_user(workspace: Path, make_ctx, confirm_factory) -> None:
    hooks = _hooks("PermissionRequest", _echo_json({"decision": "approve"}))
    pipeline = ExecutionPipeline(build_default_registry(), hook_manager=hooks)
    confirm = confirm_factory()

    result = await pipeline.execute("Write", {"file_path": "a.txt", "contents": "x"}, make_ctx(confirm=confirm))

    assert result.success
    assert confirm.requests == []


@pytest.mark.asyncio
async def test_pre_hook_rewrite_is_applied(workspace: Path, make_ctx) -> None:
    hooks = _hooks("PreToolUse", _echo_json({"updatedInput": {"contents": "from hook"}}))
    pipeline = ExecutionPipeline(build_default_registry(), hook_manager=hooks)

    result = await pipeline.execute(
        "Write", {"file_path": "a.txt", "contents": "original"}, make_ctx(mode=PermissionMode.auto_edit)
    )

    assert result.success
    assert (workspace / "a.txt").read_text(encoding="utf-8") == "from hook"
    assert pipeline.history()[-1].params["contents"] == "from hook"


@pytest.mark.asyncio
async def test_pre_hook_invalid_rewrite_aborts(workspace: Path, make_ctx) -> None:
    hooks = _hooks("PreToolUse", _echo_json({"updatedInput": {"file_path": ""}}))
    pipeline = ExecutionPipeline(build_default_registry(), hook_manager=hooks)

    result = await pipeline.execute(
        "Write", {"file_path": "a.txt", "contents": "x"}, make_ctx(mode=PermissionMode.auto_edit)
    )

    assert result.error.kind == ToolErrorType.validation_error
    assert result.error.message.startswith("Hook modified parameters are invalid")
    assert not (workspace / "a.txt").exists()


@pytest.mark.asyncio
async def test_post_hooks_merge_context_into_result(workspace: Path, make_ctx) -> None:
    (workspace / "a.txt").write_text("hi\n", encoding="utf-8")
    hooks = HookManager(
        HookConfig.model_validate(
            {
                "PostToolUse": [
                    {"hooks": [{"command": _echo_json({"additionalContext": "A"})}]},
                    {"hooks": [{"command": _echo_json({"additionalContext": "B"})}]},
                ]
            }
        )
    )
    pipeline = ExecutionPipeline(build_default_registry(), hook_manager=hooks)

    result = await pipeline.execute("Read", {"file_path": "a.txt"}, make_ctx())

    assert result.success
    assert "A" in result.metadata["hook_context"]
    assert "B" in result.metadata["hook_context"]
    assert result.llm_content.endswith(result.metadata["hook_context"])


@pytest.mark.asyncio
async def test_action_exception_becomes_failed_result_and_fires_failure_hooks(workspace: Path, make_ctx) -> None:
    marker = workspace / "failure-hook-ran"
    registry = ToolRegistry()
    registry.register(_ExplodingAction())
    hooks = _hooks("PostToolUseFailure", f"cat > {marker}")
    pipeline = ExecutionPipeline(registry, hook_manager=hooks)

    result = await pipeline.execute("Explode", {"text": "now"}, make_ctx())

    assert not result.success
    assert result.error.kind == ToolErrorType.execution_error
    assert result.llm_content == "Tool execution failed: kaboom: now"
    assert result.display_content == "Tool execution failed: kaboom: now"
    assert json.loads(marker.read_text(encoding="utf-8"))["error"] == "Tool execution failed: kaboom: now"


@pytest.mark.asyncio
async def test_cancelled_context_aborts_before_execution(workspace: Path, make_ctx) -> None:
    cancel = asyncio.Event()
    cancel.set()
    (workspace / "a.txt").write_text("hi\n", encoding="utf-8")
    pipeline = ExecutionPipeline(build_default_registry())

    result = await pipeline.execute("Read", {"file_path": "a.txt"}, make_ctx(cancel_event=cancel))

    assert result.error.kind == ToolErrorType.cancelled


@pytest.mark.asyncio
async def test_history_is_bounded(workspace: Path, make_ctx) -> None:
    (workspace / "a.txt").write_text("hi\n", encoding="utf-8")
    pipeline = ExecutionPipeline(build_default_registry(), history_limit=3)
    for _ in range(5):
        await pipeline.execute("Read", {"file_path": "a.txt"}, make_ctx())

    assert len(pipeline.history()) == 3
    assert len(pipeline.history(limit=2)) == 2
    pipeline.clear_history()
    assert pipeline.history() == []


@pytest.mark.asyncio
async def test_observers_are_notified_and_isolated(workspace: Path, make_ctx) -> None:
    (workspace / "a.txt").write_text("hi\n", encoding="utf-8")
    events: List[str] = []

    class _Recorder(PipelineObserver):
        def on_stage_complete(self, stage, record) -> None:
            events.append(stage)

    class _Broken(PipelineObserver):
        def on_execution_start(self, record) -> None:
            raise RuntimeError("observer bug")

    recorder = _Recorder()
    pipeline = ExecutionPipeline(build_default_registry(), observers=[_Broken(), recorder])
    result = await pipeline.execute("Read", {"file_path": "a.txt"}, make_ctx())

    assert result.success
    assert events == STAGES

    pipeline.remove_observer(recorder)
    await pipeline.execute("Read", {"file_path": "a.txt"}, make_ctx())
    assert events == STAGES
