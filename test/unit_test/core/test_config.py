from __future__ import annotations

import json
from pathlib import Path

import pytest

from codeloop_ai.agent_core.hooks.models import HookBehavior, HookEvent
from codeloop_ai.agent_core.schemas.domain import PermissionMode
from codeloop_ai.core.config import Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("CODELOOP_AI_MAX_TURNS", "CODELOOP_AI_PERMISSION_MODE", "CODELOOP_AI_HOOKS_FILE"):
        monkeypatch.delenv(name, raising=False)
    s = Settings(_env_file=None)

    assert s.loop.max_turns == -1
    assert s.loop.permission_mode == PermissionMode.default
    assert s.history_limit == 1000
    assert s.hook_config.default_timeout == 60
    assert s.hook_config.max_concurrent_hooks == 5


def test_environment_binding(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CODELOOP_AI_MAX_TURNS", "7")
    monkeypatch.setenv("CODELOOP_AI_PERMISSION_MODE", "autoEdit")
    monkeypatch.setenv("CODELOOP_AI_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("CODELOOP_AI_PERMISSIONS_DENY", '["Bash(curl:*)"]')
    monkeypatch.setenv("CODELOOP_AI_HOOK_TIMEOUT_BEHAVIOR", "deny")

    s = Settings(_env_file=None)

    assert s.loop.max_turns == 7
    assert s.loop.permission_mode == PermissionMode.auto_edit
    assert s.logging.level == "DEBUG"
    assert s.permission_config.deny == ["Bash(curl:*)"]
    assert s.hook_config.timeout_behavior == HookBehavior.deny


def test_hooks_file_is_merged(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    hooks_file = tmp_path / "hooks.json"
    hooks_file.write_text(
        json.dumps(
            {
                "defaultTimeout": 10,
                "PreToolUse": [{"matcher": {"tools": "Write"}, "hooks": [{"command": "echo hi"}]}],
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("CODELOOP_AI_HOOKS_FILE", str(hooks_file))
    monkeypatch.setenv("CODELOOP_AI_HOOK_MAX_CONCURRENCY", "3")

    cfg = Settings(_env_file=None).hook_config

    assert cfg.default_timeout == 10
    assert cfg.max_concurrent_hooks == 3
    assert cfg.groups_for(HookEvent.pre_tool_use)[0].hooks[0].command == "echo hi"


def test_hooks_file_scalar_options_override_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    hooks_file = tmp_path / "hooks.json"
    hooks_file.write_text(json.dumps({"timeoutBehavior": "deny", "PreToolUse": []}), encoding="utf-8")
    monkeypatch.setenv("CODELOOP_AI_HOOKS_FILE", str(hooks_file))
    monkeypatch.setenv("CODELOOP_AI_HOOK_TIMEOUT_BEHAVIOR", "ask")

    cfg = Settings(_env_file=None).hook_config

    assert cfg.timeout_behavior == HookBehavior.deny
    assert cfg.failure_behavior == HookBehavior.ignore
