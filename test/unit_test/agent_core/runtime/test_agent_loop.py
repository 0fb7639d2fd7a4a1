from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from codeloop_ai.agent_core.errors import ReasoningBackendError
from codeloop_ai.agent_core.factory import build_default_registry
from codeloop_ai.agent_core.hooks.manager import HookManager
from codeloop_ai.agent_core.hooks.models import HookConfig
from codeloop_ai.agent_core.pipeline.pipeline import ExecutionPipeline
from codeloop_ai.agent_core.runtime.engine import (
    CORRECTIVE_PROMPT,
    TURN_LIMIT,
    AgentLoop,
    detect_incomplete_intent,
    effective_turn_limit,
)
from codeloop_ai.agent_core.runtime.models import (
    BackendResponse,
    ChatContext,
    LoopErrorType,
    LoopOptions,
    Message,
    TokenUsage,
    ToolCall,
    TurnLimitResponse,
)
from codeloop_ai.agent_core.schemas.domain import PermissionMode


class _ScriptedBackend:
    """Replays canned responses and records what it was sent."""

    def __init__(self, responses: List[BackendResponse]) -> None:
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def chat(
        self,
        messages: List[Message],
        tools: List[Dict[str, Any]],
        *,
        cancel_event: Optional[asyncio.Event] = None,
        on_delta: Optional[Callable[[str], None]] = None,
    ) -> BackendResponse:
        self.calls.append({"messages": list(messages), "tools": [t["name"] for t in tools]})
        response = self._responses.pop(0) if self._responses else BackendResponse(content="done")
        if on_delta is not None and response.content:
            on_delta(response.content)
        return response


class _ToolLoopBackend(_ScriptedBackend):
    """Always asks to read the same file."""

    def __init__(self) -> None:
        super().__init__([])

    async def chat(self, messages, tools, *, cancel_event=None, on_delta=None) -> BackendResponse:
        self.calls.append({"messages": list(messages), "tools": [t["name"] for t in tools]})
        n = len(self.calls)
        return BackendResponse(tool_calls=[ToolCall(id=f"c{n}", name="Read", arguments='{"file_path": "a.txt"}')])


class _FailingBackend(_ScriptedBackend):
    async def chat(self, messages, tools, *, cancel_event=None, on_delta=None) -> BackendResponse:
        raise ConnectionError("upstream unavailable")


class _HangingBackend(_ScriptedBackend):
    async def chat(self, messages, tools, *, cancel_event=None, on_delta=None) -> BackendResponse:
        await asyncio.sleep(30)
        return BackendResponse(content="too late")


def _call(call_id: str, name: str, **arguments: Any) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=json.dumps(arguments))


def _loop(backend, hooks: Optional[HookManager] = None, **kwargs: Any) -> AgentLoop:
    return AgentLoop(backend, ExecutionPipeline(build_default_registry(), hook_manager=hooks), **kwargs)


def _context(workspace: Path, **kwargs: Any) -> ChatContext:
    return ChatContext(session_id="sess", workspace_root=str(workspace), **kwargs)


@pytest.mark.asyncio
async def test_zero_max_turns_disables_chat(workspace: Path) -> None:
    backend = _ScriptedBackend([])
    result = await _loop(backend).chat("hi", _context(workspace), LoopOptions(max_turns=0))

    assert not result.success
    assert result.error.kind == LoopErrorType.chat_disabled
    assert backend.calls == []


@pytest.mark.asyncio
async def test_unfinished_intent_is_retried(workspace: Path) -> None:
    backend = _ScriptedBackend(
        [BackendResponse(content="Let me fix that:"), BackendResponse(content="Fixed it.")]
    )
    result = await _loop(backend).chat("fix the bug", _context(workspace))

    assert result.success
    assert result.final_text == "Fixed it."
    assert result.metadata["turns"] == 2
    assert result.metadata["actions"] == 0
    assert backend.calls[1]["messages"][-1].content == CORRECTIVE_PROMPT


@pytest.mark.asyncio
async def test_unfinished_intent_retry_budget_is_two(workspace: Path) -> None:
    backend = _ScriptedBackend([BackendResponse(content="Working on it...") for _ in range(4)])
    result = await _loop(backend).chat("go", _context(workspace))

    assert result.success
    assert result.final_text == "Working on it..."
    assert len(backend.calls) == 3


@pytest.mark.asyncio
async def test_actions_are_executed_and_fed_back(workspace: Path) -> None:
    (workspace / "a.txt").write_text("alpha\n", encoding="utf-8")
    backend = _ScriptedBackend(
        [
            BackendResponse(
                content="Reading.",
                tool_calls=[_call("c1", "Read", file_path="a.txt"), _call("c2", "Glob", pattern="*.txt")],
                usage=TokenUsage(total_tokens=10),
            ),
            BackendResponse(content="The file says alpha.", usage=TokenUsage(total_tokens=5)),
        ]
    )
    seen: List[str] = []
    result = await _loop(backend).chat(
        "what is in a.txt?",
        _context(workspace),
        LoopOptions(on_tool_result=lambda call, res: seen.append(f"{call.name}:{res.success}")),
    )

    assert result.success
    assert result.final_text == "The file says alpha."
    assert result.metadata == {"turns": 2, "actions": 2, "tokens": 15}
    assert seen == ["Read:True", "Glob:True"]

    sent = backend.calls[1]["messages"]
    assert [m.role for m in sent] == ["user", "assistant", "tool", "tool"]
    assert sent[1].tool_calls[0].id == "c1"
    assert sent[2].tool_call_id == "c1"
    assert "alpha" in sent[2].content


@pytest.mark.asyncio
async def test_invalid_json_arguments_become_failed_result(workspace: Path) -> None:
    backend = _ScriptedBackend(
        [
            BackendResponse(tool_calls=[ToolCall(id="c1", name="Read", arguments="{not json")]),
            BackendResponse(content="ok"),
        ]
    )
    result = await _loop(backend).chat("go", _context(workspace))

    assert result.success
    assert not result.results[0].success
    assert result.results[0].llm_content.startswith("Invalid tool arguments")


@pytest.mark.asyncio
async def test_plan_mode_advertises_read_only_actions(workspace: Path) -> None:
    backend = _ScriptedBackend([BackendResponse(content="plan ready")])
    await _loop(backend).chat("plan it", _context(workspace), LoopOptions(permission_mode=PermissionMode.plan))
    assert sorted(backend.calls[0]["tools"]) == ["Glob", "Grep", "Read"]


@pytest.mark.asyncio
async def test_turn_limit_without_callback_fails(workspace: Path) -> None:
    (workspace / "a.txt").write_text("alpha\n", encoding="utf-8")
    backend = _ToolLoopBackend()
    result = await _loop(backend).chat("loop", _context(workspace), LoopOptions(max_turns=3))

    assert not result.success
    assert result.error.kind == LoopErrorType.max_turns_exceeded
    assert result.metadata == {"turns": 3, "actions": 3}
    assert len(backend.calls) == 3


@pytest.mark.asyncio
async def test_turn_limit_callback_can_continue(workspace: Path) -> None:
    (workspace / "a.txt").write_text("alpha\n", encoding="utf-8")
    backend = _ToolLoopBackend()
    asked: List[int] = []

    async def on_limit(turns: int) -> TurnLimitResponse:
        asked.append(turns)
        return TurnLimitResponse(continue_=len(asked) < 2)

    result = await _loop(backend).chat(
        "loop", _context(workspace), LoopOptions(max_turns=2, on_turn_limit_reached=on_limit)
    )

    assert result.error.kind == LoopErrorType.max_turns_exceeded
    assert asked == [2, 2]
    assert len(backend.calls) == 4
    assert result.metadata == {"turns": 4, "actions": 4}


@pytest.mark.asyncio
async def test_cancel_before_start_returns_aborted(workspace: Path) -> None:
    cancel = asyncio.Event()
    cancel.set()
    backend = _ScriptedBackend([])
    result = await _loop(backend).chat("hi", _context(workspace), LoopOptions(cancel_event=cancel))

    assert not result.success
    assert result.error.kind == LoopErrorType.aborted
    assert result.final_text == ""
    assert backend.calls == []


@pytest.mark.asyncio
async def test_cancel_during_backend_call(workspace: Path) -> None:
    cancel = asyncio.Event()
    loop = _loop(_HangingBackend([]))

    async def _cancel_soon() -> None:
        await asyncio.sleep(0.05)
        cancel.set()

    _, result = await asyncio.gather(
        _cancel_soon(), loop.chat("hi", _context(workspace), LoopOptions(cancel_event=cancel))
    )
    assert result.error.kind == LoopErrorType.aborted


@pytest.mark.asyncio
async def test_backend_failure_is_raised(workspace: Path) -> None:
    with pytest.raises(ReasoningBackendError) as exc:
        await _loop(_FailingBackend([])).chat("hi", _context(workspace))
    assert exc.value.turn == 1
    assert isinstance(exc.value.__cause__, ConnectionError)


@pytest.mark.asyncio
async def test_history_and_system_prompt_are_sent(workspace: Path) -> None:
    backend = _ScriptedBackend([BackendResponse(content="hello again")])
    context = _context(
        workspace,
        history=[Message(role="user", content="earlier"), Message(role="assistant", content="reply")],
    )
    result = await _loop(backend, system_prompt="You are terse.").chat("hi", context)

    sent = backend.calls[0]["messages"]
    assert [m.role for m in sent] == ["system", "user", "assistant", "user"]
    assert sent[0].content == "You are terse."
    assert [m.content for m in result.messages][-2:] == ["hi", "hello again"]
    assert all(m.role != "system" for m in result.messages)


@pytest.mark.asyncio
async def test_prompt_and_stop_hooks(workspace: Path) -> None:
    hooks = HookManager(
        HookConfig.model_validate(
            {
                "UserPromptSubmit": [{"hooks": [{"command": "echo 'context: repo is clean'"}]}],
                # continue once, then let the loop stop
                "Stop": [
                    {
                        "hooks": [
                            {
                                "command": "test -f stopped || { touch stopped; "
                                "echo '{\"continue\": true, \"reason\": \"run the tests\"}'; }"
                            }
                        ]
                    }
                ],
            }
        )
    )
    backend = _ScriptedBackend([BackendResponse(content="first"), BackendResponse(content="second")])
    result = await _loop(backend, hooks).chat("hi", _context(workspace))

    assert result.success
    assert result.final_text == "second"
    assert result.metadata["turns"] == 2
    assert backend.calls[0]["messages"][-1].content == "hi\n\ncontext: repo is clean"
    assert backend.calls[1]["messages"][-1].content == "run the tests"


@pytest.mark.asyncio
async def test_streaming_callbacks(workspace: Path) -> None:
    backend = _ScriptedBackend([BackendResponse(content="answer", reasoning="thinking")])
    content: List[str] = []
    deltas: List[str] = []
    thinking: List[str] = []
    turns: List[tuple] = []

    await _loop(backend).chat(
        "hi",
        _context(workspace),
        LoopOptions(
            on_content=content.append,
            on_content_delta=deltas.append,
            on_thinking=thinking.append,
            on_turn_start=lambda turn, limit: turns.append((turn, limit)),
        ),
    )

    assert content == ["answer"]
    assert deltas == ["answer"]
    assert thinking == ["thinking"]
    assert turns == [(1, TURN_LIMIT)]


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Let me check the config:", True),
        ("Next step：", True),
        ("Loading...", True),
        ("让我先看看", True),
        ("let me look at it", True),
        ("All done.", False),
        ("", False),
    ],
)
def test_detect_incomplete_intent(text: str, expected: bool) -> None:
    assert detect_incomplete_intent(text) is expected


@pytest.mark.parametrize(("configured", "expected"), [(-1, 100), (5, 5), (500, 100)])
def test_effective_turn_limit(configured: int, expected: int) -> None:
    assert effective_turn_limit(configured) == expected
