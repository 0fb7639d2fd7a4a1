from __future__ import annotations

"""LangGraph control loop.

``AgentLoop`` drives the reasoning+acting cycle for one conversation turn: it
alternates reasoning-backend calls with action execution until the backend
answers without requesting actions, the turn limit is hit, or the run is
cancelled.

Graph
-----

- ``call_backend``: cancellation check, turn counting, one backend call.
  A reply without action requests is either retried (unfinished intent),
  continued (a stop hook asked for it), or finished.
- ``execute_actions``: runs every requested action strictly sequentially
  through the ``ExecutionPipeline`` and appends one tool-role message each.
- ``check_turn_limit``: loops back to ``call_backend`` or pauses the graph.
- ``finish``: terminal node.

Pause/resume
------------

When the turn limit is reached the graph ends in the ``limit`` route. ``chat``
then asks the host's ``on_turn_limit_reached`` callback; on "continue" the
turn counter is reset and the graph is invoked again with the same state.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from langgraph.graph import END, StateGraph

from ..capabilities.base import ExecutionContext
from ..errors import ReasoningBackendError
from ..hooks.manager import HookSession
from ..pipeline.pipeline import ExecutionPipeline
from ..schemas.domain import ToolErrorType, ToolResult
from .models import (
    BackendResponse,
    ChatContext,
    LoopError,
    LoopErrorType,
    LoopOptions,
    LoopResult,
    Message,
    ReasoningBackend,
    ToolCall,
    _LoopState,
)

logger = logging.getLogger(__name__)

TURN_LIMIT = 100
MAX_INTENT_RETRIES = 2
CORRECTIVE_PROMPT = "Please perform the operation you described instead of only describing it."
STOP_CONTINUE_PROMPT = "Continue."

INCOMPLETE_INTENT_PATTERNS: Sequence[re.Pattern[str]] = (
    re.compile(r"：\s*$"),
    re.compile(r":\s*$"),
    re.compile(r"\.\.\.\s*$"),
    re.compile(r"让我(先|来|开始|查看|检查|修复)"),
    re.compile(r"Let me (first|start|check|look|fix)", re.IGNORECASE),
)


def detect_incomplete_intent(content: str) -> bool:
    """True when the text announces an action it did not request."""
    return any(p.search(content) for p in INCOMPLETE_INTENT_PATTERNS)


def effective_turn_limit(configured: int) -> int:
    """-1 means the hard ceiling; any other value is capped at it."""
    if configured < 0:
        return TURN_LIMIT
    return min(configured, TURN_LIMIT)


@dataclass
class _Run:
    """Non-serializable per-call objects carried in the graph state."""

    context: ChatContext
    options: LoopOptions


class AgentLoop:
    """Run the reasoning+acting cycle against an execution pipeline."""

    def __init__(
        self,
        backend: ReasoningBackend,
        pipeline: ExecutionPipeline,
        *,
        max_turns: int = -1,
        system_prompt: Optional[str] = None,
    ) -> None:
        """
        Initialize the AgentLoop.

        Args:
            backend: The reasoning backend.
            pipeline: Pipeline every action call goes through.
            max_turns: Default turn limit when ``LoopOptions.max_turns`` is unset.
            system_prompt: Default persona prompt when the context has none.
        """
        self._backend = backend
        self._pipeline = pipeline
        self._max_turns = max_turns
        self._system_prompt = system_prompt
        self._graph = self._build_graph()

    @property
    def pipeline(self) -> ExecutionPipeline:
        return self._pipeline

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_LoopState)
        g.add_node("call_backend", self._node_call_backend)
        g.add_node("execute_actions", self._node_execute_actions)
        g.add_node("check_turn_limit", self._node_check_turn_limit)
        g.add_node("finish", self._node_finish)

        g.set_entry_point("call_backend")
        g.add_conditional_edges(
            "call_backend",
            self._route_after_backend,
            {
                "actions": "execute_actions",
                "retry": "check_turn_limit",
                "finish": "finish",
            },
        )
        g.add_conditional_edges(
            "execute_actions",
            self._route_after_actions,
            {"check": "check_turn_limit", "finish": "finish"},
        )
        g.add_conditional_edges(
            "check_turn_limit",
            self._route_after_check,
            {"continue": "call_backend", "limit": END},
        )
        g.add_edge("finish", END)
        return g.compile()

    async def chat(
        self,
        message: str,
        context: ChatContext,
        options: Optional[LoopOptions] = None,
    ) -> LoopResult:
        """
        Run the loop for one user message.

        Only a reasoning-backend failure escapes, as ``ReasoningBackendError``;
        every other outcome, cancellation included, comes back as a ``LoopResult``.
        """
        options = options or LoopOptions()
        configured = options.max_turns if options.max_turns is not None else self._max_turns
        if configured == 0:
            return LoopResult(
                success=False,
                error=LoopError(LoopErrorType.chat_disabled, "Chat is disabled (max_turns=0)"),
            )
        max_turns = effective_turn_limit(configured)

        messages: List[Message] = []
        system_prompt = context.system_prompt or self._system_prompt
        if system_prompt:
            messages.append(Message(role="system", content=system_prompt))
        messages.extend(context.history)
        messages.append(Message(role="user", content=await self._user_content(message, context, options)))

        state: _LoopState = {
            "messages": messages,
            "turns": 0,
            "total_turns": 0,
            "max_turns": max_turns,
            "retries": 0,
            "tokens": 0,
            "results": [],
            "run": _Run(context=context, options=options),
        }
        while True:
            state = await self._graph.ainvoke(state, config={"recursion_limit": max_turns * 3 + 10})
            if state.get("route") != "limit":
                return self._to_result(state)

            turns = int(state["turns"])
            decision = None
            if options.on_turn_limit_reached is not None:
                decision = await options.on_turn_limit_reached(turns)
            if decision is None or not decision.continue_:
                return LoopResult(
                    success=False,
                    error=LoopError(LoopErrorType.max_turns_exceeded, f"Reached the maximum turn limit ({max_turns})"),
                    metadata={"turns": state["total_turns"], "actions": len(state.get("results") or [])},
                    messages=self._conversation(state),
                    results=list(state.get("results") or []),
                )
            logger.info(f"Turn limit reached for {context.session_id}; continuing after host approval")
            state["turns"] = 0
            state["route"] = ""

    async def _user_content(self, message: str, context: ChatContext, options: LoopOptions) -> str:
        session = HookSession(context.session_id, context.workspace_root, options.permission_mode)
        hooked = await self._pipeline.hook_manager.run_user_prompt_submit(session, message)
        if hooked.additional_context:
            return f"{message}\n\n{hooked.additional_context}"
        return message

    async def _node_call_backend(self, state: _LoopState) -> _LoopState:
        """One reasoning step: call the backend and decide where to go next."""
        run: _Run = state["run"]
        options = run.options
        if self._cancelled(options):
            state["route"] = "aborted"
            return state

        state["turns"] = int(state["turns"]) + 1
        state["total_turns"] = int(state["total_turns"]) + 1
        if options.on_turn_start is not None:
            options.on_turn_start(state["turns"], state["max_turns"])

        response = await self._call_backend(state, options)
        if response is None:
            state["route"] = "aborted"
            return state

        if response.usage is not None:
            state["tokens"] = int(state.get("tokens") or 0) + response.usage.total_tokens
        if response.content and options.on_content is not None:
            options.on_content(response.content)
        if response.reasoning and options.on_thinking is not None:
            options.on_thinking(response.reasoning)

        if response.tool_calls:
            state["pending_calls"] = list(response.tool_calls)
            state["retries"] = 0
            state["messages"].append(
                Message(role="assistant", content=response.content, tool_calls=list(response.tool_calls))
            )
            state["route"] = "actions"
            return state

        if detect_incomplete_intent(response.content) and int(state["retries"]) < MAX_INTENT_RETRIES:
            logger.debug(f"Unfinished intent detected on turn {state['turns']}; asking the backend to act")
            state["retries"] = int(state["retries"]) + 1
            state["messages"].append(Message(role="assistant", content=response.content))
            state["messages"].append(Message(role="user", content=CORRECTIVE_PROMPT))
            state["route"] = "retry"
            return state

        stop = await self._pipeline.hook_manager.run_stop(
            HookSession(run.context.session_id, run.context.workspace_root, options.permission_mode)
        )
        state["messages"].append(Message(role="assistant", content=response.content))
        if stop.should_continue:
            logger.info(f"Stop hook requested continuation: {stop.reason or 'no reason given'}")
            state["messages"].append(Message(role="user", content=stop.reason or STOP_CONTINUE_PROMPT))
            state["route"] = "retry"
            return state

        state["final_text"] = response.content
        state["route"] = "finish"
        return state

    async def _call_backend(self, state: _LoopState, options: LoopOptions) -> Optional[BackendResponse]:
        """Call the backend, racing it against the cancel signal. ``None`` means cancelled."""
        tools = self._pipeline.registry.list_declarations(options.permission_mode)
        call = asyncio.ensure_future(
            self._backend.chat(
                list(state["messages"]),
                tools,
                cancel_event=options.cancel_event,
                on_delta=options.on_content_delta,
            )
        )
        waiters = {call}
        cancel_wait = None
        if options.cancel_event is not None:
            cancel_wait = asyncio.ensure_future(options.cancel_event.wait())
            waiters.add(cancel_wait)

        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if cancel_wait is not None and not cancel_wait.done():
                cancel_wait.cancel()

        if not call.done():
            call.cancel()
            try:
                await call
            except asyncio.CancelledError:
                pass
            return None

        try:
            return call.result()
        except asyncio.CancelledError:
            return None
        except ReasoningBackendError:
            raise
        except Exception as e:
            logger.error(f"Reasoning backend failed on turn {state['turns']}: {e}")
            raise ReasoningBackendError(str(e), turn=int(state["turns"])) from e

    async def _node_execute_actions(self, state: _LoopState) -> _LoopState:
        """Run the requested actions one at a time through the pipeline."""
        run: _Run = state["run"]
        options = run.options
        results: List[ToolResult] = state.setdefault("results", [])
        for call in state.get("pending_calls") or []:
            if self._cancelled(options):
                state["route"] = "aborted"
                return state

            result = await self._execute_call(call, run)
            results.append(result)
            if options.on_tool_result is not None:
                options.on_tool_result(call, result)
            state["messages"].append(
                Message(
                    role="tool",
                    tool_call_id=call.id,
                    name=call.name,
                    content=result.llm_content or result.display_content or "",
                )
            )
        state["pending_calls"] = []
        state["route"] = "check"
        return state

    async def _execute_call(self, call: ToolCall, run: _Run) -> ToolResult:
        try:
            params = json.loads(call.arguments or "{}")
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON arguments for {call.name}: {e}")
            return ToolResult.fail(ToolErrorType.validation_error, f"Invalid tool arguments: {e}")
        if not isinstance(params, dict):
            return ToolResult.fail(ToolErrorType.validation_error, "Invalid tool arguments: expected a JSON object")

        ctx = ExecutionContext(
            session_id=run.context.session_id,
            workspace_root=run.context.workspace_root,
            permission_mode=run.options.permission_mode,
            cancel_event=run.options.cancel_event,
            confirm=run.context.confirm,
            message_id=call.id,
        )
        return await self._pipeline.execute(call.name, params, ctx)

    async def _node_check_turn_limit(self, state: _LoopState) -> _LoopState:
        state["route"] = "limit" if int(state["turns"]) >= int(state["max_turns"]) else "continue"
        return state

    async def _node_finish(self, state: _LoopState) -> _LoopState:
        logger.debug(f"Loop finished after {state['turns']} turns with route={state.get('route')}")
        return state

    def _route_after_backend(self, state: _LoopState) -> str:
        route = state.get("route")
        if route in ("actions", "retry"):
            return str(route)
        return "finish"

    def _route_after_actions(self, state: _LoopState) -> str:
        return "finish" if state.get("route") == "aborted" else "check"

    def _route_after_check(self, state: _LoopState) -> str:
        return "limit" if state.get("route") == "limit" else "continue"

    @staticmethod
    def _cancelled(options: LoopOptions) -> bool:
        return options.cancel_event is not None and options.cancel_event.is_set()

    @staticmethod
    def _conversation(state: _LoopState) -> List[Message]:
        return [m for m in state["messages"] if m.role != "system"]

    def _to_result(self, state: _LoopState) -> LoopResult:
        results = list(state.get("results") or [])
        if state.get("route") == "aborted":
            return LoopResult(
                success=False,
                error=LoopError(LoopErrorType.aborted, "Aborted by user"),
                metadata={"turns": state["total_turns"], "actions": len(results)},
                messages=self._conversation(state),
                results=results,
            )
        metadata: Dict[str, Any] = {
            "turns": state["total_turns"],
            "actions": len(results),
            "tokens": state.get("tokens") or 0,
        }
        return LoopResult(
            success=True,
            final_text=state.get("final_text") or "",
            metadata=metadata,
            messages=self._conversation(state),
            results=results,
        )
