"""Hook manager.

``HookManager`` is the entry point the pipeline and the control loop use to
fire lifecycle events. It owns the ``HookExecutionGuard`` and applies the
permission-mode rules for pre-action hooks:

- plan mode skips pre-action hooks entirely;
- yolo mode turns a hook's "ask" into "allow" (a "deny" stands).

Failures inside the hook machinery are logged as warnings and yield neutral
results, so a broken hook setup never interrupts a run unless a hook is
configured to block.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Set

from ..schemas.domain import PermissionDecision, PermissionMode
from .executor import HookExecutor, ParamsValidator
from .matcher import Matcher, MatchContext
from .models import (
    CompactionInput,
    CompactionResult,
    HookCommand,
    HookConfig,
    HookEvent,
    LifecycleResult,
    NotificationInput,
    PermissionRequestInput,
    PermissionRequestResult,
    PostToolUseFailureInput,
    PostToolUseInput,
    PostToolUseResult,
    PreToolUseInput,
    PreToolUseResult,
    SessionEndInput,
    SessionStartInput,
    StopInput,
    StopResult,
    UserPromptSubmitInput,
)

logger = logging.getLogger(__name__)

DEFAULT_GUARD_ENTRIES = 1000


@dataclass(frozen=True)
class HookSession:
    """Session-level fields every hook payload carries."""

    session_id: str
    project_dir: str
    permission_mode: PermissionMode = PermissionMode.default


class HookExecutionGuard:
    """
    Records which events already fired for each action invocation.

    Only the most recent ``max_entries`` invocations are remembered; older ones
    are evicted first.
    """

    def __init__(self, max_entries: int = DEFAULT_GUARD_ENTRIES) -> None:
        self._max_entries = max_entries
        self._fired: OrderedDict[str, Set[HookEvent]] = OrderedDict()

    def has_executed(self, tool_use_id: str, event: HookEvent) -> bool:
        return event in self._fired.get(tool_use_id, ())

    def mark(self, tool_use_id: str, event: HookEvent) -> None:
        fired = self._fired.get(tool_use_id)
        if fired is None:
            fired = self._fired[tool_use_id] = set()
            while len(self._fired) > self._max_entries:
                self._fired.popitem(last=False)
        fired.add(event)

    def try_mark(self, tool_use_id: str, event: HookEvent) -> bool:
        """Mark the event as fired; False when it had already fired."""
        if self.has_executed(tool_use_id, event):
            return False
        self.mark(tool_use_id, event)
        return True

    def clear(self, tool_use_id: Optional[str] = None) -> None:
        if tool_use_id is None:
            self._fired.clear()
        else:
            self._fired.pop(tool_use_id, None)

    def __len__(self) -> int:
        return len(self._fired)


class HookManager:
    """Fire hook events for one agent. Build one per agent and inject it."""

    def __init__(
        self,
        config: Optional[HookConfig] = None,
        *,
        executor: Optional[HookExecutor] = None,
        matcher: Optional[Matcher] = None,
    ) -> None:
        self._cfg = config or HookConfig()
        self._executor = executor or HookExecutor(self._cfg)
        self._matcher = matcher or Matcher()
        self._guard = HookExecutionGuard()
        self._disabled_for_session = False

    @property
    def config(self) -> HookConfig:
        return self._cfg

    @property
    def guard(self) -> HookExecutionGuard:
        return self._guard

    def is_enabled(self) -> bool:
        return self._cfg.enabled and not self._disabled_for_session

    def disable_for_session(self) -> None:
        self._disabled_for_session = True

    def enable(self) -> None:
        self._disabled_for_session = False

    def _hooks(self, event: HookEvent, context: Optional[MatchContext] = None) -> List[HookCommand]:
        if not self.is_enabled():
            return []
        return self._matcher.matching_hooks(self._cfg.groups_for(event), context or MatchContext())

    def hook_counts(self) -> Dict[str, int]:
        return {e.value: sum(len(g.hooks) for g in self._cfg.groups_for(e)) for e in HookEvent}

    def configured_events(self) -> List[HookEvent]:
        return [e for e in HookEvent if self._cfg.groups_for(e)]

    # ------------------------------------------------------------------
    # Action events
    # ------------------------------------------------------------------

    async def run_pre_tool_use(
        self,
        session: HookSession,
        *,
        tool_name: str,
        tool_use_id: str,
        tool_input: Mapping[str, Any],
        validate: Optional[ParamsValidator] = None,
    ) -> PreToolUseResult:
        """
        Fire pre-action hooks for one invocation.

        Returns an "allow" result without running anything in plan mode, when
        no hook matches, or when the event already fired for ``tool_use_id``.
        """
        if session.permission_mode == PermissionMode.plan:
            return PreToolUseResult()
        hooks = self._hooks(HookEvent.pre_tool_use, MatchContext.for_tool(tool_name, tool_input))
        if not hooks or not self._guard.try_mark(tool_use_id, HookEvent.pre_tool_use):
            return PreToolUseResult()

        hook_input = PreToolUseInput(
            session_id=session.session_id,
            project_dir=session.project_dir,
            tool_name=tool_name,
            tool_use_id=tool_use_id,
            tool_input=dict(tool_input),
            permission_mode=session.permission_mode.value,
        )
        try:
            result = await self._executor.run_pre_tool_use(hooks, hook_input, validate)
        except Exception as e:
            logger.warning(f"PreToolUse hooks failed for {tool_name}: {e}")
            return PreToolUseResult()

        for warning in result.warnings:
            logger.warning(f"PreToolUse hook warning for {tool_name}: {warning}")
        if session.permission_mode == PermissionMode.yolo and result.decision == PermissionDecision.ask:
            return PreToolUseResult(
                PermissionDecision.allow, result.reason, result.updated_input, warnings=result.warnings
            )
        return result

    async def _run_post(
        self,
        event: HookEvent,
        hook_input: Any,
        tool_name: str,
        tool_use_id: str,
        tool_input: Mapping[str, Any],
    ) -> PostToolUseResult:
        hooks = self._hooks(event, MatchContext.for_tool(tool_name, tool_input))
        if not hooks or not self._guard.try_mark(tool_use_id, event):
            return PostToolUseResult()
        try:
            result = await self._executor.run_post_tool_use(hooks, hook_input)
        except Exception as e:
            logger.warning(f"{event.value} hooks failed for {tool_name}: {e}")
            return PostToolUseResult()
        for warning in result.warnings:
            logger.warning(f"{event.value} hook warning for {tool_name}: {warning}")
        return result

    async def run_post_tool_use(
        self,
        session: HookSession,
        *,
        tool_name: str,
        tool_use_id: str,
        tool_input: Mapping[str, Any],
        tool_output: Any,
    ) -> PostToolUseResult:
        hook_input = PostToolUseInput(
            session_id=session.session_id,
            project_dir=session.project_dir,
            tool_name=tool_name,
            tool_use_id=tool_use_id,
            tool_input=dict(tool_input),
            tool_output=tool_output,
        )
        return await self._run_post(HookEvent.post_tool_use, hook_input, tool_name, tool_use_id, tool_input)

    async def run_post_tool_use_failure(
        self,
        session: HookSession,
        *,
        tool_name: str,
        tool_use_id: str,
        tool_input: Mapping[str, Any],
        error: str,
    ) -> PostToolUseResult:
        hook_input = PostToolUseFailureInput(
            session_id=session.session_id,
            project_dir=session.project_dir,
            tool_name=tool_name,
            tool_use_id=tool_use_id,
            tool_input=dict(tool_input),
            error=error,
        )
        return await self._run_post(HookEvent.post_tool_use_failure, hook_input, tool_name, tool_use_id, tool_input)

    async def run_permission_request(
        self,
        session: HookSession,
        *,
        tool_name: str,
        tool_use_id: str,
        tool_input: Mapping[str, Any],
    ) -> PermissionRequestResult:
        hooks = self._hooks(HookEvent.permission_request, MatchContext.for_tool(tool_name, tool_input))
        if not hooks or not self._guard.try_mark(tool_use_id, HookEvent.permission_request):
            return PermissionRequestResult()
        hook_input = PermissionRequestInput(
            session_id=session.session_id,
            project_dir=session.project_dir,
            tool_name=tool_name,
            tool_use_id=tool_use_id,
            tool_input=dict(tool_input),
            permission_mode=session.permission_mode.value,
        )
        try:
            return await self._executor.run_permission_request(hooks, hook_input)
        except Exception as e:
            logger.warning(f"PermissionRequest hooks failed for {tool_name}: {e}")
            return PermissionRequestResult()

    # ------------------------------------------------------------------
    # Conversation events
    # ------------------------------------------------------------------

    async def run_user_prompt_submit(self, session: HookSession, prompt: str) -> LifecycleResult:
        hooks = self._hooks(HookEvent.user_prompt_submit)
        if not hooks:
            return LifecycleResult()
        hook_input = UserPromptSubmitInput(
            session_id=session.session_id, project_dir=session.project_dir, prompt_content=prompt
        )
        return await self._run_lifecycle(HookEvent.user_prompt_submit, hooks, hook_input)

    async def run_session_start(self, session: HookSession, source: str = "startup") -> LifecycleResult:
        self._guard.clear()
        hooks = self._hooks(HookEvent.session_start)
        if not hooks:
            return LifecycleResult()
        hook_input = SessionStartInput(session_id=session.session_id, project_dir=session.project_dir, source=source)
        return await self._run_lifecycle(HookEvent.session_start, hooks, hook_input)

    async def run_session_end(self, session: HookSession, reason: str = "exit") -> LifecycleResult:
        hooks = self._hooks(HookEvent.session_end)
        if not hooks:
            return LifecycleResult()
        hook_input = SessionEndInput(session_id=session.session_id, project_dir=session.project_dir, reason=reason)
        return await self._run_lifecycle(HookEvent.session_end, hooks, hook_input)

    async def run_notification(
        self, session: HookSession, message: str, notification_type: str = "info"
    ) -> LifecycleResult:
        hooks = self._hooks(HookEvent.notification)
        if not hooks:
            return LifecycleResult()
        hook_input = NotificationInput(
            session_id=session.session_id,
            project_dir=session.project_dir,
            message=message,
            notification_type=notification_type,
        )
        return await self._run_lifecycle(HookEvent.notification, hooks, hook_input)

    async def _run_lifecycle(self, event: HookEvent, hooks: List[HookCommand], hook_input: Any) -> LifecycleResult:
        try:
            return await self._executor.run_lifecycle(hooks, hook_input)
        except Exception as e:
            logger.warning(f"{event.value} hooks failed: {e}")
            return LifecycleResult()

    async def run_stop(self, session: HookSession, stop_reason: str = "end_turn") -> StopResult:
        return await self._run_stop(HookEvent.stop, session, stop_reason)

    async def run_subagent_stop(self, session: HookSession, stop_reason: str = "end_turn") -> StopResult:
        return await self._run_stop(HookEvent.subagent_stop, session, stop_reason)

    async def _run_stop(self, event: HookEvent, session: HookSession, stop_reason: str) -> StopResult:
        hooks = self._hooks(event)
        if not hooks:
            return StopResult()
        hook_input = StopInput(
            hook_event_name=event,
            session_id=session.session_id,
            project_dir=session.project_dir,
            stop_reason=stop_reason,
        )
        try:
            return await self._executor.run_stop(hooks, hook_input)
        except Exception as e:
            logger.warning(f"{event.value} hooks failed: {e}")
            return StopResult()

    async def run_compaction(
        self, session: HookSession, *, pre_tokens: int, message_count: int, trigger: str = "auto"
    ) -> CompactionResult:
        hooks = self._hooks(HookEvent.compaction)
        if not hooks:
            return CompactionResult()
        hook_input = CompactionInput(
            session_id=session.session_id,
            project_dir=session.project_dir,
            trigger=trigger,
            pre_tokens=pre_tokens,
            message_count=message_count,
        )
        try:
            return await self._executor.run_compaction(hooks, hook_input)
        except Exception as e:
            logger.warning(f"Compaction hooks failed: {e}")
            return CompactionResult()
