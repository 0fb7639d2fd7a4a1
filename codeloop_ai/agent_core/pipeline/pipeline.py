"""Execution pipeline.

``ExecutionPipeline.execute`` is the single path from "the reasoning backend
asked for action X with params P" to a ``ToolResult``. It runs seven stages in
strict order on one ``ExecutionRecord``:

1. discovery     - resolve the action in the registry;
2. permission    - validate params, permission rules, mode overrides, sensitive paths;
3. hook          - pre-action hooks (deny / ask / rewrite);
4. confirmation  - ask the user when flagged;
5. execution     - run the action;
6. post_hook     - post-action hooks (success or failure set);
7. formatting    - normalize the result.

Stages signal failure by raising ``AgentCoreError`` subclasses; the pipeline
aborts the record with the error's kind and skips the remaining stages. The
method never raises: every failure comes back as a ``ToolResult`` with
``success=False``.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Iterable, List, Mapping, Optional, Sequence

from ..capabilities.base import ExecutionContext
from ..capabilities.registry import ToolRegistry
from ..errors import AgentCoreError
from ..hooks.manager import HookManager
from ..policy.engine import PermissionEngine
from ..schemas.domain import ToolError, ToolErrorType, ToolResult
from .models import ExecutionRecord, HistoryEntry, PipelineObserver, PipelineStage, SessionApprovals
from .stages import (
    ConfirmationStage,
    DiscoveryStage,
    ExecutionStage,
    FormattingStage,
    HookStage,
    PermissionStage,
    PostHookStage,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 1000


def aborted_result(record: ExecutionRecord) -> ToolResult:
    reason = record.abort_reason or "Unknown reason"
    return ToolResult(
        success=False,
        llm_content=f"Tool execution aborted: {reason}",
        display_content=f"❌ {record.tool_name}: {reason}",
        error=ToolError(kind=record.abort_kind, message=reason),
    )


class ExecutionPipeline:
    """Run every action call through the seven governed stages."""

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        permission_engine: Optional[PermissionEngine] = None,
        hook_manager: Optional[HookManager] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        observers: Iterable[PipelineObserver] = (),
    ) -> None:
        self._registry = registry
        self._engine = permission_engine or PermissionEngine()
        self._hooks = hook_manager or HookManager()
        self._approvals = SessionApprovals()
        self._history: Deque[HistoryEntry] = deque(maxlen=history_limit)
        self._observers: List[PipelineObserver] = list(observers)
        self._stages: Sequence[PipelineStage] = (
            DiscoveryStage(registry),
            PermissionStage(self._engine, self._approvals),
            HookStage(self._hooks),
            ConfirmationStage(self._approvals, self._hooks),
            ExecutionStage(),
            PostHookStage(self._hooks),
            FormattingStage(),
        )

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def permission_engine(self) -> PermissionEngine:
        return self._engine

    @property
    def hook_manager(self) -> HookManager:
        return self._hooks

    @property
    def stage_names(self) -> List[str]:
        return [s.name for s in self._stages]

    async def execute(self, tool_name: str, params: Mapping[str, Any], ctx: ExecutionContext) -> ToolResult:
        """
        Execute one action call.

        Args:
            tool_name: Action name requested by the reasoning backend.
            params: Raw parameters.
            ctx: Per-call execution context.

        Returns:
            The formatted result, or a failed result describing why the call was aborted.
        """
        record = ExecutionRecord(tool_name=tool_name, params=dict(params), context=ctx)
        started = time.monotonic()
        executed: List[str] = []
        self._notify("on_execution_start", record)

        try:
            for stage in self._stages:
                if record.aborted:
                    break
                self._notify("on_stage_start", stage.name, record)
                try:
                    await stage.process(record)
                except AgentCoreError as e:
                    logger.info(f"{tool_name} aborted in {stage.name}: {e}")
                    record.abort(str(e), e.kind)
                executed.append(stage.name)
                self._notify("on_stage_complete", stage.name, record)

            if record.aborted:
                result = aborted_result(record)
            elif record.result is not None:
                result = record.result
            else:
                result = ToolResult.fail(ToolErrorType.unknown_error, "Execution produced no result")
            self._notify("on_execution_complete", record, result)
        except Exception as e:
            logger.exception(f"Pipeline execution error for {tool_name}")
            result = ToolResult.fail(
                ToolErrorType.unknown_error,
                f"Pipeline execution error: {e}",
                display_content=f"❌ {tool_name}: {e}",
            )
            self._notify("on_execution_error", record, e)

        self._history.append(
            HistoryEntry(
                tool_name=tool_name,
                params=dict(record.params),
                result=result,
                timestamp=datetime.now(timezone.utc),
                duration=time.monotonic() - started,
                permission_mode=ctx.permission_mode,
                stages=tuple(executed),
            )
        )
        return result

    def _notify(self, callback: str, *args: Any) -> None:
        for observer in self._observers:
            try:
                getattr(observer, callback)(*args)
            except Exception as e:
                logger.warning(f"Pipeline observer {type(observer).__name__}.{callback} failed: {e}")

    def add_observer(self, observer: PipelineObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: PipelineObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def history(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        """Return a snapshot of the execution history, oldest first."""
        entries = list(self._history)
        return entries[-limit:] if limit else entries

    def clear_history(self) -> None:
        self._history.clear()

    def add_session_approval(self, signature: str) -> None:
        self._approvals.add(signature)

    def has_session_approval(self, signature: str) -> bool:
        return self._approvals.has(signature)

    def session_approvals(self) -> List[str]:
        return self._approvals.snapshot()

    def clear_session_approvals(self) -> None:
        self._approvals.clear()
