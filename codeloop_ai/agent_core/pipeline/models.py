from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple

from ..capabilities.base import ActionDefinition, ExecutionContext
from ..schemas.domain import PermissionMode, ToolErrorType, ToolResult

_GUARDED_FIELDS = frozenset(
    {
        "params",
        "action",
        "needs_confirmation",
        "confirmation_reason",
        "permission_signature",
        "hook_tool_use_id",
    }
)


class AbortedRecordError(RuntimeError):
    """Raised when code tries to change an execution record after it was aborted."""


@dataclass
class ExecutionRecord:
    """
    Mutable per-call state threaded through the pipeline stages.

    Once ``abort`` is called the record is frozen: later assignments to its
    fields raise ``AbortedRecordError`` and ``set_result`` is refused, so no
    stage can turn an aborted call into a successful one.
    """

    tool_name: str
    params: Dict[str, Any]
    context: ExecutionContext
    action: Optional[ActionDefinition] = None
    needs_confirmation: bool = False
    confirmation_reason: Optional[str] = None
    permission_signature: Optional[str] = None
    hook_tool_use_id: Optional[str] = None
    _aborted: bool = field(default=False, init=False, repr=False)
    _abort_reason: Optional[str] = field(default=None, init=False, repr=False)
    _abort_kind: ToolErrorType = field(default=ToolErrorType.execution_error, init=False, repr=False)
    _result: Optional[ToolResult] = field(default=None, init=False, repr=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _GUARDED_FIELDS and getattr(self, "_aborted", False):
            raise AbortedRecordError(f"execution of {self.tool_name} was aborted; cannot set {name}")
        super().__setattr__(name, value)

    def abort(self, reason: str, kind: ToolErrorType = ToolErrorType.execution_error) -> None:
        """Abort the call. The first reason wins; repeated calls are ignored."""
        if self._aborted:
            return
        object.__setattr__(self, "_abort_reason", reason)
        object.__setattr__(self, "_abort_kind", kind)
        object.__setattr__(self, "_aborted", True)

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def abort_reason(self) -> Optional[str]:
        return self._abort_reason

    @property
    def abort_kind(self) -> ToolErrorType:
        return self._abort_kind

    @property
    def result(self) -> Optional[ToolResult]:
        return self._result

    def set_result(self, result: ToolResult) -> None:
        if self._aborted:
            raise AbortedRecordError(f"execution of {self.tool_name} was aborted; cannot set a result")
        object.__setattr__(self, "_result", result)

    def require_confirmation(self, reason: str) -> None:
        """Flag the call for user confirmation, accumulating reasons."""
        self.needs_confirmation = True
        self.confirmation_reason = f"{self.confirmation_reason}\n{reason}" if self.confirmation_reason else reason


@dataclass(frozen=True)
class HistoryEntry:
    tool_name: str
    params: Dict[str, Any]
    result: ToolResult
    timestamp: datetime
    duration: float
    permission_mode: PermissionMode
    stages: Tuple[str, ...]


class PipelineStage(Protocol):
    name: str

    async def process(self, record: ExecutionRecord) -> None: ...


class PipelineObserver:
    """No-op base for pipeline observers; override the callbacks you need."""

    def on_execution_start(self, record: ExecutionRecord) -> None:
        return None

    def on_stage_start(self, stage: str, record: ExecutionRecord) -> None:
        return None

    def on_stage_complete(self, stage: str, record: ExecutionRecord) -> None:
        return None

    def on_execution_complete(self, record: ExecutionRecord, result: ToolResult) -> None:
        return None

    def on_execution_error(self, record: ExecutionRecord, error: BaseException) -> None:
        return None


class SessionApprovals:
    """Signatures the user chose to always allow for the rest of the process."""

    def __init__(self) -> None:
        self._signatures: set[str] = set()

    def add(self, signature: str) -> None:
        self._signatures.add(signature)

    def has(self, signature: Optional[str]) -> bool:
        return signature is not None and signature in self._signatures

    def snapshot(self) -> List[str]:
        return sorted(self._signatures)

    def clear(self) -> None:
        self._signatures.clear()

    def __len__(self) -> int:
        return len(self._signatures)
