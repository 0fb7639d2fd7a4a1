from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Type, Union
from uuid import uuid4

from pydantic import ConfigDict, Field

from ..schemas.base import BaseSchema
from ..schemas.domain import PermissionDecision


class HookEvent(str, Enum):
    pre_tool_use = "PreToolUse"
    post_tool_use = "PostToolUse"
    post_tool_use_failure = "PostToolUseFailure"
    permission_request = "PermissionRequest"
    user_prompt_submit = "UserPromptSubmit"
    session_start = "SessionStart"
    session_end = "SessionEnd"
    stop = "Stop"
    subagent_stop = "SubagentStop"
    notification = "Notification"
    compaction = "Compaction"


class HookExitCode(IntEnum):
    success = 0
    non_blocking_error = 1
    blocking_error = 2
    timeout = 124


class HookBehavior(str, Enum):
    """What a timed-out or failed hook means for the invocation."""

    ignore = "ignore"
    deny = "deny"
    ask = "ask"


# =====================================================================
# Configuration
# =====================================================================


class MatcherConfig(BaseSchema):
    """
    Optional filter deciding whether a hook applies to an invocation.

    Each criterion is a ``|``-separated list of alternatives. A criterion is only
    checked when the invocation carries the corresponding value.
    """

    tools: Optional[str] = Field(default=None, description="Action names, e.g. 'Write|Edit' or a regex")
    paths: Optional[str] = Field(default=None, description="Path globs, e.g. '*.env|src/**/*.py'")
    commands: Optional[str] = Field(default=None, description="Shell commands, e.g. 'git push' or a regex")


class HookCommand(BaseSchema):
    type: Literal["command"] = "command"
    command: str = Field(..., min_length=1, description="Shell command run via 'sh -c'")
    timeout: Optional[float] = Field(default=None, gt=0, description="Seconds; defaults to the config default")
    status_message: Optional[str] = Field(default=None, alias="statusMessage")


class HookMatcherGroup(BaseSchema):
    name: Optional[str] = None
    matcher: Optional[MatcherConfig] = None
    hooks: List[HookCommand] = Field(default_factory=list)


class HookConfig(BaseSchema):
    """
    Hook configuration.

    Per-event lists are keyed by the event name (``PreToolUse``, ``Stop``, ...)
    when loaded from JSON.
    """

    enabled: bool = True
    default_timeout: float = Field(default=60, gt=0, alias="defaultTimeout")
    timeout_behavior: HookBehavior = Field(default=HookBehavior.ignore, alias="timeoutBehavior")
    failure_behavior: HookBehavior = Field(default=HookBehavior.ignore, alias="failureBehavior")
    max_concurrent_hooks: int = Field(default=5, ge=1, alias="maxConcurrentHooks")

    pre_tool_use: List[HookMatcherGroup] = Field(default_factory=list, alias="PreToolUse")
    post_tool_use: List[HookMatcherGroup] = Field(default_factory=list, alias="PostToolUse")
    post_tool_use_failure: List[HookMatcherGroup] = Field(default_factory=list, alias="PostToolUseFailure")
    permission_request: List[HookMatcherGroup] = Field(default_factory=list, alias="PermissionRequest")
    user_prompt_submit: List[HookMatcherGroup] = Field(default_factory=list, alias="UserPromptSubmit")
    session_start: List[HookMatcherGroup] = Field(default_factory=list, alias="SessionStart")
    session_end: List[HookMatcherGroup] = Field(default_factory=list, alias="SessionEnd")
    stop: List[HookMatcherGroup] = Field(default_factory=list, alias="Stop")
    subagent_stop: List[HookMatcherGroup] = Field(default_factory=list, alias="SubagentStop")
    notification: List[HookMatcherGroup] = Field(default_factory=list, alias="Notification")
    compaction: List[HookMatcherGroup] = Field(default_factory=list, alias="Compaction")

    def groups_for(self, event: HookEvent) -> List[HookMatcherGroup]:
        return getattr(self, event.name)


# =====================================================================
# Inputs (one JSON object on the hook's stdin)
# =====================================================================


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HookInput(BaseSchema):
    hook_event_name: HookEvent
    hook_execution_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: str = Field(default_factory=_utc_iso)
    session_id: str
    project_dir: str


class ToolHookInput(HookInput):
    tool_name: str
    tool_use_id: str
    tool_input: Dict[str, Any] = Field(default_factory=dict)


class PreToolUseInput(ToolHookInput):
    hook_event_name: Literal[HookEvent.pre_tool_use] = HookEvent.pre_tool_use
    permission_mode: str


class PostToolUseInput(ToolHookInput):
    hook_event_name: Literal[HookEvent.post_tool_use] = HookEvent.post_tool_use
    tool_output: Any = None


class PostToolUseFailureInput(ToolHookInput):
    hook_event_name: Literal[HookEvent.post_tool_use_failure] = HookEvent.post_tool_use_failure
    error: str


class PermissionRequestInput(ToolHookInput):
    hook_event_name: Literal[HookEvent.permission_request] = HookEvent.permission_request
    permission_mode: str


class UserPromptSubmitInput(HookInput):
    hook_event_name: Literal[HookEvent.user_prompt_submit] = HookEvent.user_prompt_submit
    prompt_content: str


class SessionStartInput(HookInput):
    hook_event_name: Literal[HookEvent.session_start] = HookEvent.session_start
    source: str = "startup"


class SessionEndInput(HookInput):
    hook_event_name: Literal[HookEvent.session_end] = HookEvent.session_end
    reason: str = "exit"


class StopInput(HookInput):
    hook_event_name: Literal[HookEvent.stop, HookEvent.subagent_stop] = HookEvent.stop
    stop_reason: str = "end_turn"


class NotificationInput(HookInput):
    hook_event_name: Literal[HookEvent.notification] = HookEvent.notification
    message: str
    notification_type: str = "info"


class CompactionInput(HookInput):
    hook_event_name: Literal[HookEvent.compaction] = HookEvent.compaction
    trigger: Literal["manual", "auto"] = "auto"
    pre_tokens: int = 0
    message_count: int = 0


# =====================================================================
# Outputs (tagged union keyed by event)
# =====================================================================


class _HookOutputBase(BaseSchema):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PreToolUseOutput(_HookOutputBase):
    event: Literal[HookEvent.pre_tool_use] = HookEvent.pre_tool_use
    permission_decision: Optional[PermissionDecision] = Field(default=None, alias="permissionDecision")
    permission_decision_reason: Optional[str] = Field(default=None, alias="permissionDecisionReason")
    updated_input: Optional[Dict[str, Any]] = Field(default=None, alias="updatedInput")


class PostToolUseOutput(_HookOutputBase):
    event: Literal[HookEvent.post_tool_use, HookEvent.post_tool_use_failure] = HookEvent.post_tool_use
    additional_context: Optional[str] = Field(default=None, alias="additionalContext")
    updated_output: Optional[Any] = Field(default=None, alias="updatedOutput")


class PermissionRequestOutput(_HookOutputBase):
    event: Literal[HookEvent.permission_request] = HookEvent.permission_request
    decision: Optional[Literal["approve", "deny", "ask"]] = None
    reason: Optional[str] = None


class StopOutput(_HookOutputBase):
    event: Literal[HookEvent.stop, HookEvent.subagent_stop] = HookEvent.stop
    continue_: Optional[bool] = Field(default=None, alias="continue")
    reason: Optional[str] = None


class CompactionOutput(_HookOutputBase):
    event: Literal[HookEvent.compaction] = HookEvent.compaction
    prevent: Optional[bool] = None
    reason: Optional[str] = None


class LifecycleOutput(_HookOutputBase):
    event: Literal[
        HookEvent.user_prompt_submit,
        HookEvent.session_start,
        HookEvent.session_end,
        HookEvent.notification,
    ]
    additional_context: Optional[str] = Field(default=None, alias="additionalContext")


HookOutput = Union[
    PreToolUseOutput,
    PostToolUseOutput,
    PermissionRequestOutput,
    StopOutput,
    CompactionOutput,
    LifecycleOutput,
]

OUTPUT_MODELS: Mapping[HookEvent, Type[_HookOutputBase]] = {
    HookEvent.pre_tool_use: PreToolUseOutput,
    HookEvent.post_tool_use: PostToolUseOutput,
    HookEvent.post_tool_use_failure: PostToolUseOutput,
    HookEvent.permission_request: PermissionRequestOutput,
    HookEvent.stop: StopOutput,
    HookEvent.subagent_stop: StopOutput,
    HookEvent.compaction: CompactionOutput,
    HookEvent.user_prompt_submit: LifecycleOutput,
    HookEvent.session_start: LifecycleOutput,
    HookEvent.session_end: LifecycleOutput,
    HookEvent.notification: LifecycleOutput,
}


def parse_hook_output(event: HookEvent, data: Mapping[str, Any]) -> HookOutput:
    """
    Parse a hook's JSON stdout into the variant for ``event``.

    Event-specific fields may be nested under ``hookSpecificOutput``; top-level
    fields such as ``reason`` or ``continue`` are still honored.

    Raises:
        pydantic.ValidationError: the payload does not fit the event's variant.
    """
    payload: Dict[str, Any] = dict(data)
    nested = payload.pop("hookSpecificOutput", None)
    if isinstance(nested, Mapping):
        payload.update(nested)
    payload["event"] = event
    return OUTPUT_MODELS[event].model_validate(payload)


# =====================================================================
# Results
# =====================================================================


class HookProcessState(str, Enum):
    """Lifecycle of one hook child process: spawned -> running -> terminal state."""

    spawned = "spawned"
    running = "running"
    completed = "completed"
    timed_out = "timed_out"
    errored = "errored"


@dataclass(frozen=True)
class HookRunResult:
    """
    Interpreted outcome of one hook command.

    Attributes:
        success: The hook ran and did not fail (a timeout with ``ignore`` counts as success).
        blocking: The hook vetoes the invocation (exit code 2, or deny behavior).
        needs_confirmation: The hook asks for user confirmation (ask behavior).
        output: Parsed structured output, if stdout was a JSON object.
        text: Raw stdout when it was not structured output.
    """

    command: str
    state: HookProcessState
    exit_code: Optional[int]
    success: bool
    blocking: bool = False
    needs_confirmation: bool = False
    output: Optional[HookOutput] = None
    text: str = ""
    stderr: str = ""
    error: Optional[str] = None
    duration: float = 0.0


@dataclass(frozen=True)
class PreToolUseResult:
    decision: PermissionDecision = PermissionDecision.allow
    reason: Optional[str] = None
    updated_input: Optional[Dict[str, Any]] = None
    invalid_input_error: Optional[str] = None
    timed_out: bool = False
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PostToolUseResult:
    additional_context: Optional[str] = None
    updated_output: Optional[Any] = None
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PermissionRequestResult:
    decision: Literal["approve", "deny", "ask"] = "ask"
    reason: Optional[str] = None


@dataclass(frozen=True)
class StopResult:
    should_continue: bool = False
    reason: Optional[str] = None


@dataclass(frozen=True)
class CompactionResult:
    prevent: bool = False
    reason: Optional[str] = None


@dataclass(frozen=True)
class LifecycleResult:
    additional_context: Optional[str] = None
    results: Tuple[HookRunResult, ...] = field(default_factory=tuple)
