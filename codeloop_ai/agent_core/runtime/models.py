from __future__ import annotations

"""Control loop types and LangGraph state.

- ``Message``/``ToolCall``/``BackendResponse`` form the wire shape exchanged
  with the reasoning backend.
- ``ChatContext`` and ``LoopOptions`` are what the host passes into one
  ``AgentLoop.chat`` call; ``LoopResult`` is what comes back.
- ``_LoopState`` is the mutable state passed between LangGraph nodes. It is
  owned by a single ``chat`` invocation and never shared across conversations.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Literal,
    NotRequired,
    Optional,
    Protocol,
    Required,
    TypedDict,
)

from pydantic import Field

from ..capabilities.base import ConfirmationHandler
from ..schemas.base import BaseSchema
from ..schemas.domain import PermissionMode, ToolResult


class ToolCall(BaseSchema):
    """One action request from the backend; ``arguments`` is a raw JSON string."""

    id: str
    name: str
    arguments: str = "{}"


class Message(BaseSchema):
    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_call_id: Optional[str] = None
    name: Optional[str] = None


class TokenUsage(BaseSchema):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class BackendResponse(BaseSchema):
    content: str = ""
    reasoning: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    usage: Optional[TokenUsage] = None


class ReasoningBackend(Protocol):
    """The language-model service that produces text and action requests."""

    async def chat(
        self,
        messages: List[Message],
        tools: List[Dict[str, Any]],
        *,
        cancel_event: Optional[asyncio.Event] = None,
        on_delta: Optional[Callable[[str], None]] = None,
    ) -> BackendResponse: ...


@dataclass
class ChatContext:
    """Conversation-level inputs for one ``chat`` call."""

    session_id: str
    workspace_root: str
    history: List[Message] = field(default_factory=list)
    system_prompt: Optional[str] = None
    confirm: Optional[ConfirmationHandler] = None


@dataclass(frozen=True)
class TurnLimitResponse:
    continue_: bool = False


@dataclass
class LoopOptions:
    """
    Per-call loop options and host callbacks.

    Attributes:
        max_turns: -1 means the hard ceiling, 0 disables chat, otherwise capped at the ceiling.
        permission_mode: Policy stance for the whole call.
        cancel_event: Cooperative cancellation signal.
        on_turn_limit_reached: Asked whether to continue once the turn limit is hit.
    """

    max_turns: Optional[int] = None
    permission_mode: PermissionMode = PermissionMode.default
    cancel_event: Optional[asyncio.Event] = None
    on_content: Optional[Callable[[str], None]] = None
    on_content_delta: Optional[Callable[[str], None]] = None
    on_thinking: Optional[Callable[[str], None]] = None
    on_turn_start: Optional[Callable[[int, int], None]] = None
    on_tool_result: Optional[Callable[[ToolCall, ToolResult], None]] = None
    on_turn_limit_reached: Optional[Callable[[int], Awaitable[TurnLimitResponse]]] = None


class LoopErrorType(str, Enum):
    aborted = "aborted"
    chat_disabled = "chat_disabled"
    max_turns_exceeded = "max_turns_exceeded"


@dataclass(frozen=True)
class LoopError:
    kind: LoopErrorType
    message: str = ""


@dataclass(frozen=True)
class LoopResult:
    success: bool
    final_text: str = ""
    error: Optional[LoopError] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    messages: List[Message] = field(default_factory=list)
    results: List[ToolResult] = field(default_factory=list)


class _LoopState(TypedDict):
    """Mutable LangGraph state for a single ``chat`` call.

    Required keys:

    - ``messages``: full message list sent to the backend.
    - ``turns``: turns counted since the last (re)start of the turn budget.
    - ``total_turns``: turns over the whole call, reported in the result metadata.
    - ``max_turns``: effective turn limit.
    - ``retries``: remaining-budget counter for unfinished-intent retries.

    Optional keys are set by nodes to drive routing.
    """

    messages: Required[List[Message]]
    turns: Required[int]
    total_turns: Required[int]
    max_turns: Required[int]
    retries: Required[int]
    tokens: NotRequired[int]
    results: NotRequired[List[ToolResult]]
    pending_calls: NotRequired[List[ToolCall]]
    final_text: NotRequired[str]
    route: NotRequired[str]
    run: NotRequired[Any]
