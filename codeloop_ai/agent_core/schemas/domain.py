from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PermissionMode(str, Enum):
    """Global policy stance for one run; it never changes once the run starts."""

    default = "default"
    auto_edit = "autoEdit"
    yolo = "yolo"
    plan = "plan"


class ToolKind(str, Enum):
    read_only = "readonly"
    write = "write"
    execute = "execute"


class PermissionDecision(str, Enum):
    allow = "allow"
    deny = "deny"
    ask = "ask"


class ToolErrorType(str, Enum):
    validation_error = "validation_error"
    not_found = "not_found"
    permission_denied = "permission_denied"
    confirmation_rejected = "confirmation_rejected"
    hook_blocked = "hook_blocked"
    hook_timeout = "hook_timeout"
    execution_error = "execution_error"
    timeout_error = "timeout_error"
    cancelled = "cancelled"
    unknown_error = "unknown_error"


class ConfirmationScope(str, Enum):
    once = "once"
    session = "session"


class ToolError(BaseSchema):
    kind: ToolErrorType = Field(..., description="Machine readable error category")
    message: str = Field(..., description="Human readable error message")
    details: Optional[Any] = Field(default=None, description="Optional structured details")


class ToolResult(BaseSchema):
    """
    Uniform outcome of one action call.

    ``llm_content`` is what the reasoning backend sees in the tool-role message;
    ``display_content`` is the short line rendered for the user.
    """

    success: bool
    llm_content: str = ""
    display_content: str = ""
    error: Optional[ToolError] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, llm_content: str, display_content: str = "", **metadata: Any) -> "ToolResult":
        return cls(success=True, llm_content=llm_content, display_content=display_content, metadata=metadata)

    @classmethod
    def fail(
        cls,
        kind: ToolErrorType,
        message: str,
        *,
        display_content: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> "ToolResult":
        return cls(
            success=False,
            llm_content=message,
            display_content=display_content if display_content is not None else message,
            error=ToolError(kind=kind, message=message, details=details),
        )


class ConfirmationDetails(BaseSchema):
    """Payload handed to the host's confirmation callback."""

    title: str
    message: str
    details: Optional[str] = None
    risks: List[str] = Field(default_factory=list)
    affected_files: List[str] = Field(default_factory=list)
    suggested_rule: Optional[str] = Field(default=None, description="Broader rule the host may offer to persist")


class ConfirmationResponse(BaseSchema):
    approved: bool
    reason: Optional[str] = None
    scope: ConfirmationScope = ConfirmationScope.once
