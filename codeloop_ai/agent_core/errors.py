"""Exception taxonomy for the agent core.

Pipeline stages raise these and the pipeline converts them into failed
``ToolResult`` values; each class carries the ``ToolErrorType`` it maps to.
Only ``ReasoningBackendError`` is allowed to escape the control loop.
"""

from __future__ import annotations

from typing import Optional

from codeloop_ai.agent_core.schemas.domain import ToolErrorType


class AgentCoreError(Exception):
    """Base exception for all agent core errors."""

    kind: ToolErrorType = ToolErrorType.unknown_error


class ActionNotFoundError(AgentCoreError):
    kind = ToolErrorType.not_found

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")


class DuplicateActionError(AgentCoreError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ParameterValidationError(AgentCoreError):
    kind = ToolErrorType.validation_error


class PermissionDeniedError(AgentCoreError):
    kind = ToolErrorType.permission_denied


class ConfirmationRejectedError(AgentCoreError):
    kind = ToolErrorType.confirmation_rejected


class HookBlockingError(AgentCoreError):
    kind = ToolErrorType.hook_blocked


class HookTimeoutError(AgentCoreError):
    """A pre-action hook timed out and the timeout behavior is deny."""

    kind = ToolErrorType.hook_timeout


class ActionExecutionError(AgentCoreError):
    kind = ToolErrorType.execution_error


class ReasoningBackendError(AgentCoreError):
    """The reasoning backend call failed; carries the original exception as ``__cause__``."""

    def __init__(self, message: str, *, turn: Optional[int] = None) -> None:
        self.turn = turn
        super().__init__(message)


class ActionCancelledError(AgentCoreError):
    kind = ToolErrorType.cancelled
