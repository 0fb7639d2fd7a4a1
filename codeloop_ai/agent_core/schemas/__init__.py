"""Pydantic schemas and enums shared across the agent core."""

from .base import BaseSchema
from .domain import (
    ConfirmationDetails,
    ConfirmationResponse,
    ConfirmationScope,
    PermissionDecision,
    PermissionMode,
    ToolError,
    ToolErrorType,
    ToolKind,
    ToolResult,
)

__all__ = [
    "BaseSchema",
    "ConfirmationDetails",
    "ConfirmationResponse",
    "ConfirmationScope",
    "PermissionDecision",
    "PermissionMode",
    "ToolError",
    "ToolErrorType",
    "ToolKind",
    "ToolResult",
]
