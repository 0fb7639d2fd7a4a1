"""Governed action-execution core.

Design overview
---------------

Every action the reasoning backend asks for flows through the same path:

- ``runtime``: the control loop receives tool calls from the backend and hands
  them, one at a time, to the execution pipeline.
- ``pipeline``: resolves the action, checks permissions, runs pre-action hooks,
  asks the user when needed, executes, runs post-action hooks and formats the
  result.
- ``policy``: rule matching, mode overrides and sensitive-path detection.
- ``hooks``: external commands fired at lifecycle events.
- ``capabilities``: action definitions and the registry that exposes them.

Collaborators (registry, hook manager, pipeline) are explicit instances built
once per agent by ``factory`` and injected by reference.
"""

from .errors import AgentCoreError, ReasoningBackendError
from .schemas.domain import PermissionDecision, PermissionMode, ToolKind, ToolResult

__all__ = [
    "AgentCoreError",
    "PermissionDecision",
    "PermissionMode",
    "ReasoningBackendError",
    "ToolKind",
    "ToolResult",
]
