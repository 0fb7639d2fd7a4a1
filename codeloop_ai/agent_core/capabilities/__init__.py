"""Action definitions and the tool registry.

Components
----------

- ``ActionDefinition``: the interface the execution pipeline depends on.
- ``BaseAction``: pydantic-backed base class used by the builtins.
- ``ExecutionContext``: per-call context (session, workspace, mode, cancellation,
  confirmation callback).
- ``ToolRegistry``: name -> action lookup plus mode-filtered declarations.
- ``ExternalAction``: adapter for tools supplied by an external tool server.
"""

from .base import ActionDefinition, ActionDescription, BaseAction, ExecutionContext
from .builtin import EditAction, GlobAction, GrepAction, ReadAction, WriteAction, builtin_file_actions
from .external import ExternalAction, ExternalToolClient, ExternalToolSpec
from .registry import ToolRegistry
from .shell import BashAction

__all__ = [
    "ActionDefinition",
    "ActionDescription",
    "BaseAction",
    "BashAction",
    "EditAction",
    "ExecutionContext",
    "ExternalAction",
    "ExternalToolClient",
    "ExternalToolSpec",
    "GlobAction",
    "GrepAction",
    "ReadAction",
    "ToolRegistry",
    "WriteAction",
    "builtin_file_actions",
]
