"""The seven pipeline stages, in execution order."""

from .confirmation import ConfirmationStage
from .discovery import DiscoveryStage
from .execution import ExecutionStage
from .formatting import FormattingStage
from .hook import HookStage, hook_session
from .permission import PermissionStage
from .post_hook import PostHookStage

__all__ = [
    "ConfirmationStage",
    "DiscoveryStage",
    "ExecutionStage",
    "FormattingStage",
    "HookStage",
    "PermissionStage",
    "PostHookStage",
    "hook_session",
]
