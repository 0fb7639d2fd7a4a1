"""Lifecycle hook orchestration.

Hooks are externally configured shell commands fired at lifecycle events
(pre/post action, permission request, prompt submission, session start/end,
stop, notification, compaction). They can observe, annotate, rewrite or veto.

Components
----------

- ``HookConfig`` and friends (``models``): configuration, per-event inputs,
  the tagged union of per-event outputs, and aggregated results.
- ``Matcher``: selects hooks by action name, path and command patterns.
- ``HookProcess`` / ``HookExecutor``: child-process execution and per-event
  strategies.
- ``HookManager``: event entry points, execution guard and mode rules.
"""

from .executor import HookExecutor, HookProcess
from .manager import HookExecutionGuard, HookManager, HookSession
from .matcher import Matcher, MatchContext
from .models import (
    HookBehavior,
    HookCommand,
    HookConfig,
    HookEvent,
    HookExitCode,
    HookMatcherGroup,
    HookProcessState,
    MatcherConfig,
    parse_hook_output,
)

__all__ = [
    "HookBehavior",
    "HookCommand",
    "HookConfig",
    "HookEvent",
    "HookExecutionGuard",
    "HookExecutor",
    "HookExitCode",
    "HookManager",
    "HookMatcherGroup",
    "HookProcess",
    "HookProcessState",
    "HookSession",
    "MatchContext",
    "Matcher",
    "MatcherConfig",
    "parse_hook_output",
]
