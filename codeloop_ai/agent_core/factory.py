from __future__ import annotations

"""Convenience factories for wiring the agent core.

This module contains small helpers to build the default tool registry, an
``ExecutionPipeline`` from ``Settings``, and a ready-to-use ``AgentService``.

The intent is to keep application wiring and tests concise, while still
allowing advanced deployments to provide their own registry, hook manager and
reasoning backend.
"""

from typing import Iterable, Optional

from ..core.config import Settings
from ..core.logging_config import get_logger
from .capabilities.builtin import builtin_file_actions
from .capabilities.registry import ToolRegistry
from .capabilities.shell import BashAction
from .hooks.manager import HookManager
from .pipeline.models import PipelineObserver
from .pipeline.pipeline import ExecutionPipeline
from .policy.checker import PermissionChecker
from .policy.engine import PermissionEngine
from .runtime.engine import AgentLoop
from .runtime.models import ReasoningBackend
from .service import AgentService

logger = get_logger(__name__)


def build_default_registry() -> ToolRegistry:
    """Build the default ``ToolRegistry``.

    The default registry includes the built-in file actions (Read, Write, Edit,
    Glob, Grep) and the Bash shell action.
    """
    reg = ToolRegistry()
    reg.register_many(builtin_file_actions())
    reg.register(BashAction())
    return reg


def build_permission_engine(settings: Settings) -> PermissionEngine:
    """Construct a ``PermissionEngine`` from the configured permission rules."""
    return PermissionEngine(PermissionChecker(settings.permission_config))


def build_pipeline(
    settings: Settings,
    registry: Optional[ToolRegistry] = None,
    hooks: Optional[HookManager] = None,
    *,
    observers: Iterable[PipelineObserver] = (),
) -> ExecutionPipeline:
    """
    Construct an ``ExecutionPipeline`` from settings.

    Args:
        settings: Application settings (permission rules, hook options, history size).
        registry: Tool registry; the default registry when omitted.
        hooks: Hook manager; built from ``settings.hook_config`` when omitted.
        observers: Pipeline observers to attach.
    """
    registry = registry if registry is not None else build_default_registry()
    hooks = hooks if hooks is not None else HookManager(settings.hook_config)
    logger.debug(
        f"Building pipeline with {len(registry)} actions and hook events {[e.value for e in hooks.configured_events()]}"
    )
    return ExecutionPipeline(
        registry,
        permission_engine=build_permission_engine(settings),
        hook_manager=hooks,
        history_limit=settings.history_limit,
        observers=observers,
    )


def build_agent_loop(
    backend: ReasoningBackend,
    settings: Optional[Settings] = None,
    *,
    pipeline: Optional[ExecutionPipeline] = None,
    system_prompt: Optional[str] = None,
) -> AgentLoop:
    """Construct an ``AgentLoop`` over a pipeline built from settings."""
    settings = settings or Settings()
    return AgentLoop(
        backend,
        pipeline or build_pipeline(settings),
        max_turns=settings.loop.max_turns,
        system_prompt=system_prompt,
    )


def build_agent_service(
    backend: ReasoningBackend,
    settings: Optional[Settings] = None,
    *,
    registry: Optional[ToolRegistry] = None,
    hooks: Optional[HookManager] = None,
    system_prompt: Optional[str] = None,
) -> AgentService:
    """Wire registry, pipeline and control loop into an ``AgentService``."""
    settings = settings or Settings()
    pipeline = build_pipeline(settings, registry, hooks)
    loop = build_agent_loop(backend, settings, pipeline=pipeline, system_prompt=system_prompt)
    return AgentService(loop, permission_mode=settings.loop.permission_mode)
