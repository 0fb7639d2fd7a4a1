from __future__ import annotations

"""Tool registry.

The registry maps action names to ``ActionDefinition`` implementations. Two
tables are kept: builtin actions registered at startup, and external actions
that a tool-server client may add and remove while the agent runs.

The pipeline resolves names through ``get``; the control loop asks
``list_declarations`` for what to advertise to the reasoning backend.
"""

from typing import Any, Dict, Iterable, List, Optional

from ..errors import ActionNotFoundError, DuplicateActionError
from ..schemas.domain import PermissionMode, ToolKind
from .base import ActionDefinition


class ToolRegistry:
    """
    In-memory mapping of action names to implementations.

    Notes:
        - ``register`` raises ``DuplicateActionError`` if the name is taken by any action.
        - ``get`` returns ``None`` for unknown names; ``require`` raises ``ActionNotFoundError``.
        - The registry is an explicit instance; build one per agent and inject it.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._builtin: Dict[str, ActionDefinition] = {}
        self._external: Dict[str, ActionDefinition] = {}

    def register(self, action: ActionDefinition) -> None:
        """
        Register a builtin action.

        Args:
            action: The action to register. Its ``name`` must be unique.

        Raises:
            DuplicateActionError: If an action with the same name exists.
        """
        self._ensure_free(action.name)
        self._builtin[action.name] = action

    def register_many(self, actions: Iterable[ActionDefinition]) -> None:
        for action in actions:
            self.register(action)

    def register_external(self, action: ActionDefinition) -> None:
        """Register an externally supplied action; names share one namespace with builtins."""
        self._ensure_free(action.name)
        self._external[action.name] = action

    def unregister_external(self, name: str) -> bool:
        """Remove an external action. Builtins cannot be removed."""
        return self._external.pop(name, None) is not None

    def clear_external(self) -> None:
        self._external.clear()

    def _ensure_free(self, name: str) -> None:
        if name in self._builtin or name in self._external:
            raise DuplicateActionError(name)

    def get(self, name: str) -> Optional[ActionDefinition]:
        """
        Look up an action by name.

        Args:
            name: The action name as requested by the reasoning backend.

        Returns:
            The action, or ``None`` when nothing is registered under ``name``.
        """
        return self._builtin.get(name) or self._external.get(name)

    def require(self, name: str) -> ActionDefinition:
        action = self.get(name)
        if action is None:
            raise ActionNotFoundError(name)
        return action

    def has(self, name: str) -> bool:
        return name in self._builtin or name in self._external

    def all(self) -> List[ActionDefinition]:
        return list(self._builtin.values()) + list(self._external.values())

    def names(self) -> List[str]:
        return [a.name for a in self.all()]

    def external_actions(self) -> List[ActionDefinition]:
        return list(self._external.values())

    def read_only_actions(self) -> List[ActionDefinition]:
        return [a for a in self.all() if a.kind == ToolKind.read_only]

    def write_actions(self) -> List[ActionDefinition]:
        return [a for a in self.all() if a.kind != ToolKind.read_only]

    def by_category(self, category: str) -> List[ActionDefinition]:
        return [a for a in self.all() if getattr(a, "category", None) == category]

    def by_tag(self, tag: str) -> List[ActionDefinition]:
        return [a for a in self.all() if tag in getattr(a, "tags", ())]

    def search(self, query: str) -> List[ActionDefinition]:
        """Case-insensitive search over names, display names and tags."""
        q = query.lower()
        out = []
        for action in self.all():
            haystack = [action.name, getattr(action, "display_name", ""), *getattr(action, "tags", ())]
            if any(q in str(h).lower() for h in haystack):
                out.append(action)
        return out

    def list_declarations(self, mode: PermissionMode = PermissionMode.default) -> List[Dict[str, Any]]:
        """
        Return function declarations visible under ``mode``.

        Plan mode exposes only read-only actions; every other mode exposes all.
        """
        actions = self.read_only_actions() if mode == PermissionMode.plan else self.all()
        return [a.function_declaration() for a in actions]

    def __len__(self) -> int:
        return len(self._builtin) + len(self._external)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)
