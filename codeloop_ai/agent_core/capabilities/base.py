from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, Mapping, Optional, Protocol, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import ParameterValidationError
from ..schemas.domain import ConfirmationDetails, ConfirmationResponse, PermissionMode, ToolKind, ToolResult

ConfirmationHandler = Callable[[ConfirmationDetails], Awaitable[ConfirmationResponse]]


@dataclass(frozen=True)
class ExecutionContext:
    """
    Per-call context threaded through the pipeline and into the action.

    Attributes:
        session_id: Conversation/session identifier (also used as execution id).
        workspace_root: Directory relative paths and hook processes resolve against.
        permission_mode: The run's permission mode.
        cancel_event: Cooperative cancellation signal shared with the control loop.
        confirm: Host callback for user confirmation; ``None`` means default-deny.
        message_id: Backend tool-call id; used as the hook invocation id when present.
    """

    session_id: str
    workspace_root: str = field(default_factory=os.getcwd)
    permission_mode: PermissionMode = PermissionMode.default
    cancel_event: Optional[asyncio.Event] = None
    confirm: Optional[ConfirmationHandler] = None
    message_id: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def resolve_path(self, path: str) -> str:
        return path if os.path.isabs(path) else os.path.normpath(os.path.join(self.workspace_root, path))


@dataclass(frozen=True)
class ActionDescription:
    short: str
    long: str = ""
    usage_notes: Tuple[str, ...] = ()
    important: Tuple[str, ...] = ()

    def render(self) -> str:
        parts = [self.short]
        if self.long:
            parts.append(self.long)
        if self.usage_notes:
            parts.append("Usage notes:\n" + "\n".join(f"- {n}" for n in self.usage_notes))
        if self.important:
            parts.append("IMPORTANT:\n" + "\n".join(f"- {n}" for n in self.important))
        return "\n\n".join(parts)


class ActionDefinition(Protocol):
    """Interface of an action the pipeline can execute."""

    name: str
    kind: ToolKind
    is_concurrency_safe: bool

    def validate(self, params: Mapping[str, Any], ctx: Optional[ExecutionContext] = None) -> Dict[str, Any]: ...

    async def execute(self, params: Mapping[str, Any], ctx: ExecutionContext) -> ToolResult: ...

    def extract_signature_content(self, params: Mapping[str, Any]) -> Optional[str]: ...

    def abstract_permission_rule(self, params: Mapping[str, Any]) -> Optional[str]: ...

    def function_declaration(self) -> Dict[str, Any]: ...


InputT = TypeVar("InputT", bound=BaseModel)


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "params"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


class BaseAction(ABC, Generic[InputT]):
    """Base class for actions backed by a pydantic input model.

    Subclasses set the class attributes and implement ``run``. Semantic checks
    that must reject a call before any permission logic (empty values, no-op
    edits, ambiguous matches) go in ``check``.
    """

    name: str
    kind: ToolKind
    input_model: Type[InputT]
    description: ActionDescription
    display_name: str = ""
    category: str = "builtin"
    tags: Tuple[str, ...] = ()
    version: str = "1.0.0"
    is_concurrency_safe: bool = True

    def validate(self, params: Mapping[str, Any], ctx: Optional[ExecutionContext] = None) -> Dict[str, Any]:
        """
        Validate raw parameters.

        Raises:
            ParameterValidationError: schema or semantic validation failed.

        Returns:
            The normalized parameter mapping (defaults filled in).
        """
        try:
            model = self.input_model.model_validate(dict(params))
        except ValidationError as e:
            raise ParameterValidationError(format_validation_error(e)) from e
        self.check(model, ctx)
        return model.model_dump()

    def check(self, params: InputT, ctx: Optional[ExecutionContext]) -> None:
        return None

    async def execute(self, params: Mapping[str, Any], ctx: ExecutionContext) -> ToolResult:
        return await self.run(self.input_model.model_validate(dict(params)), ctx)

    @abstractmethod
    async def run(self, params: InputT, ctx: ExecutionContext) -> ToolResult:
        """Perform the action with validated parameters."""

    def extract_signature_content(self, params: Mapping[str, Any]) -> Optional[str]:
        return None

    def abstract_permission_rule(self, params: Mapping[str, Any]) -> Optional[str]:
        return None

    def function_declaration(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description.render(),
            "parameters": self.input_model.model_json_schema(),
        }
