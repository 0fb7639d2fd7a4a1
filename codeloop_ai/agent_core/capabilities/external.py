"""Adapter for externally supplied capabilities.

An external tool server (whose protocol client lives outside this package)
describes each tool as ``{name, description, input_schema}`` and executes calls
through ``ExternalToolClient.call_tool``. ``ExternalAction`` wraps one such tool
into an execute-kind action so it goes through the same pipeline as builtins.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, create_model

from codeloop_ai.core.logging_config import get_logger

from ..schemas.base import BaseSchema
from ..schemas.domain import ToolErrorType, ToolKind, ToolResult
from .base import ActionDescription, BaseAction, ExecutionContext

logger = get_logger(__name__)

_JSON_TYPES: Dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "array": list,
    "object": dict,
}


class ExternalToolSpec(BaseSchema):
    name: str = Field(..., min_length=1)
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class ExternalToolClient(Protocol):
    server_name: str

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]: ...


def _field_type(schema: Mapping[str, Any]) -> Any:
    kind = schema.get("type")
    if isinstance(kind, list):
        kind = kind[0] if kind else None
    return _JSON_TYPES.get(kind, Any) if isinstance(kind, str) else Any


def model_from_json_schema(name: str, schema: Mapping[str, Any]) -> Type[BaseModel]:
    """
    Build a pydantic model for the top-level properties of a JSON schema.

    Only the outer shape is enforced (types of top-level properties and which
    ones are required); nested structures are passed through. Unknown keys are
    kept so the tool server can apply its own validation.
    """
    required = set(schema.get("required") or ())
    fields: Dict[str, Tuple[Any, Any]] = {}
    for prop, prop_schema in (schema.get("properties") or {}).items():
        if not isinstance(prop_schema, Mapping):
            continue
        py_type = _field_type(prop_schema)
        description = prop_schema.get("description")
        if prop in required:
            fields[prop] = (py_type, Field(..., description=description))
        else:
            fields[prop] = (Optional[py_type], Field(default=None, description=description))
    model_name = "".join(part.capitalize() for part in name.replace("-", "_").split("_")) + "Input"
    return create_model(model_name, __config__=ConfigDict(extra="allow"), **fields)


def _render_content(items: List[Mapping[str, Any]]) -> str:
    out = []
    for item in items:
        kind = item.get("type")
        if kind == "text" and item.get("text"):
            out.append(str(item["text"]))
        elif kind == "image":
            out.append(f"[image: {item.get('mimeType') or 'unknown'}]")
        elif kind == "resource":
            out.append(f"[resource: {item.get('uri') or item.get('mimeType') or 'unknown'}]")
    return "\n".join(out)


class ExternalAction(BaseAction[BaseModel]):
    """An externally supplied tool exposed as an execute-kind action."""

    kind = ToolKind.execute
    category = "external"
    is_concurrency_safe = False

    def __init__(self, client: ExternalToolClient, spec: ExternalToolSpec, *, name: Optional[str] = None) -> None:
        self._client = client
        self._spec = spec
        self.name = name or spec.name
        self.display_name = f"{client.server_name}: {spec.name}"
        self.tags = ("external", client.server_name)
        self.input_model = model_from_json_schema(self.name, spec.input_schema)
        self.description = ActionDescription(
            short=spec.description or f"External tool: {spec.name}",
            important=(f"From tool server: {client.server_name}",),
        )

    @property
    def server_name(self) -> str:
        return self._client.server_name

    def function_declaration(self) -> Dict[str, Any]:
        parameters = self._spec.input_schema or {"type": "object", "properties": {}}
        return {"name": self.name, "description": self.description.render(), "parameters": parameters}

    async def run(self, params: BaseModel, ctx: ExecutionContext) -> ToolResult:
        arguments = params.model_dump(exclude_none=True)
        logger.info(f"Calling external tool {self._spec.name} on {self.server_name}")
        response = await self._client.call_tool(self._spec.name, arguments)
        text = _render_content(response.get("content") or [])
        if response.get("isError"):
            return ToolResult.fail(
                ToolErrorType.execution_error,
                text or f"External tool {self._spec.name} failed",
                display_content=f"{self.display_name} failed",
            )
        return ToolResult.ok(text or "(no output)", f"{self.display_name} completed", server=self.server_name)
