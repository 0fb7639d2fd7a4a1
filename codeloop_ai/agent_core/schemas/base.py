"""Shared pydantic base for results, permission rules and hook payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Common model configuration.

    Models accept either the field name or its alias (hook JSON uses camel-case
    keys such as ``defaultTimeout``) and reject unknown keys.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
    )

    def to_wire(self) -> bytes:
        """Serialize to UTF-8 JSON as written to a hook's stdin."""
        return self.model_dump_json().encode("utf-8")
