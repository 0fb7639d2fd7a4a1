from __future__ import annotations

from ...capabilities.registry import ToolRegistry
from ..models import ExecutionRecord


class DiscoveryStage:
    """Resolve the requested action name in the registry."""

    name = "discovery"

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    async def process(self, record: ExecutionRecord) -> None:
        record.action = self._registry.require(record.tool_name)
