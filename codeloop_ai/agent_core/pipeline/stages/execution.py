from __future__ import annotations

import logging

from ...errors import ActionCancelledError, ActionExecutionError, AgentCoreError
from ...schemas.domain import ToolResult
from ..models import ExecutionRecord

logger = logging.getLogger(__name__)


class ExecutionStage:
    """
    Invoke the action's own execute function.

    An unexpected exception from the action becomes a failed result (so
    post-action failure hooks still see it) rather than an abort.
    """

    name = "execution"

    async def process(self, record: ExecutionRecord) -> None:
        ctx = record.context
        if ctx.cancelled:
            raise ActionCancelledError("Tool execution aborted by user")
        try:
            result = await record.action.execute(record.params, ctx)
        except AgentCoreError:
            raise
        except Exception as e:
            logger.exception(f"{record.tool_name} raised during execution")
            err = ActionExecutionError(f"Tool execution failed: {e}")
            result = ToolResult.fail(err.kind, str(err))
        record.set_result(result)
