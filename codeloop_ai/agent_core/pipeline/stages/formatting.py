from __future__ import annotations

from datetime import datetime, timezone

from ..models import ExecutionRecord


class FormattingStage:
    """Normalize the result: default contents plus execution metadata."""

    name = "formatting"

    async def process(self, record: ExecutionRecord) -> None:
        result = record.result
        if result is None:
            return
        ctx = record.context
        if result.success:
            llm_default, display_default = "Execution completed successfully", f"✅ {record.tool_name} completed"
        else:
            llm_default, display_default = "Execution failed", f"❌ {record.tool_name} failed"
        metadata = {
            **result.metadata,
            "execution_id": ctx.session_id,
            "tool_name": record.tool_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "permission_mode": ctx.permission_mode.value,
        }
        record.set_result(
            result.model_copy(
                update={
                    "llm_content": result.llm_content or llm_default,
                    "display_content": result.display_content or display_default,
                    "metadata": metadata,
                }
            )
        )
