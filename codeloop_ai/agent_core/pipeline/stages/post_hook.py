from __future__ import annotations

import json

from ...hooks.manager import HookManager
from ..models import ExecutionRecord
from .hook import hook_session


class PostHookStage:
    """
    Run post-action hooks and fold their output into the result.

    Successful results fire ``PostToolUse`` hooks, failed ones
    ``PostToolUseFailure`` hooks. An ``updated_output`` replaces the
    model-facing content; supplementary context is appended to it.
    """

    name = "post_hook"

    def __init__(self, hooks: HookManager) -> None:
        self._hooks = hooks

    async def process(self, record: ExecutionRecord) -> None:
        result = record.result
        if result is None:
            return
        session = hook_session(record.context)
        tool_use_id = record.hook_tool_use_id or record.tool_name
        if result.success:
            post = await self._hooks.run_post_tool_use(
                session,
                tool_name=record.tool_name,
                tool_use_id=tool_use_id,
                tool_input=record.params,
                tool_output=result.llm_content,
            )
        else:
            post = await self._hooks.run_post_tool_use_failure(
                session,
                tool_name=record.tool_name,
                tool_use_id=tool_use_id,
                tool_input=record.params,
                error=result.error.message if result.error else result.llm_content,
            )

        if post.updated_output is None and not post.additional_context:
            return
        content = result.llm_content
        metadata = dict(result.metadata)
        if post.updated_output is not None:
            out = post.updated_output
            content = out if isinstance(out, str) else json.dumps(out, default=str)
            metadata["output_overridden_by_hook"] = True
        if post.additional_context:
            content = f"{content}\n\n{post.additional_context}" if content else post.additional_context
            metadata["hook_context"] = post.additional_context
        record.set_result(result.model_copy(update={"llm_content": content, "metadata": metadata}))
