"""Shell command action."""

from __future__ import annotations

import asyncio
import os
import re
import signal
import time
from typing import Any, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from codeloop_ai.core.logging_config import get_logger

from ..schemas.domain import ToolErrorType, ToolKind, ToolResult
from .base import ActionDescription, BaseAction, ExecutionContext

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 120_000
MAX_TIMEOUT_MS = 600_000
_MAX_OUTPUT_CHARS = 30_000

# Commands refused even in yolo mode.
_BLOCKED_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(r"\brm\s+-[a-zA-Z]*r[a-zA-Z]*f?\s+/(\s|$)"),
    re.compile(r":\(\)\s*\{\s*:\|:&\s*\};:"),
    re.compile(r"\bmkfs(\.\w+)?\b"),
    re.compile(r"\bdd\s+.*of=/dev/(sd|hd|nvme|disk)"),
    re.compile(r">\s*/dev/(sd|hd|nvme|disk)"),
)


class BashInput(BaseModel):
    command: str = Field(..., min_length=1, description="Shell command to execute")
    description: Optional[str] = Field(default=None, description="Short description of what the command does")
    timeout: int = Field(
        default=DEFAULT_TIMEOUT_MS, ge=1, le=MAX_TIMEOUT_MS, description="Timeout in milliseconds (max 600000)"
    )
    working_directory: Optional[str] = Field(default=None, description="Directory to run the command in")


def _kill_group(process: asyncio.subprocess.Process) -> None:
    # the command runs in its own session; kill every process it started
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _truncate(text: str) -> str:
    if len(text) <= _MAX_OUTPUT_CHARS:
        return text
    return text[:_MAX_OUTPUT_CHARS] + f"\n... ({len(text) - _MAX_OUTPUT_CHARS} more characters)"


class BashAction(BaseAction[BashInput]):
    name = "Bash"
    display_name = "Run Shell Command"
    kind = ToolKind.execute
    input_model = BashInput
    tags = ("shell", "execute")
    is_concurrency_safe = False
    description = ActionDescription(
        short="Execute a shell command.",
        usage_notes=(
            "Commands run in the workspace root unless working_directory is given.",
            f"Default timeout is {DEFAULT_TIMEOUT_MS} ms.",
        ),
        important=("Prefer Read, Glob and Grep over cat, find and grep.",),
    )

    def abstract_permission_rule(self, params: Mapping[str, Any]) -> Optional[str]:
        command = str(params.get("command") or "").strip()
        if not command:
            return None
        return f"Bash({command.split()[0]}:*)"

    async def run(self, params: BashInput, ctx: ExecutionContext) -> ToolResult:
        command = params.command
        for pattern in _BLOCKED_PATTERNS:
            if pattern.search(command):
                logger.warning(f"Blocked dangerous command: {command}")
                return ToolResult.fail(ToolErrorType.permission_denied, f"Command blocked as dangerous: {command}")

        cwd = ctx.resolve_path(params.working_directory) if params.working_directory else ctx.workspace_root
        if not os.path.isdir(cwd):
            return ToolResult.fail(ToolErrorType.execution_error, f"Working directory not found: {cwd}")

        timeout = params.timeout / 1000
        start = time.monotonic()
        logger.info(f"Executing command: {command} (cwd={cwd})")
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            start_new_session=True,
        )
        communicate = asyncio.ensure_future(process.communicate())
        waiters = {communicate}
        cancel_wait = None
        if ctx.cancel_event is not None:
            cancel_wait = asyncio.ensure_future(ctx.cancel_event.wait())
            waiters.add(cancel_wait)
        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if communicate not in done:
            _kill_group(process)
            await communicate
            duration = time.monotonic() - start
            if cancel_wait is not None and cancel_wait in done:
                return ToolResult.fail(ToolErrorType.cancelled, f"Command cancelled: {command}")
            logger.error(f"Command timed out after {timeout}s: {command}")
            return ToolResult.fail(
                ToolErrorType.timeout_error,
                f"Command execution timeout after {timeout} seconds",
                details={"duration_seconds": duration},
            )

        stdout_bytes, stderr_bytes = communicate.result()
        stdout = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
        stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""
        exit_code = process.returncode
        duration = time.monotonic() - start
        logger.info(f"Command completed with exit code {exit_code} (duration: {duration:.2f}s)")

        sections = []
        if stdout:
            sections.append(_truncate(stdout.rstrip("\n")))
        if stderr:
            sections.append("[stderr]\n" + _truncate(stderr.rstrip("\n")))
        output = "\n".join(sections) or "(no output)"
        if exit_code != 0:
            return ToolResult(
                success=False,
                llm_content=f"Exit code {exit_code}\n{output}",
                display_content=f"Command failed with exit code {exit_code}",
                error={"kind": ToolErrorType.execution_error, "message": f"Command exited with code {exit_code}"},
                metadata={"exit_code": exit_code, "duration_seconds": duration},
            )
        return ToolResult.ok(output, f"Ran `{command}`", exit_code=exit_code, duration_seconds=duration)
