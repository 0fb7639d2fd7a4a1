"""Hook command execution.

Each hook command runs as its own child process (``sh -c <command>``) in the
project directory. The event payload is written to its stdin as one JSON
object; stdout and stderr are captured. ``HookProcess`` models one such
process as an explicit state machine::

    spawned -> running -> completed | timed_out | errored

``HookExecutor`` interprets finished processes into ``HookRunResult`` values
and implements the per-event execution strategies:

- pre-action: sequential, parameter rewrites folded, first deny/ask wins;
- post-action, prompt-submitted, lifecycle: concurrent batches, outputs merged;
- permission-request, stop: sequential, first decisive answer wins;
- compaction: sequential, first "prevent" wins.

Hook processes are governed only by their own timeout; the control loop's
cancellation signal does not terminate them.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import time
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence
from uuid import uuid4

from pydantic import ValidationError

from ..errors import ParameterValidationError
from ..schemas.domain import PermissionDecision
from .models import (
    CompactionInput,
    CompactionOutput,
    CompactionResult,
    HookBehavior,
    HookCommand,
    HookConfig,
    HookEvent,
    HookExitCode,
    HookInput,
    HookProcessState,
    HookRunResult,
    LifecycleOutput,
    LifecycleResult,
    PermissionRequestInput,
    PermissionRequestOutput,
    PermissionRequestResult,
    PostToolUseOutput,
    PostToolUseResult,
    PreToolUseInput,
    PreToolUseOutput,
    PreToolUseResult,
    StopInput,
    StopOutput,
    StopResult,
    parse_hook_output,
)

logger = logging.getLogger(__name__)

ParamsValidator = Callable[[Dict[str, Any]], Dict[str, Any]]

_KILL_GRACE_SECONDS = 2.0

_TRANSITIONS: Mapping[Optional[HookProcessState], FrozenSet[HookProcessState]] = {
    None: frozenset({HookProcessState.spawned, HookProcessState.errored}),
    HookProcessState.spawned: frozenset({HookProcessState.running, HookProcessState.errored}),
    HookProcessState.running: frozenset(
        {HookProcessState.completed, HookProcessState.timed_out, HookProcessState.errored}
    ),
}


class HookProcess:
    """One hook child process and its state transitions."""

    def __init__(self, command: str, *, cwd: str, env: Mapping[str, str], timeout: float) -> None:
        self.command = command
        self.cwd = cwd
        self.env = dict(env)
        self.timeout = timeout
        self.returncode: Optional[int] = None
        self.stdout = ""
        self.stderr = ""
        self.error: Optional[str] = None
        self.duration = 0.0
        self._state: Optional[HookProcessState] = None

    @property
    def state(self) -> Optional[HookProcessState]:
        return self._state

    def _transition(self, new: HookProcessState) -> None:
        if new not in _TRANSITIONS.get(self._state, frozenset()):
            raise RuntimeError(f"invalid hook process transition: {self._state} -> {new}")
        self._state = new

    async def run(self, payload: bytes) -> HookProcessState:
        """Spawn the process, feed ``payload`` and wait for a terminal state."""
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                "sh",
                "-c",
                self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=self.env,
                start_new_session=True,
            )
        except OSError as e:
            self.error = f"failed to spawn hook: {e}"
            self._transition(HookProcessState.errored)
            return HookProcessState.errored
        self._transition(HookProcessState.spawned)

        self._transition(HookProcessState.running)
        try:
            out, err = await asyncio.wait_for(proc.communicate(payload), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._terminate(proc)
            self.returncode = int(HookExitCode.timeout)
            self.error = f"Hook timed out after {self.timeout}s"
            self.duration = time.monotonic() - start
            self._transition(HookProcessState.timed_out)
            return HookProcessState.timed_out
        except OSError as e:
            await self._terminate(proc)
            self.error = f"hook I/O failed: {e}"
            self.duration = time.monotonic() - start
            self._transition(HookProcessState.errored)
            return HookProcessState.errored

        self.stdout = out.decode("utf-8", errors="replace") if out else ""
        self.stderr = err.decode("utf-8", errors="replace") if err else ""
        self.returncode = proc.returncode
        self.duration = time.monotonic() - start
        self._transition(HookProcessState.completed)
        return HookProcessState.completed

    @staticmethod
    def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> bool:
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            return False
        return True

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the hook's process group, SIGKILL it after a grace period, then reap it."""
        if self._signal_group(proc, signal.SIGTERM):
            try:
                await asyncio.wait_for(proc.wait(), timeout=_KILL_GRACE_SECONDS)
            except asyncio.TimeoutError:
                pass
            # grandchildren may outlive the shell and keep the pipes open
            self._signal_group(proc, signal.SIGKILL)
        # drain the pipes so the transport closes before the loop does
        try:
            await asyncio.wait_for(proc.communicate(), timeout=_KILL_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"Hook '{self.command}' pipes still open after kill")


def _join(parts: Sequence[Optional[str]]) -> Optional[str]:
    kept = [p.strip() for p in parts if p and p.strip()]
    return "\n\n".join(kept) if kept else None


class HookExecutor:
    """Run hook commands and aggregate their results per event."""

    def __init__(self, config: HookConfig) -> None:
        self._cfg = config

    @property
    def config(self) -> HookConfig:
        return self._cfg

    async def run_command(self, hook: HookCommand, hook_input: HookInput) -> HookRunResult:
        """Run a single hook command with a fresh execution id and interpret the outcome."""
        hook_input = hook_input.model_copy(update={"hook_execution_id": str(uuid4())})
        env = dict(os.environ)
        env.update(
            {
                "HOOK_EVENT": hook_input.hook_event_name.value,
                "HOOK_SESSION_ID": hook_input.session_id,
                "HOOK_PROJECT_DIR": hook_input.project_dir,
            }
        )
        process = HookProcess(
            hook.command,
            cwd=hook_input.project_dir,
            env=env,
            timeout=hook.timeout or self._cfg.default_timeout,
        )
        if hook.status_message:
            logger.info(hook.status_message)
        await process.run(hook_input.to_wire())
        return self.interpret(process, hook_input.hook_event_name)

    def _behavior_result(self, process: HookProcess, behavior: HookBehavior, state: HookProcessState) -> HookRunResult:
        return HookRunResult(
            command=process.command,
            state=state,
            exit_code=process.returncode,
            success=behavior == HookBehavior.ignore and state == HookProcessState.timed_out,
            blocking=behavior == HookBehavior.deny,
            needs_confirmation=behavior == HookBehavior.ask,
            stderr=process.stderr,
            error=process.error or process.stderr.strip() or f"Hook exited with code {process.returncode}",
            duration=process.duration,
        )

    def interpret(self, process: HookProcess, event: HookEvent) -> HookRunResult:
        """
        Turn a finished ``HookProcess`` into a ``HookRunResult``.

        - timed out: ``timeout_behavior`` decides (ignore succeeds, deny blocks, ask confirms);
        - spawn/I-O error or exit code other than 0/2: ``failure_behavior`` decides;
        - exit code 2: always blocking, reason from stderr;
        - exit code 0: stdout parsed as the event's structured output, else kept as text.
        """
        state = process.state
        if state == HookProcessState.timed_out:
            logger.warning(f"Hook '{process.command}' timed out after {process.timeout}s")
            return self._behavior_result(process, self._cfg.timeout_behavior, state)
        if state != HookProcessState.completed:
            logger.warning(f"Hook '{process.command}' failed: {process.error}")
            return self._behavior_result(process, self._cfg.failure_behavior, HookProcessState.errored)

        if process.returncode == HookExitCode.blocking_error:
            return HookRunResult(
                command=process.command,
                state=state,
                exit_code=process.returncode,
                success=False,
                blocking=True,
                stderr=process.stderr,
                error=process.stderr.strip() or "Blocking error",
                duration=process.duration,
            )
        if process.returncode != HookExitCode.success:
            logger.warning(
                f"Hook '{process.command}' exited with code {process.returncode}: {process.stderr.strip()}"
            )
            return self._behavior_result(process, self._cfg.failure_behavior, state)

        stdout = process.stdout.strip()
        output = None
        text = stdout
        if stdout.startswith("{"):
            try:
                data = json.loads(stdout)
                if isinstance(data, dict):
                    output = parse_hook_output(event, data)
                    text = ""
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning(f"Hook '{process.command}' printed unparseable output: {e}")
        return HookRunResult(
            command=process.command,
            state=state,
            exit_code=process.returncode,
            success=True,
            output=output,
            text=text,
            stderr=process.stderr,
            duration=process.duration,
        )

    async def run_concurrent(self, hooks: Sequence[HookCommand], hook_input: HookInput) -> List[HookRunResult]:
        """Run hooks concurrently in batches of ``max_concurrent_hooks``; result order follows ``hooks``."""
        results: List[HookRunResult] = []
        size = self._cfg.max_concurrent_hooks
        for i in range(0, len(hooks), size):
            batch = hooks[i : i + size]
            results.extend(await asyncio.gather(*(self.run_command(h, hook_input) for h in batch)))
        return results

    async def run_pre_tool_use(
        self,
        hooks: Sequence[HookCommand],
        hook_input: PreToolUseInput,
        validate: Optional[ParamsValidator] = None,
    ) -> PreToolUseResult:
        """
        Run pre-action hooks one after another.

        Each hook sees the parameters as rewritten by the hooks before it. A
        rewrite is merged into a new mapping and validated before the next hook
        runs; an invalid rewrite stops the chain.
        """
        params: Mapping[str, Any] = MappingProxyType(dict(hook_input.tool_input))
        rewritten = False
        warnings: List[str] = []

        for hook in hooks:
            step_input = hook_input.model_copy(update={"tool_input": dict(params)})
            result = await self.run_command(hook, step_input)

            if result.blocking:
                return PreToolUseResult(
                    PermissionDecision.deny,
                    result.error,
                    timed_out=result.state == HookProcessState.timed_out,
                    warnings=tuple(warnings),
                )
            if result.needs_confirmation:
                return PreToolUseResult(PermissionDecision.ask, result.error, warnings=tuple(warnings))
            if not result.success:
                warnings.append(result.error or f"Hook '{hook.command}' failed")
                continue

            output = result.output
            if not isinstance(output, PreToolUseOutput):
                continue
            if output.permission_decision in (PermissionDecision.deny, PermissionDecision.ask):
                return PreToolUseResult(
                    output.permission_decision, output.permission_decision_reason, warnings=tuple(warnings)
                )
            if output.updated_input:
                candidate = {**params, **output.updated_input}
                if validate is not None:
                    try:
                        candidate = validate(candidate)
                    except ParameterValidationError as e:
                        return PreToolUseResult(
                            PermissionDecision.deny,
                            f"Hook modified parameters are invalid: {e}",
                            invalid_input_error=str(e),
                            warnings=tuple(warnings),
                        )
                params = MappingProxyType(candidate)
                rewritten = True

        return PreToolUseResult(
            PermissionDecision.allow,
            updated_input=dict(params) if rewritten else None,
            warnings=tuple(warnings),
        )

    async def run_post_tool_use(self, hooks: Sequence[HookCommand], hook_input: HookInput) -> PostToolUseResult:
        """Run post-action hooks concurrently; contexts are joined and the last output override wins."""
        results = await self.run_concurrent(hooks, hook_input)
        contexts: List[Optional[str]] = []
        updated_output = None
        warnings: List[str] = []
        for r in results:
            if not r.success:
                warnings.append(r.error or f"Hook '{r.command}' failed")
                continue
            contexts.append(r.text)
            if isinstance(r.output, PostToolUseOutput):
                contexts.append(r.output.additional_context)
                if r.output.updated_output is not None:
                    updated_output = r.output.updated_output
        return PostToolUseResult(_join(contexts), updated_output, tuple(warnings))

    async def run_permission_request(
        self, hooks: Sequence[HookCommand], hook_input: PermissionRequestInput
    ) -> PermissionRequestResult:
        for hook in hooks:
            result = await self.run_command(hook, hook_input)
            if result.blocking:
                return PermissionRequestResult("deny", result.error)
            output = result.output
            if isinstance(output, PermissionRequestOutput) and output.decision in ("approve", "deny"):
                return PermissionRequestResult(output.decision, output.reason)
        return PermissionRequestResult("ask")

    async def run_stop(self, hooks: Sequence[HookCommand], hook_input: StopInput) -> StopResult:
        for hook in hooks:
            result = await self.run_command(hook, hook_input)
            output = result.output
            if isinstance(output, StopOutput) and output.continue_:
                return StopResult(True, output.reason)
        return StopResult(False)

    async def run_compaction(self, hooks: Sequence[HookCommand], hook_input: CompactionInput) -> CompactionResult:
        for hook in hooks:
            result = await self.run_command(hook, hook_input)
            if result.blocking:
                return CompactionResult(True, result.error)
            output = result.output
            if isinstance(output, CompactionOutput) and output.prevent:
                return CompactionResult(True, output.reason)
        return CompactionResult(False)

    async def run_lifecycle(self, hooks: Sequence[HookCommand], hook_input: HookInput) -> LifecycleResult:
        """Run prompt/session/notification hooks concurrently and join their successful output."""
        results = await self.run_concurrent(hooks, hook_input)
        contexts: List[Optional[str]] = []
        for r in results:
            if not r.success:
                continue
            contexts.append(r.text)
            if isinstance(r.output, LifecycleOutput):
                contexts.append(r.output.additional_context)
        return LifecycleResult(_join(contexts), tuple(results))
