from __future__ import annotations

import logging

from ...errors import ParameterValidationError, PermissionDeniedError
from ...policy.engine import PermissionEngine
from ...policy.models import SensitivityLevel
from ...schemas.domain import PermissionDecision
from ..models import ExecutionRecord, SessionApprovals

logger = logging.getLogger(__name__)


class PermissionStage:
    """
    Validate parameters and decide whether the call may proceed.

    Steps:

    1. validate parameters against the action's schema and semantic checks;
    2. compute the permission signature;
    3. a session-approved signature skips the remaining checks;
    4. consult the permission engine (rules plus mode overrides): Deny aborts,
       Ask flags the call for confirmation;
    5. scan path parameters of non-read-only actions: high sensitivity aborts,
       medium sensitivity flags the call for confirmation even over an Allow.
    """

    name = "permission"

    def __init__(self, engine: PermissionEngine, approvals: SessionApprovals) -> None:
        self._engine = engine
        self._approvals = approvals

    async def process(self, record: ExecutionRecord) -> None:
        action = record.action
        ctx = record.context
        try:
            params = action.validate(record.params, ctx)
        except ParameterValidationError as e:
            raise ParameterValidationError(f"Parameter validation failed: {e}") from e
        record.params = params

        signature = self._engine.signature(action, params)
        record.permission_signature = signature
        if self._approvals.has(signature):
            logger.debug(f"{signature} is session-approved")
            return

        decision = self._engine.decide(action, params, ctx.permission_mode, signature=signature)
        if decision.decision == PermissionDecision.deny:
            logger.info(f"Permission denied for {signature}: {decision.reason}")
            raise PermissionDeniedError(decision.reason)
        if decision.decision == PermissionDecision.ask:
            record.require_confirmation(decision.reason)

        matches = self._engine.scan_sensitive(action, params)
        high = [m for m in matches if m.level == SensitivityLevel.high]
        if high:
            listed = ", ".join(f"{m.path} ({m.reason})" for m in high)
            raise PermissionDeniedError(f"Access to highly sensitive files denied: {listed}")
        if matches:
            listed = "\n".join(f"{m.path}: {m.reason}" for m in matches)
            record.require_confirmation(f"Sensitive file access detected:\n{listed}")
