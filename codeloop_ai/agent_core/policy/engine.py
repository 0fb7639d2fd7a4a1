"""Permission engine.

``PermissionEngine`` is the runtime authority consulted by the permission
stage of the execution pipeline. It combines three independent inputs:

- rule matching (``PermissionChecker``),
- permission-mode overrides (``apply_mode_overrides``),
- sensitive-path detection (``SensitiveFileDetector``).

The first two produce the Allow/Ask/Deny decision; sensitive-path detection is
reported separately so the pipeline can deny (high) or force confirmation
(medium) regardless of the rule outcome.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from ..schemas.domain import PermissionDecision, PermissionMode, ToolKind
from .checker import PermissionChecker
from .models import PermissionCheckResult, SensitiveMatch, SensitivityLevel
from .sensitive import SensitiveFileDetector
from .signature import PATH_PARAM_KEYS, build_signature

if TYPE_CHECKING:
    from ..capabilities.base import ActionDefinition

logger = logging.getLogger(__name__)


def apply_mode_overrides(
    result: PermissionCheckResult, mode: PermissionMode, kind: ToolKind
) -> PermissionCheckResult:
    """
    Bias a rule decision by the run's permission mode.

    Applied in order, first applicable wins:

    1. ``yolo`` allows everything.
    2. ``plan`` denies every non-read-only action.
    3. An existing Deny stands.
    4. An existing Allow stands.
    5. Read-only actions are allowed.
    6. ``autoEdit`` allows write actions (not execute actions).
    7. Otherwise the rule result stands.
    """
    if mode == PermissionMode.yolo:
        return PermissionCheckResult(PermissionDecision.allow, "YOLO mode: all actions allowed", result.matched_rule)
    if mode == PermissionMode.plan and kind != ToolKind.read_only:
        return PermissionCheckResult(
            PermissionDecision.deny, "Plan mode: only read-only actions are allowed", result.matched_rule
        )
    if result.decision in (PermissionDecision.deny, PermissionDecision.allow):
        return result
    if kind == ToolKind.read_only:
        return PermissionCheckResult(PermissionDecision.allow, "Read-only action allowed", result.matched_rule)
    if mode == PermissionMode.auto_edit and kind == ToolKind.write:
        return PermissionCheckResult(
            PermissionDecision.allow, "Auto-edit mode: write actions allowed", result.matched_rule
        )
    return result


def extract_paths(params: Mapping[str, Any]) -> List[str]:
    return [str(params[k]) for k in PATH_PARAM_KEYS if isinstance(params.get(k), str) and params[k]]


class PermissionEngine:
    """Decide Allow/Ask/Deny for an action call."""

    def __init__(
        self,
        checker: Optional[PermissionChecker] = None,
        detector: Optional[SensitiveFileDetector] = None,
    ) -> None:
        self._checker = checker or PermissionChecker()
        self._detector = detector or SensitiveFileDetector()

    @property
    def checker(self) -> PermissionChecker:
        return self._checker

    @property
    def detector(self) -> SensitiveFileDetector:
        return self._detector

    def signature(self, action: "ActionDefinition", params: Mapping[str, Any]) -> str:
        return build_signature(action.name, params, action)

    def decide(
        self,
        action: "ActionDefinition",
        params: Mapping[str, Any],
        mode: PermissionMode,
        *,
        signature: Optional[str] = None,
    ) -> PermissionCheckResult:
        """
        Compute the permission decision for one call.

        Args:
            action: The resolved action definition.
            params: Validated parameters.
            mode: The run's permission mode.
            signature: Precomputed signature; derived from ``params`` when omitted.

        Returns:
            The rule decision with mode overrides applied.
        """
        sig = signature or self.signature(action, params)
        result = apply_mode_overrides(self._checker.check(sig), mode, action.kind)
        logger.debug(f"permission {sig} mode={mode.value} -> {result.decision.value}")
        return result

    def scan_sensitive(
        self,
        action: "ActionDefinition",
        params: Mapping[str, Any],
        min_level: SensitivityLevel = SensitivityLevel.medium,
    ) -> List[SensitiveMatch]:
        """
        Return sensitive-path matches for the call's path-like parameters.

        Read-only actions are never scanned.
        """
        if action.kind == ToolKind.read_only:
            return []
        return self._detector.filter_sensitive(extract_paths(params), min_level)
