from __future__ import annotations

"""Rule matching for the permission engine.

``PermissionChecker`` evaluates a permission signature against the
configured rule lists:

1. deny rules - any match is a final Deny;
2. allow rules - any match is Allow;
3. ask rules - any match is Ask;
4. nothing matched - Ask.

Rule patterns
-------------

- ``Bash``: every call of the action.
- ``Bash(npm:*)``: prefix match on the signature content.
- ``Read(**/*.py)``: glob match (``*`` also crosses ``/``).
- ``Bash(git status)``: exact match.
"""

import logging
from fnmatch import fnmatchcase
from typing import Optional

from ..schemas.domain import PermissionDecision
from .models import DEFAULT_PERMISSION_CONFIG, PermissionCheckResult, PermissionConfig, RuleList
from .signature import parse_signature

logger = logging.getLogger(__name__)


def _glob_match(content: str, pattern: str) -> bool:
    if fnmatchcase(content, pattern):
        return True
    # "**/" also matches zero directories
    return pattern.startswith("**/") and fnmatchcase(content, pattern[3:])


def matches_rule(signature: str, rule: str) -> bool:
    """
    Return True when ``rule`` covers ``signature``.

    Args:
        signature: ``Name(content)`` or ``Name``.
        rule: ``Name`` or ``Name(pattern)``.
    """
    if signature == rule:
        return True

    tool, content = parse_signature(signature)
    rule_tool, pattern = parse_signature(rule)
    if tool != rule_tool:
        return False
    if pattern is None:
        return True
    if content is None:
        return False

    if pattern.endswith(":*"):
        return content.startswith(pattern[:-2])
    if "*" in pattern or "?" in pattern:
        return _glob_match(content, pattern)
    return content == pattern


class PermissionChecker:
    """Evaluate signatures against allow/deny/ask rule lists.

    User rules are merged after the built-in defaults unless
    ``include_defaults`` is False.
    """

    def __init__(self, config: Optional[PermissionConfig] = None, *, include_defaults: bool = True) -> None:
        user = config or PermissionConfig()
        self._cfg = DEFAULT_PERMISSION_CONFIG.merged_with(user) if include_defaults else user.model_copy(deep=True)

    @property
    def config(self) -> PermissionConfig:
        """Return a snapshot of the effective rules."""
        return self._cfg.model_copy(deep=True)

    def check(self, signature: str) -> PermissionCheckResult:
        """
        Decide Allow/Ask/Deny for a signature.

        Deny always wins over allow, regardless of list order.
        """
        for rule in self._cfg.deny:
            if matches_rule(signature, rule):
                logger.debug(f"{signature} denied by rule {rule}")
                return PermissionCheckResult(
                    decision=PermissionDecision.deny,
                    reason=f"Denied by rule: {rule}",
                    matched_rule=rule,
                )
        for rule in self._cfg.allow:
            if matches_rule(signature, rule):
                return PermissionCheckResult(
                    decision=PermissionDecision.allow,
                    reason=f"Allowed by rule: {rule}",
                    matched_rule=rule,
                )
        for rule in self._cfg.ask:
            if matches_rule(signature, rule):
                return PermissionCheckResult(
                    decision=PermissionDecision.ask,
                    reason=f"Confirmation required by rule: {rule}",
                    matched_rule=rule,
                )
        return PermissionCheckResult(
            decision=PermissionDecision.ask,
            reason="No matching rule, requires confirmation",
        )

    def add_rule(self, kind: RuleList, rule: str) -> None:
        rules = self._cfg.rules(kind)
        if rule not in rules:
            rules.append(rule)

    def remove_rule(self, kind: RuleList, rule: str) -> bool:
        rules = self._cfg.rules(kind)
        if rule in rules:
            rules.remove(rule)
            return True
        return False
