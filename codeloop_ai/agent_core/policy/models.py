from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import PermissionDecision


class RuleList(str, Enum):
    """The three ordered rule lists of a permission configuration."""

    allow = "allow"
    deny = "deny"
    ask = "ask"


class SensitivityLevel(str, Enum):
    """
    Severity of a sensitive path match.

    Attributes:
        low: Generic configuration files; processed normally.
        medium: Logs, local databases, shell history, package-manager credentials; needs confirmation.
        high: Secrets, keys, environment files, SSH private keys; denied outright.
    """

    low = "low"
    medium = "medium"
    high = "high"


_LEVEL_ORDER = {
    SensitivityLevel.low: 0,
    SensitivityLevel.medium: 1,
    SensitivityLevel.high: 2,
}


def level_ge(level: SensitivityLevel, threshold: SensitivityLevel) -> bool:
    return _LEVEL_ORDER[level] >= _LEVEL_ORDER[threshold]


class PermissionConfig(BaseSchema):
    """
    Allow/deny/ask rule lists.

    A rule is either a bare action name (``Bash``) or an action name with a
    pattern over the signature content (``Bash(git status)``, ``Bash(npm:*)``,
    ``Write(/etc/*)``).
    """

    allow: List[str] = Field(default_factory=list, description="Rules that allow an action without asking.")
    deny: List[str] = Field(default_factory=list, description="Rules that always deny an action.")
    ask: List[str] = Field(default_factory=list, description="Rules that always require confirmation.")

    def rules(self, kind: RuleList) -> List[str]:
        return getattr(self, kind.value)

    def merged_with(self, other: "PermissionConfig") -> "PermissionConfig":
        """Return a new config with ``other``'s rules appended after this config's rules."""
        return PermissionConfig(
            allow=_dedupe(self.allow + other.allow),
            deny=_dedupe(self.deny + other.deny),
            ask=_dedupe(self.ask + other.ask),
        )


def _dedupe(rules: List[str]) -> List[str]:
    return list(dict.fromkeys(rules))


DEFAULT_PERMISSION_CONFIG = PermissionConfig(
    allow=["Read(**/*)", "Glob(**/*)", "Grep(**/*)"],
    deny=[
        "Bash(rm -rf:*)",
        "Bash(sudo:*)",
        "Write(/etc/*)",
        "Write(/usr/*)",
        "Write(/System/*)",
    ],
    ask=[],
)


@dataclass(frozen=True)
class PermissionCheckResult:
    """
    Outcome of a permission evaluation.

    Attributes:
        decision: Allow, Ask or Deny.
        reason: Human readable explanation, surfaced to the user on Deny/Ask.
        matched_rule: The rule string that produced the decision, if any.
    """

    decision: PermissionDecision
    reason: str = ""
    matched_rule: Optional[str] = None


@dataclass(frozen=True)
class SensitiveMatch:
    path: str
    level: SensitivityLevel
    reason: str
