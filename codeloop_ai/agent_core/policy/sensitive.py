"""Sensitive path detection.

The detector rates file paths by how much damage reading or overwriting them
could do. It runs independently of rule matching: a high rating denies the
call, a medium rating forces user confirmation.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Pattern, Tuple

from .models import SensitiveMatch, SensitivityLevel, level_ge

_SENSITIVE_PATTERNS: Tuple[Tuple[Pattern[str], SensitivityLevel, str], ...] = (
    (re.compile(r"\.env$"), SensitivityLevel.high, "Environment file may contain secrets"),
    (
        re.compile(r"\.env\.(local|development|production|test)$"),
        SensitivityLevel.high,
        "Environment file may contain secrets",
    ),
    (re.compile(r"credentials?\.json$"), SensitivityLevel.high, "Credentials file"),
    (re.compile(r"secrets?\.json$"), SensitivityLevel.high, "Secrets file"),
    (re.compile(r"\.credentials$"), SensitivityLevel.high, "Credentials file"),
    (re.compile(r"\.pem$"), SensitivityLevel.high, "Private key or certificate"),
    (re.compile(r"\.key$"), SensitivityLevel.high, "Private key file"),
    (re.compile(r"\.p12$"), SensitivityLevel.high, "PKCS12 certificate"),
    (re.compile(r"\.pfx$"), SensitivityLevel.high, "PFX certificate"),
    (re.compile(r"id_rsa"), SensitivityLevel.high, "SSH RSA private key"),
    (re.compile(r"id_ed25519"), SensitivityLevel.high, "SSH Ed25519 private key"),
    (re.compile(r"id_ecdsa"), SensitivityLevel.high, "SSH ECDSA private key"),
    (re.compile(r"id_dsa"), SensitivityLevel.high, "SSH DSA private key"),
    (re.compile(r"\.aws/credentials$"), SensitivityLevel.high, "AWS credentials"),
    (re.compile(r"\.htpasswd$"), SensitivityLevel.high, "HTTP password file"),
    (re.compile(r"\.netrc$"), SensitivityLevel.high, "Network credentials file"),
    (re.compile(r"\.sqlite3?$"), SensitivityLevel.medium, "SQLite database"),
    (re.compile(r"\.db$"), SensitivityLevel.medium, "Database file"),
    (re.compile(r"\.log$"), SensitivityLevel.medium, "Log file may contain sensitive data"),
    (re.compile(r"\.bash_history$"), SensitivityLevel.medium, "Bash history"),
    (re.compile(r"\.zsh_history$"), SensitivityLevel.medium, "Zsh history"),
    (re.compile(r"\.npmrc$"), SensitivityLevel.medium, "npm config may contain tokens"),
    (re.compile(r"\.pypirc$"), SensitivityLevel.medium, "PyPI config may contain tokens"),
    (re.compile(r"config\.json$"), SensitivityLevel.low, "Configuration file"),
    (re.compile(r"settings\.json$"), SensitivityLevel.low, "Settings file"),
    (re.compile(r"\.gitconfig$"), SensitivityLevel.low, "Git configuration"),
)

_DANGEROUS_PATHS: Tuple[Pattern[str], ...] = (
    re.compile(r"^/etc/"),
    re.compile(r"^/usr/"),
    re.compile(r"^/System/"),
    re.compile(r"^/var/"),
    re.compile(r"^/root/"),
    re.compile(r"^C:/Windows/", re.IGNORECASE),
    re.compile(r"^C:/Program Files", re.IGNORECASE),
)

_DESCRIPTIONS = {
    SensitivityLevel.low: "Low sensitivity",
    SensitivityLevel.medium: "Medium sensitivity",
    SensitivityLevel.high: "High sensitivity",
}

_ACTIONS = {
    SensitivityLevel.low: "Processed normally",
    SensitivityLevel.medium: "Requires user confirmation",
    SensitivityLevel.high: "Access denied by default",
}


def _normalize(path: str) -> str:
    return path.replace("\\", "/")


class SensitiveFileDetector:
    """Rate file paths against the sensitive-file table and the system directory list."""

    def check(self, path: str) -> Optional[SensitiveMatch]:
        """
        Return the first sensitive match for ``path``, or ``None``.

        File-name patterns are checked first; a path that only lives under a
        system directory rates medium.
        """
        normalized = _normalize(path)
        for pattern, level, reason in _SENSITIVE_PATTERNS:
            if pattern.search(normalized):
                return SensitiveMatch(path=path, level=level, reason=reason)
        if self.is_dangerous_path(path):
            return SensitiveMatch(path=path, level=SensitivityLevel.medium, reason="System directory")
        return None

    def is_dangerous_path(self, path: str) -> bool:
        normalized = _normalize(path)
        return any(p.search(normalized) for p in _DANGEROUS_PATHS)

    def check_many(self, paths: Iterable[str]) -> List[Tuple[str, Optional[SensitiveMatch]]]:
        return [(p, self.check(p)) for p in paths]

    def filter_sensitive(
        self, paths: Iterable[str], min_level: SensitivityLevel = SensitivityLevel.low
    ) -> List[SensitiveMatch]:
        """Return the matches at or above ``min_level``, in input order."""
        out: List[SensitiveMatch] = []
        for _, match in self.check_many(paths):
            if match is not None and level_ge(match.level, min_level):
                out.append(match)
        return out

    @staticmethod
    def describe(level: SensitivityLevel) -> str:
        return _DESCRIPTIONS[level]

    @staticmethod
    def recommended_action(level: SensitivityLevel) -> str:
        return _ACTIONS[level]
