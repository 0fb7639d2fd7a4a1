"""Permission engine for governed action execution.

Components
----------

- ``PermissionConfig``: allow/deny/ask rule lists (built-in defaults merged
  under user rules by ``PermissionChecker``).
- ``PermissionChecker``: rule matching over permission signatures.
- ``apply_mode_overrides``: biases a rule decision by the run's
  ``PermissionMode``.
- ``SensitiveFileDetector``: severity rating of file paths.
- ``build_signature`` / ``abstract_rule``: per-action signature derivation.

``PermissionEngine`` aggregates these and is what the pipeline consults.
"""

from .checker import PermissionChecker, matches_rule
from .engine import PermissionEngine, apply_mode_overrides
from .models import (
    DEFAULT_PERMISSION_CONFIG,
    PermissionCheckResult,
    PermissionConfig,
    RuleList,
    SensitiveMatch,
    SensitivityLevel,
)
from .sensitive import SensitiveFileDetector
from .signature import abstract_rule, build_signature

__all__ = [
    "DEFAULT_PERMISSION_CONFIG",
    "PermissionCheckResult",
    "PermissionChecker",
    "PermissionConfig",
    "PermissionEngine",
    "RuleList",
    "SensitiveFileDetector",
    "SensitiveMatch",
    "SensitivityLevel",
    "abstract_rule",
    "apply_mode_overrides",
    "build_signature",
    "matches_rule",
]
