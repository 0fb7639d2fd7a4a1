"""Permission signature derivation.

A permission signature is the canonical string ``Name(content)`` identifying
"this action with these salient parameters". Rules are matched against it and
session approvals are memoized by it.

Derivation is an explicit per-action table so that a new action kind gets a
deliberate entry (or a custom ``extract_signature_content`` on its definition)
instead of ad hoc formatting:

1. the action's own ``extract_signature_content(params)`` when it returns a value;
2. the builtin table below (``Bash`` -> command, file actions -> ``file_path``,
   search actions -> ``pattern``);
3. the first path-like parameter;
4. the bare action name.
"""

from __future__ import annotations

import posixpath
import re
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from ..capabilities.base import ActionDefinition

ContentExtractor = Callable[[Mapping[str, Any]], Optional[str]]

PATH_PARAM_KEYS: Tuple[str, ...] = ("file_path", "path", "target", "destination")

_SIGNATURE_RE = re.compile(r"^([\w.\-]+)(?:\((.*)\))?$", re.DOTALL)


def _param(key: str) -> ContentExtractor:
    def extract(params: Mapping[str, Any]) -> Optional[str]:
        value = params.get(key)
        if value is None or value == "":
            return None
        return str(value)

    return extract


SIGNATURE_EXTRACTORS: Dict[str, ContentExtractor] = {
    "Bash": _param("command"),
    "Read": _param("file_path"),
    "Write": _param("file_path"),
    "Edit": _param("file_path"),
    "Glob": _param("pattern"),
    "Grep": _param("pattern"),
}

FILE_ACTIONS = frozenset({"Read", "Write", "Edit"})


def signature_content(
    name: str, params: Mapping[str, Any], action: Optional["ActionDefinition"] = None
) -> Optional[str]:
    if action is not None:
        custom = action.extract_signature_content(params)
        if custom:
            return custom
    extractor = SIGNATURE_EXTRACTORS.get(name)
    if extractor is not None:
        return extractor(params)
    for key in PATH_PARAM_KEYS:
        content = _param(key)(params)
        if content:
            return content
    return None


def build_signature(name: str, params: Mapping[str, Any], action: Optional["ActionDefinition"] = None) -> str:
    """
    Build the permission signature for an action call.

    Args:
        name: Action name.
        params: Validated parameters.
        action: Resolved definition, consulted for custom derivation.

    Returns:
        ``Name(content)``, or ``Name`` when there is no salient parameter.
    """
    content = signature_content(name, params, action)
    return f"{name}({content})" if content else name


def parse_signature(signature: str) -> Tuple[str, Optional[str]]:
    """Split ``Name(content)`` into its parts; unparseable input is treated as a bare name."""
    m = _SIGNATURE_RE.match(signature)
    if not m:
        return signature, None
    return m.group(1), m.group(2)


def abstract_rule(name: str, params: Mapping[str, Any], action: Optional["ActionDefinition"] = None) -> str:
    """
    Suggest a broader rule covering calls similar to this one.

    File actions widen to their directory (``Write(/src/*)``), shell commands to
    their program (``Bash(git:*)``). Anything else falls back to the exact
    signature.
    """
    if action is not None:
        custom = action.abstract_permission_rule(params)
        if custom:
            return custom
    content = signature_content(name, params, action)
    if not content:
        return name
    if name in FILE_ACTIONS:
        directory = posixpath.dirname(content.replace("\\", "/")) or "."
        return f"{name}({directory}/*)"
    if name == "Bash":
        program = content.strip().split()[0] if content.strip() else content
        return f"{name}({program}:*)"
    return f"{name}({content})"
