"""Hook matching.

Decides which configured hook commands apply to an invocation, based on the
optional ``MatcherConfig`` of each matcher group.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any, List, Mapping, Optional

from .models import HookCommand, HookMatcherGroup, MatcherConfig

FILE_PATH_KEYS = ("file_path", "path", "filePath", "file", "target")
COMMAND_KEYS = ("command", "cmd", "script")
SHELL_ACTIONS = frozenset({"Bash", "Shell"})

_REGEX_MARKERS = ("\\", "^", "$")


@dataclass(frozen=True)
class MatchContext:
    tool_name: Optional[str] = None
    file_path: Optional[str] = None
    command: Optional[str] = None

    @classmethod
    def for_tool(cls, tool_name: str, tool_input: Mapping[str, Any]) -> "MatchContext":
        return cls(
            tool_name=tool_name,
            file_path=extract_file_path(tool_input),
            command=extract_command(tool_name, tool_input),
        )


def extract_file_path(tool_input: Mapping[str, Any]) -> Optional[str]:
    for key in FILE_PATH_KEYS:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def extract_command(tool_name: str, tool_input: Mapping[str, Any]) -> Optional[str]:
    if tool_name not in SHELL_ACTIONS:
        return None
    for key in COMMAND_KEYS:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def matches_pattern(value: str, pattern: str) -> bool:
    """
    Match ``value`` against a ``|``-separated pattern.

    Plain alternatives are compared exactly. Anything else is tried as an
    anchored regex; an invalid regex falls back to string equality.
    """
    if not any(marker in pattern for marker in _REGEX_MARKERS):
        if any(value == part.strip() for part in pattern.split("|")):
            return True
    try:
        return re.fullmatch(f"(?:{pattern})", value) is not None
    except re.error:
        return value == pattern


def _glob(path: str, pattern: str) -> bool:
    if "/" not in pattern:
        return fnmatchcase(posixpath.basename(path), pattern)
    if fnmatchcase(path, pattern):
        return True
    return pattern.startswith("**/") and fnmatchcase(path, pattern[3:])


def matches_glob(path: str, pattern: str) -> bool:
    normalized = path.replace("\\", "/")
    return any(_glob(normalized, p.strip()) for p in pattern.split("|") if p.strip())


class Matcher:
    """Evaluate matcher configs against a ``MatchContext``."""

    def matches(self, config: Optional[MatcherConfig], context: MatchContext) -> bool:
        if config is None:
            return True
        if config.tools and context.tool_name and not matches_pattern(context.tool_name, config.tools):
            return False
        if config.paths and context.file_path and not matches_glob(context.file_path, config.paths):
            return False
        if config.commands and context.command and not matches_pattern(context.command, config.commands):
            return False
        return True

    def matching_hooks(self, groups: List[HookMatcherGroup], context: MatchContext) -> List[HookCommand]:
        hooks: List[HookCommand] = []
        for group in groups:
            if self.matches(group.matcher, context):
                hooks.extend(group.hooks)
        return hooks
