"""Builtin file and search actions.

Each action is a ``BaseAction`` subclass with a pydantic input model. The
models double as the JSON schema advertised to the reasoning backend.
"""

from __future__ import annotations

import fnmatch
import os
import re
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from codeloop_ai.core.logging_config import get_logger

from ..errors import ParameterValidationError
from ..schemas.domain import ToolErrorType, ToolKind, ToolResult
from .base import ActionDescription, BaseAction, ExecutionContext

logger = get_logger(__name__)

_SKIP_DIRS = frozenset({".git", "node_modules", "__pycache__", ".venv", ".mypy_cache"})
_MAX_GLOB_RESULTS = 100
_MAX_GREP_MATCHES = 200


def _resolve(path: str, ctx: Optional[ExecutionContext]) -> Path:
    return Path(ctx.resolve_path(path) if ctx is not None else path)


class ReadInput(BaseModel):
    file_path: str = Field(..., min_length=1, description="Path to the file to read")
    offset: Optional[int] = Field(default=None, ge=1, description="1-based line number to start reading from")
    limit: int = Field(default=2000, ge=1, description="Maximum number of lines to read")


class WriteInput(BaseModel):
    file_path: str = Field(..., min_length=1, description="Path to the file to write")
    contents: str = Field(..., description="Full content to write to the file")


class EditInput(BaseModel):
    file_path: str = Field(..., min_length=1, description="Path to the file to modify")
    old_string: str = Field(..., min_length=1, description="Exact text to replace")
    new_string: str = Field(..., description="Replacement text")
    replace_all: bool = Field(default=False, description="Replace every occurrence instead of exactly one")


class GlobInput(BaseModel):
    pattern: str = Field(..., min_length=1, description="Glob pattern, e.g. '**/*.py'")
    path: Optional[str] = Field(default=None, description="Directory to search in (defaults to the workspace)")


class GrepInput(BaseModel):
    pattern: str = Field(..., min_length=1, description="Regular expression to search for")
    path: Optional[str] = Field(default=None, description="File or directory to search in")
    include: Optional[str] = Field(default=None, description="Only search files whose name matches this glob")
    case_sensitive: bool = Field(default=False, description="Match case exactly")


class ReadAction(BaseAction[ReadInput]):
    name = "Read"
    display_name = "Read File"
    kind = ToolKind.read_only
    input_model = ReadInput
    tags = ("file", "read")
    description = ActionDescription(
        short="Read a file from the local filesystem.",
        usage_notes=(
            "Lines are returned with 1-based line numbers.",
            "Use offset and limit to page through large files.",
        ),
    )

    async def run(self, params: ReadInput, ctx: ExecutionContext) -> ToolResult:
        path = _resolve(params.file_path, ctx)
        if not path.exists():
            return ToolResult.fail(ToolErrorType.execution_error, f"File not found: {path}")
        if not path.is_file():
            return ToolResult.fail(ToolErrorType.execution_error, f"Path is not a file: {path}")

        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        start = (params.offset or 1) - 1
        selected = lines[start : start + params.limit]
        body = "\n".join(f"{start + i + 1:6}\t{line}" for i, line in enumerate(selected))
        remaining = len(lines) - (start + len(selected))
        if remaining > 0:
            body += f"\n... ({remaining} more lines)"
        logger.debug(f"Read {len(selected)} lines from {path}")
        return ToolResult.ok(body, f"Read {len(selected)} lines from {path}", lines=len(selected))


class WriteAction(BaseAction[WriteInput]):
    name = "Write"
    display_name = "Write File"
    kind = ToolKind.write
    input_model = WriteInput
    tags = ("file", "write")
    description = ActionDescription(
        short="Write a file to the local filesystem, replacing any existing content.",
        important=("Parent directories are created when missing.",),
    )

    async def run(self, params: WriteInput, ctx: ExecutionContext) -> ToolResult:
        path = _resolve(params.file_path, ctx)
        if path.is_dir():
            return ToolResult.fail(ToolErrorType.execution_error, f"Path is a directory: {path}")
        path.parent.mkdir(parents=True, exist_ok=True)
        written = path.write_text(params.contents, encoding="utf-8")
        logger.info(f"Wrote {written} characters to {path}")
        return ToolResult.ok(
            f"Successfully wrote {written} characters to {path}", f"Wrote {path}", bytes_written=written
        )


class EditAction(BaseAction[EditInput]):
    name = "Edit"
    display_name = "Edit File"
    kind = ToolKind.write
    input_model = EditInput
    tags = ("file", "write")
    description = ActionDescription(
        short="Replace an exact string in a file.",
        usage_notes=(
            "old_string must match the file content exactly, including whitespace.",
            "Set replace_all to true to replace every occurrence.",
        ),
        important=("The edit fails if old_string occurs more than once and replace_all is false.",),
    )

    def check(self, params: EditInput, ctx: Optional[ExecutionContext]) -> None:
        if params.old_string == params.new_string:
            raise ParameterValidationError("old_string and new_string are identical; nothing to change")
        path = _resolve(params.file_path, ctx)
        if path.is_dir():
            raise ParameterValidationError(f"Path is a directory: {path}")
        if not path.exists():
            raise ParameterValidationError(f"File not found: {path}")
        try:
            count = path.read_text(encoding="utf-8").count(params.old_string)
        except (UnicodeDecodeError, OSError) as e:
            raise ParameterValidationError(f"Cannot read {path}: {e}") from e
        if count == 0:
            raise ParameterValidationError(f"old_string not found in {path}")
        if count > 1 and not params.replace_all:
            raise ParameterValidationError(
                f"Multiple matches ({count}) found in {path}; set replace_all or provide more context"
            )

    async def run(self, params: EditInput, ctx: ExecutionContext) -> ToolResult:
        path = _resolve(params.file_path, ctx)
        content = path.read_text(encoding="utf-8")
        count = content.count(params.old_string)
        if count == 0:
            return ToolResult.fail(ToolErrorType.execution_error, f"old_string not found in {path}")
        if params.replace_all:
            updated = content.replace(params.old_string, params.new_string)
        else:
            updated = content.replace(params.old_string, params.new_string, 1)
            count = 1
        path.write_text(updated, encoding="utf-8")
        logger.info(f"Edited {path}: {count} replacement(s)")
        return ToolResult.ok(
            f"Successfully replaced {count} occurrence(s) in {path}", f"Edited {path}", replacements=count
        )


class GlobAction(BaseAction[GlobInput]):
    name = "Glob"
    display_name = "Find Files"
    kind = ToolKind.read_only
    input_model = GlobInput
    tags = ("search",)
    description = ActionDescription(short="Find files by glob pattern, newest first.")

    async def run(self, params: GlobInput, ctx: ExecutionContext) -> ToolResult:
        base = _resolve(params.path or ".", ctx)
        if not base.is_dir():
            return ToolResult.fail(ToolErrorType.execution_error, f"Directory not found: {base}")
        matches = [p for p in base.glob(params.pattern) if p.is_file()]
        matches.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        shown = [str(p) for p in matches[:_MAX_GLOB_RESULTS]]
        if not shown:
            return ToolResult.ok("No files found", f"No files match {params.pattern}", count=0)
        body = "\n".join(shown)
        if len(matches) > len(shown):
            body += f"\n... ({len(matches) - len(shown)} more files)"
        return ToolResult.ok(body, f"Found {len(matches)} files", count=len(matches))


class GrepAction(BaseAction[GrepInput]):
    name = "Grep"
    display_name = "Search Content"
    kind = ToolKind.read_only
    input_model = GrepInput
    tags = ("search",)
    description = ActionDescription(
        short="Search file contents with a regular expression.",
        usage_notes=("Results are formatted as path:line:text.",),
    )

    def check(self, params: GrepInput, ctx: Optional[ExecutionContext]) -> None:
        try:
            re.compile(params.pattern)
        except re.error as e:
            raise ParameterValidationError(f"Invalid regular expression: {e}") from e

    def _files(self, root: Path, include: Optional[str]) -> List[Path]:
        if root.is_file():
            return [root]
        out: List[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if d not in _SKIP_DIRS]
            for fname in filenames:
                if include is None or fnmatch.fnmatch(fname, include):
                    out.append(Path(dirpath) / fname)
        return sorted(out)

    async def run(self, params: GrepInput, ctx: ExecutionContext) -> ToolResult:
        root = _resolve(params.path or ".", ctx)
        if not root.exists():
            return ToolResult.fail(ToolErrorType.execution_error, f"Path not found: {root}")
        regex = re.compile(params.pattern, 0 if params.case_sensitive else re.IGNORECASE)
        hits: List[str] = []
        truncated = False
        for file in self._files(root, params.include):
            try:
                text = file.read_text(encoding="utf-8")
            except (UnicodeDecodeError, OSError):
                continue
            for lineno, line in enumerate(text.splitlines(), start=1):
                if regex.search(line):
                    hits.append(f"{file}:{lineno}:{line}")
                    if len(hits) >= _MAX_GREP_MATCHES:
                        truncated = True
                        break
            if truncated:
                break
        if not hits:
            return ToolResult.ok("No matches found", f"No matches for {params.pattern}", count=0)
        body = "\n".join(hits)
        if truncated:
            body += f"\n... (stopped after {_MAX_GREP_MATCHES} matches)"
        return ToolResult.ok(body, f"Found {len(hits)} matches", count=len(hits))


def builtin_file_actions() -> List[BaseAction[Any]]:
    return [ReadAction(), WriteAction(), EditAction(), GlobAction(), GrepAction()]
