from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from dotenv import load_dotenv

from codeloop_ai.agent_core.capabilities.base import ExecutionContext
from codeloop_ai.agent_core.schemas.domain import (
    ConfirmationDetails,
    ConfirmationResponse,
    ConfirmationScope,
    PermissionMode,
)

# Load dotenv files early so settings-based tests see local overrides
TEST_ROOT = Path(__file__).resolve().parent
load_dotenv(TEST_ROOT / ".env", override=False)
load_dotenv(TEST_ROOT / ".env.example", override=False)


class RecordingConfirm:
    """Confirmation callback double that records every request."""

    def __init__(self, approved: bool = True, scope: ConfirmationScope = ConfirmationScope.once) -> None:
        self.approved = approved
        self.scope = scope
        self.requests: List[ConfirmationDetails] = []

    async def __call__(self, details: ConfirmationDetails) -> ConfirmationResponse:
        self.requests.append(details)
        return ConfirmationResponse(
            approved=self.approved,
            reason=None if self.approved else "not today",
            scope=self.scope,
        )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    ws.mkdir()
    return ws


@pytest.fixture
def make_ctx(workspace: Path) -> Callable[..., ExecutionContext]:
    def _make(
        *,
        mode: PermissionMode = PermissionMode.default,
        confirm: Optional[RecordingConfirm] = None,
        cancel_event: Optional[asyncio.Event] = None,
        message_id: Optional[str] = None,
    ) -> ExecutionContext:
        return ExecutionContext(
            session_id="sess-1",
            workspace_root=str(workspace),
            permission_mode=mode,
            cancel_event=cancel_event,
            confirm=confirm,
            message_id=message_id,
        )

    return _make


@pytest.fixture
def confirm_factory() -> Callable[..., RecordingConfirm]:
    return RecordingConfirm
