from __future__ import annotations

"""High-level conversation service.

``AgentService`` provides an application-friendly API around ``AgentLoop``
without needing to manually thread conversation state between calls.

Workflow
--------

- ``start_session``: fires session-start hooks (which also resets the hook
  execution guard) and returns the session id.
- ``chat``: runs the control loop for one user message and keeps the
  resulting conversation history for the next call.
- ``cancel``: sets the cancellation signal of the running ``chat``.
- ``end_session``: fires session-end hooks and forgets the history.

``AgentService`` is intentionally thin: it delegates execution semantics to
the loop and the pipeline and does not contain policy logic itself.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field, replace
from typing import List, Optional
from uuid import uuid4

from .capabilities.base import ConfirmationHandler
from .hooks.manager import HookSession
from .runtime.engine import AgentLoop
from .runtime.models import ChatContext, LoopOptions, LoopResult, Message
from .schemas.domain import PermissionMode

logger = logging.getLogger(__name__)


@dataclass
class AgentSession:
    """Conversation state kept between ``chat`` calls."""

    session_id: str
    workspace_root: str
    confirm: Optional[ConfirmationHandler] = None
    system_prompt: Optional[str] = None
    history: List[Message] = field(default_factory=list)


class AgentService:
    """Run conversations for a single agent."""

    def __init__(self, loop: AgentLoop, *, permission_mode: PermissionMode = PermissionMode.default) -> None:
        self._loop = loop
        self._permission_mode = permission_mode
        self._session: Optional[AgentSession] = None
        self._cancel_event: Optional[asyncio.Event] = None

    @property
    def loop(self) -> AgentLoop:
        return self._loop

    @property
    def session(self) -> Optional[AgentSession]:
        return self._session

    @property
    def running(self) -> bool:
        return self._cancel_event is not None

    def _hook_session(self, session: AgentSession) -> HookSession:
        return HookSession(session.session_id, session.workspace_root, self._permission_mode)

    async def start_session(
        self,
        *,
        session_id: Optional[str] = None,
        workspace_root: Optional[str] = None,
        confirm: Optional[ConfirmationHandler] = None,
        system_prompt: Optional[str] = None,
        source: str = "startup",
    ) -> str:
        """Open a session and fire session-start hooks; returns the session id."""
        session = AgentSession(
            session_id=session_id or str(uuid4()),
            workspace_root=workspace_root or os.getcwd(),
            confirm=confirm,
            system_prompt=system_prompt,
        )
        self._session = session
        result = await self._loop.pipeline.hook_manager.run_session_start(self._hook_session(session), source)
        if result.additional_context:
            session.history.append(Message(role="user", content=result.additional_context))
        logger.info(f"Session {session.session_id} started in {session.workspace_root}")
        return session.session_id

    async def chat(self, message: str, options: Optional[LoopOptions] = None) -> LoopResult:
        """
        Send one user message through the control loop.

        A session is started implicitly when none is open. The permission mode
        of the service applies unless ``options`` sets its own.
        """
        if self._session is None:
            await self.start_session()
        session = self._session
        if self._cancel_event is not None:
            raise RuntimeError(f"Session {session.session_id} already has a chat in progress")

        # a fresh signal per call; the caller's options are left untouched
        self._cancel_event = asyncio.Event()
        if options is None:
            options = LoopOptions(permission_mode=self._permission_mode, cancel_event=self._cancel_event)
        else:
            options = replace(options, cancel_event=self._cancel_event)
        context = ChatContext(
            session_id=session.session_id,
            workspace_root=session.workspace_root,
            history=list(session.history),
            system_prompt=session.system_prompt,
            confirm=session.confirm,
        )
        try:
            result = await self._loop.chat(message, context, options)
        finally:
            self._cancel_event = None
        if result.messages:
            session.history = list(result.messages)
        return result

    def cancel(self) -> bool:
        """Signal the running ``chat`` to stop; False when nothing is running."""
        if self._cancel_event is None:
            return False
        self._cancel_event.set()
        return True

    async def end_session(self, reason: str = "exit") -> None:
        session = self._session
        if session is None:
            return
        await self._loop.pipeline.hook_manager.run_session_end(self._hook_session(session), reason)
        logger.info(f"Session {session.session_id} ended ({reason})")
        self._session = None
