"""Runtime control loop.

``AgentLoop`` runs a LangGraph state machine that alternates reasoning-backend
calls with action execution through the ``ExecutionPipeline``.
"""

from .engine import TURN_LIMIT, AgentLoop, detect_incomplete_intent, effective_turn_limit
from .models import (
    BackendResponse,
    ChatContext,
    LoopError,
    LoopErrorType,
    LoopOptions,
    LoopResult,
    Message,
    ReasoningBackend,
    TokenUsage,
    ToolCall,
    TurnLimitResponse,
)

__all__ = [
    "AgentLoop",
    "BackendResponse",
    "ChatContext",
    "LoopError",
    "LoopErrorType",
    "LoopOptions",
    "LoopResult",
    "Message",
    "ReasoningBackend",
    "TURN_LIMIT",
    "TokenUsage",
    "ToolCall",
    "TurnLimitResponse",
    "detect_incomplete_intent",
    "effective_turn_limit",
]
