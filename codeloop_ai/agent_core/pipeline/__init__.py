"""Seven-stage execution pipeline for action calls."""

from .models import ExecutionRecord, HistoryEntry, PipelineObserver, SessionApprovals
from .pipeline import DEFAULT_HISTORY_LIMIT, ExecutionPipeline

__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "ExecutionPipeline",
    "ExecutionRecord",
    "HistoryEntry",
    "PipelineObserver",
    "SessionApprovals",
]
