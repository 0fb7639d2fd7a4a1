"""
Core infrastructure shared by the whole package.

This package provides logging setup and the settings model.
"""

from codeloop_ai.core.logging_config import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
