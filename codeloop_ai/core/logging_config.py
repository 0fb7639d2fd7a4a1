"""
Central logging setup for codeloop_ai.

The root logger gets one console handler (and optionally a DEBUG file handler);
per-module levels from ``MODULE_LOG_LEVELS`` keep the pipeline and control loop
verbose while quieting asyncio and langgraph.

Defaults come from ``Settings.logging``; when the settings cannot be built the
``CODELOOP_AI_LOG_*`` environment variables are read directly.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Union


def _load_defaults() -> Dict[str, Union[str, bool]]:
    # lazy: codeloop_ai.core imports this module before config
    try:
        from codeloop_ai.core.config import settings

        cfg = settings.logging
        return {
            "level": cfg.level.upper(),
            "format": cfg.format,
            "file_dir": cfg.file_dir,
            "file_logging": cfg.enable_file_logging,
        }
    except Exception:
        return {
            "level": os.getenv("CODELOOP_AI_LOG_LEVEL", "INFO").upper(),
            "format": os.getenv("CODELOOP_AI_LOG_FORMAT", "detailed"),
            "file_dir": os.getenv("CODELOOP_AI_LOG_FILE_DIR", "logs"),
            "file_logging": os.getenv("CODELOOP_AI_ENABLE_FILE_LOGGING", "false").lower() in ("true", "1", "yes"),
        }


_defaults = _load_defaults()
LOG_LEVEL = _defaults["level"]
LOG_FORMAT = _defaults["format"]
LOG_FILE_DIR = _defaults["file_dir"]
ENABLE_FILE_LOGGING = _defaults["file_logging"]
LOG_FILE_NAME = "codeloop_ai.log"


SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"module": "%(filename)s", "function": "%(funcName)s", "line": %(lineno)d, '
    '"message": "%(message)s"}'
)

_FORMATS = {"simple": SIMPLE_FORMAT, "detailed": DETAILED_FORMAT, "json": JSON_FORMAT}


MODULE_LOG_LEVELS = {
    "codeloop_ai.agent_core": "DEBUG",
    "codeloop_ai.agent_core.runtime": "DEBUG",
    "codeloop_ai.agent_core.pipeline": "DEBUG",
    "codeloop_ai.agent_core.policy": "DEBUG",
    "codeloop_ai.agent_core.hooks": "INFO",
    "codeloop_ai.agent_core.capabilities": "INFO",
    "codeloop_ai.core": "INFO",
    # third-party
    "asyncio": "WARNING",
    "langgraph": "WARNING",
}


def _build_handlers(level: str, formatter: logging.Formatter, file_logging: bool) -> List[logging.Handler]:
    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    handlers: List[logging.Handler] = [console]

    if file_logging:
        log_dir = Path(LOG_FILE_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        to_file = logging.FileHandler(log_dir / LOG_FILE_NAME)
        to_file.setLevel(logging.DEBUG)
        to_file.setFormatter(formatter)
        handlers.append(to_file)
    return handlers


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: bool = True,
) -> None:
    """
    (Re)configure the root logger.

    Existing root handlers are replaced, so calling this twice does not
    duplicate output.

    Args:
        log_level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL); defaults to settings.
        log_format: ``simple``, ``detailed`` or ``json``; unknown names fall back to ``detailed``.
        enable_file: Allow the file handler; it is only added when file logging is enabled in settings too.
    """
    level = (log_level or LOG_LEVEL).upper()
    fmt = log_format or LOG_FORMAT
    file_logging = enable_file and ENABLE_FILE_LOGGING
    formatter = logging.Formatter(_FORMATS.get(fmt, DETAILED_FORMAT), datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for old in list(root.handlers):
        root.removeHandler(old)
    for handler in _build_handlers(level, formatter, file_logging):
        root.addHandler(handler)

    for name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(name).setLevel(module_level)

    root.info(f"Logging configured: level={level}, format={fmt}, file_logging={file_logging}")


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name`` (normally the caller's ``__name__``)."""
    return logging.getLogger(name)


setup_logging()
