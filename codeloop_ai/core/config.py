"""
Configuration Settings.

This module defines the agent configuration using Pydantic's BaseSettings.
All values are loaded from environment variables and the ``.env`` file; hook
definitions may additionally come from a JSON file referenced by
``CODELOOP_AI_HOOKS_FILE``.
"""

import json
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from codeloop_ai.agent_core.hooks.models import HookBehavior, HookConfig
from codeloop_ai.agent_core.policy.models import PermissionConfig
from codeloop_ai.agent_core.schemas.domain import PermissionMode

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", alias="CODELOOP_AI_LOG_LEVEL", description="Root console log level")
    format: str = Field(
        default="detailed", alias="CODELOOP_AI_LOG_FORMAT", description="Log format (simple, detailed, json)"
    )
    file_dir: str = Field(default="logs", alias="CODELOOP_AI_LOG_FILE_DIR", description="Directory for log files")
    enable_file_logging: bool = Field(
        default=False, alias="CODELOOP_AI_ENABLE_FILE_LOGGING", description="Write DEBUG logs to a file as well"
    )

    model_config = {"populate_by_name": True}


class LoopConfig(BaseModel):
    """Control loop configuration."""

    max_turns: int = Field(
        default=-1,
        alias="CODELOOP_AI_MAX_TURNS",
        description="Maximum turns per chat (-1 uses the hard ceiling, 0 disables chat)",
    )
    permission_mode: PermissionMode = Field(
        default=PermissionMode.default,
        alias="CODELOOP_AI_PERMISSION_MODE",
        description="Permission mode applied to every action of the run",
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Agent settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # =====================================================================
    # Logging
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="CODELOOP_AI_LOG_LEVEL",
    )
    log_format: str = Field(default="detailed", alias="CODELOOP_AI_LOG_FORMAT")
    log_file_dir: str = Field(default="logs", alias="CODELOOP_AI_LOG_FILE_DIR")
    enable_file_logging: bool = Field(default=False, alias="CODELOOP_AI_ENABLE_FILE_LOGGING")

    # =====================================================================
    # Control Loop
    # =====================================================================
    max_turns: int = Field(default=-1, alias="CODELOOP_AI_MAX_TURNS")
    permission_mode: PermissionMode = Field(default=PermissionMode.default, alias="CODELOOP_AI_PERMISSION_MODE")
    history_limit: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of pipeline executions kept in the diagnostic history",
        alias="CODELOOP_AI_HISTORY_LIMIT",
    )

    # =====================================================================
    # Permissions
    # =====================================================================
    permissions_allow: List[str] = Field(default_factory=list, alias="CODELOOP_AI_PERMISSIONS_ALLOW")
    permissions_deny: List[str] = Field(default_factory=list, alias="CODELOOP_AI_PERMISSIONS_DENY")
    permissions_ask: List[str] = Field(default_factory=list, alias="CODELOOP_AI_PERMISSIONS_ASK")

    # =====================================================================
    # Hooks
    # =====================================================================
    hooks_enabled: bool = Field(default=True, alias="CODELOOP_AI_HOOKS_ENABLED")
    hook_timeout: float = Field(default=60, gt=0, alias="CODELOOP_AI_HOOK_TIMEOUT")
    hook_max_concurrency: int = Field(default=5, ge=1, alias="CODELOOP_AI_HOOK_MAX_CONCURRENCY")
    hook_timeout_behavior: HookBehavior = Field(default=HookBehavior.ignore, alias="CODELOOP_AI_HOOK_TIMEOUT_BEHAVIOR")
    hook_failure_behavior: HookBehavior = Field(default=HookBehavior.ignore, alias="CODELOOP_AI_HOOK_FAILURE_BEHAVIOR")
    hooks_file: Optional[str] = Field(
        default=None,
        description="Path to a JSON file with per-event hook matcher groups",
        alias="CODELOOP_AI_HOOKS_FILE",
    )

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def logging(self) -> LoggingConfig:
        """Get logging configuration from environment variables."""
        return LoggingConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def loop(self) -> LoopConfig:
        """Get control loop configuration from environment variables."""
        return LoopConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def permission_config(self) -> PermissionConfig:
        """Get the user permission rules (defaults are merged by the checker)."""
        return PermissionConfig(
            allow=list(self.permissions_allow),
            deny=list(self.permissions_deny),
            ask=list(self.permissions_ask),
        )

    @property
    def hook_config(self) -> HookConfig:
        """
        Build the hook configuration.

        Scalar options come from the environment; per-event matcher groups are
        read from ``hooks_file`` when it is set. Options present in the file
        win over the environment.
        """
        data = {
            "enabled": self.hooks_enabled,
            "defaultTimeout": self.hook_timeout,
            "timeoutBehavior": self.hook_timeout_behavior,
            "failureBehavior": self.hook_failure_behavior,
            "maxConcurrentHooks": self.hook_max_concurrency,
        }
        if self.hooks_file:
            data.update(json.loads(Path(self.hooks_file).read_text(encoding="utf-8")))
        return HookConfig.model_validate(data)


settings = Settings()
