"""
Centralized configuration for the installation engine.

Uses Pydantic BaseSettings for environment variable integration
and validation.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (INSTALLWIZARD_*)
3. .env file
4. Default values

Example:
    from installwizard.config import get_config

    config = get_config()
    print(config.script_timeout_seconds)  # From INSTALLWIZARD_SCRIPT_TIMEOUT_SECONDS or 300

    # Override at runtime
    config = get_config(max_retries=5)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default user-facing messages for the simulated progress sequence
DEFAULT_PROGRESS_MESSAGES: Dict[str, str] = {
    "download": "Downloading the Node.js installer...",
    "verify": "Verifying the installer package...",
    "install": "Installing Node.js...",
    "configure_env": "Configuring environment variables...",
    "finalize": "Finishing installation...",
    "success": "Node.js installed successfully!",
}

_REPO_SCRIPTS_DIR = Path(__file__).resolve().parents[2] / "scripts"


class InstallWizardConfig(BaseSettings):
    """
    Central configuration for the installer.

    All settings can be overridden via environment variables
    prefixed with INSTALLWIZARD_.

    Example:
        export INSTALLWIZARD_MAX_RETRIES=5
        export INSTALLWIZARD_PACKAGED=true
    """

    model_config = SettingsConfigDict(
        env_prefix="INSTALLWIZARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Identification shown in the OS privilege dialog
    app_name: str = Field(
        default="Install Assistant",
        description="Application name used in logs and privilege prompts",
    )
    elevation_prompt: str = Field(
        default="Install Assistant needs administrator privileges to install Node.js. Please enter your password:",
        description="Prompt text for the native privilege-elevation dialog",
    )

    # Step state machine
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum retries per step",
    )

    # Script execution
    script_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Hard timeout for one installer script invocation",
    )
    max_output_bytes: int = Field(
        default=1024 * 1024,
        ge=1024 * 1024,
        description="Upper bound on captured stdout/stderr per stream",
    )
    scripts_dir: str = Field(
        default=str(_REPO_SCRIPTS_DIR),
        description="Directory holding installer scripts in development",
    )
    resources_dir: Optional[str] = Field(
        default=None,
        description="Resources directory of a packaged build (scripts/ lives below it)",
    )
    packaged: bool = Field(
        default=False,
        description="Resolve scripts from resources_dir instead of scripts_dir",
    )

    # Progress protocol
    real_event_delay_seconds: float = Field(
        default=0.3,
        ge=0,
        description="Pause between replayed protocol events",
    )
    simulated_event_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Pause between simulated progress events",
    )
    progress_messages: Dict[str, str] = Field(
        default_factory=dict,
        description="Overrides for simulated progress messages",
    )

    # Notification channel
    channel_maxsize: int = Field(
        default=256,
        ge=1,
        description="Bound of the per-session notification queue",
    )

    # State persistence
    state_dir: str = Field(
        default="~/.installwizard",
        description="Directory for the persisted session state",
    )
    steps_file: Optional[str] = Field(
        default=None,
        description="Optional YAML file overriding the default step catalog",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="warning",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log output format",
    )

    # Tracing
    otlp_endpoint: Optional[str] = Field(
        default=None,
        description="OTLP gRPC endpoint for step spans (disabled if unset)",
    )

    @field_validator("state_dir", "scripts_dir", "resources_dir", "steps_file")
    @classmethod
    def expand_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand ~ and environment variables in paths."""
        if v is None:
            return v
        return os.path.expanduser(os.path.expandvars(v))

    def get_state_path(self) -> Path:
        """Path of the persisted session state file."""
        return Path(self.state_dir) / "install-session.json"


# Global singleton
_config: Optional[InstallWizardConfig] = None


def get_config(**overrides) -> InstallWizardConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.
    """
    global _config

    if overrides or _config is None:
        _config = InstallWizardConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
