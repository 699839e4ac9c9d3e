"""
Sandbox settings.

SandboxSettings is the single configuration value threaded into every
component. Components never read the process environment themselves; the
loader below is the only place that does.

Sources, lowest to highest precedence:
    1. Field defaults
    2. ``sandbox:`` section of an optional YAML file
    3. Environment: ZIPLINE_TOKEN, ZIPLINE_DISABLE_SANDBOXING, ZIPLINE_TMP_DIR
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_DIR = Path.home() / ".zipline_tmp"

TOKEN_ENV = "ZIPLINE_TOKEN"
DISABLE_SANDBOXING_ENV = "ZIPLINE_DISABLE_SANDBOXING"
TMP_DIR_ENV = "ZIPLINE_TMP_DIR"


class SandboxSettings(BaseModel):
    """Configuration shared by identity, lock, downloader, stager and reaper."""

    token: str = Field(default="", description="Zipline token; drives sandbox identity")
    disable_sandboxing: bool = Field(
        default=False,
        description="Collapse all identities onto the shared base directory",
    )
    base_dir: Path = Field(
        default=DEFAULT_BASE_DIR, description="Root of all sandbox directories"
    )
    download_timeout_ms: int = Field(
        default=30_000, gt=0, description="Default wall-clock timeout for downloads"
    )
    cleanup_interval_seconds: float = Field(
        default=3600, gt=0, description="Period of the background sandbox sweep"
    )
    scanner_config_path: Optional[Path] = Field(
        default=None, description="Override for the sensitive data scanner YAML"
    )

    @field_validator("base_dir", mode="before")
    @classmethod
    def expand_base_dir(cls, value: Any) -> Path:
        if value is None or value == "":
            return DEFAULT_BASE_DIR
        return Path(os.path.expanduser(str(value)))

    def require_token(self) -> str:
        """
        Return the token or fail.

        Raises:
            ConfigurationError: If no token is configured
        """
        if not self.token:
            raise ConfigurationError(
                f"Environment variable {TOKEN_ENV} is required.", setting=TOKEN_ENV
            )
        return self.token


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def load_sandbox_settings(
    config_path: Optional[Path | str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SandboxSettings:
    """
    Build SandboxSettings from an optional YAML file and the environment.

    Args:
        config_path: YAML file with a ``sandbox:`` section (optional)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        SandboxSettings instance
    """
    env = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            logger.warning(f"Sandbox config not found at {path}. Using defaults.")
        else:
            try:
                with open(path, "r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(
                    f"Failed to load sandbox config from {path}: {e}"
                ) from e
            section = loaded.get("sandbox", {}) if isinstance(loaded, dict) else {}
            if not isinstance(section, dict):
                raise ConfigurationError(
                    f"'sandbox' section in {path} must be a mapping", setting="sandbox"
                )
            data.update(section)

    if env.get(TOKEN_ENV):
        data["token"] = env[TOKEN_ENV]
    if env.get(DISABLE_SANDBOXING_ENV):
        data["disable_sandboxing"] = _parse_bool(env[DISABLE_SANDBOXING_ENV])
    if env.get(TMP_DIR_ENV):
        data["base_dir"] = env[TMP_DIR_ENV]

    settings = SandboxSettings(**data)
    if settings.disable_sandboxing:
        logger.warning(
            f"{DISABLE_SANDBOXING_ENV}=true: all identities share {settings.base_dir}. "
            "Per-user isolation is off."
        )
    return settings
