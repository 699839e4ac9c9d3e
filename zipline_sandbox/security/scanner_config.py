"""
Settings for the sensitive data scanner.

The YAML file mirrors the models below section by section. A missing,
unparsable or invalid file leaves the scanner on its defaults; it is never
a reason to stop staging.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

BUNDLED_CONFIG_PATH = (
    Path(__file__).resolve().parents[2] / "config" / "security" / "sensitive-data-scanner.yaml"
)


class EntropyLimits(BaseModel):
    base64_limit: float = 4.5
    hex_limit: float = 3.0


class DetectionSettings(BaseModel):
    detect_secrets_plugins: list[str] = Field(default_factory=list)
    entropy: EntropyLimits = Field(default_factory=EntropyLimits)
    # category -> regexes; empty means the scanner's built-in patterns
    custom_patterns: dict[str, list[str]] = Field(default_factory=dict)


class Allowlist(BaseModel):
    false_positive_strings: list[str] = Field(default_factory=list)
    false_positive_patterns: list[str] = Field(default_factory=list)


class ScannerConfig(BaseModel):
    """Scanner settings as read from YAML."""

    enabled: bool = True
    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    allowlist: Allowlist = Field(default_factory=Allowlist)
    type_labels: dict[str, str] = Field(
        default_factory=dict, description="Category name shown in rejection messages"
    )

    def label_for(self, category: str) -> str:
        return self.type_labels.get(category) or category.replace("_", " ").title()


def load_scanner_config(config_path: Optional[Path | str] = None) -> ScannerConfig:
    path = Path(config_path) if config_path else BUNDLED_CONFIG_PATH
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return ScannerConfig.model_validate(raw)
    except FileNotFoundError:
        logger.warning(f"SCANNER_CONFIG: {path} not found, using defaults")
    except (OSError, yaml.YAMLError, ValidationError) as e:
        logger.error(f"SCANNER_CONFIG: Ignoring {path}: {e}")
    return ScannerConfig()


_config_path: Optional[Path] = None
_config: Optional[ScannerConfig] = None


def configure_scanner_config_path(config_path: Optional[Path | str]) -> None:
    """Use another YAML file from now on; None goes back to the bundled one."""
    global _config_path
    _config_path = Path(config_path) if config_path else None
    reset_scanner_config()


def get_scanner_config() -> ScannerConfig:
    global _config
    if _config is None:
        _config = load_scanner_config(_config_path)
    return _config


def reset_scanner_config() -> None:
    global _config
    _config = None


def is_scanner_enabled() -> bool:
    return get_scanner_config().enabled


def get_type_label(category: str) -> str:
    """Human-readable name of a secret category, e.g. ``API Key``."""
    return get_scanner_config().label_for(category)
