"""
Sensitive Data Scanner for the Zipline sandbox.

Detects API keys, tokens, passwords and private keys in content that is about
to leave the machine, using the detect-secrets library and custom patterns.

Every detection carries a category (``secret_type``) and a pattern identifier
(``pattern_id``) so a refusal can tell the user exactly which rule fired.

Usage:
    from zipline_sandbox.security import get_scanner

    result = get_scanner().scan_bytes(data)
    if result.has_secrets:
        first = result.secrets[0]
        print(first.secret_type, first.pattern_id)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from detect_secrets.core.scan import scan_line
from detect_secrets.settings import transient_settings

logger = logging.getLogger(__name__)

# Global scanner instance (lazy-loaded)
_scanner_instance: Optional["SensitiveDataScanner"] = None


@dataclass
class DetectedSecret:
    """A secret found in scanned content."""

    secret_type: str
    pattern_id: str
    secret_value: str
    line_number: int
    start_index: int  # Index within the line
    end_index: int  # Index within the line

    @property
    def preview(self) -> str:
        """Masked form of the value, safe for logs."""
        return mask_secret(self.secret_value)


@dataclass
class ScanResult:
    """Result of scanning content for secrets."""

    secrets: list[DetectedSecret] = field(default_factory=list)
    secret_types: set[str] = field(default_factory=set)

    @property
    def has_secrets(self) -> bool:
        return len(self.secrets) > 0

    @property
    def secret_count(self) -> int:
        return len(self.secrets)


def mask_secret(value: str, visible: int = 4) -> str:
    """Keep a short prefix and replace the rest with asterisks (same length)."""
    if len(value) <= visible * 2:
        return "*" * len(value)
    return value[:visible] + "*" * (len(value) - visible)


class SensitiveDataScanner:
    """
    Detect sensitive information in text.

    Supports:
    - detect-secrets library plugins
    - Custom regex patterns
    - Allowlist for false positives
    """

    DEFAULT_CUSTOM_PATTERNS: dict[str, list[str]] = {
        "generic_api_key": [
            r'(?i)(?:api[_-]?key|apikey)["\s:=]+["\']?([a-zA-Z0-9_\-]{20,})["\']?',
            r'(?i)(?:access[_-]?token|accesstoken)["\s:=]+["\']?([a-zA-Z0-9_\-]{20,})["\']?',
            r'(?i)(?:auth[_-]?token|authtoken)["\s:=]+["\']?([a-zA-Z0-9_\-]{20,})["\']?',
            r'(?i)(?:secret[_-]?key|secretkey)["\s:=]+["\']?([a-zA-Z0-9_\-]{20,})["\']?',
        ],
        "bearer_token": [
            r"(?i)bearer\s+([a-zA-Z0-9_\-\.]{20,})",
        ],
        "password": [
            r'(?i)(?:password|passwd|pwd)["\s:=]+["\']?([^\s"\']{8,})["\']?',
        ],
        "connection_string": [
            r"(?i)(?:mongodb|postgres|mysql|redis|amqp):\/\/[^\s]+",
        ],
        "private_key": [
            r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----",
        ],
        "aws_access_key": [
            r"\b((?:AKIA|ASIA)[0-9A-Z]{16})\b",
        ],
        "anthropic_key": [
            r"sk-ant-[a-zA-Z0-9_-]{40,}",
        ],
        "openai_key": [
            r"sk-[a-zA-Z0-9]{32,}",
        ],
        "gcp_key": [
            r"AIza[0-9A-Za-z_-]{35}",
        ],
    }

    def __init__(
        self,
        custom_patterns: Optional[dict[str, list[str]]] = None,
        detect_secrets_plugins: Optional[list[str]] = None,
        entropy_base64_limit: float = 4.5,
        entropy_hex_limit: float = 3.0,
        false_positive_strings: Optional[list[str]] = None,
        false_positive_patterns: Optional[list[str]] = None,
        min_secret_length: int = 8,
    ):
        """
        Initialize the scanner.

        Args:
            custom_patterns: Dict of category -> list of regex patterns
            detect_secrets_plugins: detect-secrets plugin names to enable
            entropy_base64_limit: Threshold for Base64 high-entropy detection
            entropy_hex_limit: Threshold for hex high-entropy detection
            false_positive_strings: Known false positive strings to skip
            false_positive_patterns: Regex patterns for false positives to skip
            min_secret_length: Custom-pattern matches shorter than this are ignored
        """
        self.custom_patterns = custom_patterns or self.DEFAULT_CUSTOM_PATTERNS
        self.detect_secrets_plugins = detect_secrets_plugins or []
        self.entropy_base64_limit = entropy_base64_limit
        self.entropy_hex_limit = entropy_hex_limit
        self.false_positive_strings = set(false_positive_strings or [])
        self.false_positive_patterns = [
            re.compile(p) for p in (false_positive_patterns or [])
        ]
        self.min_secret_length = min_secret_length

        self._compiled_patterns: dict[str, list[re.Pattern]] = {
            name: [re.compile(p) for p in patterns]
            for name, patterns in self.custom_patterns.items()
        }

        # detect-secrets settings (lazy-loaded)
        self._detect_secrets_settings: Optional[dict] = None

    def _get_detect_secrets_settings(self) -> dict:
        if self._detect_secrets_settings is not None:
            return self._detect_secrets_settings

        plugins = []
        for plugin_name in self.detect_secrets_plugins:
            if plugin_name == "Base64HighEntropyString":
                plugins.append({"name": plugin_name, "limit": self.entropy_base64_limit})
            elif plugin_name == "HexHighEntropyString":
                plugins.append({"name": plugin_name, "limit": self.entropy_hex_limit})
            else:
                plugins.append({"name": plugin_name})

        self._detect_secrets_settings = {
            "plugins_used": plugins,
            "filters_used": [
                {"path": "detect_secrets.filters.allowlist.is_line_allowlisted"},
            ],
        }
        return self._detect_secrets_settings

    def _is_false_positive(self, secret_value: str) -> bool:
        if secret_value in self.false_positive_strings:
            return True
        return any(pattern.search(secret_value) for pattern in self.false_positive_patterns)

    def _detect_with_detect_secrets(self, lines: list[str]) -> list[DetectedSecret]:
        if not self.detect_secrets_plugins:
            return []

        detected: list[DetectedSecret] = []
        with transient_settings(self._get_detect_secrets_settings()):
            for line_num, line in enumerate(lines, 1):
                for secret in scan_line(line):
                    if not secret.secret_value or self._is_false_positive(secret.secret_value):
                        continue
                    start_idx = line.find(secret.secret_value)
                    if start_idx == -1:
                        continue
                    detected.append(
                        DetectedSecret(
                            secret_type=secret.type,
                            pattern_id=f"detect_secrets:{secret.type}",
                            secret_value=secret.secret_value,
                            line_number=line_num,
                            start_index=start_idx,
                            end_index=start_idx + len(secret.secret_value),
                        )
                    )
        return detected

    def _detect_with_custom_patterns(self, lines: list[str]) -> list[DetectedSecret]:
        detected: list[DetectedSecret] = []

        for secret_type, patterns in self._compiled_patterns.items():
            for index, pattern in enumerate(patterns):
                for line_num, line in enumerate(lines, 1):
                    for match in pattern.finditer(line):
                        # Prefer the captured group when the pattern has one
                        group = 1 if match.groups() else 0
                        secret_value = match.group(group)

                        if self._is_false_positive(secret_value):
                            continue
                        if len(secret_value) < self.min_secret_length:
                            continue

                        detected.append(
                            DetectedSecret(
                                secret_type=secret_type,
                                pattern_id=f"{secret_type}#{index}",
                                secret_value=secret_value,
                                line_number=line_num,
                                start_index=match.start(group),
                                end_index=match.end(group),
                            )
                        )

        return detected

    @staticmethod
    def _deduplicate(secrets: list[DetectedSecret]) -> list[DetectedSecret]:
        """Remove duplicate detections (same value on same line)."""
        seen: set[tuple[str, int]] = set()
        unique: list[DetectedSecret] = []
        for secret in secrets:
            key = (secret.secret_value, secret.line_number)
            if key not in seen:
                seen.add(key)
                unique.append(secret)
        return unique

    def scan(self, text: str) -> ScanResult:
        """
        Scan text for secrets.

        Detections are ordered by line, then by position in the line.
        """
        if not text:
            return ScanResult()

        lines = text.split("\n")
        found = self._detect_with_detect_secrets(lines)
        found.extend(self._detect_with_custom_patterns(lines))
        found = self._deduplicate(found)
        found.sort(key=lambda s: (s.line_number, s.start_index))

        return ScanResult(secrets=found, secret_types={s.secret_type for s in found})

    def scan_bytes(self, data: bytes | bytearray | memoryview) -> ScanResult:
        """Scan raw bytes; undecodable sequences are replaced, not skipped."""
        return self.scan(bytes(data).decode("utf-8", errors="replace"))

    def scan_file(self, filepath: Path | str) -> ScanResult:
        """
        Scan a whole file.

        Raises:
            OSError: If the file cannot be read
        """
        content = Path(filepath).read_text(encoding="utf-8", errors="replace")
        return self.scan(content)


def get_scanner() -> SensitiveDataScanner:
    """
    Get the global scanner instance (lazy-loaded with config).

    Returns:
        Configured SensitiveDataScanner instance
    """
    global _scanner_instance

    if _scanner_instance is None:
        from .scanner_config import get_scanner_config

        config = get_scanner_config()
        _scanner_instance = SensitiveDataScanner(
            custom_patterns=config.detection.custom_patterns or None,
            detect_secrets_plugins=config.detection.detect_secrets_plugins,
            entropy_base64_limit=config.detection.entropy.base64_limit,
            entropy_hex_limit=config.detection.entropy.hex_limit,
            false_positive_strings=config.allowlist.false_positive_strings,
            false_positive_patterns=config.allowlist.false_positive_patterns,
        )

    return _scanner_instance


def reset_scanner() -> None:
    """Reset the global scanner instance (for testing or config reload)."""
    global _scanner_instance
    _scanner_instance = None
