"""
Content inspection contract consumed by the Stager and the DownloadIngestor.

An inspector answers one question for a buffer or a file: may this content
leave the machine? The result carries the category and pattern of the first
match so the refusal can be explained, and an optional ``force_disk`` hint
that tells the Stager to keep the content on disk instead of in memory.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from ..core.exceptions import SecretDetectedError
from .scanner_config import get_type_label
from .sensitive_data_scanner import ScanResult, SensitiveDataScanner, get_scanner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InspectionResult:
    """Pass/fail outcome of a content inspection."""

    passed: bool
    category: Optional[str] = None
    pattern: Optional[str] = None
    force_disk: bool = False

    @classmethod
    def clear(cls, force_disk: bool = False) -> "InspectionResult":
        return cls(passed=True, force_disk=force_disk)

    def raise_for_match(self, subject: str) -> None:
        """
        Raise SecretDetectedError if the inspection failed.

        Args:
            subject: What was inspected (a filename), used in the message
        """
        if self.passed:
            return
        category = self.category or "unknown"
        raise SecretDetectedError(
            f"File rejected: Secret found: {get_type_label(category)} in {subject}",
            category=category,
            pattern=self.pattern or "unknown",
        )


class ContentInspector(Protocol):
    """Anything that can inspect a buffer or a file on disk."""

    def inspect_bytes(self, data: bytes | bytearray) -> InspectionResult:
        ...

    def inspect_file(self, path: Path) -> InspectionResult:
        ...


class SecretScanInspector:
    """ContentInspector backed by the SensitiveDataScanner."""

    def __init__(self, scanner: Optional[SensitiveDataScanner] = None, enabled: bool = True):
        self._scanner = scanner
        self.enabled = enabled

    @property
    def scanner(self) -> SensitiveDataScanner:
        if self._scanner is None:
            self._scanner = get_scanner()
        return self._scanner

    def inspect_bytes(self, data: bytes | bytearray) -> InspectionResult:
        if not self.enabled:
            return InspectionResult.clear()
        return self._to_result(self.scanner.scan_bytes(data))

    def inspect_file(self, path: Path) -> InspectionResult:
        if not self.enabled:
            return InspectionResult.clear()
        return self._to_result(self.scanner.scan_file(path))

    @staticmethod
    def _to_result(scan: ScanResult) -> InspectionResult:
        if not scan.has_secrets:
            return InspectionResult.clear()
        first = scan.secrets[0]
        logger.warning(
            f"CONTENT_INSPECTION: {scan.secret_count} secret(s) detected, "
            f"first {first.secret_type} ({first.pattern_id}) on line {first.line_number}: "
            f"{first.preview}"
        )
        return InspectionResult(
            passed=False, category=first.secret_type, pattern=first.pattern_id
        )
