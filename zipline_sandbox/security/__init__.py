"""
Zipline sandbox security module.

Content inspection (secret detection) and file type verification for files
entering or leaving a sandbox.
"""

from .content_inspection import (
    ContentInspector,
    InspectionResult,
    SecretScanInspector,
)
from .file_types import (
    ALLOWED_EXTENSIONS,
    check_file_type,
    sniff_mime,
)
from .scanner_config import (
    ScannerConfig,
    configure_scanner_config_path,
    get_scanner_config,
    get_type_label,
    is_scanner_enabled,
    load_scanner_config,
)
from .sensitive_data_scanner import (
    DetectedSecret,
    ScanResult,
    SensitiveDataScanner,
    get_scanner,
)

__all__ = [
    # Inspection contract
    "ContentInspector",
    "InspectionResult",
    "SecretScanInspector",
    # File types
    "ALLOWED_EXTENSIONS",
    "check_file_type",
    "sniff_mime",
    # Config
    "ScannerConfig",
    "configure_scanner_config_path",
    "get_scanner_config",
    "get_type_label",
    "is_scanner_enabled",
    "load_scanner_config",
    # Scanner
    "DetectedSecret",
    "ScanResult",
    "SensitiveDataScanner",
    "get_scanner",
]
