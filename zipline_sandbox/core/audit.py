"""
Audit logging for sandbox operations.

Every state transition of a sandbox (lock changes, file writes, sweeps) is
recorded on the ``zipline_sandbox.audit`` logger. The identity segment of a
sandbox path is a hash of the caller's token and is always masked before it
reaches a log record.
"""
import logging
import re
from pathlib import Path

audit_logger = logging.getLogger("zipline_sandbox.audit")

_IDENTITY_SEGMENT = re.compile(r"([/\\]users[/\\])[^/\\]+")
_FAILURE_SUFFIXES = ("_FAILED", "_ERROR")


def redact_sandbox_path(path: Path | str) -> str:
    """Replace the per-identity directory name with ``[HASH]``."""
    return _IDENTITY_SEGMENT.sub(r"\1[HASH]", str(path))


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} bytes"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def log_sandbox_operation(
    operation: str,
    sandbox_path: Path | str,
    filename: str | None = None,
    details: str | None = None,
) -> None:
    """
    Emit one audit record.

    Args:
        operation: Upper-case operation name (e.g. LOCK_ACQUIRED)
        sandbox_path: Sandbox root the operation touched
        filename: Optional bare filename involved
        details: Optional free-form detail (reason, size, error)
    """
    message = f"SANDBOX_OPERATION: {operation}"
    if filename:
        message += f" - {filename}"
    message += f" - Path: {sandbox_path}"
    if details:
        message += f" - {details}"
    # Details often carry OSError text with the full path
    message = redact_sandbox_path(message)

    if operation.endswith(_FAILURE_SUFFIXES):
        audit_logger.warning(message)
    else:
        audit_logger.info(message)
