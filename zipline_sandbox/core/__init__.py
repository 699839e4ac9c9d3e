"""Identity, path validation, locking and audit primitives for sandboxes."""

from .audit import format_file_size, log_sandbox_operation, redact_sandbox_path
from .identity import IdentityResolver, hash_token
from .path_validator import (
    SandboxPathResolver,
    is_within_sandbox,
    sanitize_path,
    validate_filename,
)
from .sandbox_lock import LOCK_FILENAME, LOCK_TIMEOUT_SECONDS, LockRecord, SandboxLock

__all__ = [
    "format_file_size",
    "log_sandbox_operation",
    "redact_sandbox_path",
    "IdentityResolver",
    "hash_token",
    "SandboxPathResolver",
    "is_within_sandbox",
    "sanitize_path",
    "validate_filename",
    "LOCK_FILENAME",
    "LOCK_TIMEOUT_SECONDS",
    "LockRecord",
    "SandboxLock",
]
