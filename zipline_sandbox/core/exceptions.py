"""
Exceptions for the Zipline sandbox subsystem.

All exceptions inherit from SandboxError for easy catching.
Each exception carries a context dict for logging and a ``retryable`` flag so
callers can tell "retry later" conditions from "will not succeed" ones.
"""
from __future__ import annotations


class SandboxError(Exception):
    """Base exception for all sandbox errors."""

    retryable: bool = False

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx}]"
        return self.message


class ConfigurationError(SandboxError):
    """Required configuration (usually the identity token) is missing or invalid."""

    def __init__(self, message: str, setting: str | None = None):
        super().__init__(message, context={"setting": setting} if setting else None)
        self.setting = setting


class PathSecurityError(SandboxError):
    """A caller-supplied name or path would escape the sandbox or is malformed."""

    def __init__(self, message: str, path: str, reason: str):
        super().__init__(message, context={"reason": reason})
        self.path = path
        self.reason = reason


class SecretDetectedError(SandboxError):
    """Content inspection found sensitive data; staging or ingest was refused."""

    def __init__(self, message: str, category: str, pattern: str):
        super().__init__(message, context={"category": category, "pattern": pattern})
        self.category = category
        self.pattern = pattern


class DownloadError(SandboxError):
    """Base class for download failures."""


class UnsupportedSchemeError(DownloadError):
    """URL scheme is not in the download allow-list."""

    def __init__(self, url: str, scheme: str):
        super().__init__(
            f"Unsupported scheme: {scheme or '(none)'} (only http/https allowed)",
            context={"scheme": scheme},
        )
        self.url = url
        self.scheme = scheme


class InvalidUrlError(DownloadError):
    """URL could not be parsed or has no host."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Invalid URL: {reason}", context={"url": url})
        self.url = url
        self.reason = reason


class HttpStatusError(DownloadError):
    """Remote server answered with a non-success status."""

    def __init__(self, status_code: int, status_text: str, url: str):
        super().__init__(
            f"HTTP {status_code} {status_text}".rstrip(),
            context={"status_code": status_code, "url": url},
        )
        self.status_code = status_code
        self.status_text = status_text
        self.url = url
        self.retryable = status_code == 429 or status_code >= 500


class SizeExceededError(SandboxError):
    """Content size is at or above the allowed ceiling."""

    def __init__(self, size: int, limit: int, what: str = "File"):
        super().__init__(
            f"{what} too large: {size} bytes exceeds limit of {limit} bytes",
            context={"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


class TimeoutOrAbortError(DownloadError):
    """The transfer was aborted because its wall-clock timeout fired."""

    retryable = True

    def __init__(self, timeout_ms: int, url: str):
        super().__init__(
            f"Request aborted or timeout exceeded after {timeout_ms} ms",
            context={"timeout_ms": timeout_ms},
        )
        self.timeout_ms = timeout_ms
        self.url = url


class DownloadNetworkError(DownloadError):
    """Connection or transfer failed for a reason other than the timeout."""

    retryable = True

    def __init__(self, message: str, url: str):
        super().__init__(message, context={"url": url})
        self.url = url


class FileSystemError(SandboxError):
    """A filesystem operation failed."""

    def __init__(self, message: str, path: str, operation: str):
        super().__init__(message, context={"operation": operation})
        self.path = path
        self.operation = operation


class SourceNotFoundError(FileSystemError):
    """The requested source file does not exist."""

    def __init__(self, path: str, operation: str = "stat"):
        super().__init__(f"File not found: {path}", path=path, operation=operation)


class UnsupportedFileTypeError(SandboxError):
    """Downloaded file has an extension outside the allow-list."""

    def __init__(self, filename: str, extension: str):
        super().__init__(
            f"Unsupported file type: {extension or '(none)'} is not supported",
            context={"filename": filename},
        )
        self.filename = filename
        self.extension = extension


class MimeMismatchError(SandboxError):
    """Sniffed content type does not match what the extension promises."""

    def __init__(self, filename: str, expected: str | None, detected: str):
        super().__init__(
            f"MIME type mismatch: {filename} looks like {detected}, expected {expected or 'text'}",
            context={"expected": expected, "detected": detected},
        )
        self.filename = filename
        self.expected = expected
        self.detected = detected
