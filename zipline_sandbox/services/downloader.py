"""
Bounded download of external URLs into the caller's sandbox.

Provides:
- Protocol validation (http/https only), before any network I/O
- Target filename validation (the URL's basename), before any network I/O
- Wall-clock timeout over the whole transfer
- Size ceiling checked on the Content-Length header, while streaming, and
  on the written file
- Removal of the partially written file on any failure once writing began

The returned path always points at a complete file below the ceiling.
"""
import asyncio
import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from ..core.aio import run_blocking
from ..core.audit import format_file_size, log_sandbox_operation
from ..core.exceptions import (
    DownloadNetworkError,
    FileSystemError,
    HttpStatusError,
    InvalidUrlError,
    SandboxError,
    SizeExceededError,
    TimeoutOrAbortError,
    UnsupportedSchemeError,
)
from ..core.identity import IdentityResolver
from ..core.path_validator import SandboxPathResolver

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES: tuple[str, ...] = ("http", "https")
MAX_DOWNLOAD_SIZE: int = 100 * 1024 * 1024  # 100MB
DEFAULT_DOWNLOAD_TIMEOUT_MS: int = 30_000
DEFAULT_MAX_REDIRECTS: int = 5
DEFAULT_FILENAME: str = "download"
CHUNK_SIZE: int = 64 * 1024

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "zipline-mcp-sandbox",
    "Accept": "*/*",
}


@dataclass
class DownloadOptions:
    """Per-call download options."""

    timeout_ms: int = DEFAULT_DOWNLOAD_TIMEOUT_MS
    # May lower the ceiling for one call, never raise it
    max_file_size_bytes: Optional[int] = None


@dataclass
class _TransferState:
    write_started: bool = False
    bytes_written: int = 0
    advertised_size: Optional[int] = None
    encoded: bool = False


class Downloader:
    """Downloads one URL at a time into the sandbox of a single identity."""

    def __init__(
        self,
        identity: IdentityResolver,
        paths: SandboxPathResolver,
        token: str,
        max_size: int = MAX_DOWNLOAD_SIZE,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        default_timeout_ms: int = DEFAULT_DOWNLOAD_TIMEOUT_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            identity: Resolves the caller's sandbox root
            paths: Validates the target filename
            token: Caller identity token
            max_size: Hard size ceiling in bytes (files at or above are rejected)
            max_redirects: Maximum number of redirects to follow
            default_timeout_ms: Timeout used when no options are passed
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._identity = identity
        self._paths = paths
        self._token = token
        self.max_size = max_size
        self.max_redirects = max_redirects
        self.default_timeout_ms = default_timeout_ms
        self._transport = transport

    async def download(self, url: str, options: Optional[DownloadOptions] = None) -> Path:
        """
        Download url into the sandbox and return the absolute file path.

        Raises:
            UnsupportedSchemeError: Scheme is not http/https
            InvalidUrlError: URL has no host
            PathSecurityError: URL basename is not a safe filename
            HttpStatusError: Non-2xx response
            SizeExceededError: Content at or above the size ceiling
            TimeoutOrAbortError: Timeout fired before the transfer finished
            DownloadNetworkError: Any other transport failure
            FileSystemError: Writing the file failed
        """
        options = options or DownloadOptions(timeout_ms=self.default_timeout_ms)
        if options.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        limit = self._effective_limit(options)

        filename = self._target_filename(url)
        root = await self._identity.ensure_root(self._token)
        target = self._paths.resolve(root, filename)

        state = _TransferState()
        try:
            await asyncio.wait_for(
                self._transfer(url, target, limit, options.timeout_ms, state),
                timeout=options.timeout_ms / 1000,
            )
        except BaseException as exc:
            if state.write_started:
                await self._discard(root, target, filename)
            error = _translate_error(exc, url, target, options.timeout_ms)
            log_sandbox_operation("DOWNLOAD_FAILED", root, filename, f"Error: {error}")
            if error is exc:
                raise
            raise error from exc

        log_sandbox_operation(
            "DOWNLOAD_COMPLETE", root, filename, f"Size: {format_file_size(state.bytes_written)}"
        )
        logger.info(f"DOWNLOADER: {url} -> {filename} ({state.bytes_written} bytes)")
        return target

    def _effective_limit(self, options: DownloadOptions) -> int:
        requested = options.max_file_size_bytes
        if requested is None:
            return self.max_size
        if requested <= 0:
            raise ValueError("max_file_size_bytes must be positive")
        return min(requested, self.max_size)

    @staticmethod
    def _target_filename(url: str) -> str:
        """Validate the URL and return its percent-decoded basename."""
        if not isinstance(url, str) or not url.strip():
            raise InvalidUrlError(str(url), "URL is required")
        try:
            parsed = urlparse(url.strip())
        except ValueError as e:
            raise InvalidUrlError(url, f"failed to parse URL: {e}") from e

        scheme = parsed.scheme.lower()
        if scheme not in ALLOWED_SCHEMES:
            logger.warning(f"DOWNLOADER: Blocked URL {url}: unsupported scheme {scheme!r}")
            raise UnsupportedSchemeError(url, scheme)
        if not parsed.hostname:
            raise InvalidUrlError(url, "missing hostname")

        return unquote(posixpath.basename(parsed.path)) or DEFAULT_FILENAME

    async def _transfer(
        self,
        url: str,
        target: Path,
        limit: int,
        timeout_ms: int,
        state: _TransferState,
    ) -> None:
        async with httpx.AsyncClient(
            timeout=timeout_ms / 1000,
            follow_redirects=True,
            max_redirects=self.max_redirects,
            headers=DEFAULT_HEADERS,
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise HttpStatusError(response.status_code, response.reason_phrase, url)

                state.advertised_size = _content_length(response)
                state.encoded = response.headers.get("content-encoding", "identity") != "identity"
                if state.advertised_size is not None and state.advertised_size >= limit:
                    raise SizeExceededError(state.advertised_size, limit, what="Remote file")

                await self._write_body(response, target, limit, state)

        written = (await run_blocking(target.stat)).st_size
        if written >= limit:
            raise SizeExceededError(written, limit)
        if (
            state.advertised_size is not None
            and not state.encoded
            and written < state.advertised_size
        ):
            raise DownloadNetworkError(
                f"Incomplete download: received {written} of {state.advertised_size} bytes",
                url,
            )

    @staticmethod
    async def _write_body(
        response: httpx.Response, target: Path, limit: int, state: _TransferState
    ) -> None:
        fh = await run_blocking(open, target, "wb")
        state.write_started = True
        pending: Optional[asyncio.Future] = None
        try:
            async for chunk in response.aiter_bytes(chunk_size=CHUNK_SIZE):
                state.bytes_written += len(chunk)
                if state.bytes_written >= limit:
                    raise SizeExceededError(state.bytes_written, limit)
                # close() must not run while a write is still on an executor thread
                pending = asyncio.ensure_future(run_blocking(fh.write, chunk))
                await asyncio.shield(pending)
        finally:
            if pending is not None and not pending.done():
                await asyncio.gather(pending, return_exceptions=True)
            await run_blocking(fh.close)

    @staticmethod
    async def _discard(root: Path, target: Path, filename: str) -> None:
        """Force-delete a partial download. Never raises."""
        try:
            await run_blocking(target.unlink, missing_ok=True)
        except OSError as e:
            log_sandbox_operation("DOWNLOAD_CLEANUP_FAILED", root, filename, f"Error: {e}")
            return
        log_sandbox_operation("DOWNLOAD_CLEANED", root, filename, "Reason: Transfer failed")


def _content_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("content-length")
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _translate_error(
    exc: BaseException, url: str, target: Path, timeout_ms: int
) -> BaseException:
    """Map transport and OS errors onto the sandbox taxonomy."""
    if isinstance(exc, SandboxError):
        return exc
    # asyncio.TimeoutError is an OSError subclass on 3.11+, check it first
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return TimeoutOrAbortError(timeout_ms, url)
    if isinstance(exc, httpx.TooManyRedirects):
        return DownloadNetworkError(f"Too many redirects: {exc}", url)
    if isinstance(exc, httpx.HTTPError):
        return DownloadNetworkError(
            f"Network failure: {str(exc) or type(exc).__name__}", url
        )
    if isinstance(exc, OSError):
        return FileSystemError(
            f"Could not write download: {exc}", path=str(target), operation="write"
        )
    return exc
