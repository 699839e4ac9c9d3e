"""
Sandbox file operations: LIST, CREATE, READ and PATH.

All names are bare filenames resolved through SandboxPathResolver. Every
operation, successful or not, leaves an audit record.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from ..core.aio import run_blocking
from ..core.audit import format_file_size, log_sandbox_operation
from ..core.exceptions import (
    FileSystemError,
    PathSecurityError,
    SizeExceededError,
    SourceNotFoundError,
)
from ..core.identity import IdentityResolver
from ..core.path_validator import SandboxPathResolver

logger = logging.getLogger(__name__)

TMP_MAX_READ_SIZE = 1024 * 1024  # 1MB


@dataclass(frozen=True)
class SandboxFileInfo:
    name: str
    path: Path
    size: int


@dataclass(frozen=True)
class SandboxFileContent:
    name: str
    path: Path
    size: int
    text: str


def _list_regular_files(root: Path) -> list[str]:
    try:
        entries = list(os.scandir(root))
    except FileNotFoundError:
        return []
    return sorted(
        entry.name
        for entry in entries
        if entry.is_file(follow_symlinks=False) and not entry.name.startswith(".")
    )


def _write_text(path: Path, content: str) -> int:
    path.write_text(content, encoding="utf-8")
    return path.stat().st_size


class SandboxFileManager:
    """File operations confined to one identity's sandbox."""

    def __init__(
        self,
        identity: IdentityResolver,
        paths: SandboxPathResolver,
        token: str,
        max_read_size: int = TMP_MAX_READ_SIZE,
    ) -> None:
        self._identity = identity
        self._paths = paths
        self._token = token
        self.max_read_size = max_read_size

    async def list_files(self) -> list[str]:
        """Names of the regular, non-hidden files in the sandbox."""
        root = await self._identity.ensure_root(self._token)
        try:
            names = await run_blocking(_list_regular_files, root)
        except OSError as e:
            log_sandbox_operation("FILE_LIST_FAILED", root, details=f"Error: {e}")
            raise FileSystemError(f"LIST failed: {e}", path=str(root), operation="list") from e
        log_sandbox_operation("FILE_LIST", root, details=f"Files: {len(names)}")
        return names

    async def create(self, name: str, content: str = "") -> SandboxFileInfo:
        """Create or overwrite a UTF-8 text file."""
        root = await self._identity.ensure_root(self._token)
        path = self._resolve(root, name, "FILE_CREATE_FAILED")
        try:
            size = await run_blocking(_write_text, path, content or "")
        except OSError as e:
            log_sandbox_operation("FILE_CREATE_FAILED", root, name, f"Error: {e}")
            raise FileSystemError(f"CREATE failed: {e}", path=str(path), operation="write") from e
        log_sandbox_operation("FILE_CREATED", root, name, f"Size: {format_file_size(size)}")
        return SandboxFileInfo(name=name, path=path, size=size)

    async def read(self, name: str) -> SandboxFileContent:
        """
        Read a text file.

        Raises:
            PathSecurityError: Invalid filename
            SourceNotFoundError: File does not exist
            SizeExceededError: File is larger than max_read_size
            FileSystemError: Any other read failure
        """
        root = await self._identity.ensure_root(self._token)
        path = self._resolve(root, name, "FILE_READ_FAILED")
        try:
            size = (await run_blocking(os.stat, path)).st_size
            if size > self.max_read_size:
                log_sandbox_operation(
                    "FILE_READ_FAILED", root, name,
                    f"Reason: File too large ({format_file_size(size)})",
                )
                raise SizeExceededError(size, self.max_read_size)
            text = await run_blocking(path.read_text, encoding="utf-8", errors="replace")
        except FileNotFoundError as e:
            log_sandbox_operation("FILE_READ_FAILED", root, name, "Reason: File not found")
            raise SourceNotFoundError(str(path), operation="read") from e
        except OSError as e:
            log_sandbox_operation("FILE_READ_FAILED", root, name, f"Error: {e}")
            raise FileSystemError(f"READ failed: {e}", path=str(path), operation="read") from e

        log_sandbox_operation("FILE_READ", root, name, f"Size: {format_file_size(size)}")
        return SandboxFileContent(name=name, path=path, size=size, text=text)

    async def path_of(self, name: str) -> Path:
        """Absolute path of a sandbox file. The file need not exist."""
        root = await self._identity.ensure_root(self._token)
        path = self._resolve(root, name, "FILE_PATH_FAILED")
        log_sandbox_operation("FILE_PATH", root, name)
        return path

    def _resolve(self, root: Path, name: str, failure_operation: str) -> Path:
        try:
            return self._paths.resolve(root, name)
        except PathSecurityError as e:
            log_sandbox_operation(failure_operation, root, details=f"Reason: {e.reason}")
            raise
