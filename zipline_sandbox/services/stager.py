"""
Upload staging.

Turns a file on disk into something the upload call can send:

- Files below MEMORY_STAGING_THRESHOLD are read into a buffer and the buffer
  is inspected (MemoryStagedFile).
- Larger files, or small files that could not be buffered, are inspected in
  place and referenced by path (DiskStagedFile). The original path is used,
  never a copy.

Content that fails inspection is never staged. Buffers are bytearrays and
are zeroed on release or rejection.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..core.aio import run_blocking
from ..core.exceptions import FileSystemError, SourceNotFoundError
from ..security.content_inspection import ContentInspector, SecretScanInspector

logger = logging.getLogger(__name__)

MEMORY_STAGING_THRESHOLD = 5 * 1024 * 1024  # 5MB


@dataclass
class MemoryStagedFile:
    """File content held in memory. ``buffer`` is None once released."""

    buffer: Optional[bytearray]
    origin_path: Path

    @property
    def size(self) -> int:
        return len(self.buffer) if self.buffer is not None else 0


@dataclass(frozen=True)
class DiskStagedFile:
    """Reference to the original file on disk."""

    path: Path


StagedFile = Union[MemoryStagedFile, DiskStagedFile]


def _zero(buffer: bytearray) -> None:
    buffer[:] = bytes(len(buffer))


class Stager:
    """Stages files for upload behind a content inspector."""

    def __init__(
        self,
        inspector: Optional[ContentInspector] = None,
        threshold: int = MEMORY_STAGING_THRESHOLD,
    ) -> None:
        self.inspector = inspector or SecretScanInspector()
        self.threshold = threshold

    async def stage(self, path: Path | str) -> StagedFile:
        """
        Stage one file.

        Raises:
            SourceNotFoundError: If the file does not exist
            FileSystemError: If the file cannot be read
            SecretDetectedError: If inspection finds sensitive content
        """
        path = Path(path)
        try:
            size = (await run_blocking(os.stat, path)).st_size
        except FileNotFoundError as e:
            raise SourceNotFoundError(str(path)) from e
        except OSError as e:
            raise FileSystemError(f"Cannot stat {path}: {e}", path=str(path), operation="stat") from e

        if size < self.threshold:
            staged = await self._stage_in_memory(path)
            if staged is not None:
                return staged

        return await self._stage_on_disk(path)

    async def _stage_in_memory(self, path: Path) -> Optional[MemoryStagedFile]:
        """Buffer and inspect a small file. Returns None to fall back to disk."""
        try:
            buffer = await run_blocking(self._read_bytes, path)
        except MemoryError:
            logger.warning(f"STAGER: Out of memory buffering {path.name}, staging from disk")
            return None
        except FileNotFoundError as e:
            raise SourceNotFoundError(str(path), operation="read") from e
        except OSError as e:
            raise FileSystemError(f"Cannot read {path}: {e}", path=str(path), operation="read") from e

        # The file may have grown since it was stat'ed
        if len(buffer) >= self.threshold:
            _zero(buffer)
            logger.debug(f"STAGER: {path.name} grew past the memory threshold, staging from disk")
            return None

        try:
            result = await run_blocking(self.inspector.inspect_bytes, buffer)
        except BaseException:
            _zero(buffer)
            raise

        if not result.passed:
            _zero(buffer)
            result.raise_for_match(path.name)

        if result.force_disk:
            _zero(buffer)
            logger.debug(f"STAGER: Inspector requested disk staging for {path.name}")
            return None

        logger.debug(f"STAGER: {path.name} staged in memory ({len(buffer)} bytes)")
        return MemoryStagedFile(buffer=buffer, origin_path=path)

    async def _stage_on_disk(self, path: Path) -> DiskStagedFile:
        try:
            result = await run_blocking(self.inspector.inspect_file, path)
        except FileNotFoundError as e:
            raise SourceNotFoundError(str(path), operation="read") from e
        except OSError as e:
            raise FileSystemError(f"Cannot read {path}: {e}", path=str(path), operation="read") from e

        result.raise_for_match(path.name)
        logger.debug(f"STAGER: {path.name} staged from disk")
        return DiskStagedFile(path=path)

    @staticmethod
    def _read_bytes(path: Path) -> bytearray:
        with open(path, "rb") as fh:
            return bytearray(fh.read())

    @staticmethod
    def release(staged: StagedFile) -> None:
        """
        Release a staged file. Safe to call more than once.

        Raises:
            TypeError: For anything that is not a staged file
        """
        if isinstance(staged, MemoryStagedFile):
            if staged.buffer is not None:
                _zero(staged.buffer)
                staged.buffer = None
        elif isinstance(staged, DiskStagedFile):
            # The original file belongs to the caller
            return
        else:
            raise TypeError(f"Unknown staged file variant: {type(staged).__name__}")
