"""
Verified download: fetch a URL, then check what arrived.

After the Downloader has written the file, its extension and sniffed MIME
type are checked, then its content is inspected for secrets. A file that
fails any check is removed before the error reaches the caller.
"""
import logging
from pathlib import Path
from typing import Optional

from ..core.aio import run_blocking
from ..core.audit import log_sandbox_operation
from ..security.content_inspection import ContentInspector, SecretScanInspector
from ..security.file_types import SNIFF_BYTES, MimeSniffer, check_file_type, sniff_mime
from .downloader import Downloader, DownloadOptions

logger = logging.getLogger(__name__)


def _read_head(path: Path, size: int = SNIFF_BYTES) -> bytes:
    with open(path, "rb") as fh:
        return fh.read(size)


class DownloadIngestor:
    """Downloader plus post-download file type and secret checks."""

    def __init__(
        self,
        downloader: Downloader,
        inspector: Optional[ContentInspector] = None,
        sniffer: MimeSniffer = sniff_mime,
    ) -> None:
        self.downloader = downloader
        self.inspector = inspector or SecretScanInspector()
        self.sniffer = sniffer

    async def download_verified(
        self, url: str, options: Optional[DownloadOptions] = None
    ) -> Path:
        """
        Download url and keep it only if it passes every check.

        Raises:
            Everything Downloader.download raises, plus
            UnsupportedFileTypeError, MimeMismatchError, SecretDetectedError
        """
        path = await self.downloader.download(url, options)
        try:
            await self._verify(path)
        except BaseException as e:
            await self._reject(path, e)
            raise
        return path

    async def _verify(self, path: Path) -> None:
        head = await run_blocking(_read_head, path)
        detected = await run_blocking(check_file_type, path.name, head, self.sniffer)
        result = await run_blocking(self.inspector.inspect_file, path)
        result.raise_for_match(path.name)
        logger.info(f"INGEST: {path.name} accepted ({detected})")

    @staticmethod
    async def _reject(path: Path, error: BaseException) -> None:
        root = path.parent
        try:
            await run_blocking(path.unlink, missing_ok=True)
        except OSError as e:
            log_sandbox_operation("INGEST_CLEANUP_FAILED", root, path.name, f"Error: {e}")
        log_sandbox_operation("INGEST_REJECTED", root, path.name, f"Reason: {error}")
