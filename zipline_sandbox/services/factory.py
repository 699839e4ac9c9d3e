"""
Wiring of the sandbox components for one identity.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ..config import SandboxSettings
from ..core.identity import IdentityResolver
from ..core.path_validator import SandboxPathResolver
from ..core.sandbox_lock import SandboxLock
from ..security.content_inspection import ContentInspector, SecretScanInspector
from ..security.scanner_config import configure_scanner_config_path, is_scanner_enabled
from ..security.sensitive_data_scanner import reset_scanner
from .downloader import Downloader
from .ingest import DownloadIngestor
from .sandbox_files import SandboxFileManager
from .sandbox_reaper import SandboxReaper
from .stager import Stager

logger = logging.getLogger(__name__)


@dataclass
class SandboxServices:
    """All sandbox components bound to one token."""

    settings: SandboxSettings
    identity: IdentityResolver
    paths: SandboxPathResolver
    lock: SandboxLock
    downloader: Downloader
    ingestor: DownloadIngestor
    stager: Stager
    files: SandboxFileManager
    reaper: SandboxReaper

    @property
    def token(self) -> str:
        return self.settings.token

    async def aclose(self) -> None:
        """Stop the background sweep and pending lock auto-releases."""
        await self.reaper.stop()
        await self.lock.aclose()


def create_sandbox_services(
    settings: SandboxSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    inspector: Optional[ContentInspector] = None,
) -> SandboxServices:
    """
    Build the sandbox components from settings.

    Args:
        settings: Sandbox settings (must carry a token)
        transport: Optional httpx transport for the downloader
        inspector: Content inspector (defaults to the secret scanner)

    Raises:
        ConfigurationError: If settings has no token
    """
    token = settings.require_token()

    if settings.scanner_config_path is not None:
        configure_scanner_config_path(settings.scanner_config_path)
        reset_scanner()
    inspector = inspector or SecretScanInspector(enabled=is_scanner_enabled())

    identity = IdentityResolver(settings.base_dir, settings.disable_sandboxing)
    paths = SandboxPathResolver(identity)
    lock = SandboxLock(disable_sandboxing=settings.disable_sandboxing)
    downloader = Downloader(
        identity,
        paths,
        token,
        default_timeout_ms=settings.download_timeout_ms,
        transport=transport,
    )

    services = SandboxServices(
        settings=settings,
        identity=identity,
        paths=paths,
        lock=lock,
        downloader=downloader,
        ingestor=DownloadIngestor(downloader, inspector),
        stager=Stager(inspector),
        files=SandboxFileManager(identity, paths, token),
        reaper=SandboxReaper(
            identity, lock=lock, interval_seconds=settings.cleanup_interval_seconds
        ),
    )
    logger.debug(
        f"SANDBOX_SERVICES: base={settings.base_dir} "
        f"isolation={'off' if settings.disable_sandboxing else 'on'}"
    )
    return services
