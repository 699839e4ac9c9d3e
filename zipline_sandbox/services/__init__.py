"""Sandbox services: download, staging, file operations and sweeping."""

from .downloader import (
    DEFAULT_DOWNLOAD_TIMEOUT_MS,
    MAX_DOWNLOAD_SIZE,
    Downloader,
    DownloadOptions,
)
from .factory import SandboxServices, create_sandbox_services
from .ingest import DownloadIngestor
from .sandbox_files import (
    TMP_MAX_READ_SIZE,
    SandboxFileContent,
    SandboxFileInfo,
    SandboxFileManager,
)
from .sandbox_reaper import SANDBOX_RETENTION_SECONDS, SandboxReaper
from .stager import (
    MEMORY_STAGING_THRESHOLD,
    DiskStagedFile,
    MemoryStagedFile,
    StagedFile,
    Stager,
)

__all__ = [
    "DEFAULT_DOWNLOAD_TIMEOUT_MS",
    "MAX_DOWNLOAD_SIZE",
    "Downloader",
    "DownloadOptions",
    "SandboxServices",
    "create_sandbox_services",
    "DownloadIngestor",
    "TMP_MAX_READ_SIZE",
    "SandboxFileContent",
    "SandboxFileInfo",
    "SandboxFileManager",
    "SANDBOX_RETENTION_SECONDS",
    "SandboxReaper",
    "MEMORY_STAGING_THRESHOLD",
    "DiskStagedFile",
    "MemoryStagedFile",
    "StagedFile",
    "Stager",
]
