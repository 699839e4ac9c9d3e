"""
Age-based removal of abandoned sandboxes.

A sandbox root under ``<base>/users`` whose modification time is older than
the retention window is removed with everything in it. Failures are logged
per sandbox and never stop the sweep.
"""
import asyncio
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Callable, Optional

from ..core.aio import run_blocking
from ..core.audit import log_sandbox_operation
from ..core.identity import IdentityResolver
from ..core.sandbox_lock import SandboxLock

logger = logging.getLogger(__name__)

SANDBOX_RETENTION_SECONDS = 24 * 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 60 * 60


def _list_sandboxes(users_dir: Path) -> list[Path]:
    try:
        entries = list(os.scandir(users_dir))
    except FileNotFoundError:
        return []
    return [Path(entry.path) for entry in entries if entry.is_dir(follow_symlinks=False)]


class SandboxReaper:
    """Sweeps expired sandbox roots, once or periodically."""

    def __init__(
        self,
        identity: IdentityResolver,
        lock: Optional[SandboxLock] = None,
        retention_seconds: float = SANDBOX_RETENTION_SECONDS,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.identity = identity
        self.lock = lock or SandboxLock(disable_sandboxing=identity.disable_sandboxing)
        self.retention_seconds = retention_seconds
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def sweep(self, dry_run: bool = False) -> int:
        """
        Remove every sandbox root older than the retention window.

        Args:
            dry_run: Count expired sandboxes without removing them

        Returns:
            Number of sandboxes removed (or that would be removed)
        """
        if self.identity.disable_sandboxing:
            return 0

        users_dir = self.identity.users_dir
        try:
            sandboxes = await run_blocking(_list_sandboxes, users_dir)
        except OSError as e:
            log_sandbox_operation("SANDBOX_CLEANUP_ERROR", users_dir, details=f"Error: {e}")
            return 0

        now = self._clock()
        removed = 0
        for sandbox in sandboxes:
            try:
                mtime = (await run_blocking(os.stat, sandbox)).st_mtime
            except OSError as e:
                log_sandbox_operation("SANDBOX_STAT_FAILED", sandbox, details=f"Error: {e}")
                continue

            age = now - mtime
            if age <= self.retention_seconds:
                continue

            age_hours = int(age // 3600)
            if dry_run:
                log_sandbox_operation("SANDBOX_EXPIRED", sandbox, details=f"Age: {age_hours} hours")
                removed += 1
                continue

            try:
                await run_blocking(shutil.rmtree, sandbox)
            except OSError as e:
                log_sandbox_operation("SANDBOX_CLEANUP_FAILED", sandbox, details=f"Error: {e}")
                continue

            log_sandbox_operation("SANDBOX_CLEANED", sandbox, details=f"Age: {age_hours} hours")
            removed += 1

        if removed:
            verb = "would remove" if dry_run else "removed"
            logger.info(f"SANDBOX_REAPER: {verb} {removed} expired sandbox(es)")
        return removed

    async def sweep_stale_locks(self) -> int:
        """
        Clear expired or corrupt lock records under the surviving sandboxes.

        Returns:
            Number of lock records removed
        """
        if self.identity.disable_sandboxing:
            return 0

        cleared = 0
        for sandbox in await run_blocking(_list_sandboxes, self.identity.users_dir):
            lock_path = SandboxLock.lock_path(sandbox)
            if not await run_blocking(lock_path.exists):
                continue
            if await self.lock.is_locked(sandbox):
                continue
            if not await run_blocking(lock_path.exists):
                cleared += 1
        return cleared

    async def start(self) -> None:
        """Start sweeping in the background."""
        if self._running:
            logger.warning("SandboxReaper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(f"SandboxReaper started (every {self.interval_seconds:g}s)")

    async def stop(self) -> None:
        """Stop the background sweep."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("SandboxReaper stopped")

    @property
    def running(self) -> bool:
        return self._running

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await self.sweep()
                await self.sweep_stale_locks()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Sandbox sweep error: {e}")

            await asyncio.sleep(self.interval_seconds)
