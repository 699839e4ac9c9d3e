"""
Advisory lock over one sandbox root.

The lock is a JSON record ``{"timestamp": <epoch-ms>, "token": "<owner>"}``
stored in ``<root>/.lock``. It is cooperative: nothing stops a process that
ignores it. A record older than the lock timeout is dead, and any reader
that finds one deletes it, so a crashed holder cannot wedge a sandbox.

Lifecycle:
    Unlocked -> Locked (acquire) -> Released (release) | Expired (timeout)

The record is written to a temporary file and hard-linked into place, which
fails if a lock file already exists. Two acquirers that both see an
unlocked sandbox race on the link and only one of them wins; readers never
observe a half-written record. An
expired record is removed before creation, so an acquirer that reads a
stale record and a second acquirer that has just written a fresh one can
still interleave; that window is accepted for single-host, low-contention
use.

Each successful acquire also schedules an auto-release task owned by this
object. It is a convenience only: after a restart the timestamp check in
is_locked() is what expires the lock.
"""
import asyncio
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .aio import run_blocking
from .audit import log_sandbox_operation

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".lock"
LOCK_TIMEOUT_SECONDS = 30 * 60
LOCK_FILE_MODE = 0o600


@dataclass(frozen=True)
class LockRecord:
    """Contents of a lock file."""

    timestamp: int  # epoch milliseconds
    token: str

    def to_json(self) -> str:
        return json.dumps({"timestamp": self.timestamp, "token": self.token})

    @classmethod
    def from_json(cls, raw: str) -> "LockRecord":
        """
        Parse a lock file.

        Raises:
            ValueError: If the content is not a valid lock record
        """
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Lock record must be a JSON object")
        timestamp = data.get("timestamp")
        token = data.get("token")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise ValueError("Lock record has no numeric timestamp")
        if not isinstance(token, str):
            raise ValueError("Lock record has no token")
        return cls(timestamp=int(timestamp), token=token)


class SandboxLock:
    """Acquire, check and release the advisory lock of sandbox roots."""

    def __init__(
        self,
        disable_sandboxing: bool = False,
        timeout_seconds: float = LOCK_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            disable_sandboxing: Shared-root mode; the lock becomes a no-op
            timeout_seconds: Age after which a record is dead
            clock: Returns the current time in epoch seconds
        """
        self.disable_sandboxing = disable_sandboxing
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._auto_release: dict[Path, asyncio.Task] = {}

    @staticmethod
    def lock_path(root: Path | str) -> Path:
        return Path(root) / LOCK_FILENAME

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _is_expired(self, record: LockRecord) -> bool:
        return self._now_ms() - record.timestamp > self.timeout_seconds * 1000

    async def is_locked(self, root: Path | str) -> bool:
        """
        Report whether root holds a live lock.

        Expired, unreadable or corrupt records are deleted and reported as
        unlocked.
        """
        if self.disable_sandboxing:
            return False

        root = Path(root)
        lock_path = self.lock_path(root)
        try:
            record = await _read_record(lock_path)
        except ValueError as e:
            if await self._remove(root, lock_path):
                log_sandbox_operation(
                    "LOCK_CLEARED", root, details=f"Reason: Lock file corrupted ({e})"
                )
            return False

        if record is None:
            return False

        if self._is_expired(record):
            if not await self._remove(root, lock_path):
                return False
            age_minutes = (self._now_ms() - record.timestamp) // 60_000
            log_sandbox_operation("LOCK_EXPIRED", root, details=f"Age: {age_minutes} minutes")
            return False

        return True

    async def acquire(self, root: Path | str, token: str) -> bool:
        """
        Try to take the lock for token.

        Returns:
            True if the lock was written, False if it is held by someone
            else or could not be written. Never raises for contention.
        """
        if self.disable_sandboxing:
            return True

        root = Path(root)
        if await self.is_locked(root):
            log_sandbox_operation("LOCK_ACQUIRE_FAILED", root, details="Reason: Already locked")
            return False

        record = LockRecord(timestamp=self._now_ms(), token=token)
        try:
            await run_blocking(_create_lock_file, self.lock_path(root), record.to_json())
        except FileExistsError:
            log_sandbox_operation(
                "LOCK_ACQUIRE_FAILED", root, details="Reason: Lock acquired concurrently"
            )
            return False
        except OSError as e:
            log_sandbox_operation(
                "LOCK_ACQUIRE_FAILED", root, details=f"Reason: Could not write lock file ({e})"
            )
            return False

        log_sandbox_operation(
            "LOCK_ACQUIRED", root, details=f"Timeout: {self.timeout_seconds / 60:g} minutes"
        )
        self._schedule_auto_release(root, record)
        return True

    async def release(self, root: Path | str, token: str) -> bool:
        """
        Release the lock if token owns it.

        A record owned by another token is left in place and False is
        returned. A corrupt record is cleared regardless of owner.
        """
        if self.disable_sandboxing:
            return True

        root = Path(root)
        lock_path = self.lock_path(root)
        try:
            record = await _read_record(lock_path)
        except ValueError:
            removed = await self._remove(root, lock_path)
            if removed:
                self._cancel_auto_release(root)
                log_sandbox_operation("LOCK_RELEASED", root, details="Reason: Lock file corrupted")
            return removed

        if record is None:
            log_sandbox_operation(
                "LOCK_RELEASE_NOT_NEEDED", root, details="Reason: No lock file exists"
            )
            return True

        if record.token != token:
            log_sandbox_operation("LOCK_RELEASE_FAILED", root, details="Reason: Token mismatch")
            return False

        removed = await self._remove(root, lock_path)
        if removed:
            self._cancel_auto_release(root)
            log_sandbox_operation("LOCK_RELEASED", root, details="Reason: Manual release")
        return removed

    async def aclose(self) -> None:
        """Cancel pending auto-release tasks."""
        tasks = list(self._auto_release.values())
        self._auto_release.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _schedule_auto_release(self, root: Path, record: LockRecord) -> None:
        self._cancel_auto_release(root)
        task = asyncio.create_task(self._auto_release_after_timeout(root, record))
        self._auto_release[root] = task
        task.add_done_callback(lambda t, r=root: self._forget(r, t))

    def _cancel_auto_release(self, root: Path) -> None:
        task = self._auto_release.pop(root, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _forget(self, root: Path, task: asyncio.Task) -> None:
        if self._auto_release.get(root) is task:
            del self._auto_release[root]

    async def _auto_release_after_timeout(self, root: Path, record: LockRecord) -> None:
        await asyncio.sleep(self.timeout_seconds)
        lock_path = self.lock_path(root)
        try:
            try:
                current = await _read_record(lock_path)
            except ValueError:
                if not await self._remove(root, lock_path):
                    return
                log_sandbox_operation(
                    "LOCK_AUTO_RELEASED", root, details="Reason: Lock file corrupted"
                )
                return

            # Only our own record; a newer holder keeps its lock
            if current == record and await self._remove(root, lock_path):
                log_sandbox_operation("LOCK_AUTO_RELEASED", root, details="Reason: Timeout expired")
        except Exception as e:
            log_sandbox_operation("LOCK_RELEASE_ERROR", root, details=f"Error: {e}")

    async def _remove(self, root: Path, lock_path: Path) -> bool:
        try:
            await run_blocking(lock_path.unlink, missing_ok=True)
        except OSError as e:
            log_sandbox_operation("LOCK_REMOVE_FAILED", root, details=f"Error: {e}")
            return False
        return True


async def _read_record(lock_path: Path) -> LockRecord | None:
    """
    Read a lock record.

    Returns:
        The record, or None if no lock file exists

    Raises:
        ValueError: If the file is unreadable or not a valid record
    """
    try:
        raw = await run_blocking(lock_path.read_text, encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise ValueError(f"unreadable: {e}") from e
    return LockRecord.from_json(raw)


def _create_lock_file(lock_path: Path, payload: str) -> None:
    """
    Publish a complete lock file, failing if one exists.

    Raises:
        FileExistsError: If another holder created the lock first
    """
    lock_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=lock_path.parent, prefix=f"{LOCK_FILENAME}-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.chmod(tmp_name, LOCK_FILE_MODE)
        os.link(tmp_name, lock_path)
    finally:
        os.unlink(tmp_name)
