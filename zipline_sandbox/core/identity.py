"""
Per-identity sandbox roots.

The sandbox root of a caller is derived from its Zipline token with SHA-256,
so the directory name never reveals the token and the same token always
lands in the same directory. When sandboxing is disabled every caller shares
the base directory.
"""
import hashlib
import logging
import os
from pathlib import Path

from .aio import run_blocking
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

USERS_DIRNAME = "users"
SANDBOX_DIR_MODE = 0o700


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class IdentityResolver:
    """Maps tokens to sandbox roots under a base directory."""

    def __init__(self, base_dir: Path, disable_sandboxing: bool = False):
        self.base_dir = Path(base_dir)
        self.disable_sandboxing = disable_sandboxing

    @property
    def users_dir(self) -> Path:
        return self.base_dir / USERS_DIRNAME

    def resolve_root(self, token: str) -> Path:
        """
        Return the sandbox root for a token without touching the filesystem.

        Raises:
            ConfigurationError: If the token is empty
        """
        if not token:
            raise ConfigurationError(
                "ZIPLINE_TOKEN is required for sandbox functionality",
                setting="ZIPLINE_TOKEN",
            )
        if self.disable_sandboxing:
            return self.base_dir
        return self.users_dir / hash_token(token)

    async def ensure_root(self, token: str) -> Path:
        """Create the sandbox root (owner-only) if needed and return it."""
        root = self.resolve_root(token)
        await run_blocking(_make_private_dir, root)
        return root


def _make_private_dir(path: Path) -> None:
    created = not path.exists()
    path.mkdir(mode=SANDBOX_DIR_MODE, parents=True, exist_ok=True)
    if created:
        # mkdir mode is filtered by the umask
        os.chmod(path, SANDBOX_DIR_MODE)
        logger.debug(f"IDENTITY: Created sandbox root with mode {oct(SANDBOX_DIR_MODE)}")
