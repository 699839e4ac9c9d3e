"""
Path validation for sandbox file operations.

Single source of truth for turning a caller-supplied name into an absolute
path inside a sandbox root. Resolution is pure path algebra: nothing here
touches the filesystem, so a rejected name never causes I/O.

Two layers:
    1. Filename rules (SandboxPathResolver.resolve): only bare filenames are
       accepted. No separators, no "..", no hidden names, no absolute paths.
    2. Containment (sanitize_path): the joined, normalized path must remain
       lexically inside the sandbox root.
"""
import logging
import posixpath
import re
from pathlib import Path

from .audit import redact_sandbox_path
from .exceptions import PathSecurityError
from .identity import IdentityResolver

logger = logging.getLogger(__name__)

INVALID_FILENAME_MESSAGE = (
    "Filenames must not include path separators, dot segments, or be empty. "
    "Only bare filenames in your sandbox are allowed."
)

_WINDOWS_ABSOLUTE = re.compile(r"^[A-Za-z]:[\\/]")


def _filename_violation(name: object) -> str | None:
    """Return the reason a bare filename is rejected, or None if it is acceptable."""
    if not isinstance(name, str) or not name:
        return "empty"
    if posixpath.isabs(name) or _WINDOWS_ABSOLUTE.match(name):
        return "absolute_path"
    if "/" in name or "\\" in name:
        return "path_separator"
    if ".." in name:
        return "parent_segment"
    if name.startswith("."):
        return "hidden_file"
    return None


def validate_filename(name: str) -> str | None:
    """
    Validate a bare sandbox filename.

    Returns:
        An error message if the name is rejected, otherwise None
    """
    if _filename_violation(name) is not None:
        return INVALID_FILENAME_MESSAGE
    return None


def _is_contained(candidate: str, root: str) -> bool:
    if candidate == root:
        return True
    return candidate.startswith(root.rstrip("/") + "/")


def sanitize_path(input_path: str, sandbox_root: Path | str) -> Path:
    """
    Resolve input_path under sandbox_root and confirm it stays inside.

    Backslashes are treated as separators. Containment is checked on whole
    path components, so a sibling such as ``<root>-other`` never passes.

    Raises:
        PathSecurityError: Empty input, NUL bytes, Windows absolute paths,
            or a result outside the sandbox root
    """
    if not isinstance(input_path, str):
        raise PathSecurityError(
            "Path must be a string", path=repr(input_path), reason="invalid_type"
        )

    trimmed = input_path.strip()
    if not trimmed:
        raise PathSecurityError(
            "Path cannot be empty or whitespace-only", path=input_path, reason="empty"
        )
    if "\0" in trimmed:
        raise PathSecurityError(
            "Path contains null bytes", path=input_path, reason="null_byte"
        )
    if _WINDOWS_ABSOLUTE.match(trimmed):
        raise PathSecurityError(
            f"Absolute Windows paths are not allowed: {input_path}",
            path=input_path,
            reason="windows_absolute",
        )

    root = posixpath.normpath(posixpath.abspath(str(sandbox_root)))
    candidate = posixpath.normpath(posixpath.join(root, trimmed.replace("\\", "/")))

    if not _is_contained(candidate, root):
        raise PathSecurityError(
            f"Path traversal attempt detected: {input_path}",
            path=input_path,
            reason="outside_sandbox",
        )

    return Path(candidate)


def is_within_sandbox(test_path: str | Path | None, sandbox_root: Path | str) -> bool:
    """Non-raising containment check for an already absolute path."""
    if test_path is None:
        return False
    text = str(test_path).strip()
    if not text or "\0" in text:
        return False
    root = posixpath.normpath(str(sandbox_root))
    return _is_contained(posixpath.normpath(text), root)


class SandboxPathResolver:
    """
    Resolves bare filenames to absolute paths inside a sandbox root.

    The resolver is stateless apart from its identity resolver, which is only
    needed for resolve_for_token().
    """

    def __init__(self, identity: IdentityResolver | None = None, log_all_access: bool = False):
        self.identity = identity
        self.log_all_access = log_all_access

    def resolve(self, root: Path | str, name: str) -> Path:
        """
        Resolve name under root.

        Raises:
            PathSecurityError: If the name is not a safe bare filename
        """
        reason = _filename_violation(name)
        if reason is not None:
            self._log_blocked(name, reason)
            raise PathSecurityError(
                f"Invalid sandbox filename: {name!r}. {INVALID_FILENAME_MESSAGE}",
                path=str(name),
                reason=reason,
            )

        try:
            resolved = sanitize_path(name, root)
        except PathSecurityError as e:
            self._log_blocked(name, e.reason)
            raise

        if self.log_all_access:
            logger.info(
                f"PATH_VALIDATOR: ALLOWED '{name}' -> '{redact_sandbox_path(resolved)}'"
            )
        return resolved

    def resolve_for_token(self, token: str, name: str) -> Path:
        if self.identity is None:
            raise RuntimeError("SandboxPathResolver was created without an IdentityResolver")
        return self.resolve(self.identity.resolve_root(token), name)

    def _log_blocked(self, name: object, reason: str) -> None:
        logger.warning(f"PATH_VALIDATOR: BLOCKED '{name}' - {reason}")
