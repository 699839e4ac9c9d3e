"""
File type verification for downloaded files.

Uses the file extension and libmagic content sniffing to decide whether a
downloaded file may stay in the sandbox.

Required dependencies:
    pip install python-magic
"""
import logging
import mimetypes
from pathlib import Path
from typing import Callable

from ..core.exceptions import MimeMismatchError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

SNIFF_BYTES = 8192

ALLOWED_EXTENSIONS: frozenset[str] = frozenset({
    # Text and code
    ".txt", ".md", ".gpx", ".html", ".htm", ".json", ".xml", ".csv",
    ".js", ".ts", ".css", ".py", ".sh", ".yaml", ".yml", ".toml",
    # Video
    ".mp4", ".mkv", ".webm", ".avi",
    # Web images
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg",
})

EXECUTABLE_MIME_TYPES: frozenset[str] = frozenset({
    "application/x-dosexec",
    "application/x-msdownload",
    "application/vnd.microsoft.portable-executable",
    "application/x-executable",
    "application/x-pie-executable",
    "application/x-sharedlib",
    "application/x-elf",
    "application/x-mach-binary",
})

# Media categories whose content must match the extension's category
_STRICT_CATEGORIES = ("image", "video")
# Text-based image format; libmagic reports it as XML or plain text
_TEXT_IMAGE_EXTENSIONS = frozenset({".svg"})

MimeSniffer = Callable[[bytes], str]


def sniff_mime(data: bytes) -> str:
    """Detect the MIME type of a buffer with libmagic."""
    import magic  # Required: python-magic

    return magic.from_buffer(data, mime=True)


def expected_mime(filename: str) -> str | None:
    """MIME type implied by the filename's extension, if known."""
    return mimetypes.guess_type(filename)[0]


def check_file_type(filename: str, head: bytes, sniffer: MimeSniffer = sniff_mime) -> str:
    """
    Verify that a file's content is acceptable for its name.

    Args:
        filename: Bare filename (extension is taken from it)
        head: Leading bytes of the file
        sniffer: Content sniffer (defaults to libmagic)

    Returns:
        The detected MIME type

    Raises:
        UnsupportedFileTypeError: Extension is not allowed
        MimeMismatchError: Content is executable, or a media file whose
            content category does not match its extension
    """
    extension = Path(filename).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise UnsupportedFileTypeError(filename, extension)

    detected = sniffer(head)
    expected = expected_mime(filename)

    if detected in EXECUTABLE_MIME_TYPES:
        logger.warning(f"FILE_TYPES: Executable content in {filename}: {detected}")
        raise MimeMismatchError(filename, expected, detected)

    if expected and extension not in _TEXT_IMAGE_EXTENSIONS:
        expected_category = expected.split("/", 1)[0]
        detected_category = detected.split("/", 1)[0]
        if expected_category in _STRICT_CATEGORIES and detected_category != expected_category:
            logger.warning(
                f"FILE_TYPES: {filename} claims {expected} but content is {detected}"
            )
            raise MimeMismatchError(filename, expected, detected)

    logger.debug(f"FILE_TYPES: {filename} accepted as {detected}")
    return detected
