"""
Unit tests for download file type verification.

The MIME sniffer is injected, so these tests do not depend on the libmagic
database installed on the host.
"""
import pytest

from zipline_sandbox.core.exceptions import MimeMismatchError, UnsupportedFileTypeError
from zipline_sandbox.security.file_types import (
    ALLOWED_EXTENSIONS,
    check_file_type,
    expected_mime,
)


def sniffer_returning(mime: str):
    def sniff(data: bytes) -> str:
        return mime

    return sniff


class TestCheckFileType:
    """Test check_file_type."""

    def test_allowed_extensions(self) -> None:
        assert ".txt" in ALLOWED_EXTENSIONS
        assert ".png" in ALLOWED_EXTENSIONS
        assert ".exe" not in ALLOWED_EXTENSIONS
        assert len(ALLOWED_EXTENSIONS) == 26

    @pytest.mark.parametrize("name", ["tool.exe", "archive.zip", "noextension"])
    def test_unsupported_extension(self, name: str) -> None:
        with pytest.raises(UnsupportedFileTypeError) as exc_info:
            check_file_type(name, b"", sniffer_returning("text/plain"))
        assert "Unsupported file type" in str(exc_info.value)

    def test_extension_case_insensitive(self) -> None:
        assert check_file_type("README.MD", b"# hi", sniffer_returning("text/plain")) == "text/plain"

    def test_matching_image(self) -> None:
        assert check_file_type("a.png", b"\x89PNG", sniffer_returning("image/png")) == "image/png"

    def test_image_extension_with_text_content(self) -> None:
        with pytest.raises(MimeMismatchError) as exc_info:
            check_file_type("photo.jpg", b"hello", sniffer_returning("text/plain"))
        assert "MIME type mismatch" in str(exc_info.value)
        assert exc_info.value.detected == "text/plain"

    def test_video_extension_with_image_content(self) -> None:
        with pytest.raises(MimeMismatchError):
            check_file_type("clip.mp4", b"", sniffer_returning("image/gif"))

    def test_executable_content_rejected_for_text(self) -> None:
        with pytest.raises(MimeMismatchError):
            check_file_type("notes.txt", b"MZ", sniffer_returning("application/x-dosexec"))

    def test_svg_reported_as_xml_is_allowed(self) -> None:
        assert check_file_type("icon.svg", b"<svg/>", sniffer_returning("text/xml")) == "text/xml"

    def test_text_formats_are_lenient(self) -> None:
        """Code and data files may sniff as any text-like type."""
        assert check_file_type("data.json", b"{}", sniffer_returning("text/plain")) == "text/plain"

    def test_expected_mime(self) -> None:
        assert expected_mime("a.png") == "image/png"
        assert expected_mime("unknown.zzz") is None
