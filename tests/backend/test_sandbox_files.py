"""
Unit tests for SandboxFileManager (LIST, CREATE, READ, PATH).
"""
import logging

import pytest

from zipline_sandbox.core.exceptions import (
    FileSystemError,
    PathSecurityError,
    SizeExceededError,
    SourceNotFoundError,
)
from zipline_sandbox.core.identity import IdentityResolver
from zipline_sandbox.core.path_validator import SandboxPathResolver
from zipline_sandbox.services.sandbox_files import (
    TMP_MAX_READ_SIZE,
    SandboxFileManager,
)


@pytest.fixture
def files(identity: IdentityResolver, paths: SandboxPathResolver, token: str) -> SandboxFileManager:
    return SandboxFileManager(identity, paths, token)


class TestList:
    """Test LIST."""

    @pytest.mark.asyncio
    async def test_empty_sandbox(self, files: SandboxFileManager) -> None:
        assert await files.list_files() == []

    @pytest.mark.asyncio
    async def test_lists_regular_visible_files(
        self, files: SandboxFileManager, identity: IdentityResolver, token: str
    ) -> None:
        root = await identity.ensure_root(token)
        (root / "b.txt").write_text("b")
        (root / "a.txt").write_text("a")
        (root / ".lock").write_text("{}")
        (root / "subdir").mkdir()

        assert await files.list_files() == ["a.txt", "b.txt"]


class TestCreateAndRead:
    """Test CREATE and READ."""

    @pytest.mark.asyncio
    async def test_create_then_read(self, files: SandboxFileManager) -> None:
        info = await files.create("notes.md", "# Title\nbody\n")
        assert info.name == "notes.md"
        assert info.size == len("# Title\nbody\n")
        assert info.path.read_text() == "# Title\nbody\n"

        content = await files.read("notes.md")
        assert content.text == "# Title\nbody\n"
        assert content.path == info.path
        assert content.size == info.size

    @pytest.mark.asyncio
    async def test_create_overwrites(self, files: SandboxFileManager) -> None:
        await files.create("a.txt", "first version")
        info = await files.create("a.txt", "v2")
        assert info.size == 2

    @pytest.mark.asyncio
    async def test_create_empty(self, files: SandboxFileManager) -> None:
        info = await files.create("empty.txt")
        assert info.size == 0

    @pytest.mark.asyncio
    async def test_create_utf8(self, files: SandboxFileManager) -> None:
        info = await files.create("u.txt", "héllo")
        assert info.size == len("héllo".encode("utf-8"))

    @pytest.mark.asyncio
    async def test_read_missing(self, files: SandboxFileManager) -> None:
        with pytest.raises(SourceNotFoundError):
            await files.read("missing.txt")

    @pytest.mark.asyncio
    async def test_read_size_cap(self, identity: IdentityResolver, paths, token: str) -> None:
        files = SandboxFileManager(identity, paths, token, max_read_size=10)
        await files.create("big.txt", "x" * 11)
        with pytest.raises(SizeExceededError):
            await files.read("big.txt")

    @pytest.mark.asyncio
    async def test_read_at_cap_allowed(self, identity: IdentityResolver, paths, token: str) -> None:
        files = SandboxFileManager(identity, paths, token, max_read_size=10)
        await files.create("edge.txt", "x" * 10)
        assert (await files.read("edge.txt")).size == 10

    def test_default_cap(self) -> None:
        assert TMP_MAX_READ_SIZE == 1024 * 1024

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["../escape.txt", "a/b.txt", ".hidden", ""])
    async def test_invalid_names(self, files: SandboxFileManager, name: str) -> None:
        with pytest.raises(PathSecurityError):
            await files.create(name, "x")
        with pytest.raises(PathSecurityError):
            await files.read(name)


class TestPath:
    """Test PATH."""

    @pytest.mark.asyncio
    async def test_path_of(
        self, files: SandboxFileManager, identity: IdentityResolver, token: str
    ) -> None:
        path = await files.path_of("report.pdf")
        assert path == identity.resolve_root(token) / "report.pdf"

    @pytest.mark.asyncio
    async def test_path_of_rejects_traversal(self, files: SandboxFileManager) -> None:
        with pytest.raises(PathSecurityError):
            await files.path_of("../../etc/passwd")


class TestAudit:
    """Test audit records."""

    @pytest.mark.asyncio
    async def test_operations_audited(self, files: SandboxFileManager, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="zipline_sandbox.audit"):
            await files.create("a.txt", "abc")
            await files.read("a.txt")
            await files.list_files()
            await files.path_of("a.txt")
        for operation in ("FILE_CREATED", "FILE_READ", "FILE_LIST", "FILE_PATH"):
            assert f"SANDBOX_OPERATION: {operation}" in caplog.text
        assert "[HASH]" in caplog.text

    @pytest.mark.asyncio
    async def test_failures_audited(self, files: SandboxFileManager, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="zipline_sandbox.audit"):
            with pytest.raises(SourceNotFoundError):
                await files.read("nope.txt")
        assert "FILE_READ_FAILED" in caplog.text

    @pytest.mark.asyncio
    async def test_failure_details_masked(
        self, files: SandboxFileManager, identity: IdentityResolver, token: str, caplog
    ) -> None:
        root = await identity.ensure_root(token)
        (root / "notes.txt").mkdir()
        with caplog.at_level(logging.INFO, logger="zipline_sandbox.audit"):
            with pytest.raises(FileSystemError):
                await files.create("notes.txt", "x")
        assert "FILE_CREATE_FAILED" in caplog.text
        assert "users/[HASH]" in caplog.text
        assert root.name not in caplog.text
