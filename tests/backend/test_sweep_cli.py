"""
Tests for the sweep_sandboxes CLI.
"""
import os
import time
from pathlib import Path

import pytest

from zipline_sandbox.cli.sweep_sandboxes import main
from zipline_sandbox.core.sandbox_lock import LOCK_FILENAME, LockRecord


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch) -> None:
    for name in ("ZIPLINE_TOKEN", "ZIPLINE_DISABLE_SANDBOXING", "ZIPLINE_TMP_DIR"):
        monkeypatch.delenv(name, raising=False)


def make_sandbox(base_dir: Path, name: str, age_hours: float) -> Path:
    sandbox = base_dir / "users" / name
    sandbox.mkdir(parents=True)
    mtime = time.time() - age_hours * 3600
    os.utime(sandbox, (mtime, mtime))
    return sandbox


class TestSweepCli:
    """Test the CLI entry point."""

    def test_dry_run(self, base_dir: Path) -> None:
        old = make_sandbox(base_dir, "old", 48)
        assert main(["--base-dir", str(base_dir), "--dry-run"]) == 0
        assert old.exists()

    def test_sweep(self, base_dir: Path) -> None:
        old = make_sandbox(base_dir, "old", 48)
        fresh = make_sandbox(base_dir, "fresh", 1)
        assert main(["--base-dir", str(base_dir)]) == 0
        assert not old.exists()
        assert fresh.exists()

    def test_retention_override(self, base_dir: Path) -> None:
        sandbox = make_sandbox(base_dir, "two-hours", 2)
        assert main(["--base-dir", str(base_dir), "--retention-hours", "1"]) == 0
        assert not sandbox.exists()

    def test_locks(self, base_dir: Path) -> None:
        fresh = make_sandbox(base_dir, "fresh", 0)
        (fresh / LOCK_FILENAME).write_text(LockRecord(0, "dead").to_json())
        assert main(["--base-dir", str(base_dir), "--locks"]) == 0
        assert not (fresh / LOCK_FILENAME).exists()

    def test_environment_base_dir(self, base_dir: Path, monkeypatch) -> None:
        old = make_sandbox(base_dir, "old", 48)
        monkeypatch.setenv("ZIPLINE_TMP_DIR", str(base_dir))
        assert main([]) == 0
        assert not old.exists()

    def test_disabled_sandboxing(self, base_dir: Path, monkeypatch) -> None:
        old = make_sandbox(base_dir, "old", 48)
        monkeypatch.setenv("ZIPLINE_DISABLE_SANDBOXING", "true")
        assert main(["--base-dir", str(base_dir)]) == 0
        assert old.exists()

    def test_invalid_config(self, base_dir: Path, tmp_path: Path) -> None:
        config = tmp_path / "bad.yaml"
        config.write_text("sandbox: [unclosed")
        assert main(["--base-dir", str(base_dir), "--config", str(config)]) == 1
