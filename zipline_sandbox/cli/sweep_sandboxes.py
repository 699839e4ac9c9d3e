#!/usr/bin/env python3
"""CLI tool for removing expired Zipline sandboxes.

Deletes per-user sandbox directories that have not been modified for more
than 24 hours. Meant for cron or for a one-off cleanup on a shared host.

Usage:
    python -m zipline_sandbox.cli.sweep_sandboxes [--dry-run] [--locks]

Options:
    --dry-run    Show how many sandboxes would be deleted without deleting
    --locks      Also clear expired or corrupt lock files
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from ..config import load_sandbox_settings
from ..core.exceptions import ConfigurationError
from ..core.identity import IdentityResolver
from ..services.sandbox_reaper import SANDBOX_RETENTION_SECONDS, SandboxReaper

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


async def run_sweep(reaper: SandboxReaper, dry_run: bool, locks: bool) -> tuple[int, int]:
    removed = await reaper.sweep(dry_run=dry_run)
    cleared = 0
    if locks and not dry_run:
        cleared = await reaper.sweep_stale_locks()
    return removed, cleared


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Remove expired Zipline sandboxes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Show what would be deleted
    python -m zipline_sandbox.cli.sweep_sandboxes --dry-run

    # Delete expired sandboxes and stale locks under a custom base
    python -m zipline_sandbox.cli.sweep_sandboxes --locks --base-dir /var/tmp/zipline
        """,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without actually deleting",
    )
    parser.add_argument(
        "--locks",
        action="store_true",
        help="Also clear expired or corrupt lock files in surviving sandboxes",
    )
    parser.add_argument("--base-dir", help="Sandbox base directory (overrides ZIPLINE_TMP_DIR)")
    parser.add_argument("--config", help="YAML file with a 'sandbox:' section")
    parser.add_argument(
        "--retention-hours",
        type=float,
        default=SANDBOX_RETENTION_SECONDS / 3600,
        help="Age after which a sandbox is removed (default: 24)",
    )

    args = parser.parse_args(argv)

    try:
        settings = load_sandbox_settings(args.config)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    base_dir = args.base_dir or settings.base_dir
    if settings.disable_sandboxing:
        logger.info("Sandboxing is disabled; nothing to sweep")
        return 0

    identity = IdentityResolver(base_dir)
    reaper = SandboxReaper(identity, retention_seconds=args.retention_hours * 3600)

    logger.info(f"=== Zipline Sandbox Sweep ({identity.users_dir}) ===")
    if args.dry_run:
        logger.info("DRY RUN MODE - No changes will be made")

    removed, cleared = asyncio.run(run_sweep(reaper, args.dry_run, args.locks))

    if args.dry_run:
        logger.info(f"Would remove {removed} sandboxes")
    else:
        logger.info(f"Removed {removed} sandboxes")
        if args.locks:
            logger.info(f"Cleared {cleared} stale locks")

    return 0


if __name__ == "__main__":
    sys.exit(main())
