#!/usr/bin/env python3
"""
Incremental synchronization script for the FFTCG card catalog.

This script performs one checkpointed sync invocation:
- Fetches groups, products and prices from the catalog API
- Skips records whose content fingerprint is unchanged
- Enriches changed records with official card data
- Pauses with a checkpoint before the execution budget runs out

Designed to be run on a schedule (e.g., via cron or a serverless scheduler).
A paused run is continued by invoking the script again with ``--resume``.

Usage:
    python scripts/incremental_sync.py [--config CONFIG_PATH] [--group GROUP_ID] [--resume]
"""

import argparse
import asyncio
import sys

import structlog

from fftcg_sync.models.config import AppConfig
from fftcg_sync.providers import build_sync_controller
from fftcg_sync.sync.models import SyncOptions, SyncReport, SyncStatus
from fftcg_sync.utils.config_loader import ConfigLoader
from fftcg_sync.utils.errors import CheckpointCorruptedError, ConfigurationError
from fftcg_sync.utils.logging_config import clear_run_context, configure_logging

log = structlog.stdlib.get_logger()


async def perform_sync(config: AppConfig, options: SyncOptions) -> SyncReport:
    """
    Run one sync invocation with a freshly assembled controller.

    Args:
        config: Application configuration
        options: Options for this invocation

    Returns:
        The run's SyncReport
    """
    controller = build_sync_controller(config)
    try:
        return await controller.run(options)
    finally:
        controller.close()
        clear_run_context()


def print_summary(report: SyncReport) -> None:
    print("\n" + "=" * 60)
    print("SYNCHRONIZATION SUMMARY")
    print("=" * 60)
    print(f"Run: {report.run_id}")
    print(f"Status: {report.status.value.upper()}")
    print(f"Items Processed: {report.items_processed}")
    print(f"Items Updated: {report.items_updated}")
    print(f"Items Skipped: {report.items_skipped}")
    print(f"Matches Found: {report.matches_found}")
    print(f"Prices Updated: {report.prices_updated}")
    print(f"Images Pending: {report.images_pending}")
    if report.timing.duration_seconds is not None:
        print(f"Duration: {report.timing.duration_seconds:.2f} seconds")
    if report.errors:
        print(f"Errors ({len(report.errors)}):")
        for error in report.errors[:10]:
            print(f"  - {error}")
    if report.paused and report.checkpoint is not None:
        print(
            f"Paused at group {report.checkpoint.current_group_index}, "
            f"record {report.checkpoint.current_card_index}. "
            f"Re-run with --resume --run-id {report.run_id} to continue."
        )
    print("=" * 60)


def main():
    """Main entry point for the incremental sync script."""
    parser = argparse.ArgumentParser(description="Incremental sync of the FFTCG card catalog")
    parser.add_argument("--config", type=str, default=None, help="Path to configuration file")
    parser.add_argument(
        "--force", action="store_true", help="Write records even when fingerprints match"
    )
    parser.add_argument("--group", type=str, default=None, help="Only sync this group id")
    parser.add_argument(
        "--resume", action="store_true", help="Continue from the stored checkpoint"
    )
    parser.add_argument("--run-id", type=str, default=None, help="Explicit run identity")
    parser.add_argument(
        "--dry-run", action="store_true", help="Compute every decision but write nothing"
    )
    parser.add_argument("--limit", type=int, default=None, help="Stop after N records")
    parser.add_argument(
        "--skip-enrichment",
        action="store_true",
        help="Do not cross-reference official card data",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable DEBUG logging")

    args = parser.parse_args()

    try:
        config_loader = ConfigLoader()
        config = config_loader.load_config(args.config)
        config_loader.validate_config(config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(
        log_level="DEBUG" if args.verbose else config.logging.log_level,
        json_logs=config.logging.json_logs,
        log_file=config.logging.log_file,
    )

    options = SyncOptions(
        dry_run=args.dry_run,
        limit=args.limit,
        group_id=args.group,
        force_update=args.force,
        resume=args.resume,
        run_id=args.run_id,
        skip_enrichment=args.skip_enrichment,
    )

    try:
        report = asyncio.run(perform_sync(config, options))
    except CheckpointCorruptedError as e:
        log.error("sync_aborted", error=str(e))
        print(f"Checkpoint is corrupted: {e}", file=sys.stderr)
        sys.exit(1)

    print_summary(report)
    sys.exit(1 if report.status is SyncStatus.FAILED else 0)


if __name__ == "__main__":
    main()
