#!/usr/bin/env python3
"""traefik-pihole-sync - keep Pi-hole local DNS in step with Traefik

Every hostname routed by an enabled Traefik HTTP router (any ``Host(`...`)``
clause in its rule) gets a Pi-hole local DNS record pointing at the Traefik
host. Records are only ever added, never changed or removed.

Usage:
    traefik-pihole-sync [--once] [--dry-run] [--config PATH]

    --once      Run a single sync pass and exit
    --dry-run   Log the records that would be added without adding them
    --config    YAML settings file (also CONFIG_PATH)

See ``traefik_pihole_sync.config`` for the environment variables.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List, Optional

from .config import Settings, load_settings
from .errors import ConfigurationError, SyncError
from .pihole import PiholeClient
from .scheduler import Scheduler, parse_schedule
from .syncer import PiholeSyncer, SyncReport
from .traefik import TraefikRouteSource

logger = logging.getLogger("traefik_pihole_sync")


# =============================================================================
# Logging Setup
# =============================================================================


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# =============================================================================
# Wiring
# =============================================================================


def create_syncer(settings: Settings) -> PiholeSyncer:
    """Build a syncer from the settings."""
    return PiholeSyncer(
        route_source=TraefikRouteSource(
            settings.traefik_api_url, timeout_seconds=settings.request_timeout
        ),
        pihole=PiholeClient(
            settings.pihole_url,
            settings.pihole_password,
            auth_encoding=settings.auth_encoding,
            write_mode=settings.write_mode,
            timeout_seconds=settings.request_timeout,
        ),
        target_ip=settings.target_ip,
        dry_run=settings.dry_run,
    )


def run_once(syncer: PiholeSyncer) -> Optional[SyncReport]:
    """Run one pass, logging a failed pass instead of raising."""
    try:
        return syncer.sync_once()
    except SyncError as e:
        logger.error(f"Sync failed: {e}")
    except Exception as e:
        logger.error(f"Sync failed unexpectedly: {e}", exc_info=True)
    return None


# =============================================================================
# Main
# =============================================================================


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="traefik-pihole-sync",
        description="Sync Traefik router hostnames into Pi-hole local DNS records.",
    )
    parser.add_argument("--once", action="store_true", default=None, help="Run sync once and exit")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Show what would be synced without making changes",
    )
    parser.add_argument("--config", metavar="PATH", help="YAML settings file")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        settings = load_settings(config_path=args.config, once=args.once, dry_run=args.dry_run)
    except ConfigurationError as e:
        setup_logging("INFO")
        for error in e.errors:
            logger.error(error)
        logger.error("Configuration validation failed")
        return 1

    setup_logging(settings.log_level)
    logger.info(f"traefik-pihole-sync: {settings.traefik_api_url} -> {settings.pihole_url}")
    logger.debug(f"Settings: {settings.describe()}")
    if settings.dry_run:
        logger.info("Running in DRY-RUN mode - no changes will be made")

    syncer = create_syncer(settings)

    logger.info("Starting Traefik to Pi-hole DNS sync...")
    run_once(syncer)

    if settings.once:
        logger.info("One-time sync completed")
        return 0

    scheduler = Scheduler(parse_schedule(settings.sync_interval), syncer.sync_once)

    def handle_signal(signum, frame):
        logger.info("Shutting down gracefully...")
        scheduler.stop()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    logger.info(f"Scheduled sync with interval: {settings.sync_interval}")
    scheduler.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
