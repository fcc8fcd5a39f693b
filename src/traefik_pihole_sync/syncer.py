"""Reconciliation of Traefik hostnames into Pi-hole local DNS records.

Only additions are made: hostnames routed by Traefik but missing from Pi-hole
are created pointing at the Traefik host. Records are never updated or removed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping

from .errors import SyncError
from .pihole import PiholeClient, PiholeSession
from .traefik import TraefikRouteSource, extract_hostnames

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of one sync pass."""

    dry_run: bool = False
    desired: int = 0
    existing: int = 0
    added_hostnames: List[str] = field(default_factory=list)
    failed_hostnames: List[str] = field(default_factory=list)
    planned_hostnames: List[str] = field(default_factory=list)

    @property
    def added(self) -> int:
        return len(self.added_hostnames)

    @property
    def failed(self) -> int:
        return len(self.failed_hostnames)

    @property
    def would_add(self) -> int:
        return len(self.planned_hostnames)


def reconcile(
    desired: Iterable[str],
    existing: Mapping[str, str],
    target_ip: str,
    writer,
    *,
    dry_run: bool = False,
) -> SyncReport:
    """Add every desired hostname that has no existing record.

    ``writer`` is anything with an ``add_record(hostname, address)`` method,
    normally a :class:`~traefik_pihole_sync.pihole.PiholeSession`. A failed
    write is logged and counted; the remaining hostnames are still processed.
    """
    report = SyncReport(dry_run=dry_run)
    hostnames = sorted(set(desired))
    report.desired = len(hostnames)

    for hostname in hostnames:
        if hostname in existing:
            report.existing += 1
            logger.debug(f"  Already exists: {hostname} -> {existing[hostname]}")
            continue

        if dry_run:
            report.planned_hostnames.append(hostname)
            logger.info(f"  [DRY-RUN] Would add: {hostname} -> {target_ip}")
            continue

        try:
            writer.add_record(hostname, target_ip)
        except SyncError as e:
            report.failed_hostnames.append(hostname)
            logger.warning(f"  Failed to add {hostname}: {e}")
        else:
            report.added_hostnames.append(hostname)
            logger.info(f"  Added: {hostname} -> {target_ip}")

    return report


class PiholeSyncer:
    """Runs sync passes from a Traefik instance into a Pi-hole instance."""

    def __init__(
        self,
        *,
        route_source: TraefikRouteSource,
        pihole: PiholeClient,
        target_ip: str,
        dry_run: bool = False,
    ):
        self.route_source = route_source
        self.pihole = pihole
        self.target_ip = target_ip
        self.dry_run = dry_run
        self._pass_lock = threading.Lock()

    def sync_once(self) -> SyncReport:
        """Run one full pass.

        Raises:
            SyncError: authentication, route discovery or reading the existing
                records failed. Nothing has been written in that case.
        """
        with self._pass_lock:
            return self._sync()

    def _sync(self) -> SyncReport:
        session = self.pihole.authenticate()
        try:
            return self._sync_with(session)
        finally:
            session.close()

    def _sync_with(self, session: PiholeSession) -> SyncReport:
        routes = self.route_source.fetch_routes()
        logger.info(f"Found {len(routes)} routers in {self.route_source.name}")

        hostnames = extract_hostnames(routes)
        logger.info(f"Extracted {len(hostnames)} unique hostnames")

        if not hostnames:
            logger.warning("No hostnames found to sync")
            return SyncReport(dry_run=self.dry_run)

        existing = session.get_records()
        logger.info(f"Found {len(existing)} existing DNS records in {self.pihole.name}")

        report = reconcile(hostnames, existing, self.target_ip, session, dry_run=self.dry_run)

        if self.dry_run:
            logger.info(f"DRY-RUN: Would have added {report.would_add} new DNS records")
        elif report.failed:
            logger.warning(
                f"Sync completed: {report.added} records added, {report.failed} failed "
                f"({', '.join(report.failed_hostnames)})"
            )
        else:
            logger.info(f"Sync completed: {report.added} records added")
        return report
