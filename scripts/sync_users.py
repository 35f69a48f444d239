#!/usr/bin/env python3
"""Run one user synchronization pass against the OpenVPN Access Server.

Uses the same settings (.env / environment) as the API, without starting it.

Usage:
    python scripts/sync_users.py --dry-run
    python scripts/sync_users.py --delete-orphaned
    python scripts/sync_users.py --user-id <uuid>
"""

import argparse
import logging
import sys

from ovpn_sync.config import get_settings
from ovpn_sync.database import SessionLocal
from ovpn_sync.exceptions import SyncServiceError
from ovpn_sync.openvpn import build_gateway
from ovpn_sync.services.device_monitor import DeviceMonitor
from ovpn_sync.services.user_sync import UserReconciler

logger = logging.getLogger("sync_users")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Synchronize users to OpenVPN Access Server")
    parser.add_argument("--dry-run", action="store_true", help="report what would change without changing it")
    parser.add_argument(
        "--delete-orphaned",
        action="store_true",
        help="delete Access Server accounts with no eligible local user",
    )
    parser.add_argument("--user-id", help="sync a single user by id")
    parser.add_argument("--skip-devices", action="store_true", help="do not refresh the device registry")
    return parser.parse_args(argv)


def print_summary(summary) -> None:
    mode = "DRY RUN" if summary.dry_run else "APPLIED"
    print(f"\n=== User sync summary ({mode}) ===")
    for key, value in summary.counts().items():
        print(f"  {key:<8} {value}")
    if summary.created:
        print("\nCreated accounts (share temporary passwords securely):")
        for account in summary.created:
            print(f"  {account.username}: {account.temp_password or '-'}")
    if summary.deleted:
        print("\nDeleted accounts: " + ", ".join(summary.deleted))
    for issue in summary.errors:
        print(f"  ERROR {issue.username}: {issue.error}")
    if summary.devices is not None:
        d = summary.devices
        print(
            f"\nDevices: {d.observed} observed, {d.created} new, {d.refreshed} refreshed, "
            f"{len(d.conflicts)} conflicts, {d.deactivated} deactivated"
        )


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    gateway = build_gateway(settings)
    reconciler = UserReconciler(
        gateway,
        SessionLocal,
        max_workers=settings.sync_max_workers,
        protected_accounts=settings.protected_accounts,
    )
    try:
        summary = reconciler.sync_users(
            dry_run=args.dry_run,
            delete_orphaned=args.delete_orphaned,
            user_id=args.user_id,
        )
        if not (args.dry_run or args.user_id or args.skip_devices):
            summary.devices = DeviceMonitor(gateway, SessionLocal).refresh()
    except SyncServiceError as e:
        logger.error("Sync failed: %s", e)
        return 1
    finally:
        gateway.close()
    print_summary(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
