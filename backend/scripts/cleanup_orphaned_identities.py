#!/usr/bin/env python3
"""
Run the orphaned aggregator identity sweep once.

An identity is orphaned when the aggregator reports no accounts for it.
Identities younger than ORPHAN_CLEANUP_MIN_AGE_HOURS are left alone.

Usage:
    python -m scripts.cleanup_orphaned_identities
    python -m scripts.cleanup_orphaned_identities --min-age-hours 0
    python -m scripts.cleanup_orphaned_identities --dry-run
"""

import argparse
import os
import sys
from datetime import timedelta

# Add backend to path so we can import from there
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config import settings
from database import get_session_local
from integrations.exceptions import ProviderError
from integrations.parsing_utils import ensure_utc
from integrations.snaptrade_client import SnapTradeClient
from logging_config import setup_logging
from models.utils import utcnow
from services.credential_store import CredentialStore
from services.orphan_cleanup_service import OrphanCleanupService


def dry_run(client: SnapTradeClient, min_age: timedelta) -> int:
    """List identities the sweep would remove without deleting anything."""
    now = utcnow()
    db = get_session_local()()
    try:
        candidates = 0
        for row in CredentialStore().list_all(db):
            if row.created_at is not None and now - ensure_utc(row.created_at) < min_age:
                continue
            try:
                accounts = client.list_accounts(row.provider_user_id, row.provider_secret)
            except ProviderError as e:
                print(f"  ? {row.internal_user_id}: cannot list accounts ({type(e).__name__})")
                continue
            if not accounts:
                candidates += 1
                print(f"  - {row.internal_user_id}: no accounts")
        print(f"\n{candidates} identities older than {min_age} have no accounts.")
        return 0
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Remove aggregator identities with no linked accounts")
    parser.add_argument(
        "--min-age-hours",
        type=float,
        default=settings.ORPHAN_CLEANUP_MIN_AGE_HOURS,
        help="Skip identities younger than this (default: %(default)s)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Only list candidates")
    args = parser.parse_args()

    setup_logging()
    client = SnapTradeClient()
    if not client.is_configured():
        print("Error: SNAPTRADE_CLIENT_ID and SNAPTRADE_CONSUMER_KEY must be set in backend/.env or keychain")
        return 1

    min_age = timedelta(hours=args.min_age_hours)
    if args.dry_run:
        return dry_run(client, min_age)

    db = get_session_local()()
    try:
        report = OrphanCleanupService(client, min_age=min_age).run_sweep(db)
    finally:
        db.close()

    print("=" * 60)
    print(f"Checked:          {report.checked}")
    print(f"Orphaned:         {report.orphaned}")
    print(f"Removed locally:  {report.deleted_local}")
    print(f"Removed remotely: {report.deleted_remote}")
    print(f"Remote failures:  {report.remote_failures}")
    print(f"Skipped:          {report.skipped}")
    print("=" * 60)
    for error in report.errors:
        print(f"  ! {error}")
    return 1 if report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
