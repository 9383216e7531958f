#!/usr/bin/env python3
"""
Replay logged payment webhooks.

Re-runs the webhook pipeline for payloads stored in `payment_attempts`, e.g.
after a split failure was fixed or to bring sale statuses back in line with
the ledger. Safe to run any number of times: every write is keyed by the
event's stable reference, so already-applied events are no-ops.

Usage:
    python scripts/replay_payment_attempts.py --sale-id 123e4567-e89b-12d3-a456-426614174000
    python scripts/replay_payment_attempts.py --since 2025-01-01T00:00:00Z --limit 200
    python scripts/replay_payment_attempts.py --sale-id ... --dry-run
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.time import parse_utc_datetime
from repositories.client import create_supabase_client
from repositories.payment_attempt_repository import list_attempts
from services.settings import load_settings
from services.webhook_service import process_webhook


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay logged payment webhooks.")
    parser.add_argument("--sale-id", help="Only replay attempts of this sale")
    parser.add_argument("--since", help="Only replay attempts logged at or after this ISO-8601 time")
    parser.add_argument("--limit", type=int, default=500, help="Maximum attempts to replay (default: 500)")
    parser.add_argument("--dry-run", action="store_true", help="List what would be replayed")
    args = parser.parse_args(argv)
    if not args.sale_id and not args.since:
        parser.error("one of --sale-id or --since is required")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")
    client = create_supabase_client(settings)

    since = parse_utc_datetime(args.since) if args.since else None
    attempts = list_attempts(client, sale_id=args.sale_id, since=since, limit=args.limit)

    print("=" * 60)
    print(f"Replaying {len(attempts)} payment attempt(s){' (dry run)' if args.dry_run else ''}")
    print("=" * 60)

    failures = 0
    for attempt in attempts:
        if args.dry_run:
            print(f"  {attempt.reference_id}  sale={attempt.sale_id}  status={attempt.status}")
            continue

        outcome = process_webhook(
            client,
            settings,
            json.dumps(dict(attempt.raw_payload)),
            gateway_hint=attempt.gateway,
        )
        processed = outcome.body.get("splitsProcessed")
        print(f"  {attempt.reference_id}: HTTP {outcome.status_code} splits_processed={processed}")
        if outcome.status_code >= 500:
            failures += 1

    print("-" * 60)
    print(f"Failures: {failures}")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
