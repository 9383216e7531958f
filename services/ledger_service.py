"""
Ledger read models.

Balances and per-sale breakdowns are derived from ledger entries on demand;
the ledger is the only source of truth for who holds what.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from domain.ledger import AccountBalance, LedgerEntry
from domain.time import require_utc_timestamp, utc_now
from repositories import ledger_repository
from repositories.client import Client


@dataclass(frozen=True, slots=True)
class SaleBreakdown:
    """All ledger entries of a sale with net totals per party role."""

    sale_id: str
    entries: List[LedgerEntry]
    totals_by_role: Dict[str, int]

    @property
    def net_cents(self) -> int:
        return sum(self.totals_by_role.values())


def get_sale_breakdown(client: Client, sale_id: str) -> SaleBreakdown:
    entries = ledger_repository.list_entries(client, sale_id)
    totals: Dict[str, int] = {}
    for entry in entries:
        role = entry.party_role.value
        totals[role] = totals.get(role, 0) + entry.amount_cents
    return SaleBreakdown(sale_id=sale_id, entries=entries, totals_by_role=totals)


def get_account_balance(client: Client, account_id: str, now: Optional[datetime] = None) -> AccountBalance:
    """
    Balance of one ledger account.

    Credits whose release date is still in the future are pending, released
    credits are available. Reversal debits take effect immediately and are
    settled per sale: first against that sale's still-pending credits, and
    only the remainder against the available balance. A refund that lands
    before the release date therefore zeroes the pending credit instead of
    leaving it pending next to a negative available balance.
    """

    now = now or utc_now()
    require_utc_timestamp("now", now)

    # sale_id -> [pending credits, released credits, debits]
    per_sale: Dict[str, List[int]] = {}
    for entry in ledger_repository.list_entries_for_account(client, account_id):
        totals = per_sale.setdefault(entry.sale_id, [0, 0, 0])
        if entry.amount_cents < 0:
            totals[2] -= entry.amount_cents
        elif entry.release_at > now:
            totals[0] += entry.amount_cents
        else:
            totals[1] += entry.amount_cents

    pending = 0
    available = 0
    for pending_credits, released_credits, debits in per_sale.values():
        from_pending = min(debits, pending_credits)
        pending += pending_credits - from_pending
        available += released_credits - (debits - from_pending)

    return AccountBalance(account_id=account_id, pending_cents=pending, available_cents=available)


__all__ = ["SaleBreakdown", "get_sale_breakdown", "get_account_balance"]
