"""
Split policies.

A split policy is a pure function from an `AllocationInput` to the list of
`PartyShare`s for a paid sale. Policies are pluggable; whatever policy is used,
the split engine checks its output with `check_conservation` before anything
is written, so shares always add up to exactly the gross amount.

The default policy pays, in order:
1. factory partners, then industry partners (released immediately)
2. the platform: gateway-reported fee, bundled installment interest and the
   configured percentage/fixed fee
3. the affiliate: its commission percent of what is left
4. the tenant: everything that remains

Every share is capped at the amount still unallocated, so an over-configured
cost or fee can shrink later shares but never create money.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional, Sequence

from domain.ledger import PartyRole, PartyShare, SplitParty, SplitRules
from domain.time import release_after, require_utc_timestamp


@dataclass(frozen=True, slots=True)
class AffiliateShareRule:
    party: SplitParty
    commission_percent: float


@dataclass(frozen=True, slots=True)
class AllocationInput:
    """
    Everything a policy needs to split one paid sale.

    partners: factory then industry parties with the amount each is owed,
        already aggregated per ledger account.
    """

    sale_id: str
    gross_cents: int
    fee_cents: int
    interest_cents: int
    rules: SplitRules
    platform: SplitParty
    tenant: SplitParty
    now: datetime
    affiliate: Optional[AffiliateShareRule] = None
    partners: Sequence[tuple[SplitParty, int]] = ()

    def __post_init__(self) -> None:
        require_utc_timestamp("now", self.now)
        if self.gross_cents < 0:
            raise ValueError(f"gross_cents must be >= 0, got {self.gross_cents}")
        if self.fee_cents < 0 or self.interest_cents < 0:
            raise ValueError("fee_cents and interest_cents must be >= 0")


SplitPolicy = Callable[[AllocationInput], List[PartyShare]]


class ConservationError(ValueError):
    """A policy produced shares that do not add up to the gross amount."""


def percent_of(amount_cents: int, percent: float) -> int:
    """`percent`% of an amount, rounded half up to whole cents."""

    value = Decimal(amount_cents) * Decimal(str(percent)) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _short(sale_id: str) -> str:
    return sale_id[:8]


def default_policy(data: AllocationInput) -> List[PartyShare]:
    remaining = data.gross_cents
    shares: List[PartyShare] = []

    def take(party: SplitParty, wanted: int, description: str, percentage: Optional[float] = None) -> None:
        nonlocal remaining
        amount = min(max(wanted, 0), remaining)
        if amount <= 0:
            return
        hold_days = 0 if party.role.immediate_release else data.rules.hold_days_for(party.role)
        shares.append(
            PartyShare(
                party=party,
                amount_cents=amount,
                release_at=release_after(data.now, hold_days),
                percentage=percentage,
                description=description,
            )
        )
        remaining -= amount

    sale = _short(data.sale_id)

    for role in (PartyRole.FACTORY, PartyRole.INDUSTRY):
        for party, amount in data.partners:
            if party.role is role:
                label = "Factory" if role is PartyRole.FACTORY else "Industry"
                take(party, amount, f"{label} {party.name or 'N/A'} - sale #{sale}")

    platform_fee = (
        data.fee_cents
        + data.interest_cents
        + percent_of(data.gross_cents, data.rules.platform_fee_percent)
        + data.rules.platform_fee_fixed_cents
    )
    take(data.platform, platform_fee, f"Platform fee - sale #{sale}", data.rules.platform_fee_percent)

    if data.affiliate is not None:
        percent = data.affiliate.commission_percent
        take(
            data.affiliate.party,
            percent_of(remaining, percent),
            f"Affiliate commission {data.affiliate.party.name or 'N/A'} - sale #{sale}",
            percent,
        )

    take(data.tenant, remaining, f"Sale #{sale} net of fees")
    return shares


def check_conservation(shares: Sequence[PartyShare], gross_cents: int) -> None:
    """
    Raise ConservationError unless shares sum to the gross with one share per account/role.
    """

    total = sum(share.amount_cents for share in shares)
    if total != gross_cents:
        raise ConservationError(f"shares sum to {total} cents, expected {gross_cents}")

    keys = [(share.party.role, share.party.account_id) for share in shares]
    if len(keys) != len(set(keys)):
        raise ConservationError("a party appears more than once in the split")


__all__ = [
    "AffiliateShareRule",
    "AllocationInput",
    "ConservationError",
    "SplitPolicy",
    "check_conservation",
    "default_policy",
    "percent_of",
]
