"""
Domain: split parties and ledger entries.

Liability rules (the core invariant of settlement):
- Factory and industry partners are paid first, released immediately and are
  never debited when a sale is refunded or charged back.
- The platform keeps its fee, including any installment interest it bundled,
  and is never debited either.
- Only the tenant that owns the sale and its affiliate absorb reversals.

A ledger entry is one money movement for one party, tagged with the stable
reference of the event that produced it. For a given (sale, reference) the
set of entries is written at most once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .payment_event import LifecycleEvent
from .time import require_utc_timestamp


class PartyRole(str, Enum):
    """Stakeholders that may receive part of a sale's proceeds."""

    FACTORY = "factory"
    INDUSTRY = "industry"
    PLATFORM = "platform"
    AFFILIATE = "affiliate"
    TENANT = "tenant"

    @property
    def liable_for_reversal(self) -> bool:
        return self in LIABLE_ROLES

    @property
    def immediate_release(self) -> bool:
        return self in (PartyRole.FACTORY, PartyRole.INDUSTRY)


LIABLE_ROLES: frozenset[PartyRole] = frozenset({PartyRole.TENANT, PartyRole.AFFILIATE})


class EntryKind(str, Enum):
    CREDIT = "credit"
    REFUND = "refund"
    CHARGEBACK = "chargeback"

    @classmethod
    def for_event(cls, event: LifecycleEvent) -> "EntryKind":
        if event is LifecycleEvent.PAID:
            return cls.CREDIT
        if event is LifecycleEvent.REFUNDED:
            return cls.REFUND
        if event is LifecycleEvent.CHARGEDBACK:
            return cls.CHARGEBACK
        raise ValueError(f"No ledger entry kind for event {event.value!r}")


@dataclass(frozen=True, slots=True)
class SplitParty:
    """A resolved stakeholder: its role and the ledger account it is paid into."""

    role: PartyRole
    account_id: str
    name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PartyShare:
    """
    One party's portion of a paid sale, as computed by a split policy.

    Shares are always positive; policies drop zero-amount shares.
    """

    party: SplitParty
    amount_cents: int
    release_at: datetime
    percentage: Optional[float] = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError(f"share amount must be > 0, got {self.amount_cents}")
        require_utc_timestamp("release_at", self.release_at)


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """
    Immutable money movement for one party of one sale event.

    amount_cents is signed: credits are positive, refund/chargeback debits are
    negative.
    """

    sale_id: str
    reference_id: str
    party_role: PartyRole
    account_id: str
    amount_cents: int
    kind: EntryKind
    release_at: datetime
    description: str = ""
    entry_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("release_at", self.release_at)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.kind is EntryKind.CREDIT and self.amount_cents <= 0:
            raise ValueError("credit entries must have a positive amount")
        if self.kind is not EntryKind.CREDIT and self.amount_cents >= 0:
            raise ValueError(f"{self.kind.value} entries must have a negative amount")

    @property
    def party_key(self) -> tuple[PartyRole, str]:
        return (self.party_role, self.account_id)


@dataclass(frozen=True, slots=True)
class SplitRules:
    """
    Tenant-configurable split parameters.

    Percentages are 0-100. Hold days delay the release of a party's credit;
    factory and industry shares are always released immediately.
    """

    platform_fee_percent: float = 0.0
    platform_fee_fixed_cents: int = 0
    default_affiliate_percent: float = 10.0
    hold_days_tenant: int = 14
    hold_days_affiliate: int = 15
    hold_days_platform: int = 0

    def __post_init__(self) -> None:
        for name in ("platform_fee_percent", "default_affiliate_percent"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be between 0 and 100, got {value}")
        if self.platform_fee_fixed_cents < 0:
            raise ValueError("platform_fee_fixed_cents must be >= 0")
        for name in ("hold_days_tenant", "hold_days_affiliate", "hold_days_platform"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    def hold_days_for(self, role: PartyRole) -> int:
        if role is PartyRole.TENANT:
            return self.hold_days_tenant
        if role is PartyRole.AFFILIATE:
            return self.hold_days_affiliate
        if role is PartyRole.PLATFORM:
            return self.hold_days_platform
        return 0


@dataclass(frozen=True, slots=True)
class AccountBalance:
    """Balances of one ledger account derived from its entries."""

    account_id: str
    pending_cents: int
    available_cents: int

    @property
    def total_cents(self) -> int:
        return self.pending_cents + self.available_cents
