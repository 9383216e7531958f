"""
Split engine.

Turns one normalized payment event into ledger entries:

- `paid`: credits every party of the sale according to a split policy.
- `refunded` / `chargedback`: debits only the liable parties (tenant and
  affiliate) by what they still hold from the sale. Platform, factory and
  industry entries are never touched.

Each (sale, stable reference) moves from unprocessed to processed exactly once.
Re-running an event first finds its existing entries and does nothing; two
concurrent runs that both miss the check still write a single set, because
the entries go in through one duplicate-ignoring upsert keyed by the
reference. A party is also debited at most once per sale: when a refund and
a chargeback race, the datastore rejects the second set of debits and that
event becomes a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from domain.ledger import EntryKind, LedgerEntry, PartyRole, SplitParty
from domain.payment_event import LifecycleEvent
from domain.partner import PartnerCost
from domain.sale import Sale
from domain.time import require_utc_timestamp, utc_now
from repositories import ledger_repository, payment_attempt_repository, split_config_repository
from repositories.client import Client, RepositoryError, is_unique_violation
from services.settings import Settings
from services.split_policy import (
    AffiliateShareRule,
    AllocationInput,
    SplitPolicy,
    check_conservation,
    default_policy,
)

logger = logging.getLogger(__name__)


class SplitProcessingError(RuntimeError):
    """Split processing failed; the event is safe to retry."""

    def __init__(self, message: str, sale_id: str, reference_id: str, event: LifecycleEvent) -> None:
        super().__init__(message)
        self.sale_id = sale_id
        self.reference_id = reference_id
        self.event = event


@dataclass(frozen=True, slots=True)
class SplitOutcome:
    """
    Result of applying one event.

    processed is True only when this call wrote the event's entries.
    """

    sale_id: str
    reference_id: str
    event: LifecycleEvent
    processed: bool
    entries: List[LedgerEntry] = field(default_factory=list)
    reason: str = ""

    @property
    def total_cents(self) -> int:
        return sum(entry.amount_cents for entry in self.entries)


# ============================================================================
# Party resolution
# ============================================================================

def _partner_amounts(
    client: Client,
    sale_id: str,
    tenant_account_id: str,
) -> List[tuple[SplitParty, int]]:
    """Factory then industry parties with what each is owed, one row per account."""

    items = split_config_repository.list_sale_items(client, sale_id)
    if not items:
        return []
    product_ids = sorted({item.product_id for item in items})

    amounts: Dict[tuple[PartyRole, str], tuple[SplitParty, int]] = {}
    for role in (PartyRole.FACTORY, PartyRole.INDUSTRY):
        costs: List[PartnerCost] = split_config_repository.list_partner_costs(client, role, product_ids)
        for cost in costs:
            for item in items:
                if item.product_id != cost.product_id:
                    continue
                amount = cost.amount_for(item)
                if amount <= 0:
                    continue
                account_id = cost.account_id or tenant_account_id
                key = (role, account_id)
                party, total = amounts.get(key, (SplitParty(role, account_id, cost.name), 0))
                amounts[key] = (party, total + amount)
    return list(amounts.values())


def build_allocation_input(
    client: Client,
    sale: Sale,
    settings: Settings,
    now: datetime,
    amount_cents: Optional[int] = None,
    fee_cents: int = 0,
    interest_cents: int = 0,
) -> AllocationInput:
    """Load the sale's split configuration into a policy input."""

    rules = split_config_repository.load_split_rules(
        client, sale.organization_id, settings.default_split_rules
    )
    platform = SplitParty(
        PartyRole.PLATFORM,
        split_config_repository.get_platform_account_id(client, settings.platform_account_id),
        "Platform",
    )
    tenant_account_id = split_config_repository.get_or_create_tenant_account(client, sale.organization_id)
    tenant = SplitParty(PartyRole.TENANT, tenant_account_id, "Tenant")

    affiliate_rule: Optional[AffiliateShareRule] = None
    affiliate = split_config_repository.get_affiliate_for_sale(client, sale.sale_id)
    if affiliate is not None:
        if affiliate.account_id:
            affiliate_rule = AffiliateShareRule(
                party=SplitParty(PartyRole.AFFILIATE, affiliate.account_id, affiliate.code),
                commission_percent=(
                    affiliate.commission_percent
                    if affiliate.commission_percent is not None
                    else rules.default_affiliate_percent
                ),
            )
        else:
            logger.warning(
                "Affiliate %s of sale %s has no ledger account; commission stays with tenant",
                affiliate.affiliate_id,
                sale.sale_id,
            )

    return AllocationInput(
        sale_id=sale.sale_id,
        gross_cents=amount_cents if amount_cents is not None else sale.total_cents,
        fee_cents=fee_cents,
        interest_cents=interest_cents,
        rules=rules,
        platform=platform,
        tenant=tenant,
        now=now,
        affiliate=affiliate_rule,
        partners=_partner_amounts(client, sale.sale_id, tenant_account_id),
    )


# ============================================================================
# Event processing
# ============================================================================

def process_paid_event(
    client: Client,
    sale: Sale,
    reference_id: str,
    settings: Settings,
    amount_cents: Optional[int] = None,
    fee_cents: int = 0,
    interest_cents: int = 0,
    policy: SplitPolicy = default_policy,
    now: Optional[datetime] = None,
) -> SplitOutcome:
    """
    Credit every party of a paid sale, once per stable reference.

    Raises:
        RepositoryError: datastore failure
        ConservationError: the policy's shares do not add up to the gross
    """

    now = now or utc_now()
    require_utc_timestamp("now", now)
    event = LifecycleEvent.PAID

    existing = ledger_repository.list_entries(client, sale.sale_id, reference_id=reference_id)
    if existing:
        logger.info("Event %s already applied to sale %s, skipping", reference_id, sale.sale_id)
        return SplitOutcome(sale.sale_id, reference_id, event, False, existing, "already processed")

    credits = ledger_repository.list_entries(client, sale.sale_id, kind=EntryKind.CREDIT)
    if credits:
        # Same payment reported twice under different transaction ids
        # (e.g. a payment intent and its charge).
        previous = credits[0].reference_id
        logger.warning(
            "Sale %s already credited under %s; ignoring paid event %s",
            sale.sale_id,
            previous,
            reference_id,
        )
        return SplitOutcome(sale.sale_id, reference_id, event, False, [], f"already credited under {previous}")

    if payment_attempt_repository.has_reversal_attempt(client, sale.sale_id):
        # Delivery order is not guaranteed; a reversal that arrived first had
        # nothing to debit and the money is already back with the buyer.
        logger.warning(
            "Sale %s was refunded or charged back before %s; not crediting",
            sale.sale_id,
            reference_id,
        )
        return SplitOutcome(sale.sale_id, reference_id, event, False, [], "reversed before credit")

    allocation = build_allocation_input(
        client, sale, settings, now,
        amount_cents=amount_cents, fee_cents=fee_cents, interest_cents=interest_cents,
    )
    shares = policy(allocation)
    check_conservation(shares, allocation.gross_cents)

    if not shares:
        logger.info("Sale %s has nothing to split for %s", sale.sale_id, reference_id)
        return SplitOutcome(sale.sale_id, reference_id, event, False, [], "nothing to split")

    entries = [
        LedgerEntry(
            sale_id=sale.sale_id,
            reference_id=reference_id,
            party_role=share.party.role,
            account_id=share.party.account_id,
            amount_cents=share.amount_cents,
            kind=EntryKind.CREDIT,
            release_at=share.release_at,
            description=share.description,
            created_at=now,
        )
        for share in shares
    ]

    written = ledger_repository.insert_entries(client, entries)
    if not written:
        logger.info("Concurrent delivery already applied %s to sale %s", reference_id, sale.sale_id)
        return SplitOutcome(sale.sale_id, reference_id, event, False, [], "concurrent duplicate")

    logger.info(
        "Processed splits for sale %s (%s): %s",
        sale.sale_id,
        reference_id,
        ", ".join(f"{e.party_role.value}={e.amount_cents}" for e in written),
    )
    return SplitOutcome(sale.sale_id, reference_id, event, True, written)


def _outstanding_by_party(entries: List[LedgerEntry]) -> Dict[tuple[PartyRole, str], int]:
    """What each liable party still holds from the sale (credits minus earlier debits)."""

    outstanding: Dict[tuple[PartyRole, str], int] = {}
    for entry in entries:
        if entry.party_role.liable_for_reversal:
            outstanding[entry.party_key] = outstanding.get(entry.party_key, 0) + entry.amount_cents
    return outstanding


def process_reversal_event(
    client: Client,
    sale: Sale,
    reference_id: str,
    event: LifecycleEvent,
    now: Optional[datetime] = None,
) -> SplitOutcome:
    """
    Debit the liable parties of a refunded or charged-back sale, once per reference.

    Raises:
        ValueError: if `event` is not a reversal
        RepositoryError: datastore failure
    """

    if not event.is_reversal:
        raise ValueError(f"{event.value!r} is not a reversal event")
    now = now or utc_now()
    require_utc_timestamp("now", now)

    existing = ledger_repository.list_entries(client, sale.sale_id, reference_id=reference_id)
    if existing:
        logger.info("Event %s already applied to sale %s, skipping", reference_id, sale.sale_id)
        return SplitOutcome(sale.sale_id, reference_id, event, False, existing, "already processed")

    kind = EntryKind.for_event(event)
    label = "Refund" if kind is EntryKind.REFUND else "Chargeback"
    debits = [
        LedgerEntry(
            sale_id=sale.sale_id,
            reference_id=reference_id,
            party_role=role,
            account_id=account_id,
            amount_cents=-held,
            kind=kind,
            release_at=now,
            description=f"{label} - sale #{sale.sale_id[:8]}",
            created_at=now,
        )
        for (role, account_id), held in _outstanding_by_party(
            ledger_repository.list_entries(client, sale.sale_id)
        ).items()
        if held > 0
    ]

    if not debits:
        logger.info("No liable credits to reverse for sale %s (%s)", sale.sale_id, reference_id)
        return SplitOutcome(sale.sale_id, reference_id, event, False, [], "no liable credits")

    try:
        written = ledger_repository.insert_entries(client, debits)
    except RepositoryError as exc:
        if not is_unique_violation(exc):
            raise
        # Another reversal of this sale (refund vs chargeback) was written
        # between our read and our insert; each party is debited once per sale.
        logger.warning(
            "Sale %s already reversed by a concurrent event; ignoring %s",
            sale.sale_id,
            reference_id,
        )
        return SplitOutcome(sale.sale_id, reference_id, event, False, [], "concurrent reversal")
    if not written:
        logger.info("Concurrent delivery already applied %s to sale %s", reference_id, sale.sale_id)
        return SplitOutcome(sale.sale_id, reference_id, event, False, [], "concurrent duplicate")

    logger.info(
        "Processed %s for sale %s (%s): %s",
        event.value,
        sale.sale_id,
        reference_id,
        ", ".join(f"{e.party_role.value}={e.amount_cents}" for e in written),
    )
    return SplitOutcome(sale.sale_id, reference_id, event, True, written)


def process_split_event(
    client: Client,
    sale: Sale,
    reference_id: str,
    event: LifecycleEvent,
    settings: Settings,
    amount_cents: Optional[int] = None,
    fee_cents: int = 0,
    interest_cents: int = 0,
    policy: SplitPolicy = default_policy,
    now: Optional[datetime] = None,
) -> Optional[SplitOutcome]:
    """
    Dispatch an event to the matching processor.

    Returns None for events that do not move money (`other`).

    Raises:
        SplitProcessingError: any failure, with sale id, reference and event attached
    """

    if event is LifecycleEvent.OTHER:
        return None

    try:
        if event is LifecycleEvent.PAID:
            return process_paid_event(
                client, sale, reference_id, settings,
                amount_cents=amount_cents, fee_cents=fee_cents, interest_cents=interest_cents,
                policy=policy, now=now,
            )
        return process_reversal_event(client, sale, reference_id, event, now=now)
    except Exception as exc:
        logger.error(
            "Split processing failed for sale %s, reference %s, event %s",
            sale.sale_id,
            reference_id,
            event.value,
            exc_info=True,
        )
        raise SplitProcessingError(str(exc), sale.sale_id, reference_id, event) from exc


__all__ = [
    "SplitOutcome",
    "SplitProcessingError",
    "build_allocation_input",
    "process_paid_event",
    "process_reversal_event",
    "process_split_event",
]
