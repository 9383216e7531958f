"""
Tests for `services/split_engine.py`.

Covers contract rules:
- A paid event credits every party once per stable reference.
- A sale is credited at most once, even under a second paid reference.
- Refunds and chargebacks debit only tenant and affiliate, by what they hold.
- Platform, factory and industry entries are never touched by a reversal.
- A paid event that arrives after a reversal of the same sale credits nothing.
- Racing reversals of one sale debit each party once.
- Failures surface as SplitProcessingError with the event context attached.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List

import pytest

from conftest import AFFILIATE_ACCOUNT_ID, ORG_ID, PLATFORM_ACCOUNT_ID, SALE_ID, TENANT_ACCOUNT_ID
from domain.ledger import EntryKind, LedgerEntry, PartyRole, PartyShare
from domain.payment_attempt import PaymentAttempt
from domain.payment_event import LifecycleEvent
from domain.sale import Sale
from repositories import ledger_repository, payment_attempt_repository, sale_repository
from services.settings import Settings
from services.split_engine import (
    SplitProcessingError,
    process_paid_event,
    process_reversal_event,
    process_split_event,
)
from services.split_policy import AllocationInput

NOW = datetime(2025, 3, 10, 15, 30, 0, tzinfo=timezone.utc)
LATER = datetime(2025, 3, 20, 9, 0, 0, tzinfo=timezone.utc)

PAID_REF = "pagarme:4815162342:paid"
REFUND_REF = "pagarme:4815162342:refunded"
CHARGEBACK_REF = "pagarme:4815162342:chargedback"


def _sale(db) -> Sale:
    sale = sale_repository.get_sale_by_id(db, SALE_ID)
    assert sale is not None
    return sale


def _by_role(entries: List[LedgerEntry]) -> Dict[PartyRole, int]:
    totals: Dict[PartyRole, int] = {}
    for entry in entries:
        totals[entry.party_role] = totals.get(entry.party_role, 0) + entry.amount_cents
    return totals


def _pay(db, settings: Settings, reference: str = PAID_REF):
    return process_paid_event(
        db, _sale(db), reference, settings, amount_cents=10000, fee_cents=500, now=NOW
    )


def test_paid_event_credits_every_party(seeded_db, settings: Settings) -> None:
    outcome = _pay(seeded_db, settings)

    assert outcome.processed
    assert outcome.total_cents == 10000
    assert _by_role(outcome.entries) == {
        PartyRole.PLATFORM: 500,
        PartyRole.AFFILIATE: 1900,
        PartyRole.TENANT: 7600,
    }
    accounts = {entry.party_role: entry.account_id for entry in outcome.entries}
    assert accounts == {
        PartyRole.PLATFORM: PLATFORM_ACCOUNT_ID,
        PartyRole.AFFILIATE: AFFILIATE_ACCOUNT_ID,
        PartyRole.TENANT: TENANT_ACCOUNT_ID,
    }
    assert all(entry.kind is EntryKind.CREDIT and entry.reference_id == PAID_REF for entry in outcome.entries)
    assert len(seeded_db.rows("ledger_entries")) == 3


def test_paid_event_is_applied_once(seeded_db, settings: Settings) -> None:
    """Verify replaying the same reference writes nothing new."""

    _pay(seeded_db, settings)
    again = _pay(seeded_db, settings)

    assert not again.processed
    assert again.reason == "already processed"
    assert len(seeded_db.rows("ledger_entries")) == 3


def test_sale_is_credited_once_across_references(seeded_db, settings: Settings) -> None:
    """Verify a second paid reference for an already credited sale is ignored."""

    _pay(seeded_db, settings)
    second = _pay(seeded_db, settings, reference="pagarme:other-tx:paid")

    assert not second.processed
    assert second.reason == f"already credited under {PAID_REF}"
    assert len(seeded_db.rows("ledger_entries")) == 3


def test_refund_debits_only_tenant_and_affiliate(seeded_db, settings: Settings) -> None:
    _pay(seeded_db, settings)

    outcome = process_reversal_event(seeded_db, _sale(seeded_db), REFUND_REF, LifecycleEvent.REFUNDED, now=LATER)

    assert outcome.processed
    assert _by_role(outcome.entries) == {PartyRole.TENANT: -7600, PartyRole.AFFILIATE: -1900}
    assert all(entry.kind is EntryKind.REFUND for entry in outcome.entries)
    assert all(entry.release_at == LATER for entry in outcome.entries)

    net = _by_role(ledger_repository.list_entries(seeded_db, SALE_ID))
    assert net == {PartyRole.PLATFORM: 500, PartyRole.AFFILIATE: 0, PartyRole.TENANT: 0}


def test_chargeback_after_refund_does_not_over_debit(seeded_db, settings: Settings) -> None:
    _pay(seeded_db, settings)
    process_reversal_event(seeded_db, _sale(seeded_db), REFUND_REF, LifecycleEvent.REFUNDED, now=LATER)

    outcome = process_reversal_event(
        seeded_db, _sale(seeded_db), CHARGEBACK_REF, LifecycleEvent.CHARGEDBACK, now=LATER
    )

    assert not outcome.processed
    assert outcome.reason == "no liable credits"
    assert len(seeded_db.rows("ledger_entries")) == 5


def test_reversal_is_applied_once(seeded_db, settings: Settings) -> None:
    _pay(seeded_db, settings)
    sale = _sale(seeded_db)
    process_reversal_event(seeded_db, sale, CHARGEBACK_REF, LifecycleEvent.CHARGEDBACK, now=LATER)

    again = process_reversal_event(seeded_db, sale, CHARGEBACK_REF, LifecycleEvent.CHARGEDBACK, now=LATER)

    assert not again.processed
    assert again.reason == "already processed"
    assert len(seeded_db.rows("ledger_entries")) == 5


def test_reversal_without_credits_is_a_no_op(seeded_db) -> None:
    outcome = process_reversal_event(seeded_db, _sale(seeded_db), REFUND_REF, LifecycleEvent.REFUNDED, now=LATER)

    assert not outcome.processed
    assert seeded_db.rows("ledger_entries") == []


def test_reversal_rejects_paid_event(seeded_db) -> None:
    with pytest.raises(ValueError):
        process_reversal_event(seeded_db, _sale(seeded_db), PAID_REF, LifecycleEvent.PAID, now=LATER)


def test_factory_share_survives_refund(seeded_db, settings: Settings) -> None:
    """Verify a factory without its own account is booked to the tenant account and kept on refund."""

    seeded_db.seed("sale_items", {"sale_id": SALE_ID, "product_id": "prod-1", "quantity": 2, "total_cents": 10000})
    seeded_db.seed(
        "product_factory_costs",
        {"product_id": "prod-1", "factory_id": "fac-1", "unit_cost_cents": 1500, "is_active": True},
    )
    seeded_db.seed("factories", {"id": "fac-1", "name": "Fabrica Sul", "virtual_account_id": None})

    paid = _pay(seeded_db, settings)
    factory = [entry for entry in paid.entries if entry.party_role is PartyRole.FACTORY]

    assert _by_role(paid.entries) == {
        PartyRole.FACTORY: 3000,
        PartyRole.PLATFORM: 500,
        PartyRole.AFFILIATE: 1300,
        PartyRole.TENANT: 5200,
    }
    assert factory[0].account_id == TENANT_ACCOUNT_ID
    assert factory[0].release_at == NOW

    refund = process_reversal_event(seeded_db, _sale(seeded_db), REFUND_REF, LifecycleEvent.REFUNDED, now=LATER)

    assert _by_role(refund.entries) == {PartyRole.TENANT: -5200, PartyRole.AFFILIATE: -1300}


def test_organization_split_rules_override_defaults(seeded_db, settings: Settings) -> None:
    seeded_db.seed(
        "organization_split_rules",
        {"organization_id": ORG_ID, "platform_fee_percent": 10, "hold_days_tenant": 30},
    )

    outcome = _pay(seeded_db, settings)

    assert _by_role(outcome.entries) == {
        PartyRole.PLATFORM: 1500,
        PartyRole.AFFILIATE: 1700,
        PartyRole.TENANT: 6800,
    }
    tenant = next(entry for entry in outcome.entries if entry.party_role is PartyRole.TENANT)
    assert (tenant.release_at - NOW).days == 30


def test_affiliate_without_commission_uses_default(seeded_db, settings: Settings) -> None:
    seeded_db.tables["affiliates"][0]["commission_percentage"] = None

    outcome = _pay(seeded_db, settings)

    assert _by_role(outcome.entries)[PartyRole.AFFILIATE] == 950


def test_tenant_account_is_created_on_first_sale(seeded_db, settings: Settings) -> None:
    seeded_db.tables["virtual_accounts"] = [
        row for row in seeded_db.rows("virtual_accounts") if row["account_type"] != "tenant"
    ]

    outcome = _pay(seeded_db, settings)

    created = [row for row in seeded_db.rows("virtual_accounts") if row["account_type"] == "tenant"]
    assert len(created) == 1
    assert created[0]["holder_name"] == "Loja Exemplo"
    tenant = next(entry for entry in outcome.entries if entry.party_role is PartyRole.TENANT)
    assert tenant.account_id == created[0]["id"]


def test_insert_entries_ignores_existing_rows(seeded_db, settings: Settings) -> None:
    """Verify a concurrent second write of the same event set writes nothing."""

    outcome = _pay(seeded_db, settings)

    assert ledger_repository.insert_entries(seeded_db, outcome.entries) == []
    assert len(seeded_db.rows("ledger_entries")) == 3


def test_other_event_moves_no_money(seeded_db, settings: Settings) -> None:
    result = process_split_event(seeded_db, _sale(seeded_db), "pagarme:1:other", LifecycleEvent.OTHER, settings)

    assert result is None
    assert seeded_db.writes() == []


def test_datastore_failure_is_raised_with_context(seeded_db, settings: Settings) -> None:
    seeded_db.fail_on("ledger_entries", "upsert")

    with pytest.raises(SplitProcessingError) as excinfo:
        process_split_event(
            seeded_db, _sale(seeded_db), PAID_REF, LifecycleEvent.PAID, settings,
            amount_cents=10000, fee_cents=500, now=NOW,
        )

    assert excinfo.value.sale_id == SALE_ID
    assert excinfo.value.reference_id == PAID_REF
    assert excinfo.value.event is LifecycleEvent.PAID
    assert seeded_db.rows("ledger_entries") == []


def test_leaky_policy_is_rejected_before_writing(seeded_db, settings: Settings) -> None:
    def leaky(data: AllocationInput) -> List[PartyShare]:
        return [PartyShare(party=data.tenant, amount_cents=data.gross_cents - 1, release_at=data.now)]

    with pytest.raises(SplitProcessingError):
        process_split_event(
            seeded_db, _sale(seeded_db), PAID_REF, LifecycleEvent.PAID, settings,
            amount_cents=10000, policy=leaky, now=NOW,
        )

    assert seeded_db.rows("ledger_entries") == []


def test_paid_event_after_early_reversal_credits_nothing(seeded_db, settings: Settings) -> None:
    """Verify a chargeback delivered before the paid event keeps the sale uncredited."""

    payment_attempt_repository.record_attempt(
        seeded_db,
        PaymentAttempt(
            reference_id=CHARGEBACK_REF,
            sale_id=SALE_ID,
            gateway="pagarme",
            event=LifecycleEvent.CHARGEDBACK,
            payment_method="credit_card",
            amount_cents=10000,
            fee_cents=0,
            status="reversed",
            gateway_transaction_id="4815162342",
            created_at=NOW,
        ),
    )

    outcome = _pay(seeded_db, settings)

    assert not outcome.processed
    assert outcome.reason == "reversed before credit"
    assert seeded_db.rows("ledger_entries") == []


def test_racing_refund_and_chargeback_debit_once(seeded_db, settings: Settings, monkeypatch) -> None:
    """Verify a chargeback that read the ledger before a refund landed cannot debit again."""

    _pay(seeded_db, settings)
    process_reversal_event(seeded_db, _sale(seeded_db), REFUND_REF, LifecycleEvent.REFUNDED, now=LATER)

    real_list_entries = ledger_repository.list_entries

    def read_before_refund(client, sale_id, reference_id=None, kind=None):
        entries = real_list_entries(client, sale_id, reference_id=reference_id, kind=kind)
        return [entry for entry in entries if entry.kind is EntryKind.CREDIT]

    monkeypatch.setattr(ledger_repository, "list_entries", read_before_refund)

    outcome = process_reversal_event(
        seeded_db, _sale(seeded_db), CHARGEBACK_REF, LifecycleEvent.CHARGEDBACK, now=LATER
    )

    assert not outcome.processed
    assert outcome.reason == "concurrent reversal"
    assert len(seeded_db.rows("ledger_entries")) == 5
    assert _by_role(real_list_entries(seeded_db, SALE_ID))[PartyRole.TENANT] == 0
