"""
Tests for `services/status_mapper.py`.

Covers contract rules:
- Raw statuses are matched case-insensitively per gateway.
- Unknown statuses map to event `other` and leave the sale untouched.
"""

from __future__ import annotations

import pytest

from domain.payment_event import UNKNOWN_STATUS, Gateway, LifecycleEvent
from domain.sale import CANCELLED, PAYMENT_CONFIRMED
from services.status_mapper import map_status


@pytest.mark.parametrize(
    "gateway, raw_status, event",
    [
        (Gateway.PAGARME, "paid", LifecycleEvent.PAID),
        (Gateway.PAGARME, " Captured ", LifecycleEvent.PAID),
        (Gateway.PAGARME, "refunded", LifecycleEvent.REFUNDED),
        (Gateway.PAGARME, "chargedback", LifecycleEvent.CHARGEDBACK),
        (Gateway.APPMAX, "aprovado", LifecycleEvent.PAID),
        (Gateway.APPMAX, "estornado", LifecycleEvent.REFUNDED),
        (Gateway.APPMAX, "order.chargeback", LifecycleEvent.CHARGEDBACK),
        (Gateway.ASAAS, "PAYMENT_RECEIVED", LifecycleEvent.PAID),
        (Gateway.ASAAS, "PAYMENT_REFUNDED", LifecycleEvent.REFUNDED),
        (Gateway.ASAAS, "PAYMENT_CHARGEBACK_REQUESTED", LifecycleEvent.CHARGEDBACK),
        (Gateway.STRIPE, "payment_intent.succeeded", LifecycleEvent.PAID),
        (Gateway.STRIPE, "charge.refunded", LifecycleEvent.REFUNDED),
        (Gateway.STRIPE, "charge.dispute.created", LifecycleEvent.CHARGEDBACK),
    ],
)
def test_money_moving_statuses(gateway: Gateway, raw_status: str, event: LifecycleEvent) -> None:
    assert map_status(gateway, raw_status).event is event


def test_paid_confirms_sale_and_reversals_cancel_it() -> None:
    paid = map_status(Gateway.PAGARME, "paid")
    refunded = map_status(Gateway.PAGARME, "refunded")
    chargedback = map_status(Gateway.STRIPE, "charge.dispute.created")

    assert (paid.new_sale_status, paid.payment_status) == (PAYMENT_CONFIRMED, "paid")
    assert (refunded.new_sale_status, refunded.payment_status) == (CANCELLED, "refunded")
    assert (chargedback.new_sale_status, chargedback.payment_status) == (CANCELLED, "chargedback")


def test_failed_payment_cancels_without_moving_money() -> None:
    mapping = map_status(Gateway.PAGARME, "refused")

    assert mapping.event is LifecycleEvent.OTHER
    assert mapping.new_sale_status == CANCELLED
    assert mapping.payment_status == "cancelled"


def test_waiting_statuses_only_touch_payment_status() -> None:
    overdue = map_status(Gateway.ASAAS, "PAYMENT_OVERDUE")
    pending = map_status(Gateway.STRIPE, "payment_intent.processing")

    assert (overdue.new_sale_status, overdue.payment_status, overdue.event) == (None, "overdue", LifecycleEvent.OTHER)
    assert (pending.new_sale_status, pending.payment_status) == (None, "pending")


@pytest.mark.parametrize("gateway", list(Gateway))
def test_unknown_status_is_never_guessed(gateway: Gateway) -> None:
    """Verify an unmapped raw status is `other` with no sale change."""

    assert map_status(gateway, "something_new") == UNKNOWN_STATUS
    assert map_status(gateway, "") == UNKNOWN_STATUS
