"""
Tests for `domain/sale.py`.

Covers contract rules:
- Sale is immutable (frozen) and rejects negative totals.
- Cancellation always applies.
- Payment confirmation never regresses a sale that is past payment.
- A refunded or charged-back payment is never reopened.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from domain.sale import CANCELLED, PAYMENT_CONFIRMED, Sale


def _sale(status: str | None) -> Sale:
    return Sale(sale_id="s-1", organization_id="org-1", total_cents=1000, status=status)


def test_sale_is_immutable() -> None:
    """Verify Sale cannot be mutated after creation (frozen entity)."""

    sale = _sale("pending")

    with pytest.raises(FrozenInstanceError):
        sale.status = CANCELLED  # type: ignore[misc]


def test_sale_rejects_negative_total() -> None:
    with pytest.raises(ValueError):
        Sale(sale_id="s-1", organization_id="org-1", total_cents=-1)


@pytest.mark.parametrize("status", [None, "", "draft", "pending", "pending_payment", "awaiting_payment"])
def test_payment_confirmation_applies_before_payment(status: str | None) -> None:
    assert _sale(status).lifecycle_status_after(PAYMENT_CONFIRMED) == PAYMENT_CONFIRMED


@pytest.mark.parametrize("status", ["shipped", "delivered", CANCELLED])
def test_payment_confirmation_does_not_regress(status: str) -> None:
    """Verify a late paid ping leaves a sale that moved past payment alone."""

    assert _sale(status).lifecycle_status_after(PAYMENT_CONFIRMED) is None


def test_cancellation_always_applies() -> None:
    assert _sale("delivered").lifecycle_status_after(CANCELLED) == CANCELLED


def test_unchanged_or_missing_status_is_not_written() -> None:
    assert _sale(CANCELLED).lifecycle_status_after(CANCELLED) is None
    assert _sale("pending").lifecycle_status_after(None) is None


@pytest.mark.parametrize("reversed_status", ["refunded", "chargedback"])
def test_reversed_payment_is_not_reopened(reversed_status: str) -> None:
    """Verify a paid notification delivered after a reversal leaves the payment status alone."""

    sale = Sale(sale_id="s-1", organization_id="org-1", total_cents=1000, payment_status=reversed_status)

    assert sale.payment_status_after("paid") is None
    assert sale.payment_status_after("pending") is None
    assert sale.payment_status_after("chargedback") == "chargedback"


def test_payment_status_moves_freely_before_reversal() -> None:
    sale = Sale(sale_id="s-1", organization_id="org-1", total_cents=1000, payment_status="paid")

    assert sale.payment_status_after("refunded") == "refunded"
    assert sale.payment_status_after(None) is None
    assert _sale("pending").payment_status_after("paid") == "paid"
