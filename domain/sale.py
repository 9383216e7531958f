"""
Domain: Sale records as seen by the settlement pipeline.

A sale is created by the order-entry flow elsewhere. Webhook processing only
reads it and moves its `status` / `payment_status` forward; sales are never
deleted, only superseded by newer statuses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# Lifecycle statuses from which a confirmed payment may advance the sale.
# Anything else (delivered, shipped, ...) is already past payment and must not
# be pulled back to `payment_confirmed` by a late or repeated "paid" ping.
PRE_PAYMENT_STATUSES: frozenset[str] = frozenset(
    {"", "draft", "pending", "pending_payment", "awaiting_payment"}
)

PAYMENT_CONFIRMED = "payment_confirmed"
CANCELLED = "cancelled"

# Payment statuses that end the payment; later non-reversal statuses are ignored.
REVERSED_PAYMENT_STATUSES: frozenset[str] = frozenset({"refunded", "chargedback"})


@dataclass(frozen=True, slots=True)
class Sale:
    """
    Immutable snapshot of a sale row.

    Amounts are integer cents. `organization_id` identifies the tenant that
    owns the sale and therefore the tenant ledger account.
    """

    sale_id: str
    organization_id: str
    total_cents: int
    status: Optional[str] = None
    payment_status: Optional[str] = None
    payment_transaction_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.total_cents < 0:
            raise ValueError(f"total_cents must be >= 0, got {self.total_cents}")

    def lifecycle_status_after(self, new_status: Optional[str]) -> Optional[str]:
        """
        Return the lifecycle status to write, or None to leave it unchanged.

        Cancellation always applies. Payment confirmation only applies while
        the sale has not moved past payment yet.
        """

        if not new_status or new_status == self.status:
            return None
        if new_status == PAYMENT_CONFIRMED and (self.status or "") not in PRE_PAYMENT_STATUSES:
            return None
        return new_status

    def payment_status_after(self, new_payment_status: Optional[str]) -> Optional[str]:
        """
        Return the payment status to write, or None to leave it unchanged.

        A refunded or charged-back sale stays that way: a "paid" notification
        delivered after the reversal must not flip it back to paid.
        """

        if not new_payment_status:
            return None
        if self.payment_status in REVERSED_PAYMENT_STATUSES and new_payment_status not in REVERSED_PAYMENT_STATUSES:
            return None
        return new_payment_status
