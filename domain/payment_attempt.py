"""
Domain: payment attempt audit records.

One record per distinct webhook event, keyed by the stable reference. A
redelivered webhook maps to the same reference and is not recorded twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from .payment_event import GatewayEvent, LifecycleEvent
from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class PaymentAttempt:
    """Immutable audit row for one processed webhook event."""

    reference_id: str
    sale_id: str
    gateway: str
    event: LifecycleEvent
    payment_method: str
    amount_cents: int
    fee_cents: int
    status: str  # success, pending, failed, reversed
    gateway_transaction_id: Optional[str] = None
    raw_payload: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)


def attempt_status_for(event: LifecycleEvent, payment_status: Optional[str]) -> str:
    """Collapse an event into the attempt status shown in the audit trail."""

    if event is LifecycleEvent.PAID:
        return "success"
    if event.is_reversal:
        return "reversed"
    if payment_status in (None, "pending", "analyzing"):
        return "pending"
    return "failed"


def attempt_from_event(
    event: GatewayEvent,
    sale_id: str,
    reference_id: str,
    lifecycle: LifecycleEvent,
    payment_status: Optional[str],
    fallback_amount_cents: int,
) -> PaymentAttempt:
    """Build the audit record for a normalized event."""

    return PaymentAttempt(
        reference_id=reference_id,
        sale_id=sale_id,
        gateway=event.gateway.value,
        event=lifecycle,
        payment_method=event.payment_method or "unknown",
        amount_cents=event.amount_cents if event.amount_cents is not None else fallback_amount_cents,
        fee_cents=event.fee_cents or 0,
        status=attempt_status_for(lifecycle, payment_status),
        gateway_transaction_id=event.transaction_id,
        raw_payload=event.raw_payload,
    )
