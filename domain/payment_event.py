"""
Domain: canonical payment events.

Every supported gateway posts its own webhook shape. The normalizer reduces
them to a `GatewayEvent`; payloads that match no known shape become an
`UnrecognizedPayload` instead of raising, so the webhook can answer 200 and
stop the gateway from retrying pointlessly.

The stable reference built here is the sole deduplication token for attempt
logging and ledger writes. It is derived from the *normalized* event type and
never from the raw status text, so "paid" and "captured" deliveries of the same
transaction collapse to one reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union


class Gateway(str, Enum):
    """Payment processors whose webhooks are understood."""

    PAGARME = "pagarme"
    APPMAX = "appmax"
    ASAAS = "asaas"
    STRIPE = "stripe"


class LifecycleEvent(str, Enum):
    """Closed set of events the settlement pipeline reacts to."""

    PAID = "paid"
    REFUNDED = "refunded"
    CHARGEDBACK = "chargedback"
    OTHER = "other"

    @property
    def is_reversal(self) -> bool:
        return self in (LifecycleEvent.REFUNDED, LifecycleEvent.CHARGEDBACK)


@dataclass(frozen=True, slots=True)
class GatewayEvent:
    """
    One webhook delivery in canonical form.

    amount_cents / fee_cents are None when the gateway did not report them;
    the split engine then falls back to the sale total and a zero fee.
    """

    gateway: Gateway
    sale_id: Optional[str]
    raw_status: str
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    amount_cents: Optional[int] = None
    fee_cents: Optional[int] = None
    interest_cents: int = 0
    raw_payload: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class UnrecognizedPayload:
    """Body parsed as JSON but matched no known gateway shape."""

    reason: str
    raw_payload: Any = field(default=None, compare=False, repr=False)


NormalizationResult = Union[GatewayEvent, UnrecognizedPayload]


@dataclass(frozen=True, slots=True)
class StatusMapping:
    """
    Result of mapping a raw gateway status.

    new_sale_status: lifecycle status to apply, or None to leave it alone.
    payment_status: value for the sale's payment_status, or None when the raw
        status is unknown and the sale must not be touched.
    event: normalized lifecycle event.
    """

    new_sale_status: Optional[str]
    payment_status: Optional[str]
    event: LifecycleEvent


UNKNOWN_STATUS = StatusMapping(new_sale_status=None, payment_status=None, event=LifecycleEvent.OTHER)


def build_stable_reference(
    gateway: Gateway | str,
    transaction_id: Optional[str],
    sale_id: Optional[str],
    event: LifecycleEvent,
) -> str:
    """
    Build the idempotency key `gateway:transaction_or_sale:event`.

    Example:
        build_stable_reference(Gateway.PAGARME, "tx_1", "sale-1", LifecycleEvent.PAID)
        # 'pagarme:tx_1:paid'
    """

    gateway_name = gateway.value if isinstance(gateway, Gateway) else str(gateway)
    subject = transaction_id or sale_id or "unknown"
    return f"{gateway_name}:{subject}:{event.value}"
