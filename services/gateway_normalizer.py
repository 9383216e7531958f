"""
Gateway normalizer.

Turns a parsed webhook body into a canonical `GatewayEvent`. Each supported
gateway has a pydantic model of the fields we rely on and a normalizer
function; `_NORMALIZERS` is the dispatch table, tried in order. A payload that
no normalizer accepts, including one whose shape looks right but fails
validation, becomes an `UnrecognizedPayload`. Nothing here raises for bad
input and nothing here does I/O.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from domain.payment_event import Gateway, GatewayEvent, NormalizationResult, UnrecognizedPayload

logger = logging.getLogger(__name__)

Identifier = Union[str, int]


def _to_cents(value: Optional[Union[int, float, str]]) -> Optional[int]:
    """Convert an amount in currency units (e.g. 99.9) to integer cents."""

    if value is None:
        return None
    try:
        return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return None


def _text(value: Optional[Identifier]) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _interest(metadata: Mapping[str, Any]) -> int:
    raw = metadata.get("interest_amount_cents")
    try:
        return max(int(raw), 0) if raw is not None else 0
    except (TypeError, ValueError):
        return 0


class _GatewayModel(BaseModel):
    model_config = ConfigDict(extra="allow")


# ============================================================================
# Pagar.me
# ============================================================================

class PagarmeWebhook(_GatewayModel):
    id: Optional[Identifier] = None
    current_status: str
    metadata: Dict[str, Any]
    amount: Optional[int] = None
    cost: Optional[int] = None
    payment_method: Optional[str] = None


def normalize_pagarme(body: Mapping[str, Any]) -> NormalizationResult:
    if "current_status" not in body or not body.get("metadata"):
        return UnrecognizedPayload("not a pagarme payload", body)
    payload = PagarmeWebhook.model_validate(body)

    return GatewayEvent(
        gateway=Gateway.PAGARME,
        sale_id=_text(payload.metadata.get("sale_id")),
        raw_status=payload.current_status,
        transaction_id=_text(payload.id),
        payment_method=payload.payment_method,
        amount_cents=payload.amount,
        fee_cents=payload.cost,
        interest_cents=_interest(payload.metadata),
        raw_payload=body,
    )


# ============================================================================
# Appmax
# ============================================================================

class AppmaxOrder(_GatewayModel):
    id: Optional[Identifier] = None
    order_id: Optional[Identifier] = None
    external_id: Optional[Identifier] = None
    status: Optional[str] = None
    total: Optional[float] = None
    payment_type: Optional[str] = None


class AppmaxWebhook(_GatewayModel):
    event: str
    data: AppmaxOrder


def normalize_appmax(body: Mapping[str, Any]) -> NormalizationResult:
    if "event" not in body or not body.get("data"):
        return UnrecognizedPayload("not an appmax payload", body)
    payload = AppmaxWebhook.model_validate(body)
    order = payload.data

    return GatewayEvent(
        gateway=Gateway.APPMAX,
        sale_id=_text(order.external_id) or _text(order.order_id),
        raw_status=(order.status or payload.event or "").lower(),
        transaction_id=_text(order.order_id) or _text(order.id),
        payment_method=order.payment_type.lower() if order.payment_type else None,
        amount_cents=_to_cents(order.total),
        raw_payload=body,
    )


# ============================================================================
# Asaas
# ============================================================================

class AsaasPayment(_GatewayModel):
    id: Optional[str] = None
    external_reference: Optional[Identifier] = Field(default=None, alias="externalReference")
    billing_type: Optional[str] = Field(default=None, alias="billingType")
    value: Optional[float] = None
    net_value: Optional[float] = Field(default=None, alias="netValue")


class AsaasWebhook(_GatewayModel):
    event: str
    payment: AsaasPayment


def normalize_asaas(body: Mapping[str, Any]) -> NormalizationResult:
    if "payment" not in body or not body.get("event"):
        return UnrecognizedPayload("not an asaas payload", body)
    payload = AsaasWebhook.model_validate(body)
    payment = payload.payment

    amount = _to_cents(payment.value)
    net = _to_cents(payment.net_value)
    fee = amount - net if amount is not None and net is not None and amount >= net else None

    return GatewayEvent(
        gateway=Gateway.ASAAS,
        sale_id=_text(payment.external_reference),
        raw_status=payload.event,
        transaction_id=payment.id,
        payment_method=payment.billing_type.lower() if payment.billing_type else None,
        amount_cents=amount,
        fee_cents=fee,
        raw_payload=body,
    )


# ============================================================================
# Stripe
# ============================================================================

class StripeObject(_GatewayModel):
    id: Optional[str] = None
    amount: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    payment_intent: Optional[Union[str, Dict[str, Any]]] = None
    balance_transaction: Optional[Union[str, Dict[str, Any]]] = None
    application_fee_amount: Optional[int] = None


class StripeData(_GatewayModel):
    object: StripeObject


class StripeWebhook(_GatewayModel):
    type: str
    data: StripeData


_STRIPE_EVENT_PREFIXES = ("payment_intent", "charge")


def _stripe_fee(obj: StripeObject) -> Optional[int]:
    # The fee is only present when the balance transaction was expanded.
    if isinstance(obj.balance_transaction, dict) and obj.balance_transaction.get("fee") is not None:
        return int(obj.balance_transaction["fee"])
    return obj.application_fee_amount


def normalize_stripe(body: Mapping[str, Any]) -> NormalizationResult:
    event_type = body.get("type")
    if not isinstance(event_type, str) or not event_type.startswith(_STRIPE_EVENT_PREFIXES):
        return UnrecognizedPayload("not a stripe payment payload", body)
    payload = StripeWebhook.model_validate(body)
    obj = payload.data.object

    # Charges and disputes point back at their payment intent; using it keeps
    # every event of one payment on the same transaction id.
    intent = obj.payment_intent
    intent_id = intent.get("id") if isinstance(intent, dict) else intent

    return GatewayEvent(
        gateway=Gateway.STRIPE,
        sale_id=_text(obj.metadata.get("sale_id")),
        raw_status=payload.type,
        transaction_id=intent_id or obj.id,
        payment_method="card",
        amount_cents=obj.amount,
        fee_cents=_stripe_fee(obj),
        interest_cents=_interest(obj.metadata),
        raw_payload=body,
    )


Normalizer = Callable[[Mapping[str, Any]], NormalizationResult]

# Detection order matters: the first normalizer that accepts the body wins.
_NORMALIZERS: Dict[Gateway, Normalizer] = {
    Gateway.PAGARME: normalize_pagarme,
    Gateway.APPMAX: normalize_appmax,
    Gateway.ASAAS: normalize_asaas,
    Gateway.STRIPE: normalize_stripe,
}


def _try(gateway: Gateway, normalizer: Normalizer, body: Mapping[str, Any]) -> NormalizationResult:
    try:
        return normalizer(body)
    except ValidationError as exc:
        logger.info("Payload matched %s shape but failed validation: %s", gateway.value, exc.errors())
        return UnrecognizedPayload(f"invalid {gateway.value} payload", body)


def normalize_payload(body: Any, gateway_hint: Optional[str] = None) -> NormalizationResult:
    """
    Normalize a parsed webhook body.

    Args:
        body: JSON-decoded request body (any JSON value)
        gateway_hint: gateway name from a gateway-specific URL; restricts
            detection to that gateway

    Returns:
        GatewayEvent, or UnrecognizedPayload when no gateway accepts the body

    Example:
        normalize_payload({"current_status": "paid", "metadata": {"sale_id": "s1"}, "id": 7})
        # GatewayEvent(gateway=Gateway.PAGARME, sale_id='s1', raw_status='paid', ...)
    """

    if not isinstance(body, Mapping):
        return UnrecognizedPayload("payload is not a JSON object", body)

    if gateway_hint is not None:
        try:
            gateway = Gateway(gateway_hint.lower())
        except ValueError:
            return UnrecognizedPayload(f"unsupported gateway {gateway_hint!r}", body)
        candidates = [(gateway, _NORMALIZERS[gateway])]
    else:
        candidates = list(_NORMALIZERS.items())

    for gateway, normalizer in candidates:
        result = _try(gateway, normalizer, body)
        if isinstance(result, GatewayEvent):
            return result

    return UnrecognizedPayload("Unknown gateway format", body)


__all__ = [
    "normalize_payload",
    "normalize_pagarme",
    "normalize_appmax",
    "normalize_asaas",
    "normalize_stripe",
]
