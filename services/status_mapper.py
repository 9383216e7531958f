"""
Status mapper.

Per-gateway lookup tables from raw status text (lower-cased) to a
`StatusMapping`. Raw statuses missing from a table map to `UNKNOWN_STATUS`:
event `other`, no sale change. An unknown status is never guessed into `paid`.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable

from domain.payment_event import UNKNOWN_STATUS, Gateway, LifecycleEvent, StatusMapping
from domain.sale import CANCELLED, PAYMENT_CONFIRMED

logger = logging.getLogger(__name__)

PAID = StatusMapping(PAYMENT_CONFIRMED, "paid", LifecycleEvent.PAID)
REFUNDED = StatusMapping(CANCELLED, "refunded", LifecycleEvent.REFUNDED)
CHARGEDBACK = StatusMapping(CANCELLED, "chargedback", LifecycleEvent.CHARGEDBACK)
FAILED = StatusMapping(CANCELLED, "cancelled", LifecycleEvent.OTHER)
ANALYZING = StatusMapping(None, "analyzing", LifecycleEvent.OTHER)
PENDING = StatusMapping(None, "pending", LifecycleEvent.OTHER)
OVERDUE = StatusMapping(None, "overdue", LifecycleEvent.OTHER)


def _table(*groups: tuple[StatusMapping, Iterable[str]]) -> Dict[str, StatusMapping]:
    table: Dict[str, StatusMapping] = {}
    for mapping, statuses in groups:
        for status in statuses:
            table[status.lower()] = mapping
    return table


_STATUS_TABLES: Dict[Gateway, Dict[str, StatusMapping]] = {
    Gateway.PAGARME: _table(
        (PAID, ("paid", "captured", "approved", "overpaid")),
        (REFUNDED, ("refunded",)),
        (CHARGEDBACK, ("chargedback", "chargeback")),
        (FAILED, ("refused", "failed", "canceled", "cancelled")),
        (ANALYZING, ("analyzing", "pending_review")),
        (PENDING, ("processing", "authorized", "waiting_payment", "pending", "pending_refund", "underpaid")),
    ),
    Gateway.APPMAX: _table(
        (PAID, ("paid", "approved", "captured", "aprovado", "order.paid", "order_paid")),
        (REFUNDED, ("refunded", "estornado", "order.refunded", "order_refunded")),
        (CHARGEDBACK, ("chargeback", "chargedback", "order.chargeback", "order_chargeback")),
        (FAILED, ("refused", "cancelled", "canceled", "denied", "cancelado", "order.cancelled")),
        (PENDING, ("pending", "waiting", "processing", "authorized", "pendente", "order.created")),
    ),
    Gateway.ASAAS: _table(
        (PAID, ("PAYMENT_CONFIRMED", "PAYMENT_RECEIVED", "PAYMENT_RECEIVED_IN_CASH")),
        (REFUNDED, ("PAYMENT_REFUNDED",)),
        (CHARGEDBACK, ("PAYMENT_CHARGEBACK_REQUESTED", "PAYMENT_CHARGEBACK_DISPUTE")),
        (FAILED, ("PAYMENT_DELETED", "PAYMENT_REPROVED_BY_RISK_ANALYSIS")),
        (ANALYZING, ("PAYMENT_AWAITING_RISK_ANALYSIS",)),
        (OVERDUE, ("PAYMENT_OVERDUE",)),
        (PENDING, ("PAYMENT_CREATED", "PAYMENT_UPDATED", "PAYMENT_AWAITING_CHARGEBACK_REVERSAL")),
    ),
    Gateway.STRIPE: _table(
        (PAID, ("payment_intent.succeeded", "charge.succeeded")),
        (REFUNDED, ("charge.refunded",)),
        (CHARGEDBACK, ("charge.dispute.created",)),
        (FAILED, ("payment_intent.payment_failed", "payment_intent.canceled", "charge.failed")),
        (PENDING, (
            "payment_intent.created",
            "payment_intent.processing",
            "payment_intent.requires_action",
            "charge.pending",
        )),
    ),
}


def map_status(gateway: Gateway, raw_status: str) -> StatusMapping:
    """
    Map a gateway's raw status to the pipeline's status triple.

    Example:
        map_status(Gateway.ASAAS, "PAYMENT_RECEIVED").event
        # LifecycleEvent.PAID
    """

    mapping = _STATUS_TABLES[gateway].get((raw_status or "").strip().lower())
    if mapping is None:
        logger.info("Unmapped %s status %r treated as 'other'", gateway.value, raw_status)
        return UNKNOWN_STATUS
    return mapping


__all__ = ["map_status"]
