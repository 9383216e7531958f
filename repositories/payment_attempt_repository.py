"""
Payment attempt repository (persistence).

`payment_attempts.reference_id` carries a unique constraint. Inserts go
through an upsert that ignores duplicates, so concurrent deliveries of the same
event race safely: exactly one row wins and the others are no-ops.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional

from domain.payment_attempt import PaymentAttempt
from domain.payment_event import LifecycleEvent
from domain.time import parse_utc_datetime, require_utc_timestamp, utc_now
from repositories.client import Client, execute

_ATTEMPTS_TABLE: str = "payment_attempts"


def _row_to_attempt(row: Mapping[str, Any]) -> PaymentAttempt:
    return PaymentAttempt(
        reference_id=str(row["reference_id"]),
        sale_id=str(row["sale_id"]),
        gateway=str(row["gateway"]),
        event=LifecycleEvent(str(row.get("event_type") or LifecycleEvent.OTHER.value)),
        payment_method=str(row.get("payment_method") or "unknown"),
        amount_cents=int(row.get("amount_cents") or 0),
        fee_cents=int(row.get("fee_cents") or 0),
        status=str(row.get("status") or "pending"),
        gateway_transaction_id=row.get("gateway_transaction_id"),
        raw_payload=row.get("response_data") or {},
        created_at=parse_utc_datetime(row["created_at"]) if row.get("created_at") else None,
    )


def record_attempt(client: Client, attempt: PaymentAttempt) -> bool:
    """
    Insert the attempt unless one with the same reference already exists.

    Returns:
        True if a new row was written, False if the reference was already logged
    """

    payload: dict[str, Any] = {
        "reference_id": attempt.reference_id,
        "sale_id": attempt.sale_id,
        "gateway": attempt.gateway,
        "event_type": attempt.event.value,
        "payment_method": attempt.payment_method,
        "amount_cents": attempt.amount_cents,
        "fee_cents": attempt.fee_cents,
        "status": attempt.status,
        "gateway_transaction_id": attempt.gateway_transaction_id,
        "attempt_number": 1,
        "is_fallback": False,
        "response_data": dict(attempt.raw_payload),
        "created_at": (attempt.created_at or utc_now()).isoformat(),
    }

    rows = execute(
        client.table(_ATTEMPTS_TABLE).upsert(
            payload, on_conflict="reference_id", ignore_duplicates=True
        ),
        "record payment attempt",
    )
    return bool(rows)


def list_attempts(
    client: Client,
    sale_id: Optional[str] = None,
    since: Optional[datetime] = None,
    limit: int = 500,
) -> List[PaymentAttempt]:
    """
    List logged attempts, oldest first, optionally for one sale or after a time.
    """

    query = client.table(_ATTEMPTS_TABLE).select("*")
    if sale_id is not None:
        query = query.eq("sale_id", sale_id)
    if since is not None:
        require_utc_timestamp("since", since)
        query = query.gte("created_at", since.isoformat())

    rows = execute(query.order("created_at").limit(limit), "list payment attempts")
    return [_row_to_attempt(row) for row in rows]


def find_sale_id_by_transaction(client: Client, gateway: str, transaction_id: str) -> Optional[str]:
    """The sale an earlier attempt with this gateway transaction id was logged for."""

    rows = execute(
        client.table(_ATTEMPTS_TABLE)
        .select("sale_id")
        .eq("gateway", gateway)
        .eq("gateway_transaction_id", transaction_id)
        .order("created_at")
        .limit(1),
        "find attempt by transaction",
    )
    return str(rows[0]["sale_id"]) if rows else None


def has_reversal_attempt(client: Client, sale_id: str) -> bool:
    """Whether a refund or chargeback has been logged for the sale."""

    rows = execute(
        client.table(_ATTEMPTS_TABLE)
        .select("reference_id")
        .eq("sale_id", sale_id)
        .in_("event_type", [LifecycleEvent.REFUNDED.value, LifecycleEvent.CHARGEDBACK.value])
        .limit(1),
        "check reversal attempts",
    )
    return bool(rows)


__all__ = [
    "record_attempt",
    "list_attempts",
    "find_sale_id_by_transaction",
    "has_reversal_attempt",
]
