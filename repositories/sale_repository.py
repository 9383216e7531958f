"""
Sale repository (persistence).

Reads sales for the settlement pipeline and writes their payment/lifecycle
status. It does not decide which status to write; callers do.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from uuid import UUID

from domain.sale import Sale
from repositories.client import Client, execute

_SALES_TABLE: str = "sales"
_SALE_COLUMNS: str = "id, organization_id, total_cents, status, payment_status, payment_transaction_id"


def _row_to_sale(row: Mapping[str, Any]) -> Sale:
    """Convert a Supabase row into a Sale."""

    return Sale(
        sale_id=str(row["id"]),
        organization_id=str(row["organization_id"]),
        total_cents=int(row.get("total_cents") or 0),
        status=row.get("status"),
        payment_status=row.get("payment_status"),
        payment_transaction_id=row.get("payment_transaction_id"),
    )


def _is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except ValueError:
        return False
    return True


def get_sale_by_id(client: Client, sale_id: str) -> Optional[Sale]:
    """
    Retrieve a sale by its primary key.

    Identifiers that are not UUIDs cannot match the primary key and return
    None without a round trip (Postgres would reject them with a cast error).
    """

    if not _is_uuid(sale_id):
        return None

    rows = execute(
        client.table(_SALES_TABLE).select(_SALE_COLUMNS).eq("id", sale_id).limit(1),
        "get sale",
    )
    return _row_to_sale(rows[0]) if rows else None


def find_sale_by_note(client: Client, fragment: str) -> Optional[Sale]:
    """
    Retrieve the first sale whose notes mention `fragment`.

    Some checkout flows only store the gateway order code in the sale notes.
    """

    rows = execute(
        client.table(_SALES_TABLE).select(_SALE_COLUMNS).ilike("notes", f"%{fragment}%").limit(1),
        "find sale by note",
    )
    return _row_to_sale(rows[0]) if rows else None


def find_sale_by_transaction_id(client: Client, transaction_id: str) -> Optional[Sale]:
    """Retrieve the sale a gateway transaction was stored on when it was paid."""

    rows = execute(
        client.table(_SALES_TABLE)
        .select(_SALE_COLUMNS)
        .eq("payment_transaction_id", transaction_id)
        .limit(1),
        "find sale by transaction",
    )
    return _row_to_sale(rows[0]) if rows else None


def update_sale_status(
    client: Client,
    sale_id: str,
    payment_status: str,
    status: Optional[str] = None,
    payment_transaction_id: Optional[str] = None,
) -> None:
    """
    Update a sale's payment status, and its lifecycle status when given.

    Args:
        sale_id: Sale identifier
        payment_status: New payment status (paid, pending, refunded, ...)
        status: New lifecycle status, or None to leave it unchanged
        payment_transaction_id: Gateway transaction id, stored when known
    """

    payload: dict[str, Any] = {"payment_status": payment_status}
    if status:
        payload["status"] = status
    if payment_transaction_id:
        payload["payment_transaction_id"] = payment_transaction_id

    execute(client.table(_SALES_TABLE).update(payload).eq("id", sale_id), "update sale status")


__all__ = [
    "get_sale_by_id",
    "find_sale_by_note",
    "find_sale_by_transaction_id",
    "update_sale_status",
]
