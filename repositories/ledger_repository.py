"""
Ledger repository (persistence).

`ledger_entries` is unique on (sale_id, reference_id, party_role, account_id).
All entries of one event are written in a single multi-row upsert that ignores
duplicates, so a replayed or concurrent event never produces a second copy of
any entry and an event's set is never half-written.

Reads page through PostgREST's max-rows cap, ordered by (created_at, id) so
pages never overlap.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence

from domain.ledger import EntryKind, LedgerEntry, PartyRole
from domain.time import parse_utc_datetime
from repositories.client import Client, execute, fetch_all

_LEDGER_TABLE: str = "ledger_entries"
_LEDGER_CONFLICT_KEY: str = "sale_id,reference_id,party_role,account_id"


def _row_to_entry(row: Mapping[str, Any]) -> LedgerEntry:
    return LedgerEntry(
        entry_id=str(row["id"]) if row.get("id") is not None else None,
        sale_id=str(row["sale_id"]),
        reference_id=str(row["reference_id"]),
        party_role=PartyRole(str(row["party_role"])),
        account_id=str(row["account_id"]),
        amount_cents=int(row["amount_cents"]),
        kind=EntryKind(str(row["entry_kind"])),
        release_at=parse_utc_datetime(row["release_at"]),
        description=str(row.get("description") or ""),
        created_at=parse_utc_datetime(row["created_at"]) if row.get("created_at") else None,
    )


def _entry_to_row(entry: LedgerEntry) -> dict[str, Any]:
    row: dict[str, Any] = {
        "sale_id": entry.sale_id,
        "reference_id": entry.reference_id,
        "party_role": entry.party_role.value,
        "account_id": entry.account_id,
        "amount_cents": entry.amount_cents,
        "entry_kind": entry.kind.value,
        "release_at": entry.release_at.isoformat(),
        "description": entry.description,
    }
    if entry.created_at is not None:
        row["created_at"] = entry.created_at.isoformat()
    return row


def list_entries(
    client: Client,
    sale_id: str,
    reference_id: Optional[str] = None,
    kind: Optional[EntryKind] = None,
) -> List[LedgerEntry]:
    """List a sale's entries, optionally for one event reference and/or kind."""

    def build_query() -> Any:
        query = client.table(_LEDGER_TABLE).select("*").eq("sale_id", sale_id)
        if reference_id is not None:
            query = query.eq("reference_id", reference_id)
        if kind is not None:
            query = query.eq("entry_kind", kind.value)
        return query.order("created_at").order("id")

    rows = fetch_all(build_query, "list ledger entries")
    return [_row_to_entry(row) for row in rows]


def list_entries_for_account(client: Client, account_id: str) -> List[LedgerEntry]:
    """Every entry of one ledger account, across as many pages as it takes."""

    rows = fetch_all(
        lambda: client.table(_LEDGER_TABLE)
        .select("*")
        .eq("account_id", account_id)
        .order("created_at")
        .order("id"),
        "list account ledger entries",
    )
    return [_row_to_entry(row) for row in rows]


def insert_entries(client: Client, entries: Sequence[LedgerEntry]) -> List[LedgerEntry]:
    """
    Insert an event's entries in one statement, skipping any that already exist.

    Returns:
        The entries actually written (empty if all were already present)
    """

    if not entries:
        return []

    rows = execute(
        client.table(_LEDGER_TABLE).upsert(
            [_entry_to_row(entry) for entry in entries],
            on_conflict=_LEDGER_CONFLICT_KEY,
            ignore_duplicates=True,
        ),
        "insert ledger entries",
    )
    return [_row_to_entry(row) for row in rows]


__all__ = ["list_entries", "list_entries_for_account", "insert_entries"]
