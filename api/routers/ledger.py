"""
Ledger API Endpoints.

Read-only views over the split ledger: a sale's financial breakdown and an
account's balances.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_supabase
from api.models import AccountBalanceResponse, ErrorResponse, LedgerEntryResponse, SaleLedgerResponse
from repositories.client import Client, RepositoryError
from services.ledger_service import get_account_balance, get_sale_breakdown

router = APIRouter()


def _parse_uuid(value: str, name: str) -> str:
    try:
        return str(UUID(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid UUID format for {name}")


@router.get(
    "/sales/{sale_id}/ledger",
    response_model=SaleLedgerResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Sale Financial Breakdown",
    description="Every ledger entry written for a sale, with net totals per party role."
)
def get_sale_ledger(sale_id: str, client: Client = Depends(get_supabase)):
    """
    Show how a sale's proceeds were split and reversed.

    Totals are net: a refunded sale shows the tenant and affiliate back at
    zero while platform and partner totals keep their original credit.
    """
    sale_key = _parse_uuid(sale_id, "sale_id")

    try:
        breakdown = get_sale_breakdown(client, sale_key)
    except RepositoryError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load ledger: {str(e)}")

    if not breakdown.entries:
        raise HTTPException(status_code=404, detail=f"No ledger entries for sale: {sale_id}")

    return SaleLedgerResponse(
        sale_id=breakdown.sale_id,
        entries=[
            LedgerEntryResponse(
                reference_id=entry.reference_id,
                party_role=entry.party_role.value,
                account_id=entry.account_id,
                amount_cents=entry.amount_cents,
                entry_kind=entry.kind.value,
                release_at=entry.release_at,
                description=entry.description,
                created_at=entry.created_at,
            )
            for entry in breakdown.entries
        ],
        totals_by_role=breakdown.totals_by_role,
        net_cents=breakdown.net_cents,
    )


@router.get(
    "/accounts/{account_id}/balance",
    response_model=AccountBalanceResponse,
    summary="Account Balance",
    description="Pending and available balance of a ledger account."
)
def get_balance(account_id: str, client: Client = Depends(get_supabase)):
    account_key = _parse_uuid(account_id, "account_id")

    try:
        balance = get_account_balance(client, account_key)
    except RepositoryError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load balance: {str(e)}")

    return AccountBalanceResponse(
        account_id=balance.account_id,
        pending_cents=balance.pending_cents,
        available_cents=balance.available_cents,
        total_cents=balance.total_cents,
    )
