"""
API Request and Response Models.

Pydantic models for serializing API responses. Webhook bodies are not modeled
here: gateways post their own shapes, validated by the gateway normalizer.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel


# ============================================================================
# Webhook Models
# ============================================================================

class WebhookStatusResponse(BaseModel):
    """Answer to webhook health checks (GET/HEAD)."""
    status: str
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "status": "ok",
                "message": "Payment webhook active"
            }
        }


# ============================================================================
# Ledger Models
# ============================================================================

class LedgerEntryResponse(BaseModel):
    """Single ledger entry."""
    reference_id: str
    party_role: str  # factory, industry, platform, affiliate, tenant
    account_id: str
    amount_cents: int
    entry_kind: str  # credit, refund, chargeback
    release_at: datetime
    description: str
    created_at: Optional[datetime] = None


class SaleLedgerResponse(BaseModel):
    """All ledger entries of a sale with net totals per party role."""
    sale_id: str
    entries: List[LedgerEntryResponse]
    totals_by_role: Dict[str, int]
    net_cents: int

    class Config:
        json_schema_extra = {
            "example": {
                "sale_id": "123e4567-e89b-12d3-a456-426614174000",
                "entries": [],
                "totals_by_role": {
                    "platform": 500,
                    "affiliate": 1900,
                    "tenant": 7600
                },
                "net_cents": 10000
            }
        }


class AccountBalanceResponse(BaseModel):
    """Balances of one ledger account, derived from its entries."""
    account_id: str
    pending_cents: int
    available_cents: int
    total_cents: int

    class Config:
        json_schema_extra = {
            "example": {
                "account_id": "123e4567-e89b-12d3-a456-426614174001",
                "pending_cents": 7600,
                "available_cents": 0,
                "total_cents": 7600
            }
        }


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Invalid request",
                "detail": "Sale has no ledger entries",
                "status_code": 404
            }
        }
