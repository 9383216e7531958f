"""
Pytest configuration and shared fixtures.

This file adds the project root to the Python path so that tests can import
the domain, repositories and services packages, and provides an in-memory
Supabase stand-in seeded with one tenant, one affiliate and one pending sale.
"""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from services.settings import Settings  # noqa: E402
from fake_supabase import FakeSupabase  # noqa: E402

SALE_ID = "123e4567-e89b-12d3-a456-426614174000"
ORG_ID = "0b6a2f4e-1c55-4c41-9d5e-7a8c9d0e1f20"
PLATFORM_ACCOUNT_ID = "00000000-0000-0000-0000-0000000000a1"
TENANT_ACCOUNT_ID = "00000000-0000-0000-0000-0000000000b1"
AFFILIATE_ID = "00000000-0000-0000-0000-0000000000c0"
AFFILIATE_ACCOUNT_ID = "00000000-0000-0000-0000-0000000000c1"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        supabase_url="https://example.supabase.co",
        supabase_key="service-role-key",
        platform_account_id=PLATFORM_ACCOUNT_ID,
    )


@pytest.fixture
def db() -> FakeSupabase:
    """Empty datastore with the production unique indexes."""

    return FakeSupabase()


@pytest.fixture
def seeded_db(db: FakeSupabase) -> FakeSupabase:
    """
    Datastore with a pending R$ 100,00 sale owned by ORG_ID.

    The sale is attributed to an affiliate with a 20% commission; the platform
    and tenant ledger accounts already exist.
    """

    db.seed(
        "sales",
        {
            "id": SALE_ID,
            "organization_id": ORG_ID,
            "total_cents": 10000,
            "status": "pending",
            "payment_status": "pending",
            "notes": "Checkout order ORD-7788",
        },
    )
    db.seed("organizations", {"id": ORG_ID, "name": "Loja Exemplo", "owner_email": "dono@example.com"})
    db.seed(
        "virtual_accounts",
        {"id": PLATFORM_ACCOUNT_ID, "organization_id": None, "account_type": "platform"},
        {"id": TENANT_ACCOUNT_ID, "organization_id": ORG_ID, "account_type": "tenant"},
    )
    db.seed("affiliate_attributions", {"sale_id": SALE_ID, "affiliate_id": AFFILIATE_ID})
    db.seed(
        "affiliates",
        {
            "id": AFFILIATE_ID,
            "virtual_account_id": AFFILIATE_ACCOUNT_ID,
            "commission_percentage": 20,
            "affiliate_code": "JOAO20",
        },
    )
    return db
