"""
Split configuration repository.

Loads everything the split engine needs to know about who gets paid for a sale:
split rules, ledger accounts, the affiliate attribution and factory/industry
product costs. Reads only, except for creating a tenant's ledger account the
first time that tenant sells.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from domain.ledger import PartyRole, SplitRules
from domain.partner import AffiliateCommission, PartnerCost, SaleItem
from repositories.client import Client, execute

logger = logging.getLogger(__name__)

_ACCOUNTS_TABLE: str = "virtual_accounts"

# role -> (cost table, partner table, partner foreign key)
_PARTNER_TABLES: Dict[PartyRole, tuple[str, str, str]] = {
    PartyRole.FACTORY: ("product_factory_costs", "factories", "factory_id"),
    PartyRole.INDUSTRY: ("product_industry_costs", "industries", "industry_id"),
}


def _int(value: Any, default: int = 0) -> int:
    return int(value) if value is not None else default


def _float(value: Any, default: float = 0.0) -> float:
    return float(value) if value is not None else default


def load_split_rules(client: Client, organization_id: str, defaults: SplitRules) -> SplitRules:
    """
    Resolve split rules for an organization.

    Order: `organization_split_rules` row, then the `platform_settings` keys
    `platform_fees` and `withdrawal_rules`, then `defaults`.
    """

    rows = execute(
        client.table("organization_split_rules").select("*").eq("organization_id", organization_id).limit(1),
        "load organization split rules",
    )
    if rows:
        row = rows[0]
        return SplitRules(
            platform_fee_percent=_float(row.get("platform_fee_percent"), defaults.platform_fee_percent),
            platform_fee_fixed_cents=_int(row.get("platform_fee_fixed_cents"), defaults.platform_fee_fixed_cents),
            default_affiliate_percent=_float(
                row.get("default_affiliate_percent"), defaults.default_affiliate_percent
            ),
            hold_days_tenant=_int(row.get("hold_days_tenant"), defaults.hold_days_tenant),
            hold_days_affiliate=_int(row.get("hold_days_affiliate"), defaults.hold_days_affiliate),
            hold_days_platform=_int(row.get("hold_days_platform"), defaults.hold_days_platform),
        )

    settings_rows = execute(
        client.table("platform_settings").select("setting_key, setting_value"),
        "load platform settings",
    )
    settings = {row["setting_key"]: row.get("setting_value") or {} for row in settings_rows}
    fees: Mapping[str, Any] = settings.get("platform_fees") or {}
    withdrawal: Mapping[str, Any] = settings.get("withdrawal_rules") or {}

    return SplitRules(
        platform_fee_percent=_float(fees.get("percentage"), defaults.platform_fee_percent),
        platform_fee_fixed_cents=_int(fees.get("fixed_cents"), defaults.platform_fee_fixed_cents),
        default_affiliate_percent=defaults.default_affiliate_percent,
        hold_days_tenant=_int(withdrawal.get("release_days"), defaults.hold_days_tenant),
        hold_days_affiliate=defaults.hold_days_affiliate,
        hold_days_platform=defaults.hold_days_platform,
    )


def get_platform_account_id(client: Client, fallback: str) -> str:
    """The singleton platform ledger account, or `fallback` when none is provisioned."""

    rows = execute(
        client.table(_ACCOUNTS_TABLE).select("id").eq("account_type", "platform").limit(1),
        "get platform account",
    )
    return str(rows[0]["id"]) if rows else fallback


def _find_tenant_account(client: Client, organization_id: str) -> Optional[str]:
    rows = execute(
        client.table(_ACCOUNTS_TABLE)
        .select("id")
        .eq("organization_id", organization_id)
        .eq("account_type", "tenant")
        .limit(1),
        "get tenant account",
    )
    return str(rows[0]["id"]) if rows else None


def get_or_create_tenant_account(client: Client, organization_id: str) -> str:
    """
    Return the tenant's ledger account id, creating the account on first use.

    Creation is an upsert on the generated `tenant_key` column (the
    organization id of tenant accounts, NULL for every other type) that
    ignores duplicates, so two webhooks racing for a new tenant end up sharing
    one row while affiliate, factory and industry accounts of the same
    organization are unaffected.
    """

    account_id = _find_tenant_account(client, organization_id)
    if account_id:
        return account_id

    org_rows = execute(
        client.table("organizations").select("name, owner_email").eq("id", organization_id).limit(1),
        "get organization",
    )
    org = org_rows[0] if org_rows else {}

    execute(
        client.table(_ACCOUNTS_TABLE).upsert(
            {
                "organization_id": organization_id,
                "account_type": "tenant",
                "holder_name": org.get("name") or "Tenant",
                "holder_email": org.get("owner_email"),
            },
            on_conflict="tenant_key",
            ignore_duplicates=True,
        ),
        "create tenant account",
    )
    logger.info("Created tenant ledger account for organization %s", organization_id)

    account_id = _find_tenant_account(client, organization_id)
    if not account_id:
        raise RuntimeError(f"Tenant account for organization {organization_id} missing after creation")
    return account_id


def get_affiliate_for_sale(client: Client, sale_id: str) -> Optional[AffiliateCommission]:
    """The affiliate attributed to a sale, if any."""

    rows = execute(
        client.table("affiliate_attributions").select("affiliate_id").eq("sale_id", sale_id).limit(1),
        "get affiliate attribution",
    )
    if not rows or not rows[0].get("affiliate_id"):
        return None

    affiliate_id = str(rows[0]["affiliate_id"])
    affiliates = execute(
        client.table("affiliates")
        .select("id, virtual_account_id, commission_percentage, affiliate_code")
        .eq("id", affiliate_id)
        .limit(1),
        "get affiliate",
    )
    if not affiliates:
        logger.warning("Sale %s attributed to missing affiliate %s", sale_id, affiliate_id)
        return None

    affiliate = affiliates[0]
    commission = affiliate.get("commission_percentage")
    return AffiliateCommission(
        affiliate_id=affiliate_id,
        account_id=str(affiliate["virtual_account_id"]) if affiliate.get("virtual_account_id") else None,
        commission_percent=float(commission) if commission else None,
        code=affiliate.get("affiliate_code"),
    )


def list_sale_items(client: Client, sale_id: str) -> List[SaleItem]:
    rows = execute(
        client.table("sale_items").select("product_id, quantity, total_cents").eq("sale_id", sale_id),
        "list sale items",
    )
    return [
        SaleItem(
            product_id=str(row["product_id"]),
            quantity=_int(row.get("quantity"), 1),
            total_cents=_int(row.get("total_cents")),
        )
        for row in rows
    ]


def list_partner_costs(client: Client, role: PartyRole, product_ids: Sequence[str]) -> List[PartnerCost]:
    """
    Active factory or industry cost rows for the given products.

    Each row is joined to its partner to find the partner's ledger account.
    """

    if not product_ids:
        return []
    cost_table, partner_table, partner_key = _PARTNER_TABLES[role]

    cost_rows = execute(
        client.table(cost_table).select("*").in_("product_id", list(product_ids)).eq("is_active", True),
        f"list {role.value} costs",
    )
    if not cost_rows:
        return []

    partner_ids = sorted({str(row[partner_key]) for row in cost_rows if row.get(partner_key)})
    partners: Dict[str, Mapping[str, Any]] = {}
    if partner_ids:
        partner_rows = execute(
            client.table(partner_table).select("id, name, virtual_account_id").in_("id", partner_ids),
            f"list {partner_table}",
        )
        partners = {str(row["id"]): row for row in partner_rows}

    costs: List[PartnerCost] = []
    for row in cost_rows:
        partner_id = str(row.get(partner_key) or "")
        partner = partners.get(partner_id, {})
        costs.append(
            PartnerCost(
                role=role,
                partner_id=partner_id,
                product_id=str(row["product_id"]),
                account_id=str(partner["virtual_account_id"]) if partner.get("virtual_account_id") else None,
                name=partner.get("name"),
                unit_cost_cents=_int(row.get("unit_cost_cents")),
                shipping_cost_cents=_int(row.get("shipping_cost_cents")),
                additional_cost_cents=_int(row.get("additional_cost_cents")),
                fee_percent=_float(row.get("factory_fee_percent")),
                fee_fixed_cents=_int(row.get("factory_fee_fixed_cents")),
            )
        )
    return costs


__all__ = [
    "load_split_rules",
    "get_platform_account_id",
    "get_or_create_tenant_account",
    "get_affiliate_for_sale",
    "list_sale_items",
    "list_partner_costs",
]
