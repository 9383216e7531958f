"""
Domain: partner configuration that feeds a split.

Factories and industries are linked to products through cost rows; an
affiliate is linked to a sale through an attribution. These records are
configuration, read by the split engine and never written by it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .ledger import PartyRole


@dataclass(frozen=True, slots=True)
class SaleItem:
    product_id: str
    quantity: int
    total_cents: int


@dataclass(frozen=True, slots=True)
class PartnerCost:
    """
    Cost row tying a factory or industry to a product.

    account_id is None when the partner has no ledger account of its own; the
    share is then booked to the tenant's account under the partner's role.
    """

    role: PartyRole
    partner_id: str
    product_id: str
    account_id: Optional[str] = None
    name: Optional[str] = None
    unit_cost_cents: int = 0
    shipping_cost_cents: int = 0
    additional_cost_cents: int = 0
    fee_percent: float = 0.0  # factory only
    fee_fixed_cents: int = 0  # factory only, per unit

    def __post_init__(self) -> None:
        if self.role not in (PartyRole.FACTORY, PartyRole.INDUSTRY):
            raise ValueError(f"partner cost role must be factory or industry, got {self.role.value}")

    def amount_for(self, item: SaleItem) -> int:
        """Amount owed to this partner for one sale item, in cents."""

        quantity = item.quantity or 1
        unit_total = self.unit_cost_cents + self.shipping_cost_cents + self.additional_cost_cents
        amount = unit_total * quantity
        if self.role is PartyRole.FACTORY:
            if self.fee_percent > 0:
                amount += round(item.total_cents * self.fee_percent / 100)
            amount += self.fee_fixed_cents * quantity
        return max(amount, 0)


@dataclass(frozen=True, slots=True)
class AffiliateCommission:
    """An affiliate attributed to a sale. commission_percent None means use the default."""

    affiliate_id: str
    account_id: Optional[str]
    commission_percent: Optional[float] = None
    code: Optional[str] = None
