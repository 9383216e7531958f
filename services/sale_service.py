"""
Sale locator and sale state updater.

The locator resolves the sale a webhook refers to: by primary key first, then
by a mention in the sale notes (some checkouts only keep the gateway order
code there). Events without any sale reference fall back to the gateway
transaction id.

The updater always records the payment status and only moves the lifecycle
status when the mapper supplied one that does not regress the sale. Its
failures are logged and reported, never raised: the ledger matters more than
this denormalized field, so split processing must still run.
"""

from __future__ import annotations

import logging
from typing import Optional

from domain.payment_event import StatusMapping
from domain.sale import Sale
from repositories import payment_attempt_repository, sale_repository
from repositories.client import Client, RepositoryError

logger = logging.getLogger(__name__)


def locate_sale(client: Client, sale_reference: str) -> Optional[Sale]:
    """
    Find the sale a webhook refers to.

    Returns:
        Sale or None if nothing matches

    Raises:
        RepositoryError: datastore failure
    """

    sale = sale_repository.get_sale_by_id(client, sale_reference)
    if sale is not None:
        return sale

    sale = sale_repository.find_sale_by_note(client, sale_reference)
    if sale is not None:
        logger.info("Sale %s located through notes reference %s", sale.sale_id, sale_reference)
    return sale


def locate_sale_by_transaction(client: Client, gateway: str, transaction_id: str) -> Optional[Sale]:
    """
    Find a sale from a gateway transaction id alone.

    Some follow-up events (Stripe disputes, for one) carry only the payment's
    transaction id and none of the metadata the checkout attached. The sale is
    found through the transaction id stored on it when it was paid, then
    through the payment attempts logged for that transaction.

    Raises:
        RepositoryError: datastore failure
    """

    sale = sale_repository.find_sale_by_transaction_id(client, transaction_id)
    if sale is None:
        sale_id = payment_attempt_repository.find_sale_id_by_transaction(client, gateway, transaction_id)
        sale = sale_repository.get_sale_by_id(client, sale_id) if sale_id else None
    if sale is not None:
        logger.info("Sale %s located through %s transaction %s", sale.sale_id, gateway, transaction_id)
    return sale


def apply_sale_status(
    client: Client,
    sale: Sale,
    mapping: StatusMapping,
    transaction_id: Optional[str] = None,
) -> bool:
    """
    Write the mapped status onto the sale.

    Returns:
        True if the sale was updated, False if there was nothing to write or
        the update failed (the failure is logged)
    """

    if mapping.payment_status is None:
        logger.info("No status change for sale %s (unmapped gateway status)", sale.sale_id)
        return False

    payment_status = sale.payment_status_after(mapping.payment_status)
    if payment_status is None:
        logger.warning(
            "Sale %s is already %s; ignoring payment_status=%s",
            sale.sale_id,
            sale.payment_status,
            mapping.payment_status,
        )
        return False

    new_status = sale.lifecycle_status_after(mapping.new_sale_status)
    try:
        sale_repository.update_sale_status(
            client,
            sale.sale_id,
            payment_status=payment_status,
            status=new_status,
            payment_transaction_id=transaction_id,
        )
    except RepositoryError:
        logger.error(
            "Failed to update status of sale %s to payment_status=%s status=%s",
            sale.sale_id,
            payment_status,
            new_status or "unchanged",
            exc_info=True,
        )
        return False

    logger.info(
        "Sale %s updated: status=%s, payment_status=%s",
        sale.sale_id,
        new_status or "unchanged",
        payment_status,
    )
    return True


__all__ = ["locate_sale", "locate_sale_by_transaction", "apply_sale_status"]
