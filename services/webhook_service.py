"""
Unified payment webhook pipeline.

One call per inbound webhook:

1. parse JSON (400 if the body is not JSON)
2. normalize to a canonical event (200 no-op if no gateway recognizes it)
3. locate the sale by its reference, or by the gateway transaction id when
   the payload carries none (200 no-op if missing)
4. map the raw status and build the stable reference
5. update the sale status (failures logged, processing continues)
6. log the payment attempt (once per stable reference)
7. apply the event to the ledger through the split engine

Responses are 200 for every handled or deliberately ignored delivery, because
gateways retry aggressively on anything else. Attempt-log and split failures
answer 500 so the gateway retries; every write is keyed by the stable
reference, so retries never double-apply.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from domain.payment_attempt import attempt_from_event
from domain.payment_event import GatewayEvent, UnrecognizedPayload, build_stable_reference
from repositories import payment_attempt_repository
from repositories.client import Client, RepositoryError
from services.gateway_normalizer import normalize_payload
from services.sale_service import apply_sale_status, locate_sale, locate_sale_by_transaction
from services.settings import Settings
from services.split_engine import SplitProcessingError, process_split_event
from services.split_policy import SplitPolicy, default_policy
from services.status_mapper import map_status

logger = logging.getLogger(__name__)

_LOG_BODY_CHARS = 500


@dataclass(frozen=True, slots=True)
class WebhookOutcome:
    """HTTP status and JSON body to answer the gateway with."""

    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


def _received(message: str) -> WebhookOutcome:
    return WebhookOutcome(200, {"received": True, "message": message})


def _parse_body(raw_body: Union[str, bytes]) -> Any:
    text = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
    return json.loads(text)


def process_webhook(
    client: Client,
    settings: Settings,
    raw_body: Union[str, bytes],
    gateway_hint: Optional[str] = None,
    policy: SplitPolicy = default_policy,
) -> WebhookOutcome:
    """
    Run the settlement pipeline for one webhook delivery.

    Args:
        client: Supabase client
        settings: process settings (split defaults, platform account)
        raw_body: request body exactly as received
        gateway_hint: gateway named by a gateway-specific URL, if any
        policy: split policy for paid events

    Returns:
        WebhookOutcome; this function does not raise for bad input or
        datastore failures
    """

    try:
        body = _parse_body(raw_body)
    except (UnicodeDecodeError, ValueError):
        logger.error("Invalid JSON payload")
        return WebhookOutcome(400, {"error": "Invalid JSON"})

    logger.info("Payment webhook received: %s", json.dumps(body)[:_LOG_BODY_CHARS])

    result = normalize_payload(body, gateway_hint=gateway_hint)
    if isinstance(result, UnrecognizedPayload):
        logger.info("Could not detect gateway from payload: %s", result.reason)
        return _received("Unknown gateway format")

    return _process_event(client, settings, result, policy)


def _process_event(
    client: Client,
    settings: Settings,
    event: GatewayEvent,
    policy: SplitPolicy,
) -> WebhookOutcome:
    gateway = event.gateway.value
    logger.info("Detected gateway: %s, saleId: %s, status: %s", gateway, event.sale_id, event.raw_status)

    try:
        if event.sale_id:
            sale = locate_sale(client, event.sale_id)
        elif event.transaction_id:
            sale = locate_sale_by_transaction(client, gateway, event.transaction_id)
        else:
            sale = None
    except RepositoryError as exc:
        logger.error("Failed to look up sale %s: %s", event.sale_id or event.transaction_id, exc)
        return WebhookOutcome(500, {"error": "Failed to look up sale"})

    if sale is None:
        if not event.sale_id:
            logger.info("No sale ID found in %s payload", gateway)
            return _received("No sale ID")
        logger.info("Sale not found: %s", event.sale_id)
        return _received("Sale not found")

    mapping = map_status(event.gateway, event.raw_status)
    reference_id = build_stable_reference(event.gateway, event.transaction_id, sale.sale_id, mapping.event)
    logger.info("Sale %s event %s (reference %s)", sale.sale_id, mapping.event.value, reference_id)

    apply_sale_status(client, sale, mapping, event.transaction_id)

    attempt = attempt_from_event(
        event,
        sale_id=sale.sale_id,
        reference_id=reference_id,
        lifecycle=mapping.event,
        payment_status=mapping.payment_status,
        fallback_amount_cents=sale.total_cents,
    )
    try:
        logged = payment_attempt_repository.record_attempt(client, attempt)
    except RepositoryError as exc:
        logger.error("Failed to log payment attempt %s for sale %s: %s", reference_id, sale.sale_id, exc)
        return WebhookOutcome(500, {"error": "Failed to log payment attempt", "reference": reference_id})
    if not logged:
        logger.info("Payment attempt %s already logged", reference_id)

    try:
        outcome = process_split_event(
            client,
            sale,
            reference_id,
            mapping.event,
            settings,
            amount_cents=event.amount_cents,
            fee_cents=event.fee_cents or 0,
            interest_cents=event.interest_cents,
            policy=policy,
        )
    except SplitProcessingError as exc:
        return WebhookOutcome(
            500,
            {"error": f"Split processing failed: {exc}", "reference": reference_id},
        )

    body: Dict[str, Any] = {
        "success": True,
        "gateway": gateway,
        "saleId": sale.sale_id,
        "event": mapping.event.value,
        "reference": reference_id,
    }
    if outcome is not None:
        body["splitsProcessed"] = outcome.processed
        body["entries"] = len(outcome.entries) if outcome.processed else 0
    return WebhookOutcome(200, body)


__all__ = ["WebhookOutcome", "process_webhook"]
