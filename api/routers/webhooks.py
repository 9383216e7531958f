"""
Payment Webhook Endpoints.

Single webhook URL for every supported gateway, plus gateway-specific URLs
that forward to the same pipeline.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from api.dependencies import get_settings, get_supabase
from api.models import WebhookStatusResponse
from repositories.client import Client
from services.settings import Settings
from services.webhook_service import process_webhook

logger = logging.getLogger(__name__)

router = APIRouter()


@router.api_route(
    "/payment-webhook",
    methods=["GET", "HEAD"],
    response_model=WebhookStatusResponse,
    summary="Webhook Health Check",
    description="Lets gateways validate the webhook URL before registering it."
)
def webhook_status():
    return WebhookStatusResponse(status="ok", message="Payment webhook active")


async def _handle(
    request: Request,
    client: Client,
    settings: Settings,
    gateway: Optional[str] = None,
) -> JSONResponse:
    raw_body = await request.body()
    try:
        outcome = await run_in_threadpool(
            process_webhook, client, settings, raw_body, gateway_hint=gateway
        )
    except Exception as e:
        logger.exception("Webhook error")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.post(
    "/payment-webhook",
    summary="Receive Payment Webhook",
    description="Unified webhook for all gateways. The gateway is detected from the payload shape."
)
async def receive_payment_webhook(
    request: Request,
    client: Client = Depends(get_supabase),
    settings: Settings = Depends(get_settings),
):
    """
    Apply a gateway payment notification to the sale and the split ledger.

    **Response codes:**
    - `200` for processed events and deliberate no-ops (unknown gateway,
      missing sale id, sale not found)
    - `400` when the body is not valid JSON
    - `500` when logging the attempt or processing splits failed; the gateway
      should retry, which is safe because processing is idempotent

    **Example (Pagar.me):**
    ```json
    {
      "id": 4815162342,
      "current_status": "paid",
      "amount": 10000,
      "cost": 500,
      "payment_method": "credit_card",
      "metadata": {"sale_id": "123e4567-e89b-12d3-a456-426614174000"}
    }
    ```

    **Success response:**
    ```json
    {
      "success": true,
      "gateway": "pagarme",
      "saleId": "123e4567-e89b-12d3-a456-426614174000",
      "event": "paid",
      "reference": "pagarme:4815162342:paid",
      "splitsProcessed": true,
      "entries": 3
    }
    ```
    """
    return await _handle(request, client, settings)


@router.post(
    "/payment-webhook/{gateway}",
    summary="Receive Gateway-Specific Webhook",
    description="Same pipeline as the unified webhook, restricted to one gateway's payload format."
)
async def receive_gateway_webhook(
    gateway: str,
    request: Request,
    client: Client = Depends(get_supabase),
    settings: Settings = Depends(get_settings),
):
    return await _handle(request, client, settings, gateway=gateway)
