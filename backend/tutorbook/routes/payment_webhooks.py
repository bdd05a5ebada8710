# backend/tutorbook/routes/payment_webhooks.py
"""
Payment provider webhook endpoint.

Verifies the Stripe signature when a signing secret is configured, then
hands the event to PaymentEventService. Events that no longer apply (late
payment, duplicate delivery, unknown type) still get a 200 so the provider
stops retrying; only unverifiable or malformed payloads are rejected.
"""

import asyncio
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
import stripe

from ..api.dependencies.services import get_payment_event_service
from ..core.config import settings
from ..schemas.payment import WebhookResponse
from ..services.payment_event_service import PaymentEventService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["payment-webhooks"])


def _verify_signature(payload: bytes, signature: str | None) -> None:
    secret = settings.payment_webhook_secret
    if secret is None:
        return
    if not signature:
        logger.warning("Missing Stripe signature header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing stripe-signature header"
        )
    try:
        stripe.Webhook.construct_event(payload, signature, secret.get_secret_value())
    except stripe.SignatureVerificationError as exc:
        logger.warning("Invalid Stripe webhook signature: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature"
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload"
        ) from exc


@router.post("/payments", response_model=WebhookResponse)
async def handle_payment_event(
    request: Request,
    payment_events: PaymentEventService = Depends(get_payment_event_service),
) -> WebhookResponse:
    """
    Handle payment provider events.

    Processes:
    - checkout.session.completed / payment_intent.succeeded (confirm)
    - payment_intent.payment_failed / payment_intent.canceled /
      checkout.session.expired (release the reservation)
    """
    payload = await request.body()
    _verify_signature(payload, request.headers.get("stripe-signature"))

    try:
        event: Dict[str, Any] = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload"
        ) from exc
    if not isinstance(event, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload"
        )

    logger.info("Processing payment webhook event: %s", event.get("type"))
    outcome = await asyncio.to_thread(payment_events.handle_event, event)
    return WebhookResponse(**outcome.to_dict())
