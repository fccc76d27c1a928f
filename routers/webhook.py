from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
import logging

from db.init import get_db
from services.webhooks import StripeWebhookHandler
from utils.deps import get_clock, get_price_to_plan, get_stripe_client
from utils.stripe_client import WebhookSignatureError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    stripe_client = Depends(get_stripe_client),
    price_to_plan: dict = Depends(get_price_to_plan),
    clock = Depends(get_clock),
):
    """
    Stripe event endpoint. Bad signatures are rejected with 400; once the
    event is verified it is always acknowledged with 200 so Stripe does not
    retry on our own processing errors.
    """
    if not stripe_client.webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    try:
        event = stripe_client.construct_event(payload, signature)
    except WebhookSignatureError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        return StripeWebhookHandler(db, stripe_client, price_to_plan, clock).handle(event)
    except Exception as e:
        logger.exception(f"Webhook handler error for {event.get('type')}: {e}")
        return {"received": True, "error": str(e)}
