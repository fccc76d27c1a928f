from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel
import asyncio
import logging

from db.init import get_db
from models.professional import Professional
from services.cancellation import CancellationService
from services.checkout import CheckoutService
from services.errors import BillingError
from services.expiry_sweep import ExpirySweep
from services.subscription_status import SubscriptionStatusResolver, inactive_state
from services.webhooks import verify_checkout_session
from utils.deps import (
    get_clock,
    get_current_professional,
    get_price_to_plan,
    get_session_factory,
    get_stripe_client,
    role_required,
)
import config

logger = logging.getLogger(__name__)

router = APIRouter()

FALLBACK_HEADER = "X-Subscription-Fallback"

# --- Pydantic Models ---

class CheckoutRequest(BaseModel):
    priceId: str
    professionalId: str
    successUrl: str
    cancelUrl: str
    existingSubscriptionId: Optional[str] = None

class VerifyRequest(BaseModel):
    sessionId: str
    professionalId: str

# --- Endpoints ---

@router.post("/checkout")
def create_checkout(
    request: CheckoutRequest,
    db: Session = Depends(get_db),
    stripe_client = Depends(get_stripe_client),
    price_to_plan: dict = Depends(get_price_to_plan),
    clock = Depends(get_clock),
):
    """
    Change the plan of an active subscription in place, or open a hosted
    Stripe checkout session for a new one.
    """
    try:
        service = CheckoutService(db, stripe_client, price_to_plan, clock)
        return service.create_or_change(
            price_id=request.priceId,
            professional_id=request.professionalId,
            success_url=request.successUrl,
            cancel_url=request.cancelUrl,
            existing_subscription_id=request.existingSubscriptionId,
        )
    except BillingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating checkout session: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/cancel")
def cancel_subscription(
    professional: Professional = Depends(get_current_professional),
    db: Session = Depends(get_db),
    stripe_client = Depends(get_stripe_client),
    price_to_plan: dict = Depends(get_price_to_plan),
    clock = Depends(get_clock),
):
    """
    Cancel at period end. Paid features stay available until the end date.
    """
    try:
        return CancellationService(db, stripe_client, price_to_plan, clock).cancel(professional)
    except BillingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error canceling subscription: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/downgrade")
def downgrade_to_free(
    professional: Professional = Depends(get_current_professional),
    db: Session = Depends(get_db),
    stripe_client = Depends(get_stripe_client),
    price_to_plan: dict = Depends(get_price_to_plan),
    clock = Depends(get_clock),
):
    try:
        return CancellationService(db, stripe_client, price_to_plan, clock).downgrade(professional)
    except BillingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error downgrading to free: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/status")
async def get_subscription_status(
    request: Request,
    response: Response,
    stripe_client = Depends(get_stripe_client),
    price_to_plan: dict = Depends(get_price_to_plan),
    clock = Depends(get_clock),
):
    """
    Effective plan for a Stripe subscription. Always answers 200; when Stripe
    cannot be reached the free-plan default is returned and flagged with the
    X-Subscription-Fallback header. A missing or unreadable body is treated
    as "no subscription".
    """
    subscription_id = None
    try:
        data = await request.json()
        if isinstance(data, dict) and isinstance(data.get("stripeSubscriptionId"), str):
            subscription_id = data["stripeSubscriptionId"]
    except ValueError as e:
        logger.warning(f"Unreadable subscription status body: {e}")

    try:
        resolver = SubscriptionStatusResolver(stripe_client, price_to_plan, clock)
        state = await asyncio.to_thread(resolver.resolve, subscription_id)
    except Exception as e:
        logger.error(f"FALLBACK: unexpected error resolving subscription {subscription_id}: {e}")
        state = inactive_state(fallback=True)

    if state.fallback:
        response.headers[FALLBACK_HEADER] = "processor_error"
    return state.to_response()


@router.post("/verify")
def verify_subscription(
    request: VerifyRequest,
    db: Session = Depends(get_db),
    stripe_client = Depends(get_stripe_client),
    price_to_plan: dict = Depends(get_price_to_plan),
    clock = Depends(get_clock),
):
    """
    Activate the plan bought in a completed checkout session (redirect back
    from Stripe, before the webhook arrives).
    """
    try:
        return verify_checkout_session(db, stripe_client, price_to_plan, request.sessionId, request.professionalId, clock)
    except BillingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Verification error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/sweep-expired", dependencies=[Depends(role_required("admins"))])
def sweep_expired(session_factory = Depends(get_session_factory), clock = Depends(get_clock)):
    try:
        return ExpirySweep(session_factory, clock, max_workers=config.SWEEP_MAX_WORKERS).run()
    except BillingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
