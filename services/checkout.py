"""
Checkout / change-plan orchestration.

An account that already holds an active Stripe subscription gets its price
swapped in place with proration and skips checkout entirely. Everyone else,
and anyone whose in-place swap fails, gets a new hosted checkout session.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Callable

from sqlalchemy.orm import Session

from services.errors import ProfessionalNotFound, UpstreamError
from services.plan_transitions import get_professional
from services.subscription_status import PROCESSOR_ACTIVE, classify_subscription
from utils.dates import utcnow
from utils.stripe_client import ProcessorError

logger = logging.getLogger(__name__)

CHECKOUT_SUCCESS_QUERY = "session_success=true&session_id={CHECKOUT_SESSION_ID}"


class PlanChangeOutcome(Enum):
    UPDATED = "updated"
    # No active subscription to change; a checkout session is the normal path
    NOT_APPLICABLE = "not_applicable"
    # The in-place change failed; checkout is the fallback
    RECOVERABLE = "recoverable"


@dataclass
class PlanChangeAttempt:
    outcome: PlanChangeOutcome
    error: Optional[str] = None


def _with_success_query(url: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{CHECKOUT_SUCCESS_QUERY}"


class CheckoutService:
    def __init__(self, db: Session, stripe_client, price_to_plan: Dict[str, str], clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.stripe = stripe_client
        self.price_to_plan = price_to_plan
        self.clock = clock

    def ensure_customer(self, professional) -> Optional[str]:
        """Return the Stripe customer ID, creating and persisting one on first use."""
        if professional.stripe_customer_id or not professional.email:
            return professional.stripe_customer_id

        customer_id = self.stripe.create_customer(
            email=professional.email,
            metadata={"professionalId": str(professional.id)},
        )
        professional.stripe_customer_id = customer_id
        self.db.commit()
        logger.info(f"Saved Stripe customer {customer_id} for professional {professional.id}")
        return customer_id

    def try_change_plan(self, subscription_id: Optional[str], price_id: str) -> PlanChangeAttempt:
        if not subscription_id:
            return PlanChangeAttempt(PlanChangeOutcome.NOT_APPLICABLE)

        try:
            subscription = self.stripe.retrieve_subscription(subscription_id)
        except ProcessorError as e:
            logger.warning(f"Could not load subscription {subscription_id} for plan change: {e.message}")
            return PlanChangeAttempt(PlanChangeOutcome.RECOVERABLE, e.message)

        state = classify_subscription(subscription, self.price_to_plan, self.clock())
        if state.status != PROCESSOR_ACTIVE:
            logger.info(f"Subscription {subscription_id} is {state.status}, not changing in place")
            return PlanChangeAttempt(PlanChangeOutcome.NOT_APPLICABLE)

        try:
            self.stripe.swap_subscription_price(subscription, price_id)
        except ProcessorError as e:
            logger.warning(f"In-place plan change failed for {subscription_id}, falling back to checkout: {e.message}")
            return PlanChangeAttempt(PlanChangeOutcome.RECOVERABLE, e.message)

        return PlanChangeAttempt(PlanChangeOutcome.UPDATED)

    def create_or_change(
        self,
        price_id: str,
        professional_id,
        success_url: str,
        cancel_url: str,
        existing_subscription_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Returns {"sessionId", "url", "subscriptionUpdated"}.
        Raises ProfessionalNotFound or UpstreamError.
        """
        logger.info(f"Creating checkout for professional {professional_id}, price {price_id}")

        professional = get_professional(self.db, professional_id)
        if not professional:
            raise ProfessionalNotFound("Professional not found")

        try:
            customer_id = self.ensure_customer(professional)
        except ProcessorError as e:
            raise UpstreamError(e.message) from e

        existing_id = existing_subscription_id or professional.stripe_subscription_id
        attempt = self.try_change_plan(existing_id, price_id)

        if attempt.outcome is PlanChangeOutcome.UPDATED:
            logger.info(f"Subscription {existing_id} updated to price {price_id} without checkout")
            return {"sessionId": None, "url": success_url, "subscriptionUpdated": True}

        if attempt.outcome is PlanChangeOutcome.RECOVERABLE:
            logger.warning(
                f"Opening checkout for professional {professional.id} after failed plan change "
                f"of {existing_id}: {attempt.error}"
            )

        metadata = {"professionalId": str(professional.id), "priceId": price_id}
        if existing_id:
            metadata["previousSubscriptionId"] = existing_id

        try:
            session = self.stripe.create_checkout_session(
                price_id=price_id,
                customer_id=customer_id,
                success_url=_with_success_query(success_url),
                cancel_url=cancel_url,
                metadata=metadata,
            )
        except ProcessorError as e:
            raise UpstreamError(e.message) from e

        logger.info(f"Checkout session created: {session['id']} for price {price_id} ({attempt.outcome.value})")
        return {"sessionId": session["id"], "url": session["url"], "subscriptionUpdated": False}
