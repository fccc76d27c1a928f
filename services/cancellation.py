"""
Cancellation and voluntary downgrade.
"""
import logging
from datetime import datetime
from typing import Dict, Any, Callable

from sqlalchemy.orm import Session

from models.professional import Professional
from services.errors import PreconditionFailed, UpstreamError
from services.plan_transitions import (
    STATUS_CANCELED_AT_PERIOD_END,
    STATUS_EXPIRED,
    STATUS_INACTIVE,
    downgrade_to_free,
)
from services.subscription_status import (
    PROCESSOR_ACTIVE,
    PROCESSOR_CANCELED,
    classify_subscription,
)
from utils.dates import utcnow, isoformat
from utils.plans import FREE_PLAN
from utils.stripe_client import ProcessorError

logger = logging.getLogger(__name__)


class CancellationService:
    def __init__(self, db: Session, stripe_client, price_to_plan: Dict[str, str], clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.stripe = stripe_client
        self.price_to_plan = price_to_plan
        self.clock = clock

    def _downgrade_stale(self, professional: Professional, reason: str) -> Dict[str, Any]:
        """The remote subscription is gone or canceled; drop the local reference."""
        downgrade_to_free(self.db, professional, self.clock(), status=STATUS_EXPIRED)
        self.db.commit()
        logger.info(f"Professional {professional.id}: {reason}, downgraded to FREE")
        return {"success": True, "message": f"{reason}, downgraded to FREE"}

    def cancel(self, professional: Professional) -> Dict[str, Any]:
        """
        Cancel at period end. Returns {"success", "message", "periodEnd"?}.
        Raises PreconditionFailed (400) or UpstreamError (500).
        """
        subscription_id = professional.stripe_subscription_id
        if not subscription_id:
            raise PreconditionFailed("No active subscription found")

        try:
            subscription = self.stripe.retrieve_subscription(subscription_id)
        except ProcessorError as e:
            if e.resource_missing:
                return self._downgrade_stale(professional, "Subscription not found in Stripe")
            raise UpstreamError(e.message) from e

        now = self.clock()
        state = classify_subscription(subscription, self.price_to_plan, now)

        if state.status == PROCESSOR_CANCELED:
            return self._downgrade_stale(professional, "Subscription already canceled")

        if state.status != PROCESSOR_ACTIVE:
            raise PreconditionFailed(f"Cannot cancel subscription with status '{state.status}'")

        try:
            updated = self.stripe.cancel_at_period_end(subscription_id)
        except ProcessorError as e:
            if e.resource_missing:
                return self._downgrade_stale(professional, "Subscription not found in Stripe")
            raise UpstreamError(e.message) from e

        # Plan and end date stay as they are; paid features run until the period ends
        professional.subscription_status = STATUS_CANCELED_AT_PERIOD_END
        professional.subscription_will_renew = False
        professional.is_cancelled = True
        professional.subscription_last_changed = now
        if professional.subscription_end_date is None:
            professional.subscription_end_date = updated.current_period_end or state.end_date
        self.db.commit()

        period_end = professional.subscription_end_date
        logger.info(f"Subscription {subscription_id} marked for cancellation at period end ({isoformat(period_end)})")
        return {
            "success": True,
            "message": "Subscription will be cancelled at period end",
            "periodEnd": isoformat(period_end),
        }

    def downgrade(self, professional: Professional) -> Dict[str, Any]:
        """
        Cancel the Stripe subscription immediately and move to the free plan.
        Staff members are left untouched.
        """
        subscription_id = professional.stripe_subscription_id
        if not subscription_id or professional.plan == FREE_PLAN:
            return {"success": True, "message": "Already on FREE plan"}

        logger.info(f"Canceling subscription: {subscription_id}")
        try:
            self.stripe.cancel_subscription(subscription_id)
        except ProcessorError as e:
            if not e.resource_missing:
                raise UpstreamError(e.message) from e
            logger.info(f"Subscription {subscription_id} already gone from Stripe")

        downgrade_to_free(self.db, professional, self.clock(), status=STATUS_INACTIVE)
        self.db.commit()
        return {"success": True, "message": "Successfully downgraded to FREE plan"}
