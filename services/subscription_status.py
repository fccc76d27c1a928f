"""
Subscription status resolution.

``classify_subscription`` is the one decision table for "what does this
Stripe subscription entitle the account to right now". The status
resolver, the checkout orchestrator and the cancellation orchestrator all
branch on its result.

    processor status | cancel flag | now < period end | plan mode               | plan
    -----------------+-------------+------------------+-------------------------+------------
    active           | false       | -                | renewing                | mapped plan
    active           | true        | -                | active_until_period_end | mapped plan
    canceled         | -           | true             | active_until_period_end | mapped plan
    canceled         | -           | false            | expired                 | free
    anything else    | -           | -                | expired                 | free
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any, Callable

from utils.dates import utcnow, isoformat
from utils.plans import FREE_PLAN, plan_for_price
from utils.stripe_client import ProcessorError, ProcessorSubscription

logger = logging.getLogger(__name__)

PLAN_MODE_RENEWING = "renewing"
PLAN_MODE_ACTIVE_UNTIL_PERIOD_END = "active_until_period_end"
PLAN_MODE_EXPIRED = "expired"

# Stripe subscription statuses the orchestrators branch on
PROCESSOR_ACTIVE = "active"
PROCESSOR_CANCELED = "canceled"

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class SubscriptionState:
    plan_mode: str
    plan: str
    status: str
    end_date: Optional[datetime]
    will_renew: bool
    days_remaining: int
    # True when the state is a default produced because the processor call failed
    fallback: bool = False

    def to_response(self) -> Dict[str, Any]:
        return {
            "planMode": self.plan_mode,
            "currentPlan": self.plan,
            "subscriptionStatus": self.status,
            "subscriptionEndDate": isoformat(self.end_date),
            "subscriptionWillRenew": self.will_renew,
            "daysRemaining": self.days_remaining,
        }


def inactive_state(fallback: bool = False) -> SubscriptionState:
    """The free-plan state used when there is no subscription to look at."""
    return SubscriptionState(
        plan_mode=PLAN_MODE_EXPIRED,
        plan=FREE_PLAN,
        status="inactive",
        end_date=None,
        will_renew=False,
        days_remaining=0,
        fallback=fallback,
    )


def days_remaining(end: Optional[datetime], now: datetime) -> int:
    """Whole days until ``end``, rounded up; 0 once ``end`` has passed."""
    if end is None:
        return 0
    seconds = (end - now).total_seconds()
    return max(0, math.ceil(seconds / SECONDS_PER_DAY))


def classify_subscription(
    subscription: ProcessorSubscription,
    price_to_plan: Dict[str, str],
    now: datetime,
) -> SubscriptionState:
    mapped_plan = plan_for_price(subscription.price_id, price_to_plan)
    end = subscription.current_period_end

    if subscription.status == PROCESSOR_ACTIVE:
        if subscription.cancel_at_period_end:
            plan_mode, plan, will_renew = PLAN_MODE_ACTIVE_UNTIL_PERIOD_END, mapped_plan, False
        else:
            plan_mode, plan, will_renew = PLAN_MODE_RENEWING, mapped_plan, True
    elif subscription.status == PROCESSOR_CANCELED:
        if end is not None and now < end:
            plan_mode, plan, will_renew = PLAN_MODE_ACTIVE_UNTIL_PERIOD_END, mapped_plan, False
        else:
            plan_mode, plan, will_renew = PLAN_MODE_EXPIRED, FREE_PLAN, False
    else:
        # incomplete, past_due, unpaid, ...
        plan_mode, plan, will_renew = PLAN_MODE_EXPIRED, FREE_PLAN, False

    return SubscriptionState(
        plan_mode=plan_mode,
        plan=plan,
        status=subscription.status,
        end_date=end,
        will_renew=will_renew,
        days_remaining=days_remaining(end, now),
    )


class SubscriptionStatusResolver:
    def __init__(self, stripe_client, price_to_plan: Dict[str, str], clock: Callable[[], datetime] = utcnow):
        self.stripe = stripe_client
        self.price_to_plan = price_to_plan
        self.clock = clock

    def resolve(self, subscription_id: Optional[str]) -> SubscriptionState:
        """
        Effective plan for a Stripe subscription ID. Never raises for processor
        errors: a failed lookup folds to the free-plan default with
        ``fallback=True``.
        """
        if not subscription_id:
            return inactive_state()

        logger.info(f"Fetching Stripe subscription: {subscription_id}")
        try:
            subscription = self.stripe.retrieve_subscription(subscription_id)
        except ProcessorError as e:
            logger.error(
                f"FALLBACK: processor error for subscription {subscription_id}, "
                f"reporting free plan instead of a real expiry: {e.message}"
            )
            return inactive_state(fallback=True)

        state = classify_subscription(subscription, self.price_to_plan, self.clock())
        logger.info(
            f"Subscription status: {state.status}, planMode: {state.plan_mode}, plan: {state.plan}"
        )
        return state
