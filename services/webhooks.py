"""
Stripe webhook processing and checkout session verification.

Handled events:
- checkout.session.completed       subscription purchase or email credit package
- customer.subscription.updated    cancel scheduled / canceled / past due / plan change
- customer.subscription.deleted    downgrade to free
- invoice.paid                     renewal (billing reason subscription_cycle)
- invoice.payment_failed           mark past due

Everything else is logged and ignored.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Any, Optional

from sqlalchemy.orm import Session

from models.email_credit import EmailPackage
from models.professional import Professional
from services.errors import PreconditionFailed, ProfessionalNotFound, UpstreamError
from services.plan_transitions import (
    STATUS_ACTIVE,
    STATUS_CANCELED_AT_PERIOD_END,
    STATUS_EXPIRED,
    STATUS_PAST_DUE,
    activate_plan,
    add_email_credits,
    downgrade_to_free,
    get_professional,
)
from services.subscription_status import PROCESSOR_ACTIVE, PROCESSOR_CANCELED
from utils.dates import utcnow
from utils.plans import plan_credits, plan_for_price
from utils.stripe_client import (
    ProcessorError,
    ProcessorSubscription,
    get_field,
    id_of,
    to_plain_dict,
    to_subscription,
)

logger = logging.getLogger(__name__)

PROCESSOR_PAST_DUE = "past_due"
RENEWAL_BILLING_REASON = "subscription_cycle"


def invoice_subscription_id(invoice) -> Optional[str]:
    """Newer API versions nest the subscription under parent.subscription_details."""
    subscription = id_of(get_field(invoice, "subscription"))
    if subscription:
        return subscription
    details = get_field(get_field(invoice, "parent"), "subscription_details")
    return id_of(get_field(details, "subscription"))


class StripeWebhookHandler:
    def __init__(self, db: Session, stripe_client, price_to_plan: Dict[str, str], clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.stripe = stripe_client
        self.price_to_plan = price_to_plan
        self.clock = clock

        self.handlers = {
            "checkout.session.completed": self.on_checkout_completed,
            "customer.subscription.updated": self.on_subscription_updated,
            "customer.subscription.deleted": self.on_subscription_deleted,
            "invoice.paid": self.on_invoice_paid,
            "invoice.payment_failed": self.on_invoice_payment_failed,
        }

    def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_type = event.get("type")
        logger.info(f"Webhook received: {event_type} ({event.get('id')})")

        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled event type: {event_type}")
            return {"received": True}

        try:
            handler(event.get("object"))
        except Exception:
            self.db.rollback()
            raise
        return {"received": True}

    def find_professional(self, subscription_id: Optional[str], customer_id: Optional[str]) -> Optional[Professional]:
        """Look up by subscription ID first, then by customer ID."""
        query = self.db.query(Professional)
        if subscription_id:
            professional = query.filter(Professional.stripe_subscription_id == subscription_id).first()
            if professional:
                return professional
        if customer_id:
            return query.filter(Professional.stripe_customer_id == customer_id).first()
        return None

    # ---- checkout.session.completed ----
    def on_checkout_completed(self, session) -> None:
        mode = get_field(session, "mode")
        metadata = to_plain_dict(get_field(session, "metadata", {}))

        if mode == "payment":
            self.add_package_credits(metadata)
            return
        if mode != "subscription":
            logger.info(f"Ignoring checkout session in mode {mode}")
            return

        professional_id = metadata.get("professionalId")
        subscription_id = id_of(get_field(session, "subscription"))
        if not professional_id:
            logger.error("Missing professionalId in session metadata")
            return
        if not subscription_id:
            logger.error("Missing subscription ID in checkout session")
            return

        professional = get_professional(self.db, professional_id)
        if not professional:
            logger.error(f"Professional {professional_id} from checkout session not found")
            return

        subscription = self.stripe.retrieve_subscription(subscription_id)
        plan = plan_for_price(subscription.price_id, self.price_to_plan)
        activate_plan(
            self.db,
            professional,
            plan,
            subscription_id,
            subscription.current_period_end,
            self.clock(),
            customer_id=id_of(get_field(session, "customer")),
            replace_credits=True,
        )
        self.db.commit()
        logger.info(f"Activated {plan} plan for professional {professional.id}")

    def add_package_credits(self, metadata: Dict[str, Any]) -> None:
        professional_id = metadata.get("masterId") or metadata.get("professionalId")
        package_id = metadata.get("packageId")
        if not professional_id or not package_id:
            logger.info("Payment checkout without credit package metadata, ignoring")
            return

        package = self.db.query(EmailPackage).filter(EmailPackage.id == int(package_id)).first()
        professional = get_professional(self.db, professional_id)
        if not package or not professional:
            logger.error(f"Email package {package_id} or professional {professional_id} not found")
            return

        balance = add_email_credits(self.db, professional.id, package.credits, self.clock())
        self.db.commit()
        logger.info(f"Added {package.credits} credits to professional {professional.id} (now {balance.credits})")

    # ---- customer.subscription.* ----
    def on_subscription_updated(self, obj) -> None:
        subscription = to_subscription(obj)
        logger.info(
            f"Subscription updated - status: {subscription.status}, "
            f"cancel_at_period_end: {subscription.cancel_at_period_end}"
        )
        professional = self.find_professional(subscription.id, subscription.customer_id)
        if not professional:
            logger.error(f"Professional not found for subscription {subscription.id}")
            return

        now = self.clock()
        if subscription.status == PROCESSOR_ACTIVE and subscription.cancel_at_period_end:
            professional.subscription_status = STATUS_CANCELED_AT_PERIOD_END
            professional.is_cancelled = True
            professional.subscription_will_renew = False
            professional.subscription_end_date = subscription.current_period_end
            professional.subscription_last_changed = now
            logger.info(f"Professional {professional.id} cancelled, active until {subscription.current_period_end}")
        elif subscription.status == PROCESSOR_CANCELED:
            downgrade_to_free(self.db, professional, now, status=STATUS_EXPIRED)
        elif subscription.status == PROCESSOR_PAST_DUE:
            # Plan stays until Stripe gives up and deletes the subscription
            professional.subscription_status = STATUS_PAST_DUE
            logger.warning(f"Payment past due for professional {professional.id}")
        elif subscription.status == PROCESSOR_ACTIVE:
            self.apply_active(professional, subscription, now, replace_credits=True)
        else:
            logger.info(f"Unhandled subscription status: {subscription.status}")
            return
        self.db.commit()

    def on_subscription_deleted(self, obj) -> None:
        subscription = to_subscription(obj)
        professional = self.find_professional(subscription.id, subscription.customer_id)
        if not professional:
            logger.error(f"Professional not found for subscription {subscription.id}")
            return
        downgrade_to_free(self.db, professional, self.clock(), status=STATUS_EXPIRED)
        self.db.commit()

    def apply_active(self, professional: Professional, subscription: ProcessorSubscription, now: datetime, replace_credits: bool) -> int:
        plan = plan_for_price(subscription.price_id, self.price_to_plan)
        return activate_plan(
            self.db,
            professional,
            plan,
            subscription.id,
            subscription.current_period_end,
            now,
            customer_id=subscription.customer_id,
            replace_credits=replace_credits,
        )

    # ---- invoice.* ----
    def on_invoice_paid(self, invoice) -> None:
        subscription_id = invoice_subscription_id(invoice)
        billing_reason = get_field(invoice, "billing_reason")
        if not subscription_id or billing_reason != RENEWAL_BILLING_REASON:
            logger.info(f"Ignoring paid invoice (billing_reason={billing_reason})")
            return

        subscription = self.stripe.retrieve_subscription(subscription_id)
        professional = self.find_professional(subscription_id, None)
        if not professional:
            logger.error(f"Professional not found for renewed subscription {subscription_id}")
            return

        credits = self.apply_active(professional, subscription, self.clock(), replace_credits=False)
        self.db.commit()
        logger.info(f"Renewed subscription {subscription_id}, added {credits} credits")

    def on_invoice_payment_failed(self, invoice) -> None:
        subscription_id = invoice_subscription_id(invoice)
        if not subscription_id:
            return

        subscription = self.stripe.retrieve_subscription(subscription_id)
        professional = self.find_professional(subscription_id, subscription.customer_id)
        if not professional:
            logger.error(f"Professional not found for failed invoice on {subscription_id}")
            return

        professional.subscription_status = STATUS_PAST_DUE
        self.db.commit()
        logger.warning(f"Payment failed for professional {professional.id} - marked as past_due")


def verify_checkout_session(
    db: Session,
    stripe_client,
    price_to_plan: Dict[str, str],
    session_id: str,
    professional_id,
    clock: Callable[[], datetime] = utcnow,
) -> Dict[str, Any]:
    """
    Activate the plan bought in a completed checkout session.
    Re-verifying a session that is already applied changes nothing.
    """
    logger.info(f"Verifying subscription for session: {session_id}")
    try:
        session = stripe_client.retrieve_checkout_session(session_id)
    except ProcessorError as e:
        raise UpstreamError(e.message) from e

    if session["payment_status"] != "paid":
        raise PreconditionFailed("Payment not completed")
    subscription_id = session["subscription_id"]
    if not subscription_id:
        raise PreconditionFailed("No subscription found")

    professional = get_professional(db, professional_id)
    if not professional:
        raise ProfessionalNotFound()

    try:
        subscription = stripe_client.retrieve_subscription(subscription_id)
    except ProcessorError as e:
        raise UpstreamError(e.message) from e

    plan = plan_for_price(subscription.price_id, price_to_plan)
    already_applied = (
        professional.stripe_subscription_id == subscription_id
        and professional.plan == plan
        and professional.subscription_status == STATUS_ACTIVE
    )
    if already_applied:
        credits = plan_credits(plan)
        logger.info(f"Session {session_id} already applied to professional {professional.id}")
    else:
        credits = activate_plan(
            db,
            professional,
            plan,
            subscription_id,
            subscription.current_period_end,
            clock(),
            customer_id=session["customer_id"],
            replace_credits=True,
        )
        db.commit()
        logger.info(f"Successfully activated {plan} plan with {credits} credits")

    return {"success": True, "plan": plan, "credits": credits, "subscriptionId": subscription_id}
