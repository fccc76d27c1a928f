"""
Local billing state transitions shared by every path that changes a
professional's plan: cancellation, downgrade, expiry sweep, webhooks and
checkout verification.

These helpers only stage changes on the session; callers own the commit.
Every helper writes terminal values, so re-running one after a partial
failure converges on the same state.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from models.email_credit import EmailCredit
from models.professional import Professional
from models.staff_member import StaffMember
from models.subscription_history import SubscriptionHistory
from utils.plans import FREE_PLAN, plan_credits

logger = logging.getLogger(__name__)

# Local subscription_status values
STATUS_ACTIVE = "active"
STATUS_CANCELED_AT_PERIOD_END = "canceled_at_period_end"
STATUS_PAST_DUE = "past_due"
STATUS_INACTIVE = "inactive"
STATUS_EXPIRED = "expired"


def get_professional(db: Session, professional_id) -> Optional[Professional]:
    try:
        key = int(professional_id)
    except (TypeError, ValueError):
        return None
    return db.query(Professional).filter(Professional.id == key).first()


def close_open_history(db: Session, professional_id: int, now: datetime, subscription_id: Optional[str] = None) -> int:
    query = db.query(SubscriptionHistory).filter(
        SubscriptionHistory.professional_id == professional_id,
        SubscriptionHistory.ended_at.is_(None),
    )
    if subscription_id:
        query = query.filter(SubscriptionHistory.stripe_subscription_id == subscription_id)
    return query.update({SubscriptionHistory.ended_at: now}, synchronize_session=False)


def open_history(db: Session, professional_id: int, plan: str, status: str, subscription_id: Optional[str], now: datetime) -> SubscriptionHistory:
    entry = SubscriptionHistory(
        professional_id=professional_id,
        plan=plan,
        status=status,
        stripe_subscription_id=subscription_id,
        started_at=now,
    )
    db.add(entry)
    return entry


def set_email_credits(db: Session, professional_id: int, credits: int, now: datetime) -> EmailCredit:
    balance = db.query(EmailCredit).filter(EmailCredit.professional_id == professional_id).first()
    if balance is None:
        balance = EmailCredit(professional_id=professional_id, credits=credits, updated_at=now)
        db.add(balance)
        db.flush()
    else:
        balance.credits = credits
        balance.updated_at = now
    return balance


def add_email_credits(db: Session, professional_id: int, credits: int, now: datetime) -> EmailCredit:
    balance = db.query(EmailCredit).filter(EmailCredit.professional_id == professional_id).first()
    current = balance.credits if balance else 0
    return set_email_credits(db, professional_id, current + credits, now)


def deactivate_excess_staff(db: Session, professional_id: int, keep: int = 1) -> int:
    """
    Keep the ``keep`` earliest created active staff members and mark the
    rest inactive. Already inactive members are left as they are and do not
    count towards ``keep``. Staff rows are never deleted.
    """
    active_staff = (
        db.query(StaffMember)
        .filter(StaffMember.professional_id == professional_id, StaffMember.is_active == True)
        .order_by(StaffMember.created_at.asc(), StaffMember.id.asc())
        .all()
    )
    for member in active_staff[keep:]:
        member.is_active = False
    return max(len(active_staff) - keep, 0)


def downgrade_to_free(db: Session, professional: Professional, now: datetime, status: str = STATUS_EXPIRED) -> None:
    """
    Put a professional on the free plan: subscription fields cleared, email
    credits zeroed, open history closed.
    """
    previous_plan = professional.plan
    professional.plan = FREE_PLAN
    professional.subscription_status = status
    professional.subscription_end_date = None
    professional.stripe_subscription_id = None
    professional.subscription_will_renew = False
    professional.is_cancelled = False
    professional.subscription_last_changed = now

    set_email_credits(db, professional.id, 0, now)
    close_open_history(db, professional.id, now)

    logger.info(f"Professional {professional.id} downgraded from {previous_plan} to FREE (status={status})")


def activate_plan(
    db: Session,
    professional: Professional,
    plan: str,
    subscription_id: str,
    end_date: Optional[datetime],
    now: datetime,
    customer_id: Optional[str] = None,
    replace_credits: bool = True,
) -> int:
    """
    Put a professional on a paid plan and open a new history period.

    ``replace_credits`` sets the balance to the plan's allotment (new plan or
    plan change); otherwise the allotment is added (renewal).
    Returns the plan's credit allotment.
    """
    professional.plan = plan
    professional.subscription_status = STATUS_ACTIVE
    professional.subscription_end_date = end_date
    professional.stripe_subscription_id = subscription_id
    professional.subscription_will_renew = True
    professional.is_cancelled = False
    professional.subscription_last_changed = now
    if customer_id:
        professional.stripe_customer_id = customer_id

    credits = plan_credits(plan)
    if replace_credits:
        set_email_credits(db, professional.id, credits, now)
    else:
        add_email_credits(db, professional.id, credits, now)

    close_open_history(db, professional.id, now)
    open_history(db, professional.id, plan, STATUS_ACTIVE, subscription_id, now)

    logger.info(f"Professional {professional.id} on {plan} plan with {credits} credits (replace={replace_credits})")
    return credits
