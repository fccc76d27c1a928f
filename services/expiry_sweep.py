"""
Expiry sweep: downgrade every account whose paid period has ended while its
local status still says active.

Accounts are processed concurrently, each in its own session and
transaction. The selection filter is re-checked inside each transaction, so
a second, overlapping run finds nothing to do and changes nothing.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Dict, Any, List

from sqlalchemy.orm import Session

from models.professional import Professional
from services.errors import UpstreamError
from services.plan_transitions import (
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    close_open_history,
    deactivate_excess_staff,
    set_email_credits,
)
from utils.dates import utcnow
from utils.plans import FREE_PLAN

logger = logging.getLogger(__name__)


def _expired_filter(query, now: datetime):
    return query.filter(
        Professional.subscription_status == STATUS_ACTIVE,
        Professional.plan != FREE_PLAN,
        Professional.subscription_end_date.isnot(None),
        Professional.subscription_end_date < now,
    )


class ExpirySweep:
    def __init__(self, session_factory: Callable[[], Session], clock: Callable[[], datetime] = utcnow, max_workers: int = 4):
        self.session_factory = session_factory
        self.clock = clock
        self.max_workers = max(1, max_workers)

    def find_expired(self, now: datetime) -> List[int]:
        db = self.session_factory()
        try:
            rows = _expired_filter(db.query(Professional.id), now).order_by(Professional.id).all()
            return [row[0] for row in rows]
        finally:
            db.close()

    def expire_one(self, professional_id: int, now: datetime) -> Dict[str, Any]:
        db = self.session_factory()
        try:
            professional = _expired_filter(
                db.query(Professional).filter(Professional.id == professional_id), now
            ).first()
            if professional is None:
                # Already handled by another run
                return {"professionalId": professional_id, "success": True, "skipped": True}

            previous_plan = professional.plan
            professional.plan = FREE_PLAN
            professional.subscription_status = STATUS_INACTIVE
            professional.subscription_end_date = None
            professional.stripe_subscription_id = None
            professional.subscription_will_renew = False
            professional.subscription_last_changed = now

            close_open_history(db, professional_id, now)
            set_email_credits(db, professional_id, 0, now)
            staff_deactivated = deactivate_excess_staff(db, professional_id, keep=1)

            db.commit()
            logger.info(
                f"Expired professional {professional_id}: {previous_plan} -> free, "
                f"{staff_deactivated} staff deactivated"
            )
            return {
                "professionalId": professional_id,
                "success": True,
                "previousPlan": previous_plan,
                "staffDeactivated": staff_deactivated,
            }
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to expire professional {professional_id}: {e}")
            return {"professionalId": professional_id, "success": False, "error": str(e)}
        finally:
            db.close()

    def run(self) -> Dict[str, Any]:
        now = self.clock()
        logger.info(f"Checking for expired subscriptions at {now.isoformat()}")

        try:
            expired_ids = self.find_expired(now)
        except Exception as e:
            logger.error(f"Error fetching expired subscriptions: {e}")
            raise UpstreamError(f"Error fetching expired subscriptions: {e}") from e

        if not expired_ids:
            logger.info("No expired subscriptions found")
            return {"message": "No expired subscriptions", "totalProcessed": 0, "succeeded": 0, "failed": 0, "results": []}

        logger.info(f"Found {len(expired_ids)} expired subscriptions")
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = list(executor.map(lambda pid: self.expire_one(pid, now), expired_ids))

        succeeded = sum(1 for r in results if r["success"])
        failed = len(results) - succeeded
        logger.info(f"Expiry sweep done: {succeeded} succeeded, {failed} failed")
        return {
            "message": "Processed expired subscriptions",
            "totalProcessed": len(results),
            "succeeded": succeeded,
            "failed": failed,
            "results": results,
        }
