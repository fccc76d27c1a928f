"""
Resource limit validation against the professional's current plan.
"""
import logging
from typing import Dict, Any

from sqlalchemy.orm import Session

from models.service import Service
from models.staff_member import StaffMember
from services.errors import InvalidLimitType, ProfessionalNotFound
from services.plan_transitions import get_professional
from utils.plans import can_add, normalize_plan, plan_limits

logger = logging.getLogger(__name__)

LIMIT_SERVICE = "service"
LIMIT_GALLERY = "gallery"
LIMIT_STAFF = "staff"

LIMIT_TYPES = {
    LIMIT_SERVICE: "maxServices",
    LIMIT_GALLERY: "maxGalleryPhotos",
    LIMIT_STAFF: "maxStaff",
}


def count_resources(db: Session, professional, limit_type: str) -> int:
    if limit_type == LIMIT_SERVICE:
        return db.query(Service).filter(Service.professional_id == professional.id).count()
    if limit_type == LIMIT_STAFF:
        return (
            db.query(StaffMember)
            .filter(StaffMember.professional_id == professional.id, StaffMember.is_active.is_(True))
            .count()
        )
    return len(professional.gallery or [])


def validate_limit(db: Session, limit_type: str, professional_id) -> Dict[str, Any]:
    """
    Returns {"canAdd", "currentCount", "maxCount", "plan"}.
    Raises InvalidLimitType or ProfessionalNotFound.
    """
    if limit_type not in LIMIT_TYPES:
        raise InvalidLimitType()

    professional = get_professional(db, professional_id)
    if not professional:
        raise ProfessionalNotFound()

    plan = normalize_plan(professional.plan)
    max_count = plan_limits(plan)[LIMIT_TYPES[limit_type]]
    current = count_resources(db, professional, limit_type)
    allowed = can_add(max_count, current)

    logger.info(f"Limit check {limit_type} for professional {professional.id}: {current}/{max_count} ({plan}) -> {allowed}")
    return {"canAdd": allowed, "currentCount": current, "maxCount": max_count, "plan": plan}
