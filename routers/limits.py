from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel
import logging

from db.init import get_db
from services.errors import BillingError
from services.plan_limits import validate_limit
from utils.plans import plan_limits

logger = logging.getLogger(__name__)

router = APIRouter()


class LimitRequest(BaseModel):
    type: str
    professionalId: str


@router.post("/validate")
def validate(request: LimitRequest, db: Session = Depends(get_db)):
    """
    Can the professional add one more service / gallery photo / staff member?
    """
    try:
        return validate_limit(db, request.type, request.professionalId)
    except BillingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error validating limit: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/plans/{plan}")
def get_plan_limits(plan: str):
    return plan_limits(plan)
