from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr
from typing import Optional
import logging

from db.init import get_db
from services.email_credits import EmailCreditGate
from services.errors import BillingError, ProfessionalNotFound
from services.plan_transitions import get_professional
from utils.deps import get_clock, get_email_client

logger = logging.getLogger(__name__)

router = APIRouter()


class SendEmailRequest(BaseModel):
    professionalId: str
    to: EmailStr
    subject: str
    htmlContent: str
    emailType: str
    replyTo: Optional[EmailStr] = None


@router.post("/send")
def send_email(
    request: SendEmailRequest,
    db: Session = Depends(get_db),
    email_client = Depends(get_email_client),
    clock = Depends(get_clock),
):
    """
    Send one transactional email on behalf of a professional, paid for with
    one email credit.
    """
    try:
        professional = get_professional(db, request.professionalId)
        if not professional:
            raise ProfessionalNotFound()
        reply_to = {"email": request.replyTo} if request.replyTo else None
        return EmailCreditGate(db, email_client, clock).send(
            professional_id=professional.id,
            to_email=request.to,
            subject=request.subject,
            html_content=request.htmlContent,
            email_type=request.emailType,
            reply_to=reply_to,
        )
    except BillingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error sending email: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/credits/{professional_id}")
def get_credits(professional_id: int, db: Session = Depends(get_db), email_client = Depends(get_email_client)):
    if not get_professional(db, professional_id):
        raise HTTPException(status_code=404, detail="Professional profile not found")
    return EmailCreditGate(db, email_client).credit_summary(professional_id)
