"""
Email credit gate: one transactional email costs one credit.

The credit check happens before the provider is called and the decrement
happens only after the provider accepted the message.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Any, Optional

from sqlalchemy.orm import Session

from models.email_credit import EmailCredit
from models.email_log import EmailLog
from services.errors import InsufficientCredits, UpstreamError
from utils.dates import utcnow

logger = logging.getLogger(__name__)


class EmailCreditGate:
    def __init__(self, db: Session, email_client, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.email = email_client
        self.clock = clock

    def balance(self, professional_id: int) -> int:
        row = self.db.query(EmailCredit).filter(EmailCredit.professional_id == professional_id).first()
        return row.credits if row else 0

    def send(
        self,
        professional_id: int,
        to_email: str,
        subject: str,
        html_content: str,
        email_type: str,
        reply_to: Optional[dict] = None,
    ) -> Dict[str, Any]:
        current = self.balance(professional_id)
        if current < 1:
            logger.warning(f"Professional {professional_id} has no email credits left")
            raise InsufficientCredits()

        result = self.email.send_email(to_email=to_email, subject=subject, html_content=html_content, reply_to=reply_to)
        if not result.get("success"):
            raise UpstreamError(result.get("error") or "Failed to send email")

        now = self.clock()
        # credits never go below zero
        updated = (
            self.db.query(EmailCredit)
            .filter(EmailCredit.professional_id == professional_id, EmailCredit.credits >= 1)
            .update(
                {EmailCredit.credits: EmailCredit.credits - 1, EmailCredit.updated_at: now},
                synchronize_session=False,
            )
        )
        if not updated:
            logger.warning(f"Email sent for professional {professional_id} but credits were already exhausted")

        self.db.add(EmailLog(
            professional_id=professional_id,
            recipient_email=to_email,
            email_type=email_type,
            status="sent",
            provider_message_id=result.get("message_id"),
            created_at=now,
        ))
        self.db.commit()

        remaining = self.balance(professional_id)
        logger.info(f"Email sent to {to_email} for professional {professional_id}, {remaining} credits left")
        return {"success": True, "messageId": result.get("message_id"), "creditsRemaining": remaining}

    def credit_summary(self, professional_id: int) -> Dict[str, Any]:
        sent = self.db.query(EmailLog).filter(EmailLog.professional_id == professional_id).count()
        return {"professionalId": professional_id, "credits": self.balance(professional_id), "emailsSent": sent}
