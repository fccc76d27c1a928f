from sqlalchemy import Column, Integer, String, ForeignKey, TIMESTAMP, func
from db.init import Base

class EmailLog(Base):
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(Integer, ForeignKey("professionals.id"), nullable=False, index=True)
    recipient_email = Column(String(255), nullable=False)
    email_type = Column(String(50), nullable=False)  # booking_confirmation, reminder, ...
    status = Column(String(20), default="sent")
    provider_message_id = Column(String(255), nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
