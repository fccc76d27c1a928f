from sqlalchemy import Column, Integer, String, ForeignKey, TIMESTAMP
from db.init import Base

class SubscriptionHistory(Base):
    __tablename__ = "subscription_history"

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(Integer, ForeignKey("professionals.id"), nullable=False, index=True)
    plan = Column(String(50), nullable=False)
    status = Column(String(50), nullable=False)
    stripe_subscription_id = Column(String(255), nullable=True)
    started_at = Column(TIMESTAMP, nullable=False)
    ended_at = Column(TIMESTAMP, nullable=True)  # NULL while the period is open
