from sqlalchemy import Column, Integer, String, ForeignKey, TIMESTAMP, CheckConstraint, func
from db.init import Base

class EmailCredit(Base):
    __tablename__ = "email_credits"
    __table_args__ = (CheckConstraint("credits >= 0", name="ck_email_credits_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(Integer, ForeignKey("professionals.id"), unique=True, nullable=False)
    credits = Column(Integer, default=0, nullable=False)
    updated_at = Column(TIMESTAMP, server_default=func.now())


class EmailPackage(Base):
    __tablename__ = "email_packages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    credits = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)
