from sqlalchemy import Column, Integer, String, Boolean, Float, JSON, TIMESTAMP, func
from db.init import Base

class Professional(Base):
    __tablename__ = "professionals"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150))
    email = Column(String(150), unique=True, index=True)
    phone_number = Column(String(20))
    business_name = Column(String(150))
    category = Column(String(100), index=True)
    city = Column(String(100), index=True)
    address = Column(String(250))
    bio = Column(String)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    gallery = Column(JSON, default=list)  # list of photo URLs
    rating = Column(Float, nullable=True)
    total_reviews = Column(Integer, default=0)
    approved = Column(Boolean, default=False)
    active = Column(Boolean, default=True)
    last_active = Column(TIMESTAMP, server_default=func.now())

    # Billing state, written only by the subscription services
    plan = Column(String(50), default="free", nullable=False)
    subscription_status = Column(String(50), default="inactive")  # active / canceled_at_period_end / past_due / inactive / expired
    subscription_end_date = Column(TIMESTAMP, nullable=True)
    subscription_will_renew = Column(Boolean, default=False)
    is_cancelled = Column(Boolean, default=False)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    subscription_last_changed = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
