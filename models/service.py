from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, TIMESTAMP, func
from db.init import Base
from pydantic import BaseModel, Field


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(Integer, ForeignKey("professionals.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2))
    duration_minutes = Column(Integer, default=30)
    created_at = Column(TIMESTAMP, server_default=func.now())

class ServiceCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    price: float = Field(..., ge=0)
    duration_minutes: int = Field(30, gt=0)
