from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from db.init import get_db
from models.professional import Professional
from services.ranking import sort_professionals
from utils.dates import isoformat
from utils.deps import get_clock
from utils.plans import plan_limits

router = APIRouter()

@router.get("/info")
def get_info():
    return {"message": "Welcome to BeautyOn public API", "status": "ok"}

@router.get("/professionals")
def list_professionals(
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    city: Optional[str] = None,
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    clock = Depends(get_clock),
):
    """
    Approved, active professionals in search ranking order, each with its
    distance in km from (lat, lon).
    """
    query = db.query(Professional).filter(Professional.approved == True, Professional.active == True)
    if city:
        query = query.filter(Professional.city == city)
    if category:
        query = query.filter(Professional.category == category)

    ranked = sort_professionals(query.all(), lat, lon, clock())

    result = []
    for entry in ranked:
        p = entry["professional"]
        flags = plan_limits(p.plan)["featureFlags"]
        result.append({
            "id": p.id,
            "name": p.name,
            "businessName": p.business_name,
            "category": p.category,
            "city": p.city,
            "address": p.address,
            "latitude": p.latitude,
            "longitude": p.longitude,
            "rating": p.rating,
            "totalReviews": p.total_reviews,
            "plan": p.plan,
            "verified": flags["verified"],
            "lastActive": isoformat(p.last_active),
            "distance": entry["distance"],
        })
    return result
