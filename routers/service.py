from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from db.init import get_db
from models.professional import Professional
from models.service import Service, ServiceCreate
from services.plan_limits import LIMIT_SERVICE, validate_limit
from utils.deps import get_current_professional

router = APIRouter()

@router.get("/")
def get_my_services(professional: Professional = Depends(get_current_professional), db: Session = Depends(get_db)):
    return (
        db.query(Service)
          .filter(Service.professional_id == professional.id)
          .order_by(Service.created_at.asc(), Service.id.asc())
          .all()
    )

@router.post("/", status_code=status.HTTP_201_CREATED)
def create(
    payload: ServiceCreate,
    professional: Professional = Depends(get_current_professional),
    db: Session = Depends(get_db),
):
    """
    Add a service to the professional's catalog, within the plan's service limit.
    """
    check = validate_limit(db, LIMIT_SERVICE, professional.id)
    if not check["canAdd"]:
        raise HTTPException(
            status_code=403,
            detail={
                "error": "Service limit reached for your plan",
                "plan": check["plan"],
                "currentCount": check["currentCount"],
                "maxCount": check["maxCount"],
            },
        )

    s = Service(
        professional_id=professional.id,
        name=payload.name,
        price=payload.price,
        duration_minutes=payload.duration_minutes,
    )
    db.add(s)
    db.commit()
    db.refresh(s)
    return {"id": s.id, "name": s.name, "price": float(s.price), "duration_minutes": s.duration_minutes}

@router.delete("/{id}")
def delete(id: int, professional: Professional = Depends(get_current_professional), db: Session = Depends(get_db)):
    s = db.query(Service).filter(Service.id == id, Service.professional_id == professional.id).first()
    if not s:
        raise HTTPException(404)
    db.delete(s)
    db.commit()
    return {"deleted": True}
