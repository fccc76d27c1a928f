from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

import config
from db.init import get_db, SessionLocal
from models.professional import Professional
from utils.dates import utcnow
from utils.email import BrevoClient
from utils.geocoding import MapboxGeocoder
from utils.plans import build_price_to_plan
from utils.security import decode_token
from utils.stripe_client import StripeClient

bearer_scheme = HTTPBearer(auto_error=False)

def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):

    if credentials is None or not credentials.scheme.lower() == "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_token(credentials.credentials)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return payload

def role_required(role: str):
    def wrapper(payload=Depends(get_current_user)):
        if payload.get("role") != role:
            raise HTTPException(status_code=403, detail="Not enough privileges")
        return payload
    return wrapper

def get_current_professional(payload=Depends(get_current_user), db: Session = Depends(get_db)) -> Professional:
    professional = None
    uid = payload.get("uid")
    if uid is not None:
        professional = db.query(Professional).filter(Professional.id == uid).first()
    if professional is None and payload.get("sub"):
        professional = db.query(Professional).filter(Professional.email == payload["sub"]).first()
    if professional is None:
        raise HTTPException(status_code=404, detail="Professional profile not found")
    return professional


# ---- External clients, built from config ----
def get_stripe_client() -> StripeClient:
    return StripeClient(config.STRIPE_SECRET_KEY, webhook_secret=config.STRIPE_WEBHOOK_SECRET)

def get_email_client() -> BrevoClient:
    return BrevoClient(config.BREVO_API_KEY, config.BREVO_SENDER_EMAIL, config.BREVO_SENDER_NAME)

def get_geocoder() -> MapboxGeocoder:
    return MapboxGeocoder(config.MAPBOX_SECRET_TOKEN, country=config.MAPBOX_COUNTRY)

def get_price_to_plan() -> dict:
    return build_price_to_plan(config.STRIPE_PRICE_STARTERIS, config.STRIPE_PRICE_PRO, config.STRIPE_PRICE_BIZNESS)

def get_session_factory():
    return SessionLocal

def get_clock():
    return utcnow
