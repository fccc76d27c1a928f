import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import config
from db.init import init_db
from routers import (
    subscription, webhook, limits, email, geocoding, service, public
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


app = FastAPI(title="BeautyOn Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,        # cannot be True with ["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)
@app.on_event("startup")
def startup():
    init_db()

@app.get("/health")
def health_check():
    return {"status": "ok"}

# Routers
app.include_router(subscription.router, prefix="/subscriptions", tags=["Subscriptions"])
app.include_router(webhook.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(limits.router, prefix="/limits", tags=["Limits"])
app.include_router(email.router, prefix="/emails", tags=["Emails"])
app.include_router(geocoding.router, prefix="/geocode", tags=["Geocoding"])
app.include_router(service.router, prefix="/services", tags=["Services"])
app.include_router(public.router, prefix="/public", tags=["Public"])


@app.get("/")
def root():
    return {"message": "BeautyOn Backend running successfully"}
