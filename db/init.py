# db/init.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import DATABASE_URL

# ---- Database engine & Session ----
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# ---- Base for ORM models ----
Base = declarative_base()


# ---- DB session dependency ----
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---- Initialization ----
def init_db(bind=None):
    """
    Imports all model modules to register tables and creates them.
    """
    # Import models so their metadata is registered on Base
    from models import (  # noqa: F401
        professional,
        staff_member,
        service,
        subscription_history,
        email_credit,
        email_log,
    )

    Base.metadata.create_all(bind=bind or engine)
