import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./beautyon.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# JWT
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

# Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
# Price IDs come from the Stripe Dashboard (test mode first, then live)
STRIPE_PRICE_STARTERIS = os.getenv("STRIPE_PRICE_STARTERIS", "price_1SWmMTRtOhWJgeVeCxB9RCxm")
STRIPE_PRICE_PRO = os.getenv("STRIPE_PRICE_PRO", "price_1SWmMtRtOhWJgeVeiKK0m0YL")
STRIPE_PRICE_BIZNESS = os.getenv("STRIPE_PRICE_BIZNESS", "price_1SWmNCRtOhWJgeVekHZDvwzP")

# Brevo (Sendinblue)
BREVO_API_KEY = os.getenv("BREVO_API_KEY", "")
BREVO_SENDER_EMAIL = os.getenv("BREVO_SENDER_EMAIL", "")
BREVO_SENDER_NAME = os.getenv("BREVO_SENDER_NAME", "BeautyOn")

# Mapbox geocoding
MAPBOX_SECRET_TOKEN = os.getenv("MAPBOX_SECRET_TOKEN", "")
MAPBOX_COUNTRY = os.getenv("MAPBOX_COUNTRY", "LV")

# Expiry sweep
SWEEP_MAX_WORKERS = int(os.getenv("SWEEP_MAX_WORKERS", "4"))
