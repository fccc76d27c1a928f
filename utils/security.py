import logging
from datetime import timedelta
from typing import Optional, Dict, Any

import jwt

from config import SECRET_KEY, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from utils.dates import utcnow

logger = logging.getLogger(__name__)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a bearer token. ``data`` usually carries ``sub`` (email),
    ``uid`` (account id) and ``role``.
    """
    to_encode = data.copy()
    now = utcnow()
    to_encode.update({
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
    })
    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Returns the decoded payload, or None if the token is invalid or expired.
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.warning("JWT verification failed: token has expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None
