import jwt
from datetime import timedelta
from typing import Optional
from .core.clock import utcnow
from .core.config import settings


# =========================
# JWT Token Handling
# =========================
def create_jwt_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    """Create a signed access token carrying the principal id and role."""
    to_encode = data.copy()
    expire = utcnow() + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "type": "access"})

    # Ensure SECRET_KEY is properly set
    if not settings.SECRET_KEY or settings.SECRET_KEY == "change-me-in-prod":
        raise ValueError("SECRET_KEY not properly configured")

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_jwt_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token"""
    if not settings.SECRET_KEY or settings.SECRET_KEY == "change-me-in-prod":
        return None
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
    if payload.get("type") != "access":
        return None
    return payload
