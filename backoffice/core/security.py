from datetime import datetime, timedelta, timezone

from jose import jwt

from backoffice.core.config import settings


def create_access_token(subject: str, role: str, store_id: int | None = None, expires_minutes: int = 60) -> str:
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {
        "sub": subject,
        "role": role,
        "store_id": store_id,
        "type": "access",
        "iss": settings.issuer,
        "exp": expires_at,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm], issuer=settings.issuer)
