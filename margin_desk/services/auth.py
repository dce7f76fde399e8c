"""Authentication utilities: JWT bearer tokens whose subject is the user id.

Price-feed and operator tokens carry an extra `scope` claim; plain user
tokens have none.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from margin_desk.config import settings


def create_access_token(subject: str, scope: str | None = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {"sub": subject, "exp": expire}
    if scope:
        payload["scope"] = scope
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token_claims(token: str) -> dict | None:
    """Decode and verify a JWT. Returns None on failure or when it has no subject."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


def decode_access_token(token: str) -> str | None:
    """Decode JWT and return the subject (user id). Returns None on failure."""
    claims = decode_token_claims(token)
    return claims["sub"] if claims else None
