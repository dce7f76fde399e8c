"""Shared API dependencies."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from margin_desk.exceptions import (
    InsufficientBalanceError,
    InvariantViolation,
    MarginDeskError,
    StaleOrMissingPriceError,
    TradeNotFoundError,
    ValidationError,
)
from margin_desk.services.auth import decode_access_token, decode_token_claims
from margin_desk.utils.constants import FEED_SCOPE

bearer_scheme = HTTPBearer()

_STATUS_FOR_ERROR = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    InsufficientBalanceError: status.HTTP_400_BAD_REQUEST,
    TradeNotFoundError: status.HTTP_404_NOT_FOUND,
    StaleOrMissingPriceError: status.HTTP_409_CONFLICT,
    InvariantViolation: status.HTTP_409_CONFLICT,
}


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> str:
    """Validate JWT and return the user id it was issued for."""
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return user_id


def require_feed(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> str:
    """Allow only price-feed / operator tokens. Returns the token subject."""
    claims = decode_token_claims(credentials.credentials)
    if not claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    if claims.get("scope") != FEED_SCOPE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Price feed credentials required",
        )
    return claims["sub"]


def http_error(exc: MarginDeskError) -> HTTPException:
    """Map a business error to the HTTP status the API reports it with."""
    for cls, code in _STATUS_FOR_ERROR.items():
        if isinstance(exc, cls):
            return HTTPException(status_code=code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
