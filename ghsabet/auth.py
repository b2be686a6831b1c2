"""
API token authentication.

Bettors log in with username/password and receive a token; every
subsequent call carries it in the ``X-API-Key`` header.  The dependencies
below turn that header into a ``BettorSession``.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from ghsabet.core.errors import Unauthenticated
from ghsabet.models import get_db
from ghsabet.services.accounts import BettorSession, resolve_session

# API Key header
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_optional_session(
    api_key: Optional[str] = Security(API_KEY_HEADER),
    db: Session = Depends(get_db),
) -> Optional[BettorSession]:
    """
    Session for the caller, or ``None`` when no valid token was sent.

    Used where the service itself decides how to reject anonymous callers
    (bet placement raises ``Unauthenticated`` with its own message).
    """
    if not api_key:
        return None
    try:
        return resolve_session(db, api_key)
    except Unauthenticated:
        return None


def verify_api_key(
    api_key: Optional[str] = Security(API_KEY_HEADER),
    db: Session = Depends(get_db),
) -> BettorSession:
    """
    Verify the API token and return the caller's session.

    Usage in FastAPI routes:
        @app.get("/api/me")
        def me(session: BettorSession = Depends(verify_api_key)):
            ...
    """
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Include 'X-API-Key' header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    try:
        return resolve_session(db, api_key)
    except Unauthenticated as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "ApiKey"},
        )


def verify_admin_api_key(session: BettorSession = Security(verify_api_key)) -> BettorSession:
    """Admin-only routes."""
    if not session.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return session
