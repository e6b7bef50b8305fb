"""
Authentication dependencies.

Provides FastAPI dependencies for resolving the current AuthSession from a
Bearer token or the `access_token` cookie set by /auth/callback.
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from core.security import decode_token
from services.identity_service import AuthSession, session_for
from services.store import StoreGateway, get_store

ACCESS_TOKEN_COOKIE = "access_token"

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)


def _token_from_request(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    if credentials:
        return credentials.credentials
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


def get_current_session_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: StoreGateway = Depends(get_store),
) -> Optional[AuthSession]:
    """
    Resolve the session if a valid token is present.

    Returns None if no token or invalid token.
    """
    token = _token_from_request(request, credentials)
    if not token:
        return None
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        return None
    return session_for(store, payload["sub"])


def get_current_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: StoreGateway = Depends(get_store),
) -> AuthSession:
    """
    Get the current authenticated session.

    Raises HTTPException if token is missing, invalid or the identity is gone.
    """
    token = _token_from_request(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    session = session_for(store, payload["sub"])
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return session
