"""
Authentication API endpoints.

Provides:
- Sign-up (runs the account bootstrap right away)
- Login (JWT token generation)
- Current session / sign-out
- One-time auth codes and the /auth/callback exchange
"""
from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr, ConfigDict
from typing import Any, Dict, Optional
from urllib.parse import urlencode
from uuid import UUID
import logging

from core.auth import ACCESS_TOKEN_COOKIE, get_current_session
from core.config import settings
from core.exceptions import UnauthorizedError
from core.security import ACCESS_TOKEN_EXPIRE_MINUTES
from models import Profile
from schemas import ProfileResponse, SetupStatusResponse
from services.account_bootstrap import (
    AccountBootstrap,
    check_setup,
    get_account_bootstrap,
    setup_redirect_path,
)
from services.identity_service import (
    AuthSession,
    authenticate,
    exchange_code_for_session,
    issue_auth_code,
    sign_up,
)
from services.store import StoreGateway, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])
callback_router = APIRouter(tags=["auth"])


class UserRegister(BaseModel):
    """Schema for user registration."""
    email: EmailStr
    password: str
    display_name: Optional[str] = None
    full_name: Optional[str] = None


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str


class SessionResponse(BaseModel):
    id: UUID
    email: Optional[str]
    user_metadata: Dict[str, Any] = {}
    app_metadata: Dict[str, Any] = {}

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    """Schema for token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int = ACCESS_TOKEN_EXPIRE_MINUTES * 60  # seconds
    session: SessionResponse
    setup: SetupStatusResponse


class MeResponse(BaseModel):
    session: SessionResponse
    profile: Optional[ProfileResponse] = None
    setup: SetupStatusResponse


class AuthCodeResponse(BaseModel):
    code: str
    callback_url: str


def _session_payload(session: AuthSession) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        email=session.email,
        user_metadata=session.user_metadata,
        app_metadata=session.app_metadata,
    )


def _setup_payload(store: StoreGateway, session: AuthSession) -> SetupStatusResponse:
    result = check_setup(store, session.id)
    return SetupStatusResponse(
        complete=result.complete,
        reason=result.reason,
        redirect_to=None if result.complete else setup_redirect_path(session.id, result.reason),
    )


def _token_response(store: StoreGateway, session: AuthSession) -> TokenResponse:
    return TokenResponse(
        access_token=session.access_token(),
        session=_session_payload(session),
        setup=_setup_payload(store, session),
    )


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        token,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=settings.ENVIRONMENT == "production",
    )


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(
    user_data: UserRegister,
    store: StoreGateway = Depends(get_store),
    bootstrap: AccountBootstrap = Depends(get_account_bootstrap),
):
    """
    Register a new identity.

    The bootstrap runs before responding, so the returned setup status already
    reflects the new profile and alias.
    """
    metadata = {"name": user_data.display_name, "full_name": user_data.full_name}
    session = sign_up(store, user_data.email, user_data.password, metadata)
    bootstrap.run(session)
    return _token_response(store, session)


@router.post("/login", response_model=TokenResponse)
def login(credentials: UserLogin, store: StoreGateway = Depends(get_store)):
    """Authenticate and return a JWT; the client calls /v1/setup/ensure on load."""
    session = authenticate(store, credentials.email, credentials.password)
    logger.info(f"Login: {session.id}")
    return _token_response(store, session)


@router.get("/me", response_model=MeResponse)
def me(
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    profile = store.select_maybe(Profile, id=session.id)
    return MeResponse(
        session=_session_payload(session),
        profile=ProfileResponse.model_validate(profile) if profile else None,
        setup=_setup_payload(store, session),
    )


@router.post("/signout")
def signout(response: Response):
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    return {"success": True}


@router.post("/code", response_model=AuthCodeResponse)
def create_code(session: AuthSession = Depends(get_current_session)):
    """Issue a one-time code for signing in elsewhere via /auth/callback."""
    code = issue_auth_code(session)
    return AuthCodeResponse(code=code, callback_url=f"/auth/callback?{urlencode({'code': code})}")


@callback_router.get("/auth/callback")
def auth_callback(
    code: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    store: StoreGateway = Depends(get_store),
    bootstrap: AccountBootstrap = Depends(get_account_bootstrap),
):
    """
    Exchange an auth code for a session.

    Errors from the provider bounce back to / with the error in the query.
    On success the account is bootstrapped, the session cookie is set and the
    browser is sent to the forced setup flow when setup is incomplete.
    """
    if error:
        logger.warning(f"Auth callback error: {error} ({error_description})")
        query = urlencode({"error": error, "error_description": error_description or ""})
        return RedirectResponse(f"/?{query}")

    if not code:
        return RedirectResponse("/")

    try:
        session = exchange_code_for_session(store, code)
    except UnauthorizedError as e:
        logger.warning(f"Auth code exchange failed: {e.detail}")
        query = urlencode({"error": "invalid_code", "error_description": e.detail})
        return RedirectResponse(f"/?{query}")

    result = bootstrap.run(session)
    if not result.ok:
        logger.warning(f"Continuing sign-in for {session.id} with incomplete bootstrap")

    setup = check_setup(store, session.id)
    target = "/" if setup.complete else setup_redirect_path(session.id, setup.reason)
    response = RedirectResponse(target)
    set_auth_cookie(response, session.access_token())
    return response
