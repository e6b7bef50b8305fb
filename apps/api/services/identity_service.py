"""
Identity provider: sign-up, password sign-in and auth-code exchange.

An AuthSession is the view of an identity the rest of the app works with
(id, email, user_metadata, provider).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from uuid import UUID

from core.exceptions import ConflictError, UnauthorizedError, ValidationError
from core.security import (
    PURPOSE_AUTH_CODE,
    create_access_token,
    create_auth_code,
    decode_token,
    get_password_hash,
    verify_password,
)
from models import Identity, UsedAuthCode
from services.store import ErrorKind, StoreError, StoreGateway

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class AuthSession:
    id: UUID
    email: Optional[str]
    user_metadata: Dict[str, Any] = field(default_factory=dict)
    provider: str = "email"

    @property
    def app_metadata(self) -> Dict[str, Any]:
        return {"provider": self.provider}

    @classmethod
    def from_identity(cls, identity: Identity) -> "AuthSession":
        return cls(
            id=identity.id,
            email=identity.email,
            user_metadata=dict(identity.user_metadata or {}),
            provider=identity.provider or "email",
        )

    def access_token(self) -> str:
        return create_access_token({"sub": str(self.id), "email": self.email})


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def sign_up(
    store: StoreGateway,
    email: str,
    password: str,
    metadata: Optional[Dict[str, Any]] = None,
    provider: str = "email",
) -> AuthSession:
    email = normalize_email(email)
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password")

    metadata = {k: v for k, v in (metadata or {}).items() if v}
    try:
        identity = store.insert(Identity(
            email=email,
            password_hash=get_password_hash(password),
            user_metadata=metadata,
            provider=provider,
        ))
    except StoreError as e:
        if e.kind is ErrorKind.CONFLICT:
            raise ConflictError("Email already registered")
        raise

    logger.info(f"Identity created: {identity.id}")
    return AuthSession.from_identity(identity)


def authenticate(store: StoreGateway, email: str, password: str) -> AuthSession:
    identity = store.select_maybe(Identity, email=normalize_email(email))
    if identity is None or not identity.password_hash:
        raise UnauthorizedError("Invalid email or password")
    if not verify_password(password, identity.password_hash):
        raise UnauthorizedError("Invalid email or password")
    return AuthSession.from_identity(identity)


def session_for(store: StoreGateway, identity_id: UUID | str) -> Optional[AuthSession]:
    try:
        identity_uuid = identity_id if isinstance(identity_id, UUID) else UUID(str(identity_id))
    except ValueError:
        return None
    identity = store.select_maybe(Identity, id=identity_uuid)
    return AuthSession.from_identity(identity) if identity else None


def issue_auth_code(session: AuthSession) -> str:
    return create_auth_code(str(session.id))


def exchange_code_for_session(store: StoreGateway, code: str) -> AuthSession:
    """Trade an auth code for a session. Each code works exactly once."""
    payload = decode_token(code, purpose=PURPOSE_AUTH_CODE)
    if not payload or not payload.get("sub") or not payload.get("jti"):
        raise UnauthorizedError("Invalid or expired auth code")
    session = session_for(store, payload["sub"])
    if session is None:
        raise UnauthorizedError("Unknown identity for auth code")

    try:
        store.insert(UsedAuthCode(jti=payload["jti"], identity_id=session.id))
    except StoreError as e:
        if e.kind is ErrorKind.CONFLICT:
            logger.warning(f"Auth code replay rejected for {session.id}")
            raise UnauthorizedError("Auth code already used")
        raise
    return session
