"""
Process-wide authentication state for an app session.

Holds the current AuthSession and notifies listeners on sign-in/sign-out.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from services import identity_service
from services.identity_service import AuthSession
from services.store import StoreGateway

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

AuthListener = Callable[[str, Optional[AuthSession]], None]


class AuthContext:
    def __init__(self, store: StoreGateway):
        self.store = store
        self.session: Optional[AuthSession] = None
        self._listeners: list[AuthListener] = []

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    @property
    def access_token(self) -> Optional[str]:
        return self.session.access_token() if self.session else None

    def on_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self.session)
            except Exception as e:
                logger.error(f"Auth listener failed on {event}: {e}", exc_info=True)

    def _signed_in(self, session: AuthSession) -> AuthSession:
        self.session = session
        logger.info(f"Signed in: {session.id} via {session.provider}")
        self._emit(SIGNED_IN)
        return session

    def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> AuthSession:
        return self._signed_in(identity_service.sign_up(self.store, email, password, metadata))

    def sign_in(self, email: str, password: str) -> AuthSession:
        return self._signed_in(identity_service.authenticate(self.store, email, password))

    def sign_in_with_code(self, code: str) -> AuthSession:
        return self._signed_in(identity_service.exchange_code_for_session(self.store, code))

    def sign_out(self) -> None:
        if self.session is None:
            return
        logger.info(f"Signed out: {self.session.id}")
        self.session = None
        self._emit(SIGNED_OUT)
