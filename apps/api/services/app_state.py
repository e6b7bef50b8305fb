"""
Composed application state.

Built once per app session and passed around by reference: one store, one
change feed, the auth and workout contexts and the account bootstrap. On
sign-in the bootstrap runs if rows are missing, the setup post-condition is
evaluated and the workout mirror is started for the identity's own alias.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import sessionmaker

from core.database import SessionLocal
from core.events import ChangeFeed
from services.account_bootstrap import (
    AccountBootstrap,
    BootstrapResult,
    SetupStatus,
    check_setup,
    find_own_alias,
    needs_bootstrap,
)
from services.auth_context import SIGNED_IN, SIGNED_OUT, AuthContext
from services.identity_service import AuthSession
from services.setup_flow import SetupFlow
from services.store import StoreGateway
from services.workout_context import WorkoutContext

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    store: StoreGateway
    auth: AuthContext
    workout: WorkoutContext
    bootstrap: AccountBootstrap
    setup_status: Optional[SetupStatus] = None
    last_bootstrap: Optional[BootstrapResult] = None
    _remove_listener: Optional[Callable[[], None]] = field(default=None, repr=False)

    @classmethod
    def create(
        cls,
        session_factory: sessionmaker = SessionLocal,
        feed: Optional[ChangeFeed] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        **bootstrap_options: Any,
    ) -> "AppState":
        store = StoreGateway(session_factory, feed if feed is not None else ChangeFeed())
        state = cls(
            store=store,
            auth=AuthContext(store),
            workout=WorkoutContext(store),
            bootstrap=AccountBootstrap(store, sleep=sleep, **bootstrap_options),
        )
        state._remove_listener = state.auth.on_change(state._on_auth_change)
        return state

    @property
    def feed(self) -> ChangeFeed:
        return self.store.feed

    def _on_auth_change(self, event: str, session: Optional[AuthSession]) -> None:
        if event == SIGNED_IN and session is not None:
            self.load(session)
        elif event == SIGNED_OUT:
            self.workout.stop()
            self.setup_status = None

    def load(self, session: AuthSession) -> SetupStatus:
        """Bootstrap when needed, check setup and start the mirror."""
        if needs_bootstrap(self.store, session.id):
            self.last_bootstrap = self.bootstrap.run(session)
        self.setup_status = check_setup(self.store, session.id)
        if not self.setup_status.complete:
            logger.info(f"Setup incomplete for {session.id}: {self.setup_status.reason}")

        alias = find_own_alias(self.store, session.id)
        if alias is not None:
            self.workout.start(session.id, alias.username)
        return self.setup_status

    def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> SetupStatus:
        self.auth.sign_up(email, password, metadata)
        return self.setup_status

    def sign_in(self, email: str, password: str) -> SetupStatus:
        self.auth.sign_in(email, password)
        return self.setup_status

    def sign_in_with_code(self, code: str) -> SetupStatus:
        self.auth.sign_in_with_code(code)
        return self.setup_status

    def sign_out(self) -> None:
        self.auth.sign_out()

    def setup_flow(self, force: Optional[bool] = None, reason: Optional[str] = None) -> SetupFlow:
        """Open the setup flow; forced by default while setup is incomplete."""
        if self.auth.session is None:
            raise RuntimeError("Not signed in")
        status = self.setup_status or check_setup(self.store, self.auth.session.id)
        if force is None:
            force = not status.complete
        return SetupFlow(
            self.store,
            self.auth.session.id,
            force=force,
            reason=reason if reason is not None else status.reason,
        ).load()

    def reload(self) -> SetupStatus:
        if self.auth.session is None:
            raise RuntimeError("Not signed in")
        return self.load(self.auth.session)

    def close(self) -> None:
        self.workout.stop()
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
