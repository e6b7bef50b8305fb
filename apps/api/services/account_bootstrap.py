"""
Account bootstrap.

Runs after sign-up, after an auth-code exchange and on app load when rows are
missing. Guarantees, as far as the store lets it, that a freshly
authenticated identity has:

- a profile row (template_preference NULL until setup finishes)
- its own alias in `users`

Each of the two steps runs inside a fixed-delay retry envelope preceded by a
short settle delay. "Row not found" drives creation and is never an error.
Other failures are logged and retried; an exhausted envelope leaves the row
absent and the caller carries on, because the route guard sends the identity
into the forced setup flow, which repairs the alias itself. Running out of
alias names is terminal and reported in the result.

check_setup() evaluates the post-condition the route guard relies on.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional
from urllib.parse import urlencode
from uuid import UUID

from core.config import settings
from models import Profile, UserDay, WorkoutUser
from services.identity_service import AuthSession
from services.retry import retry
from services.store import ErrorKind, StoreError, StoreGateway, get_store

logger = logging.getLogger(__name__)

REASON_NO_PROFILE = "no_profile"
REASON_NO_TEMPLATE = "no_template"
REASON_NO_USER_ENTRY = "no_user_entry"
REASON_NO_USER_DAYS = "no_user_days"

FALLBACK_DISPLAY_NAME = "user"


class AliasUnavailableError(Exception):
    """Every candidate alias name (base, base_1, ...) is already taken."""

    def __init__(self, base: str, tried: list[str]):
        super().__init__(f"No free alias name for {base!r} (tried {', '.join(tried)})")
        self.base = base
        self.tried = tried


def resolve_display_name(session: AuthSession, profile: Optional[Profile] = None) -> str:
    """Profile name, then provider metadata, then the e-mail local part, then 'user'."""
    if profile is not None and (profile.display_name or "").strip():
        return profile.display_name.strip()

    metadata = session.user_metadata or {}
    for key in ("name", "full_name"):
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    local_part = (session.email or "").split("@")[0].strip()
    return local_part or FALLBACK_DISPLAY_NAME


def alias_candidates(base: str, suffix_attempts: int) -> Iterator[str]:
    yield base
    for n in range(1, suffix_attempts + 1):
        yield f"{base}_{n}"


def create_unique_alias(
    store: StoreGateway,
    base: str,
    auth_id: Optional[UUID],
    *,
    is_buddy: bool = False,
    suffix_attempts: Optional[int] = None,
) -> WorkoutUser:
    """Insert the first free name among base, base_1 .. base_N."""
    if suffix_attempts is None:
        suffix_attempts = settings.ALIAS_SUFFIX_ATTEMPTS

    tried: list[str] = []
    for name in alias_candidates(base, suffix_attempts):
        tried.append(name)
        try:
            alias = store.insert(WorkoutUser(username=name, auth_id=auth_id, is_buddy=is_buddy))
        except StoreError as e:
            if e.kind is ErrorKind.CONFLICT:
                logger.info(f"Alias {name!r} exists, trying next suffix")
                continue
            raise
        logger.info(f"Alias created: {alias.username!r} (auth_id={auth_id}, buddy={is_buddy})")
        return alias

    raise AliasUnavailableError(base, tried)


def find_own_alias(store: StoreGateway, identity_id: UUID) -> Optional[WorkoutUser]:
    rows = store.select(
        WorkoutUser,
        auth_id=identity_id,
        is_buddy=False,
        order_by=WorkoutUser.id,
        limit=1,
    )
    return rows[0] if rows else None


@dataclass
class SetupStatus:
    complete: bool
    reason: Optional[str] = None
    # The rows the check read; set when complete.
    profile: Optional[Profile] = field(default=None, compare=False, repr=False)
    alias: Optional[WorkoutUser] = field(default=None, compare=False, repr=False)


def check_setup(store: StoreGateway, identity_id: UUID) -> SetupStatus:
    """Return the first unmet invariant, in guard order."""
    profile = store.select_maybe(Profile, id=identity_id)
    if profile is None:
        return SetupStatus(False, REASON_NO_PROFILE)
    if profile.template_preference is None:
        return SetupStatus(False, REASON_NO_TEMPLATE)

    alias = find_own_alias(store, identity_id)
    if alias is None:
        return SetupStatus(False, REASON_NO_USER_ENTRY)
    if store.count(UserDay, username=alias.username) == 0:
        return SetupStatus(False, REASON_NO_USER_DAYS)
    return SetupStatus(True, profile=profile, alias=alias)


def setup_redirect_path(identity_id: UUID, reason: Optional[str]) -> str:
    query = {"userId": str(identity_id), "force": "true"}
    if reason:
        query["reason"] = reason
    return f"/setup?{urlencode(query)}"


def needs_bootstrap(store: StoreGateway, identity_id: UUID) -> bool:
    return (
        store.select_maybe(Profile, id=identity_id) is None
        or find_own_alias(store, identity_id) is None
    )


@dataclass
class BootstrapResult:
    identity_id: UUID
    display_name: Optional[str] = None
    profile_created: bool = False
    profile_error: Optional[str] = None
    alias_name: Optional[str] = None
    alias_created: bool = False
    alias_error: Optional[str] = None
    alias_terminal: bool = False

    @property
    def ok(self) -> bool:
        return self.profile_error is None and self.alias_error is None


class AccountBootstrap:
    def __init__(
        self,
        store: StoreGateway,
        *,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        settle_delay: Optional[float] = None,
        alias_suffix_attempts: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.max_attempts = max_attempts if max_attempts is not None else settings.BOOTSTRAP_MAX_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else settings.BOOTSTRAP_RETRY_DELAY_S
        self.settle_delay = settle_delay if settle_delay is not None else settings.BOOTSTRAP_SETTLE_DELAY_S
        self.alias_suffix_attempts = (
            alias_suffix_attempts if alias_suffix_attempts is not None else settings.ALIAS_SUFFIX_ATTEMPTS
        )
        self.sleep = sleep

    def run(self, session: AuthSession) -> BootstrapResult:
        result = BootstrapResult(identity_id=session.id)
        logger.info(
            f"Bootstrapping account {session.id}",
            extra={"extra_fields": {"identity_id": str(session.id), "provider": session.provider}},
        )

        profile_outcome = retry(
            lambda: self.ensure_profile(session),
            self.max_attempts,
            self.retry_delay,
            initial_delay=self.settle_delay,
            sleep=self.sleep,
            label=f"ensure profile {session.id}",
        )
        if profile_outcome.ok:
            profile, created = profile_outcome.value
            result.profile_created = created
            result.display_name = profile.display_name
        else:
            result.profile_error = str(profile_outcome.error)

        if not result.display_name:
            result.display_name = resolve_display_name(session)

        alias_outcome = retry(
            lambda: self.ensure_alias(session, result.display_name),
            self.max_attempts,
            self.retry_delay,
            initial_delay=self.settle_delay,
            sleep=self.sleep,
            give_up_on=(AliasUnavailableError,),
            label=f"ensure alias {session.id}",
        )
        if alias_outcome.ok:
            alias, created = alias_outcome.value
            result.alias_name = alias.username
            result.alias_created = created
        else:
            result.alias_error = str(alias_outcome.error)
            result.alias_terminal = isinstance(alias_outcome.error, AliasUnavailableError)

        if not result.ok:
            logger.error(
                f"Bootstrap incomplete for {session.id}: "
                f"profile_error={result.profile_error!r} alias_error={result.alias_error!r}"
            )
        return result

    def ensure_profile(self, session: AuthSession) -> tuple[Profile, bool]:
        try:
            return self.store.select_one(Profile, id=session.id), False
        except StoreError as e:
            if e.kind is not ErrorKind.NOT_FOUND:
                raise

        display_name = resolve_display_name(session)
        logger.info(f"Creating profile for {session.id} with display name {display_name!r}")
        profile = self.store.insert(Profile(
            id=session.id,
            display_name=display_name,
            template_preference=None,
            has_buddy=False,
            subscription_plan="free",
        ))
        return profile, True

    def ensure_alias(self, session: AuthSession, display_name: str) -> tuple[WorkoutUser, bool]:
        existing = find_own_alias(self.store, session.id)
        if existing is not None:
            return existing, False

        profile = self.store.select_maybe(Profile, id=session.id)
        base = resolve_display_name(session, profile) if profile is not None else display_name
        alias = create_unique_alias(
            self.store,
            base,
            session.id,
            suffix_attempts=self.alias_suffix_attempts,
        )
        return alias, True


def get_account_bootstrap() -> AccountBootstrap:
    """FastAPI dependency; delays come from settings."""
    return AccountBootstrap(get_store())
