"""
Interactive account setup.

Steps, in order: display name -> buddy -> template -> days. Every step is
persisted as soon as it is submitted, so going back never loses anything.
finalize_days() is the last step and leaves the account satisfying the
post-condition checked by account_bootstrap.check_setup().
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

from core.exceptions import (
    ConflictError,
    InvalidDayError,
    NotFoundError,
    SetupRequiredError,
    ValidationError,
)
from models import TEMPLATE_CHOICES, WEEKDAYS, Exercise, Profile, UserDay, WorkoutBuddy, WorkoutUser
from services.account_bootstrap import (
    REASON_NO_PROFILE,
    REASON_NO_TEMPLATE,
    AliasUnavailableError,
    create_unique_alias,
    find_own_alias,
)
from services.default_exercises import DEFAULT_SELECTED_DAYS, exercises_for
from services.store import ErrorKind, StoreError, StoreGateway

logger = logging.getLogger(__name__)


class SetupStep(str, Enum):
    DISPLAY_NAME = "display_name"
    BUDDY = "buddy"
    TEMPLATE = "template"
    DAYS = "days"
    DONE = "done"


STEP_ORDER = (SetupStep.DISPLAY_NAME, SetupStep.BUDDY, SetupStep.TEMPLATE, SetupStep.DAYS, SetupStep.DONE)


def normalize_days(days: Iterable[str]) -> list[str]:
    """Validate weekday names; duplicates collapse, first occurrence wins."""
    selected: list[str] = []
    for raw in days or []:
        day = (raw or "").strip().capitalize()
        if day not in WEEKDAYS:
            raise InvalidDayError(raw)
        if day not in selected:
            selected.append(day)
    if not selected:
        raise ValidationError("Select at least one workout day", field="days")
    return selected


def _require_profile(store: StoreGateway, identity_id: UUID) -> Profile:
    profile = store.select_maybe(Profile, id=identity_id)
    if profile is None:
        raise NotFoundError("Profile", str(identity_id))
    return profile


def save_display_name(store: StoreGateway, identity_id: UUID, display_name: str) -> Profile:
    name = (display_name or "").strip()
    if not name:
        raise ValidationError("Display name is required", field="display_name")

    alias = find_own_alias(store, identity_id)
    try:
        if alias is None:
            store.insert(WorkoutUser(username=name, auth_id=identity_id, is_buddy=False))
        elif alias.username != name:
            store.rename_alias(alias.username, name)
    except StoreError as e:
        if e.kind is ErrorKind.CONFLICT:
            raise ConflictError(f"The name {name!r} is already taken")
        raise

    profile = store.select_maybe(Profile, id=identity_id)
    if profile is None:
        logger.info(f"Creating profile for {identity_id} during setup")
        return store.insert(Profile(id=identity_id, display_name=name, template_preference=None, has_buddy=False))
    return store.update(Profile, {"display_name": name}, id=identity_id)[0]


def save_buddy(store: StoreGateway, identity_id: UUID, has_buddy: bool, buddy_name: Optional[str] = None) -> Profile:
    _require_profile(store, identity_id)
    if has_buddy:
        name = (buddy_name or "").strip()
        if not name:
            raise ValidationError("Buddy name is required", field="buddy_name")
        values = {"has_buddy": True, "buddy_name": name}
    else:
        values = {"has_buddy": False, "buddy_name": None}
    return store.update(Profile, values, id=identity_id)[0]


def save_template(store: StoreGateway, identity_id: UUID, choice: str) -> Profile:
    if choice not in TEMPLATE_CHOICES:
        raise ValidationError(f"Template must be one of {', '.join(TEMPLATE_CHOICES)}", field="template_preference")
    _require_profile(store, identity_id)
    return store.update(Profile, {"template_preference": choice}, id=identity_id)[0]


def _create_alias(store: StoreGateway, base: str, identity_id: UUID, *, is_buddy: bool = False) -> WorkoutUser:
    try:
        return create_unique_alias(store, base, identity_id, is_buddy=is_buddy)
    except AliasUnavailableError as e:
        logger.error(f"Setup for {identity_id} stopped: {e}")
        raise ConflictError(f"No free name left for '{e.base}', choose a different name")


def _ensure_buddy_alias(store: StoreGateway, profile: Profile) -> WorkoutUser:
    existing = store.select_maybe(WorkoutUser, username=profile.buddy_name)
    if existing is not None and existing.auth_id == profile.id and existing.is_buddy:
        return existing

    buddy = _create_alias(store, profile.buddy_name, profile.id, is_buddy=True)
    if buddy.username != profile.buddy_name:
        logger.info(f"Buddy name {profile.buddy_name!r} taken, using {buddy.username!r}")
        store.update(Profile, {"buddy_name": buddy.username}, id=profile.id)
    return buddy


def ensure_buddy_link(store: StoreGateway, profile_id: UUID, buddy_name: str) -> None:
    if store.select_maybe(WorkoutBuddy, profile_id=profile_id, buddy_name=buddy_name) is None:
        store.insert(WorkoutBuddy(profile_id=profile_id, buddy_name=buddy_name))


def _seed_template_exercises(store: StoreGateway, username: str, days: list[str]) -> int:
    seeded = 0
    for day in days:
        names = exercises_for(day)
        if not names or store.count(Exercise, username=username, day=day):
            continue
        store.insert_many(
            Exercise(username=username, day=day, name=name, position=i)
            for i, name in enumerate(names)
        )
        seeded += len(names)
    return seeded


@dataclass
class FinalizeResult:
    alias_name: str
    buddy_name: Optional[str]
    days: list[str]
    exercises_seeded: int = 0


def finalize_days(
    store: StoreGateway,
    identity_id: UUID,
    days: Iterable[str],
    template_choice: Optional[str] = None,
) -> FinalizeResult:
    """
    Replace the identity's workout days with `days`.

    The own alias (and the buddy alias, when a buddy is configured) is
    created first if missing. All day rows owned by the identity are replaced
    in a single transaction with order = selection index.
    """
    selected = normalize_days(days)

    if template_choice is not None:
        save_template(store, identity_id, template_choice)
    profile = store.select_maybe(Profile, id=identity_id)
    if profile is None:
        raise SetupRequiredError(REASON_NO_PROFILE)
    if profile.template_preference is None:
        raise SetupRequiredError(REASON_NO_TEMPLATE)

    alias = find_own_alias(store, identity_id)
    if alias is None:
        logger.warning(f"No alias for {identity_id} at day selection, creating one")
        alias = _create_alias(store, profile.display_name or "user", identity_id)

    usernames = [alias.username]
    buddy_name = None
    if profile.has_buddy and profile.buddy_name:
        buddy = _ensure_buddy_alias(store, profile)
        ensure_buddy_link(store, identity_id, buddy.username)
        buddy_name = buddy.username
        usernames.append(buddy_name)

    rows = [
        UserDay(username=username, day=day, day_order=i, auth_id=identity_id)
        for username in usernames
        for i, day in enumerate(selected)
    ]
    store.replace(UserDay, rows, auth_id=identity_id)

    seeded = 0
    if profile.template_preference == "template":
        for username in usernames:
            seeded += _seed_template_exercises(store, username, selected)

    logger.info(
        f"Workout days set for {identity_id}: {selected}",
        extra={"extra_fields": {"identity_id": str(identity_id), "aliases": usernames, "seeded": seeded}},
    )
    return FinalizeResult(alias_name=alias.username, buddy_name=buddy_name, days=selected, exercises_seeded=seeded)


@dataclass
class SetupFlow:
    """
    Step-by-step setup state for one identity.

    In forced mode (after sign-up, or when the route guard found the account
    incomplete) the flow cannot be dismissed until the days step completes.
    """

    store: StoreGateway
    identity_id: UUID
    force: bool = False
    reason: Optional[str] = None
    step: SetupStep = SetupStep.DISPLAY_NAME
    display_name: str = ""
    has_buddy: bool = False
    buddy_name: str = ""
    template_choice: Optional[str] = None
    days: list[str] = field(default_factory=lambda: list(DEFAULT_SELECTED_DAYS))
    cancelled: bool = False
    result: Optional[FinalizeResult] = None

    def load(self) -> "SetupFlow":
        profile = self.store.select_maybe(Profile, id=self.identity_id)
        alias = find_own_alias(self.store, self.identity_id)

        if profile is not None and profile.display_name:
            self.display_name = profile.display_name
        elif alias is not None:
            self.display_name = alias.username

        if profile is not None:
            self.template_choice = profile.template_preference
            # a forced run starts the buddy question from scratch
            if not self.force:
                self.has_buddy = bool(profile.has_buddy)
                self.buddy_name = profile.buddy_name or ""

        if alias is not None:
            existing = self.store.select(UserDay, username=alias.username, order_by=UserDay.day_order)
            if existing:
                self.days = [row.day for row in existing]
        return self

    @property
    def is_complete(self) -> bool:
        return self.step is SetupStep.DONE

    @property
    def can_dismiss(self) -> bool:
        return not self.force and not self.is_complete

    def _expect(self, step: SetupStep) -> None:
        if self.step is not step:
            raise ValueError(f"Cannot submit {step.value} while at step {self.step.value}")

    def _advance(self) -> SetupStep:
        self.step = STEP_ORDER[STEP_ORDER.index(self.step) + 1]
        return self.step

    def submit_display_name(self, display_name: str) -> SetupStep:
        self._expect(SetupStep.DISPLAY_NAME)
        profile = save_display_name(self.store, self.identity_id, display_name)
        self.display_name = profile.display_name
        return self._advance()

    def submit_buddy(self, has_buddy: bool, buddy_name: Optional[str] = None) -> SetupStep:
        self._expect(SetupStep.BUDDY)
        profile = save_buddy(self.store, self.identity_id, has_buddy, buddy_name)
        self.has_buddy = profile.has_buddy
        self.buddy_name = profile.buddy_name or ""
        return self._advance()

    def submit_template(self, choice: str) -> SetupStep:
        self._expect(SetupStep.TEMPLATE)
        save_template(self.store, self.identity_id, choice)
        self.template_choice = choice
        return self._advance()

    def submit_days(self, days: Iterable[str]) -> SetupStep:
        self._expect(SetupStep.DAYS)
        self.result = finalize_days(self.store, self.identity_id, days, template_choice=self.template_choice)
        self.days = list(self.result.days)
        if self.result.buddy_name:
            self.buddy_name = self.result.buddy_name
        return self._advance()

    def back(self) -> SetupStep:
        index = STEP_ORDER.index(self.step)
        if 0 < index < len(STEP_ORDER) - 1:
            self.step = STEP_ORDER[index - 1]
        return self.step

    def cancel(self) -> None:
        if not self.can_dismiss:
            raise SetupRequiredError(self.reason)
        self.cancelled = True
        logger.info(f"Setup dismissed by {self.identity_id}")
