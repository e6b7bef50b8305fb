"""
Everyday workout operations: aliases, days, exercises and sets.

Every operation is scoped to aliases owned by the calling identity
(users.auth_id); an alias owned by someone else behaves as if it did not
exist.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Optional
from uuid import UUID

from core.exceptions import ConflictError, ForbiddenError, InvalidDayError, NotFoundError, ValidationError
from models import WEEKDAYS, Exercise, Profile, UserDay, WorkoutBuddy, WorkoutSet, WorkoutUser
from services.setup_flow import ensure_buddy_link
from services.store import ErrorKind, StoreError, StoreGateway
from services.subscription_gate import check_add_day, plan_for

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _required(value: Optional[str], field: str) -> str:
    cleaned = _clean(value)
    if not cleaned:
        raise ValidationError(f"{field.replace('_', ' ').capitalize()} is required", field=field)
    return cleaned


def _weekday(day: str) -> str:
    normalized = _clean(day).capitalize()
    if normalized not in WEEKDAYS:
        raise InvalidDayError(day)
    return normalized


def require_owned_alias(store: StoreGateway, identity_id: UUID, username: str) -> WorkoutUser:
    alias = store.select_maybe(WorkoutUser, username=username)
    if alias is None or alias.auth_id != identity_id:
        raise NotFoundError("User", username)
    return alias


# -- aliases ---------------------------------------------------------------

def list_aliases(store: StoreGateway, identity_id: UUID) -> list[WorkoutUser]:
    return store.select(WorkoutUser, auth_id=identity_id, order_by=WorkoutUser.username)


def add_alias(store: StoreGateway, identity_id: UUID, username: str) -> WorkoutUser:
    """
    Add a workout user under this identity.

    The first extra user becomes the profile's buddy: the profile is updated,
    a workout_buddies link is created and the owner's days are mirrored.
    """
    name = _required(username, "username")
    try:
        alias = store.insert(WorkoutUser(username=name, auth_id=identity_id, is_buddy=True))
    except StoreError as e:
        if e.kind is ErrorKind.CONFLICT:
            raise ConflictError("User already exists")
        raise

    profile = store.select_maybe(Profile, id=identity_id)
    if profile is not None and not profile.has_buddy:
        store.update(Profile, {"has_buddy": True, "buddy_name": name}, id=identity_id)
        ensure_buddy_link(store, identity_id, name)
        owner = store.select(WorkoutUser, auth_id=identity_id, is_buddy=False, order_by=WorkoutUser.id, limit=1)
        if owner:
            owner_days = store.select(UserDay, username=owner[0].username, order_by=UserDay.day_order)
            store.insert_many(
                UserDay(username=name, day=d.day, day_order=d.day_order, auth_id=identity_id)
                for d in owner_days
            )
        logger.info(f"{name!r} set as buddy for {identity_id}")
    return alias


def rename_alias(store: StoreGateway, identity_id: UUID, username: str, new_username: str) -> WorkoutUser:
    alias = require_owned_alias(store, identity_id, username)
    new_name = _required(new_username, "new_username")
    if new_name == alias.username:
        return alias

    try:
        renamed = store.rename_alias(alias.username, new_name)
    except StoreError as e:
        if e.kind is ErrorKind.CONFLICT:
            raise ConflictError(f"The name {new_name!r} is already taken")
        raise

    if not alias.is_buddy:
        store.update(Profile, {"display_name": new_name}, id=identity_id)
    logger.info(f"Renamed {username!r} to {new_name!r}")
    return renamed


def delete_alias(store: StoreGateway, identity_id: UUID, username: str) -> None:
    alias = require_owned_alias(store, identity_id, username)
    if not alias.is_buddy:
        raise ForbiddenError("Your own user cannot be deleted")

    store.delete(WorkoutSet, username=alias.username)
    store.delete(Exercise, username=alias.username)
    store.delete(UserDay, username=alias.username)
    store.delete(WorkoutBuddy, profile_id=identity_id, buddy_name=alias.username)
    store.update(
        Profile,
        {"has_buddy": False, "buddy_name": None},
        id=identity_id,
        buddy_name=alias.username,
    )
    store.delete(WorkoutUser, id=alias.id)
    logger.info(f"Deleted buddy {alias.username!r} of {identity_id}")


# -- days ------------------------------------------------------------------

def list_days(store: StoreGateway, identity_id: UUID, username: str) -> list[UserDay]:
    require_owned_alias(store, identity_id, username)
    return store.select(UserDay, username=username, order_by=UserDay.day_order)


def add_day(store: StoreGateway, identity_id: UUID, username: str, day: str) -> UserDay:
    """Add a workout day, subject to the plan's day limit."""
    require_owned_alias(store, identity_id, username)
    day = _weekday(day)

    if store.count(UserDay, username=username, day=day):
        raise ConflictError(f"{day} is already a workout day")

    current = store.count(UserDay, username=username)
    check_add_day(plan_for(store, identity_id), current)

    try:
        return store.insert(UserDay(
            username=username,
            day=day,
            day_order=WEEKDAYS.index(day),
            auth_id=identity_id,
        ))
    except StoreError as e:
        if e.kind is ErrorKind.CONFLICT:
            raise ConflictError(f"{day} is already a workout day")
        raise


def remove_day(store: StoreGateway, identity_id: UUID, username: str, day: str) -> None:
    require_owned_alias(store, identity_id, username)
    day = _weekday(day)
    if not store.delete(UserDay, username=username, day=day):
        raise NotFoundError("Workout day", day)
    removed = store.delete(Exercise, username=username, day=day)
    logger.info(f"Removed {day} for {username!r} ({removed} exercises)")


# -- exercises ---------------------------------------------------------------

def day_exercises(store: StoreGateway, username: str, day: str) -> list[Exercise]:
    return store.select(Exercise, username=username, day=day, order_by=Exercise.position)


def list_exercises(store: StoreGateway, identity_id: UUID, username: str) -> dict[str, list[Exercise]]:
    require_owned_alias(store, identity_id, username)
    grouped: dict[str, list[Exercise]] = OrderedDict()
    for row in store.select(Exercise, username=username, order_by=(Exercise.day, Exercise.position)):
        grouped.setdefault(row.day, []).append(row)
    return grouped


def add_exercise(store: StoreGateway, identity_id: UUID, username: str, day: str, name: str) -> Exercise:
    require_owned_alias(store, identity_id, username)
    day = _weekday(day)
    name = _required(name, "name")
    position = store.count(Exercise, username=username, day=day)
    return store.insert(Exercise(username=username, day=day, name=name, position=position))


def _rewrite_positions(store: StoreGateway, username: str, day: str, names: list[str]) -> list[Exercise]:
    rows = [Exercise(username=username, day=day, name=n, position=i) for i, n in enumerate(names)]
    return store.replace(Exercise, rows, username=username, day=day)


def remove_exercise(store: StoreGateway, identity_id: UUID, username: str, day: str, index: int) -> list[Exercise]:
    require_owned_alias(store, identity_id, username)
    day = _weekday(day)
    names = [e.name for e in day_exercises(store, username, day)]
    if not 0 <= index < len(names):
        raise NotFoundError("Exercise", f"{day}[{index}]")
    del names[index]
    return _rewrite_positions(store, username, day, names)


def move_exercise(
    store: StoreGateway,
    identity_id: UUID,
    username: str,
    day: str,
    from_index: int,
    to_index: int,
) -> list[Exercise]:
    """Move one exercise; the day's list is rewritten with positions 0..n-1."""
    require_owned_alias(store, identity_id, username)
    day = _weekday(day)
    names = [e.name for e in day_exercises(store, username, day)]
    if not 0 <= from_index < len(names) or not 0 <= to_index < len(names):
        raise ValidationError(f"Index out of range for {len(names)} exercises", field="index")
    names.insert(to_index, names.pop(from_index))
    return _rewrite_positions(store, username, day, names)


# -- sets ------------------------------------------------------------------

def list_sets(store: StoreGateway, identity_id: UUID, username: str, exercise: str) -> list[WorkoutSet]:
    require_owned_alias(store, identity_id, username)
    return store.select(
        WorkoutSet,
        username=username,
        exercise=exercise,
        order_by=(WorkoutSet.created_at, WorkoutSet.id),
    )


def set_history(
    store: StoreGateway,
    identity_id: UUID,
    username: str,
    exercise: str,
    limit: Optional[int] = None,
) -> list[WorkoutSet]:
    require_owned_alias(store, identity_id, username)
    return store.select(
        WorkoutSet,
        username=username,
        exercise=exercise,
        order_by=(WorkoutSet.created_at.desc(), WorkoutSet.id.desc()),
        limit=limit,
    )


def add_set(
    store: StoreGateway,
    identity_id: UUID,
    username: str,
    exercise: str,
    warmup: str = "",
    weight: str = "",
    reps: str = "",
    goal: str = "",
) -> WorkoutSet:
    require_owned_alias(store, identity_id, username)
    return store.insert(WorkoutSet(
        username=username,
        exercise=_required(exercise, "exercise"),
        warmup=_clean(warmup),
        weight=_clean(weight),
        reps=_clean(reps),
        goal=_clean(goal),
    ))


def delete_set(store: StoreGateway, identity_id: UUID, set_id: int) -> None:
    row = store.select_maybe(WorkoutSet, id=set_id)
    if row is None:
        raise NotFoundError("Set", str(set_id))
    require_owned_alias(store, identity_id, row.username)
    store.delete(WorkoutSet, id=set_id)


def last_set_prefill(store: StoreGateway, identity_id: UUID, username: str, exercise: str) -> dict[str, str]:
    """Form defaults from the most recent set; reps always start blank."""
    latest = set_history(store, identity_id, username, exercise, limit=1)
    if not latest:
        return {"warmup": "", "weight": "", "reps": "", "goal": ""}
    last = latest[0]
    return {"warmup": last.warmup, "weight": last.weight, "reps": "", "goal": last.goal}


def clear_sets(store: StoreGateway, identity_id: UUID) -> int:
    removed = 0
    for alias in list_aliases(store, identity_id):
        removed += store.delete(WorkoutSet, username=alias.username)
    logger.info(f"Cleared {removed} sets for {identity_id}")
    return removed
