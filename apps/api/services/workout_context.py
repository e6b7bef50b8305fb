"""
In-memory mirror of one identity's workout data.

Each data slice has a pure fetch_* function. WorkoutContext subscribes to the
change feed per table and, on every notification, re-runs the matching fetch
and replaces its slice. Subscriptions belong to a generation identified by a
LivenessToken; switching alias or day (or stopping) revokes the token so late
callbacks from the previous generation are dropped instead of applied.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional
from uuid import UUID

from core.events import ChangeEvent, ChangeFeed
from models import Exercise, UserDay, WorkoutSet, WorkoutUser
from services import workout_service
from services.store import StoreGateway

logger = logging.getLogger(__name__)

DEFAULT_DAY = "Monday"


class LivenessToken:
    """Cancellation flag for one subscription generation."""

    def __init__(self, label: str = ""):
        self.label = label
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def revoke(self) -> None:
        self._alive = False


def fetch_users(store: StoreGateway, identity_id: UUID) -> list[WorkoutUser]:
    return store.select(WorkoutUser, auth_id=identity_id, order_by=WorkoutUser.username)


def fetch_days(store: StoreGateway, username: str) -> list[str]:
    return [row.day for row in store.select(UserDay, username=username, order_by=UserDay.day_order)]


def fetch_exercises(store: StoreGateway, username: str) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for row in store.select(Exercise, username=username, order_by=(Exercise.day, Exercise.position)):
        grouped.setdefault(row.day, []).append(row.name)
    return grouped


def fetch_sets(store: StoreGateway, username: str, exercises: list[str]) -> dict[str, list[WorkoutSet]]:
    return {
        name: store.select(
            WorkoutSet,
            username=username,
            exercise=name,
            order_by=(WorkoutSet.created_at, WorkoutSet.id),
        )
        for name in exercises
    }


class WorkoutContext:
    def __init__(self, store: StoreGateway, feed: Optional[ChangeFeed] = None):
        self.store = store
        self.feed = feed if feed is not None else store.feed
        self.identity_id: Optional[UUID] = None
        self.current_user: Optional[str] = None
        self.selected_day: str = DEFAULT_DAY
        self.users: list[str] = []
        self.days: list[str] = []
        self.exercises_by_day: dict[str, list[str]] = {}
        self.exercise_sets: dict[str, list[WorkoutSet]] = {}
        self._token: Optional[LivenessToken] = None
        self._unsubscribers: list[Callable[[], None]] = []

    # -- lifecycle -----------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._token is not None and self._token.alive

    def start(self, identity_id: UUID, username: Optional[str] = None) -> None:
        self.identity_id = identity_id
        if username is None:
            rows = fetch_users(self.store, identity_id)
            own = [r.username for r in rows if not r.is_buddy]
            username = own[0] if own else (rows[0].username if rows else None)
        self.current_user = username
        token = self._new_generation()
        self._refresh_users(token)
        self._load_alias(token)

    def stop(self) -> None:
        self._teardown()
        self.identity_id = None
        self.current_user = None
        self.users, self.days = [], []
        self.exercises_by_day, self.exercise_sets = {}, {}

    def set_current_user(self, username: str) -> None:
        if username not in self.users:
            raise ValueError(f"Unknown user: {username}")
        self.current_user = username
        token = self._new_generation()
        self._load_alias(token)

    def set_selected_day(self, day: str) -> None:
        self.selected_day = day
        token = self._new_generation()
        self._refresh_sets(token)

    def _teardown(self) -> None:
        if self._token is not None:
            self._token.revoke()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _new_generation(self) -> LivenessToken:
        self._teardown()
        token = LivenessToken(f"{self.current_user}/{self.selected_day}")
        self._token = token
        self._subscribe(token, "users", {"auth_id": self.identity_id}, self._refresh_users)
        if self.current_user:
            scope = {"username": self.current_user}
            self._subscribe(token, "user_days", scope, self._refresh_days)
            self._subscribe(token, "exercises", scope, self._refresh_exercises)
            self._subscribe(token, "workout_sets", scope, self._refresh_sets)
        return token

    def _subscribe(
        self,
        token: LivenessToken,
        table: str,
        filter: dict[str, Any],
        refetch: Callable[[LivenessToken], None],
    ) -> None:
        def on_change(event: ChangeEvent) -> None:
            refetch(token)

        self._unsubscribers.append(self.feed.subscribe(table, filter, on_change))

    def _live(self, token: LivenessToken) -> bool:
        if not token.alive:
            logger.debug(f"Dropping stale update for {token.label}")
        return token.alive

    # -- refetch -------------------------------------------------------------

    def _load_alias(self, token: LivenessToken) -> None:
        if not self.current_user:
            return
        self._refresh_days(token, reload_sets=False)
        self._refresh_exercises(token)

    def _refresh_users(self, token: LivenessToken) -> None:
        users = [row.username for row in fetch_users(self.store, self.identity_id)]
        if self._live(token):
            self.users = users

    def _refresh_days(self, token: LivenessToken, reload_sets: bool = True) -> None:
        days = fetch_days(self.store, self.current_user)
        if not self._live(token):
            return
        self.days = days
        if days and self.selected_day not in days:
            self.selected_day = days[0]
            if reload_sets:
                self._refresh_sets(token)

    def _refresh_exercises(self, token: LivenessToken) -> None:
        exercises = fetch_exercises(self.store, self.current_user)
        if not self._live(token):
            return
        self.exercises_by_day = exercises
        self._refresh_sets(token)

    def _refresh_sets(self, token: LivenessToken) -> None:
        sets = fetch_sets(self.store, self.current_user, self.exercises_for_selected_day)
        if self._live(token):
            self.exercise_sets = sets

    # -- reads -------------------------------------------------------------

    @property
    def exercises_for_selected_day(self) -> list[str]:
        return list(self.exercises_by_day.get(self.selected_day, []))

    def get_sets_for_exercise(self, exercise: str) -> list[WorkoutSet]:
        return list(self.exercise_sets.get(exercise, []))

    # -- writes ------------------------------------------------------------

    def add_set_to_exercise(self, exercise: str, warmup: str = "", weight: str = "", reps: str = "", goal: str = "") -> WorkoutSet:
        row = workout_service.add_set(
            self.store, self.identity_id, self.current_user, exercise,
            warmup=warmup, weight=weight, reps=reps, goal=goal,
        )
        cached = self.exercise_sets.setdefault(exercise, [])
        if all(s.id != row.id for s in cached):
            cached.append(row)
        return row

    def remove_set_from_exercise(self, exercise: str, index: int) -> None:
        sets = self.exercise_sets.get(exercise, [])
        if not 0 <= index < len(sets):
            raise IndexError(f"No set {index} for {exercise}")
        set_id = sets[index].id
        workout_service.delete_set(self.store, self.identity_id, set_id)
        self.exercise_sets[exercise] = [s for s in self.exercise_sets.get(exercise, []) if s.id != set_id]

    def add_exercise(self, name: str, day: Optional[str] = None) -> Exercise:
        day = day or self.selected_day
        row = workout_service.add_exercise(self.store, self.identity_id, self.current_user, day, name)
        names = self.exercises_by_day.setdefault(row.day, [])
        if len(names) <= row.position:
            names.append(row.name)
        return row

    def add_user(self, username: str) -> WorkoutUser:
        row = workout_service.add_alias(self.store, self.identity_id, username)
        if row.username not in self.users:
            self.users = sorted(self.users + [row.username])
        return row
