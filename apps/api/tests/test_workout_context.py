"""
Tests for the in-memory workout mirror and its change-feed subscriptions.
"""
import pytest

from core.database import SessionLocal
from models import Exercise, UserDay, WorkoutSet
from services import workout_service as ws
from services.setup_flow import finalize_days, save_template
from services.store import StoreGateway
from services.workout_context import (
    LivenessToken,
    WorkoutContext,
    fetch_days,
    fetch_exercises,
    fetch_sets,
    fetch_users,
)


@pytest.fixture
def owner(store, bootstrap, make_session):
    session = make_session("a@b.com")
    bootstrap.run(session)
    save_template(store, session.id, "fresh")
    finalize_days(store, session.id, ["Monday", "Thursday"])
    ws.add_exercise(store, session.id, "a", "Monday", "Bench")
    return session


@pytest.fixture
def ctx(store, owner):
    context = WorkoutContext(store)
    context.start(owner.id)
    yield context
    context.stop()


@pytest.fixture
def other_writer(feed):
    """A second gateway on the same feed, like another device."""
    return StoreGateway(SessionLocal, feed)


def test_liveness_token():
    token = LivenessToken("a/Monday")
    assert token.alive
    token.revoke()
    token.revoke()
    assert not token.alive


def test_fetch_functions(store, owner):
    ws.add_set(store, owner.id, "a", "Bench", weight="60", reps="8")

    assert [u.username for u in fetch_users(store, owner.id)] == ["a"]
    assert fetch_days(store, "a") == ["Monday", "Thursday"]
    assert fetch_exercises(store, "a") == {"Monday": ["Bench"]}
    sets = fetch_sets(store, "a", ["Bench", "Rows"])
    assert [s.weight for s in sets["Bench"]] == ["60"]
    assert sets["Rows"] == []


def test_start_loads_own_alias(ctx, feed):
    assert ctx.started
    assert ctx.current_user == "a"
    assert ctx.users == ["a"]
    assert ctx.days == ["Monday", "Thursday"]
    assert ctx.selected_day == "Monday"
    assert ctx.exercises_for_selected_day == ["Bench"]
    assert ctx.get_sets_for_exercise("Bench") == []
    assert feed.subscriber_count() == 4


def test_remote_writes_are_mirrored(ctx, owner, other_writer):
    other_writer.insert(Exercise(username="a", day="Monday", name="Rows", position=1))
    other_writer.insert(WorkoutSet(username="a", exercise="Rows", weight="40", reps="10"))
    other_writer.insert(UserDay(username="a", day="Friday", day_order=4, auth_id=owner.id))

    assert ctx.exercises_for_selected_day == ["Bench", "Rows"]
    assert [s.reps for s in ctx.get_sets_for_exercise("Rows")] == ["10"]
    assert ctx.days == ["Monday", "Thursday", "Friday"]


def test_writes_for_other_aliases_are_ignored(ctx, other_writer):
    other_writer.insert(WorkoutSet(username="someone", exercise="Bench", weight="200", reps="1"))

    assert ctx.get_sets_for_exercise("Bench") == []


def test_optimistic_add_set_is_not_duplicated(ctx):
    row = ctx.add_set_to_exercise("Bench", weight="60", reps="8")

    sets = ctx.get_sets_for_exercise("Bench")
    assert [s.id for s in sets] == [row.id]


def test_remove_set_from_exercise(ctx, store):
    ctx.add_set_to_exercise("Bench", weight="60", reps="8")
    ctx.add_set_to_exercise("Bench", weight="65", reps="6")

    ctx.remove_set_from_exercise("Bench", 0)

    assert [s.weight for s in ctx.get_sets_for_exercise("Bench")] == ["65"]
    assert store.count(WorkoutSet, username="a") == 1
    with pytest.raises(IndexError):
        ctx.remove_set_from_exercise("Bench", 3)


def test_add_exercise_to_selected_day(ctx):
    ctx.add_exercise("Dips")
    assert ctx.exercises_for_selected_day == ["Bench", "Dips"]


def test_switching_user_rescopes_subscriptions(ctx, feed, other_writer, owner):
    ctx.add_user("Alex")
    assert ctx.users == ["Alex", "a"]
    old_token = ctx._token

    ctx.set_current_user("Alex")

    assert not old_token.alive
    assert ctx.current_user == "Alex"
    assert ctx.days == ["Monday", "Thursday"]
    assert ctx.exercises_for_selected_day == []
    assert feed.subscriber_count() == 4

    other_writer.insert(UserDay(username="a", day="Sunday", day_order=6, auth_id=owner.id))
    assert "Sunday" not in ctx.days


def test_unknown_user_is_rejected(ctx):
    with pytest.raises(ValueError):
        ctx.set_current_user("nobody")


def test_selected_day_switch(ctx):
    ctx.set_selected_day("Thursday")

    assert ctx.selected_day == "Thursday"
    assert ctx.exercises_for_selected_day == []


def test_removed_selected_day_falls_back_to_first_day(ctx, other_writer):
    ctx.set_selected_day("Thursday")
    other_writer.insert(WorkoutSet(username="a", exercise="Bench", weight="60", reps="8"))
    assert ctx.get_sets_for_exercise("Bench") == []

    other_writer.delete(UserDay, username="a", day="Thursday")

    assert ctx.days == ["Monday"]
    assert ctx.selected_day == "Monday"
    assert ctx.exercises_for_selected_day == ["Bench"]
    assert [s.weight for s in ctx.get_sets_for_exercise("Bench")] == ["60"]


def test_stop_unsubscribes_and_clears(ctx, feed, other_writer):
    ctx.stop()

    assert not ctx.started
    assert feed.subscriber_count() == 0
    assert ctx.users == [] and ctx.days == []

    other_writer.insert(WorkoutSet(username="a", exercise="Bench", reps="5"))
    assert ctx.exercise_sets == {}
