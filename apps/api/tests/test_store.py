"""
Tests for the storage gateway: error classification, atomic writes and
change notifications.
"""
import pytest
from sqlalchemy import exc as sa_exc

from core.events import EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE
from models import Exercise, Profile, UserDay, WorkoutBuddy, WorkoutSet, WorkoutUser
from services.store import ErrorKind, StoreError, classify_exception


def _orig(message):
    return Exception(message)


class TestClassifyException:
    def test_unique_violation_is_conflict(self):
        err = sa_exc.IntegrityError("INSERT", {}, _orig("UNIQUE constraint failed: users.username"))
        assert classify_exception(err) is ErrorKind.CONFLICT

    def test_postgres_duplicate_key_is_conflict(self):
        err = sa_exc.IntegrityError("INSERT", {}, _orig('duplicate key value violates unique constraint "users_username_key"'))
        assert classify_exception(err) is ErrorKind.CONFLICT

    def test_other_integrity_errors_are_fatal(self):
        err = sa_exc.IntegrityError("INSERT", {}, _orig("NOT NULL constraint failed: users.username"))
        assert classify_exception(err) is ErrorKind.FATAL

    def test_operational_error_is_transient(self):
        err = sa_exc.OperationalError("SELECT 1", {}, _orig("server closed the connection unexpectedly"))
        assert classify_exception(err) is ErrorKind.TRANSIENT

    def test_no_result_is_not_found(self):
        assert classify_exception(sa_exc.NoResultFound()) is ErrorKind.NOT_FOUND

    def test_store_error_keeps_its_kind(self):
        assert classify_exception(StoreError(ErrorKind.TRANSIENT, "x")) is ErrorKind.TRANSIENT

    def test_unknown_errors_are_fatal(self):
        assert classify_exception(RuntimeError("boom")) is ErrorKind.FATAL


def test_select_one_missing_row_raises_not_found(store):
    with pytest.raises(StoreError) as exc_info:
        store.select_one(WorkoutUser, username="nobody")
    assert exc_info.value.kind is ErrorKind.NOT_FOUND
    assert exc_info.value.table == "users"
    assert store.select_maybe(WorkoutUser, username="nobody") is None


def test_duplicate_insert_is_conflict_and_publishes_nothing(store, feed, make_session):
    session = make_session()
    store.insert(WorkoutUser(username="sam", auth_id=session.id))

    seen = []
    feed.subscribe("users", None, seen.append)
    with pytest.raises(StoreError) as exc_info:
        store.insert(WorkoutUser(username="sam", auth_id=session.id))

    assert exc_info.value.kind is ErrorKind.CONFLICT
    assert seen == []
    assert store.count(WorkoutUser, username="sam") == 1


def test_foreign_key_violation_is_fatal(store):
    from uuid import uuid4

    with pytest.raises(StoreError) as exc_info:
        store.insert(Profile(id=uuid4(), display_name="ghost"))
    assert exc_info.value.kind is ErrorKind.FATAL


def test_events_are_published_after_commit(store, feed, make_session):
    session = make_session()
    visible_counts = []
    feed.subscribe(
        "users",
        {"auth_id": session.id},
        lambda event: visible_counts.append(store.count(WorkoutUser, auth_id=session.id)),
    )

    store.insert_many([
        WorkoutUser(username="sam", auth_id=session.id),
        WorkoutUser(username="alex", auth_id=session.id, is_buddy=True),
    ])

    # both rows are already visible to a fresh session when handlers run
    assert visible_counts == [2, 2]


def test_update_and_delete_report_affected_rows(store, feed):
    store.insert(WorkoutSet(username="sam", exercise="Squats", weight="100", reps="5"))
    store.insert(WorkoutSet(username="sam", exercise="Squats", weight="105", reps="5"))

    seen = []
    feed.subscribe("workout_sets", {"username": "sam"}, seen.append)

    rows = store.update(WorkoutSet, {"goal": "6"}, username="sam", exercise="Squats")
    assert [r.goal for r in rows] == ["6", "6"]
    assert store.delete(WorkoutSet, username="sam") == 2
    assert store.delete(WorkoutSet, username="sam") == 0

    assert [e.event_type for e in seen] == [EVENT_UPDATE, EVENT_UPDATE, EVENT_DELETE, EVENT_DELETE]
    assert seen[0].old["goal"] == ""
    assert seen[0].new["goal"] == "6"


def test_replace_swaps_rows_in_one_transaction(store, feed, make_session):
    session = make_session()
    store.insert_many([
        UserDay(username="sam", day="Monday", day_order=0, auth_id=session.id),
        UserDay(username="sam", day="Tuesday", day_order=1, auth_id=session.id),
    ])
    seen = []
    feed.subscribe("user_days", {"auth_id": session.id}, seen.append)

    store.replace(
        UserDay,
        [
            UserDay(username="sam", day="Monday", day_order=0, auth_id=session.id),
            UserDay(username="sam", day="Friday", day_order=1, auth_id=session.id),
        ],
        auth_id=session.id,
    )

    rows = store.select(UserDay, auth_id=session.id, order_by=UserDay.day_order)
    assert [(r.day, r.day_order) for r in rows] == [("Monday", 0), ("Friday", 1)]
    assert [e.event_type for e in seen] == [EVENT_DELETE, EVENT_DELETE, EVENT_INSERT, EVENT_INSERT]


def test_failed_replace_leaves_existing_rows(store, feed, make_session):
    session = make_session()
    store.insert_many([
        UserDay(username="sam", day="Monday", day_order=0, auth_id=session.id),
        UserDay(username="sam", day="Tuesday", day_order=1, auth_id=session.id),
    ])
    seen = []
    feed.subscribe("user_days", None, seen.append)

    with pytest.raises(StoreError) as exc_info:
        store.replace(
            UserDay,
            [
                UserDay(username="sam", day="Friday", day_order=0, auth_id=session.id),
                UserDay(username="sam", day="Friday", day_order=1, auth_id=session.id),
            ],
            auth_id=session.id,
        )

    assert exc_info.value.kind is ErrorKind.CONFLICT
    rows = store.select(UserDay, auth_id=session.id, order_by=UserDay.day_order)
    assert [r.day for r in rows] == ["Monday", "Tuesday"]
    assert seen == []


def test_rename_alias_rewrites_every_reference(store, make_session):
    session = make_session()
    store.insert(Profile(id=session.id, display_name="a", has_buddy=True, buddy_name="alex"))
    store.insert(WorkoutUser(username="alex", auth_id=session.id, is_buddy=True))
    store.insert(UserDay(username="alex", day="Monday", day_order=0, auth_id=session.id))
    store.insert(Exercise(username="alex", day="Monday", name="Rows", position=0))
    store.insert(WorkoutSet(username="alex", exercise="Rows", weight="40", reps="10"))
    store.insert(WorkoutBuddy(profile_id=session.id, buddy_name="alex"))

    store.rename_alias("alex", "alexa")

    assert store.select_maybe(WorkoutUser, username="alex") is None
    assert store.select_one(WorkoutUser, username="alexa").is_buddy
    assert store.count(UserDay, username="alexa") == 1
    assert store.count(Exercise, username="alexa") == 1
    assert store.count(WorkoutSet, username="alexa") == 1
    assert store.count(WorkoutBuddy, buddy_name="alexa") == 1
    assert store.select_one(Profile, id=session.id).buddy_name == "alexa"


def test_rename_alias_to_taken_name_is_conflict(store, make_session):
    session = make_session()
    store.insert(WorkoutUser(username="alex", auth_id=session.id, is_buddy=True))
    store.insert(WorkoutUser(username="sam", auth_id=session.id))
    store.insert(UserDay(username="alex", day="Monday", day_order=0, auth_id=session.id))

    with pytest.raises(StoreError) as exc_info:
        store.rename_alias("alex", "sam")

    assert exc_info.value.kind is ErrorKind.CONFLICT
    assert store.count(UserDay, username="alex") == 1


def test_rename_missing_alias_is_not_found(store):
    with pytest.raises(StoreError) as exc_info:
        store.rename_alias("ghost", "spirit")
    assert exc_info.value.kind is ErrorKind.NOT_FOUND
