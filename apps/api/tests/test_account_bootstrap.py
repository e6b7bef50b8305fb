"""
Account bootstrap tests.

Covers profile and alias creation after sign-up, alias name collisions, the
retry envelope around transient store failures and the setup post-condition.
"""
from uuid import uuid4

import pytest

from models import Profile, UserDay, WorkoutUser
from services.account_bootstrap import (
    AccountBootstrap,
    AliasUnavailableError,
    REASON_NO_PROFILE,
    REASON_NO_TEMPLATE,
    REASON_NO_USER_DAYS,
    REASON_NO_USER_ENTRY,
    alias_candidates,
    check_setup,
    create_unique_alias,
    find_own_alias,
    needs_bootstrap,
    resolve_display_name,
    setup_redirect_path,
)
from services.identity_service import AuthSession
from services.store import ErrorKind, StoreError, StoreGateway


class FlakyStore(StoreGateway):
    """Fails the first N inserts into the given tables with a transient error."""

    def __init__(self, session_factory, feed, failures):
        super().__init__(session_factory, feed)
        self.failures = dict(failures)

    def insert(self, obj):
        table = obj.__tablename__
        if self.failures.get(table, 0) > 0:
            self.failures[table] -= 1
            raise StoreError(ErrorKind.TRANSIENT, "connection reset by peer", table)
        return super().insert(obj)


def _flaky_bootstrap(store, sleeps, **failures):
    flaky = FlakyStore(store._session_factory, store.feed, failures)
    return flaky, AccountBootstrap(
        flaky,
        max_attempts=3,
        retry_delay=1.0,
        settle_delay=0.5,
        alias_suffix_attempts=5,
        sleep=sleeps.append,
    )


class TestResolveDisplayName:
    def test_profile_name_wins(self):
        session = AuthSession(id=uuid4(), email="a@b.com", user_metadata={"name": "Meta"})
        profile = Profile(id=session.id, display_name="Chosen")
        assert resolve_display_name(session, profile) == "Chosen"

    def test_metadata_name_then_full_name(self):
        session = AuthSession(id=uuid4(), email="a@b.com", user_metadata={"full_name": "Sam Smith"})
        assert resolve_display_name(session) == "Sam Smith"

        session = AuthSession(id=uuid4(), email="a@b.com", user_metadata={"name": "Sam", "full_name": "Sam Smith"})
        assert resolve_display_name(session) == "Sam"

    def test_email_local_part(self):
        session = AuthSession(id=uuid4(), email="jo.doe@example.com")
        assert resolve_display_name(session) == "jo.doe"

    def test_fallback_when_nothing_is_known(self):
        session = AuthSession(id=uuid4(), email=None)
        assert resolve_display_name(session) == "user"


def test_alias_candidates():
    assert list(alias_candidates("Sam", 3)) == ["Sam", "Sam_1", "Sam_2", "Sam_3"]
    assert list(alias_candidates("Sam", 0)) == ["Sam"]


def test_bootstrap_creates_profile_and_alias(store, bootstrap, sleeps, make_session):
    session = make_session("a@b.com")

    result = bootstrap.run(session)

    assert result.ok
    assert result.profile_created and result.alias_created
    assert result.display_name == "a"
    assert result.alias_name == "a"

    profile = store.select_one(Profile, id=session.id)
    assert profile.display_name == "a"
    assert profile.template_preference is None
    assert profile.subscription_plan == "free"

    alias = find_own_alias(store, session.id)
    assert alias.username == "a"
    assert alias.is_buddy is False
    # one settle delay per envelope, no retries
    assert sleeps == [0.5, 0.5]


def test_bootstrap_uses_metadata_name(store, bootstrap, make_session):
    session = make_session("a@b.com", name="Sam")

    result = bootstrap.run(session)

    assert result.alias_name == "Sam"
    assert store.select_one(Profile, id=session.id).display_name == "Sam"


def test_bootstrap_is_idempotent(store, bootstrap, make_session):
    session = make_session()
    bootstrap.run(session)

    second = bootstrap.run(session)

    assert second.ok
    assert not second.profile_created
    assert not second.alias_created
    assert store.count(Profile, id=session.id) == 1
    assert store.count(WorkoutUser, auth_id=session.id) == 1
    assert not needs_bootstrap(store, session.id)


def test_alias_collision_takes_first_free_suffix(store, bootstrap, make_session):
    first = make_session("sam@one.com")
    second = make_session("sam@two.com")
    bootstrap.run(first)

    result = bootstrap.run(second)

    assert result.alias_name == "sam_1"
    assert find_own_alias(store, second.id).username == "sam_1"
    # the profile keeps the unsuffixed display name
    assert store.select_one(Profile, id=second.id).display_name == "sam"


def test_alias_suffix_skips_taken_names(store, make_session):
    session = make_session()
    for name in ("Sam", "Sam_1", "Sam_2"):
        store.insert(WorkoutUser(username=name, auth_id=None))

    alias = create_unique_alias(store, "Sam", session.id, suffix_attempts=5)

    assert alias.username == "Sam_3"
    assert alias.auth_id == session.id


def test_alias_exhaustion_is_terminal_and_not_retried(store, bootstrap, sleeps, make_session):
    session = make_session("a@b.com", name="Sam")
    for name in ("Sam", "Sam_1", "Sam_2", "Sam_3", "Sam_4", "Sam_5"):
        store.insert(WorkoutUser(username=name, auth_id=None))

    result = bootstrap.run(session)

    assert result.profile_created
    assert result.alias_terminal
    assert "Sam_5" in result.alias_error
    assert not result.ok
    assert find_own_alias(store, session.id) is None
    assert sleeps == [0.5, 0.5]


def test_create_unique_alias_raises_when_all_names_taken(store):
    store.insert(WorkoutUser(username="x", auth_id=None))
    store.insert(WorkoutUser(username="x_1", auth_id=None))

    with pytest.raises(AliasUnavailableError) as exc_info:
        create_unique_alias(store, "x", None, suffix_attempts=1)
    assert exc_info.value.tried == ["x", "x_1"]


def test_transient_failures_are_retried(store, sleeps, make_session):
    session = make_session()
    flaky, bootstrap = _flaky_bootstrap(store, sleeps, profiles=2)

    result = bootstrap.run(session)

    assert result.ok
    assert result.profile_created
    assert flaky.failures["profiles"] == 0
    assert store.count(Profile, id=session.id) == 1
    assert sleeps == [0.5, 1.0, 1.0, 0.5]


def test_exhausted_profile_retries_still_create_alias(store, sleeps, make_session):
    session = make_session("a@b.com")
    _, bootstrap = _flaky_bootstrap(store, sleeps, profiles=3)

    result = bootstrap.run(session)

    assert result.profile_error is not None
    assert not result.alias_terminal
    assert result.alias_name == "a"
    assert store.select_maybe(Profile, id=session.id) is None
    assert check_setup(store, session.id).reason == REASON_NO_PROFILE
    assert sleeps == [0.5, 1.0, 1.0, 0.5]


def test_exhausted_alias_retries_are_reported(store, sleeps, make_session):
    session = make_session()
    _, bootstrap = _flaky_bootstrap(store, sleeps, users=3)

    result = bootstrap.run(session)

    assert result.profile_created
    assert result.alias_error is not None
    assert not result.alias_terminal
    assert find_own_alias(store, session.id) is None
    assert check_setup(store, session.id).reason == REASON_NO_TEMPLATE


class TestCheckSetup:
    def test_reasons_in_guard_order(self, store, bootstrap, make_session):
        session = make_session()
        assert check_setup(store, session.id).reason == REASON_NO_PROFILE

        bootstrap.run(session)
        assert check_setup(store, session.id).reason == REASON_NO_TEMPLATE

        store.update(Profile, {"template_preference": "fresh"}, id=session.id)
        assert check_setup(store, session.id).reason == REASON_NO_USER_DAYS

        store.delete(WorkoutUser, auth_id=session.id)
        assert check_setup(store, session.id).reason == REASON_NO_USER_ENTRY

        store.insert(WorkoutUser(username="a", auth_id=session.id))
        store.insert(UserDay(username="a", day="Monday", day_order=0, auth_id=session.id))
        status = check_setup(store, session.id)
        assert status.complete
        assert status.reason is None
        assert status.alias.username == "a"
        assert status.profile.id == session.id

    def test_buddy_alias_does_not_count_as_own_entry(self, store, bootstrap, make_session):
        session = make_session()
        bootstrap.run(session)
        store.update(Profile, {"template_preference": "fresh"}, id=session.id)
        store.delete(WorkoutUser, auth_id=session.id)
        store.insert(WorkoutUser(username="buddy", auth_id=session.id, is_buddy=True))

        assert check_setup(store, session.id).reason == REASON_NO_USER_ENTRY


def test_setup_redirect_path():
    identity_id = uuid4()
    path = setup_redirect_path(identity_id, REASON_NO_TEMPLATE)
    assert path == f"/setup?userId={identity_id}&force=true&reason=no_template"
    assert setup_redirect_path(identity_id, None) == f"/setup?userId={identity_id}&force=true"
