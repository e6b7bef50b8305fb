"""
Tests for the composed app state: auth events drive the bootstrap, the setup
check and the workout mirror.
"""
import pytest

from core.database import SessionLocal
from core.exceptions import SetupRequiredError, UnauthorizedError
from services.account_bootstrap import REASON_NO_TEMPLATE
from services.app_state import AppState
from services.auth_context import SIGNED_IN, SIGNED_OUT, AuthContext
from services.identity_service import issue_auth_code, sign_up


@pytest.fixture
def app_state(feed, sleeps):
    state = AppState.create(
        SessionLocal,
        feed,
        sleep=sleeps.append,
        max_attempts=3,
        retry_delay=0,
        settle_delay=0,
    )
    yield state
    state.close()


def _finish_setup(state, days=("Monday", "Wednesday")):
    flow = state.setup_flow()
    flow.submit_display_name(flow.display_name)
    flow.submit_buddy(False)
    flow.submit_template("fresh")
    flow.submit_days(list(days))
    return state.reload()


def test_sign_up_bootstraps_and_requires_setup(app_state):
    status = app_state.sign_up("a@b.com", "password123", {"name": "Sam"})

    assert app_state.auth.is_authenticated
    assert app_state.last_bootstrap.ok
    assert app_state.last_bootstrap.alias_name == "Sam"
    assert not status.complete
    assert status.reason == REASON_NO_TEMPLATE
    assert app_state.workout.current_user == "Sam"


def test_setup_flow_is_forced_until_complete(app_state):
    app_state.sign_up("a@b.com", "password123")

    flow = app_state.setup_flow()
    assert flow.force
    assert flow.reason == REASON_NO_TEMPLATE
    with pytest.raises(SetupRequiredError):
        flow.cancel()

    status = _finish_setup(app_state)

    assert status.complete
    assert app_state.workout.days == ["Monday", "Wednesday"]
    assert not app_state.setup_flow().force


def test_sign_in_to_complete_account_skips_bootstrap(app_state, store):
    app_state.sign_up("a@b.com", "password123")
    _finish_setup(app_state)
    app_state.sign_out()
    assert app_state.setup_status is None
    assert not app_state.workout.started

    app_state.last_bootstrap = None
    status = app_state.sign_in("a@b.com", "password123")

    assert status.complete
    assert app_state.last_bootstrap is None
    assert app_state.workout.current_user == "a"
    assert app_state.workout.days == ["Monday", "Wednesday"]


def test_code_sign_in_bootstraps_bare_identity(app_state, store):
    session = sign_up(store, "new@b.com", "password123")

    status = app_state.sign_in_with_code(issue_auth_code(session))

    assert app_state.auth.session.id == session.id
    assert app_state.last_bootstrap.profile_created
    assert status.reason == REASON_NO_TEMPLATE


def test_bad_credentials_leave_state_signed_out(app_state):
    app_state.sign_up("a@b.com", "password123")
    app_state.sign_out()

    with pytest.raises(UnauthorizedError):
        app_state.sign_in("a@b.com", "wrong-password")
    assert not app_state.auth.is_authenticated
    assert app_state.setup_status is None


def test_setup_flow_requires_session(app_state):
    with pytest.raises(RuntimeError):
        app_state.setup_flow()
    with pytest.raises(RuntimeError):
        app_state.reload()


def test_close_detaches_from_auth_events(app_state, feed):
    app_state.sign_up("a@b.com", "password123")
    app_state.close()

    assert feed.subscriber_count() == 0
    app_state.sign_out()
    app_state.sign_in("a@b.com", "password123")
    assert not app_state.workout.started


def test_auth_listeners_are_notified_and_isolated(store):
    auth = AuthContext(store)
    events = []

    def broken(event, session):
        raise RuntimeError("listener failed")

    auth.on_change(broken)
    remove = auth.on_change(lambda event, session: events.append((event, session.email if session else None)))

    auth.sign_up("a@b.com", "password123")
    assert auth.access_token
    auth.sign_out()
    auth.sign_out()
    remove()
    auth.sign_in("a@b.com", "password123")

    assert events == [(SIGNED_IN, "a@b.com"), (SIGNED_OUT, None)]
