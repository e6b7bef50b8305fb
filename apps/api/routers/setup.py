"""
Account setup endpoints.

Each step of the setup dialog persists through its own endpoint. POST
/ensure is the app-load trigger for the account bootstrap.
"""
from fastapi import APIRouter, Depends
import logging

from core.auth import get_current_session
from models import Profile
from schemas import (
    BootstrapResponse,
    BuddyRequest,
    DaysRequest,
    DaysResponse,
    DisplayNameRequest,
    ProfileResponse,
    SetupStatusResponse,
    TemplateRequest,
)
from services.account_bootstrap import (
    AccountBootstrap,
    SetupStatus,
    check_setup,
    find_own_alias,
    get_account_bootstrap,
    needs_bootstrap,
    setup_redirect_path,
)
from services.identity_service import AuthSession
from services.setup_flow import finalize_days, save_buddy, save_display_name, save_template
from services.store import StoreGateway, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/setup", tags=["setup"])


def _status_response(session: AuthSession, status: SetupStatus) -> SetupStatusResponse:
    return SetupStatusResponse(
        complete=status.complete,
        reason=status.reason,
        redirect_to=None if status.complete else setup_redirect_path(session.id, status.reason),
    )


@router.get("/status", response_model=SetupStatusResponse)
def get_status(
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return _status_response(session, check_setup(store, session.id))


@router.post("/ensure", response_model=BootstrapResponse)
def ensure_account(
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
    bootstrap: AccountBootstrap = Depends(get_account_bootstrap),
):
    """
    Run the bootstrap if the profile or own alias is missing.

    Safe to call on every app load; with both rows present nothing is written.
    """
    if needs_bootstrap(store, session.id):
        result = bootstrap.run(session)
        display_name = result.display_name
        alias_name = result.alias_name
        profile_created, alias_created = result.profile_created, result.alias_created
        profile_error, alias_error = result.profile_error, result.alias_error
    else:
        profile = store.select_maybe(Profile, id=session.id)
        alias = find_own_alias(store, session.id)
        display_name = profile.display_name if profile else None
        alias_name = alias.username if alias else None
        profile_created = alias_created = False
        profile_error = alias_error = None

    return BootstrapResponse(
        display_name=display_name,
        profile_created=profile_created,
        profile_error=profile_error,
        alias_name=alias_name,
        alias_created=alias_created,
        alias_error=alias_error,
        status=_status_response(session, check_setup(store, session.id)),
    )


@router.put("/display-name", response_model=ProfileResponse)
def put_display_name(
    request: DisplayNameRequest,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return save_display_name(store, session.id, request.display_name)


@router.put("/buddy", response_model=ProfileResponse)
def put_buddy(
    request: BuddyRequest,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return save_buddy(store, session.id, request.has_buddy, request.buddy_name)


@router.put("/template", response_model=ProfileResponse)
def put_template(
    request: TemplateRequest,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return save_template(store, session.id, request.template_preference)


@router.post("/days", response_model=DaysResponse)
def post_days(
    request: DaysRequest,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    """Final setup step: replace the workout days (and mirror them to the buddy)."""
    result = finalize_days(store, session.id, request.days, template_choice=request.template_preference)
    return DaysResponse(
        alias_name=result.alias_name,
        buddy_name=result.buddy_name,
        days=result.days,
        exercises_seeded=result.exercises_seeded,
    )
