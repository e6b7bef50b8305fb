"""
Home API Router

GET / is the route guard: it re-checks the account setup post-condition on
every request and sends incomplete accounts to the forced setup flow.
GET /setup returns the prefilled setup dialog state.
"""
from typing import Optional, List, Dict
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
import logging

from core.auth import get_current_session_optional
from services.account_bootstrap import check_setup, setup_redirect_path
from services.identity_service import AuthSession
from services.setup_flow import SetupFlow
from services.store import StoreGateway, get_store
from services.subscription_gate import can_add_day, max_workout_days, plan_for
from services.workout_context import fetch_days, fetch_exercises, fetch_users

logger = logging.getLogger(__name__)

router = APIRouter(tags=["home"])


# --- Response Models ---

class LoginPrompt(BaseModel):
    """Shown to visitors without a session."""
    authenticated: bool = False
    signup_url: str = "/v1/auth/signup"
    login_url: str = "/v1/auth/login"
    error: Optional[str] = None
    error_description: Optional[str] = None


class HomeResponse(BaseModel):
    authenticated: bool = True
    display_name: Optional[str]
    current_user: str
    users: List[str]
    days: List[str]
    exercises: Dict[str, List[str]]
    plan: str
    max_workout_days: Optional[int]
    can_add_day: bool


class SetupPageResponse(BaseModel):
    user_id: str
    force: bool
    reason: Optional[str] = None
    step: str
    can_dismiss: bool
    display_name: str
    has_buddy: bool
    buddy_name: str
    template_preference: Optional[str] = None
    days: List[str]


@router.get("/")
def home(
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    session: Optional[AuthSession] = Depends(get_current_session_optional),
    store: StoreGateway = Depends(get_store),
):
    if session is None:
        return LoginPrompt(error=error, error_description=error_description)

    status = check_setup(store, session.id)
    if not status.complete:
        logger.info(f"Guard: {session.id} incomplete ({status.reason}), redirecting to setup")
        return RedirectResponse(setup_redirect_path(session.id, status.reason), status_code=307)

    profile, alias = status.profile, status.alias
    plan = plan_for(store, session.id)
    days = fetch_days(store, alias.username)
    return HomeResponse(
        display_name=profile.display_name,
        current_user=alias.username,
        users=[u.username for u in fetch_users(store, session.id)],
        days=days,
        exercises=fetch_exercises(store, alias.username),
        plan=plan.value,
        max_workout_days=max_workout_days(plan),
        can_add_day=can_add_day(plan, len(days)),
    )


@router.get("/setup")
def setup_page(
    force: Optional[bool] = Query(default=None),
    reason: Optional[str] = None,
    session: Optional[AuthSession] = Depends(get_current_session_optional),
    store: StoreGateway = Depends(get_store),
):
    if session is None:
        return RedirectResponse("/", status_code=307)

    if force is None:
        force = not check_setup(store, session.id).complete
    flow = SetupFlow(store, session.id, force=force, reason=reason).load()
    return SetupPageResponse(
        user_id=str(session.id),
        force=flow.force,
        reason=flow.reason,
        step=flow.step.value,
        can_dismiss=flow.can_dismiss,
        display_name=flow.display_name,
        has_buddy=flow.has_buddy,
        buddy_name=flow.buddy_name,
        template_preference=flow.template_choice,
        days=flow.days,
    )
