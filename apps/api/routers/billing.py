from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from core.auth import get_current_session
from models import Profile, SubscriptionPlan, UserDay
from schemas import (
    BillingStatusResponse,
    CheckoutSessionRequest,
    SubscriptionPlanResponse,
    UpdateSubscriptionRequest,
)
from services.account_bootstrap import find_own_alias
from services.identity_service import AuthSession
from services.store import StoreGateway, get_store
from services.stripe_service import StripeService, process_stripe_event, subscription_return_urls
from services.subscription_gate import Plan, can_add_day, change_plan, max_workout_days

logger = logging.getLogger(__name__)

# The web client posts to these two paths directly; keep them unversioned.
router = APIRouter(prefix="/api", tags=["billing"])
status_router = APIRouter(prefix="/v1/billing", tags=["billing"])

VALID_PLANS = {p.value for p in Plan}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _find_profile(store: StoreGateway, user_id: str) -> Optional[Profile]:
    try:
        identity_id = UUID(str(user_id))
    except ValueError:
        return None
    return store.select_maybe(Profile, id=identity_id)


@router.post("/create-checkout-session")
def create_checkout_session(
    body: CheckoutSessionRequest,
    request: Request,
    store: StoreGateway = Depends(get_store),
):
    """
    Start a plan change.

    free -> no payment, the client goes straight to the success URL.
    plus/pro -> hosted Stripe Checkout URL.
    """
    if not body.plan_id or not body.user_id:
        return _error(status.HTTP_400_BAD_REQUEST, "Plan and user ID are required")
    if body.plan_id not in VALID_PLANS:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid plan selected")

    try:
        if _find_profile(store, body.user_id) is None:
            return _error(status.HTTP_404_NOT_FOUND, "User not found")

        origin = request.headers.get("origin") or ""
        plan = Plan(body.plan_id)
        if plan is Plan.FREE:
            success_url, _ = subscription_return_urls(origin, plan.value, body.user_id)
            return {"url": success_url, "free": True}

        url = StripeService().create_checkout_session(
            plan=plan,
            user_id=body.user_id,
            user_email=body.user_email,
            origin=origin,
        )
        return {"url": url}
    except Exception as e:
        logger.error(f"Error creating checkout session: {e}", exc_info=True)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Error creating checkout session")


@router.post("/update-subscription")
def update_subscription(
    body: UpdateSubscriptionRequest,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    """
    Checkout success callback (and free downgrades): record the new plan.

    Only the signed-in account's own plan can change here. free applies
    directly; plus/pro need the Checkout session id, which Stripe must report
    as paid for this account and plan.
    """
    if not body.user_id or not body.plan:
        return _error(status.HTTP_400_BAD_REQUEST, "User ID and plan are required")
    if body.plan not in VALID_PLANS:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid plan selected")
    if body.user_id != str(session.id):
        logger.warning(f"{session.id} tried to change the plan of {body.user_id}")
        return _error(status.HTTP_403_FORBIDDEN, "Cannot change another account's plan")

    plan = Plan(body.plan)
    try:
        profile = _find_profile(store, body.user_id)
        if profile is None:
            return _error(status.HTTP_404_NOT_FOUND, "User not found")
        if plan is not Plan.FREE:
            if not body.session_id:
                return _error(status.HTTP_402_PAYMENT_REQUIRED, "Payment confirmation required")
            confirmed = StripeService().confirm_checkout(
                checkout_session_id=body.session_id,
                user_id=body.user_id,
                plan=plan,
            )
            if not confirmed:
                return _error(status.HTTP_402_PAYMENT_REQUIRED, "Payment not confirmed")
        change_plan(store, profile.id, plan.value)
    except Exception as e:
        logger.error(f"Error updating subscription: {e}", exc_info=True)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Error updating subscription")
    return {"success": True}


@router.get("/plans", response_model=List[SubscriptionPlanResponse])
def list_plans(store: StoreGateway = Depends(get_store)):
    return store.select(SubscriptionPlan, is_active=True, order_by=SubscriptionPlan.price)


@router.post("/stripe-webhook")
async def stripe_webhook(request: Request, store: StoreGateway = Depends(get_store)):
    """
    Stripe webhook endpoint.

    Verifies the signature, then applies checkout.session.completed.
    """
    sig = request.headers.get("stripe-signature")
    if not sig:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    payload = await request.body()
    try:
        event = StripeService().construct_event(payload=payload, sig_header=sig)
    except Exception:
        # Signature verification errors should return 400 so Stripe can retry appropriately.
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    result = process_stripe_event(store, event=event)
    return {"ok": True, "result": result}


@status_router.get("/status", response_model=BillingStatusResponse)
def billing_status(
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    profile = store.select_maybe(Profile, id=session.id)
    plan = Plan.parse(profile.subscription_plan if profile else None)
    alias = find_own_alias(store, session.id)
    current = store.count(UserDay, username=alias.username) if alias else 0
    return BillingStatusResponse(
        plan=plan.value,
        max_workout_days=max_workout_days(plan),
        current_days=current,
        can_add_day=can_add_day(plan, current),
        subscription_updated_at=profile.subscription_updated_at if profile else None,
    )
