from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode
from uuid import UUID

import stripe

from core.config import settings
from core.exceptions import NotFoundError
from services.store import StoreGateway
from services.subscription_gate import Plan, change_plan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanPrice:
    name: str
    description: str
    unit_amount: int  # cents, billed monthly


PLAN_PRICES: dict[Plan, PlanPrice] = {
    Plan.PLUS: PlanPrice(
        name="Workout Tracker Plus Subscription",
        description="Unlimited workout days and advanced tracking",
        unit_amount=500,
    ),
    Plan.PRO: PlanPrice(
        name="Workout Tracker Pro Subscription",
        description="All Plus features plus AI recommendations and trainer tools",
        unit_amount=2500,
    ),
}


PAID_STATUSES = ("paid", "no_payment_required")


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str
    webhook_secret: Optional[str]
    currency: str


def _get_stripe_config() -> StripeConfig:
    """
    Load Stripe config from Settings.

    Fail closed: without a secret key, checkout must not proceed.
    """
    if not settings.STRIPE_SECRET_KEY:
        raise RuntimeError("Stripe not configured (missing: STRIPE_SECRET_KEY)")
    return StripeConfig(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET or None,
        currency=settings.STRIPE_CURRENCY,
    )


def subscription_return_urls(origin: str, plan: str, user_id: str) -> tuple[str, str]:
    """Success and cancel URLs on the subscription settings page."""
    base = f"{(origin or settings.WEB_APP_BASE_URL).rstrip('/')}/settings/subscription"
    success = f"{base}?{urlencode({'success': 'true', 'plan': plan, 'userId': user_id})}"
    cancel = f"{base}?{urlencode({'canceled': 'true'})}"
    return success, cancel


class StripeService:
    def __init__(self) -> None:
        cfg = _get_stripe_config()
        stripe.api_key = cfg.secret_key
        self.cfg = cfg

    def create_checkout_session(self, *, plan: Plan, user_id: str, user_email: Optional[str], origin: str) -> str:
        """
        Create a monthly subscription Checkout session for a paid plan.

        Args:
            plan: Plan.PLUS or Plan.PRO
            user_id: Identity id, echoed back in the success URL and metadata
            user_email: Prefills the checkout e-mail field
            origin: Base URL of the web app the user came from
        """
        price = PLAN_PRICES.get(plan)
        if price is None:
            raise ValueError(f"Plan {plan.value} has no price")

        success_url, cancel_url = subscription_return_urls(origin, plan.value, user_id)
        # Stripe fills in the placeholder; /api/update-subscription needs it back.
        success_url = f"{success_url}&session_id={{CHECKOUT_SESSION_ID}}"
        params: dict[str, Any] = {
            "payment_method_types": ["card"],
            "mode": "subscription",
            "line_items": [
                {
                    "price_data": {
                        "currency": self.cfg.currency,
                        "product_data": {"name": price.name, "description": price.description},
                        "unit_amount": price.unit_amount,
                        "recurring": {"interval": "month"},
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": user_id,
            "metadata": {"userId": user_id, "plan": plan.value},
        }
        if user_email:
            params["customer_email"] = user_email

        session = stripe.checkout.Session.create(**params)
        logger.info(f"Checkout session created for {user_id} ({plan.value})")
        return str(session.url)

    def confirm_checkout(self, *, checkout_session_id: str, user_id: str, plan: Plan) -> bool:
        """
        Pull a Checkout session back from Stripe and check it paid for `plan`
        on behalf of `user_id`.
        """
        session = stripe.checkout.Session.retrieve(checkout_session_id)
        payment_status = str(getattr(session, "payment_status", "") or "")
        metadata = _metadata(session)
        confirmed = (
            payment_status in PAID_STATUSES
            and metadata.get("userId") == user_id
            and metadata.get("plan") == plan.value
        )
        if not confirmed:
            logger.warning(
                f"Checkout {checkout_session_id} does not confirm {plan.value} for {user_id} "
                f"(payment_status={payment_status!r})"
            )
        return confirmed

    def construct_event(self, *, payload: bytes, sig_header: str):
        if not self.cfg.webhook_secret:
            raise RuntimeError("Stripe webhook secret not configured")
        return stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=self.cfg.webhook_secret,
        )


def _metadata(obj: Any) -> dict[str, Any]:
    metadata = getattr(obj, "metadata", None)
    if metadata is None and isinstance(obj, dict):
        metadata = obj.get("metadata")
    return dict(metadata or {})


def process_stripe_event(store: StoreGateway, *, event: Any) -> dict[str, Any]:
    """
    Apply a verified webhook event.

    checkout.session.completed switches the profile named in the session
    metadata to the purchased plan; other event types are acknowledged.
    """
    event_id = str(getattr(event, "id", "") or "")
    event_type = str(getattr(event, "type", "") or "")

    if event_type != "checkout.session.completed":
        return {"processed": True, "event_id": event_id, "event_type": event_type, "handled": False}

    try:
        obj = event.data.object
    except AttributeError:
        obj = (event.get("data") or {}).get("object") if isinstance(event, dict) else None

    metadata = _metadata(obj)
    user_id = metadata.get("userId") or getattr(obj, "client_reference_id", None)
    plan = Plan.parse(metadata.get("plan"))
    if not user_id or plan not in PLAN_PRICES:
        logger.warning(f"Stripe event {event_id} has no usable userId/plan metadata")
        return {"processed": True, "event_id": event_id, "event_type": event_type, "matched_user": False}

    try:
        change_plan(store, UUID(str(user_id)), plan.value)
    except (ValueError, NotFoundError):
        logger.warning(f"Stripe event {event_id} references unknown user {user_id}")
        return {"processed": True, "event_id": event_id, "event_type": event_type, "matched_user": False}
    return {"processed": True, "event_id": event_id, "event_type": event_type, "user_id": str(user_id), "plan": plan.value}
