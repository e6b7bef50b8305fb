"""
Subscription plans and the workout-day gate.

The gate is advisory: it is consulted when a day is added through the
workout endpoints, not enforced by the database. Setup may assign any number
of days.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from core.config import settings
from core.exceptions import NotFoundError, UpgradeRequiredError, ValidationError
from models import Profile
from services.store import StoreGateway

logger = logging.getLogger(__name__)


class Plan(str, Enum):
    FREE = "free"
    PLUS = "plus"
    PRO = "pro"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Plan":
        """Unknown or empty plan values fall back to FREE."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.FREE


PAID_PLANS = (Plan.PLUS, Plan.PRO)


def max_workout_days(plan: Plan | str | None) -> Optional[int]:
    """None means unlimited."""
    if Plan.parse(plan) is Plan.FREE:
        return settings.FREE_PLAN_MAX_DAYS
    return None


def can_add_day(plan: Plan | str | None, current_count: int) -> bool:
    limit = max_workout_days(plan)
    return limit is None or current_count < limit


def check_add_day(plan: Plan | str | None, current_count: int) -> None:
    if can_add_day(plan, current_count):
        return
    parsed = Plan.parse(plan)
    limit = max_workout_days(parsed)
    logger.info(f"Day limit reached on {parsed.value} plan ({current_count}/{limit})")
    raise UpgradeRequiredError(
        plan=parsed.value,
        limit=limit,
        current=current_count,
        upgrade_to=[p.value for p in PAID_PLANS],
    )


def plan_for(store: StoreGateway, identity_id: UUID) -> Plan:
    profile = store.select_maybe(Profile, id=identity_id)
    return Plan.parse(profile.subscription_plan if profile else None)


def change_plan(store: StoreGateway, identity_id: UUID, plan: str) -> Profile:
    value = (plan or "").strip().lower()
    if value not in {p.value for p in Plan}:
        raise ValidationError(f"Invalid plan: {plan}", field="plan")

    rows = store.update(
        Profile,
        {"subscription_plan": value, "subscription_updated_at": datetime.now(timezone.utc)},
        id=identity_id,
    )
    if not rows:
        raise NotFoundError("Profile", str(identity_id))
    logger.info(f"Subscription plan for {identity_id} set to {value}")
    return rows[0]
