from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Numeric, Text, Index, UniqueConstraint, JSON, Uuid
from sqlalchemy.sql import func
from core.database import Base
import uuid
from datetime import datetime, timezone


WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

TEMPLATE_CHOICES = ("template", "fresh")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Identity(Base):
    """
    Authenticated principal.

    Issued at sign-up and never mutated by the workout features; everything
    else hangs off its id (profiles.id, users.auth_id, user_days.auth_id).
    """
    __tablename__ = "identities"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    email = Column(Text, unique=True, nullable=False)
    password_hash = Column(Text, nullable=True)
    # Provider-supplied metadata, e.g. {"name": ..., "full_name": ...}
    user_metadata = Column(JSON, nullable=False, default=dict)
    provider = Column(Text, default="email", nullable=False)


class Profile(Base):
    """
    One row per identity.

    template_preference = NULL means onboarding has not been completed.
    """
    __tablename__ = "profiles"

    id = Column(Uuid, ForeignKey("identities.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    display_name = Column(Text, nullable=True)
    has_buddy = Column(Boolean, default=False, nullable=False)
    buddy_name = Column(Text, nullable=True)
    template_preference = Column(Text, nullable=True)  # 'template' | 'fresh'
    subscription_plan = Column(Text, default="free", nullable=False)  # 'free' | 'plus' | 'pro'
    subscription_updated_at = Column(DateTime(timezone=True), nullable=True)


class WorkoutUser(Base):
    """
    A name workouts are logged under.

    Either the identity's own alias or a buddy alias (is_buddy) that shares the
    owner's auth_id but has no login of its own. Names are globally unique.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    username = Column(Text, nullable=False, unique=True)
    auth_id = Column(Uuid, ForeignKey("identities.id", ondelete="CASCADE"), nullable=True, index=True)
    is_buddy = Column(Boolean, default=False, nullable=False)


class UserDay(Base):
    """Weekday an alias trains on; day_order is the display order (0-based)."""
    __tablename__ = "user_days"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, nullable=False)
    day = Column(Text, nullable=False)
    day_order = Column(Integer, nullable=False)
    auth_id = Column(Uuid, ForeignKey("identities.id", ondelete="CASCADE"), nullable=True)

    __table_args__ = (
        UniqueConstraint("username", "day", name="uq_user_days_username_day"),
        Index("ix_user_days_auth_id", "auth_id"),
    )


class Exercise(Base):
    """Ordered exercise list per (alias, day); positions are contiguous from 0."""
    __tablename__ = "exercises"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, nullable=False)
    day = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    position = Column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_exercises_username_day", "username", "day"),
    )


class WorkoutSet(Base):
    """One logged set. Values are kept as entered (free-form text)."""
    __tablename__ = "workout_sets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    username = Column(Text, nullable=False)
    exercise = Column(Text, nullable=False)
    warmup = Column(Text, nullable=False, default="")
    weight = Column(Text, nullable=False, default="")
    reps = Column(Text, nullable=False, default="")
    goal = Column(Text, nullable=False, default="")

    __table_args__ = (
        Index("ix_workout_sets_username_exercise", "username", "exercise"),
    )


class WorkoutBuddy(Base):
    __tablename__ = "workout_buddies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    profile_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    buddy_name = Column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("profile_id", "buddy_name", name="uq_workout_buddies_profile_buddy"),
    )


class SubscriptionPlan(Base):
    """Reference data for the plans page; NULL max_workout_days means unlimited."""
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)
    max_workout_days = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    description = Column(Text, nullable=True)
    features = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=True, nullable=False)


class UsedAuthCode(Base):
    """An exchanged auth code; its jti can never be exchanged again."""
    __tablename__ = "used_auth_codes"

    jti = Column(Text, primary_key=True)
    identity_id = Column(Uuid, ForeignKey("identities.id", ondelete="CASCADE"), nullable=False)
    used_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
