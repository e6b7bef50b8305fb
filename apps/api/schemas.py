from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from typing import Optional, List, Dict


class ProfileResponse(BaseModel):
    id: UUID
    display_name: Optional[str]
    has_buddy: bool
    buddy_name: Optional[str]
    template_preference: Optional[str]  # None until setup is finished
    subscription_plan: str
    subscription_updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WorkoutUserResponse(BaseModel):
    id: int
    username: str
    is_buddy: bool

    model_config = ConfigDict(from_attributes=True)


class UserDayResponse(BaseModel):
    username: str
    day: str
    day_order: int

    model_config = ConfigDict(from_attributes=True)


class ExerciseResponse(BaseModel):
    id: int
    username: str
    day: str
    name: str
    position: int

    model_config = ConfigDict(from_attributes=True)


class WorkoutSetResponse(BaseModel):
    id: int
    created_at: datetime
    username: str
    exercise: str
    warmup: str
    weight: str
    reps: str
    goal: str

    model_config = ConfigDict(from_attributes=True)


class SubscriptionPlanResponse(BaseModel):
    name: str
    max_workout_days: Optional[int]  # None = unlimited
    price: Decimal
    description: Optional[str]
    features: List[str] = []
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# --- Setup ---

class SetupStatusResponse(BaseModel):
    complete: bool
    reason: Optional[str] = None
    redirect_to: Optional[str] = None


class BootstrapResponse(BaseModel):
    display_name: Optional[str]
    profile_created: bool
    profile_error: Optional[str] = None
    alias_name: Optional[str]
    alias_created: bool
    alias_error: Optional[str] = None
    status: SetupStatusResponse


class DisplayNameRequest(BaseModel):
    display_name: str


class BuddyRequest(BaseModel):
    has_buddy: bool
    buddy_name: Optional[str] = None


class TemplateRequest(BaseModel):
    template_preference: str  # 'template' | 'fresh'


class DaysRequest(BaseModel):
    days: List[str]
    template_preference: Optional[str] = None


class DaysResponse(BaseModel):
    alias_name: str
    buddy_name: Optional[str]
    days: List[str]
    exercises_seeded: int = 0


# --- Workouts ---

class AddUserRequest(BaseModel):
    username: str


class RenameUserRequest(BaseModel):
    new_username: str


class AddDayRequest(BaseModel):
    day: str


class AddExerciseRequest(BaseModel):
    day: str
    name: str


class MoveExerciseRequest(BaseModel):
    day: str
    from_index: int = Field(ge=0)
    to_index: int = Field(ge=0)


class SetCreate(BaseModel):
    exercise: str
    warmup: str = ""
    weight: str = ""
    reps: str = ""
    goal: str = ""


class SetPrefillResponse(BaseModel):
    warmup: str
    weight: str
    reps: str
    goal: str


class ExercisesByDayResponse(BaseModel):
    username: str
    exercises: Dict[str, List[ExerciseResponse]]


# --- Billing (camelCase wire format of the web client) ---

class CheckoutSessionRequest(BaseModel):
    plan_id: Optional[str] = Field(default=None, alias="planId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    user_email: Optional[str] = Field(default=None, alias="userEmail")

    model_config = ConfigDict(populate_by_name=True)


class UpdateSubscriptionRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    plan: Optional[str] = None
    # Stripe Checkout session id from the success URL; required for paid plans
    session_id: Optional[str] = Field(default=None, alias="sessionId")

    model_config = ConfigDict(populate_by_name=True)


class BillingStatusResponse(BaseModel):
    plan: str
    max_workout_days: Optional[int]
    current_days: int
    can_add_day: bool
    subscription_updated_at: Optional[datetime] = None
