"""
Workout API endpoints: users (aliases), days, exercises and sets.

All paths are scoped to aliases owned by the signed-in identity.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status

from core.auth import get_current_session
from schemas import (
    AddDayRequest,
    AddExerciseRequest,
    AddUserRequest,
    ExerciseResponse,
    ExercisesByDayResponse,
    MoveExerciseRequest,
    RenameUserRequest,
    SetCreate,
    SetPrefillResponse,
    UserDayResponse,
    WorkoutSetResponse,
    WorkoutUserResponse,
)
from services import workout_service
from services.identity_service import AuthSession
from services.store import StoreGateway, get_store

router = APIRouter(prefix="/v1/workouts", tags=["workouts"])


# --- Users ---

@router.get("/users", response_model=List[WorkoutUserResponse])
def list_users(
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return workout_service.list_aliases(store, session.id)


@router.post("/users", response_model=WorkoutUserResponse, status_code=status.HTTP_201_CREATED)
def add_user(
    request: AddUserRequest,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return workout_service.add_alias(store, session.id, request.username)


@router.patch("/users/{username}", response_model=WorkoutUserResponse)
def rename_user(
    username: str,
    request: RenameUserRequest,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return workout_service.rename_alias(store, session.id, username, request.new_username)


@router.delete("/users/{username}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    username: str,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    workout_service.delete_alias(store, session.id, username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Days ---

@router.get("/users/{username}/days", response_model=List[UserDayResponse])
def list_days(
    username: str,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return workout_service.list_days(store, session.id, username)


@router.post("/users/{username}/days", response_model=UserDayResponse, status_code=status.HTTP_201_CREATED)
def add_day(
    username: str,
    request: AddDayRequest,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    """Add a workout day; 403 UPGRADE_REQUIRED once the plan's day limit is reached."""
    return workout_service.add_day(store, session.id, username, request.day)


@router.delete("/users/{username}/days/{day}", status_code=status.HTTP_204_NO_CONTENT)
def remove_day(
    username: str,
    day: str,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    workout_service.remove_day(store, session.id, username, day)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Exercises ---

@router.get("/users/{username}/exercises", response_model=ExercisesByDayResponse)
def list_exercises(
    username: str,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    grouped = workout_service.list_exercises(store, session.id, username)
    return ExercisesByDayResponse(
        username=username,
        exercises={day: [ExerciseResponse.model_validate(e) for e in rows] for day, rows in grouped.items()},
    )


@router.post("/users/{username}/exercises", response_model=ExerciseResponse, status_code=status.HTTP_201_CREATED)
def add_exercise(
    username: str,
    request: AddExerciseRequest,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return workout_service.add_exercise(store, session.id, username, request.day, request.name)


@router.post("/users/{username}/exercises/move", response_model=List[ExerciseResponse])
def move_exercise(
    username: str,
    request: MoveExerciseRequest,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return workout_service.move_exercise(
        store, session.id, username, request.day, request.from_index, request.to_index
    )


@router.delete("/users/{username}/exercises/{day}/{index}", response_model=List[ExerciseResponse])
def remove_exercise(
    username: str,
    day: str,
    index: int,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return workout_service.remove_exercise(store, session.id, username, day, index)


# --- Sets ---

@router.get("/users/{username}/sets", response_model=List[WorkoutSetResponse])
def list_sets(
    username: str,
    exercise: str,
    order: str = Query(default="asc", pattern="^(asc|desc)$"),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    """Sets for one exercise; order=desc gives the history view (newest first)."""
    if order == "desc":
        return workout_service.set_history(store, session.id, username, exercise, limit=limit)
    rows = workout_service.list_sets(store, session.id, username, exercise)
    return rows[:limit] if limit else rows


@router.get("/users/{username}/sets/prefill", response_model=SetPrefillResponse)
def prefill_set(
    username: str,
    exercise: str,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return workout_service.last_set_prefill(store, session.id, username, exercise)


@router.post("/users/{username}/sets", response_model=WorkoutSetResponse, status_code=status.HTTP_201_CREATED)
def add_set(
    username: str,
    request: SetCreate,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    return workout_service.add_set(
        store,
        session.id,
        username,
        request.exercise,
        warmup=request.warmup,
        weight=request.weight,
        reps=request.reps,
        goal=request.goal,
    )


@router.delete("/sets/{set_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_set(
    set_id: int,
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    workout_service.delete_set(store, session.id, set_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/sets")
def clear_sets(
    session: AuthSession = Depends(get_current_session),
    store: StoreGateway = Depends(get_store),
):
    """Settings page: wipe every logged set of this identity's users."""
    return {"deleted": workout_service.clear_sets(store, session.id)}
