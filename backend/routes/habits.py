from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from backend import repositories
from backend.auth import require_owner
from backend.schemas import HabitCreate, HabitEnvelope, HabitListResponse, HabitUpsert, MessageResponse
from dashboard.errors import ConflictError, NotFoundError

router = APIRouter()


@router.get("/habits", response_model=HabitListResponse)
async def list_habits(user_email: str = Depends(require_owner)):
    return {"habits": await repositories.list_habits(user_email)}


@router.post("/habits", response_model=HabitEnvelope, status_code=201)
async def create_habit(payload: HabitCreate, user_email: str = Depends(require_owner)):
    try:
        habit = await repositories.create_habit(user_email, payload.model_dump())
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"habit": habit}


@router.get("/habits/{habit_id}", response_model=HabitEnvelope)
async def get_habit(habit_id: str, user_email: str = Depends(require_owner)):
    habit = await repositories.get_habit(user_email, habit_id)
    if habit is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    return {"habit": habit}


@router.put("/habits/{habit_id}", response_model=HabitEnvelope)
async def upsert_habit(habit_id: str, payload: HabitUpsert, user_email: str = Depends(require_owner)):
    try:
        habit = await repositories.upsert_habit(user_email, habit_id, payload.model_dump())
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"habit": habit}


@router.post("/habits/{habit_id}/complete", response_model=HabitEnvelope)
async def complete_habit(habit_id: str, user_email: str = Depends(require_owner)):
    try:
        habit = await repositories.toggle_completion(user_email, habit_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"habit": habit}


@router.delete("/habits/{habit_id}", response_model=MessageResponse)
async def delete_habit(habit_id: str, user_email: str = Depends(require_owner)):
    if not await repositories.delete_habit(user_email, habit_id):
        raise HTTPException(status_code=404, detail="Habit not found")
    return {"message": "Habit deleted"}
