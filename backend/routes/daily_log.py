from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from backend import repositories
from backend.auth import require_owner
from backend.schemas import DailyLogPayload, DailyLogResponse, MessageResponse

router = APIRouter()


@router.post("/daily-log", response_model=DailyLogResponse)
async def save_daily_log(payload: DailyLogPayload, user_email: str = Depends(require_owner)):
    try:
        return await repositories.save_daily_log(user_email, payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# Declared before the dated route so "week" is not parsed as a date.
@router.get("/daily-log/week", response_model=List[DailyLogResponse])
async def list_daily_logs(user_email: str = Depends(require_owner)):
    return await repositories.list_daily_logs(user_email)


@router.get("/daily-log/{day}", response_model=Optional[DailyLogResponse])
async def get_daily_log(day: str, user_email: str = Depends(require_owner)):
    try:
        day_iso = repositories.normalize_day_iso(day)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return await repositories.get_daily_log(user_email, day_iso)


@router.delete("/daily-log/{day}", response_model=MessageResponse)
async def delete_daily_log(day: str, user_email: str = Depends(require_owner)):
    try:
        day_iso = repositories.normalize_day_iso(day)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not await repositories.delete_daily_log(user_email, day_iso):
        raise HTTPException(status_code=404, detail="Daily log not found")
    return {"message": "Daily log deleted"}
