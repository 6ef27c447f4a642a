"""Leaderboard API routes"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.schemas.leaderboard import TokenEarnerEntry
from app.services.leaderboard_service import get_top_token_earners, LEADERBOARD_MAX_LIMIT

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("/top-token-earners", response_model=list[TokenEarnerEntry])
def top_token_earners(
    time_filter: str = Query("all", alias="timeFilter"),
    limit: Optional[int] = Query(None, ge=1, le=LEADERBOARD_MAX_LIMIT),
    db: Session = Depends(get_db)
):
    """Users ranked by tokens earned (all time, or within the last week or month)"""
    try:
        return get_top_token_earners(db, time_filter=time_filter, limit=limit)
    except ValueError as e:
        raise HTTPException(400, str(e))
