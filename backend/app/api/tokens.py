"""Token API routes"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.security import require_auth, require_csrf_new
from app.db.session import get_db
from app.schemas.tokens import (
    AwardTokensRequest, SpendTokensRequest, SkipQueueRequest,
    BalanceResponse, AwardTokensResponse, SpendTokensResponse,
    TokenTransactionResponse, DailyBonusClaimResponse, StreakResponse
)
from app.services.token_service import (
    get_token_balance, award_tokens, spend_tokens, spend_for_queue_skip,
    get_token_history, claim_daily_bonus, get_login_streak
)

router = APIRouter(prefix="/api/tokens", tags=["tokens"])


@router.get("/balance", response_model=BalanceResponse)
def get_balance(user_id: int = Depends(require_auth), db: Session = Depends(get_db)):
    """Get current token balance"""
    return {"balance": get_token_balance(user_id, db)}


@router.post("/award", response_model=AwardTokensResponse)
def award(
    request_data: AwardTokensRequest,
    user_id: int = Depends(require_csrf_new),
    db: Session = Depends(get_db)
):
    """Credit tokens to the current user"""
    balance = award_tokens(
        user_id,
        request_data.amount,
        request_data.type,
        description=request_data.description,
        reference_id=request_data.reference_id,
        db=db
    )
    return {"success": True, "balance": balance}


@router.post("/spend", response_model=SpendTokensResponse, response_model_exclude_none=True)
def spend(
    request_data: SpendTokensRequest,
    user_id: int = Depends(require_csrf_new),
    db: Session = Depends(get_db)
):
    """Spend tokens; an insufficient balance is reported in the body, not as an error status"""
    return spend_tokens(
        user_id,
        request_data.amount,
        request_data.type,
        description=request_data.description,
        reference_id=request_data.reference_id,
        db=db
    )


@router.post("/skip-queue", response_model=SpendTokensResponse, response_model_exclude_none=True)
def skip_queue(
    request_data: SkipQueueRequest,
    user_id: int = Depends(require_csrf_new),
    db: Session = Depends(get_db)
):
    """Pay the fixed fee to move a submission up the queue"""
    return spend_for_queue_skip(user_id, request_data.submission_id, db)


@router.get("/history", response_model=list[TokenTransactionResponse])
def get_history(
    limit: Optional[int] = Query(None, ge=1),
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Most recent token transactions, newest first"""
    get_token_balance(user_id, db)
    return get_token_history(user_id, limit, db)


@router.post("/daily-bonus", response_model=DailyBonusClaimResponse, response_model_exclude_none=True)
def daily_bonus(user_id: int = Depends(require_csrf_new), db: Session = Depends(get_db)):
    """Claim today's login bonus"""
    return claim_daily_bonus(user_id, db)


@router.get("/streak", response_model=StreakResponse)
def streak(user_id: int = Depends(require_auth), db: Session = Depends(get_db)):
    """Current login streak and progress to the next milestone"""
    return get_login_streak(user_id, db)


@router.get("/skip-queue/cost")
def skip_queue_cost():
    """Price of a queue skip"""
    return {"cost": settings.SKIP_QUEUE_COST}
