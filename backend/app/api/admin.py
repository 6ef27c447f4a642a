"""Admin API routes"""
import logging
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session
from app.core.security import require_admin, require_admin_get
from app.db.session import get_db
from app.models.base import MAX_INTEGER
from app.models.token_transaction import TransactionType
from app.models.user import User
from app.schemas.admin import AdjustTokensRequest
from app.schemas.tokens import TokenTransactionResponse
from app.services.token_service import award_tokens, spend_tokens, get_token_balance, get_token_history

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger(__name__)


@router.post("/users/{user_id}/grant-tokens")
def grant_tokens_endpoint(
    user_id: Annotated[int, Path(ge=1, le=MAX_INTEGER)],
    request_data: AdjustTokensRequest,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Grant tokens to a user (admin only)"""
    balance = award_tokens(
        user_id,
        request_data.amount,
        TransactionType.ADMIN_GRANT,
        description=request_data.reason or f"Granted by admin {admin_user.id}",
        db=db
    )
    logger.info(f"Admin {admin_user.id} granted {request_data.amount} tokens to user {user_id}")
    return {"success": True, "balance": balance}


@router.post("/users/{user_id}/deduct-tokens")
def deduct_tokens_endpoint(
    user_id: Annotated[int, Path(ge=1, le=MAX_INTEGER)],
    request_data: AdjustTokensRequest,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Deduct tokens from a user (admin only); never takes a balance below zero"""
    result = spend_tokens(
        user_id,
        request_data.amount,
        TransactionType.ADMIN_DEDUCT,
        description=request_data.reason or f"Deducted by admin {admin_user.id}",
        db=db
    )
    if result["success"]:
        logger.info(f"Admin {admin_user.id} deducted {request_data.amount} tokens from user {user_id}")
    return result


@router.get("/users/{user_id}/transactions", response_model=list[TokenTransactionResponse])
def get_user_transactions(
    user_id: Annotated[int, Path(ge=1, le=MAX_INTEGER)],
    limit: Optional[int] = Query(None, ge=1),
    admin_user: User = Depends(require_admin_get),
    db: Session = Depends(get_db)
):
    """Token history for any user (admin only)"""
    get_token_balance(user_id, db)
    return get_token_history(user_id, limit, db)
