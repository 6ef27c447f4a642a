"""Pydantic schemas for the token ledger API"""
from datetime import datetime
from typing import Literal, Optional
from pydantic import Field

from app.models.base import MAX_INTEGER
from app.schemas.base import CamelModel

# Tags a user may award themselves through the API; admin and signup tags are server-side only
AwardType = Literal["submit_track", "prediction", "comment", "daily_login", "referral"]
SpendType = Literal["skip_queue"]


class AwardTokensRequest(CamelModel):
    amount: int = Field(gt=0, le=MAX_INTEGER, strict=True)
    type: AwardType
    description: Optional[str] = Field(None, max_length=500)
    reference_id: Optional[int] = Field(None, ge=1, le=MAX_INTEGER)


class SpendTokensRequest(CamelModel):
    amount: int = Field(gt=0, le=MAX_INTEGER, strict=True)
    type: SpendType
    description: Optional[str] = Field(None, max_length=500)
    reference_id: Optional[int] = Field(None, ge=1, le=MAX_INTEGER)


class SkipQueueRequest(CamelModel):
    submission_id: int = Field(ge=1, le=MAX_INTEGER)


class BalanceResponse(CamelModel):
    balance: int


class AwardTokensResponse(CamelModel):
    success: bool
    balance: int


class SpendTokensResponse(CamelModel):
    success: bool
    error: Optional[Literal["insufficient_balance"]] = None
    balance: int


class TokenTransactionResponse(CamelModel):
    id: int
    user_id: int
    amount: int
    type: str
    reference_id: Optional[int] = None
    description: Optional[str] = None
    balance_after: int
    created_at: datetime


class DailyBonusClaimResponse(CamelModel):
    claimed: bool
    awarded: Optional[int] = None
    base_bonus: Optional[int] = None
    streak_bonus: Optional[int] = None
    new_streak: Optional[int] = None
    streak: Optional[int] = None
    balance: Optional[int] = None
    reason: Optional[Literal["already_claimed"]] = None


class StreakResponse(CamelModel):
    streak: int
    last_claim_date: Optional[str] = None
    next_milestone: int
    progress_percent: float
