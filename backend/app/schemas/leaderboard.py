"""Pydantic schemas for leaderboards"""
from typing import Optional

from app.schemas.base import CamelModel


class TokenEarnerEntry(CamelModel):
    user_id: int
    user_name: Optional[str] = None
    total_earned: int
    current_balance: int
