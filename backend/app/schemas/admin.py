"""Pydantic schemas for admin operations"""
from typing import Optional
from pydantic import Field

from app.models.base import MAX_INTEGER
from app.schemas.base import CamelModel


class AdjustTokensRequest(CamelModel):
    """Admin grant or deduction"""
    amount: int = Field(gt=0, le=MAX_INTEGER, strict=True)
    reason: Optional[str] = Field(None, max_length=500)
