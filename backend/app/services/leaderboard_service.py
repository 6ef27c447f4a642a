"""Leaderboard queries over the token ledger"""
from datetime import datetime, timezone, timedelta
from typing import Optional, List, Dict, Any

from sqlalchemy import func, desc
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.token_transaction import TokenTransaction
from app.models.user import User

TIME_FILTER_WINDOWS = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}
TIME_FILTERS = ("all",) + tuple(TIME_FILTER_WINDOWS)
LEADERBOARD_MAX_LIMIT = 100


def _row(user_id, name, total_earned, balance) -> Dict[str, Any]:
    return {
        "userId": user_id,
        "userName": name,
        "totalEarned": int(total_earned or 0),
        "currentBalance": balance,
    }


def get_top_token_earners(
    db: Session,
    time_filter: str = "all",
    limit: Optional[int] = None,
    now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """Rank users by tokens earned.
    
    "all" uses the lifetime total kept on the user row; "week" and "month"
    sum the positive ledger amounts inside the trailing window.
    """
    if time_filter not in TIME_FILTERS:
        raise ValueError(f"Unknown time filter: {time_filter}")
    limit = max(1, min(limit or settings.LEADERBOARD_DEFAULT_LIMIT, LEADERBOARD_MAX_LIMIT))
    
    if time_filter == "all":
        users = (
            db.query(User)
            .order_by(desc(User.total_tokens_earned), User.id)
            .limit(limit)
            .all()
        )
        return [_row(u.id, u.name, u.total_tokens_earned, u.token_balance) for u in users]
    
    since = (now or datetime.now(timezone.utc)) - TIME_FILTER_WINDOWS[time_filter]
    earned = func.sum(TokenTransaction.amount).label("earned")
    rows = (
        db.query(User.id, User.name, earned, User.token_balance)
        .join(TokenTransaction, TokenTransaction.user_id == User.id)
        .filter(TokenTransaction.amount > 0, TokenTransaction.created_at >= since)
        .group_by(User.id, User.name, User.token_balance)
        .order_by(desc(earned), User.id)
        .limit(limit)
        .all()
    )
    return [_row(*row) for row in rows]
