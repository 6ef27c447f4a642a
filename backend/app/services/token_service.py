"""Token service - ledger logic for Frequency Tokens

Balances live only in the users table and are changed exclusively through
conditional UPDATE statements, so concurrent requests for the same user are
serialized by the database row lock instead of a read-modify-write in Python.
Every successful change writes exactly one TokenTransaction in the same
database transaction.
"""
from contextlib import contextmanager
from datetime import datetime, timezone, date
from typing import Optional, Dict, Any, List, Union
import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.metrics import (
    token_transactions_counter, tokens_moved_counter,
    spend_rejections_counter, daily_bonus_claims_counter
)
from app.models.base import MAX_INTEGER
from app.models.token_transaction import TokenTransaction, TransactionType
from app.models.user import User
from app.services import daily_bonus

logger = logging.getLogger(__name__)

INSUFFICIENT_BALANCE = "insufficient_balance"


class LedgerValidationError(ValueError):
    """Malformed ledger request (bad amount or unknown transaction type)"""


class UserNotFoundError(LookupError):
    """The acting or target user does not exist"""

    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


@contextmanager
def _session_scope(db: Optional[Session]):
    """Use the caller's session, or open (and close) one of our own"""
    if db is not None:
        yield db
        return
    
    from app.db.session import SessionLocal
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _validate_entry(
    amount: int,
    transaction_type: Union[str, TransactionType],
    reference_id: Optional[int] = None
) -> TransactionType:
    if isinstance(amount, bool) or not isinstance(amount, int) or not 0 < amount <= MAX_INTEGER:
        raise LedgerValidationError(f"Amount must be a positive integer no greater than {MAX_INTEGER}")
    if reference_id is not None and (
        isinstance(reference_id, bool) or not isinstance(reference_id, int) or abs(reference_id) > MAX_INTEGER
    ):
        raise LedgerValidationError(f"Reference id must be an integer no greater than {MAX_INTEGER}")
    try:
        return TransactionType(transaction_type)
    except ValueError:
        raise LedgerValidationError(f"Unknown transaction type: {transaction_type}")


def _read_balance(db: Session, user_id: int) -> Optional[int]:
    return db.execute(select(User.token_balance).where(User.id == user_id)).scalar_one_or_none()


def _record_transaction(
    db: Session,
    user_id: int,
    amount: int,
    transaction_type: TransactionType,
    balance_after: int,
    description: Optional[str],
    reference_id: Optional[int]
) -> TokenTransaction:
    transaction = TokenTransaction(
        user_id=user_id,
        amount=amount,
        type=transaction_type.value,
        reference_id=reference_id,
        description=description,
        balance_after=balance_after,
    )
    db.add(transaction)
    db.flush()
    return transaction


def _apply_credit(
    db: Session,
    user_id: int,
    amount: int,
    transaction_type: TransactionType,
    description: Optional[str] = None,
    reference_id: Optional[int] = None
) -> int:
    """Credit amount and stage the matching transaction row. Does not commit."""
    result = db.execute(
        update(User)
        .where(
            User.id == user_id,
            User.token_balance <= MAX_INTEGER - amount,
            User.total_tokens_earned <= MAX_INTEGER - amount,
        )
        .values(
            token_balance=User.token_balance + amount,
            total_tokens_earned=User.total_tokens_earned + amount,
        )
    )
    if result.rowcount == 0:
        if _read_balance(db, user_id) is None:
            raise UserNotFoundError(user_id)
        raise LedgerValidationError(f"Credit of {amount} would take the balance past {MAX_INTEGER}")
    
    new_balance = _read_balance(db, user_id)
    _record_transaction(db, user_id, amount, transaction_type, new_balance, description, reference_id)
    return new_balance


def _observe_credit(user_id: int, amount: int, transaction_type: TransactionType, new_balance: int) -> None:
    token_transactions_counter.labels(type=transaction_type.value, direction="earn").inc()
    tokens_moved_counter.labels(direction="earn").inc(amount)
    logger.info(
        f"Tokens awarded to user {user_id}: +{amount} ({transaction_type.value}) "
        f"(balance: {new_balance - amount} -> {new_balance})"
    )


def utc_today() -> date:
    """Current calendar day in UTC, the day boundary used for daily bonuses"""
    return datetime.now(timezone.utc).date()


def get_token_balance(user_id: int, db: Session = None) -> int:
    """Get the current spendable balance for a user"""
    with _session_scope(db) as session:
        balance = _read_balance(session, user_id)
    if balance is None:
        raise UserNotFoundError(user_id)
    return balance


def award_tokens(
    user_id: int,
    amount: int,
    transaction_type: Union[str, TransactionType],
    description: Optional[str] = None,
    reference_id: Optional[int] = None,
    db: Session = None
) -> int:
    """
    Add tokens to a user's balance and record the transaction.
    
    Args:
        user_id: User ID
        amount: Number of tokens to add (positive integer)
        transaction_type: Any TransactionType tag
        description: Optional human-readable description
        reference_id: Optional ID of the entity that triggered the award
        db: Database session
        
    Returns:
        The new balance
        
    Raises:
        LedgerValidationError: amount or type is invalid (nothing is read or written)
        UserNotFoundError: the user does not exist (nothing is written)
    """
    transaction_type = _validate_entry(amount, transaction_type, reference_id)
    
    with _session_scope(db) as session:
        try:
            new_balance = _apply_credit(session, user_id, amount, transaction_type, description, reference_id)
            session.commit()
        except UserNotFoundError:
            session.rollback()
            logger.warning(f"User {user_id} not found for token award")
            raise
        except LedgerValidationError as e:
            session.rollback()
            logger.warning(f"Rejected token award for user {user_id}: {e}")
            raise
        except Exception as e:
            session.rollback()
            logger.error(f"Error awarding tokens to user {user_id}: {e}", exc_info=True)
            raise
    
    _observe_credit(user_id, amount, transaction_type, new_balance)
    return new_balance


def spend_tokens(
    user_id: int,
    amount: int,
    transaction_type: Union[str, TransactionType],
    description: Optional[str] = None,
    reference_id: Optional[int] = None,
    db: Session = None
) -> Dict[str, Any]:
    """
    Deduct tokens from a user's balance if, and only if, the balance covers it.
    
    The check and the decrement are a single UPDATE guarded by
    token_balance >= amount, so two concurrent spends can never both succeed
    against a balance that only covers one of them.
    
    Returns:
        {"success": True, "balance": new_balance} on success, or
        {"success": False, "error": "insufficient_balance", "balance": current_balance}
        when the balance is too low (no transaction row is written)
        
    Raises:
        LedgerValidationError: amount or type is invalid
        UserNotFoundError: the user does not exist
    """
    transaction_type = _validate_entry(amount, transaction_type, reference_id)
    
    with _session_scope(db) as session:
        try:
            result = session.execute(
                update(User)
                .where(User.id == user_id, User.token_balance >= amount)
                .values(token_balance=User.token_balance - amount)
            )
            
            if result.rowcount == 0:
                session.rollback()
                current_balance = _read_balance(session, user_id)
                if current_balance is None:
                    logger.warning(f"User {user_id} not found for token spend")
                    raise UserNotFoundError(user_id)
                
                spend_rejections_counter.labels(reason=INSUFFICIENT_BALANCE).inc()
                logger.warning(
                    f"User {user_id} attempted to spend {amount} tokens ({transaction_type.value}) "
                    f"with only {current_balance} available"
                )
                return {"success": False, "error": INSUFFICIENT_BALANCE, "balance": current_balance}
            
            new_balance = _read_balance(session, user_id)
            _record_transaction(session, user_id, -amount, transaction_type, new_balance, description, reference_id)
            session.commit()
        except UserNotFoundError:
            raise
        except Exception as e:
            session.rollback()
            logger.error(f"Error spending tokens for user {user_id}: {e}", exc_info=True)
            raise
    
    token_transactions_counter.labels(type=transaction_type.value, direction="spend").inc()
    tokens_moved_counter.labels(direction="spend").inc(amount)
    logger.info(
        f"Tokens spent by user {user_id}: -{amount} ({transaction_type.value}) "
        f"(balance: {new_balance + amount} -> {new_balance})"
    )
    return {"success": True, "balance": new_balance}


def spend_for_queue_skip(user_id: int, submission_id: int, db: Session = None) -> Dict[str, Any]:
    """Charge the queue skip fee for a submission"""
    return spend_tokens(
        user_id,
        settings.SKIP_QUEUE_COST,
        TransactionType.SKIP_QUEUE,
        description="Skipped queue position",
        reference_id=submission_id,
        db=db
    )


def grant_signup_bonus(user_id: int, db: Session, commit: bool = True) -> int:
    """Credit the signup bonus to a freshly created user.
    
    With commit=False the credit is only staged, so account creation and the
    bonus can be committed together by the caller, which must then call
    observe_signup_bonus once the commit has succeeded.
    """
    new_balance = _apply_credit(db, user_id, settings.SIGNUP_BONUS, TransactionType.SIGNUP_BONUS, "Welcome bonus")
    if commit:
        db.commit()
        observe_signup_bonus(user_id, new_balance)
    return new_balance


def observe_signup_bonus(user_id: int, new_balance: int) -> None:
    """Metrics and log line for a committed signup bonus"""
    _observe_credit(user_id, settings.SIGNUP_BONUS, TransactionType.SIGNUP_BONUS, new_balance)


def clamp_history_limit(limit: Optional[int]) -> int:
    if limit is None:
        return settings.TOKEN_HISTORY_DEFAULT_LIMIT
    return max(1, min(int(limit), settings.TOKEN_HISTORY_MAX_LIMIT))


def get_token_history(user_id: int, limit: Optional[int] = None, db: Session = None) -> List[TokenTransaction]:
    """Most recent transactions for a user, newest first"""
    limit = clamp_history_limit(limit)
    with _session_scope(db) as session:
        return (
            session.query(TokenTransaction)
            .filter(TokenTransaction.user_id == user_id)
            .order_by(TokenTransaction.created_at.desc(), TokenTransaction.id.desc())
            .limit(limit)
            .all()
        )


def _stored_claim_date(user: User) -> Optional[str]:
    value = user.last_daily_bonus_date
    if not value:
        return None
    try:
        return daily_bonus.format_calendar_date(value)
    except ValueError:
        logger.warning(f"User {user.id} has malformed last_daily_bonus_date {value!r}; treating as never claimed")
        return None


def _streak_bonus_description(decision: daily_bonus.ClaimDecision) -> str:
    if decision.streak_bonus > 0:
        return f"Daily login bonus + {decision.new_streak}-day streak bonus!"
    return "Daily login bonus"


def claim_daily_bonus(
    user_id: int,
    db: Session = None,
    today: Optional[Union[str, date]] = None
) -> Dict[str, Any]:
    """
    Claim the daily login bonus for today (UTC calendar day by default).
    
    The streak fields are advanced with a compare-and-set on the
    last_daily_bonus_date value that was read, and the bonus is credited in
    the same database transaction; a concurrent claim for the same day loses
    the compare-and-set and is reported as already claimed.
    
    Returns:
        {"claimed": True, "awarded", "baseBonus", "streakBonus", "newStreak", "balance"}
        or {"claimed": False, "reason": "already_claimed", "streak", "balance"}
    """
    today = daily_bonus.format_calendar_date(today or utc_today())
    
    with _session_scope(db) as session:
        user = session.query(User).filter(User.id == user_id).first()
        if not user:
            raise UserNotFoundError(user_id)
        
        observed_date = user.last_daily_bonus_date
        decision = daily_bonus.evaluate_claim(_stored_claim_date(user), user.login_streak or 0, today)
        
        if not decision.claimed:
            daily_bonus_claims_counter.labels(status=decision.reason).inc()
            return {**decision.to_dict(), "streak": user.login_streak or 0, "balance": user.token_balance}
        
        try:
            if observed_date is None:
                unchanged = User.last_daily_bonus_date.is_(None)
            else:
                unchanged = User.last_daily_bonus_date == observed_date
            
            result = session.execute(
                update(User)
                .where(User.id == user_id, unchanged)
                .values(last_daily_bonus_date=today, login_streak=decision.new_streak)
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount == 0:
                session.rollback()
                logger.info(f"Concurrent daily bonus claim for user {user_id} on {today}; reporting already claimed")
                daily_bonus_claims_counter.labels(status=daily_bonus.ALREADY_CLAIMED).inc()
                streak, balance = session.execute(
                    select(User.login_streak, User.token_balance).where(User.id == user_id)
                ).one()
                return {
                    "claimed": False,
                    "reason": daily_bonus.ALREADY_CLAIMED,
                    "streak": streak,
                    "balance": balance,
                }
            
            new_balance = _apply_credit(
                session, user_id, decision.awarded, TransactionType.DAILY_LOGIN,
                _streak_bonus_description(decision)
            )
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Error claiming daily bonus for user {user_id}: {e}", exc_info=True)
            raise
    
    daily_bonus_claims_counter.labels(status="claimed").inc()
    _observe_credit(user_id, decision.awarded, TransactionType.DAILY_LOGIN, new_balance)
    logger.info(f"Daily bonus claimed by user {user_id} on {today}: streak {decision.new_streak}")
    return {**decision.to_dict(), "balance": new_balance}


def get_login_streak(user_id: int, db: Session = None) -> Dict[str, Any]:
    """Stored streak plus the milestone helpers used by the rewards screen"""
    with _session_scope(db) as session:
        user = session.query(User).filter(User.id == user_id).first()
        if not user:
            raise UserNotFoundError(user_id)
        streak = user.login_streak or 0
        last_claim_date = user.last_daily_bonus_date
    
    return {
        "streak": streak,
        "lastClaimDate": last_claim_date,
        "nextMilestone": daily_bonus.next_milestone(streak),
        "progressPercent": daily_bonus.milestone_progress_percent(streak),
    }
