"""Daily login bonus rules

Pure functions: callers pass "today" explicitly as a calendar date, so nothing
here reads the wall clock or touches the database. Persisting the streak and
crediting the tokens is done by app.services.token_service.claim_daily_bonus.
"""
from dataclasses import dataclass
from datetime import date
from typing import Optional, Union, Dict, Any

DateLike = Union[str, date]

BASE_BONUS = 1

# Streak lengths with their own fixed bonus; other multiples of 7 get WEEKLY_STREAK_BONUS
STREAK_MILESTONE_BONUSES = {7: 5, 30: 20}
WEEKLY_STREAK_BONUS = 3

MILESTONES = [7, 14, 21, 30, 60, 90, 180, 365]
MILESTONE_STEP_AFTER_LAST = 7

ALREADY_CLAIMED = "already_claimed"


@dataclass(frozen=True)
class ClaimDecision:
    """Outcome of evaluating a claim attempt"""
    claimed: bool
    awarded: int = 0
    base_bonus: int = 0
    streak_bonus: int = 0
    new_streak: int = 0
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.claimed:
            return {"claimed": False, "reason": self.reason}
        return {
            "claimed": True,
            "awarded": self.awarded,
            "baseBonus": self.base_bonus,
            "streakBonus": self.streak_bonus,
            "newStreak": self.new_streak,
        }


def parse_calendar_date(value: DateLike) -> date:
    """Parse a YYYY-MM-DD string (or pass a date through)"""
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def format_calendar_date(value: DateLike) -> str:
    return parse_calendar_date(value).isoformat()


def calendar_day_difference(later: DateLike, earlier: DateLike) -> int:
    """Whole calendar days from earlier to later (negative if earlier is after later)"""
    return (parse_calendar_date(later) - parse_calendar_date(earlier)).days


def streak_bonus_for(streak: int) -> int:
    """Bonus on top of BASE_BONUS for reaching the given streak length"""
    if streak in STREAK_MILESTONE_BONUSES:
        return STREAK_MILESTONE_BONUSES[streak]
    if streak > 0 and streak % 7 == 0:
        return WEEKLY_STREAK_BONUS
    return 0


def evaluate_claim(
    last_daily_bonus_date: Optional[DateLike],
    current_streak: int,
    today: DateLike
) -> ClaimDecision:
    """
    Decide whether a daily bonus can be claimed today and how much it pays.

    Args:
        last_daily_bonus_date: Calendar day of the last successful claim, or None if never claimed
        current_streak: Streak stored for the user
        today: Calendar day of this claim attempt

    Returns:
        ClaimDecision; claimed=False with reason "already_claimed" if today was already claimed
    """
    today_date = parse_calendar_date(today)

    if last_daily_bonus_date is None:
        new_streak = 1
    else:
        last_date = parse_calendar_date(last_daily_bonus_date)
        if last_date == today_date:
            return ClaimDecision(claimed=False, reason=ALREADY_CLAIMED)
        if calendar_day_difference(today_date, last_date) == 1:
            new_streak = (current_streak or 0) + 1
        else:
            # Missed day (or a stored date after today): today's claim starts a new streak
            new_streak = 1

    streak_bonus = streak_bonus_for(new_streak)
    return ClaimDecision(
        claimed=True,
        awarded=BASE_BONUS + streak_bonus,
        base_bonus=BASE_BONUS,
        streak_bonus=streak_bonus,
        new_streak=new_streak,
    )


def next_milestone(current_streak: int) -> int:
    """Smallest milestone strictly above current_streak; past the last one, every 7 days"""
    for milestone in MILESTONES:
        if current_streak < milestone:
            return milestone
    return current_streak + MILESTONE_STEP_AFTER_LAST


def previous_milestone(current_streak: int) -> int:
    for milestone in reversed([0] + MILESTONES):
        if current_streak >= milestone:
            return milestone
    return 0


def milestone_progress_percent(current_streak: int) -> float:
    """Progress (0-100) from the last reached milestone to the next one, for display"""
    prev = previous_milestone(current_streak)
    nxt = next_milestone(current_streak)
    progress = (current_streak - prev) / (nxt - prev) * 100
    return max(0.0, min(100.0, progress))
