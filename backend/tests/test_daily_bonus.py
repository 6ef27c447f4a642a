"""Daily bonus rule tests (pure functions, no fixtures)"""
import dataclasses
import pytest
from datetime import date

from app.services.daily_bonus import (
    evaluate_claim, next_milestone, previous_milestone, milestone_progress_percent,
    streak_bonus_for, calendar_day_difference, ClaimDecision, ALREADY_CLAIMED, BASE_BONUS
)


@pytest.mark.critical
class TestEvaluateClaim:
    """Claim eligibility and streak advancement"""
    
    def test_first_claim_starts_streak_at_one(self):
        decision = evaluate_claim(None, 0, "2026-01-09")
        assert decision.claimed is True
        assert decision.new_streak == 1
        assert decision.awarded == 1
    
    def test_consecutive_day_extends_streak(self):
        decision = evaluate_claim("2026-01-08", 5, "2026-01-09")
        assert decision.claimed is True
        assert decision.new_streak == 6
    
    def test_missed_days_reset_streak_to_one(self):
        """A gap of three days resets to 1 because today's claim counts"""
        decision = evaluate_claim("2026-01-08", 5, "2026-01-11")
        assert decision.claimed is True
        assert decision.new_streak == 1
    
    def test_stored_date_after_today_resets_streak(self):
        decision = evaluate_claim("2026-01-08", 5, "2026-01-07")
        assert decision.claimed is True
        assert decision.new_streak == 1
    
    def test_same_day_is_rejected(self):
        decision = evaluate_claim("2026-01-08", 5, "2026-01-08")
        assert decision.claimed is False
        assert decision.reason == ALREADY_CLAIMED
        assert decision.to_dict() == {"claimed": False, "reason": "already_claimed"}
    
    def test_month_and_year_boundaries_are_consecutive(self):
        assert evaluate_claim("2026-01-31", 2, "2026-02-01").new_streak == 3
        assert evaluate_claim("2025-12-31", 2, "2026-01-01").new_streak == 3
        assert evaluate_claim("2028-02-28", 2, "2028-02-29").new_streak == 3
    
    def test_accepts_date_objects(self):
        decision = evaluate_claim(date(2026, 1, 8), 1, date(2026, 1, 9))
        assert decision.new_streak == 2
    
    def test_success_payload_uses_camel_case(self):
        decision = evaluate_claim("2026-01-08", 6, "2026-01-09")
        assert decision.to_dict() == {
            "claimed": True,
            "awarded": 6,
            "baseBonus": 1,
            "streakBonus": 5,
            "newStreak": 7,
        }


@pytest.mark.critical
class TestStreakBonus:
    """Bonus table for the streak reached by a claim"""
    
    @pytest.mark.parametrize("new_streak,streak_bonus,total", [
        (7, 5, 6),
        (30, 20, 21),
        (14, 3, 4),
        (21, 3, 4),
        (28, 3, 4),
        (35, 3, 4),
        (10, 0, 1),
        (1, 0, 1),
    ])
    def test_award_for_streak(self, new_streak, streak_bonus, total):
        decision = evaluate_claim("2026-03-01", new_streak - 1, "2026-03-02")
        assert decision.new_streak == new_streak
        assert decision.base_bonus == BASE_BONUS
        assert decision.streak_bonus == streak_bonus
        assert decision.awarded == total
    
    def test_zero_streak_has_no_bonus(self):
        assert streak_bonus_for(0) == 0


@pytest.mark.high
class TestMilestones:
    """Milestone helpers used for display"""
    
    @pytest.mark.parametrize("streak,expected", [
        (0, 7), (3, 7), (7, 14), (21, 30), (25, 30), (30, 60), (364, 365), (365, 372), (400, 407),
    ])
    def test_next_milestone(self, streak, expected):
        assert next_milestone(streak) == expected
    
    def test_previous_milestone(self):
        assert previous_milestone(0) == 0
        assert previous_milestone(6) == 0
        assert previous_milestone(7) == 7
        assert previous_milestone(59) == 30
        assert previous_milestone(1000) == 365
    
    def test_progress_percent(self):
        assert milestone_progress_percent(0) == 0.0
        assert milestone_progress_percent(7) == 0.0
        assert milestone_progress_percent(45) == pytest.approx(50.0)
        assert milestone_progress_percent(10) == pytest.approx(3 / 7 * 100)
    
    def test_progress_percent_stays_in_range(self):
        for streak in range(0, 800, 13):
            assert 0.0 <= milestone_progress_percent(streak) <= 100.0
    
    def test_calendar_day_difference(self):
        assert calendar_day_difference("2026-03-01", "2026-02-28") == 1
        assert calendar_day_difference("2026-01-07", "2026-01-08") == -1


@pytest.mark.medium
def test_claim_decision_is_immutable():
    decision = ClaimDecision(claimed=True, awarded=1, base_bonus=1, new_streak=1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        decision.awarded = 100
