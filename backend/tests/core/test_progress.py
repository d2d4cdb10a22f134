"""Unit tests for progress aggregation - pure functions, no mocks needed."""

from src.core.models import MealEntry
from src.core.progress import (
    build_day_view,
    calculate_progress,
    meal_calories,
    progress_percent,
    total_calories,
)


MIXED_MEALS = [{"calories": 300}, {"calories": "bad"}, {"calories": 450}]


class TestTotalCalories:
    """Tests for total_calories."""

    def test_empty(self):
        assert total_calories([]) == 0

    def test_bad_values_count_as_zero(self):
        """Non-numeric calories are treated as 0."""
        assert total_calories(MIXED_MEALS) == 750

    def test_missing_and_special_values(self):
        """Missing, None, bool and non-finite values count as 0."""
        meals = [{}, {"calories": None}, {"calories": True}, {"calories": float("nan")}, {"calories": "120"}]
        assert total_calories(meals) == 120

    def test_models(self):
        meals = [
            MealEntry(id="a", name="Oats", calories=350, time="08:00", date="2025-01-10"),
            MealEntry(id="b", name="Soup", calories=220.5, time="13:00", date="2025-01-10"),
        ]
        assert total_calories(meals) == 570.5

    def test_meal_calories_on_model(self):
        assert meal_calories(MealEntry(id="a", calories="bad")) == 0


class TestProgressPercent:
    """Tests for progress_percent."""

    def test_zero_goal_is_zero(self):
        """Division by a zero goal yields 0, not an error."""
        assert progress_percent(750, 0) == 0

    def test_missing_goal_is_zero(self):
        assert progress_percent(750, None) == 0

    def test_partial(self):
        assert progress_percent(750, 1000) == 75

    def test_clamped_at_100(self):
        """150% is clamped to 100."""
        assert progress_percent(750, 500) == 100

    def test_rounds_half_up(self):
        """62.5% rounds to 63."""
        assert progress_percent(625, 1000) == 63


class TestCalculateProgress:
    """Tests for calculate_progress."""

    def test_spec_examples(self):
        assert calculate_progress(MIXED_MEALS, 0).progress_pct == 0
        assert calculate_progress(MIXED_MEALS, 1000).progress_pct == 75
        assert calculate_progress(MIXED_MEALS, 500).progress_pct == 100

    def test_fields(self):
        progress = calculate_progress(MIXED_MEALS, 2000, "2025-01-10")

        assert progress.date == "2025-01-10"
        assert progress.total_calories == 750
        assert progress.daily_goal == 2000
        assert progress.meal_count == 3
        assert progress.progress_pct == 38


class TestBuildDayView:
    """Tests for build_day_view."""

    def test_meals_ordered_by_time(self):
        meals = [
            MealEntry(id="b", name="Dinner", calories=700, time="19:30", date="2025-01-10"),
            MealEntry(id="a", name="Breakfast", calories=400, time="07:45", date="2025-01-10"),
        ]
        day = build_day_view("2025-01-10", meals, 2200)

        assert [m.id for m in day.meals] == ["a", "b"]
        assert day.progress.total_calories == 1100
        assert day.progress.progress_pct == 50

    def test_empty_day(self):
        day = build_day_view("2025-01-10", [], 0)

        assert day.meals == []
        assert day.progress.progress_pct == 0
