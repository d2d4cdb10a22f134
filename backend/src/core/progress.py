"""Progress Aggregation - Pure functions for daily totals.

All functions are pure: same input always produces same output, no side effects.
"""

import math
from collections.abc import Iterable, Mapping
from typing import Any

from .bmr import round_half_away
from .models import DailyProgress, DayView, MealEntry


def meal_calories(meal: MealEntry | Mapping[str, Any]) -> float:
    """Calories of one meal, 0 when missing or not a finite number."""
    if isinstance(meal, Mapping):
        value = meal.get("calories")
    else:
        value = getattr(meal, "calories", None)

    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def total_calories(meals: Iterable[MealEntry | Mapping[str, Any]]) -> float:
    """Sum calories over meals, counting bad values as 0."""
    return sum(meal_calories(m) for m in meals)


def progress_percent(total: float, goal: float | None) -> int:
    """Percentage of goal consumed, clamped to 100.

    A missing or non-positive goal yields 0 rather than an error.
    """
    if not goal or goal <= 0:
        return 0
    return max(0, min(100, round_half_away(total / goal * 100)))


def calculate_progress(
    meals: list[MealEntry | Mapping[str, Any]], goal: float | None, log_date: str = ""
) -> DailyProgress:
    """Calculate a DailyProgress for one date.

    Args:
        meals: Meals logged on the date
        goal: Daily calorie goal (None or 0 when unset)
        log_date: The date, YYYY-MM-DD

    Returns:
        DailyProgress with total and clamped percentage
    """
    total = total_calories(meals)
    return DailyProgress(
        date=log_date,
        total_calories=total,
        daily_goal=max(0.0, goal or 0.0),
        progress_pct=progress_percent(total, goal),
        meal_count=len(meals),
    )


def build_day_view(log_date: str, meals: list[MealEntry], goal: float | None) -> DayView:
    """Meals for a date ordered by time, with progress against the goal."""
    ordered = sorted(meals, key=lambda m: m.time)
    return DayView(
        date=log_date,
        meals=ordered,
        progress=calculate_progress(ordered, goal, log_date),
    )
