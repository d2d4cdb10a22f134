"""Meal Form Rules - Pure functions for typed numeric input and new meals."""

import math
import re
from datetime import datetime

from pydantic import ValidationError

from .errors import InputValidationError
from .models import NewMeal


MEAL_FORM_ERROR = "Please fill all fields correctly."
MEAL_ADDED_MESSAGE = "Meal added successfully."

_LEADING_ZEROS_BEFORE_POINT = re.compile(r"^0+(?=\.)")
_LEADING_ZEROS_BEFORE_DIGIT = re.compile(r"^0+(?=\d)")


def to_number(text: str | None) -> float | None:
    """Parse typed text into a finite number.

    Returns:
        The number, or None for blank or unparsable input
    """
    if text is None or not str(text).strip() or "_" in str(text):
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def trim_leading_zeros(text: str) -> str:
    """Strip redundant leading zeros while the user types.

    "007" -> "7", "00.5" -> "0.5". "", "0", "0.50" and "." are kept as typed.
    """
    if text in ("", "0"):
        return text
    if text.startswith("0.") or text.startswith("."):
        return _LEADING_ZEROS_BEFORE_POINT.sub("0", text)
    return _LEADING_ZEROS_BEFORE_DIGIT.sub("", text)


def build_new_meal(
    name: str,
    calories_text: str,
    time: str | None = None,
    log_date: str | None = None,
) -> NewMeal:
    """Validate meal form input.

    Args:
        name: Meal name
        calories_text: Calories as typed
        time: HH:MM (defaults to now)
        log_date: YYYY-MM-DD (defaults to today)

    Raises:
        InputValidationError: Blank name, non-positive calories or malformed
            time/date
    """
    now = datetime.now()
    calories = to_number(calories_text)
    if not name or not name.strip() or calories is None or calories <= 0:
        raise InputValidationError(MEAL_FORM_ERROR)

    try:
        return NewMeal(
            name=name.strip(),
            calories=calories,
            time=time or now.strftime("%H:%M"),
            date=log_date or now.date().isoformat(),
        )
    except ValidationError as e:
        raise InputValidationError(MEAL_FORM_ERROR) from e
