"""Core Data Models - Pydantic models for type safety.

All models are value objects with no behavior beyond validation.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class Gender(str, Enum):
    """Gender used to pick the BMR formula."""

    MALE = "male"
    FEMALE = "female"


class ActivityLevel(str, Enum):
    """Activity level, each mapped to a fixed TDEE multiplier."""

    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    ACTIVE = "active"
    VERY_ACTIVE = "very_active"


class BiometricInput(BaseModel):
    """Inputs to the BMR formula, built fresh on every recalculation."""

    weight_kg: float = Field(gt=0, description="Body weight in kilograms")
    height_cm: float = Field(gt=0, description="Height in centimetres")
    age: float = Field(gt=0, description="Age in years")
    gender: Gender


class EnergyEstimate(BaseModel):
    """Rounded BMR and the daily goal derived from it."""

    bmr: int = Field(ge=0, description="Basal metabolic rate in kcal")
    daily_goal: int = Field(ge=0, description="BMR scaled by activity factor")


class Profile(BaseModel):
    """Profile document owned by one user account."""

    weight: float = Field(gt=0, description="Weight in kg")
    height: float = Field(gt=0, description="Height in cm")
    age: int = Field(ge=10, le=120)
    gender: Gender
    activity: ActivityLevel
    bmr: int = Field(default=0, ge=0)
    daily_goal: float = Field(default=0, ge=0, description="Daily calorie goal")


class ProfileUpdate(BaseModel):
    """Partial profile written with merge semantics. Unset fields are kept."""

    weight: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    age: Optional[int] = Field(default=None, ge=10, le=120)
    gender: Optional[Gender] = None
    activity: Optional[ActivityLevel] = None
    bmr: Optional[int] = Field(default=None, ge=0)
    daily_goal: Optional[float] = Field(default=None, ge=0)


class EditorState(BaseModel):
    """Profile editor state. Numeric fields are kept as typed text."""

    weight: str = ""
    height: str = ""
    age: str = ""
    gender: Gender = Gender.MALE
    activity: ActivityLevel = ActivityLevel.MODERATE
    bmr: int = Field(default=0, ge=0)
    daily_goal: str = ""


class NewMeal(BaseModel):
    """A meal about to be logged. The store assigns its id."""

    name: str = Field(min_length=1, description="Name of the meal")
    calories: float = Field(gt=0, description="Total calories")
    time: str = Field(pattern=r"^\d{2}:\d{2}$", description="HH:MM")
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$", description="YYYY-MM-DD")

    @field_validator("time")
    @classmethod
    def validate_clock_time(cls, value: str) -> str:
        """Reject times outside 00:00-23:59."""
        datetime.strptime(value, "%H:%M")
        return value


class MealEntry(BaseModel):
    """A logged meal as read back from the store."""

    id: str
    name: str = ""
    calories: float = 0
    time: str = ""
    date: str = ""

    @field_validator("calories", mode="before")
    @classmethod
    def coerce_calories(cls, value: Any) -> float:
        """Stored values that are not finite numbers read back as 0."""
        if isinstance(value, bool):
            return 0.0
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        return number if math.isfinite(number) else 0.0


class DailyProgress(BaseModel):
    """Consumed calories for one date against the daily goal."""

    date: str
    total_calories: float
    daily_goal: float = Field(ge=0)
    progress_pct: int = Field(ge=0, le=100)
    meal_count: int = Field(ge=0)


class DayView(BaseModel):
    """One date's meals, ordered by time, with progress."""

    date: str
    meals: list[MealEntry] = Field(default_factory=list)
    progress: DailyProgress


class AuthUser(BaseModel):
    """Signed-in user as reported by the auth provider."""

    uid: str
    email: Optional[str] = None
    id_token: str = ""
    refresh_token: str = ""
