"""Unit tests for data models - validation and defaults."""

import pytest
from pydantic import ValidationError

from src.core.models import (
    ActivityLevel,
    BiometricInput,
    EditorState,
    Gender,
    MealEntry,
    NewMeal,
    Profile,
    ProfileUpdate,
)


class TestProfile:
    """Tests for Profile model."""

    def test_valid_profile(self):
        profile = Profile(weight=70, height=175, age=25, gender="male", activity="moderate")

        assert profile.gender == Gender.MALE
        assert profile.activity == ActivityLevel.MODERATE
        assert profile.bmr == 0
        assert profile.daily_goal == 0

    @pytest.mark.parametrize("age", [9, 121])
    def test_age_out_of_range_rejected(self, age):
        with pytest.raises(ValidationError):
            Profile(weight=70, height=175, age=age, gender="male", activity="moderate")

    def test_unknown_activity_rejected(self):
        with pytest.raises(ValidationError):
            Profile(weight=70, height=175, age=25, gender="male", activity="couch")


class TestProfileUpdate:
    """Tests for ProfileUpdate model."""

    def test_all_fields_optional(self):
        update = ProfileUpdate()
        assert update.model_dump(exclude_none=True) == {}

    def test_only_supplied_fields_dumped(self):
        update = ProfileUpdate(weight=72.5, daily_goal=2100)
        assert update.model_dump(exclude_none=True) == {"weight": 72.5, "daily_goal": 2100}


class TestBiometricInput:
    """Tests for BiometricInput model."""

    def test_non_positive_rejected(self):
        with pytest.raises(ValidationError):
            BiometricInput(weight_kg=0, height_cm=175, age=25, gender="male")


class TestEditorState:
    """Tests for EditorState model."""

    def test_defaults(self):
        state = EditorState()
        assert state.weight == ""
        assert state.daily_goal == ""
        assert state.bmr == 0
        assert state.activity == ActivityLevel.MODERATE

    def test_negative_bmr_rejected(self):
        with pytest.raises(ValidationError):
            EditorState(bmr=-1)


class TestNewMeal:
    """Tests for NewMeal model."""

    def test_valid(self):
        meal = NewMeal(name="Toast", calories=120, time="08:15", date="2025-01-10")
        assert meal.calories == 120

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            NewMeal(name="", calories=120, time="08:15", date="2025-01-10")

    def test_non_positive_calories_rejected(self):
        with pytest.raises(ValidationError):
            NewMeal(name="Toast", calories=0, time="08:15", date="2025-01-10")

    def test_date_format_enforced(self):
        with pytest.raises(ValidationError):
            NewMeal(name="Toast", calories=120, time="08:15", date="10/01/2025")

    @pytest.mark.parametrize("time", ["99:99", "24:00", "12:60"])
    def test_clock_time_enforced(self, time):
        with pytest.raises(ValidationError):
            NewMeal(name="Toast", calories=120, time=time, date="2025-01-10")

    @pytest.mark.parametrize("time", ["00:00", "23:59"])
    def test_clock_time_bounds(self, time):
        assert NewMeal(name="Toast", calories=120, time=time, date="2025-01-10").time == time


class TestMealEntry:
    """Tests for MealEntry model."""

    def test_bad_stored_calories_read_as_zero(self):
        assert MealEntry(id="m1", calories="bad").calories == 0
        assert MealEntry(id="m1", calories=None).calories == 0

    def test_numeric_strings_parsed(self):
        assert MealEntry(id="m1", calories="320").calories == 320
