"""Profile Editor - Goal reconciliation for the profile form.

The editor keeps weight, height, age and the daily goal as typed text so a
field can be cleared without snapping back to a stale number. Every change to
a biometric field or a selector recalculates the BMR. The suggested goal is
written to the goal field only while that field reads "" or "0"; any other
text is a user override and stays put until the user clears or zeroes it.
The latch is keyed on the goal text alone, with no separate dirty flag.
"""

import logging

from pydantic import BaseModel, Field, ValidationError

from .bmr import estimate_energy
from .errors import InputValidationError
from .meals import to_number, trim_leading_zeros
from .models import ActivityLevel, BiometricInput, EditorState, Gender, Profile


logger = logging.getLogger(__name__)

PROFILE_FORM_ERROR = "Please enter a valid weight, height and age (10-120)."
PROFILE_SAVED_MESSAGE = "Profile saved."

DEFAULT_STATE = EditorState(
    weight="70",
    height="175",
    age="25",
    gender=Gender.MALE,
    activity=ActivityLevel.MODERATE,
)

EDITABLE_FIELDS = ("weight", "height", "age", "gender", "activity", "daily_goal")
UNSET_GOALS = ("", "0")


class _ProfileSchema(BaseModel):
    """Schema check run on save."""

    weight: float = Field(gt=0)
    height: float = Field(gt=0)
    age: int = Field(ge=10, le=120)
    gender: Gender
    activity: ActivityLevel


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _positive(text: str) -> float | None:
    number = to_number(text)
    if number is None or number <= 0:
        return None
    return number


class ProfileEditor:
    """Stateful profile form with the auto-goal latch."""

    def __init__(self, state: EditorState | None = None) -> None:
        self._state = (state or EditorState()).model_copy()

    @classmethod
    def from_profile(cls, profile: Profile | None) -> "ProfileEditor":
        """Load the editor from a stored profile, or defaults when there is none.

        Runs one recalculation, so a fresh editor shows a suggested goal.
        """
        if profile is None:
            editor = cls(DEFAULT_STATE)
        else:
            editor = cls(EditorState(
                weight=_format_number(profile.weight),
                height=_format_number(profile.height),
                age=str(profile.age),
                gender=profile.gender,
                activity=profile.activity,
                bmr=profile.bmr,
                daily_goal=_format_number(profile.daily_goal),
            ))
        editor.recalculate()
        return editor

    @property
    def state(self) -> EditorState:
        """Copy of the current editor state."""
        return self._state.model_copy()

    # ==================== Field Changes ====================

    def set_weight(self, text: str) -> None:
        self._state.weight = trim_leading_zeros(text)
        self.recalculate()

    def set_height(self, text: str) -> None:
        self._state.height = trim_leading_zeros(text)
        self.recalculate()

    def set_age(self, text: str) -> None:
        self._state.age = trim_leading_zeros(text)
        self.recalculate()

    def set_gender(self, gender: Gender | str) -> None:
        self._state.gender = Gender(gender)
        self.recalculate()

    def set_activity(self, activity: ActivityLevel | str) -> None:
        self._state.activity = ActivityLevel(activity)
        self.recalculate()

    def set_daily_goal(self, text: str) -> None:
        """Edit the goal directly. Never triggers a recalculation."""
        self._state.daily_goal = trim_leading_zeros(text)

    def change(self, field: str, value: str) -> None:
        """Apply one form change by field name.

        Raises:
            InputValidationError: Unknown field or unknown enum value
        """
        if field not in EDITABLE_FIELDS:
            raise InputValidationError(f"Unknown profile field: {field}")
        try:
            getattr(self, f"set_{field}")(value)
        except ValueError as e:
            raise InputValidationError(f"Invalid value for {field}.") from e

    # ==================== Reconciliation ====================

    def recalculate(self) -> None:
        """Recompute BMR and, if the goal is unset, the suggested goal."""
        weight = _positive(self._state.weight)
        height = _positive(self._state.height)
        age = _positive(self._state.age)

        if weight is None or height is None or age is None:
            self._state.bmr = 0
            return

        estimate = estimate_energy(
            BiometricInput(weight_kg=weight, height_cm=height, age=age, gender=self._state.gender),
            self._state.activity,
        )
        self._state.bmr = estimate.bmr
        if self._state.daily_goal in UNSET_GOALS:
            self._state.daily_goal = str(estimate.daily_goal)

    # ==================== Save ====================

    def daily_goal_value(self) -> float:
        """Goal text as a number, 0 when unparsable or negative."""
        number = to_number(self._state.daily_goal)
        if number is None or number < 0:
            return 0.0
        return number

    def to_profile(self) -> Profile:
        """Validate the full form and build the profile to persist.

        Raises:
            InputValidationError: Any field fails the schema check
        """
        try:
            checked = _ProfileSchema(
                weight=to_number(self._state.weight),
                height=to_number(self._state.height),
                age=to_number(self._state.age),
                gender=self._state.gender,
                activity=self._state.activity,
            )
        except ValidationError as e:
            logger.debug("Profile form rejected: %d errors", e.error_count())
            raise InputValidationError(PROFILE_FORM_ERROR) from e

        # BMR is derived from the saved biometrics, never taken from the state
        estimate = estimate_energy(
            BiometricInput(
                weight_kg=checked.weight,
                height_cm=checked.height,
                age=checked.age,
                gender=checked.gender,
            ),
            checked.activity,
        )
        return Profile(
            weight=checked.weight,
            height=checked.height,
            age=checked.age,
            gender=checked.gender,
            activity=checked.activity,
            bmr=estimate.bmr,
            daily_goal=self.daily_goal_value(),
        )
