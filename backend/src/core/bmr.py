"""Energy Calculations - Pure functions for BMR and TDEE.

Uses the revised Harris-Benedict coefficients per gender. Nothing here rounds
except ``round_half_away`` and ``estimate_energy``; callers decide when to round.
"""

import math

from .models import ActivityLevel, BiometricInput, EnergyEstimate, Gender


ACTIVITY_FACTORS: dict[ActivityLevel, float] = {
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHT: 1.375,
    ActivityLevel.MODERATE: 1.55,
    ActivityLevel.ACTIVE: 1.725,
    ActivityLevel.VERY_ACTIVE: 1.9,
}


def calc_bmr(data: BiometricInput) -> float:
    """Calculate basal metabolic rate in kcal/day.

    Args:
        data: Weight, height, age and gender

    Returns:
        Unrounded BMR
    """
    if data.gender == Gender.MALE:
        return 88.36 + (13.4 * data.weight_kg) + (4.8 * data.height_cm) - (5.7 * data.age)
    return 447.6 + (9.2 * data.weight_kg) + (3.1 * data.height_cm) - (4.3 * data.age)


def calc_tdee(bmr: float, activity: ActivityLevel) -> float:
    """Scale a BMR by the activity factor."""
    return bmr * ACTIVITY_FACTORS[ActivityLevel(activity)]


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def estimate_energy(data: BiometricInput, activity: ActivityLevel) -> EnergyEstimate:
    """Calculate the rounded BMR and the goal it suggests.

    The goal is derived from the unrounded BMR so rounding happens once.
    """
    bmr = calc_bmr(data)
    return EnergyEstimate(
        bmr=max(0, round_half_away(bmr)),
        daily_goal=max(0, round_half_away(calc_tdee(bmr, activity))),
    )
