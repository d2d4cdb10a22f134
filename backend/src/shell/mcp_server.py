"""MCP Server - Tool definitions for assistant integration.

Exposes meal logging, daily progress and the profile editor as MCP tools.
Requests are authenticated with a Firebase ID token in the Authorization
header; the HTTP middleware puts the resulting session in ``current_session``.
"""

import logging
from contextvars import ContextVar

from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from ..core.bmr import estimate_energy as calculate_energy
from ..core.errors import InputValidationError, NotAuthenticatedError, TrackerError
from ..core.meals import MEAL_ADDED_MESSAGE, to_number
from ..core.models import ActivityLevel, BiometricInput, Gender
from ..core.profile_editor import PROFILE_SAVED_MESSAGE
from .auth import AuthConfig, IdentityToolkitClient, Session
from .firestore_client import CalorieFirestoreClient, FirestoreConfig
from .tracker import PendingSaves, Tracker


logger = logging.getLogger(__name__)

# Session of the user making the current request
current_session: ContextVar[Session | None] = ContextVar("current_session", default=None)

transport_security = TransportSecuritySettings(
    enable_dns_rebinding_protection=True,
    allowed_hosts=[
        "localhost:*",
        "127.0.0.1:*",
        "*.run.app:*",
        "*.run.app",
    ],
)

mcp = FastMCP(
    "calorie-tracker",
    instructions="""Calorie & BMR Tracker - meal log and daily calorie goal.

Use these tools to log meals, check progress against the daily goal,
and maintain the user's profile (weight, height, age, gender, activity).

The daily goal is derived from BMR and activity until the user sets one
explicitly. After logging, show the updated daily progress.""",
    stateless_http=True,
    transport_security=transport_security,
)

# Lazy-initialized clients
_store: CalorieFirestoreClient | None = None
_identity_client: IdentityToolkitClient | None = None

# In-flight write guard shared with the HTTP routes
pending_saves = PendingSaves()


def get_store() -> CalorieFirestoreClient:
    """Get or create Firestore client."""
    global _store
    if _store is None:
        _store = CalorieFirestoreClient(FirestoreConfig.from_env())
    return _store


def get_identity_client() -> IdentityToolkitClient:
    """Get or create Identity Toolkit client."""
    global _identity_client
    if _identity_client is None:
        _identity_client = IdentityToolkitClient(AuthConfig.from_env())
    return _identity_client


def get_tracker() -> Tracker:
    """Tracker bound to the current request's session.

    Raises:
        NotAuthenticatedError: No authenticated session for this request
    """
    session = current_session.get()
    if session is None or session.current_user is None:
        logger.warning("MCP tool called without an authenticated session")
        raise NotAuthenticatedError("No authenticated user. Provide a Firebase ID token.")
    return Tracker(session=session, store=get_store(), pending=pending_saves)


# ==================== Meal Tools ====================


@mcp.tool()
def log_meal(
    name: str,
    calories: float,
    time: str | None = None,
    date_str: str | None = None,
) -> dict:
    """Log a meal.

    Args:
        name: Name of the meal (e.g., "Chicken salad")
        calories: Calories for the meal, must be positive
        time: Time eaten as HH:MM (defaults to now)
        date_str: Date as YYYY-MM-DD (defaults to today)

    Returns:
        The created meal and the updated daily progress
    """
    try:
        tracker = get_tracker()
        entry = tracker.log_meal(name, str(calories), time, date_str)
        day = tracker.day(entry.date)
    except TrackerError as e:
        return {"error": str(e)}

    return {
        "message": MEAL_ADDED_MESSAGE,
        "entry": entry.model_dump(),
        "progress": day.progress.model_dump(),
    }


@mcp.tool()
def delete_meal(meal_id: str, date_str: str | None = None) -> dict:
    """Delete a logged meal.

    Args:
        meal_id: The ID of the meal to delete
        date_str: Date the meal was logged on (defaults to today)

    Returns:
        Confirmation and updated daily progress
    """
    try:
        tracker = get_tracker()
        tracker.remove_meal(meal_id, date_str)
        day = tracker.day(date_str)
    except TrackerError as e:
        return {"error": str(e)}

    return {
        "success": True,
        "meals_remaining": day.progress.meal_count,
        "progress": day.progress.model_dump(),
    }


@mcp.tool()
def get_day(date_str: str | None = None) -> dict:
    """Get a day's meals ordered by time, with progress toward the goal.

    Args:
        date_str: Date in YYYY-MM-DD format (defaults to today)

    Returns:
        Dictionary with date, meals list and progress
    """
    try:
        day = get_tracker().day(date_str)
    except TrackerError as e:
        return {"error": str(e)}
    return day.model_dump()


# ==================== Profile Tools ====================


@mcp.tool()
def get_profile() -> dict:
    """Retrieve the user's profile, BMR and daily goal.

    Returns:
        Profile fields, or a warning if no profile is saved yet
    """
    try:
        profile = get_tracker().profile()
    except TrackerError as e:
        return {"error": str(e)}

    if profile is None:
        return {"warning": "No profile saved yet. Use update_profile first."}
    return profile.model_dump(mode="json")


@mcp.tool()
def update_profile(
    weight: float | None = None,
    height: float | None = None,
    age: int | None = None,
    gender: str | None = None,
    activity: str | None = None,
    daily_goal: float | None = None,
) -> dict:
    """Update the profile. Only provided fields change.

    The daily goal follows BMR and activity while it is unset (0). Once the
    user has a goal it is kept unless ``daily_goal`` is passed; pass 0 to go
    back to the suggested goal.

    Args:
        weight: Weight in kg
        height: Height in cm
        age: Age in years (10-120)
        gender: "male" or "female"
        activity: sedentary, light, moderate, active or very_active
        daily_goal: Explicit daily calorie goal

    Returns:
        The saved profile
    """
    try:
        tracker = get_tracker()
        editor = tracker.editor()
        if daily_goal is not None:
            editor.change("daily_goal", "" if daily_goal == 0 else str(daily_goal))
        changes = {"weight": weight, "height": height, "age": age, "gender": gender, "activity": activity}
        for field, value in changes.items():
            if value is not None:
                editor.change(field, str(value))
        editor.recalculate()
        profile = tracker.save_profile(editor)
    except TrackerError as e:
        return {"error": str(e)}

    return {"message": PROFILE_SAVED_MESSAGE, "profile": profile.model_dump(mode="json")}


@mcp.tool()
def estimate_energy(
    weight: float,
    height: float,
    age: float,
    gender: str,
    activity: str = "moderate",
) -> dict:
    """Estimate BMR and a daily calorie goal without saving anything.

    Args:
        weight: Weight in kg
        height: Height in cm
        age: Age in years
        gender: "male" or "female"
        activity: sedentary, light, moderate, active or very_active

    Returns:
        Rounded BMR and daily goal
    """
    try:
        if any(to_number(str(v)) is None or v <= 0 for v in (weight, height, age)):
            raise InputValidationError("Weight, height and age must be positive numbers.")
        data = BiometricInput(weight_kg=weight, height_cm=height, age=age, gender=Gender(gender))
        estimate = calculate_energy(data, ActivityLevel(activity))
    except ValueError:
        return {"error": "Gender must be male or female and activity a known level."}
    except TrackerError as e:
        return {"error": str(e)}
    return estimate.model_dump()
