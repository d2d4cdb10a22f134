"""Tracker Service - User-facing operations shared by the HTTP and MCP surfaces.

Binds an explicit ``Session`` to the store; core rules do the validation and
math, this module only sequences them around I/O.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date

from ..core.errors import InputValidationError, SaveInProgressError
from ..core.meals import build_new_meal
from ..core.models import DayView, MealEntry, Profile
from ..core.profile_editor import ProfileEditor
from ..core.progress import build_day_view
from .auth import Session
from .firestore_client import CalorieFirestoreClient


logger = logging.getLogger(__name__)

DATE_FORMAT_ERROR = "Invalid date format. Use YYYY-MM-DD."


def parse_log_date(date_str: str | None) -> str:
    """Normalize a YYYY-MM-DD string, defaulting to today.

    Raises:
        InputValidationError: Not a valid calendar date
    """
    if not date_str:
        return date.today().isoformat()
    try:
        return date.fromisoformat(date_str).isoformat()
    except ValueError as e:
        raise InputValidationError(DATE_FORMAT_ERROR) from e


class PendingSaves:
    """Per-user guard against duplicate submissions.

    A key is held from the start of a mutating operation until it completes
    or fails. Holds are taken from the event loop and from threadpool workers.
    """

    def __init__(self) -> None:
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold ``key`` for the duration of the block.

        Raises:
            SaveInProgressError: ``key`` is already held
        """
        with self._lock:
            if key in self._in_flight:
                logger.warning("Duplicate save rejected for user: %s", key[:8])
                raise SaveInProgressError()
            self._in_flight.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(key)


@dataclass
class Tracker:
    """Meal and profile operations for the signed-in user of ``session``.

    Writes hold the user's key in ``pending`` so a second write from any
    surface sharing the guard is rejected while the first is in flight.
    """

    session: Session
    store: CalorieFirestoreClient
    pending: PendingSaves = field(default_factory=PendingSaves)

    @property
    def user_id(self) -> str:
        return self.session.require_user().uid

    # ==================== Meals ====================

    def day(self, log_date: str | None = None) -> DayView:
        """Meals and progress for a date (today by default)."""
        day_str = parse_log_date(log_date)
        user_id = self.user_id
        meals = self.store.list_meals(user_id, day_str)
        profile = self.store.get_profile(user_id)
        goal = profile.daily_goal if profile else 0
        return build_day_view(day_str, meals, goal)

    def log_meal(
        self,
        name: str,
        calories_text: str,
        time: str | None = None,
        log_date: str | None = None,
    ) -> MealEntry:
        """Validate and store a meal.

        Raises:
            InputValidationError: Bad form input, nothing is sent
            SaveInProgressError: Another write for this user is in flight
            RemoteOperationError: The store rejected the write
        """
        user_id = self.user_id
        meal = build_new_meal(name, calories_text, time, parse_log_date(log_date))
        with self.pending.hold(user_id):
            meal_id = self.store.add_meal(user_id, meal)
        return MealEntry(id=meal_id, **meal.model_dump())

    def remove_meal(self, meal_id: str, log_date: str | None = None) -> None:
        if not meal_id:
            raise InputValidationError("Meal id is required.")
        user_id = self.user_id
        day_str = parse_log_date(log_date)
        with self.pending.hold(user_id):
            self.store.delete_meal(user_id, day_str, meal_id)

    # ==================== Profile ====================

    def profile(self) -> Profile | None:
        return self.store.get_profile(self.user_id)

    def editor(self) -> ProfileEditor:
        """Editor loaded from the stored profile, or defaults."""
        return ProfileEditor.from_profile(self.profile())

    def save_profile(self, editor: ProfileEditor) -> Profile:
        """Validate the editor and merge-save the profile.

        Raises:
            InputValidationError: Schema check failed, nothing is sent
            SaveInProgressError: Another write for this user is in flight
            RemoteOperationError: The store rejected the write
        """
        user_id = self.user_id
        profile = editor.to_profile()
        with self.pending.hold(user_id):
            self.store.upsert_profile(user_id, profile)
        return profile
