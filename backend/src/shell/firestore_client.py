"""Firestore Client - Persistence for meals and profiles.

This module handles all database I/O for the tracker.
All I/O is contained here; business logic is in the core module.
"""

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from google.cloud import firestore
from pydantic import ValidationError

from ..core.errors import RemoteOperationError
from ..core.models import MealEntry, NewMeal, Profile, ProfileUpdate


logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


@dataclass
class FirestoreConfig:
    """Configuration for Firestore client.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
    """

    project_id: str | None = None
    database: str | None = None

    @classmethod
    def from_env(cls) -> "FirestoreConfig":
        """Read FIRESTORE_PROJECT and FIRESTORE_DATABASE."""
        return cls(
            project_id=os.environ.get("FIRESTORE_PROJECT") or None,
            database=os.environ.get("FIRESTORE_DATABASE") or None,
        )


class SnapshotStream(Generic[T]):
    """Live feed of snapshots from a Firestore listener.

    Lazy, unbounded and not restartable: each emission replaces the consumer's
    cached state until ``close()`` unsubscribes, after which iteration ends.
    Listener callbacks run on Firestore's threads and are handed to the event
    loop that created the stream.
    """

    def __init__(
        self,
        subscribe: Callable[[Callable[..., None]], Any],
        convert: Callable[[Any], T],
    ) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._convert = convert
        self._closed = False
        self._watch = subscribe(self._on_snapshot)

    def _on_snapshot(self, snapshots: Any, changes: Any = None, read_time: Any = None) -> None:
        if self._closed:
            return
        try:
            value = self._convert(snapshots)
        except Exception as e:
            logger.error("Failed to convert snapshot: %s", str(e))
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, value)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "SnapshotStream[T]":
        return self

    async def __anext__(self) -> T:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        """Unsubscribe from the listener and end iteration."""
        if self._closed:
            return
        self._closed = True
        try:
            self._watch.unsubscribe()
        except Exception as e:
            logger.warning("Failed to unsubscribe listener: %s", str(e))
        self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)


class CalorieFirestoreClient:
    """Client for persisting meals and profiles to Firestore.

    Document structure per user:
        users/{user_id}/
            meta/profile: { weight, height, age, gender, activity, bmr, daily_goal }
            meals/{YYYY-MM-DD}/list/{meal_id}: { name, calories, time, date }
    """

    def __init__(self, config: FirestoreConfig | None = None) -> None:
        """Initialize Firestore client.

        Args:
            config: Firestore configuration
        """
        self.config = config or FirestoreConfig()
        self._client: firestore.Client | None = None

    @property
    def client(self) -> firestore.Client:
        """Lazy initialization of Firestore client."""
        if self._client is None:
            kwargs: dict[str, Any] = {}
            if self.config.project_id:
                kwargs["project"] = self.config.project_id
            if self.config.database:
                kwargs["database"] = self.config.database
            self._client = firestore.Client(**kwargs)
        return self._client

    def _user_ref(self, user_id: str) -> firestore.DocumentReference:
        """Get reference to user document."""
        return self.client.collection("users").document(user_id)

    def _profile_ref(self, user_id: str) -> firestore.DocumentReference:
        """Get reference to the profile document."""
        return self._user_ref(user_id).collection("meta").document("profile")

    def _meals_ref(self, user_id: str, log_date: str) -> firestore.CollectionReference:
        """Get reference to one date's meal list."""
        return self._user_ref(user_id).collection("meals").document(log_date).collection("list")

    # ==================== Conversion ====================

    @staticmethod
    def _meal_from_doc(doc: Any) -> MealEntry:
        data = doc.to_dict() or {}
        data["id"] = doc.id
        return MealEntry(**data)

    def _meals_from_docs(self, docs: Any) -> list[MealEntry]:
        return [self._meal_from_doc(d) for d in docs]

    @staticmethod
    def _profile_from_doc(doc: Any) -> Profile | None:
        if doc is None or not doc.exists:
            return None
        try:
            return Profile(**doc.to_dict())
        except ValidationError as e:
            logger.warning("Stored profile is malformed: %d errors", e.error_count())
            return None

    def _profile_from_snapshots(self, snapshots: Any) -> Profile | None:
        if isinstance(snapshots, list):
            return self._profile_from_doc(snapshots[0] if snapshots else None)
        return self._profile_from_doc(snapshots)

    # ==================== Profile Operations ====================

    def get_profile(self, user_id: str) -> Profile | None:
        """Fetch the user's profile.

        Args:
            user_id: The user's ID

        Returns:
            Profile if found, None otherwise

        Raises:
            RemoteOperationError: The read failed
        """
        logger.debug("Fetching profile for user: %s", user_id[:8])
        try:
            doc = self._profile_ref(user_id).get()
        except Exception as e:
            logger.error("Failed to fetch profile: %s", str(e))
            raise RemoteOperationError("Could not load your profile.") from e
        return self._profile_from_doc(doc)

    def upsert_profile(self, user_id: str, update: Profile | ProfileUpdate) -> None:
        """Create or merge-update the profile.

        Only supplied fields are written; fields missing from ``update`` keep
        their stored values.

        Raises:
            RemoteOperationError: The write failed
        """
        data = update.model_dump(mode="json", exclude_none=True)
        logger.info("Saving profile for user: %s (%s)", user_id[:8], ", ".join(sorted(data)))
        try:
            self._profile_ref(user_id).set(data, merge=True)
        except Exception as e:
            logger.error("Failed to save profile: %s", str(e))
            raise RemoteOperationError("Could not save your profile.") from e

    def watch_profile(self, user_id: str) -> SnapshotStream[Profile | None]:
        """Subscribe to live profile snapshots. Must be called inside a running loop."""
        logger.debug("Watching profile for user: %s", user_id[:8])
        return SnapshotStream(self._profile_ref(user_id).on_snapshot, self._profile_from_snapshots)

    # ==================== Meal Operations ====================

    def list_meals(self, user_id: str, log_date: str) -> list[MealEntry]:
        """Fetch one date's meals ordered by time.

        Raises:
            RemoteOperationError: The read failed
        """
        logger.debug("Fetching meals for %s on %s", user_id[:8], log_date)
        try:
            docs = self._meals_ref(user_id, log_date).order_by("time").stream()
            return self._meals_from_docs(docs)
        except Exception as e:
            logger.error("Failed to fetch meals: %s", str(e))
            raise RemoteOperationError("Could not load your meals.") from e

    def add_meal(self, user_id: str, meal: NewMeal) -> str:
        """Store a new meal under its date.

        Returns:
            ID assigned by Firestore

        Raises:
            RemoteOperationError: The write failed
        """
        logger.info("Adding meal for %s on %s", user_id[:8], meal.date)
        try:
            _, doc_ref = self._meals_ref(user_id, meal.date).add(meal.model_dump())
        except Exception as e:
            logger.error("Failed to add meal: %s", str(e))
            raise RemoteOperationError("Failed to log meal.") from e
        return doc_ref.id

    def delete_meal(self, user_id: str, log_date: str, meal_id: str) -> None:
        """Delete a meal. Deleting a missing meal is not an error.

        Raises:
            RemoteOperationError: The delete failed
        """
        logger.info("Deleting meal %s for %s on %s", meal_id, user_id[:8], log_date)
        try:
            self._meals_ref(user_id, log_date).document(meal_id).delete()
        except Exception as e:
            logger.error("Failed to delete meal: %s", str(e))
            raise RemoteOperationError("Failed to delete meal.") from e

    def watch_meals(self, user_id: str, log_date: str) -> SnapshotStream[list[MealEntry]]:
        """Subscribe to live meal snapshots for a date, ordered by time."""
        logger.debug("Watching meals for %s on %s", user_id[:8], log_date)
        query = self._meals_ref(user_id, log_date).order_by("time")
        return SnapshotStream(query.on_snapshot, self._meals_from_docs)
