"""Firestore adapters for the user directory, saved searches and notifications.

These helpers centralize collection names, error wrapping and logging so the
graphs only see the collaborator interfaces.
"""

from __future__ import annotations

import os
from typing import Any, Optional, Sequence

import firebase_admin
from firebase_admin import credentials, firestore
from pydantic import ValidationError

from player_finder.interfaces import (
    AbstractNotificationDispatcher,
    AbstractSavedSearchStore,
    AbstractUserDirectory,
)
from player_finder.models import CandidateProfile, FinderPreferences, SavedSearch
from player_finder.utils.dates import utc_now
from player_finder.utils.errors import (
    ConcurrentUpdateError,
    DirectoryUnavailableError,
    NotificationDispatchError,
    SavedSearchNotFoundError,
    SavedSearchStoreError,
)
from player_finder.utils.logging_config import logger

USERS_COLLECTION = "users"
SAVED_SEARCHES_COLLECTION = "saved_searches"
NOTIFICATIONS_COLLECTION = "notifications"
FINDER_PREFERENCES_COLLECTION = "finder_preferences"

_db: firestore.Client | None = None
def get_db() -> firestore.Client:
    """Get a Firestore client, initializing Firebase lazily."""
    global _db

    if _db is not None:
        return _db

    try:
        if not firebase_admin._apps:
            cred_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
            if not cred_path:
                raise RuntimeError(
                    "GOOGLE_APPLICATION_CREDENTIALS is not set"
                )

            cred = credentials.Certificate(cred_path)
            firebase_admin.initialize_app(cred)

        _db = firestore.client()
        return _db

    except Exception as exc:
        logger.error("Failed to initialize Firestore: %s", exc)
        raise DirectoryUnavailableError(str(exc)) from exc


def _to_candidate(doc) -> CandidateProfile | None:
    """Convert a users/{id} snapshot, skipping records that fail validation."""

    data = doc.to_dict() or {}
    try:
        return CandidateProfile.model_validate({**data, "id": data.get("id") or doc.id})
    except ValidationError as exc:
        logger.warning("Skipping malformed user record %s: %s", doc.id, exc.error_count())
        return None


def _to_saved_search(doc) -> SavedSearch:
    data = doc.to_dict() or {}
    return SavedSearch.model_validate({**data, "id": doc.id})


class FirestoreUserDirectory(AbstractUserDirectory):
    """User directory backed by the users collection."""

    def __init__(self, db: firestore.Client | None = None):
        self._db = db

    @property
    def db(self) -> firestore.Client:
        return self._db or get_db()

    def get_user(self, user_id: str) -> Optional[CandidateProfile]:
        try:
            doc = self.db.collection(USERS_COLLECTION).document(user_id).get()
            if not doc.exists:
                return None
            return _to_candidate(doc)
        except Exception as exc:
            logger.error("Failed to fetch user: %s", str(exc))
            raise DirectoryUnavailableError(str(exc)) from exc

    def query_candidates(
        self, user_types: Sequence[str], limit: int
    ) -> list[CandidateProfile]:
        """Query findable users of the given types.

        Equality filters are pushed to Firestore; type membership uses an
        ``in`` filter. Range checks (skill, age, distance) run in memory so
        no composite indexes are needed beyond these fields.
        """

        try:
            query = (
                self.db.collection(USERS_COLLECTION)
                .where("is_active", "==", True)
                .where("email_verified", "==", True)
                .where("can_be_found", "==", True)
                .where("user_type", "in", list(user_types))
                .limit(limit)
            )
            candidates = [_to_candidate(doc) for doc in query.stream()]
        except Exception as exc:
            logger.error("Failed to query candidates: %s", str(exc))
            raise DirectoryUnavailableError(str(exc)) from exc

        return [candidate for candidate in candidates if candidate is not None]

    def set_visibility(self, user_id: str, can_be_found: bool) -> bool:
        try:
            ref = self.db.collection(USERS_COLLECTION).document(user_id)
            if not ref.get().exists:
                return False
            ref.update({"can_be_found": can_be_found})
            return True
        except Exception as exc:
            logger.error("Failed to update visibility: %s", str(exc))
            raise DirectoryUnavailableError(str(exc)) from exc


class FirestoreSavedSearchStore(AbstractSavedSearchStore):
    """Saved searches with version-checked updates inside transactions."""

    def __init__(self, db: firestore.Client | None = None):
        self._db = db

    @property
    def db(self) -> firestore.Client:
        return self._db or get_db()

    def create(self, saved_search: SavedSearch) -> SavedSearch:
        try:
            ref = self.db.collection(SAVED_SEARCHES_COLLECTION).document()
            stored = saved_search.model_copy(
                update={"id": ref.id, "created_at": utc_now(), "version": 1}
            )
            ref.set(stored.to_document())
            return stored
        except Exception as exc:
            logger.error("Failed to save search: %s", str(exc))
            raise SavedSearchStoreError(str(exc)) from exc

    def get(self, search_id: str) -> Optional[SavedSearch]:
        try:
            doc = self.db.collection(SAVED_SEARCHES_COLLECTION).document(search_id).get()
            if not doc.exists:
                return None
            return _to_saved_search(doc)
        except Exception as exc:
            logger.error("Failed to fetch saved search: %s", str(exc))
            raise SavedSearchStoreError(str(exc)) from exc

    def list_for_searcher(self, searcher_id: str) -> list[SavedSearch]:
        """Single-field query on searcher_id; ordering happens in memory."""

        try:
            query = self.db.collection(SAVED_SEARCHES_COLLECTION).where(
                "searcher_id", "==", searcher_id
            )
            searches = [_to_saved_search(doc) for doc in query.stream()]
        except Exception as exc:
            logger.error("Failed to list saved searches: %s", str(exc))
            raise SavedSearchStoreError(str(exc)) from exc

        return sorted(
            searches,
            key=lambda s: s.created_at.timestamp() if s.created_at else 0.0,
            reverse=True,
        )

    def update(
        self, search_id: str, updates: dict[str, Any], expected_version: int
    ) -> SavedSearch:
        ref = self.db.collection(SAVED_SEARCHES_COLLECTION).document(search_id)

        @firestore.transactional
        def _apply(transaction) -> dict:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise SavedSearchNotFoundError(f"Saved search not found: {search_id}")

            data = snapshot.to_dict() or {}
            if data.get("version", 0) != expected_version:
                raise ConcurrentUpdateError(
                    f"Saved search {search_id} is at version {data.get('version')}, "
                    f"expected {expected_version}"
                )

            changes = {**updates, "version": expected_version + 1}
            transaction.update(ref, changes)
            return {**data, **changes}

        try:
            merged = _apply(self.db.transaction())
        except (SavedSearchNotFoundError, ConcurrentUpdateError):
            raise
        except Exception as exc:
            logger.error("Failed to update saved search: %s", str(exc))
            raise SavedSearchStoreError(str(exc)) from exc

        return SavedSearch.model_validate({**merged, "id": search_id})

    def get_preferences(self, searcher_id: str) -> Optional[FinderPreferences]:
        try:
            doc = (
                self.db.collection(FINDER_PREFERENCES_COLLECTION)
                .document(searcher_id)
                .get()
            )
            if not doc.exists:
                return None
            data = doc.to_dict() or {}
            return FinderPreferences.model_validate({**data, "searcher_id": searcher_id})
        except Exception as exc:
            logger.error("Failed to fetch finder preferences: %s", str(exc))
            raise SavedSearchStoreError(str(exc)) from exc

    def upsert_preferences(self, preferences: FinderPreferences) -> FinderPreferences:
        """One document per searcher, keyed by searcher_id."""

        ref = self.db.collection(FINDER_PREFERENCES_COLLECTION).document(
            preferences.searcher_id
        )
        try:
            existing = ref.get()
            if existing.exists:
                created_at = (existing.to_dict() or {}).get("created_at")
                if created_at is not None:
                    preferences = preferences.model_copy(update={"created_at": created_at})
            ref.set(preferences.to_document())
            return preferences
        except Exception as exc:
            logger.error("Failed to save finder preferences: %s", str(exc))
            raise SavedSearchStoreError(str(exc)) from exc


class FirestoreNotificationDispatcher(AbstractNotificationDispatcher):
    """In-app notifications stored in the notifications collection."""

    def __init__(self, db: firestore.Client | None = None):
        self._db = db

    @property
    def db(self) -> firestore.Client:
        return self._db or get_db()

    def dispatch(self, recipient_id: str, kind: str, payload: dict[str, Any]) -> bool:
        data = {key: value for key, value in payload.items() if key not in ("title", "message")}
        try:
            self.db.collection(NOTIFICATIONS_COLLECTION).add(
                {
                    "user_id": recipient_id,
                    "type": kind,
                    "title": payload.get("title", ""),
                    "message": payload.get("message", ""),
                    "data": data,
                    "is_read": False,
                    "createdAt": firestore.SERVER_TIMESTAMP,
                }
            )
            return True
        except Exception as exc:
            logger.error("Failed to create notification: %s", str(exc))
            raise NotificationDispatchError(str(exc)) from exc
