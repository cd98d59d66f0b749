"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest and provides:
  - Test configuration (env vars set before any player_finder import)
  - In-memory user directory, saved search store and notification dispatcher
  - Profile factories and a fixed reference time
"""

import os

# Config is read at import time, so these must be set before player_finder loads.
os.environ.setdefault("FIREBASE_PROJECT_ID", "test-project")
os.environ.setdefault("GOOGLE_APPLICATION_CREDENTIALS", "/config/test-serviceAccountKey.json")
os.environ.setdefault("SERVICE_TOKEN", "")
os.environ.setdefault("DEBUG", "True")

from datetime import date, datetime, timezone
from itertools import count
from unittest.mock import MagicMock

import pytest

from player_finder.interfaces import (
    AbstractNotificationDispatcher,
    AbstractSavedSearchStore,
    AbstractUserDirectory,
)
from player_finder.models import CandidateProfile, SavedSearch, SearcherProfile
from player_finder.utils.errors import (
    ConcurrentUpdateError,
    DirectoryUnavailableError,
    NotificationDispatchError,
    SavedSearchNotFoundError,
    SavedSearchStoreError,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryUserDirectory(AbstractUserDirectory):
    """Directory over a list of profiles; filtering is left to the pipeline."""

    def __init__(self, users=(), fail: bool = False):
        self.users = {user.id: user for user in users}
        self.fail = fail
        self.queries = []

    def get_user(self, user_id):
        return self.users.get(user_id)

    def query_candidates(self, user_types, limit):
        self.queries.append((tuple(user_types), limit))
        if self.fail:
            raise DirectoryUnavailableError("directory offline")
        return [u for u in self.users.values() if u.user_type in user_types][:limit]

    def set_visibility(self, user_id, can_be_found):
        user = self.users.get(user_id)
        if user is None:
            return False
        self.users[user_id] = user.model_copy(update={"can_be_found": can_be_found})
        return True


class InMemorySavedSearchStore(AbstractSavedSearchStore):
    """Saved search store with the same version check as the Firestore adapter.

    ``conflicts`` simulates another writer: each pending conflict bumps the
    stored record (one extra contact) right before an update is applied.
    """

    def __init__(self, fail_create: bool = False):
        self.records = {}
        self.fail_create = fail_create
        self.conflicts = 0
        self.update_calls = 0
        self.preferences = {}
        self._ids = count(1)

    def create(self, saved_search):
        if self.fail_create:
            raise SavedSearchStoreError("store offline")
        stored = saved_search.model_copy(
            update={
                "id": f"search-{next(self._ids)}",
                "created_at": saved_search.created_at or NOW,
                "version": 1,
            }
        )
        self.records[stored.id] = stored
        return stored.model_copy(deep=True)

    def get(self, search_id):
        record = self.records.get(search_id)
        return record.model_copy(deep=True) if record else None

    def list_for_searcher(self, searcher_id):
        searches = [s for s in self.records.values() if s.searcher_id == searcher_id]
        return sorted(searches, key=lambda s: s.created_at, reverse=True)

    def update(self, search_id, updates, expected_version):
        self.update_calls += 1
        record = self.records.get(search_id)
        if record is None:
            raise SavedSearchNotFoundError(search_id)
        if self.conflicts > 0:
            self.conflicts -= 1
            record = record.model_copy(
                update={
                    "matches_contacted": record.matches_contacted + 1,
                    "version": record.version + 1,
                }
            )
            self.records[search_id] = record
        if record.version != expected_version:
            raise ConcurrentUpdateError(
                f"{search_id} at version {record.version}, expected {expected_version}"
            )
        updated = record.model_copy(update={**updates, "version": expected_version + 1})
        self.records[search_id] = updated
        return updated.model_copy(deep=True)

    def get_preferences(self, searcher_id):
        stored = self.preferences.get(searcher_id)
        return stored.model_copy(deep=True) if stored else None

    def upsert_preferences(self, preferences):
        existing = self.preferences.get(preferences.searcher_id)
        if existing is not None and existing.created_at is not None:
            preferences = preferences.model_copy(update={"created_at": existing.created_at})
        self.preferences[preferences.searcher_id] = preferences
        return preferences.model_copy(deep=True)


class RecordingDispatcher(AbstractNotificationDispatcher):
    """Records every notification; can refuse or raise for chosen recipients."""

    def __init__(self, raise_for=(), refuse_for=()):
        self.sent = []
        self.raise_for = set(raise_for)
        self.refuse_for = set(refuse_for)

    def dispatch(self, recipient_id, kind, payload):
        if recipient_id in self.raise_for:
            raise NotificationDispatchError(f"push failed for {recipient_id}")
        if recipient_id in self.refuse_for:
            return False
        self.sent.append((recipient_id, kind, payload))
        return True

    def recipients(self):
        return [recipient for recipient, _, _ in self.sent]


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_candidate():
    """Factory for directory records; defaults describe a findable player."""

    def _make(candidate_id, **overrides):
        data = {
            "id": candidate_id,
            "display_name": candidate_id.title(),
            "user_type": "player",
            "latitude": 19.05,
            "longitude": -99.02,
            "skill_level": "3.5",
            "gender": "female",
            "date_of_birth": date(1995, 3, 10),
            "can_be_found": True,
            "is_active": True,
            "email_verified": True,
            "last_active": NOW,
        }
        data.update(overrides)
        return CandidateProfile.model_validate(data)

    return _make


@pytest.fixture
def make_coach(make_candidate):
    def _make(coach_id, **overrides):
        data = {
            "user_type": "coach",
            "coaching_experience_years": 6,
            "hourly_rate": 40.0,
            "specializations": ["serve", "dinking"],
            "languages": ["English", "Spanish"],
            "available_for_lessons": True,
        }
        data.update(overrides)
        return make_candidate(coach_id, **data)

    return _make


@pytest.fixture
def searcher():
    return SearcherProfile(
        id="searcher",
        display_name="Sam",
        latitude=19.0,
        longitude=-99.0,
        skill_level="3.5",
        gender="male",
    )


@pytest.fixture
def searcher_record(make_candidate):
    """The searcher as stored in the directory."""

    return make_candidate(
        "searcher", display_name="Sam", latitude=19.0, longitude=-99.0, gender="male"
    )


@pytest.fixture
def make_directory():
    return InMemoryUserDirectory


@pytest.fixture
def make_store():
    return InMemorySavedSearchStore


@pytest.fixture
def make_dispatcher():
    return RecordingDispatcher


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def store():
    return InMemorySavedSearchStore()


@pytest.fixture
def saved_search_request():
    return SavedSearch(searcher_id="searcher", criteria={"radius_km": 50})


@pytest.fixture
def mock_firebase_app(monkeypatch):
    """
    Provide a mock Firebase app for testing.

    Use this fixture in tests that need to mock Firestore calls.
    """
    mock_app = MagicMock()
    mock_db = MagicMock()

    monkeypatch.setattr("firebase_admin._apps", [mock_app])
    monkeypatch.setattr("firebase_admin.initialize_app", MagicMock(return_value=mock_app))
    monkeypatch.setattr("firebase_admin.firestore.client", MagicMock(return_value=mock_db))
    monkeypatch.setattr("player_finder.tools.firestore_tools._db", None)

    return {"app": mock_app, "db": mock_db}
