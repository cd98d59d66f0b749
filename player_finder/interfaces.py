"""Boundaries between the matching engine and its external collaborators.

The engine never talks to storage or delivery channels directly; graphs
receive implementations of these interfaces. Firestore-backed versions live
in ``player_finder.tools.firestore_tools``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional, Sequence

if TYPE_CHECKING:
    from player_finder.models import CandidateProfile, FinderPreferences, SavedSearch


class AbstractUserDirectory(ABC):
    """Read access to user records plus the visibility toggle."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional["CandidateProfile"]:
        """Fetch one user record, or None when it does not exist."""

    @abstractmethod
    def query_candidates(
        self, user_types: Sequence[str], limit: int
    ) -> list["CandidateProfile"]:
        """Return active, verified, findable users of the given types.

        Implementations may push these equality constraints down to storage;
        the caller re-applies every eligibility rule in memory.
        Raises DirectoryUnavailableError when the query fails.
        """

    @abstractmethod
    def set_visibility(self, user_id: str, can_be_found: bool) -> bool:
        """Set the "can be found" flag. Returns False if the user is missing."""


class AbstractSavedSearchStore(ABC):
    """Persistence for saved searches, their counters and finder preferences."""

    @abstractmethod
    def create(self, saved_search: "SavedSearch") -> "SavedSearch":
        """Persist a new search and return it with id, created_at and version 1."""

    @abstractmethod
    def get(self, search_id: str) -> Optional["SavedSearch"]:
        """Fetch a saved search by id."""

    @abstractmethod
    def list_for_searcher(self, searcher_id: str) -> list["SavedSearch"]:
        """All saved searches of one searcher, newest first."""

    @abstractmethod
    def update(
        self, search_id: str, updates: dict[str, Any], expected_version: int
    ) -> "SavedSearch":
        """Apply updates if the stored version still equals expected_version.

        Bumps the version on success. Raises ConcurrentUpdateError on a
        version mismatch and SavedSearchNotFoundError for unknown ids.
        """

    @abstractmethod
    def get_preferences(self, searcher_id: str) -> Optional["FinderPreferences"]:
        """Fetch a searcher's finder preferences, or None when never set."""

    @abstractmethod
    def upsert_preferences(self, preferences: "FinderPreferences") -> "FinderPreferences":
        """Create or replace the preferences keyed by searcher_id.

        A replacement keeps the created_at of the stored record.
        """


class AbstractNotificationDispatcher(ABC):
    """Delivery of in-app notifications."""

    @abstractmethod
    def dispatch(self, recipient_id: str, kind: str, payload: dict[str, Any]) -> bool:
        """Deliver one notification. Returns False or raises on failure."""
