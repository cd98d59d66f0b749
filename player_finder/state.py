"""Shared LangGraph state definitions.

All graph states are TypedDicts so state is explicit and consistent across
graph nodes. Values are domain models; nothing here is persisted by the
graph runtime.
"""

from __future__ import annotations

from datetime import datetime
from typing import TypedDict

from player_finder.models import (
    CandidateProfile,
    MatchResult,
    NotificationOutcome,
    SavedSearch,
    SearchCriteria,
    SearcherProfile,
)
from player_finder.tools.scoring_tools import ScoredCandidate

JsonDict = dict[str, object]


class MatchingState(TypedDict, total=False):
    """State for the matching graph.

    Fields are optional at runtime because nodes populate them progressively.
    """

    # The user issuing the search.
    searcher: SearcherProfile
    # Validated filters and preferences.
    criteria: SearchCriteria
    # Reference time for age and recency calculations.
    now: datetime
    # Snapshot fetched once from the directory.
    candidates: list[CandidateProfile]
    # Candidates passing every eligibility rule.
    eligible_candidates: list[CandidateProfile]
    # Eligible candidates with distance and score.
    scored_candidates: list[ScoredCandidate]
    # Scored candidates within radius and above the score floor.
    within_cutoffs: list[ScoredCandidate]
    # Final ranked results.
    matches: list[MatchResult]
    # Response metadata for observability.
    response_metadata: JsonDict


class SavedSearchState(TypedDict, total=False):
    """State for the saved search graph."""

    # Search as submitted (no id yet).
    request: SavedSearch
    # Search as stored, refreshed after counter updates.
    saved_search: SavedSearch
    # Searcher with the saved search location applied.
    searcher: SearcherProfile
    # Reference time for the whole run.
    now: datetime
    # Ranked results from the matching graph.
    matches: list[MatchResult]
    # One entry per notified top match.
    notifications: list[NotificationOutcome]
    # Response metadata for observability.
    response_metadata: JsonDict
