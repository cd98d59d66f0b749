"""Matching graph: eligibility filtering, scoring, cutoffs and ranking."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from langgraph.graph import StateGraph

from player_finder.config import config
from player_finder.graphs.base_graph import BaseGraph
from player_finder.interfaces import AbstractSavedSearchStore, AbstractUserDirectory
from player_finder.models import MatchResult, SearchCriteria, SearcherProfile
from player_finder.state import MatchingState
from player_finder.tools.filter_tools import filter_candidates
from player_finder.tools.profile_tools import load_searcher
from player_finder.tools.scoring_tools import (
    PeerScoring,
    ScoringStrategy,
    apply_cutoffs,
    rank_matches,
)
from player_finder.utils.dates import utc_now
from player_finder.utils.errors import DirectoryUnavailableError, InvalidInputError
from player_finder.utils.logging_config import logger

NEARBY_PLAYERS_LIMIT = 10


def _with_state(state: MatchingState, **updates) -> MatchingState:
    """Return a new state dict with updates applied."""

    return {**state, **updates}


class MatchingGraph(BaseGraph):
    """Linear search pipeline over one directory snapshot.

    Unlike a best-effort recommendation graph, failures here are not folded
    into the state: validation problems raise InvalidInputError and directory
    problems raise DirectoryUnavailableError, so callers can tell them apart
    from an empty result.
    """

    def __init__(
        self,
        directory: AbstractUserDirectory,
        strategy: Optional[ScoringStrategy] = None,
        timeout: int = 30,
    ):
        super().__init__(timeout=timeout)
        self.directory = directory
        self.strategy = strategy or PeerScoring()

    def build_graph(self) -> StateGraph:
        graph = StateGraph(MatchingState)

        graph.add_node("validate_search", self.node_validate_search)
        graph.add_node("query_candidates", self.node_query_candidates)
        graph.add_node("filter_candidates", self.node_filter_candidates)
        graph.add_node("score_matches", self.node_score_matches)
        graph.add_node("apply_cutoffs", self.node_apply_cutoffs)
        graph.add_node("rank_matches", self.node_rank_matches)
        graph.add_node("finalize_response", self.node_finalize_response)

        graph.set_entry_point("validate_search")
        graph.add_edge("validate_search", "query_candidates")
        graph.add_edge("query_candidates", "filter_candidates")
        graph.add_edge("filter_candidates", "score_matches")
        graph.add_edge("score_matches", "apply_cutoffs")
        graph.add_edge("apply_cutoffs", "rank_matches")
        graph.add_edge("rank_matches", "finalize_response")
        graph.set_finish_point("finalize_response")

        return graph

    def node_validate_search(self, state: MatchingState) -> MatchingState:
        """Reject searches that cannot produce distances."""

        self._log_node_execution("validate_search", state)
        searcher = state.get("searcher")
        if searcher is None:
            raise InvalidInputError("A searcher profile is required")
        if not searcher.has_location:
            raise InvalidInputError(
                f"Searcher {searcher.id} has no location; update the profile location to search"
            )
        if not isinstance(state.get("criteria"), SearchCriteria):
            raise InvalidInputError("Search criteria are required")

        return _with_state(state, now=state.get("now") or utc_now())

    def node_query_candidates(self, state: MatchingState) -> MatchingState:
        """Fetch the candidate snapshot for this strategy's user types."""

        self._log_node_execution("query_candidates", state)
        try:
            candidates = self.directory.query_candidates(
                self.strategy.user_types, limit=config.MAX_CANDIDATES
            )
        except DirectoryUnavailableError as exc:
            self._log_node_error("query_candidates", exc)
            raise
        except Exception as exc:
            self._log_node_error("query_candidates", exc)
            raise DirectoryUnavailableError(str(exc)) from exc

        return _with_state(state, candidates=list(candidates))

    def node_filter_candidates(self, state: MatchingState) -> MatchingState:
        """Apply eligibility, skill, gender, age and bounding box rules."""

        self._log_node_execution("filter_candidates", state)
        eligible = filter_candidates(
            state.get("candidates", []),
            state["searcher"],
            state["criteria"],
            state["now"],
        )
        return _with_state(state, eligible_candidates=eligible)

    def node_score_matches(self, state: MatchingState) -> MatchingState:
        """Attach distance and compatibility score to each eligible candidate."""

        self._log_node_execution("score_matches", state)
        scored = [
            self.strategy.score(state["searcher"], state["criteria"], candidate, state["now"])
            for candidate in state.get("eligible_candidates", [])
        ]
        return _with_state(state, scored_candidates=scored)

    def node_apply_cutoffs(self, state: MatchingState) -> MatchingState:
        """Drop out-of-radius candidates and, for coaches, low scores."""

        self._log_node_execution("apply_cutoffs", state)
        kept = apply_cutoffs(
            state.get("scored_candidates", []),
            radius_km=state["criteria"].radius_km,
            min_score=self.strategy.min_score,
        )
        return _with_state(state, within_cutoffs=kept)

    def node_rank_matches(self, state: MatchingState) -> MatchingState:
        """Sort by distance with score tiebreaks inside proximity bands."""

        self._log_node_execution("rank_matches", state)
        ranked = rank_matches(state.get("within_cutoffs", []))
        return _with_state(state, matches=ranked)

    def node_finalize_response(self, state: MatchingState) -> MatchingState:
        """Record counts at each stage for logging and API metadata."""

        metadata = {
            "success": True,
            "mode": self.strategy.mode,
            "total_candidates": len(state.get("candidates", [])),
            "eligible_count": len(state.get("eligible_candidates", [])),
            "within_radius_count": len(state.get("within_cutoffs", [])),
            "match_count": len(state.get("matches", [])),
            "radius_km": state["criteria"].radius_km,
        }
        self.logger.info(
            "Search for %s (%s): %s candidates, %s eligible, %s matches",
            state["searcher"].id,
            self.strategy.mode,
            metadata["total_candidates"],
            metadata["eligible_count"],
            metadata["match_count"],
        )
        return _with_state(state, response_metadata=metadata)


def create_matching_graph(
    directory: AbstractUserDirectory, strategy: Optional[ScoringStrategy] = None
):
    """Build and compile the matching graph for server usage."""

    graph_builder = MatchingGraph(
        directory=directory, strategy=strategy, timeout=config.GRAPH_TIMEOUT
    )
    return graph_builder.compile()


def run_matching(
    searcher: SearcherProfile,
    criteria: SearchCriteria,
    *,
    directory: AbstractUserDirectory,
    strategy: Optional[ScoringStrategy] = None,
    now: Optional[datetime] = None,
) -> MatchingState:
    """Run the matching graph and return its final state."""

    graph = create_matching_graph(directory, strategy)
    return graph.invoke(
        {"searcher": searcher, "criteria": criteria, "now": now or utc_now()}
    )


def find_matches(
    searcher: SearcherProfile,
    criteria: SearchCriteria,
    *,
    directory: AbstractUserDirectory,
    strategy: Optional[ScoringStrategy] = None,
    now: Optional[datetime] = None,
) -> list[MatchResult]:
    """Ranked matches for a searcher; empty when nobody qualifies.

    Raises:
        InvalidInputError: searcher has no location or criteria are missing.
        DirectoryUnavailableError: the candidate query failed.
    """

    result = run_matching(
        searcher, criteria, directory=directory, strategy=strategy, now=now
    )
    return result.get("matches", [])


def find_nearby_players(
    user_id: str,
    *,
    directory: AbstractUserDirectory,
    store: AbstractSavedSearchStore,
    limit: int = NEARBY_PLAYERS_LIMIT,
    now: Optional[datetime] = None,
) -> list[MatchResult]:
    """Closest players to a user under their stored finder preferences.

    Coaches are left out and the list is ordered purely by distance. Users
    without stored preferences get the default criteria.

    Raises:
        UserNotFoundError: the user is not in the directory.
        InvalidInputError: the user has no location or limit is not positive.
    """

    if limit < 1:
        raise InvalidInputError("limit must be at least 1")

    searcher = load_searcher(user_id, directory)
    preferences = store.get_preferences(user_id)
    criteria = preferences.criteria if preferences else SearchCriteria()

    matches = find_matches(
        searcher,
        criteria,
        directory=directory,
        strategy=PeerScoring(user_types=("player",)),
        now=now,
    )
    nearest = sorted(matches, key=lambda m: (m.distance_km, m.candidate.id))[:limit]
    for position, match in enumerate(nearest, start=1):
        match.rank = position

    logger.info("Nearby players found: %s for user %s", len(nearest), user_id)
    return nearest
