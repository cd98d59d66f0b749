"""Saved search graph: persist, match, update counters, notify top matches."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from langgraph.graph import StateGraph

from player_finder.config import config
from player_finder.graphs.base_graph import BaseGraph
from player_finder.graphs.matching import find_matches
from player_finder.interfaces import (
    AbstractNotificationDispatcher,
    AbstractSavedSearchStore,
    AbstractUserDirectory,
)
from player_finder.models import MatchResult, SaveAndMatchResult, SavedSearch
from player_finder.state import SavedSearchState
from player_finder.tools.notification_tools import notify_top_matches
from player_finder.tools.profile_tools import load_searcher
from player_finder.tools.saved_search_tools import get_saved_search, update_with_retry
from player_finder.tools.scoring_tools import get_scoring_strategy
from player_finder.utils.dates import utc_now
from player_finder.utils.errors import InvalidInputError, SavedSearchStoreError


def _with_state(state: SavedSearchState, **updates) -> SavedSearchState:
    """Return a new state dict with updates applied."""

    return {**state, **updates}


def _counter_updates(matches: list[MatchResult], now: datetime):
    def build(_current: SavedSearch) -> dict[str, Any]:
        return {"total_candidates_found": len(matches), "last_search_at": now}

    return build


class SavedSearchGraph(BaseGraph):
    """Standing search flow.

    Persistence failures abort before any matching. Matching failures
    propagate. Notification failures are isolated per recipient and only
    show up in the returned outcomes.
    """

    def __init__(
        self,
        directory: AbstractUserDirectory,
        store: AbstractSavedSearchStore,
        dispatcher: AbstractNotificationDispatcher,
        timeout: int = 30,
    ):
        super().__init__(timeout=timeout)
        self.directory = directory
        self.store = store
        self.dispatcher = dispatcher

    def build_graph(self) -> StateGraph:
        graph = StateGraph(SavedSearchState)

        graph.add_node("persist_search", self.node_persist_search)
        graph.add_node("load_searcher", self.node_load_searcher)
        graph.add_node("run_matching", self.node_run_matching)
        graph.add_node("update_counters", self.node_update_counters)
        graph.add_node("notify_matches", self.node_notify_matches)
        graph.add_node("finalize_response", self.node_finalize_response)

        graph.set_entry_point("persist_search")
        graph.add_edge("persist_search", "load_searcher")
        graph.add_edge("load_searcher", "run_matching")
        graph.add_edge("run_matching", "update_counters")
        graph.add_edge("update_counters", "notify_matches")
        graph.add_edge("notify_matches", "finalize_response")
        graph.set_finish_point("finalize_response")

        return graph

    def node_persist_search(self, state: SavedSearchState) -> SavedSearchState:
        """Store the search before anything else happens."""

        self._log_node_execution("persist_search", state)
        request = state.get("request")
        if request is None:
            raise InvalidInputError("A saved search request is required")

        try:
            saved = self.store.create(request)
        except SavedSearchStoreError as exc:
            self._log_node_error("persist_search", exc)
            raise
        except Exception as exc:
            self._log_node_error("persist_search", exc)
            raise SavedSearchStoreError(str(exc)) from exc

        self.logger.info("Saved search %s created for %s", saved.id, saved.searcher_id)
        return _with_state(state, saved_search=saved, now=state.get("now") or utc_now())

    def node_load_searcher(self, state: SavedSearchState) -> SavedSearchState:
        """Resolve the searcher and apply the search's own location, if any."""

        self._log_node_execution("load_searcher", state)
        saved = state["saved_search"]
        searcher = load_searcher(saved.searcher_id, self.directory).with_location(
            saved.search_latitude, saved.search_longitude
        )
        return _with_state(state, searcher=searcher)

    def node_run_matching(self, state: SavedSearchState) -> SavedSearchState:
        """Run the matching graph with the stored criteria."""

        self._log_node_execution("run_matching", state)
        saved = state["saved_search"]
        matches = find_matches(
            state["searcher"],
            saved.criteria,
            directory=self.directory,
            strategy=get_scoring_strategy(saved.mode),
            now=state["now"],
        )
        return _with_state(state, matches=matches)

    def node_update_counters(self, state: SavedSearchState) -> SavedSearchState:
        """Record how many candidates were found and when."""

        self._log_node_execution("update_counters", state)
        updated = update_with_retry(
            self.store,
            state["saved_search"],
            _counter_updates(state.get("matches", []), state["now"]),
        )
        return _with_state(state, saved_search=updated)

    def node_notify_matches(self, state: SavedSearchState) -> SavedSearchState:
        """Notify the top matches and the searcher, best effort."""

        self._log_node_execution("notify_matches", state)
        saved = state["saved_search"]
        if not saved.auto_notify or config.NOTIFY_TOP_N <= 0:
            return _with_state(state, notifications=[])

        outcomes = notify_top_matches(
            state["searcher"],
            state.get("matches", []),
            self.dispatcher,
            match_type=saved.criteria.match_type,
            top_n=config.NOTIFY_TOP_N,
            search_id=saved.id,
            mode=saved.mode,
        )
        return _with_state(state, notifications=outcomes)

    def node_finalize_response(self, state: SavedSearchState) -> SavedSearchState:
        """Summarize the run."""

        notifications = state.get("notifications", [])
        metadata = {
            "success": True,
            "search_id": state["saved_search"].id,
            "match_count": len(state.get("matches", [])),
            "notified_count": sum(1 for n in notifications if n.notified),
            "notification_failures": sum(1 for n in notifications if not n.notified),
        }
        return _with_state(state, response_metadata=metadata)


def create_saved_search_graph(
    directory: AbstractUserDirectory,
    store: AbstractSavedSearchStore,
    dispatcher: AbstractNotificationDispatcher,
):
    """Build and compile the saved search graph for server usage."""

    graph_builder = SavedSearchGraph(
        directory=directory,
        store=store,
        dispatcher=dispatcher,
        timeout=config.GRAPH_TIMEOUT,
    )
    return graph_builder.compile()


def save_and_match(
    request: SavedSearch,
    *,
    directory: AbstractUserDirectory,
    store: AbstractSavedSearchStore,
    dispatcher: AbstractNotificationDispatcher,
    now: Optional[datetime] = None,
) -> SaveAndMatchResult:
    """Persist a standing search, match it immediately and notify top matches.

    Raises:
        SavedSearchStoreError: the search could not be stored; nothing else ran.
        UserNotFoundError: the searcher does not exist.
        InvalidInputError: the searcher has no usable location.
        DirectoryUnavailableError: the candidate query failed.
    """

    graph = create_saved_search_graph(directory, store, dispatcher)
    result = graph.invoke({"request": request, "now": now or utc_now()})
    return SaveAndMatchResult(
        saved_search=result["saved_search"],
        matches=result.get("matches", []),
        notifications=result.get("notifications", []),
    )


def rerun_saved_search(
    search_id: str,
    *,
    directory: AbstractUserDirectory,
    store: AbstractSavedSearchStore,
    now: Optional[datetime] = None,
) -> SaveAndMatchResult:
    """Re-run a stored search and refresh its counters, without notifying."""

    saved = get_saved_search(search_id, store)
    if not saved.is_active:
        raise InvalidInputError(f"Saved search {search_id} is inactive")

    now = now or utc_now()
    searcher = load_searcher(saved.searcher_id, directory).with_location(
        saved.search_latitude, saved.search_longitude
    )
    matches = find_matches(
        searcher,
        saved.criteria,
        directory=directory,
        strategy=get_scoring_strategy(saved.mode),
        now=now,
    )
    updated = update_with_retry(store, saved, _counter_updates(matches, now))
    return SaveAndMatchResult(saved_search=updated, matches=matches)
