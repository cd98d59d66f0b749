"""Saved search bookkeeping: counters, activation and statistics."""

from __future__ import annotations

from typing import Any, Callable, Optional

from player_finder.config import config
from player_finder.interfaces import AbstractSavedSearchStore
from player_finder.models import SavedSearch, SearchStats
from player_finder.utils.errors import ConcurrentUpdateError, SavedSearchNotFoundError
from player_finder.utils.logging_config import logger

RECENT_SEARCHES_LIMIT = 5


def get_saved_search(search_id: str, store: AbstractSavedSearchStore) -> SavedSearch:
    saved = store.get(search_id)
    if saved is None:
        raise SavedSearchNotFoundError(f"Saved search not found: {search_id}")
    return saved


def update_with_retry(
    store: AbstractSavedSearchStore,
    saved: SavedSearch,
    build_updates: Callable[[SavedSearch], dict[str, Any]],
    retries: Optional[int] = None,
) -> SavedSearch:
    """Read-modify-write a saved search under a version check.

    ``build_updates`` receives the current record and returns the fields to
    write. On a version conflict the record is re-read and the updates are
    rebuilt from the fresh values, so concurrent increments are not lost.
    """

    attempts = retries or config.COUNTER_UPDATE_RETRIES
    current = saved
    for attempt in range(1, attempts + 1):
        try:
            return store.update(current.id, build_updates(current), current.version)
        except ConcurrentUpdateError:
            if attempt == attempts:
                raise
            logger.info(
                "Saved search %s changed concurrently (attempt %s/%s); retrying",
                current.id,
                attempt,
                attempts,
            )
            current = get_saved_search(current.id, store)

    raise ConcurrentUpdateError(f"Saved search {saved.id} could not be updated")


def toggle_saved_search(search_id: str, store: AbstractSavedSearchStore) -> SavedSearch:
    """Flip a saved search between active and inactive."""

    saved = get_saved_search(search_id, store)
    updated = update_with_retry(
        store, saved, lambda current: {"is_active": not current.is_active}
    )
    logger.info(
        "Saved search %s %s",
        search_id,
        "activated" if updated.is_active else "deactivated",
    )
    return updated


def record_contact(
    search_id: str, store: AbstractSavedSearchStore, *, successful: bool = False
) -> SavedSearch:
    """Count a contacted match, and a successful one when it led to a game or lesson."""

    saved = get_saved_search(search_id, store)

    def _increment(current: SavedSearch) -> dict[str, Any]:
        updates: dict[str, Any] = {"matches_contacted": current.matches_contacted + 1}
        if successful:
            updates["successful_matches"] = current.successful_matches + 1
        return updates

    return update_with_retry(store, saved, _increment)


def get_search_stats(searcher_id: str, store: AbstractSavedSearchStore) -> SearchStats:
    """Aggregate counters across all saved searches of a searcher."""

    searches = store.list_for_searcher(searcher_id)
    total = len(searches)
    successful = sum(s.successful_matches for s in searches)

    return SearchStats(
        total_searches=total,
        active_searches=sum(1 for s in searches if s.is_active),
        total_candidates_found=sum(s.total_candidates_found for s in searches),
        total_contacted=sum(s.matches_contacted for s in searches),
        total_successful=successful,
        success_rate=(successful / total) * 100 if total > 0 else 0.0,
        recent_searches=searches[:RECENT_SEARCHES_LIMIT],
    )
