"""Standing finder preferences: one record per player, merged on update."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from player_finder.interfaces import AbstractSavedSearchStore, AbstractUserDirectory
from player_finder.models import FinderPreferences, parse_criteria
from player_finder.tools.profile_tools import load_searcher
from player_finder.utils.dates import utc_now
from player_finder.utils.errors import InvalidInputError
from player_finder.utils.logging_config import logger

# Fields a caller may set; ids and timestamps are owned by the service.
EDITABLE_FIELDS = (
    "criteria",
    "preferred_locations",
    "availability_days",
    "availability_time_start",
    "availability_time_end",
    "auto_notify",
    "notes",
)


def get_finder_preferences(
    searcher_id: str, store: AbstractSavedSearchStore
) -> Optional[FinderPreferences]:
    return store.get_preferences(searcher_id)


def update_finder_preferences(
    searcher_id: str,
    data: Optional[dict[str, Any]],
    *,
    directory: AbstractUserDirectory,
    store: AbstractSavedSearchStore,
    now: Optional[datetime] = None,
) -> FinderPreferences:
    """Create or update a player's preferences.

    Only the fields present in ``data`` change; criteria keys are merged
    into the stored criteria the same way. The merged record is validated
    as a whole, so a change that breaks a range check is rejected.

    Raises:
        InvalidInputError: unknown fields or values that fail validation.
        UserNotFoundError: the searcher is not in the directory.
    """

    data = data or {}
    unknown = sorted(set(data) - set(EDITABLE_FIELDS))
    if unknown:
        raise InvalidInputError(f"Unknown preference fields: {', '.join(unknown)}")

    load_searcher(searcher_id, directory)
    now = now or utc_now()

    existing = store.get_preferences(searcher_id)
    merged = existing.model_dump() if existing else {"created_at": now}
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        if field == "criteria":
            if not isinstance(data["criteria"], (dict, type(None))):
                raise InvalidInputError("criteria must be an object")
            base = merged.get("criteria") or {}
            merged["criteria"] = parse_criteria({**base, **(data["criteria"] or {})})
        else:
            merged[field] = data[field]

    try:
        preferences = FinderPreferences.model_validate(
            {**merged, "searcher_id": searcher_id, "updated_at": now}
        )
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid finder preferences: {exc}") from exc

    stored = store.upsert_preferences(preferences)
    logger.info("Player finder preferences updated: %s", searcher_id)
    return stored
