"""Searcher lookup and the "can be found" visibility toggle."""

from __future__ import annotations

from player_finder.interfaces import AbstractUserDirectory
from player_finder.models import SearcherProfile
from player_finder.utils.errors import (
    DirectoryUnavailableError,
    InvalidInputError,
    UserNotFoundError,
)
from player_finder.utils.logging_config import logger


def load_searcher(user_id: str, directory: AbstractUserDirectory) -> SearcherProfile:
    """Resolve a searcher profile from the directory."""

    try:
        user = directory.get_user(user_id)
    except DirectoryUnavailableError:
        raise
    except Exception as exc:
        raise DirectoryUnavailableError(str(exc)) from exc

    if user is None:
        raise UserNotFoundError(f"User not found: {user_id}")
    return SearcherProfile.from_user(user)


def update_visibility(
    user_id: str, can_be_found: bool, directory: AbstractUserDirectory
) -> dict:
    """Set and confirm whether a user appears in other people's searches."""

    if not isinstance(can_be_found, bool):
        raise InvalidInputError("can_be_found must be a boolean value")

    if not directory.set_visibility(user_id, can_be_found):
        raise UserNotFoundError(f"User not found: {user_id}")

    logger.info("Player visibility updated for user %s: %s", user_id, can_be_found)
    return {"success": True, "can_be_found": can_be_found}
