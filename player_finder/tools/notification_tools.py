"""Match notification payloads, best-effort fan-out and direct match requests."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from player_finder.interfaces import AbstractNotificationDispatcher, AbstractUserDirectory
from player_finder.models import (
    MatchRequest,
    MatchResult,
    NotificationOutcome,
    SearcherProfile,
)
from player_finder.tools.profile_tools import load_searcher
from player_finder.utils.errors import (
    InvalidInputError,
    NotificationDispatchError,
    UserNotFoundError,
)
from player_finder.utils.logging_config import logger

NOTIFICATION_KINDS = {"player": "player_match", "coach": "coach_match"}
MATCH_REQUEST_KIND = "match_request"


def build_candidate_payload(
    searcher: SearcherProfile,
    match: MatchResult,
    match_type: str,
    search_id: Optional[str] = None,
    mode: str = "player",
) -> dict[str, Any]:
    """Message for the matched candidate about the searcher."""

    searcher_name = searcher.display_name or "A player"
    if mode == "coach":
        title = "New Coaching Request Nearby!"
        message = f"{searcher_name} is looking for a coach in your area and you match their preferences!"
    else:
        title = "New Player Match Found!"
        message = f"{searcher_name} is looking for players in your area. They match your preferences!"

    return {
        "title": title,
        "message": message,
        "other_party_id": searcher.id,
        "other_party_name": searcher.display_name,
        "match_score": match.match_score,
        "distance_km": match.distance_km,
        "match_type": match_type,
        "search_id": search_id,
    }


def build_searcher_payload(
    match: MatchResult,
    match_type: str,
    search_id: Optional[str] = None,
    mode: str = "player",
) -> dict[str, Any]:
    """Message for the searcher about one matched candidate."""

    found_name = match.candidate.display_name or "Someone"
    title = "Coach Found!" if mode == "coach" else "Player Found!"
    return {
        "title": title,
        "message": f"We found {found_name} who matches your search criteria.",
        "other_party_id": match.candidate.id,
        "other_party_name": match.candidate.display_name,
        "match_score": match.match_score,
        "distance_km": match.distance_km,
        "match_type": match_type,
        "search_id": search_id,
    }


def _try_dispatch(
    dispatcher: AbstractNotificationDispatcher,
    recipient_id: str,
    kind: str,
    payload: dict[str, Any],
) -> Optional[str]:
    """Send one notification; return an error string instead of raising."""

    try:
        delivered = dispatcher.dispatch(recipient_id, kind, payload)
    except Exception as exc:
        logger.warning("Notification to %s failed: %s", recipient_id, str(exc))
        return str(exc) or exc.__class__.__name__

    if not delivered:
        logger.warning("Notification to %s was not delivered", recipient_id)
        return f"Dispatch to {recipient_id} reported failure"
    return None


def notify_top_matches(
    searcher: SearcherProfile,
    matches: Sequence[MatchResult],
    dispatcher: AbstractNotificationDispatcher,
    *,
    match_type: str,
    top_n: int,
    search_id: Optional[str] = None,
    mode: str = "player",
) -> list[NotificationOutcome]:
    """Notify the top ``top_n`` matches and the searcher once per match.

    Every recipient is attempted independently: one failed dispatch never
    stops the others, it is only recorded on that match's outcome.
    """

    kind = NOTIFICATION_KINDS.get(mode, "player_match")
    outcomes: list[NotificationOutcome] = []

    for match in list(matches)[:top_n]:
        candidate_error = _try_dispatch(
            dispatcher,
            match.candidate.id,
            kind,
            build_candidate_payload(searcher, match, match_type, search_id, mode),
        )
        searcher_error = _try_dispatch(
            dispatcher,
            searcher.id,
            kind,
            build_searcher_payload(match, match_type, search_id, mode),
        )

        errors = [
            f"{side}: {error}"
            for side, error in (("candidate", candidate_error), ("searcher", searcher_error))
            if error
        ]
        outcomes.append(
            NotificationOutcome(
                candidate_id=match.candidate.id,
                notified=not errors,
                candidate_notified=candidate_error is None,
                searcher_notified=searcher_error is None,
                error="; ".join(errors) or None,
            )
        )

    sent = sum(1 for outcome in outcomes if outcome.notified)
    logger.info(
        "Match notifications for searcher %s: %s/%s delivered",
        searcher.id,
        sent,
        len(outcomes),
    )
    return outcomes


def send_match_request(
    sender_id: str,
    target_id: str,
    request: MatchRequest,
    *,
    directory: AbstractUserDirectory,
    dispatcher: AbstractNotificationDispatcher,
) -> dict[str, Any]:
    """Invite another player to a match by notifying them.

    Unlike match fan-out this is a single direct action, so a failed
    dispatch is an error for the caller.

    Raises:
        UserNotFoundError: the target is missing or not a player, or the
            sender is unknown.
        InvalidInputError: the sender targets themselves.
        NotificationDispatchError: the notification was not delivered.
    """

    target = directory.get_user(target_id)
    if target is None or target.user_type != "player":
        raise UserNotFoundError("Target player not found")
    if target_id == sender_id:
        raise InvalidInputError("Cannot send match request to yourself")

    sender = load_searcher(sender_id, directory)
    sender_name = sender.display_name or "A player"
    payload = {
        "title": "New Match Request",
        "message": request.message or f"{sender_name} would like to play a match with you.",
        "other_party_id": sender.id,
        "other_party_name": sender.display_name,
        "preferred_date": request.preferred_date.isoformat() if request.preferred_date else None,
        "preferred_time": request.preferred_time,
        "match_type": request.match_type,
    }

    error = _try_dispatch(dispatcher, target.id, MATCH_REQUEST_KIND, payload)
    if error:
        raise NotificationDispatchError(error)

    logger.info("Match request sent: %s to %s", sender_id, target_id)
    return {
        "target_user": {"id": target.id, "display_name": target.display_name},
        **request.model_dump(mode="json"),
    }
