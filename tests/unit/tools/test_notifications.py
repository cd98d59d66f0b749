"""
Unit tests for match notification fan-out.

Each top match gets one notification and the searcher gets one per match.
A failing recipient is recorded on its outcome and never stops the rest.
Direct match requests are single dispatches whose failure is an error.
"""

from datetime import date

import pytest

from player_finder.models import MatchRequest, MatchResult
from player_finder.tools.notification_tools import (
    build_candidate_payload,
    build_searcher_payload,
    notify_top_matches,
    send_match_request,
)
from player_finder.utils.errors import (
    InvalidInputError,
    NotificationDispatchError,
    UserNotFoundError,
)


@pytest.fixture
def matches(make_candidate):
    return [
        MatchResult(candidate=make_candidate(cid), distance_km=d, match_score=s, rank=i)
        for i, (cid, d, s) in enumerate(
            [("first", 1.2, 97), ("second", 2.5, 90), ("third", 3.1, 88), ("fourth", 4.0, 80)],
            start=1,
        )
    ]


class TestPayloads:
    def test_candidate_payload_describes_searcher(self, searcher, matches):
        payload = build_candidate_payload(searcher, matches[0], "singles", "search-1")
        assert payload["title"] == "New Player Match Found!"
        assert payload["other_party_id"] == searcher.id
        assert payload["match_score"] == 97
        assert payload["distance_km"] == 1.2
        assert payload["match_type"] == "singles"
        assert payload["search_id"] == "search-1"

    def test_searcher_payload_describes_candidate(self, matches):
        payload = build_searcher_payload(matches[1], "doubles", mode="coach")
        assert payload["title"] == "Coach Found!"
        assert payload["other_party_id"] == "second"
        assert "Second" in payload["message"]


class TestNotifyTopMatches:
    def test_only_top_n_are_notified(self, searcher, matches, dispatcher):
        outcomes = notify_top_matches(
            searcher, matches, dispatcher, match_type="any", top_n=3
        )
        assert [o.candidate_id for o in outcomes] == ["first", "second", "third"]
        assert all(o.notified for o in outcomes)
        # one message to each candidate plus one to the searcher per match
        assert dispatcher.recipients() == [
            "first", "searcher", "second", "searcher", "third", "searcher",
        ]
        assert {kind for _, kind, _ in dispatcher.sent} == {"player_match"}

    def test_failure_is_isolated(self, searcher, matches, make_dispatcher):
        dispatcher = make_dispatcher(raise_for={"second"})
        outcomes = notify_top_matches(
            searcher, matches, dispatcher, match_type="any", top_n=3
        )
        by_id = {o.candidate_id: o for o in outcomes}

        assert by_id["first"].notified and by_id["third"].notified
        assert not by_id["second"].notified
        assert not by_id["second"].candidate_notified
        assert by_id["second"].searcher_notified
        assert "push failed for second" in by_id["second"].error
        assert "third" in dispatcher.recipients()

    def test_refused_delivery_is_a_failure(self, searcher, matches, make_dispatcher):
        dispatcher = make_dispatcher(refuse_for={"searcher"})
        outcomes = notify_top_matches(
            searcher, matches[:1], dispatcher, match_type="any", top_n=3
        )
        assert outcomes[0].candidate_notified
        assert not outcomes[0].searcher_notified
        assert not outcomes[0].notified

    def test_coach_mode_kind(self, searcher, matches, dispatcher):
        notify_top_matches(
            searcher, matches[:1], dispatcher, match_type="any", top_n=1, mode="coach"
        )
        assert {kind for _, kind, _ in dispatcher.sent} == {"coach_match"}

    def test_no_matches_no_notifications(self, searcher, dispatcher):
        assert notify_top_matches(searcher, [], dispatcher, match_type="any", top_n=3) == []
        assert dispatcher.sent == []


class TestSendMatchRequest:
    @pytest.fixture
    def directory(self, make_directory, searcher_record, make_candidate, make_coach):
        return make_directory([searcher_record, make_candidate("alex"), make_coach("coach-1")])

    def test_notifies_target(self, directory, dispatcher):
        request = MatchRequest(
            message="Game on Saturday?",
            preferred_date=date(2026, 6, 6),
            preferred_time="09:30",
            match_type="singles",
        )
        result = send_match_request(
            "searcher", "alex", request, directory=directory, dispatcher=dispatcher
        )

        recipient, kind, payload = dispatcher.sent[0]
        assert (recipient, kind) == ("alex", "match_request")
        assert payload["title"] == "New Match Request"
        assert payload["message"] == "Game on Saturday?"
        assert payload["other_party_id"] == "searcher"
        assert payload["preferred_date"] == "2026-06-06"
        assert result["target_user"] == {"id": "alex", "display_name": "Alex"}
        assert result["match_type"] == "singles"

    def test_default_message_names_sender(self, directory, dispatcher):
        send_match_request(
            "searcher", "alex", MatchRequest(), directory=directory, dispatcher=dispatcher
        )
        assert "Sam" in dispatcher.sent[0][2]["message"]

    @pytest.mark.parametrize("target", ["ghost", "coach-1"])
    def test_target_must_be_a_player(self, directory, dispatcher, target):
        with pytest.raises(UserNotFoundError, match="Target player not found"):
            send_match_request(
                "searcher", target, MatchRequest(), directory=directory, dispatcher=dispatcher
            )
        assert dispatcher.sent == []

    def test_cannot_invite_yourself(self, directory, dispatcher):
        with pytest.raises(InvalidInputError):
            send_match_request(
                "searcher", "searcher", MatchRequest(), directory=directory, dispatcher=dispatcher
            )

    def test_unknown_sender(self, directory, dispatcher):
        with pytest.raises(UserNotFoundError):
            send_match_request(
                "nobody", "alex", MatchRequest(), directory=directory, dispatcher=dispatcher
            )

    @pytest.mark.parametrize("failure", ["raise_for", "refuse_for"])
    def test_failed_delivery_is_an_error(self, directory, make_dispatcher, failure):
        dispatcher = make_dispatcher(**{failure: {"alex"}})
        with pytest.raises(NotificationDispatchError):
            send_match_request(
                "searcher", "alex", MatchRequest(), directory=directory, dispatcher=dispatcher
            )
