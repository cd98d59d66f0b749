"""
Unit tests for search criteria validation.

Criteria errors surface as InvalidInputError through parse_criteria.
"""

import pytest
from pydantic import ValidationError

from player_finder.models import (
    CoachSearchCriteria,
    FinderPreferences,
    MatchRequest,
    SavedSearch,
    SearchCriteria,
    parse_criteria,
)
from player_finder.utils.errors import InvalidInputError


class TestParseCriteria:
    def test_defaults(self):
        criteria = parse_criteria({})
        assert criteria.radius_km == 50
        assert criteria.preferred_gender == "any"
        assert criteria.preferred_language == "English"

    @pytest.mark.parametrize("radius", [0, 501])
    def test_radius_bounds(self, radius):
        with pytest.raises(InvalidInputError):
            parse_criteria({"radius_km": radius})

    def test_radius_limits_are_inclusive(self):
        assert parse_criteria({"radius_km": 1}).radius_km == 1
        assert parse_criteria({"radius_km": 500}).radius_km == 500

    def test_skill_min_above_max(self):
        with pytest.raises(InvalidInputError):
            parse_criteria({"skill_level_min": "4.5", "skill_level_max": "3.0"})

    def test_exact_and_range_together(self):
        with pytest.raises(InvalidInputError):
            parse_criteria({"skill_level_exact": "3.5", "skill_level_min": "3.0"})

    @pytest.mark.parametrize("level", ["6.0", "expert", 2.0])
    def test_off_scale_skill_level(self, level):
        with pytest.raises(InvalidInputError):
            parse_criteria({"skill_level_exact": level})

    def test_age_bounds(self):
        with pytest.raises(InvalidInputError):
            parse_criteria({"age_min": 40, "age_max": 30})
        with pytest.raises(InvalidInputError):
            parse_criteria({"age_min": 12})

    def test_unknown_field_rejected(self):
        with pytest.raises(InvalidInputError):
            parse_criteria({"radiusKm": 10})

    def test_coach_mode_builds_coach_criteria(self):
        criteria = parse_criteria({"budget_max": 60, "lesson_type": "group"}, mode="coach")
        assert isinstance(criteria, CoachSearchCriteria)
        assert criteria.budget_max == 60

    def test_budget_ordering(self):
        with pytest.raises(InvalidInputError):
            parse_criteria({"budget_min": 80, "budget_max": 50}, mode="coach")

    def test_unknown_mode(self):
        with pytest.raises(InvalidInputError):
            parse_criteria({}, mode="umpire")

    def test_peer_criteria_upgrade_to_coach(self):
        criteria = parse_criteria(SearchCriteria(radius_km=20), mode="coach")
        assert isinstance(criteria, CoachSearchCriteria)
        assert criteria.radius_km == 20


class TestSavedSearchModel:
    def test_criteria_follow_mode(self):
        saved = SavedSearch(searcher_id="s1", mode="coach", criteria={"budget_max": 40})
        assert isinstance(saved.criteria, CoachSearchCriteria)

    def test_document_excludes_id(self):
        saved = SavedSearch(id="abc", searcher_id="s1")
        document = saved.to_document()
        assert "id" not in document
        assert document["criteria"]["radius_km"] == 50


class TestFinderPreferencesModel:
    def test_defaults(self):
        preferences = FinderPreferences(searcher_id="s1")
        assert preferences.criteria.radius_km == 50
        assert preferences.auto_notify is True
        assert preferences.availability_days == []

    def test_days_are_case_insensitive(self):
        preferences = FinderPreferences(searcher_id="s1", availability_days=["Monday", "sunday"])
        assert preferences.availability_days == ["monday", "sunday"]

    def test_unknown_day_rejected(self):
        with pytest.raises(ValidationError):
            FinderPreferences(searcher_id="s1", availability_days=["someday"])

    @pytest.mark.parametrize("value", ["7pm", "24:00", "9:30"])
    def test_time_must_be_hh_mm(self, value):
        with pytest.raises(ValidationError):
            FinderPreferences(searcher_id="s1", availability_time_start=value)

    def test_window_must_be_ordered(self):
        with pytest.raises(ValidationError):
            FinderPreferences(
                searcher_id="s1",
                availability_time_start="18:00",
                availability_time_end="09:00",
            )


class TestMatchRequestModel:
    def test_defaults(self):
        request = MatchRequest()
        assert request.match_type == "any"
        assert request.message is None

    def test_message_length_is_bounded(self):
        with pytest.raises(ValidationError):
            MatchRequest(message="x" * 501)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            MatchRequest(court="3")
