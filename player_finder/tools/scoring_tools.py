"""Deterministic scoring and ranking for player and coach matching."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from player_finder.config import config
from player_finder.models import (
    EXPERIENCE_YEARS,
    CandidateProfile,
    CoachSearchCriteria,
    MatchResult,
    SearchCriteria,
    SearcherProfile,
    skill_index,
)
from player_finder.utils.dates import days_since
from player_finder.utils.errors import InvalidInputError
from player_finder.utils.geo import haversine_km
from player_finder.utils.logging_config import logger

PEER_BASE_SCORE = 100
SKILL_STEP_PENALTY = 10
DISTANCE_PENALTY_PER_KM = 0.5
INACTIVITY_PENALTY_PER_DAY = 2
MAX_INACTIVITY_PENALTY = 30

EXPERIENCE_MATCH_POINTS = 30
ANY_EXPERIENCE_POINTS = 20
SKILL_FOCUS_POINTS = 10
WITHIN_BUDGET_POINTS = 25
NEAR_BUDGET_POINTS = 15
NEAR_BUDGET_FACTOR = 1.2
LANGUAGE_POINTS = 15
AVAILABILITY_POINTS = 20


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive scores (Python's round() is banker's)."""

    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate annotated with its unrounded distance and integer score."""

    candidate: CandidateProfile
    distance_km: float
    match_score: int


class ScoringStrategy(ABC):
    """One way of turning (searcher, criteria, candidate) into a score."""

    mode: str = ""
    user_types: tuple[str, ...] = ()
    min_score: Optional[int] = None

    def score(
        self,
        searcher: SearcherProfile,
        criteria: SearchCriteria,
        candidate: CandidateProfile,
        now: datetime,
    ) -> ScoredCandidate:
        distance = haversine_km(
            searcher.latitude, searcher.longitude, candidate.latitude, candidate.longitude
        )
        value = self.compatibility(searcher, criteria, candidate, distance, now)
        return ScoredCandidate(
            candidate=candidate,
            distance_km=distance,
            match_score=max(0, round_half_up(value)),
        )

    @abstractmethod
    def compatibility(
        self,
        searcher: SearcherProfile,
        criteria: SearchCriteria,
        candidate: CandidateProfile,
        distance_km: float,
        now: datetime,
    ) -> float:
        """Raw score before flooring at 0 and rounding."""


class PeerScoring(ScoringStrategy):
    """Player-to-player scoring: start from a perfect 100 and subtract."""

    mode = "player"
    user_types = ("player", "coach")
    min_score = None

    def __init__(self, user_types: Optional[Sequence[str]] = None):
        if user_types is not None:
            self.user_types = tuple(user_types)

    def compatibility(self, searcher, criteria, candidate, distance_km, now) -> float:
        score = float(PEER_BASE_SCORE)

        if criteria.skill_level_exact and candidate.skill_level:
            gap = abs(
                skill_index(criteria.skill_level_exact) - skill_index(candidate.skill_level)
            )
            score -= gap * SKILL_STEP_PENALTY

        score -= distance_km * DISTANCE_PENALTY_PER_KM

        # No timestamp means no data, not maximum inactivity.
        if candidate.last_active is not None:
            idle_days = days_since(candidate.last_active, now)
            score -= min(idle_days * INACTIVITY_PENALTY_PER_DAY, MAX_INACTIVITY_PENALTY)

        return score


class CoachScoring(ScoringStrategy):
    """Coach scoring: accumulate points per satisfied preference."""

    mode = "coach"
    user_types = ("coach",)

    def __init__(self, min_score: Optional[int] = None):
        self.min_score = config.COACH_MIN_SCORE if min_score is None else min_score

    def compatibility(self, searcher, criteria, candidate, distance_km, now) -> float:
        if not isinstance(criteria, CoachSearchCriteria):
            criteria = CoachSearchCriteria.model_validate(criteria.model_dump())

        score = 0

        if criteria.experience_level_required == "any":
            score += ANY_EXPERIENCE_POINTS
        else:
            required = EXPERIENCE_YEARS[criteria.experience_level_required]
            if (candidate.coaching_experience_years or 0) >= required:
                score += EXPERIENCE_MATCH_POINTS

        specializations = set(candidate.specializations)
        overlap = [s for s in criteria.preferred_skill_focus if s in specializations]
        score += len(overlap) * SKILL_FOCUS_POINTS

        if criteria.budget_max is not None and candidate.hourly_rate is not None:
            if candidate.hourly_rate <= criteria.budget_max:
                score += WITHIN_BUDGET_POINTS
            elif candidate.hourly_rate <= criteria.budget_max * NEAR_BUDGET_FACTOR:
                score += NEAR_BUDGET_POINTS

        if candidate.languages and criteria.preferred_language in candidate.languages:
            score += LANGUAGE_POINTS

        if candidate.available_for_lessons:
            score += AVAILABILITY_POINTS

        return score


def get_scoring_strategy(mode: str) -> ScoringStrategy:
    """Pick the scoring variant for a candidate pool."""

    if mode == "player":
        return PeerScoring()
    if mode == "coach":
        return CoachScoring()
    raise InvalidInputError(f"Unknown search mode: {mode}. Valid modes: player, coach")


def apply_cutoffs(
    scored: Sequence[ScoredCandidate], radius_km: float, min_score: Optional[int]
) -> list[ScoredCandidate]:
    """Drop candidates beyond the radius or under the strategy's score floor."""

    kept = [
        item
        for item in scored
        if item.distance_km <= radius_km
        and (min_score is None or item.match_score >= min_score)
    ]
    logger.debug(
        "apply_cutoffs scored=%s kept=%s radius_km=%s min_score=%s",
        len(scored),
        len(kept),
        radius_km,
        min_score,
    )
    return kept


def rank_matches(
    scored: Sequence[ScoredCandidate], band_km: Optional[float] = None
) -> list[MatchResult]:
    """Order by distance, letting score decide inside a proximity band.

    A band opens at the nearest unranked candidate and takes everyone closer
    than ``start + band_km``; the band is sorted by descending score. Two
    results at least ``band_km`` apart are therefore always in distance
    order.
    """

    if band_km is None:
        band_km = config.PROXIMITY_BAND_KM

    # Bands use the displayed (one decimal) distance so the ordering holds for
    # the values callers see.
    results = [
        MatchResult(
            candidate=item.candidate,
            distance_km=round(item.distance_km, 1),
            match_score=item.match_score,
        )
        for item in scored
    ]
    by_distance = sorted(results, key=lambda r: (r.distance_km, r.candidate.id))

    # Band edges in whole tenths of a km; 8.2 - 3.2 is 4.999... as floats.
    tenths = [round(r.distance_km * 10) for r in by_distance]
    band_tenths = round(band_km * 10)

    ordered: list[MatchResult] = []
    start = 0
    while start < len(by_distance):
        end = start + 1
        while end < len(by_distance) and tenths[end] - tenths[start] < band_tenths:
            end += 1
        band = by_distance[start:end]
        band.sort(key=lambda r: (-r.match_score, r.distance_km, r.candidate.id))
        ordered.extend(band)
        start = end

    for position, result in enumerate(ordered, start=1):
        result.rank = position
    return ordered
