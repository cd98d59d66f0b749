"""Candidate eligibility rules.

Every rule is expressed as a plain predicate over a CandidateProfile so the
same checks apply no matter which directory produced the records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable

from player_finder.config import config
from player_finder.models import (
    SKILL_LEVELS,
    CandidateProfile,
    CoachSearchCriteria,
    SearchCriteria,
    SearcherProfile,
    skill_index,
)
from player_finder.utils.dates import age_on, ensure_utc
from player_finder.utils.geo import BoundingBox, bounding_box
from player_finder.utils.logging_config import logger

CandidatePredicate = Callable[[CandidateProfile], bool]


def passes_base_rules(
    candidate: CandidateProfile, searcher: SearcherProfile, excluded: set[str]
) -> bool:
    """Active, verified, findable, located, not the searcher, not excluded."""

    return (
        candidate.is_active
        and candidate.email_verified
        and candidate.can_be_found
        and candidate.has_location
        and candidate.id != searcher.id
        and candidate.id not in excluded
    )


def passes_skill_filter(candidate: CandidateProfile, criteria: SearchCriteria) -> bool:
    if criteria.skill_level_exact:
        return candidate.skill_level == criteria.skill_level_exact

    if not criteria.has_skill_range:
        return True
    if candidate.skill_level is None:
        return False

    low = skill_index(criteria.skill_level_min) if criteria.skill_level_min else 0
    high = (
        skill_index(criteria.skill_level_max)
        if criteria.skill_level_max
        else len(SKILL_LEVELS) - 1
    )
    return low <= skill_index(candidate.skill_level) <= high


def passes_gender_filter(candidate: CandidateProfile, criteria: SearchCriteria) -> bool:
    if criteria.preferred_gender == "any":
        return True
    return candidate.gender == criteria.preferred_gender


def passes_specialization_filter(
    candidate: CandidateProfile, criteria: SearchCriteria
) -> bool:
    """Coach searches naming a specialization only keep coaches who list it."""

    if not isinstance(criteria, CoachSearchCriteria) or not criteria.specialization:
        return True
    return criteria.specialization in candidate.specializations


def passes_age_filter(
    candidate: CandidateProfile, criteria: SearchCriteria, now: datetime
) -> bool:
    if criteria.age_min is None and criteria.age_max is None:
        return True
    if candidate.date_of_birth is None:
        return False

    age = age_on(candidate.date_of_birth, ensure_utc(now).date())
    if criteria.age_min is not None and age < criteria.age_min:
        return False
    if criteria.age_max is not None and age > criteria.age_max:
        return False
    return True


def build_candidate_predicate(
    searcher: SearcherProfile,
    criteria: SearchCriteria,
    now: datetime,
    *,
    use_bounding_box: bool | None = None,
) -> CandidatePredicate:
    """Compose all eligibility rules for one search into a single predicate.

    The bounding box only discards points that are certainly outside the
    search radius; the precise Haversine cutoff happens after scoring.
    """

    excluded = set(criteria.exclude_ids)
    if use_bounding_box is None:
        use_bounding_box = config.BOUNDING_BOX_PREFILTER

    box: BoundingBox | None = None
    if use_bounding_box and searcher.has_location:
        box = bounding_box(searcher.latitude, searcher.longitude, criteria.radius_km)

    def predicate(candidate: CandidateProfile) -> bool:
        if not passes_base_rules(candidate, searcher, excluded):
            return False
        if box is not None and not box.contains(candidate.latitude, candidate.longitude):
            return False
        return (
            passes_skill_filter(candidate, criteria)
            and passes_gender_filter(candidate, criteria)
            and passes_age_filter(candidate, criteria, now)
            and passes_specialization_filter(candidate, criteria)
        )

    return predicate


def is_eligible(
    candidate: CandidateProfile,
    searcher: SearcherProfile,
    criteria: SearchCriteria,
    now: datetime,
) -> bool:
    """Check a single candidate without the geographic pre-filter."""

    predicate = build_candidate_predicate(
        searcher, criteria, now, use_bounding_box=False
    )
    return predicate(candidate)


def filter_candidates(
    candidates: Iterable[CandidateProfile],
    searcher: SearcherProfile,
    criteria: SearchCriteria,
    now: datetime,
) -> list[CandidateProfile]:
    """Return the eligible subset of ``candidates``, in input order."""

    predicate = build_candidate_predicate(searcher, criteria, now)
    candidates = list(candidates)
    eligible = [candidate for candidate in candidates if predicate(candidate)]

    logger.debug(
        "filter_candidates input=%s eligible=%s", len(candidates), len(eligible)
    )
    return eligible
