"""Domain models for player and coach matching.

Search criteria are explicit, validated pydantic models so every filter and
scoring rule reads a named field instead of an untyped preference blob.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from player_finder.config import config
from player_finder.utils.dates import ensure_utc
from player_finder.utils.errors import InvalidInputError

# NRTP scale, lowest to highest. Position in the tuple is the skill index.
SKILL_LEVELS: tuple[str, ...] = ("2.5", "3.0", "3.5", "4.0", "4.5", "5.0", "5.5")

# Minimum years of coaching for each required experience level.
EXPERIENCE_YEARS: dict[str, int] = {
    "beginner": 0,
    "intermediate": 2,
    "advanced": 5,
    "professional": 10,
}

SearchMode = Literal["player", "coach"]
Gender = Literal["male", "female", "any"]
MatchType = Literal["singles", "doubles", "mixed_doubles", "practice", "any"]
ContactMethod = Literal["email", "phone", "whatsapp", "any"]
ExperienceLevel = Literal["beginner", "intermediate", "advanced", "professional", "any"]
LessonType = Literal["individual", "group", "clinic", "any"]
Weekday = Literal[
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
]

# 24-hour HH:MM, as stored for availability windows.
TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def normalize_skill_level(value: Any) -> Optional[str]:
    """Map 3, 3.0 or "3.0" onto the scale label; reject anything off the scale."""

    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid skill level: {value!r}")
    try:
        label = f"{float(value):.1f}"
    except (TypeError, ValueError):
        raise ValueError(f"Invalid skill level: {value!r}") from None
    if label not in SKILL_LEVELS:
        raise ValueError(
            f"Invalid skill level: {value!r}. Valid levels: {', '.join(SKILL_LEVELS)}"
        )
    return label


def _lenient_skill_level(value: Any) -> Optional[str]:
    # Directory records with an unknown level behave as "no level".
    try:
        return normalize_skill_level(value)
    except ValueError:
        return None


def _coerce_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    return value


def _coerce_utc(value: Any) -> Any:
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


def skill_index(level: str) -> int:
    """Position of a level on the 7-point scale (0..6)."""

    return SKILL_LEVELS.index(level)


SkillLevel = Annotated[Optional[str], BeforeValidator(normalize_skill_level)]
StoredSkillLevel = Annotated[Optional[str], BeforeValidator(_lenient_skill_level)]
BirthDate = Annotated[Optional[date], BeforeValidator(_coerce_date)]
Timestamp = Annotated[Optional[datetime], BeforeValidator(_coerce_utc)]


# ============================================================
# PROFILES
# ============================================================
class CandidateProfile(BaseModel):
    """A user record from the directory, evaluated as a potential match."""

    model_config = ConfigDict(extra="ignore")

    id: str
    display_name: str = ""
    user_type: str = "player"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    skill_level: StoredSkillLevel = None
    gender: Optional[str] = None
    date_of_birth: BirthDate = None
    can_be_found: bool = False
    is_active: bool = False
    email_verified: bool = False
    last_active: Timestamp = None

    # Coach-only fields; absent for players.
    coaching_experience_years: Optional[float] = None
    hourly_rate: Optional[float] = None
    specializations: list[str] = Field(default_factory=list)
    languages: Optional[list[str]] = None
    available_for_lessons: bool = False

    @field_validator("specializations", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class SearcherProfile(BaseModel):
    """The user issuing a search."""

    model_config = ConfigDict(extra="ignore")

    id: str
    display_name: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    skill_level: StoredSkillLevel = None
    gender: Optional[str] = None
    date_of_birth: BirthDate = None
    last_active: Timestamp = None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_user(cls, user: CandidateProfile) -> "SearcherProfile":
        return cls.model_validate(user.model_dump())

    def with_location(
        self, latitude: Optional[float], longitude: Optional[float]
    ) -> "SearcherProfile":
        """Return a copy searching from another point when both coordinates are given."""

        if latitude is None or longitude is None:
            return self
        return self.model_copy(update={"latitude": latitude, "longitude": longitude})


# ============================================================
# SEARCH CRITERIA
# ============================================================
class SearchCriteria(BaseModel):
    """Peer search filters and preferences."""

    model_config = ConfigDict(extra="forbid")

    radius_km: int = Field(default_factory=lambda: config.DEFAULT_RADIUS_KM)
    skill_level_min: SkillLevel = None
    skill_level_max: SkillLevel = None
    skill_level_exact: SkillLevel = None
    preferred_gender: Gender = "any"
    age_min: Optional[int] = Field(default=None, ge=13, le=100)
    age_max: Optional[int] = Field(default=None, ge=13, le=100)
    match_type: MatchType = "any"
    preferred_language: str = "English"
    contact_method: ContactMethod = "any"
    exclude_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_ranges(self) -> "SearchCriteria":
        if not config.MIN_RADIUS_KM <= self.radius_km <= config.MAX_RADIUS_KM:
            raise ValueError(
                f"radius_km must be between {config.MIN_RADIUS_KM} and "
                f"{config.MAX_RADIUS_KM} km"
            )
        if self.skill_level_exact and self.has_skill_range:
            raise ValueError(
                "Use either skill_level_exact or a skill_level_min/max range, not both"
            )
        if (
            self.skill_level_min
            and self.skill_level_max
            and skill_index(self.skill_level_min) > skill_index(self.skill_level_max)
        ):
            raise ValueError("skill_level_min must not be above skill_level_max")
        if (
            self.age_min is not None
            and self.age_max is not None
            and self.age_min > self.age_max
        ):
            raise ValueError("age_min must not be above age_max")
        return self

    @property
    def has_skill_range(self) -> bool:
        return bool(self.skill_level_min or self.skill_level_max)


class CoachSearchCriteria(SearchCriteria):
    """Coach search preferences on top of the shared filters."""

    experience_level_required: ExperienceLevel = "any"
    preferred_skill_focus: list[str] = Field(default_factory=list)
    budget_min: Optional[float] = Field(default=None, ge=0)
    budget_max: Optional[float] = Field(default=None, ge=0)
    lesson_type: LessonType = "any"
    specialization: Optional[str] = None

    @model_validator(mode="after")
    def _check_budget(self) -> "CoachSearchCriteria":
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            raise ValueError("budget_min must not be above budget_max")
        return self


CRITERIA_BY_MODE: dict[str, type[SearchCriteria]] = {
    "player": SearchCriteria,
    "coach": CoachSearchCriteria,
}


def parse_criteria(data: Any, mode: str = "player") -> SearchCriteria:
    """Build criteria for a search mode, surfacing problems as InvalidInputError."""

    criteria_cls = CRITERIA_BY_MODE.get(mode)
    if criteria_cls is None:
        raise InvalidInputError(
            f"Unknown search mode: {mode}. Valid modes: {', '.join(CRITERIA_BY_MODE)}"
        )
    if isinstance(data, criteria_cls):
        return data
    if isinstance(data, SearchCriteria):
        data = data.model_dump()
    try:
        return criteria_cls.model_validate(data or {})
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid search criteria: {exc}") from exc


# ============================================================
# RESULTS
# ============================================================
class MatchResult(BaseModel):
    """A ranked candidate with its distance and compatibility score."""

    candidate: CandidateProfile
    distance_km: float
    match_score: int = Field(ge=0)
    rank: int = 0

    def to_response(self) -> dict:
        """Flatten into the shape returned over HTTP."""

        return {
            "id": self.candidate.id,
            "display_name": self.candidate.display_name,
            "user_type": self.candidate.user_type,
            "skill_level": self.candidate.skill_level,
            "gender": self.candidate.gender,
            "hourly_rate": self.candidate.hourly_rate,
            "specializations": self.candidate.specializations,
            "distance_km": self.distance_km,
            "match_score": self.match_score,
            "rank": self.rank,
        }


class SavedSearch(BaseModel):
    """A standing search request plus its outcome counters."""

    id: Optional[str] = None
    searcher_id: str
    mode: SearchMode = "player"
    criteria: Union[CoachSearchCriteria, SearchCriteria] = Field(
        default_factory=SearchCriteria
    )
    search_latitude: Optional[float] = None
    search_longitude: Optional[float] = None
    auto_notify: bool = True
    is_active: bool = True
    total_candidates_found: int = 0
    matches_contacted: int = 0
    successful_matches: int = 0
    last_search_at: Timestamp = None
    created_at: Timestamp = None
    version: int = 0

    @model_validator(mode="before")
    @classmethod
    def _criteria_for_mode(cls, data: Any) -> Any:
        if isinstance(data, dict):
            mode = data.get("mode", "player")
            criteria_cls = CRITERIA_BY_MODE.get(mode)
            criteria = data.get("criteria")
            if criteria_cls is not None and not isinstance(criteria, criteria_cls):
                if isinstance(criteria, SearchCriteria):
                    criteria = criteria.model_dump()
                data = {**data, "criteria": criteria_cls.model_validate(criteria or {})}
        return data

    def to_document(self) -> dict:
        """Serialize for the document store (id lives in the document key)."""

        return self.model_dump(exclude={"id"}, mode="python")


class FinderPreferences(BaseModel):
    """A player's standing finder preferences, one record per searcher."""

    searcher_id: str
    criteria: SearchCriteria = Field(default_factory=SearchCriteria)
    preferred_locations: list[str] = Field(default_factory=list)
    availability_days: list[Weekday] = Field(default_factory=list)
    availability_time_start: Optional[str] = Field(default=None, pattern=TIME_OF_DAY_PATTERN)
    availability_time_end: Optional[str] = Field(default=None, pattern=TIME_OF_DAY_PATTERN)
    auto_notify: bool = True
    notes: Optional[str] = Field(default=None, max_length=1000)
    created_at: Timestamp = None
    updated_at: Timestamp = None

    @field_validator("availability_days", mode="before")
    @classmethod
    def _lowercase_days(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [day.lower() if isinstance(day, str) else day for day in value]
        return value

    @model_validator(mode="after")
    def _check_window(self) -> "FinderPreferences":
        # Zero-padded HH:MM strings compare in clock order.
        if (
            self.availability_time_start
            and self.availability_time_end
            and self.availability_time_start >= self.availability_time_end
        ):
            raise ValueError("availability_time_start must be before availability_time_end")
        return self

    def to_document(self) -> dict:
        return self.model_dump(mode="python")


class MatchRequest(BaseModel):
    """An invitation from one player to another to play."""

    model_config = ConfigDict(extra="forbid")

    message: Optional[str] = Field(default=None, max_length=500)
    preferred_date: Optional[date] = None
    preferred_time: Optional[str] = Field(default=None, pattern=TIME_OF_DAY_PATTERN)
    match_type: MatchType = "any"


class NotificationOutcome(BaseModel):
    """Result of notifying one top match and the searcher about it."""

    candidate_id: str
    notified: bool = False
    candidate_notified: bool = False
    searcher_notified: bool = False
    error: Optional[str] = None


class SaveAndMatchResult(BaseModel):
    """Saved search, its ranked matches and per-candidate notification outcomes."""

    saved_search: SavedSearch
    matches: list[MatchResult] = Field(default_factory=list)
    notifications: list[NotificationOutcome] = Field(default_factory=list)

    @property
    def notified_matches(self) -> list[str]:
        return [outcome.candidate_id for outcome in self.notifications if outcome.notified]


class SearchStats(BaseModel):
    """Aggregate counters over a searcher's saved searches."""

    total_searches: int = 0
    active_searches: int = 0
    total_candidates_found: int = 0
    total_contacted: int = 0
    total_successful: int = 0
    success_rate: float = 0.0
    recent_searches: list[SavedSearch] = Field(default_factory=list)
