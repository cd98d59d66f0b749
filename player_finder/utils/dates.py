"""Date helpers shared by filtering and scoring."""

from __future__ import annotations

from datetime import date, datetime, timezone

SECONDS_PER_DAY = 60 * 60 * 24


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with Firestore timestamps."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def age_on(date_of_birth: date, today: date) -> int:
    """Whole years between a birth date and ``today``."""

    before_birthday = (today.month, today.day) < (date_of_birth.month, date_of_birth.day)
    return today.year - date_of_birth.year - int(before_birthday)


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days elapsed since ``moment``; future timestamps count as 0."""

    elapsed = (ensure_utc(now) - ensure_utc(moment)).total_seconds()
    if elapsed <= 0:
        return 0
    return int(elapsed // SECONDS_PER_DAY)
