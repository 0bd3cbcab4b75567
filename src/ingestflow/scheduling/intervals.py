"""Schedule intervals and the special child schedule values."""

from datetime import datetime, timedelta

HOUR = 3600
DAY = 24 * HOUR

INTERVALS: dict[str, int] = {
    "every_5_minutes": 300,
    "hourly": HOUR,
    "every_2_hours": 2 * HOUR,
    "every_4_hours": 4 * HOUR,
    "qtrdaily": 6 * HOUR,
    "twicedaily": 12 * HOUR,
    "daily": DAY,
    "weekly": 7 * DAY,
}

INTERVAL_LABELS: dict[str, str] = {
    "every_5_minutes": "Every 5 Minutes",
    "hourly": "Hourly",
    "every_2_hours": "Every 2 Hours",
    "every_4_hours": "Every 4 Hours",
    "qtrdaily": "Every 6 Hours",
    "twicedaily": "Twice Daily",
    "daily": "Daily",
    "weekly": "Weekly",
}

# Children with this interval run when their project runs.
PROJECT_SCHEDULE = "project_schedule"
# Never triggered by a timer.
MANUAL = "manual"

PROJECT_INTERVALS = frozenset(INTERVALS) - {"every_5_minutes"}
UNIT_INTERVALS = frozenset(INTERVALS) | {PROJECT_SCHEDULE, MANUAL}


def interval_seconds(interval: str) -> int | None:
    """Seconds for a timed interval; None for manual, project_schedule or unknown values."""
    return INTERVALS.get(interval)


def is_timed(interval: str) -> bool:
    return interval in INTERVALS


def next_run_at(last_run_at: datetime | None, interval: str, now: datetime) -> datetime | None:
    """
    When a timer with this interval is next due.

    Never-run schedules are due now; manual and inherited schedules have no
    timer of their own and return None.
    """
    seconds = interval_seconds(interval)
    if seconds is None:
        return None
    if last_run_at is None:
        return now
    return last_run_at + timedelta(seconds=seconds)
