"""
Day-level cron expansion for calendar markers.

This is not a scheduler: only day-of-month, month and day-of-week are
evaluated, and the minute/hour fields are accepted but never checked.
"""
import json
import logging
import os
from datetime import date, timedelta


logger = logging.getLogger(__name__)

DAY_LEVEL_ONLY = True
DEFAULT_HORIZON_DAYS = 90
DEFAULT_MAX_COUNT = 60


def _to_int(raw):
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def matches_field(value: int, field: str, min_value: int, max_value: int) -> bool:
    """
    True if `value` satisfies one cron field.

    Supports `*`, comma lists, inclusive `a-b` ranges, `base/step` (with
    `*/step` starting at `min_value`) and plain numbers. Malformed parts
    never match; `max_value` is not used to validate anything.
    """
    if field == "*":
        return True

    for part in field.split(","):
        if "-" in part:
            start, _, end = part.partition("-")
            start, end = _to_int(start), _to_int(end)
            if start is not None and end is not None and start <= value <= end:
                return True
        elif "/" in part:
            base, _, step = part.partition("/")
            step = _to_int(step)
            base = min_value if base == "*" else _to_int(base)
            if base is None or not step:
                continue
            if value >= base and (value - base) % step == 0:
                return True
        elif _to_int(part) == value:
            return True

    return False


def matches_day(expr_fields, day: date) -> bool:
    _minute, _hour, day_of_month, month, day_of_week = expr_fields
    return (
        matches_field(day.day, day_of_month, 1, 31)
        and matches_field(day.month, month, 1, 12)
        # cron counts Sunday as 0, isoweekday() as 7
        and matches_field(day.isoweekday() % 7, day_of_week, 0, 6)
    )


def next_occurrences(cron_expr: str, horizon_days: int = DEFAULT_HORIZON_DAYS,
                     max_count: int = DEFAULT_MAX_COUNT, today: date | None = None):
    """ISO dates in [today, today + horizon_days) on which `cron_expr` fires, ascending."""
    fields = (cron_expr or "").split()
    # six-field (seconds-first) expressions are rejected, not read positionally
    if len(fields) != 5:
        return []

    today = today or date.today()
    dates = []
    for offset in range(horizon_days):
        if len(dates) >= max_count:
            break
        day = today + timedelta(days=offset)
        if matches_day(fields, day):
            dates.append(day.isoformat())
    return dates


# ---------- external job file ----------
def load_cron_jobs(path: str):
    """Jobs from the scheduler's `jobs.json`; an absent file means no jobs."""
    if not os.path.exists(path):
        return []
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    jobs = data.get("jobs") if isinstance(data, dict) else None
    return [j for j in (jobs or []) if isinstance(j, dict)]


def enabled_jobs(jobs):
    return [j for j in jobs if j.get("enabled")]


def job_occurrences(jobs, horizon_days: int = DEFAULT_HORIZON_DAYS,
                    max_count: int = DEFAULT_MAX_COUNT, today: date | None = None):
    """Calendar markers for every enabled `kind=cron` job."""
    out = []
    for job in enabled_jobs(jobs):
        schedule = job.get("schedule") or {}
        if schedule.get("kind") != "cron" or not schedule.get("expr"):
            continue
        out.append({
            "id": job.get("id"),
            "name": job.get("name") or job.get("id"),
            "expr": schedule["expr"],
            "dates": next_occurrences(schedule["expr"], horizon_days, max_count, today),
        })
    return out
