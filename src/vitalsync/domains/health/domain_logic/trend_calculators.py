"""Cross-cutting statistics over already-fetched metric windows.

Pure functions, no I/O. Sequences are newest-first unless stated otherwise,
matching the order the repository returns windows in.
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Iterable, Sequence
from datetime import date, timedelta

from vitalsync.core.storage.models import MetricSnapshot


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half away from zero (``round()`` rounds half to even).

    Non-finite values are returned unchanged; callers guard them.
    """
    if not math.isfinite(value):
        return value
    factor = 10 ** digits
    return math.floor(abs(value) * factor + 0.5) / factor * (1 if value >= 0 else -1)


def mean(values: Sequence[float]) -> float | None:
    """Arithmetic mean, or None for an empty sequence or a non-finite result."""
    if not values:
        return None
    avg = sum(values) / len(values)
    return avg if math.isfinite(avg) else None


def trend_percentage(recent: Sequence[float], older: Sequence[float]) -> float | None:
    """Percentage change of the recent mean over the older mean, one decimal.

    Returns None when either side is empty or the older mean is zero or the
    result is not finite; a missing trend is never reported as 0.
    """
    recent_avg = mean(recent)
    older_avg = mean(older)
    if recent_avg is None or older_avg is None or older_avg == 0:
        return None
    pct = (recent_avg - older_avg) / older_avg * 100
    if not math.isfinite(pct):
        return None
    return round_half_up(pct, 1)


def consistency_score(values: Sequence[float]) -> float:
    """How steady a series is: ``100 * max(0, 1 - stddev / mean)``.

    Uses the population standard deviation. Fewer than two samples, or a
    non-positive mean, score 0.
    """
    if len(values) < 2:
        return 0.0
    avg = statistics.fmean(values)
    if avg <= 0:
        return 0.0
    ratio = statistics.pstdev(values) / avg
    return round_half_up(100 * max(0.0, 1 - ratio), 1)


def latest_per_day(
    snapshots: Iterable[MetricSnapshot], column: str
) -> list[tuple[date, float]]:
    """One reading per calendar day: the most recent non-null value that day.

    Args:
        snapshots: Newest-first snapshots of one category.
        column: Column to read.

    Returns:
        ``(day, value)`` pairs, newest day first.
    """
    per_day: dict[date, float] = {}
    for snap in snapshots:
        value = snap.get(column)
        if value is None:
            continue
        day = date.fromisoformat(snap.day)
        if day not in per_day:
            per_day[day] = value
    return sorted(per_day.items(), key=lambda item: item[0], reverse=True)


def compute_streak(
    daily_values: Sequence[tuple[date, float]],
    threshold: float,
    *,
    today: date,
) -> int:
    """Consecutive most-recent days whose value meets ``threshold``.

    Scans from the latest day backwards and stops at the first day below the
    threshold or the first missing day. A series whose latest day is older
    than yesterday has no active streak.
    """
    if not daily_values:
        return 0
    latest_day = daily_values[0][0]
    if latest_day < today - timedelta(days=1):
        return 0

    streak = 0
    expected = latest_day
    for day, value in daily_values:
        if day != expected or value < threshold:
            break
        streak += 1
        expected = day - timedelta(days=1)
    return streak


def personal_bests(
    snapshots: Iterable[MetricSnapshot], columns: dict[str, str]
) -> dict[str, float]:
    """Maximum observed value per column across the fetched window.

    Args:
        snapshots: Snapshots of one category.
        columns: Column name -> output key.

    Returns:
        Output key -> best value; columns with no readings are omitted.
    """
    bests: dict[str, float] = {}
    for snap in snapshots:
        for column, key in columns.items():
            value = snap.get(column)
            if value is None:
                continue
            if key not in bests or value > bests[key]:
                bests[key] = value
    return bests


def sleep_debt(hours: Iterable[float], target: float = 8.0) -> float:
    """Hours slept short of ``target``, summed over the given nights."""
    return round_half_up(sum(max(0.0, target - h) for h in hours), 1)
