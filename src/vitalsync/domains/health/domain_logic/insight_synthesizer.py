"""Insight synthesis: fetch windows, analyze each category, assemble the result.

The synthesizer is the only component that talks to the repository. All
window fetches for a request run concurrently and are bounded by one
request-level timeout; no partial result is ever returned.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from vitalsync.core.storage.models import MetricSnapshot
from vitalsync.core.storage.repository import MetricRepository, RepositoryError
from vitalsync.domains.health.domain_logic.categories import (
    ANALYZED_CATEGORIES,
    CATEGORY_CONFIGS,
)
from vitalsync.domains.health.domain_logic.category_analyzer import (
    CategoryAnalyzer,
    default_analyzers,
)
from vitalsync.domains.health.domain_logic.health_score import (
    DEFAULT_SCHEME,
    compute_health_score,
    score_components,
)
from vitalsync.domains.health.domain_logic.insight_models import (
    CategoryInsight,
    DataAvailability,
    InsightResult,
)
from vitalsync.domains.health.domain_logic.trend_calculators import (
    compute_streak,
    consistency_score,
    latest_per_day,
    mean,
    personal_bests,
    round_half_up,
    sleep_debt,
)

logger = logging.getLogger(__name__)

WEEK_DAYS = 7
MONTH_DAYS = 30
SLEEP_TARGET_HOURS = 8.0
WORKOUT_MINUTES = 30

# 30-day averages reported under monthlyProgress: (category, column, output key)
_MONTHLY_FIELDS = (
    ("activity", "steps", "steps"),
    ("heart", "resting_heart_rate", "restingHeartRate"),
    ("sleep", "sleep_hours", "sleepHours"),
    ("body", "weight", "weightKg"),
)


class InsightError(Exception):
    """Raised when insights cannot be produced for a request."""


class InsightTimeoutError(InsightError):
    """Raised when fetching a request's windows exceeds the timeout."""


Windows = dict[str, tuple[list[MetricSnapshot], list[MetricSnapshot]]]


class InsightSynthesizer:
    """Orchestrates the repository, analyzers, scorer, and calculators.

    Usage::

        synthesizer = InsightSynthesizer(repository, weight_scheme="enhanced")
        result = await synthesizer.synthesize("42")
        payload = result.to_dict()
    """

    def __init__(
        self,
        repository: MetricRepository,
        *,
        weight_scheme: str = DEFAULT_SCHEME,
        timeout_seconds: float = 10.0,
        step_streak_threshold: float = 8000,
        sleep_streak_threshold: float = 7.0,
        analyzers: Sequence[CategoryAnalyzer] | None = None,
    ) -> None:
        self._repo = repository
        self._weight_scheme = weight_scheme
        self._timeout = timeout_seconds
        self._step_streak_threshold = step_streak_threshold
        self._sleep_streak_threshold = sleep_streak_threshold
        self._analyzers = list(analyzers) if analyzers is not None else default_analyzers()

    @property
    def weight_scheme(self) -> str:
        return self._weight_scheme

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _fetch_windows(self, user_id: str, now: datetime) -> Windows:
        """Fetch the 7-day and 30-day window of every analyzed category.

        On any failure or timeout every outstanding fetch is cancelled and
        awaited, so pooled connections are back before this raises.
        """
        week_ago = now - timedelta(days=WEEK_DAYS)
        month_ago = now - timedelta(days=MONTH_DAYS)

        tasks: dict[tuple[str, str], asyncio.Task] = {}
        for category in ANALYZED_CATEGORIES:
            tasks[(category, "weekly")] = asyncio.ensure_future(
                self._repo.fetch_window(user_id, category, week_ago)
            )
            tasks[(category, "monthly")] = asyncio.ensure_future(
                self._repo.fetch_window(user_id, category, month_ago)
            )

        try:
            await asyncio.wait_for(asyncio.gather(*tasks.values()), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            await self._drain(tasks.values())
            raise InsightTimeoutError(
                f"Fetching metric windows timed out after {self._timeout:g}s"
            ) from exc
        except RepositoryError as exc:
            await self._drain(tasks.values())
            raise InsightError(f"Could not load metrics: {exc}") from exc
        except BaseException:
            await self._drain(tasks.values())
            raise

        return {
            category: (
                tasks[(category, "weekly")].result(),
                tasks[(category, "monthly")].result(),
            )
            for category in ANALYZED_CATEGORIES
        }

    @staticmethod
    async def _drain(tasks) -> None:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        # Collect every outcome so no task exception goes unretrieved
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    async def synthesize(self, user_id: str, *, now: datetime | None = None) -> InsightResult:
        """Produce the full insight result for a user.

        Args:
            user_id: Opaque user identifier (not validated).
            now: Wall-clock time used for window cutoffs, streak cutoffs, and
                the greeting; defaults to the current UTC time.

        Raises:
            InsightTimeoutError: If the fetch phase exceeds the timeout.
            InsightError: If the metric store fails.
        """
        now = now or datetime.now(timezone.utc)
        windows = await self._fetch_windows(user_id, now)
        return self.build_result(user_id, windows, now=now)

    def build_result(self, user_id: str, windows: Windows, *, now: datetime) -> InsightResult:
        """Assemble an :class:`InsightResult` from already-fetched windows."""
        result = InsightResult(user_id=user_id, generated_at=now.isoformat())

        insights: dict[str, CategoryInsight] = {}
        for analyzer in self._analyzers:
            weekly, monthly = windows.get(analyzer.category, ([], []))
            insight = analyzer.analyze(weekly, monthly)
            insights[analyzer.category] = insight
            if not insight.has_data:
                continue
            result.current_metrics.update(insight.current)
            result.weekly_averages.update(insight.weekly_averages)
            result.trends.update(insight.trends)
            result.recommendations.extend(insight.recommendations)
            result.alerts.extend(insight.alerts)

        weekly_activity = windows.get("activity", ([], []))[0]
        weekly_steps = [snap.get("steps") or 0 for snap in weekly_activity]
        # A week of zero steps has no consistency to score
        step_consistency = (
            consistency_score(weekly_steps)
            if len(weekly_steps) >= 2 and (mean(weekly_steps) or 0) > 0
            else None
        )

        present = sum(1 for insight in insights.values() if insight.has_data)
        availability: DataAvailability = (
            "complete" if present == len(ANALYZED_CATEGORIES) else "partial"
        )
        result.health_score = compute_health_score(
            score_components(result.current_metrics, step_consistency=step_consistency),
            scheme=self._weight_scheme,
            data_availability=availability,
        )

        result.weekly_summary = self._weekly_summary(windows, result.weekly_averages)
        if step_consistency is not None:
            result.weekly_summary["stepConsistency"] = step_consistency
        result.monthly_progress = self._monthly_progress(windows)

        today = now.astimezone(timezone.utc).date()
        monthly_steps = latest_per_day(windows.get("activity", ([], []))[1], "steps")
        monthly_sleep = latest_per_day(windows.get("sleep", ([], []))[1], "sleep_hours")
        if monthly_steps:
            result.streaks["steps"] = compute_streak(
                monthly_steps, self._step_streak_threshold, today=today
            )
        if monthly_sleep:
            result.streaks["sleep"] = compute_streak(
                monthly_sleep, self._sleep_streak_threshold, today=today
            )

        for category in ANALYZED_CATEGORIES:
            config = CATEGORY_CONFIGS[category]
            if not config.personal_bests:
                continue
            columns = {f.column: f.key for f in config.personal_bests}
            result.personal_bests.update(
                personal_bests(windows.get(category, ([], []))[1], columns)
            )

        weekly_nights = [
            hours
            for _, hours in latest_per_day(windows.get("sleep", ([], []))[0], "sleep_hours")
            if hours > 0
        ]
        if weekly_nights:
            result.sleep_debt_hours = sleep_debt(weekly_nights, SLEEP_TARGET_HOURS)

        result.greeting = greeting_for(now)
        result.notes = self._notes(result)

        logger.info(
            "Insights for user %s: score=%d (%s), %d recommendations, %d alerts",
            user_id,
            result.health_score.value,
            result.health_score.data_availability,
            len(result.recommendations),
            len(result.alerts),
        )
        return result

    @staticmethod
    def _weekly_summary(windows: Windows, weekly_averages: dict[str, float]) -> dict[str, Any]:
        weekly_activity = windows.get("activity", ([], []))[0]
        return {
            "totalSteps": sum(snap.get("steps") or 0 for snap in weekly_activity),
            "avgSleepHours": weekly_averages.get("sleepHours", 0),
            "workoutsCompleted": sum(
                1
                for snap in weekly_activity
                if (snap.get("exercise_minutes") or 0) > WORKOUT_MINUTES
            ),
            "healthScoreTrend": health_score_trend(windows),
        }

    @staticmethod
    def _monthly_progress(windows: Windows) -> dict[str, Any]:
        progress: dict[str, Any] = {}
        for category, column, key in _MONTHLY_FIELDS:
            monthly = windows.get(category, ([], []))[1]
            values = [v for v in (snap.get(column) for snap in monthly) if v]
            avg = mean(values)
            if avg is None:
                continue
            progress[key] = {
                "average": round_half_up(avg, 1),
                "readings": len(values),
                "activeDays": len({snap.day for snap in monthly if snap.get(column)}),
            }
        return progress

    def _notes(self, result: InsightResult) -> list[str]:
        notes: list[str] = []
        if result.health_score is not None and not result.health_score.has_data:
            notes.append("Sync a device to start receiving personalized insights.")
            return notes

        step_streak = result.streaks.get("steps", 0)
        if step_streak >= 2:
            notes.append(
                f"You've reached {self._step_streak_threshold:,.0f}+ steps "
                f"{step_streak} days in a row."
            )
        sleep_streak = result.streaks.get("sleep", 0)
        if sleep_streak >= 2:
            notes.append(
                f"{sleep_streak} nights in a row with {self._sleep_streak_threshold:g}+ hours of sleep."
            )

        steps = result.current_metrics.get("steps") or 0
        if steps > 0 and steps == result.personal_bests.get("steps"):
            notes.append("Today's step count matches your best of the last 30 days.")

        if result.sleep_debt_hours is not None and result.sleep_debt_hours >= 5:
            notes.append(
                f"You're carrying {result.sleep_debt_hours:g} hours of sleep debt this week. "
                "An earlier bedtime tonight will help."
            )

        if any(alert.type == "critical" for alert in result.alerts):
            notes.append("One of your readings needs attention; see alerts below.")
        return notes

    # ------------------------------------------------------------------
    # Trend-over-time view
    # ------------------------------------------------------------------

    async def trend_over_time(
        self,
        user_id: str,
        category: str,
        *,
        days: int = MONTH_DAYS,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Day-bucketed averages for one category, oldest day first.

        Raises:
            InsightError: If the category is not analyzed or the store fails.
        """
        if category not in CATEGORY_CONFIGS:
            raise InsightError(
                f"Unknown category: {category!r}. Valid: {list(ANALYZED_CATEGORIES)}"
            )
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=days)
        try:
            daily = await asyncio.wait_for(
                self._repo.fetch_daily_averages(user_id, category, since),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise InsightTimeoutError(
                f"Fetching daily averages timed out after {self._timeout:g}s"
            ) from exc
        except RepositoryError as exc:
            raise InsightError(f"Could not load daily averages: {exc}") from exc

        fields = CATEGORY_CONFIGS[category].fields
        return [
            {
                "day": entry.day,
                "samples": entry.samples,
                **{
                    f.key: round_half_up(entry.averages[f.column], 1)
                    for f in fields
                    if entry.averages.get(f.column) is not None
                },
            }
            for entry in daily
        ]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def health_score_trend(windows: Windows) -> str:
    """Coarse direction from how well the week is covered by data.

    Counts how many of the weekly activity, sleep, and heart windows hold more
    than three entries.
    """
    covered = sum(
        1
        for category in ("activity", "sleep", "heart")
        if len(windows.get(category, ([], []))[0]) > 3
    )
    if covered >= 2:
        return "improving"
    if covered == 1:
        return "stable"
    return "needs_attention"


def greeting_for(now: datetime) -> str:
    hour = now.hour
    if hour < 12:
        return "Good morning"
    if hour < 18:
        return "Good afternoon"
    return "Good evening"
