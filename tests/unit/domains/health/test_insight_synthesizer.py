"""Tests for InsightSynthesizer: concurrent fetch, merge, and derived views."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from vitalsync.core.storage.repository import MetricRepository
from vitalsync.domains.health.domain_logic.insight_synthesizer import (
    InsightError,
    InsightSynthesizer,
    InsightTimeoutError,
    greeting_for,
    health_score_trend,
)

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)

STEPS = [12000, 11000, 10500, 9000, 8500, 8000]
EXERCISE = [45, 20, 31, 30, 60, 0]


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _seed(repo: MetricRepository, user_id: str, category: str, rows) -> None:
    """Save ``(days_ago, data)`` rows for one user and category."""
    for days_ago, data in rows:
        await repo.save_snapshot(
            user_id, category, data, device_name="watch", timestamp=NOW - timedelta(days=days_ago)
        )


async def _seed_week(repo: MetricRepository, user_id: str = "42") -> None:
    await _seed(repo, user_id, "activity", [
        (i, {"steps": s, "exerciseMinutes": m}) for i, (s, m) in enumerate(zip(STEPS, EXERCISE))
    ])
    await _seed(repo, user_id, "heart", [
        (0, {"restingHeartRate": 62, "hrv": 48}),
        (1, {"restingHeartRate": 64, "hrv": 55}),
    ])
    await _seed(repo, user_id, "sleep", [
        (0, {"sleepHours": 7.5, "deepSleep": 1.4}),
        (1, {"sleepHours": 6.0, "deepSleep": 1.1}),
        (2, {"sleepHours": 8.0, "deepSleep": 1.9}),
    ])


class _SlowRepository:
    """Repository stand-in whose window fetches never finish in time."""

    def __init__(self) -> None:
        self.cancelled = 0

    async def fetch_window(self, user_id, category, since=None, *, limit=None):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return []

    async def fetch_daily_averages(self, user_id, category, since=None):
        await asyncio.sleep(10)
        return []


class TestEmptyUser:
    def test_no_data_result(self, metric_repository):
        synthesizer = InsightSynthesizer(metric_repository)
        out = _run(synthesizer.synthesize("nobody", now=NOW)).to_dict()

        assert out["healthScore"] == 0
        assert out["dataAvailability"] == "no_data"
        assert out["currentMetrics"] == {}
        assert out["weeklyAverages"] == {}
        assert out["trends"] == {}
        assert out["recommendations"] == []
        assert out["alerts"] == []
        assert out["streaks"] == {}
        assert out["personalBests"] == {}
        assert out["sleepDebtHours"] is None
        assert out["weeklySummary"] == {
            "totalSteps": 0,
            "avgSleepHours": 0,
            "workoutsCompleted": 0,
            "healthScoreTrend": "needs_attention",
        }
        assert out["personalization"]["greeting"] == "Good morning"
        assert out["personalization"]["notes"] == [
            "Sync a device to start receiving personalized insights."
        ]


class TestSynthesize:
    @pytest.fixture
    def result(self, metric_repository):
        async def scenario():
            await _seed_week(metric_repository)
            synthesizer = InsightSynthesizer(metric_repository)
            return await synthesizer.synthesize("42", now=NOW)

        return _run(scenario()).to_dict()

    def test_current_metrics_merged(self, result):
        current = result["currentMetrics"]
        assert current["steps"] == 12000
        assert current["exerciseMinutes"] == 45
        assert current["restingHeartRate"] == 62
        assert current["sleepHours"] == 7.5
        assert "weightKg" not in current
        assert "oxygenSaturation" not in current

    def test_weekly_averages_and_trends(self, result):
        assert result["weeklyAverages"]["steps"] == 9833
        assert result["weeklyAverages"]["restingHeartRate"] == 63
        assert result["weeklyAverages"]["sleepHours"] == 7.2
        assert result["trends"] == {"steps": 31.4}

    def test_score_is_partial(self, result):
        assert result["healthScore"] == 100
        assert result["dataAvailability"] == "partial"
        assert result["scoreBreakdown"]["scheme"] == "baseline"
        assert set(result["scoreBreakdown"]["components"]) == {"steps", "heart", "sleep"}

    def test_recommendations_in_category_order(self, result):
        assert [r["title"] for r in result["recommendations"]] == [
            "Excellent Activity Level",
            "Optimal Heart Health",
            "Optimal Sleep Duration",
        ]
        assert result["alerts"] == []

    def test_weekly_summary(self, result):
        summary = result["weeklySummary"]
        assert summary["totalSteps"] == sum(STEPS)
        assert summary["avgSleepHours"] == 7.2
        assert summary["workoutsCompleted"] == 3
        assert summary["healthScoreTrend"] == "stable"
        assert summary["stepConsistency"] == 85.4

    def test_streaks_and_bests(self, result):
        assert result["streaks"] == {"steps": 6, "sleep": 1}
        assert result["personalBests"]["steps"] == 12000
        assert result["personalBests"]["hrv"] == 55
        assert result["personalBests"]["deepSleep"] == 1.9

    def test_sleep_debt(self, result):
        assert result["sleepDebtHours"] == 2.5

    def test_monthly_progress(self, result):
        assert result["monthlyProgress"]["steps"] == {
            "average": 9833.3,
            "readings": 6,
            "activeDays": 6,
        }
        assert "weightKg" not in result["monthlyProgress"]

    def test_notes(self, result):
        notes = result["personalization"]["notes"]
        assert "You've reached 8,000+ steps 6 days in a row." in notes
        assert "Today's step count matches your best of the last 30 days." in notes

    def test_generated_at(self, result):
        assert result["generatedAt"] == NOW.isoformat()


class TestWindows:
    def test_old_rows_only_reach_monthly_views(self, metric_repository):
        async def scenario():
            await _seed(metric_repository, "42", "activity", [
                (0, {"steps": 4000}),
                (20, {"steps": 15000}),
                (45, {"steps": 30000}),
            ])
            return await InsightSynthesizer(metric_repository).synthesize("42", now=NOW)

        out = _run(scenario()).to_dict()
        assert out["weeklyAverages"]["steps"] == 4000
        assert out["weeklySummary"]["totalSteps"] == 4000
        assert out["personalBests"]["steps"] == 15000
        assert out["monthlyProgress"]["steps"]["readings"] == 2

    def test_other_users_ignored(self, metric_repository):
        async def scenario():
            await _seed(metric_repository, "other", "activity", [(0, {"steps": 20000})])
            return await InsightSynthesizer(metric_repository).synthesize("42", now=NOW)

        assert _run(scenario()).health_score.data_availability == "no_data"

    def test_alerts_follow_category_order(self, metric_repository):
        async def scenario():
            await _seed(metric_repository, "42", "vitals", [(0, {"spo2": 88})])
            await _seed(metric_repository, "42", "heart", [(0, {"restingHeartRate": 105})])
            return await InsightSynthesizer(metric_repository).synthesize("42", now=NOW)

        result = _run(scenario())
        assert [(a.category, a.type) for a in result.alerts] == [
            ("heart", "warning"),
            ("vitals", "critical"),
        ]
        assert "One of your readings needs attention; see alerts below." in result.notes

    def test_complete_availability(self, metric_repository):
        async def scenario():
            await _seed_week(metric_repository)
            await _seed(metric_repository, "42", "body", [(0, {"weight": 72.4, "bmi": 23.1})])
            await _seed(metric_repository, "42", "vitals", [(0, {"spo2": 97})])
            return await InsightSynthesizer(metric_repository).synthesize("42", now=NOW)

        score = _run(scenario()).health_score
        assert score.data_availability == "complete"
        assert set(score.components) == {"steps", "heart", "sleep", "vitals"}

    def test_enhanced_scheme_uses_consistency(self, metric_repository):
        async def scenario():
            await _seed_week(metric_repository)
            synthesizer = InsightSynthesizer(metric_repository, weight_scheme="enhanced")
            return await synthesizer.synthesize("42", now=NOW)

        score = _run(scenario()).health_score
        assert score.scheme == "enhanced"
        assert score.components["consistency"] == 85.4
        assert score.value == 98

    def test_infinite_reading_does_not_break_insights(self, metric_repository):
        async def scenario():
            await _seed(metric_repository, "42", "activity", [
                (0, {"steps": "1e999"}),
                (1, {"steps": 9000}),
            ])
            return await InsightSynthesizer(metric_repository).synthesize("42", now=NOW)

        out = _run(scenario()).to_dict()
        json.dumps(out, allow_nan=False)
        assert out["currentMetrics"]["steps"] == 0
        assert out["weeklyAverages"]["steps"] == 4500
        assert out["personalBests"]["steps"] == 9000

    def test_zero_step_week_has_no_consistency(self, metric_repository):
        async def scenario():
            await _seed(metric_repository, "42", "activity", [
                (0, {"steps": 0}),
                (1, {"steps": 0}),
            ])
            synthesizer = InsightSynthesizer(metric_repository, weight_scheme="enhanced")
            return await synthesizer.synthesize("42", now=NOW)

        result = _run(scenario())
        assert result.health_score.value == 0
        assert result.health_score.data_availability == "no_data"
        assert "consistency" not in result.health_score.components
        assert "stepConsistency" not in result.weekly_summary


class TestFailures:
    def test_timeout_cancels_outstanding_fetches(self):
        repo = _SlowRepository()
        synthesizer = InsightSynthesizer(repo, timeout_seconds=0.05)

        with pytest.raises(InsightTimeoutError, match="timed out"):
            _run(synthesizer.synthesize("42", now=NOW))
        assert repo.cancelled == 10

    def test_timeout_is_an_insight_error(self):
        assert issubclass(InsightTimeoutError, InsightError)

    def test_storage_fault_releases_connections(self, metric_db, metric_repository):
        metric_db.connection.execute("DROP TABLE sleep_data")
        synthesizer = InsightSynthesizer(metric_repository)

        with pytest.raises(InsightError, match="Could not load metrics"):
            _run(synthesizer.synthesize("42", now=NOW))
        assert metric_db.idle_connections == metric_db.pool_size


class TestTrendOverTime:
    def test_daily_buckets_oldest_first(self, metric_repository):
        async def scenario():
            await _seed(metric_repository, "42", "heart", [
                (1, {"restingHeartRate": 60}),
                (1, {"restingHeartRate": 70}),
                (2, {"restingHeartRate": 64, "hrv": 51}),
                (40, {"restingHeartRate": 90}),
            ])
            synthesizer = InsightSynthesizer(metric_repository)
            return await synthesizer.trend_over_time("42", "heart", now=NOW)

        assert _run(scenario()) == [
            {"day": "2026-03-08", "samples": 1, "restingHeartRate": 64.0, "hrv": 51.0},
            {"day": "2026-03-09", "samples": 2, "restingHeartRate": 65.0},
        ]

    def test_unknown_category(self, metric_repository):
        synthesizer = InsightSynthesizer(metric_repository)
        with pytest.raises(InsightError, match="Unknown category"):
            _run(synthesizer.trend_over_time("42", "health", now=NOW))

    def test_timeout(self):
        synthesizer = InsightSynthesizer(_SlowRepository(), timeout_seconds=0.05)
        with pytest.raises(InsightTimeoutError):
            _run(synthesizer.trend_over_time("42", "sleep", now=NOW))


class TestHelpers:
    @pytest.mark.parametrize(
        "hour,greeting",
        [(0, "Good morning"), (11, "Good morning"), (12, "Good afternoon"),
         (17, "Good afternoon"), (18, "Good evening"), (23, "Good evening")],
    )
    def test_greeting(self, hour, greeting):
        assert greeting_for(NOW.replace(hour=hour)) == greeting

    @pytest.mark.parametrize(
        "sizes,expected",
        [((4, 4, 4), "improving"), ((4, 0, 4), "improving"), ((4, 3, 0), "stable"),
         ((3, 3, 3), "needs_attention")],
    )
    def test_health_score_trend(self, sizes, expected):
        windows = {
            category: ([object()] * size, [])
            for category, size in zip(("activity", "sleep", "heart"), sizes)
        }
        assert health_score_trend(windows) == expected
