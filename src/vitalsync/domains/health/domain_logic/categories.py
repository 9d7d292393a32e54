"""Per-category configuration table for the insights engine.

Each analyzed category is described by data, not code: which columns it
exposes (with their null defaults), which weekly averages and trends it
reports, which personal bests it tracks, and its threshold rules. The
generic :class:`CategoryAnalyzer` interprets these entries.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from vitalsync.domains.health.domain_logic.insight_models import Alert, Recommendation

Metrics = dict[str, float]


@dataclass(frozen=True)
class MetricField:
    """A stored column surfaced under an output key."""

    column: str
    key: str
    default: float = 0  # substituted when the latest row has NULL


@dataclass(frozen=True)
class AverageSpec:
    """A weekly average reported for a column."""

    column: str
    key: str
    exclude_zero: bool = False  # skip 0/NULL readings instead of counting them as 0
    digits: int = 0  # 0 -> integer


@dataclass(frozen=True)
class TrendSpec:
    """Recent-vs-older comparison for a column.

    Values (newest first) are split into ``[0:slice_size]`` and
    ``[slice_size:2*slice_size]``.
    """

    column: str
    key: str
    exclude_zero: bool = False
    window: Literal["weekly", "monthly"] = "weekly"
    slice_size: int = 3
    min_points: int = 0


@dataclass(frozen=True)
class Rule:
    """Emit a recommendation and/or alert when ``when(current)`` holds."""

    when: Callable[[Metrics], bool]
    recommendation: Recommendation | None = None
    alert: Alert | None = None


@dataclass(frozen=True)
class CategoryConfig:
    name: str
    fields: tuple[MetricField, ...]
    averages: tuple[AverageSpec, ...] = ()
    trends: tuple[TrendSpec, ...] = ()
    rules: tuple[Rule, ...] = ()
    personal_bests: tuple[MetricField, ...] = ()


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------

ACTIVITY = CategoryConfig(
    name="activity",
    fields=(
        MetricField("steps", "steps"),
        MetricField("calories", "calories"),
        MetricField("distance", "distance"),
        MetricField("exercise_minutes", "exerciseMinutes"),
    ),
    averages=(
        AverageSpec("steps", "steps"),
        AverageSpec("calories", "calories"),
    ),
    trends=(TrendSpec("steps", "steps"),),
    rules=(
        Rule(
            when=lambda m: m["steps"] < 5000,
            recommendation=Recommendation(
                category="activity",
                priority="high",
                title="Increase Daily Movement",
                message=(
                    "Your step count is below recommended levels. "
                    "Try taking short walks throughout the day."
                ),
                actionable=True,
                suggestion="Add a 10-minute walk after each meal.",
            ),
        ),
        Rule(
            when=lambda m: m["steps"] >= 10000,
            recommendation=Recommendation(
                category="activity",
                priority="positive",
                title="Excellent Activity Level",
                message="You're consistently meeting your daily step goals. Keep up the great work!",
            ),
        ),
    ),
    personal_bests=(
        MetricField("steps", "steps"),
        MetricField("calories", "calories"),
        MetricField("distance", "distance"),
        MetricField("exercise_minutes", "exerciseMinutes"),
    ),
)

# ---------------------------------------------------------------------------
# Heart
# ---------------------------------------------------------------------------

HEART = CategoryConfig(
    name="heart",
    fields=(
        MetricField("current_heart_rate", "currentHeartRate"),
        MetricField("resting_heart_rate", "restingHeartRate"),
        MetricField("hrv", "hrv"),
    ),
    averages=(AverageSpec("resting_heart_rate", "restingHeartRate", exclude_zero=True),),
    trends=(TrendSpec("resting_heart_rate", "heartRate", exclude_zero=True),),
    rules=(
        Rule(
            when=lambda m: m["restingHeartRate"] > 100,
            alert=Alert(
                type="warning",
                category="heart",
                message=(
                    "Elevated resting heart rate detected. "
                    "Consider stress management techniques."
                ),
            ),
        ),
        Rule(
            when=lambda m: 50 <= m["restingHeartRate"] <= 70,
            recommendation=Recommendation(
                category="heart",
                priority="positive",
                title="Optimal Heart Health",
                message="Your resting heart rate indicates excellent cardiovascular fitness.",
            ),
        ),
    ),
    personal_bests=(MetricField("hrv", "hrv"),),
)

# ---------------------------------------------------------------------------
# Sleep
# ---------------------------------------------------------------------------

SLEEP = CategoryConfig(
    name="sleep",
    fields=(
        MetricField("sleep_hours", "sleepHours"),
        MetricField("deep_sleep", "deepSleep"),
        MetricField("rem_sleep", "remSleep"),
    ),
    averages=(AverageSpec("sleep_hours", "sleepHours", exclude_zero=True, digits=1),),
    trends=(TrendSpec("sleep_hours", "sleep", exclude_zero=True),),
    rules=(
        Rule(
            when=lambda m: m["sleepHours"] < 6,
            alert=Alert(
                type="warning",
                category="sleep",
                message=(
                    "Insufficient sleep detected. "
                    "Aim for 7-9 hours per night for optimal health."
                ),
            ),
            recommendation=Recommendation(
                category="sleep",
                priority="high",
                title="Prioritize Sleep",
                message="You slept less than 6 hours. Short nights slow recovery.",
                actionable=True,
                suggestion="Keep a consistent bedtime and put screens away an hour before bed.",
            ),
        ),
        Rule(
            when=lambda m: 7 <= m["sleepHours"] <= 9,
            recommendation=Recommendation(
                category="sleep",
                priority="positive",
                title="Optimal Sleep Duration",
                message="Your sleep duration is in the ideal range for recovery and health.",
            ),
        ),
    ),
    personal_bests=(
        MetricField("sleep_hours", "sleepHours"),
        MetricField("deep_sleep", "deepSleep"),
    ),
)

# ---------------------------------------------------------------------------
# Body
# ---------------------------------------------------------------------------

BODY = CategoryConfig(
    name="body",
    fields=(
        MetricField("weight", "weightKg"),
        MetricField("bmi", "bmi"),
        MetricField("body_fat", "bodyFat"),
        MetricField("vo2_max", "vo2Max"),
    ),
    averages=(AverageSpec("weight", "weightKg", exclude_zero=True, digits=1),),
    trends=(
        TrendSpec(
            "weight", "weight", exclude_zero=True, window="monthly", slice_size=5, min_points=2
        ),
    ),
    rules=(
        Rule(
            when=lambda m: 18.5 <= m["bmi"] < 25,
            recommendation=Recommendation(
                category="body",
                priority="positive",
                title="Healthy BMI Range",
                message="Your BMI indicates a healthy weight range.",
            ),
        ),
        Rule(
            when=lambda m: m["bmi"] >= 25,
            recommendation=Recommendation(
                category="body",
                priority="medium",
                title="Weight Management",
                message="Consider focusing on balanced nutrition and regular exercise.",
            ),
        ),
    ),
    personal_bests=(MetricField("vo2_max", "vo2Max"),),
)

# ---------------------------------------------------------------------------
# Vitals
# ---------------------------------------------------------------------------

VITALS = CategoryConfig(
    name="vitals",
    fields=(
        MetricField("spo2", "oxygenSaturation"),
        MetricField("bp_systolic", "bloodPressureSystolic"),
        MetricField("bp_diastolic", "bloodPressureDiastolic"),
        MetricField("temperature", "temperature"),
    ),
    averages=(AverageSpec("spo2", "oxygenSaturation", exclude_zero=True, digits=1),),
    rules=(
        Rule(
            when=lambda m: 0 < m["oxygenSaturation"] < 90,
            alert=Alert(
                type="critical",
                category="vitals",
                message=(
                    "Low blood oxygen detected. "
                    "Consider consulting a healthcare provider."
                ),
            ),
        ),
        Rule(
            when=lambda m: m["oxygenSaturation"] >= 95,
            recommendation=Recommendation(
                category="vitals",
                priority="positive",
                title="Excellent Oxygen Levels",
                message="Your blood oxygen saturation is in the optimal range.",
            ),
        ),
        Rule(
            when=lambda m: m["bloodPressureSystolic"] > 140 or m["bloodPressureDiastolic"] > 90,
            alert=Alert(
                type="warning",
                category="vitals",
                message=(
                    "Elevated blood pressure detected. "
                    "Monitor regularly and consult healthcare provider."
                ),
            ),
        ),
    ),
)


# Processing order is also the order recommendations and alerts are merged in
CATEGORY_CONFIGS: dict[str, CategoryConfig] = {
    cfg.name: cfg for cfg in (ACTIVITY, HEART, SLEEP, BODY, VITALS)
}

ANALYZED_CATEGORIES = tuple(CATEGORY_CONFIGS)
