"""Data models and column catalog for the metric store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Column catalog
# ---------------------------------------------------------------------------

# Device payload key -> table column, per category. Order matches the DDL.
CATEGORY_COLUMNS: dict[str, dict[str, str]] = {
    "activity": {
        "steps": "steps",
        "calories": "calories",
        "distance": "distance",
        "exerciseMinutes": "exercise_minutes",
    },
    "heart": {
        "currentHeartRate": "current_heart_rate",
        "restingHeartRate": "resting_heart_rate",
        "hrv": "hrv",
    },
    "sleep": {
        "totalSleep": "total_sleep",
        "deepSleep": "deep_sleep",
        "remSleep": "rem_sleep",
        "sleepHours": "sleep_hours",
    },
    "body": {
        "weight": "weight",
        "bmi": "bmi",
        "bodyFat": "body_fat",
        "leanMass": "lean_mass",
        "vo2Max": "vo2_max",
    },
    "vitals": {
        "bloodPressureSystolic": "bp_systolic",
        "bloodPressureDiastolic": "bp_diastolic",
        "spo2": "spo2",
        "temperature": "temperature",
    },
    "health": {
        "condition": "condition",
        "allergies": "allergies",
        "medications": "medications",
    },
    "health_history": {
        "pastConditions": "past_conditions",
        "surgeries": "surgeries",
        "familyHistory": "family_history",
        "history": "history",
    },
}

# Categories whose columns are numeric and feed the insights engine
NUMERIC_CATEGORIES = ("activity", "heart", "sleep", "body", "vitals")

# Free-text categories: stored, never analyzed
TEXT_CATEGORIES = ("health", "health_history")

CATEGORY_TABLES = {name: f"{name}_data" for name in CATEGORY_COLUMNS}


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MetricSnapshot:
    """One timestamped record of metric values for a user/device/category.

    ``values`` is keyed by table column (e.g. ``resting_heart_rate``);
    a ``None`` value means the device did not report that field.
    """

    id: int
    user_id: str
    device_name: str
    category: str
    timestamp: str  # ISO 8601, UTC
    values: dict[str, Any] = field(default_factory=dict)

    @property
    def day(self) -> str:
        """Calendar day (UTC) of the snapshot, ``YYYY-MM-DD``."""
        return self.timestamp[:10]

    def get(self, column: str) -> Any:
        return self.values.get(column)


@dataclass(frozen=True)
class DailyAverage:
    """Per-day mean of every numeric column of a category."""

    day: str  # YYYY-MM-DD
    samples: int
    averages: dict[str, float | None] = field(default_factory=dict)


@dataclass
class RawPayload:
    """An archived device payload, decrypted."""

    id: int
    user_id: str | None
    device_name: str
    endpoint: str
    data: Any = None
    day_label: str | None = None
    created_at: str = ""
