"""Result types produced by the insights engine.

Python attributes are snake_case; ``to_dict()`` renders the camelCase
shape devices consume.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Priority = Literal["high", "medium", "positive"]
AlertType = Literal["warning", "critical"]
DataAvailability = Literal["no_data", "partial", "complete"]


@dataclass(frozen=True)
class Recommendation:
    category: str
    priority: Priority
    title: str
    message: str
    actionable: bool | None = None
    suggestion: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "category": self.category,
            "priority": self.priority,
            "title": self.title,
            "message": self.message,
        }
        if self.actionable is not None:
            out["actionable"] = self.actionable
        if self.suggestion is not None:
            out["suggestion"] = self.suggestion
        return out


@dataclass(frozen=True)
class Alert:
    type: AlertType
    category: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "category": self.category, "message": self.message}


@dataclass
class CategoryInsight:
    """Everything one analyzer derived for one category."""

    category: str
    has_data: bool = False
    current: dict[str, float] = field(default_factory=dict)
    weekly_averages: dict[str, float] = field(default_factory=dict)
    trends: dict[str, float] = field(default_factory=dict)
    recommendations: list[Recommendation] = field(default_factory=list)
    alerts: list[Alert] = field(default_factory=list)


@dataclass
class HealthScore:
    """Composite score plus an explicit data-availability flag.

    ``value`` 0 with ``data_availability == "no_data"`` means nothing could be
    scored, which is distinct from a low score computed from real readings.
    """

    value: int
    data_availability: DataAvailability
    scheme: str
    components: dict[str, float] = field(default_factory=dict)
    weights: dict[str, float] = field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        return bool(self.components)


@dataclass
class InsightResult:
    """Root aggregate returned for one insights request."""

    user_id: str
    generated_at: str
    current_metrics: dict[str, float] = field(default_factory=dict)
    weekly_averages: dict[str, float] = field(default_factory=dict)
    trends: dict[str, float] = field(default_factory=dict)
    health_score: HealthScore | None = None
    recommendations: list[Recommendation] = field(default_factory=list)
    alerts: list[Alert] = field(default_factory=list)
    weekly_summary: dict[str, Any] = field(default_factory=dict)
    monthly_progress: dict[str, Any] = field(default_factory=dict)
    streaks: dict[str, int] = field(default_factory=dict)
    personal_bests: dict[str, float] = field(default_factory=dict)
    sleep_debt_hours: float | None = None
    greeting: str = ""
    notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        score = self.health_score
        return {
            "currentMetrics": dict(self.current_metrics),
            "weeklyAverages": dict(self.weekly_averages),
            "trends": dict(self.trends),
            "healthScore": score.value if score else 0,
            "dataAvailability": score.data_availability if score else "no_data",
            "scoreBreakdown": {
                "scheme": score.scheme if score else None,
                "components": dict(score.components) if score else {},
                "weights": dict(score.weights) if score else {},
            },
            "recommendations": [r.to_dict() for r in self.recommendations],
            "alerts": [a.to_dict() for a in self.alerts],
            "weeklySummary": dict(self.weekly_summary),
            "monthlyProgress": dict(self.monthly_progress),
            "streaks": dict(self.streaks),
            "personalBests": dict(self.personal_bests),
            "sleepDebtHours": self.sleep_debt_hours,
            "personalization": {"greeting": self.greeting, "notes": list(self.notes)},
            "generatedAt": self.generated_at,
        }
