"""Generic per-category analysis driven by a :class:`CategoryConfig`."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from vitalsync.core.storage.models import MetricSnapshot
from vitalsync.domains.health.domain_logic.categories import (
    CATEGORY_CONFIGS,
    AverageSpec,
    CategoryConfig,
    TrendSpec,
)
from vitalsync.domains.health.domain_logic.insight_models import CategoryInsight
from vitalsync.domains.health.domain_logic.trend_calculators import (
    mean,
    round_half_up,
    trend_percentage,
)

logger = logging.getLogger(__name__)


def _reading(value):
    """A stored value, with NaN and infinities read as missing."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _series(
    snapshots: Sequence[MetricSnapshot], column: str, *, exclude_zero: bool
) -> list[float]:
    """Column values in window order; NULL counts as 0 unless zeros are excluded."""
    values = [_reading(snap.get(column)) or 0 for snap in snapshots]
    if exclude_zero:
        values = [v for v in values if v > 0]
    return values


class CategoryAnalyzer:
    """Derives current values, weekly averages, trends, and rule output.

    Usage::

        analyzer = CategoryAnalyzer(CATEGORY_CONFIGS["heart"])
        insight = analyzer.analyze(weekly_rows, monthly_rows)
    """

    def __init__(self, config: CategoryConfig) -> None:
        self._config = config

    @property
    def category(self) -> str:
        return self._config.name

    @property
    def config(self) -> CategoryConfig:
        return self._config

    def analyze(
        self,
        weekly: Sequence[MetricSnapshot],
        monthly: Sequence[MetricSnapshot],
    ) -> CategoryInsight:
        """Analyze one category.

        Args:
            weekly: 7-day window, newest first.
            monthly: 30-day window, newest first.

        Returns:
            A :class:`CategoryInsight`; empty (``has_data=False``) when both
            windows are empty.
        """
        insight = CategoryInsight(category=self.category)
        latest = monthly[0] if monthly else (weekly[0] if weekly else None)
        if latest is None:
            return insight

        insight.has_data = True
        insight.current = self.current_values(latest)

        for spec in self._config.averages:
            avg = self._weekly_average(weekly, spec)
            if avg is not None:
                insight.weekly_averages[spec.key] = avg

        windows = {"weekly": weekly, "monthly": monthly}
        for spec in self._config.trends:
            trend = self._trend(windows[spec.window], spec)
            if trend is not None:
                insight.trends[spec.key] = trend

        for rule in self._config.rules:
            if not rule.when(insight.current):
                continue
            if rule.alert is not None:
                insight.alerts.append(rule.alert)
            if rule.recommendation is not None:
                insight.recommendations.append(rule.recommendation)

        logger.debug(
            "%s: %d recommendations, %d alerts, trends=%s",
            self.category,
            len(insight.recommendations),
            len(insight.alerts),
            insight.trends,
        )
        return insight

    def current_values(self, snapshot: MetricSnapshot) -> dict[str, float]:
        """Latest readings keyed by output name, NULLs replaced by field defaults."""
        current = {}
        for f in self._config.fields:
            value = _reading(snapshot.get(f.column))
            current[f.key] = f.default if value is None else value
        return current

    @staticmethod
    def _weekly_average(
        weekly: Sequence[MetricSnapshot], spec: AverageSpec
    ) -> float | None:
        avg = mean(_series(weekly, spec.column, exclude_zero=spec.exclude_zero))
        if avg is None:
            return None
        if spec.digits == 0:
            return int(round_half_up(avg))
        return round_half_up(avg, spec.digits)

    @staticmethod
    def _trend(window: Sequence[MetricSnapshot], spec: TrendSpec) -> float | None:
        values = _series(window, spec.column, exclude_zero=spec.exclude_zero)
        if len(values) < spec.min_points:
            return None
        n = spec.slice_size
        return trend_percentage(values[:n], values[n : 2 * n])


def default_analyzers() -> list[CategoryAnalyzer]:
    """One analyzer per configured category, in processing order."""
    return [CategoryAnalyzer(config) for config in CATEGORY_CONFIGS.values()]
