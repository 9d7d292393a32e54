"""Composite health score.

Each component maps one current reading to a 0-100 sub-score. The composite
is the weighted mean over the components actually present, so a missing
category neither drags the score down nor inflates the divisor.
"""

from __future__ import annotations

import math
from collections.abc import Mapping

from vitalsync.domains.health.domain_logic.insight_models import (
    DataAvailability,
    HealthScore,
)
from vitalsync.domains.health.domain_logic.trend_calculators import round_half_up

# ---------------------------------------------------------------------------
# Weight tables
# ---------------------------------------------------------------------------

WEIGHT_SCHEMES: dict[str, dict[str, float]] = {
    # Four equally weighted readings
    "baseline": {"steps": 0.25, "heart": 0.25, "sleep": 0.25, "vitals": 0.25},
    # Activity and sleep weighted up, step consistency rewarded, SpO2 dropped
    "enhanced": {"steps": 0.30, "sleep": 0.30, "heart": 0.25, "consistency": 0.15},
}

DEFAULT_SCHEME = "baseline"


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------

def steps_sub_score(steps: float) -> float:
    return min(100.0, steps / 10000 * 100)


def resting_heart_sub_score(rhr: float) -> float:
    if 50 <= rhr <= 70:
        return 100.0
    if 70 < rhr <= 90:
        return 75.0
    if 40 <= rhr < 50:
        return 85.0
    return 50.0


def sleep_sub_score(hours: float) -> float:
    if 7 <= hours <= 9:
        return 100.0
    if 6 <= hours < 7:
        return 80.0
    if 9 < hours <= 10:
        return 85.0
    return 50.0


def oxygen_sub_score(spo2: float) -> float:
    if spo2 >= 95:
        return 100.0
    if spo2 >= 90:
        return 75.0
    return 50.0


def score_components(
    current_metrics: Mapping[str, float],
    *,
    step_consistency: float | None = None,
) -> dict[str, float]:
    """Sub-scores for every component whose reading is present.

    A reading of 0 counts as absent. ``step_consistency`` is None when there
    were too few weekly step samples, or no steps at all, to judge consistency.
    """
    components: dict[str, float] = {}
    steps = current_metrics.get("steps") or 0
    if steps > 0:
        components["steps"] = steps_sub_score(steps)
    rhr = current_metrics.get("restingHeartRate") or 0
    if rhr > 0:
        components["heart"] = resting_heart_sub_score(rhr)
    hours = current_metrics.get("sleepHours") or 0
    if hours > 0:
        components["sleep"] = sleep_sub_score(hours)
    spo2 = current_metrics.get("oxygenSaturation") or 0
    if spo2 > 0:
        components["vitals"] = oxygen_sub_score(spo2)
    if step_consistency is not None:
        components["consistency"] = step_consistency
    return components


def compute_health_score(
    components: Mapping[str, float],
    *,
    scheme: str = DEFAULT_SCHEME,
    data_availability: DataAvailability = "partial",
) -> HealthScore:
    """Weighted mean of the present components under a weight scheme.

    Components the scheme does not weight are ignored. With nothing to score,
    or a non-finite result, the value is 0 and availability is ``no_data``.

    Raises:
        ValueError: If ``scheme`` is not a known weight table.
    """
    if scheme not in WEIGHT_SCHEMES:
        raise ValueError(
            f"Unknown weight scheme: {scheme!r}. Valid: {sorted(WEIGHT_SCHEMES)}"
        )
    weights = WEIGHT_SCHEMES[scheme]

    used = {name: value for name, value in components.items() if name in weights}
    total_weight = sum(weights[name] for name in used)
    if not used or total_weight <= 0:
        return HealthScore(value=0, data_availability="no_data", scheme=scheme)

    weighted = sum(value * weights[name] for name, value in used.items())
    score = weighted / total_weight
    if not math.isfinite(score):
        return HealthScore(value=0, data_availability="no_data", scheme=scheme)

    return HealthScore(
        value=int(max(0, min(100, round_half_up(score)))),
        data_availability=data_availability,
        scheme=scheme,
        components={name: round_half_up(value, 1) for name, value in used.items()},
        weights={name: weights[name] for name in used},
    )
