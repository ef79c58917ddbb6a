"""
classifier.py — Pure risk classification functions.

Water-level status
==================
    ratio = estimated_level / danger_level

    ratio < 0.70          → normal   (stable)
    0.70 ≤ ratio < 0.85   → alert    (moderate)
    0.85 ≤ ratio < 1.00   → warning  (rising)
    ratio ≥ 1.00          → danger   (critical)

Every tier is closed at its lower bound: exactly 0.70 is ``alert``.

Weather risk
============
    rain intensity   > 10 mm/h → +3,  > 5 → +2,  > 0 → +1
    humidity > 85 % AND pressure < 1000 hPa (monsoon trough) → +2
    each active high-severity warning   → +3
    each active medium-severity warning → +1

    score ≥ 6 → high,  score ≥ 3 → medium,  else low

Combined zone risk
==================
Either signal alone escalates — neither dominates:

    high    if water status is danger  OR weather risk is high
    medium  if water status is warning/alert OR weather risk is medium
    low     otherwise

All functions are deterministic and side-effect free. Non-finite inputs
or a non-positive danger level raise ClassificationError.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, Iterable, NamedTuple, Optional

from floodwatch.core.errors import ClassificationError
from floodwatch.ingestion.models import Severity, WeatherSnapshot, WeatherWarning
from floodwatch.risk.models import RiskTier, Trend, WaterLevelStatus

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

ALERT_RATIO = 0.70
WARNING_RATIO = 0.85
DANGER_RATIO = 1.00

HIGH_RISK_SCORE = 6
MEDIUM_RISK_SCORE = 3


class StatusDetails(NamedTuple):
    label_local: str
    trend: Trend
    color: str


STATUS_DETAILS: Dict[WaterLevelStatus, StatusDetails] = {
    WaterLevelStatus.NORMAL: StatusDetails("স্বাভাৱিক", Trend.STABLE, "green"),
    WaterLevelStatus.ALERT: StatusDetails("সতৰ্ক", Trend.MODERATE, "yellow"),
    WaterLevelStatus.WARNING: StatusDetails("সতৰ্কবাণী", Trend.RISING, "orange"),
    WaterLevelStatus.DANGER: StatusDetails("বিপদ", Trend.CRITICAL, "red"),
}

RECOMMENDED_ACTIONS: Dict[RiskTier, Dict[str, str]] = {
    RiskTier.HIGH: {
        "en": "Immediate evacuation recommended. Move to higher ground.",
        "as": "তৎক্ষণাত উদ্বাসন পৰামৰ্শ দিয়া হৈছে। ওখ ঠাইলৈ যাওক।",
    },
    RiskTier.MEDIUM: {
        "en": "Stay alert. Prepare emergency kit. Monitor updates.",
        "as": "সতৰ্ক থাকক। জৰুৰীকালীন কিট সাজু কৰক। আপডেট নিৰীক্ষণ কৰক।",
    },
    RiskTier.LOW: {
        "en": "Normal conditions. Continue monitoring.",
        "as": "স্বাভাৱিক পৰিস্থিতি। নিৰীক্ষণ জাৰি ৰাখক।",
    },
}


def _require_finite(name: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ClassificationError(f"{name} must be numeric", **{name: repr(value)})
    if not math.isfinite(value):
        raise ClassificationError(f"{name} must be finite", **{name: value})
    return value


# ═══════════════════════════════════════════════════════════════════════════
# Water level
# ═══════════════════════════════════════════════════════════════════════════

def classify_water_level(level: float, danger_level: float) -> WaterLevelStatus:
    """Map a level against its station's danger level to a status tier."""
    level = _require_finite("level", level)
    danger_level = _require_finite("danger_level", danger_level)
    if danger_level <= 0:
        raise ClassificationError("danger_level must be > 0", danger_level=danger_level)

    ratio = level / danger_level
    if ratio >= DANGER_RATIO:
        return WaterLevelStatus.DANGER
    if ratio >= WARNING_RATIO:
        return WaterLevelStatus.WARNING
    if ratio >= ALERT_RATIO:
        return WaterLevelStatus.ALERT
    return WaterLevelStatus.NORMAL


def status_details(status: WaterLevelStatus) -> StatusDetails:
    return STATUS_DETAILS[status]


# ═══════════════════════════════════════════════════════════════════════════
# Weather
# ═══════════════════════════════════════════════════════════════════════════

def weather_risk_score(
    snapshot: WeatherSnapshot,
    warnings: Iterable[WeatherWarning] = (),
    now: Optional[datetime] = None,
) -> int:
    """Accumulate the weather risk score; expired warnings do not count."""
    rain = _require_finite("rain_intensity", snapshot.rain_intensity)
    humidity = _require_finite("humidity", snapshot.humidity)
    pressure = _require_finite("pressure", snapshot.pressure)

    score = 0
    if rain > 10:
        score += 3
    elif rain > 5:
        score += 2
    elif rain > 0:
        score += 1

    if humidity > 85 and pressure < 1000:
        score += 2

    for warning in warnings:
        if not warning.is_active(now):
            continue
        if warning.severity == Severity.HIGH:
            score += 3
        elif warning.severity == Severity.MEDIUM:
            score += 1

    return score


def tier_for_score(score: int) -> RiskTier:
    if score >= HIGH_RISK_SCORE:
        return RiskTier.HIGH
    if score >= MEDIUM_RISK_SCORE:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def classify_weather_risk(
    snapshot: WeatherSnapshot,
    warnings: Iterable[WeatherWarning] = (),
    now: Optional[datetime] = None,
) -> RiskTier:
    return tier_for_score(weather_risk_score(snapshot, warnings, now))


# ═══════════════════════════════════════════════════════════════════════════
# Combined
# ═══════════════════════════════════════════════════════════════════════════

def combine_zone_risk(status: WaterLevelStatus, weather_risk: RiskTier) -> RiskTier:
    if status == WaterLevelStatus.DANGER or weather_risk == RiskTier.HIGH:
        return RiskTier.HIGH
    if status in (WaterLevelStatus.WARNING, WaterLevelStatus.ALERT) or weather_risk == RiskTier.MEDIUM:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def recommended_action(tier: RiskTier) -> Dict[str, str]:
    """Bilingual (English / Assamese) action text for a risk tier."""
    return dict(RECOMMENDED_ACTIONS.get(tier, RECOMMENDED_ACTIONS[RiskTier.LOW]))
