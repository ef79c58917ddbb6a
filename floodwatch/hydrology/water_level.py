"""
water_level.py — Rainfall-driven river level estimation.

Used in place of live gauge telemetry, which requires government
credentials. The estimate is coarse by construction.

Rainfall → level correlation (Brahmaputra basin, approximate)
=============================================================

    Band        24h rainfall     Level rise    Time to peak
    ─────────   ─────────────    ──────────    ────────────
    light       < 10 mm          0.1 m         12 h
    moderate    10 – 30 mm       0.3 m          8 h
    heavy       30 – 70 mm       0.8 m          6 h
    very heavy  ≥ 70 mm          1.5 m          4 h

Estimated level
===============
    observed level known:  level = observed + rise
    otherwise:             level = baseline_ratio × danger_level + rise

The baseline ratio (0.6 by default, ``BASELINE_DANGER_RATIO``) stands in
for the missing gauge reading; it is a heuristic, not a measurement.
With the default ratio a rainfall-only estimate can never leave the
``normal`` tier (0.6 + 1.5 / danger_level < 0.7 for every station), so
escalation to ``danger`` needs an observed level.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from enum import Enum
from typing import Dict, NamedTuple, Optional

from floodwatch.hydrology.stations import station_for_zone
from floodwatch.ingestion.models import utcnow
from floodwatch.risk.classifier import classify_water_level, status_details
from floodwatch.risk.models import WaterLevelEstimate

logger = logging.getLogger(__name__)

DEFAULT_BASELINE_RATIO = 0.6


class RainfallBand(str, Enum):
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"
    VERY_HEAVY = "veryHeavy"


class BandCorrelation(NamedTuple):
    threshold_mm: float     # inclusive lower bound of the band
    level_rise_m: float
    time_lag_h: int


RAINFALL_CORRELATION: Dict[RainfallBand, BandCorrelation] = {
    RainfallBand.LIGHT: BandCorrelation(0.0, 0.1, 12),
    RainfallBand.MODERATE: BandCorrelation(10.0, 0.3, 8),
    RainfallBand.HEAVY: BandCorrelation(30.0, 0.8, 6),
    RainfallBand.VERY_HEAVY: BandCorrelation(70.0, 1.5, 4),
}


def _sanitise_rainfall(rainfall_24h: Optional[float]) -> float:
    try:
        value = float(rainfall_24h or 0.0)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def classify_rainfall(rainfall_24h: float) -> RainfallBand:
    """Band for a 24-hour rainfall total (mm)."""
    rainfall = _sanitise_rainfall(rainfall_24h)
    if rainfall >= RAINFALL_CORRELATION[RainfallBand.VERY_HEAVY].threshold_mm:
        return RainfallBand.VERY_HEAVY
    if rainfall >= RAINFALL_CORRELATION[RainfallBand.HEAVY].threshold_mm:
        return RainfallBand.HEAVY
    if rainfall >= RAINFALL_CORRELATION[RainfallBand.MODERATE].threshold_mm:
        return RainfallBand.MODERATE
    return RainfallBand.LIGHT


class WaterLevelEstimator:
    """
    Estimates the level at a zone's governing station.

    Usage:
        estimator = WaterLevelEstimator(baseline_ratio=0.6)
        estimate = estimator.estimate("jalukbari", rainfall_24h=80)
        print(estimate.current_level, estimate.status)
    """

    def __init__(self, baseline_ratio: float = DEFAULT_BASELINE_RATIO):
        if not 0 < baseline_ratio <= 1.5:
            raise ValueError(f"baseline_ratio out of range: {baseline_ratio}")
        self.baseline_ratio = baseline_ratio

    def baseline_level(self, danger_level: float) -> float:
        return danger_level * self.baseline_ratio

    def estimate(
        self,
        zone_id: str,
        rainfall_24h: float = 0.0,
        known_current_level: Optional[float] = None,
        *,
        now: Optional[datetime] = None,
        source: Optional[str] = None,
    ) -> WaterLevelEstimate:
        """
        Estimate the water level for a zone. Never raises.

        Parameters
        ----------
        zone_id : str
            Unknown zones use the default (Guwahati) station.
        rainfall_24h : float
            24-hour rainfall in mm; negative or non-finite values count as 0.
        known_current_level : float | None
            Directly observed gauge level, when one exists.
        """
        station = station_for_zone(zone_id)
        rainfall = _sanitise_rainfall(rainfall_24h)
        correlation = RAINFALL_CORRELATION[classify_rainfall(rainfall)]

        observed = known_current_level is not None and math.isfinite(known_current_level)
        if observed:
            level = float(known_current_level) + correlation.level_rise_m
            note = source or "Observed gauge level plus rainfall correlation"
        else:
            level = self.baseline_level(station.danger_level) + correlation.level_rise_m
            note = source or "Calculated from rainfall correlation"

        status = classify_water_level(level, station.danger_level)
        details = status_details(status)

        logger.debug(
            "Estimated %s at %.2f m (%s, rain=%.1f mm)",
            station.station_id, level, status.value, rainfall,
        )

        return WaterLevelEstimate(
            station=station.name,
            station_local=station.name_local,
            current_level=round(level, 2),
            danger_level=station.danger_level,
            highest_flood_level=station.highest_flood_level,
            status=status,
            status_local=details.label_local,
            trend=details.trend,
            rainfall_24h=rainfall,
            estimated_rise=correlation.level_rise_m,
            time_to_peak_h=correlation.time_lag_h,
            last_updated=now or utcnow(),
            is_estimated=not observed,
            source=note,
        )


def estimate_water_level(
    zone_id: str,
    rainfall_24h: float = 0.0,
    known_current_level: Optional[float] = None,
    baseline_ratio: float = DEFAULT_BASELINE_RATIO,
) -> WaterLevelEstimate:
    """Convenience wrapper around WaterLevelEstimator.estimate()."""
    return WaterLevelEstimator(baseline_ratio).estimate(
        zone_id, rainfall_24h, known_current_level
    )
