"""
fallback.py — Synthetic weather used when every provider fails.

The current-conditions fallback is fixed, so repeated failures publish
the same snapshot. The forecast fallback is bounded random data; pass a
seeded ``random.Random`` to make it reproducible.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import List, Optional

from floodwatch.ingestion.models import ForecastEntry, WeatherSnapshot, utcnow

FALLBACK_SOURCE = "fallback"


def fallback_snapshot(zone_id: str, now: Optional[datetime] = None) -> WeatherSnapshot:
    """Typical monsoon-season conditions for Guwahati."""
    return WeatherSnapshot(
        temperature=28.0,
        feels_like=32.0,
        humidity=78.0,
        wind_speed=4.2,
        wind_direction=180.0,
        pressure=1004.0,
        visibility=8.0,
        weather_code=1001,
        rain_intensity=2.5,
        cloud_cover=65.0,
        uv_index=4.0,
        timestamp=now or utcnow(),
        location=zone_id or "Guwahati",
        source=FALLBACK_SOURCE,
    )


def fallback_forecast(
    hours: int = 6,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> List[ForecastEntry]:
    """
    ``hours`` hourly entries starting one hour after ``now``.

    Ranges: temperature 26–30 °C, humidity 70–90 %, wind 3–6 m/s, rain
    probability either 30 % (with 2 mm/h) or 0.
    """
    rng = rng or random.Random()
    start = (now or utcnow()).replace(minute=0, second=0, microsecond=0)

    entries: List[ForecastEntry] = []
    for i in range(max(hours, 0)):
        raining = rng.random() > 0.7
        rain = 2.0 if raining else 0.0
        entries.append(ForecastEntry(
            time=start + timedelta(hours=i + 1),
            temperature=round(26.0 + rng.random() * 4.0, 1),
            humidity=round(70.0 + rng.random() * 20.0, 1),
            wind_speed=round(3.0 + rng.random() * 3.0, 1),
            rain_probability=30.0 if raining else 0.0,
            rain_intensity=rain,
            precipitation=rain,
            weather_code=1001,
        ))
    return entries
