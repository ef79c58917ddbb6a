"""
providers.py — Fetch-and-adapt pipelines per data class.

Provider order
==============
    current / forecast:  Tomorrow.io (only when TOMORROW_API_KEY is set)
                         → Open-Meteo
    warnings:            IMD district nowcast RSS

Each attempt is bounded by its own timeout. A failed attempt is logged
and the next provider is tried; when every provider fails the last error
is re-raised and the caller substitutes fallback data.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from floodwatch.core.config import Settings
from floodwatch.core.errors import FloodWatchError, FormatError, TransportError
from floodwatch.hydrology.stations import DISTRICT_ALERT_NAMES
from floodwatch.ingestion.adapters import (
    adapt_imd_rss,
    adapt_open_meteo_current,
    adapt_open_meteo_forecast,
    adapt_tomorrow_forecast,
    adapt_tomorrow_realtime,
)
from floodwatch.ingestion.models import (
    Coordinates,
    ForecastEntry,
    WeatherSnapshot,
    WeatherWarning,
    utcnow,
)
from floodwatch.ingestion.source_client import (
    CoordinateStyle,
    PayloadKind,
    SourceClient,
    SourceConfig,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOMORROW = "tomorrow.io"
OPEN_METEO = "open-meteo"
IMD_RSS = "IMD RSS"

OPEN_METEO_HOURLY = [
    "temperature_2m",
    "relative_humidity_2m",
    "precipitation_probability",
    "precipitation",
    "rain",
    "surface_pressure",
    "wind_speed_10m",
    "cloud_cover",
    "weathercode",
]

Attempt = Tuple[SourceConfig, Callable[[Any], T]]


# ---------------------------------------------------------------------------
# Source configurations
# ---------------------------------------------------------------------------

def tomorrow_realtime_source(settings: Settings) -> SourceConfig:
    return SourceConfig(
        name=TOMORROW,
        url=f"{settings.TOMORROW_BASE_URL}/weather/realtime",
        params={"apikey": settings.TOMORROW_API_KEY, "units": "metric"},
        coordinate_style=CoordinateStyle.LOCATION,
        timeout_s=settings.SOURCE_TIMEOUT_S,
    )


def tomorrow_forecast_source(settings: Settings) -> SourceConfig:
    return SourceConfig(
        name=TOMORROW,
        url=f"{settings.TOMORROW_BASE_URL}/weather/forecast",
        params={"apikey": settings.TOMORROW_API_KEY, "timesteps": "1h", "units": "metric"},
        coordinate_style=CoordinateStyle.LOCATION,
        timeout_s=settings.SOURCE_TIMEOUT_S,
    )


def open_meteo_source(settings: Settings) -> SourceConfig:
    # GMT keeps the hourly timestamps comparable with our UTC clock.
    return SourceConfig(
        name=OPEN_METEO,
        url=f"{settings.OPEN_METEO_BASE_URL}/forecast",
        params={
            "current_weather": "true",
            "hourly": ",".join(OPEN_METEO_HOURLY),
            "timezone": "GMT",
            "forecast_days": 2,
        },
        coordinate_style=CoordinateStyle.LAT_LON,
        timeout_s=settings.SOURCE_TIMEOUT_S,
    )


def imd_rss_source(settings: Settings) -> SourceConfig:
    return SourceConfig(
        name=IMD_RSS,
        url=settings.IMD_RSS_URL,
        kind=PayloadKind.XML,
        coordinate_style=CoordinateStyle.NONE,
        timeout_s=settings.WARNINGS_TIMEOUT_S,
    )


def monitored_district_aliases() -> List[str]:
    return [alias for aliases in DISTRICT_ALERT_NAMES.values() for alias in aliases]


# ---------------------------------------------------------------------------
# Provider chain
# ---------------------------------------------------------------------------

async def _first_success(
    client: SourceClient,
    attempts: List[Attempt],
    coordinates: Optional[Coordinates],
) -> T:
    last_error: Optional[Exception] = None

    for source, adapt in attempts:
        try:
            payload = await client.fetch(source, coordinates)
            return adapt(payload.body)
        except FloodWatchError as e:
            last_error = e
        except (KeyError, TypeError, ValueError, AttributeError, IndexError) as e:
            last_error = FormatError(source.name, f"unexpected payload: {e}")
        logger.warning(
            "Source %s failed: %s", source.name, last_error,
            extra={"source": source.name},
        )

    if last_error is None:
        raise TransportError("none", "no provider configured")
    raise last_error


async def fetch_current(
    client: SourceClient,
    settings: Settings,
    coordinates: Coordinates,
    now: Optional[datetime] = None,
) -> WeatherSnapshot:
    """Current conditions from the first provider that answers."""
    now = now or utcnow()
    attempts: List[Attempt] = []
    if settings.TOMORROW_API_KEY:
        attempts.append((tomorrow_realtime_source(settings), adapt_tomorrow_realtime))
    attempts.append((
        open_meteo_source(settings),
        lambda body: adapt_open_meteo_current(body, now=now),
    ))
    return await _first_success(client, attempts, coordinates)


async def fetch_forecast(
    client: SourceClient,
    settings: Settings,
    coordinates: Coordinates,
    now: Optional[datetime] = None,
) -> List[ForecastEntry]:
    """Hourly forecast bounded by FORECAST_HORIZON."""
    now = now or utcnow()
    horizon = settings.FORECAST_HORIZON
    attempts: List[Attempt] = []
    if settings.TOMORROW_API_KEY:
        attempts.append((
            tomorrow_forecast_source(settings),
            lambda body: adapt_tomorrow_forecast(body, horizon),
        ))
    attempts.append((
        open_meteo_source(settings),
        lambda body: adapt_open_meteo_forecast(body, horizon, now=now),
    ))
    return await _first_success(client, attempts, coordinates)


async def fetch_warnings(client: SourceClient, settings: Settings) -> List[WeatherWarning]:
    """IMD warnings for the monitored districts."""
    aliases = monitored_district_aliases()
    attempts: List[Attempt] = [
        (imd_rss_source(settings), lambda body: adapt_imd_rss(body, aliases)),
    ]
    return await _first_success(client, attempts, None)
