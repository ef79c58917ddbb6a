"""
Shared fixtures: settings, canned provider payloads and a fake HTTP
transport routed by URL fragment.
"""

from __future__ import annotations

import asyncio
import json
import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx
import pytest

from floodwatch.core.cache import CacheStore
from floodwatch.core.config import Settings
from floodwatch.ingestion.source_client import SourceClient
from floodwatch.risk.aggregator import UnifiedAggregator

NOW = datetime(2024, 7, 1, 6, 30, tzinfo=timezone.utc)

OPEN_METEO = "open-meteo"
TOMORROW_REALTIME = "weather/realtime"
TOMORROW_FORECAST = "weather/forecast"
IMD = "imd.gov.in"


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "ENVIRONMENT": "test",
        "TOMORROW_API_KEY": None,
        "SOURCE_TIMEOUT_S": 2.0,
        "WARNINGS_TIMEOUT_S": 2.0,
        "STARTUP_DELAY_S": 0.0,
        "FULL_REFRESH_INTERVAL_S": 3600.0,
        "WARNINGS_REFRESH_INTERVAL_S": 3600.0,
    }
    values.update(overrides)
    return Settings(**values)


# ═══════════════════════════════════════════════════════════════════════════
# Provider payloads
# ═══════════════════════════════════════════════════════════════════════════

def open_meteo_payload(rain: float = 5.0, code: int = 61) -> Dict[str, Any]:
    hours = 24
    return {
        "current_weather": {
            "temperature": 29.5,
            "windspeed": 7.2,
            "winddirection": 190,
            "weathercode": code,
            "time": "2024-07-01T06:00",
        },
        "hourly": {
            "time": [f"2024-07-01T{h:02d}:00" for h in range(hours)],
            "temperature_2m": [26.0 + h * 0.1 for h in range(hours)],
            "relative_humidity_2m": [80] * hours,
            "precipitation_probability": [40] * hours,
            "precipitation": [rain] * hours,
            "rain": [rain] * hours,
            "surface_pressure": [1005.0] * hours,
            "wind_speed_10m": [5.0] * hours,
            "cloud_cover": [70] * hours,
            "weathercode": [code] * hours,
        },
    }


def tomorrow_realtime_payload(**values: Any) -> Dict[str, Any]:
    base = {
        "temperature": 27.4,
        "temperatureApparent": 31.0,
        "humidity": 88,
        "windSpeed": 3.5,
        "windDirection": 120,
        "pressureSurfaceLevel": 998,
        "visibility": 9.5,
        "weatherCode": 4001,
        "rainIntensity": 12.0,
        "cloudCover": 95,
        "uvIndex": 2,
    }
    base.update(values)
    return {
        "data": {"time": "2024-07-01T06:30:00Z", "values": base},
        "location": {"name": "Jalukbari, Guwahati"},
    }


def tomorrow_forecast_payload(hours: int = 8) -> Dict[str, Any]:
    return {
        "data": {
            "timelines": [{
                "timestep": "1h",
                "intervals": [
                    {
                        "startTime": f"2024-07-01T{7 + h:02d}:00:00Z",
                        "values": {
                            "temperature": 27 + h * 0.2,
                            "humidity": 85,
                            "windSpeed": 4,
                            "precipitationProbability": 60,
                            "rainIntensity": 1.5,
                            "weatherCode": 4000,
                        },
                    }
                    for h in range(hours)
                ],
            }],
        },
    }


IMD_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>IMD District Nowcast</title>
    <item>
      <title>SONITPUR</title>
      <description>Thunderstorm with lightning likely</description>
      <category>Nowcast</category>
      <Onset>2024-07-01T06:00:00Z</Onset>
      <Expires>2024-07-01T10:00:00Z</Expires>
    </item>
    <item>
      <title>KAMRUP METROPOLITAN</title>
      <description>&lt;b&gt;Heavy rain very likely&lt;/b&gt; at isolated places</description>
      <category>Nowcast</category>
      <Onset>2024-07-01T05:00:00Z</Onset>
      <Expires>2024-07-01T09:00:00Z</Expires>
    </item>
    <item>
      <title>DHUBRI</title>
      <description>Heavy rain very likely</description>
    </item>
    <item>
      <title>BARPETA</title>
      <description></description>
    </item>
  </channel>
</rss>
"""


# ═══════════════════════════════════════════════════════════════════════════
# Fake HTTP
# ═══════════════════════════════════════════════════════════════════════════

def json_response(payload: Any, status_code: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    body = json.dumps(payload).encode("utf-8")
    return lambda request: httpx.Response(
        status_code, content=body, headers={"content-type": "application/json"},
    )


def rss_response(text: str = IMD_RSS) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(
        200, text=text, headers={"content-type": "application/rss+xml; charset=utf-8"},
    )


def status_response(status_code: int) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status_code, text="unavailable")


def slow_response(delay_s: float, then: Callable[[httpx.Request], httpx.Response]):
    async def respond(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(delay_s)
        return then(request)
    return respond


def router_transport(routes: Dict[str, Callable]) -> httpx.MockTransport:
    """Dispatch on the first route whose fragment occurs in the URL."""

    async def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        for fragment, respond in routes.items():
            if fragment in url:
                result = respond(request)
                if asyncio.iscoroutine(result):
                    result = await result
                return result
        return httpx.Response(404, text="no route")

    return httpx.MockTransport(handler)


def healthy_routes(rain: float = 5.0) -> Dict[str, Callable]:
    return {
        OPEN_METEO: json_response(open_meteo_payload(rain=rain)),
        IMD: rss_response(),
    }


def make_aggregator(
    routes: Dict[str, Callable],
    settings: Optional[Settings] = None,
    aggregator_cls=UnifiedAggregator,
    **overrides: Any,
) -> UnifiedAggregator:
    settings = settings or make_settings(**overrides)
    client = SourceClient(httpx.AsyncClient(transport=router_transport(routes)))
    return aggregator_cls(settings, client, rng=random.Random(7), clock=lambda: NOW)


class MemoryCacheStore(CacheStore):
    """In-process store that records writes."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        super().__init__()
        self.data: Dict[str, Dict[str, Any]] = dict(initial or {})
        self.writes = 0

    async def get(self, zone_id):
        return self.data.get(zone_id)

    async def set(self, zone_id, value):
        self.data[zone_id] = json.loads(json.dumps(value))
        self.writes += 1
        return True

    async def delete(self, zone_id):
        return self.data.pop(zone_id, None) is not None


@pytest.fixture
def settings() -> Settings:
    return make_settings()
