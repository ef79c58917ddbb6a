"""
adapters.py — Provider payload → internal weather records.

One total normalisation function per provider payload. Each function
owns all defaulting for its provider: a missing or null numeric field
takes the documented default below, so no consumer ever branches on
absence.

    Field            Default      Field            Default
    ─────────────    ───────      ─────────────    ───────
    temperature      28 °C        visibility       10 km
    feels_like       temperature  weather_code     1001 (cloudy)
    humidity         70 %         rain_intensity   0 mm/h
    wind_speed       3 m/s        cloud_cover      50 %
    wind_direction   0°           uv_index         5
    pressure         1013 hPa

Missing *structure* (no ``data.values`` block, no forecast timeline,
a feed that is not RSS) is a FormatError: the caller falls back.

Condition codes
===============
Internally we use the Tomorrow.io code space. Open-Meteo reports WMO
codes, translated by ``convert_wmo_code`` — unknown codes become 1001
(cloudy) rather than failing.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from floodwatch.core.errors import FormatError
from floodwatch.ingestion.models import (
    SEVERITY_ORDER,
    ForecastEntry,
    Severity,
    WeatherSnapshot,
    WeatherWarning,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

CONDITION_CLEAR = 1000
CONDITION_CLOUDY = 1001

DEFAULTS: Dict[str, float] = {
    "temperature": 28.0,
    "humidity": 70.0,
    "wind_speed": 3.0,
    "wind_direction": 0.0,
    "pressure": 1013.0,
    "visibility": 10.0,
    "rain_intensity": 0.0,
    "cloud_cover": 50.0,
    "uv_index": 5.0,
    "rain_probability": 0.0,
}

# WMO code ranges → internal (Tomorrow.io) condition codes.
WMO_CODE_TABLE: List[tuple] = [
    (0, 0, 1000),      # clear
    (1, 3, 1100),      # mainly clear / partly cloudy / overcast
    (45, 48, 2000),    # fog
    (51, 57, 4000),    # drizzle
    (61, 67, 4001),    # rain
    (71, 77, 5000),    # snow
    (80, 82, 4200),    # rain showers
    (85, 86, 5100),    # snow showers
    (95, 99, 8000),    # thunderstorm
]

WEATHER_ICONS: Dict[int, str] = {
    1000: "sun",
    1001: "cloud",
    1100: "cloud-sun",
    1101: "cloud-sun",
    1102: "cloud",
    2000: "fog",
    2100: "fog",
    3000: "wind",
    3001: "wind",
    3002: "wind",
    4000: "cloud-rain",
    4001: "cloud-rain",
    4200: "cloud-rain",
    4201: "cloud-rain",
    5000: "snow",
    5001: "snow",
    5100: "snow",
    5101: "snow",
    6000: "cloud-rain",
    6001: "cloud-rain",
    6200: "cloud-rain",
    6201: "cloud-rain",
    7000: "cloud-hail",
    7101: "cloud-hail",
    7102: "cloud-hail",
    8000: "cloud-lightning",
}

# Condition code → (English, Assamese). Codes without an Assamese
# rendering show the English text.
WEATHER_DESCRIPTIONS: Dict[int, tuple] = {
    1000: ("Clear sky", "পৰিষ্কাৰ আকাশ"),
    1100: ("Mainly clear", "মুখ্যতঃ পৰিষ্কাৰ"),
    1101: ("Partly cloudy", "আংশিক মেঘাচ্ছন্ন"),
    1102: ("Mostly cloudy", "মেঘাচ্ছন্ন"),
    1001: ("Cloudy", "মেঘাচ্ছন্ন"),
    2000: ("Fog", "কুঁৱলী"),
    2100: ("Light fog", "কুঁৱলী"),
    3000: ("Light wind", None),
    3001: ("Wind", None),
    3002: ("Strong wind", None),
    4000: ("Drizzle", "লঘু বৰষুণ"),
    4001: ("Rain", "মধ্যম বৰষুণ"),
    4200: ("Rain showers", "বৰষুণ জাক"),
    4201: ("Heavy rain", "প্ৰচণ্ড বৰষুণ"),
    5000: ("Snow", None),
    5001: ("Flurries", None),
    5100: ("Snow showers", None),
    5101: ("Heavy snow", None),
    6000: ("Freezing drizzle", None),
    6001: ("Freezing rain", None),
    6200: ("Light freezing rain", None),
    6201: ("Heavy freezing rain", None),
    7000: ("Ice pellets", None),
    7101: ("Heavy ice pellets", None),
    7102: ("Light ice pellets", None),
    8000: ("Thunderstorm", "ধুমুহা"),
}

UNKNOWN_DESCRIPTION = ("Unknown", "অজ্ঞাত")

HIGH_SEVERITY_TERMS =("very likely", "heavy", "severe", "extreme")
MEDIUM_SEVERITY_TERMS = ("likely", "moderate", "thunder")

_TAG_RE = re.compile(r"<[^>]+>")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _num(values: Mapping[str, Any], key: str, default: float) -> float:
    """Numeric field or default; None, missing and non-numeric all default."""
    raw = values.get(key) if values else None
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _code(raw: Any, default: int = CONDITION_CLOUDY) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _at(series: Optional[List[Any]], index: int) -> Any:
    if not series or index < 0 or index >= len(series):
        return None
    return series[index]


def convert_wmo_code(wmo_code: Any) -> int:
    """Translate a WMO weather code; unknown codes map to cloudy."""
    try:
        code = int(wmo_code)
    except (TypeError, ValueError):
        return CONDITION_CLOUDY
    for low, high, internal in WMO_CODE_TABLE:
        if low <= code <= high:
            return internal
    return CONDITION_CLOUDY


def weather_icon(code: Any) -> str:
    """Icon name for an internal condition code, default ``cloud``."""
    return WEATHER_ICONS.get(_code(code), "cloud")


def weather_description(code: Any, language: str = "en") -> str:
    """
    Human-readable condition for an internal code.

    ``language`` is ``"en"`` or ``"as"`` (Assamese). Unknown codes read
    "Unknown" / "অজ্ঞাত".
    """
    english, local = WEATHER_DESCRIPTIONS.get(_code(code, default=-1), UNKNOWN_DESCRIPTION)
    if language == "as":
        return local or english
    return english


# ---------------------------------------------------------------------------
# Tomorrow.io
# ---------------------------------------------------------------------------

def adapt_tomorrow_realtime(payload: Dict[str, Any], source: str = "tomorrow.io") -> WeatherSnapshot:
    """
    Normalise a Tomorrow.io ``/weather/realtime`` response.

    Shape:
        {"data": {"time": "...", "values": {"temperature": 27.4, ...}},
         "location": {"name": "..."}}
    """
    data = payload.get("data") if isinstance(payload, dict) else None
    values = data.get("values") if isinstance(data, dict) else None
    if not isinstance(values, dict):
        raise FormatError(source, "missing data.values")

    temperature = _num(values, "temperature", DEFAULTS["temperature"])
    location = payload.get("location") or {}

    return WeatherSnapshot(
        temperature=temperature,
        feels_like=_num(values, "temperatureApparent", temperature),
        humidity=_num(values, "humidity", DEFAULTS["humidity"]),
        wind_speed=_num(values, "windSpeed", DEFAULTS["wind_speed"]),
        wind_direction=_num(values, "windDirection", DEFAULTS["wind_direction"]),
        pressure=_num(values, "pressureSurfaceLevel", DEFAULTS["pressure"]),
        visibility=_num(values, "visibility", DEFAULTS["visibility"]),
        weather_code=_code(values.get("weatherCode")),
        rain_intensity=_num(values, "rainIntensity", DEFAULTS["rain_intensity"]),
        cloud_cover=_num(values, "cloudCover", DEFAULTS["cloud_cover"]),
        uv_index=_num(values, "uvIndex", DEFAULTS["uv_index"]),
        timestamp=parse_timestamp(data.get("time")) or utcnow(),
        location=location.get("name") or "Guwahati",
        source=source,
    )


def _tomorrow_intervals(payload: Any) -> List[Any]:
    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if isinstance(data, dict):
        timelines = data.get("timelines")
        if isinstance(timelines, list) and timelines and isinstance(timelines[0], dict):
            return timelines[0].get("intervals") or []
    timelines = payload.get("timelines")
    if isinstance(timelines, dict):
        return timelines.get("hourly") or []
    return []


def adapt_tomorrow_forecast(
    payload: Dict[str, Any],
    horizon: int = 6,
    source: str = "tomorrow.io",
) -> List[ForecastEntry]:
    """
    Normalise the first ``horizon`` hourly intervals of a forecast.

    Accepts the timelines shape ``data.timelines[0].intervals`` and the
    forecast endpoint shape ``timelines.hourly``.
    """
    intervals = _tomorrow_intervals(payload)
    if not intervals:
        raise FormatError(source, "missing forecast intervals")

    entries: List[ForecastEntry] = []
    for interval in intervals[:horizon]:
        if not isinstance(interval, dict):
            continue
        values = interval.get("values") or {}
        rain = _num(values, "rainIntensity", DEFAULTS["rain_intensity"])
        entries.append(ForecastEntry(
            time=parse_timestamp(interval.get("startTime") or interval.get("time")) or utcnow(),
            temperature=_num(values, "temperature", DEFAULTS["temperature"]),
            humidity=_num(values, "humidity", DEFAULTS["humidity"]),
            wind_speed=_num(values, "windSpeed", DEFAULTS["wind_speed"]),
            rain_probability=_num(values, "precipitationProbability", DEFAULTS["rain_probability"]),
            rain_intensity=rain,
            precipitation=rain,
            weather_code=_code(values.get("weatherCode")),
        ))
    return entries


# ---------------------------------------------------------------------------
# Open-Meteo
# ---------------------------------------------------------------------------

def _current_hour_index(times: List[str], now: datetime) -> int:
    """Latest hourly slot at or before ``now``."""
    best = 0
    for i, ts in enumerate(times):
        dt = parse_timestamp(ts)
        if dt is not None and dt <= now:
            best = i
    return best


def adapt_open_meteo_current(
    payload: Dict[str, Any],
    now: Optional[datetime] = None,
    source: str = "open-meteo",
) -> WeatherSnapshot:
    """
    Normalise an Open-Meteo forecast response with ``current_weather=true``.

    Open-Meteo has no feels-like, visibility or UV in this request, so those
    take the table defaults; humidity, pressure and rain are read from the
    hourly series at the current hour when present.
    """
    current = payload.get("current_weather") if isinstance(payload, dict) else None
    if not isinstance(current, dict):
        raise FormatError(source, "missing current_weather")

    now = now or utcnow()
    hourly = payload.get("hourly") or {}
    idx = _current_hour_index(hourly.get("time") or [], now)

    def hourly_num(key: str, default: float) -> float:
        return _num({key: _at(hourly.get(key), idx)}, key, default)

    temperature = _num(current, "temperature", DEFAULTS["temperature"])
    rain = hourly_num("rain", hourly_num("precipitation", DEFAULTS["rain_intensity"]))

    return WeatherSnapshot(
        temperature=temperature,
        feels_like=temperature,
        humidity=hourly_num("relative_humidity_2m", DEFAULTS["humidity"]),
        wind_speed=_num(current, "windspeed", DEFAULTS["wind_speed"]),
        wind_direction=_num(current, "winddirection", DEFAULTS["wind_direction"]),
        pressure=hourly_num("surface_pressure", DEFAULTS["pressure"]),
        visibility=DEFAULTS["visibility"],
        weather_code=convert_wmo_code(current.get("weathercode")),
        rain_intensity=rain,
        cloud_cover=hourly_num("cloud_cover", DEFAULTS["cloud_cover"]),
        uv_index=DEFAULTS["uv_index"],
        timestamp=parse_timestamp(current.get("time")) or now,
        location="Guwahati",
        source=source,
    )


def adapt_open_meteo_forecast(
    payload: Dict[str, Any],
    horizon: int = 6,
    now: Optional[datetime] = None,
    source: str = "open-meteo",
) -> List[ForecastEntry]:
    """Next ``horizon`` hourly slots that have not started yet."""
    hourly = payload.get("hourly") if isinstance(payload, dict) else None
    times = hourly.get("time") if isinstance(hourly, dict) else None
    if not times:
        raise FormatError(source, "missing hourly.time")

    now = now or utcnow()
    entries: List[ForecastEntry] = []

    for i, ts in enumerate(times):
        slot = parse_timestamp(ts)
        if slot is None or slot < now:
            continue
        row = {key: _at(series, i) for key, series in hourly.items() if isinstance(series, list)}
        rain = _num(row, "rain", _num(row, "precipitation", 0.0))
        entries.append(ForecastEntry(
            time=slot,
            temperature=_num(row, "temperature_2m", DEFAULTS["temperature"]),
            humidity=_num(row, "relative_humidity_2m", DEFAULTS["humidity"]),
            wind_speed=_num(row, "wind_speed_10m", DEFAULTS["wind_speed"]),
            rain_probability=_num(row, "precipitation_probability", DEFAULTS["rain_probability"]),
            rain_intensity=rain,
            precipitation=_num(row, "precipitation", rain),
            weather_code=convert_wmo_code(row.get("weathercode")),
        ))
        if len(entries) >= horizon:
            break

    return entries


# ---------------------------------------------------------------------------
# IMD RSS warnings
# ---------------------------------------------------------------------------

def determine_severity(description: str) -> Severity:
    """Severity from warning wording; checked high terms first."""
    if not description:
        return Severity.LOW
    text = description.lower()
    if any(term in text for term in HIGH_SEVERITY_TERMS):
        return Severity.HIGH
    if any(term in text for term in MEDIUM_SEVERITY_TERMS):
        return Severity.MEDIUM
    return Severity.LOW


def _find_text(item: ET.Element, tag: str) -> str:
    """Text of the first child whose local name matches, ignoring namespaces."""
    for child in item:
        local = child.tag.rsplit("}", 1)[-1]
        if local.lower() == tag.lower():
            return (child.text or "").strip()
    return ""


def _is_relevant(title: str, district_aliases: Iterable[str]) -> bool:
    return any(alias in title for alias in district_aliases)


def sort_warnings(warnings: List[WeatherWarning]) -> List[WeatherWarning]:
    """High severity first; within a tier, newest onset first."""
    def onset_key(w: WeatherWarning) -> float:
        return -(w.onset.timestamp()) if w.onset else 0.0

    return sorted(warnings, key=lambda w: (SEVERITY_ORDER[w.severity], onset_key(w)))


def adapt_imd_rss(
    xml_text: str,
    district_aliases: Iterable[str],
    source: str = "IMD RSS",
) -> List[WeatherWarning]:
    """
    Parse the IMD district nowcast RSS feed into warnings.

    Items for districts outside ``district_aliases`` and items without a
    description are dropped; a malformed item is skipped, a malformed feed
    is a FormatError.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise FormatError(source, f"XML parse error: {e}")

    aliases = [a.upper() for a in district_aliases]
    warnings: List[WeatherWarning] = []

    for item in root.iter():
        if item.tag.rsplit("}", 1)[-1] != "item":
            continue
        try:
            title = _find_text(item, "title").upper()
            description = _TAG_RE.sub("", _find_text(item, "description")).strip()
            if not description or not _is_relevant(title, aliases):
                continue
            warnings.append(WeatherWarning(
                district=title,
                description=description,
                severity=determine_severity(description),
                onset=parse_timestamp(_find_text(item, "onset")),
                expires=parse_timestamp(_find_text(item, "expires")),
                category=_find_text(item, "category"),
                source=source,
            ))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Skipping malformed RSS item: %s", e)

    return sort_warnings(warnings)
