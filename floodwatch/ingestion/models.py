"""
models.py — Provider-agnostic weather records.

Every provider payload is normalised into these shapes by the format
adapters. Numeric fields are always defined floats once a record exists:
defaulting happens in exactly one place per provider (see adapters.py),
so consumers never branch on absence.

Condition codes use the Tomorrow.io code space (1000 = clear,
1001 = cloudy, 4001 = rain, 8000 = thunderstorm, ...). Codes from other
providers are translated on the way in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 or RFC-2822 timestamp into an aware datetime.

    Naive values are assumed to be UTC. Returns None for empty or
    unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                dt = parsedate_to_datetime(text)
            except (TypeError, ValueError):
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.latitude, "lng": self.longitude}


class Severity(str, Enum):
    """Warning severity tiers, lowest first."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


SEVERITY_ORDER = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


@dataclass
class WeatherSnapshot:
    """Current conditions at one location."""
    temperature: float = 28.0         # °C
    feels_like: float = 28.0          # °C
    humidity: float = 70.0            # %
    wind_speed: float = 3.0           # m/s
    wind_direction: float = 0.0       # degrees
    pressure: float = 1013.0          # hPa
    visibility: float = 10.0          # km
    weather_code: int = 1001
    rain_intensity: float = 0.0       # mm/h
    cloud_cover: float = 50.0         # %
    uv_index: float = 5.0
    timestamp: Optional[datetime] = None
    location: str = "Guwahati"
    source: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "feelsLike": self.feels_like,
            "humidity": self.humidity,
            "windSpeed": self.wind_speed,
            "windDirection": self.wind_direction,
            "pressure": self.pressure,
            "visibility": self.visibility,
            "weatherCode": self.weather_code,
            "rainIntensity": self.rain_intensity,
            "cloudCover": self.cloud_cover,
            "uvIndex": self.uv_index,
            "timestamp": _iso(self.timestamp),
            "location": self.location,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeatherSnapshot":
        return cls(
            temperature=float(data["temperature"]),
            feels_like=float(data["feelsLike"]),
            humidity=float(data["humidity"]),
            wind_speed=float(data["windSpeed"]),
            wind_direction=float(data["windDirection"]),
            pressure=float(data["pressure"]),
            visibility=float(data["visibility"]),
            weather_code=int(data["weatherCode"]),
            rain_intensity=float(data["rainIntensity"]),
            cloud_cover=float(data["cloudCover"]),
            uv_index=float(data["uvIndex"]),
            timestamp=parse_timestamp(data.get("timestamp")),
            location=data.get("location", "Guwahati"),
            source=data.get("source", "unknown"),
        )


@dataclass
class ForecastEntry:
    """One future hourly slice."""
    time: datetime
    temperature: float = 28.0
    humidity: float = 70.0
    wind_speed: float = 3.0
    rain_probability: float = 0.0     # %
    rain_intensity: float = 0.0       # mm/h
    precipitation: float = 0.0        # mm in the slice
    weather_code: int = 1001

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time.isoformat(),
            "temperature": self.temperature,
            "humidity": self.humidity,
            "windSpeed": self.wind_speed,
            "rainProbability": self.rain_probability,
            "rainIntensity": self.rain_intensity,
            "precipitation": self.precipitation,
            "weatherCode": self.weather_code,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ForecastEntry":
        return cls(
            time=parse_timestamp(data["time"]) or utcnow(),
            temperature=float(data["temperature"]),
            humidity=float(data["humidity"]),
            wind_speed=float(data["windSpeed"]),
            rain_probability=float(data["rainProbability"]),
            rain_intensity=float(data["rainIntensity"]),
            precipitation=float(data.get("precipitation", 0.0)),
            weather_code=int(data["weatherCode"]),
        )


@dataclass
class WeatherWarning:
    """
    An official weather warning for a district.

    A missing onset means "now"; a missing expiry means the warning stays
    active until a later feed drops it.
    """
    district: str
    description: str
    severity: Severity = Severity.LOW
    onset: Optional[datetime] = None
    expires: Optional[datetime] = None
    category: str = ""
    source: str = "IMD RSS"

    def is_active(self, now: Optional[datetime] = None) -> bool:
        if self.expires is None:
            return True
        return self.expires > (now or utcnow())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "district": self.district,
            "description": self.description,
            "severity": self.severity.value,
            "onset": _iso(self.onset),
            "expires": _iso(self.expires),
            "category": self.category,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeatherWarning":
        return cls(
            district=data["district"],
            description=data["description"],
            severity=Severity(data.get("severity", "low")),
            onset=parse_timestamp(data.get("onset")),
            expires=parse_timestamp(data.get("expires")),
            category=data.get("category", ""),
            source=data.get("source", "IMD RSS"),
        )
