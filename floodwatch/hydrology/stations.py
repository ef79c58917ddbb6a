"""
stations.py — Static reference tables: river gauge stations and zones.

Danger levels and record floods come from the Assam Water Resources
Department flood information system. Live gauge telemetry needs
government credentials, so these static values are the only gauge data
the engine uses; current levels are estimated from rainfall
(see water_level.py).

Zone → station resolution:
    A zone is governed by the first station whose ``zones`` lists it.
    Zones no station lists fall back to the Guwahati D.C. Court gauge.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from floodwatch.ingestion.models import Coordinates

DEFAULT_STATION_ID = "brahmaputra-guwahati"
DEFAULT_ZONE_ID = "jalukbari"


@dataclass(frozen=True)
class Station:
    """A river gauge reference point."""
    station_id: str
    name: str
    name_local: str
    district: str
    danger_level: float               # metres
    highest_flood_level: float        # metres
    highest_flood_date: str
    coordinates: Coordinates
    zones: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.danger_level <= 0:
            raise ValueError(f"Station {self.station_id}: danger level must be > 0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.station_id,
            "name": self.name,
            "nameAssamese": self.name_local,
            "district": self.district,
            "dangerLevel": self.danger_level,
            "highestFloodLevel": self.highest_flood_level,
            "highestFloodDate": self.highest_flood_date,
            "coords": self.coordinates.to_dict(),
            "zones": list(self.zones),
        }


@dataclass(frozen=True)
class Zone:
    """A small area whose risk is read off one governing station."""
    zone_id: str
    name: str
    name_local: str
    district: str
    coordinates: Coordinates


# Ordered: first match wins when resolving a zone.
RIVER_STATIONS: Dict[str, Station] = {
    "brahmaputra-guwahati": Station(
        station_id="brahmaputra-guwahati",
        name="Brahmaputra at Guwahati D.C. Court",
        name_local="গুৱাহাটী ডি.চি. কোৰ্টত ব্ৰহ্মপুত্ৰ",
        district="Kamrup",
        danger_level=49.68,
        highest_flood_level=51.46,
        highest_flood_date="21.7.2004",
        coordinates=Coordinates(26.1445, 91.6616),
        zones=("jalukbari", "maligaon", "fancy-bazar", "bharalumukh"),
    ),
    "brahmaputra-dibrugarh": Station(
        station_id="brahmaputra-dibrugarh",
        name="Brahmaputra at Dibrugarh",
        name_local="ডিব্ৰুগড়ত ব্ৰহ্মপুত্ৰ",
        district="Dibrugarh",
        danger_level=105.70,
        highest_flood_level=106.48,
        highest_flood_date="3.9.1998",
        coordinates=Coordinates(27.4728, 94.9120),
    ),
    "brahmaputra-tezpur": Station(
        station_id="brahmaputra-tezpur",
        name="Brahmaputra at Tezpur",
        name_local="তেজপুৰত ব্ৰহ্মপুত্ৰ",
        district="Sonitpur",
        danger_level=65.23,
        highest_flood_level=66.59,
        highest_flood_date="27.8.1988",
        coordinates=Coordinates(26.6333, 92.8000),
        zones=("brahmaputra-north",),
    ),
    "brahmaputra-goalpara": Station(
        station_id="brahmaputra-goalpara",
        name="Brahmaputra at Goalpara",
        name_local="গোৱালপাৰাত ব্ৰহ্মপুত্ৰ",
        district="Goalpara",
        danger_level=36.27,
        highest_flood_level=37.43,
        highest_flood_date="7.1954",
        coordinates=Coordinates(26.1667, 90.6167),
    ),
    "barak": Station(
        station_id="barak",
        name="Barak at A.P. Ghat",
        name_local="এ.পি. ঘাটত বৰাক",
        district="Cachar",
        danger_level=19.83,
        highest_flood_level=21.84,
        highest_flood_date="1.8.1989",
        coordinates=Coordinates(24.8333, 92.8000),
    ),
}

ZONES: Dict[str, Zone] = {
    "jalukbari": Zone("jalukbari", "Jalukbari", "জালুকবাৰী", "Kamrup",
                      Coordinates(26.1445, 91.6616)),
    "maligaon": Zone("maligaon", "Maligaon", "মালিগাঁও", "Kamrup",
                     Coordinates(26.1520, 91.6750)),
    "fancy-bazar": Zone("fancy-bazar", "Fancy Bazar", "ফেঞ্চী বজাৰ", "Kamrup",
                        Coordinates(26.1600, 91.6900)),
    "bharalumukh": Zone("bharalumukh", "Bharalumukh", "ভৰলুমুখ", "Kamrup",
                        Coordinates(26.1350, 91.6800)),
    "brahmaputra-north": Zone("brahmaputra-north", "Brahmaputra North",
                              "ব্ৰহ্মপুত্ৰ উত্তৰ", "Sonitpur",
                              Coordinates(26.6736, 92.8478)),
    "barpeta": Zone("barpeta", "Barpeta", "বৰপেটা", "Barpeta",
                    Coordinates(26.3225, 91.0055)),
}

# District names as they appear in IMD RSS item titles.
DISTRICT_ALERT_NAMES: Dict[str, List[str]] = {
    "Kamrup": ["KAMRUP", "KAMRUP METROPOLITAN", "GUWAHATI"],
    "Sonitpur": ["SONITPUR", "TEZPUR"],
    "Barpeta": ["BARPETA"],
}

# Recorded peaks per station; only the Guwahati gauge has a series on file.
FLOOD_HISTORY: Dict[str, List[Dict[str, Any]]] = {
    "brahmaputra-guwahati": [
        {"year": 2004, "level": 51.46, "date": "21.7.2004"},
        {"year": 1998, "level": 51.10, "date": "12.9.1998"},
        {"year": 1988, "level": 50.80, "date": "15.8.1988"},
    ],
}


def station_for_zone(zone_id: str) -> Station:
    """Governing station for a zone, falling back to the default gauge."""
    for station in RIVER_STATIONS.values():
        if zone_id in station.zones:
            return station
    return RIVER_STATIONS[DEFAULT_STATION_ID]


def get_zone(zone_id: str) -> Optional[Zone]:
    return ZONES.get(zone_id)


def zone_coordinates(zone_id: str) -> Coordinates:
    """Coordinates used for weather lookups; unknown zones use Jalukbari."""
    zone = ZONES.get(zone_id) or ZONES[DEFAULT_ZONE_ID]
    return zone.coordinates


def all_stations(baseline_ratio: float = 0.6) -> List[Dict[str, Any]]:
    """All stations with a nominal current level at the baseline ratio."""
    return [
        {
            **station.to_dict(),
            "status": "normal",
            "currentLevel": round(station.danger_level * baseline_ratio, 2),
        }
        for station in RIVER_STATIONS.values()
    ]


def historical_flood_data(station_id: str) -> Optional[Dict[str, Any]]:
    """Record flood level and known flood years; None for unknown stations."""
    station = RIVER_STATIONS.get(station_id)
    if station is None:
        return None
    return {
        "stationId": station.station_id,
        "highestFloodLevel": station.highest_flood_level,
        "highestFloodDate": station.highest_flood_date,
        "dangerLevel": station.danger_level,
        "floodHistory": list(FLOOD_HISTORY.get(station_id, [])),
    }
