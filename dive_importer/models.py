"""Unified dive records shared by every log format parser"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Dive:
    """Header data for one logged dive"""
    dive_number: int = 0
    date: str = ''
    time: str = ''
    duration_seconds: int = 0
    max_depth_m: float = 0.0
    mean_depth_m: float = 0.0
    water_temp_c: Optional[float] = None
    air_temp_c: Optional[float] = None
    surface_pressure_bar: Optional[float] = None
    otu: Optional[int] = None
    cns_percent: Optional[float] = None
    dive_computer_model: Optional[str] = None
    dive_computer_serial: Optional[str] = None
    location: Optional[str] = None
    comments: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_fresh_water: bool = False
    id: int = 0
    trip_id: int = 0


@dataclass
class DiveSample:
    """One timestamped telemetry point"""
    time_seconds: int = 0
    depth_m: float = 0.0
    temp_c: Optional[float] = None
    pressure_bar: Optional[float] = None
    ndl_seconds: Optional[int] = None
    rbt_seconds: Optional[int] = None


@dataclass
class DiveEvent:
    time_seconds: int = 0
    event_type: int = 0
    name: str = ''
    flags: Optional[int] = None
    value: Optional[int] = None


@dataclass
class TankPressure:
    """A pressure reading from one gas source at a point in the dive"""
    sensor_id: int
    time_seconds: int
    pressure_bar: float
    sensor_name: Optional[str] = None


@dataclass
class DiveTank:
    """Static gas mix and pressure summary for one cylinder"""
    gas_index: int
    sensor_id: int = 0
    sensor_name: Optional[str] = None
    o2_percent: Optional[float] = None
    he_percent: Optional[float] = None
    start_pressure_bar: Optional[float] = None
    end_pressure_bar: Optional[float] = None
    volume_used_liters: Optional[float] = None


@dataclass
class ImportedDive:
    """A dive header together with the records that belong to it"""
    dive: Dive
    samples: List[DiveSample] = field(default_factory=list)
    events: List[DiveEvent] = field(default_factory=list)
    tank_pressures: List[TankPressure] = field(default_factory=list)
    tanks: List[DiveTank] = field(default_factory=list)


@dataclass
class ImportResult:
    """Parsed dives plus the trip they suggest"""
    dives: List[ImportedDive]
    trip_name: str
    date_start: str
    date_end: str

    @classmethod
    def from_dives(cls, dives: List[ImportedDive], name_prefix: str) -> 'ImportResult':
        """Build a result, deriving the trip date range from the dive dates

        Dates are compared as text, which orders zero-padded YYYY-MM-DD correctly.
        """
        dates = [d.dive.date for d in dives if d.dive.date]
        date_start = min(dates) if dates else ''
        date_end = max(dates) if dates else ''
        return cls(
            dives=dives,
            trip_name=f"{name_prefix} {date_start}",
            date_start=date_start,
            date_end=date_end
        )
