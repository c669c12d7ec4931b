"""Adapter turning Garmin FIT activity files into dive records

FIT files written by dive computers (Garmin Descent, Shearwater, Suunto)
carry the dive as a stream of messages: summary messages near the end of
the file, one `record` message per sample and optional tank messages.
"""

import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fitparse import FitFile
from fitparse.utils import FitParseError

from .errors import DiveLogParseError, DiveLogReadError
from .models import (
    Dive, DiveEvent, DiveSample, DiveTank, ImportedDive, ImportResult, TankPressure
)

logger = logging.getLogger(__name__)

TRIP_NAME_PREFIX = 'FIT Import'

SUMMARY_MESSAGES = {
    'session', 'activity', 'lap', 'sport',
    'dive_summary', 'dive_settings', 'dive_apnea_summary',
}
START_TIME_MESSAGES = ('session', 'activity', 'lap', 'sport')
SAMPLE_MESSAGES = {'record', 'dive_alarm', 'length'}
TANK_SUMMARY_MESSAGES = {'tank_summary', 'tank'}

MAX_SAMPLE_DEPTH_M = 500.0
MIN_TANK_PRESSURE_BAR = 1.0
MAX_TANK_PRESSURE_BAR = 350.0
SEMICIRCLES_TO_DEGREES = 180.0 / 2 ** 31


def _float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _temperature(value: float) -> float:
    """FIT temperatures may be Kelvin, centidegrees or plain Celsius"""
    if value > 200:
        return value - 273.15
    if value > 100:
        return value / 100.0
    return value


def _pressure_bar(value: float) -> float:
    return value / 100000.0 if value > 10000 else value


def _is_tank_pressure_field(name: str) -> bool:
    if not any(word in name for word in ('pressure', 'tank', 'cylinder', 'air', 'gas')):
        return False
    if any(word in name for word in ('surface', 'ambient', 'absolute')):
        return False
    return 'time' not in name


def _plausible_tank_pressure(value: Optional[float]) -> Optional[float]:
    """Return the value in bar when it looks like a cylinder pressure"""
    if value is None or value <= 0:
        return None
    pressure = _pressure_bar(value)
    if MIN_TANK_PRESSURE_BAR < pressure < MAX_TANK_PRESSURE_BAR:
        return pressure
    return None


@dataclass
class _SampleRecord:
    sample: DiveSample
    timestamp: Optional[datetime]


@dataclass
class _TankReading:
    sensor_id: int
    pressure_bar: float
    timestamp: Optional[datetime]


@dataclass
class _GasMix:
    message_index: int
    o2_percent: Optional[float]
    he_percent: Optional[float]


@dataclass
class _TankSummary:
    sensor_id: int
    start_pressure_bar: Optional[float]
    end_pressure_bar: Optional[float]
    volume_used_liters: Optional[float]


@dataclass
class _EventRecord:
    event: DiveEvent
    timestamp: Optional[datetime]


class _FitCollector:
    """Accumulates the messages of one FIT file into a single dive"""

    def __init__(self):
        self.message_types: List[str] = []
        self.data: Dict[str, Any] = {}
        self.start_candidates: Dict[str, datetime] = {}
        self.samples: List[_SampleRecord] = []
        self.tank_readings: List[_TankReading] = []
        self.gas_mixes: List[_GasMix] = []
        self.tank_summaries: List[_TankSummary] = []
        self.events: List[_EventRecord] = []

    def add(self, message) -> None:
        kind = message.name
        if kind not in self.message_types:
            self.message_types.append(kind)
            logger.debug(f"FIT message type: {kind}")

        if kind in SUMMARY_MESSAGES:
            self._add_summary(kind, message)
        elif kind == 'dive_gas':
            self._add_gas(message)
        elif kind == 'file_id':
            self._add_file_id(message)
        elif kind in SAMPLE_MESSAGES:
            self._add_sample(message)
        elif kind == 'tank_update':
            self._add_tank_update(message)
        elif kind in TANK_SUMMARY_MESSAGES:
            self._add_tank_summary(message)
        elif kind == 'event':
            self._add_event(message)
        else:
            self._add_other(kind, message)

    def _add_summary(self, kind: str, message) -> None:
        for field in message.fields:
            self.data[field.name] = field.value
            if field.name == 'start_time' and isinstance(field.value, datetime):
                self.start_candidates.setdefault(kind, field.value)

    def _add_gas(self, message) -> None:
        mix = _GasMix(message_index=len(self.gas_mixes), o2_percent=None, he_percent=None)
        for field in message.fields:
            name = field.name.lower()
            if name == 'message_index':
                index = _float(field.value)
                if index is not None:
                    mix.message_index = int(index)
            elif name == 'oxygen_content':
                mix.o2_percent = _float(field.value)
            elif name == 'helium_content':
                mix.he_percent = _float(field.value)
        logger.debug(f"FIT gas mix {mix.message_index}: O2={mix.o2_percent} He={mix.he_percent}")
        self.gas_mixes.append(mix)

    def _add_file_id(self, message) -> None:
        for field in message.fields:
            self.data[f"file_{field.name}"] = field.value
            if field.name == 'time_created' and isinstance(field.value, datetime):
                self.start_candidates.setdefault('file_id', field.value)

    def _add_sample(self, message) -> None:
        sample = DiveSample(time_seconds=len(self.samples))
        timestamp = None

        for field in message.fields:
            name = field.name.lower()
            value = field.value

            if 'depth' in name or name == 'altitude':
                depth = _float(value)
                if depth is None:
                    continue
                # Some devices report depth as negative altitude
                if name == 'altitude' and depth < 0:
                    depth = abs(depth)
                if sample.depth_m < depth < MAX_SAMPLE_DEPTH_M:
                    sample.depth_m = depth
            elif name == 'timestamp':
                if isinstance(value, datetime):
                    timestamp = value
            elif 'temp' in name:
                temp = _float(value)
                if temp is not None:
                    sample.temp_c = _temperature(temp)
            elif 'ndl' in name or 'no_deco' in name:
                ndl = _float(value)
                sample.ndl_seconds = int(ndl) if ndl is not None else None
            elif 'air_time' in name or 'remaining' in name or 'rbt' in name:
                rbt = _float(value)
                sample.rbt_seconds = int(rbt) if rbt is not None else None
            elif _is_tank_pressure_field(name):
                pressure = _plausible_tank_pressure(_float(value))
                if pressure is not None:
                    sample.pressure_bar = pressure

        if timestamp is not None:
            self.start_candidates.setdefault('record', timestamp)

        # Surface intervals carry no depth
        if sample.depth_m > 0:
            self.samples.append(_SampleRecord(sample=sample, timestamp=timestamp))

    def _add_tank_update(self, message) -> None:
        pressure = None
        timestamp = None
        sensor_id = 0

        for field in message.fields:
            name = field.name.lower()
            if name == 'pressure':
                pressure = _plausible_tank_pressure(_float(field.value))
            elif name == 'timestamp' and isinstance(field.value, datetime):
                timestamp = field.value
            elif name == 'sensor':
                sensor = _float(field.value)
                if sensor is not None:
                    sensor_id = int(sensor)

        if pressure is not None:
            self.tank_readings.append(_TankReading(
                sensor_id=sensor_id,
                pressure_bar=pressure,
                timestamp=timestamp
            ))

    def _add_tank_summary(self, message) -> None:
        summary = _TankSummary(
            sensor_id=len(self.tank_summaries),
            start_pressure_bar=None,
            end_pressure_bar=None,
            volume_used_liters=None
        )
        for field in message.fields:
            name = field.name.lower()
            if name == 'sensor':
                sensor = _float(field.value)
                if sensor is not None:
                    summary.sensor_id = int(sensor)
            elif name == 'start_pressure':
                summary.start_pressure_bar = _float(field.value)
            elif name == 'end_pressure':
                summary.end_pressure_bar = _float(field.value)
            elif name == 'volume_used':
                summary.volume_used_liters = _float(field.value)
        self.tank_summaries.append(summary)

    def _add_event(self, message) -> None:
        event = DiveEvent()
        timestamp = None
        for field in message.fields:
            if field.name in ('event', 'event_type') and isinstance(field.value, str):
                event.name = field.value
            elif field.name == 'data':
                data = _float(field.value)
                event.value = int(data) if data is not None else None
            elif field.name == 'timestamp' and isinstance(field.value, datetime):
                timestamp = field.value
        if event.name:
            self.events.append(_EventRecord(event=event, timestamp=timestamp))

    def _add_other(self, kind: str, message) -> None:
        fields = list(message.fields)
        if any('depth' in field.name.lower() for field in fields):
            self._add_sample(message)
        for field in fields:
            self.data[f"{kind.lower()}_{field.name}"] = field.value

    def start_timestamp(self) -> Optional[datetime]:
        for kind in START_TIME_MESSAGES + ('file_id', 'record'):
            if kind in self.start_candidates:
                return self.start_candidates[kind]
        return None

    def build(self, dive_number: int = 1) -> Optional[ImportedDive]:
        start = self.start_timestamp()
        samples = self._finalize_samples(start)
        dive_duration = samples[-1].time_seconds if samples else 0

        dive = self._build_header(dive_number, start)
        if not (dive.max_depth_m > 0 or samples or dive.duration_seconds > 0 or dive.date):
            return None

        events = []
        for record in self.events:
            if record.timestamp is not None and start is not None:
                record.event.time_seconds = int((record.timestamp - start).total_seconds())
            events.append(record.event)

        return ImportedDive(
            dive=dive,
            samples=samples,
            events=events,
            tank_pressures=self._finalize_tank_pressures(start, dive_duration, samples),
            tanks=self._build_tanks()
        )

    def _metadata_duration(self) -> Optional[int]:
        for key in ('total_elapsed_time', 'total_timer_time'):
            value = _float(self.data.get(key))
            if value is not None:
                return int(value)
        return None

    def _finalize_samples(self, start: Optional[datetime]) -> List[DiveSample]:
        """Make sample times relative to the dive start

        Summary messages arrive after the samples, so times are only known
        once the whole file has been read. Without per-sample timestamps
        the samples are spread evenly over the recorded duration.
        """
        samples = [record.sample for record in self.samples]

        if start is not None and samples and all(r.timestamp is not None for r in self.samples):
            for record in self.samples:
                record.sample.time_seconds = int((record.timestamp - start).total_seconds())
            return samples

        duration = self._metadata_duration()
        if duration is not None and len(samples) > 1:
            for index, sample in enumerate(samples):
                sample.time_seconds = index * duration // (len(samples) - 1)
            logger.debug(f"Spread {len(samples)} sample times over {duration} seconds")
        return samples

    def _finalize_tank_pressures(
        self,
        start: Optional[datetime],
        dive_duration: int,
        samples: List[DiveSample]
    ) -> List[TankPressure]:
        if not self.tank_readings:
            return [
                TankPressure(sensor_id=0, time_seconds=s.time_seconds, pressure_bar=s.pressure_bar)
                for s in samples
                if s.pressure_bar is not None
            ]
        if not samples:
            return []

        reference = start
        if reference is None:
            stamps = [r.timestamp for r in self.tank_readings if r.timestamp is not None]
            reference = min(stamps) if stamps else None

        sensors: Dict[int, List[_TankReading]] = {}
        for reading in self.tank_readings:
            sensors.setdefault(reading.sensor_id, []).append(reading)

        pressures = []
        for position, (sensor_id, readings) in enumerate(sensors.items(), start=1):
            sensor_name = f"Tank {position}"
            for index, reading in enumerate(readings):
                if reading.timestamp is not None and reference is not None:
                    time_seconds = int((reading.timestamp - reference).total_seconds())
                elif len(readings) > 1:
                    time_seconds = index * dive_duration // (len(readings) - 1)
                else:
                    time_seconds = 0

                if 0 <= time_seconds <= dive_duration:
                    pressures.append(TankPressure(
                        sensor_id=sensor_id,
                        time_seconds=time_seconds,
                        pressure_bar=reading.pressure_bar,
                        sensor_name=sensor_name
                    ))

        logger.debug(f"Kept {len(pressures)} tank pressures from {len(sensors)} sensors")
        return pressures

    def _build_tanks(self) -> List[DiveTank]:
        if self.tank_summaries:
            # Extra cylinders without their own mix breathe the primary gas
            primary = self.gas_mixes[0] if self.gas_mixes else None
            tanks = []
            for index, summary in enumerate(self.tank_summaries):
                mix = self.gas_mixes[index] if index < len(self.gas_mixes) else primary
                tanks.append(DiveTank(
                    gas_index=index,
                    sensor_id=summary.sensor_id,
                    o2_percent=mix.o2_percent if mix else None,
                    he_percent=mix.he_percent if mix else None,
                    start_pressure_bar=summary.start_pressure_bar,
                    end_pressure_bar=summary.end_pressure_bar,
                    volume_used_liters=summary.volume_used_liters
                ))
            return tanks

        return [
            DiveTank(
                gas_index=mix.message_index,
                sensor_id=mix.message_index,
                o2_percent=mix.o2_percent,
                he_percent=mix.he_percent
            )
            for mix in self.gas_mixes
        ]

    def _build_header(self, dive_number: int, start: Optional[datetime]) -> Dive:
        dive = Dive(dive_number=dive_number)
        if start is not None:
            dive.date = start.strftime('%Y-%m-%d')
            dive.time = start.strftime('%H:%M:%S')

        for key, value in self.data.items():
            name = key.lower()
            number = _float(value)

            if 'start_time' in name or 'timestamp' in name or 'time_created' in name:
                if start is None and isinstance(value, datetime):
                    dive.date = value.strftime('%Y-%m-%d')
                    dive.time = value.strftime('%H:%M:%S')
            elif any(word in name for word in ('elapsed_time', 'timer_time', 'duration', 'bottom_time')):
                if dive.duration_seconds == 0 and number is not None:
                    dive.duration_seconds = int(number)
            elif 'max_depth' in name or ('depth' in name and 'max' in name):
                if number is not None and number > dive.max_depth_m:
                    dive.max_depth_m = number
            elif 'avg_depth' in name or 'mean_depth' in name or ('depth' in name and 'avg' in name):
                if number is not None:
                    dive.mean_depth_m = number
            elif 'temp' in name:
                if number is not None:
                    dive.water_temp_c = _temperature(number)
            elif 'lat' in name and any(word in name for word in ('position', 'start', 'gps')):
                if number is not None:
                    dive.latitude = number * SEMICIRCLES_TO_DEGREES
            elif 'long' in name and any(word in name for word in ('position', 'start', 'gps')):
                if number is not None:
                    dive.longitude = number * SEMICIRCLES_TO_DEGREES
            elif 'o2_toxicity' in name or 'otu' in name:
                if number is not None:
                    dive.otu = int(number)
            elif 'cns' in name:
                if number is not None:
                    dive.cns_percent = number * 100.0 if number <= 1.0 else number
            elif 'surface' in name and 'pressure' in name:
                if number is not None:
                    dive.surface_pressure_bar = _pressure_bar(number)
            elif 'water_type' in name:
                if isinstance(value, str):
                    dive.is_fresh_water = 'fresh' in value.lower()

        return dive


class FitDiveParser:
    """Parser for FIT files given as a path or raw bytes"""

    def __init__(self, source: Union[str, os.PathLike, bytes]):
        self.source = source

    def parse(self) -> ImportResult:
        collector = _FitCollector()
        for message in self._read_messages():
            collector.add(message)

        logger.info(
            f"FIT file decoded: {len(collector.samples)} depth samples, "
            f"{len(collector.tank_readings)} tank readings"
        )

        imported = collector.build()
        if imported is None:
            raise DiveLogParseError(
                f"No dive data found in FIT file. Record types present: "
                f"{', '.join(collector.message_types)}. This may not be a dive log file."
            )
        return ImportResult.from_dives([imported], TRIP_NAME_PREFIX)

    def _read_messages(self) -> list:
        if isinstance(self.source, (bytes, bytearray)):
            fileish = bytes(self.source)
        else:
            fileish = os.fspath(self.source)

        try:
            return list(FitFile(fileish).get_messages())
        except FitParseError as e:
            raise DiveLogParseError(f"Failed to parse FIT file: {e}")
        except OSError as e:
            raise DiveLogReadError(f"Failed to read file: {e}")
