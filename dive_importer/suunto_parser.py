"""Parser for Suunto JSON dive exports

Three layouts are recognised: the Suunto app `DeviceLog` export holding a
single dive, and the older `DiveLog.Dives` / `Dives` lists.
"""

import json
import logging
import math
import os
from typing import Any, Dict, List, Optional, Tuple, Union

from dateutil.parser import isoparse

from .errors import DiveLogParseError, DiveLogReadError
from .models import Dive, DiveSample, DiveTank, ImportedDive, ImportResult, TankPressure

logger = logging.getLogger(__name__)

TRIP_NAME_PREFIX = 'Suunto Import'

DEFAULT_SAMPLE_INTERVAL = 10
PASCALS_PER_BAR = 100000.0
KELVIN_OFFSET = 273.15

# Field aliases seen across Suunto export variants
DIVE_KEYS = {
    'start_time': ('StartTime', 'start_time'),
    'dive_number': ('DiveNumber', 'DiveNumberInSerie', 'dive_number'),
    'duration': ('Duration', 'duration', 'DiveTime'),
    'max_depth': ('MaxDepth', 'max_depth'),
    'avg_depth': ('AvgDepth', 'avg_depth'),
    'water_temp_min': ('WaterTempMin', 'WaterTemperatureMinimum', 'MinWaterTemp'),
    'water_temp_max': ('WaterTempMax', 'WaterTemperatureMaximum', 'MaxWaterTemp'),
    'surface_pressure': ('SurfacePressure',),
    'otu': ('Otu', 'OTU', 'otu'),
    'cns': ('Cns', 'CNS', 'cns'),
    'device_model': ('DeviceModel', 'Source', 'Computer'),
    'device_serial': ('DeviceSerial', 'SerialNumber'),
    'dive_site': ('DiveSite', 'Location'),
    'notes': ('Notes', 'Note'),
    'samples': ('Samples', 'DiveSamples'),
    'dive_profile': ('DiveProfile',),
    'latitude': ('Latitude', 'StartLatitude'),
    'longitude': ('Longitude', 'StartLongitude'),
    'cylinders': ('Cylinders', 'Cylinder'),
}

SAMPLE_KEYS = {
    'time': ('Time', 'time', 't'),
    'depth': ('Depth', 'depth', 'd'),
    'temperature': ('Temperature', 'temp', 'Temp'),
    'pressure': ('Pressure', 'TankPressure', 'pressure', 'Tank1Pressure', 'CylinderPressure'),
    'ndl': ('Ndl', 'NDL', 'NoDecoTime', 'ndl', 'NoDecoLimit'),
}


def _lookup(data: Dict[str, Any], keys) -> Any:
    """Return the value of the first alias present in `data`"""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    # json.loads accepts NaN and Infinity tokens
    return number if math.isfinite(number) else None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _records(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def kelvin_to_celsius(value: Optional[float]) -> Optional[float]:
    """Convert temperatures that are clearly Kelvin; Celsius passes through"""
    if value is None:
        return None
    return value - KELVIN_OFFSET if value > 200 else value


def pascals_to_bar(value: Optional[float]) -> Optional[float]:
    """Convert a pressure of uncertain unit, treating large values as pascals"""
    if value is None:
        return None
    return value / PASCALS_PER_BAR if value > 10000 else value


def fraction_to_percent(value: Optional[float]) -> Optional[float]:
    """Gas fractions and CNS may be 0..1 or already a percentage"""
    if value is None:
        return None
    return value * 100.0 if value <= 1.0 else value


def parse_suunto_datetime(value: Optional[str]) -> Tuple[str, str]:
    """Split an ISO 8601 timestamp into ("YYYY-MM-DD", "HH:MM:SS")

    The wall clock time is kept as written; any UTC offset is ignored.
    Missing or unparseable values give two empty strings.
    """
    if not value:
        return '', ''
    try:
        moment = isoparse(value.strip())
    except (ValueError, OverflowError):
        logger.debug(f"Unparseable Suunto timestamp: {value!r}")
        return '', ''
    return moment.strftime('%Y-%m-%d'), moment.strftime('%H:%M:%S')


class SuuntoJsonParser:
    """Parser for Suunto JSON exports given as a path or raw bytes"""

    def __init__(self, source: Union[str, os.PathLike, bytes]):
        self.source = source

    def parse(self) -> ImportResult:
        document = self._load()

        if not isinstance(document, dict):
            raise DiveLogParseError(
                "No dives found in Suunto JSON file. Expected DeviceLog, DiveLog, or Dives format."
            )

        if document.get('DeviceLog') is not None:
            logger.debug("Detected Suunto DeviceLog format")
            return self._parse_device_log(_mapping(document['DeviceLog']))

        dives = _records(_mapping(document.get('DiveLog')).get('Dives'))
        if not dives:
            dives = _records(document.get('Dives'))

        if not dives:
            raise DiveLogParseError(
                "No dives found in Suunto JSON file. Expected DeviceLog, DiveLog, or Dives format."
            )

        return self._parse_dive_list(dives)

    def _load(self) -> Any:
        try:
            if isinstance(self.source, (bytes, bytearray)):
                content = bytes(self.source).decode('utf-8')
            else:
                with open(self.source, 'r', encoding='utf-8') as f:
                    content = f.read()
        except OSError as e:
            raise DiveLogReadError(f"Failed to read file: {e}")
        except UnicodeDecodeError as e:
            raise DiveLogParseError(f"Failed to parse Suunto JSON: {e}")

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise DiveLogParseError(f"Failed to parse Suunto JSON: {e}")

    def _parse_device_log(self, device_log: Dict[str, Any]) -> ImportResult:
        header = device_log.get('Header')
        if not isinstance(header, dict):
            raise DiveLogParseError("DeviceLog missing Header")

        date, time = parse_suunto_datetime(_text(header.get('DateTime')))
        depth = _mapping(header.get('Depth'))
        device = _mapping(header.get('Device'))
        diving = _mapping(header.get('Diving'))
        tissue = _mapping(_lookup(diving, ('EndTissue',)))

        surface_pressure = _number(diving.get('SurfacePressure'))
        cns = _number(_lookup(tissue, ('Cns', 'CNS')))
        otu = _number(_lookup(tissue, ('Otu', 'OTU')))
        dive_number = _number(diving.get('NumberInSeries'))
        duration = _number(header.get('Duration'))

        dive = Dive(
            dive_number=int(dive_number) if dive_number is not None else 1,
            date=date,
            time=time,
            duration_seconds=int(duration) if duration is not None else 0,
            max_depth_m=_number(depth.get('Max')) or 0.0,
            mean_depth_m=_number(depth.get('Avg')) or 0.0,
            surface_pressure_bar=(
                surface_pressure / PASCALS_PER_BAR if surface_pressure is not None else None
            ),
            otu=int(otu) if otu is not None else None,
            cns_percent=fraction_to_percent(cns),
            dive_computer_model=_text(device.get('Name')),
            dive_computer_serial=_text(device.get('SerialNumber'))
        )

        tanks = self._device_log_tanks(_records(diving.get('Gases')))
        first_gas = tanks[0] if tanks else None
        interval = _number(header.get('SampleInterval'))

        samples, tank_pressures = self._device_log_samples(
            _records(device_log.get('Samples')),
            int(interval) if interval is not None else DEFAULT_SAMPLE_INTERVAL,
            first_gas.start_pressure_bar if first_gas else None,
            first_gas.end_pressure_bar if first_gas else None
        )

        logger.info(
            f"Parsed DeviceLog dive with {len(samples)} samples, "
            f"{len(tank_pressures)} tank pressures and {len(tanks)} gas mixes"
        )

        imported = ImportedDive(
            dive=dive,
            samples=samples,
            tank_pressures=tank_pressures,
            tanks=tanks
        )
        return ImportResult.from_dives([imported], TRIP_NAME_PREFIX)

    def _device_log_tanks(self, gases: List[Dict[str, Any]]) -> List[DiveTank]:
        tanks = []
        for index, gas in enumerate(gases):
            start = _number(gas.get('StartPressure'))
            end = _number(gas.get('EndPressure'))
            tanks.append(DiveTank(
                gas_index=index,
                sensor_id=index,
                sensor_name=_text(_lookup(gas, ('TransmitterId', 'TransmitterID'))),
                o2_percent=fraction_to_percent(_number(gas.get('Oxygen'))),
                he_percent=fraction_to_percent(_number(gas.get('Helium'))),
                start_pressure_bar=start / PASCALS_PER_BAR if start is not None else None,
                end_pressure_bar=end / PASCALS_PER_BAR if end is not None else None
            ))
        return tanks

    def _device_log_samples(
        self,
        raw_samples: List[Dict[str, Any]],
        interval: int,
        start_pressure: Optional[float],
        end_pressure: Optional[float]
    ) -> Tuple[List[DiveSample], List[TankPressure]]:
        samples = []
        tank_pressures = []

        # Without per-sample readings, interpolate linearly between the first gas pressures
        drop_per_sample = None
        if start_pressure is not None and end_pressure is not None and len(raw_samples) > 1:
            drop_per_sample = (start_pressure - end_pressure) / (len(raw_samples) - 1)

        for index, raw in enumerate(raw_samples):
            time = _number(raw.get('Time'))
            time_seconds = int(time) if time is not None else index * interval

            pressure = self._device_sample_pressure(raw.get('TankPressure'))
            if pressure is None and drop_per_sample is not None:
                pressure = start_pressure - drop_per_sample * index

            if pressure is not None:
                tank_pressures.append(TankPressure(
                    sensor_id=0,
                    time_seconds=time_seconds,
                    pressure_bar=pressure
                ))

            samples.append(DiveSample(
                time_seconds=time_seconds,
                depth_m=_number(raw.get('Depth')) or 0.0,
                temp_c=kelvin_to_celsius(_number(raw.get('Temperature')))
            ))

        return samples, tank_pressures

    def _device_sample_pressure(self, value: Any) -> Optional[float]:
        """DeviceLog pressures are always pascals, either a list per tank or a single value"""
        if isinstance(value, list):
            value = value[0] if value else None
        pressure = _number(value)
        return pressure / PASCALS_PER_BAR if pressure is not None else None

    def _parse_dive_list(self, raw_dives: List[Dict[str, Any]]) -> ImportResult:
        dives = []

        for counter, raw in enumerate(raw_dives, start=1):
            date, time = parse_suunto_datetime(_text(_lookup(raw, DIVE_KEYS['start_time'])))

            water_temp = _number(_lookup(raw, DIVE_KEYS['water_temp_min']))
            if water_temp is None:
                water_temp = _number(_lookup(raw, DIVE_KEYS['water_temp_max']))

            dive_number = _number(_lookup(raw, DIVE_KEYS['dive_number']))
            duration = _number(_lookup(raw, DIVE_KEYS['duration']))
            otu = _number(_lookup(raw, DIVE_KEYS['otu']))

            dive = Dive(
                dive_number=int(dive_number) if dive_number is not None else counter,
                date=date,
                time=time,
                duration_seconds=int(duration) if duration is not None else 0,
                max_depth_m=_number(_lookup(raw, DIVE_KEYS['max_depth'])) or 0.0,
                mean_depth_m=_number(_lookup(raw, DIVE_KEYS['avg_depth'])) or 0.0,
                water_temp_c=kelvin_to_celsius(water_temp),
                surface_pressure_bar=pascals_to_bar(
                    _number(_lookup(raw, DIVE_KEYS['surface_pressure']))
                ),
                otu=int(otu) if otu is not None else None,
                cns_percent=fraction_to_percent(_number(_lookup(raw, DIVE_KEYS['cns']))),
                dive_computer_model=_text(_lookup(raw, DIVE_KEYS['device_model'])),
                dive_computer_serial=_text(_lookup(raw, DIVE_KEYS['device_serial'])),
                location=_text(_lookup(raw, DIVE_KEYS['dive_site'])),
                comments=_text(_lookup(raw, DIVE_KEYS['notes'])),
                latitude=_number(_lookup(raw, DIVE_KEYS['latitude'])),
                longitude=_number(_lookup(raw, DIVE_KEYS['longitude']))
            )

            tanks = [
                DiveTank(
                    gas_index=index,
                    sensor_id=index,
                    o2_percent=fraction_to_percent(_number(_lookup(cylinder, ('Oxygen', 'O2'))))
                )
                for index, cylinder in enumerate(_records(_lookup(raw, DIVE_KEYS['cylinders'])))
            ]

            samples, tank_pressures = self._dive_samples(raw)
            dives.append(ImportedDive(
                dive=dive,
                samples=samples,
                tank_pressures=tank_pressures,
                tanks=tanks
            ))

        logger.info(f"Parsed {len(dives)} dives from Suunto JSON")
        return ImportResult.from_dives(dives, TRIP_NAME_PREFIX)

    def _dive_samples(self, raw: Dict[str, Any]) -> Tuple[List[DiveSample], List[TankPressure]]:
        samples = []
        tank_pressures = []

        raw_samples = _lookup(raw, DIVE_KEYS['samples'])
        if isinstance(raw_samples, list):
            for point in _records(raw_samples):
                time = _number(_lookup(point, SAMPLE_KEYS['time']))
                time_seconds = int(time) if time is not None else 0
                ndl = _number(_lookup(point, SAMPLE_KEYS['ndl']))

                pressure = pascals_to_bar(_number(_lookup(point, SAMPLE_KEYS['pressure'])))
                if pressure is not None:
                    tank_pressures.append(TankPressure(
                        sensor_id=0,
                        time_seconds=time_seconds,
                        pressure_bar=pressure
                    ))

                samples.append(DiveSample(
                    time_seconds=time_seconds,
                    depth_m=_number(_lookup(point, SAMPLE_KEYS['depth'])) or 0.0,
                    temp_c=kelvin_to_celsius(_number(_lookup(point, SAMPLE_KEYS['temperature']))),
                    ndl_seconds=int(ndl) if ndl is not None else None
                ))
            logger.debug(f"Parsed {len(samples)} samples and {len(tank_pressures)} tank pressures")
            return samples, tank_pressures

        for point in _records(_lookup(raw, DIVE_KEYS['dive_profile'])):
            time = _number(point.get('Time'))
            samples.append(DiveSample(
                time_seconds=int(time) if time is not None else 0,
                depth_m=_number(point.get('Depth')) or 0.0
            ))

        return samples, tank_pressures
