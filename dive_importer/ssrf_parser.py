"""Streaming parser for Subsurface (.ssrf) XML dive logs"""

import io
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from lxml import etree

from .errors import DiveLogParseError, DiveLogReadError
from .models import (
    Dive, DiveEvent, DiveSample, DiveTank, ImportedDive, ImportResult, TankPressure
)
from .units import (
    parse_depth, parse_duration, parse_int, parse_percent, parse_pressure, parse_temp
)

logger = logging.getLogger(__name__)

TRIP_NAME_PREFIX = 'Dive Trip'

PRESSURE_ATTRIBUTE = 'pressure'


class ParserState(Enum):
    IDLE = 'idle'
    IN_DIVE = 'in_dive'
    IN_DIVE_COMPUTER = 'in_divecomputer'


@dataclass
class _DiveAccumulator:
    """Records collected for the dive element currently open"""
    dive: Dive
    samples: List[DiveSample] = field(default_factory=list)
    events: List[DiveEvent] = field(default_factory=list)
    tank_pressures: List[TankPressure] = field(default_factory=list)
    tanks: List[DiveTank] = field(default_factory=list)
    cylinder_index: int = 0

    def finish(self) -> ImportedDive:
        return ImportedDive(
            dive=self.dive,
            samples=self.samples,
            events=self.events,
            tank_pressures=self.tank_pressures,
            tanks=self.tanks
        )


def pressure_sensor_id(attribute: str) -> Optional[int]:
    """Return the sensor id encoded in a pressure<N> attribute name

    A bare "pressure" attribute belongs to sensor 0. Names that are not
    pressure<N> with a non-negative integer N return None.
    """
    if not attribute.startswith(PRESSURE_ATTRIBUTE):
        return None
    suffix = attribute[len(PRESSURE_ATTRIBUTE):]
    if not suffix:
        return 0
    if suffix.isascii() and suffix.isdigit():
        return int(suffix)
    return None


class _SsrfStateMachine:
    """Turns element open/close events into dive records"""

    def __init__(self):
        self.state = ParserState.IDLE
        self.current: Optional[_DiveAccumulator] = None
        self.dives: List[ImportedDive] = []
        self._computer_handlers = {
            'depth': self._on_depth,
            'temperature': self._on_temperature,
            'surface': self._on_surface,
            'extradata': self._on_extradata,
            'sample': self._on_sample,
            'event': self._on_event,
        }

    def start(self, tag: str, attrib: Dict[str, str]) -> None:
        if tag == 'dive':
            self.current = _DiveAccumulator(dive=self._dive_from_attributes(attrib))
            self.state = ParserState.IN_DIVE
            return

        if self.current is None:
            return

        if tag == 'cylinder':
            # Cylinders belong to the dive, not to a particular computer
            self._on_cylinder(attrib)
        elif tag == 'divecomputer':
            self.state = ParserState.IN_DIVE_COMPUTER
            if 'model' in attrib:
                self.current.dive.dive_computer_model = attrib['model']
        elif self.state is ParserState.IN_DIVE_COMPUTER:
            handler = self._computer_handlers.get(tag)
            if handler:
                handler(attrib)

    def end(self, tag: str) -> None:
        if tag == 'divecomputer' and self.state is ParserState.IN_DIVE_COMPUTER:
            self.state = ParserState.IN_DIVE
        elif tag == 'dive' and self.current is not None:
            self.dives.append(self.current.finish())
            self.current = None
            self.state = ParserState.IDLE

    def _dive_from_attributes(self, attrib: Dict[str, str]) -> Dive:
        dive = Dive()
        for name, value in attrib.items():
            if name == 'number':
                dive.dive_number = parse_int(value)
            elif name == 'date':
                dive.date = value
            elif name == 'time':
                dive.time = value
            elif name == 'duration':
                dive.duration_seconds = parse_duration(value)
            elif name == 'otu':
                dive.otu = parse_int(value, default=None)
            elif name == 'cns':
                dive.cns_percent = parse_percent(value)
        return dive

    def _on_cylinder(self, attrib: Dict[str, str]) -> None:
        index = self.current.cylinder_index
        tank = DiveTank(gas_index=index, sensor_id=index)
        for name, value in attrib.items():
            if name == 'o2':
                tank.o2_percent = parse_percent(value)
            elif name == 'he':
                tank.he_percent = parse_percent(value)
            elif name == 'start':
                tank.start_pressure_bar = parse_pressure(value)
            elif name == 'end':
                tank.end_pressure_bar = parse_pressure(value)
        self.current.tanks.append(tank)
        self.current.cylinder_index += 1

    def _on_depth(self, attrib: Dict[str, str]) -> None:
        dive = self.current.dive
        if 'max' in attrib:
            dive.max_depth_m = parse_depth(attrib['max'])
        if 'mean' in attrib:
            dive.mean_depth_m = parse_depth(attrib['mean'])

    def _on_temperature(self, attrib: Dict[str, str]) -> None:
        dive = self.current.dive
        if 'water' in attrib:
            dive.water_temp_c = parse_temp(attrib['water'])
        if 'air' in attrib:
            dive.air_temp_c = parse_temp(attrib['air'])

    def _on_surface(self, attrib: Dict[str, str]) -> None:
        if 'pressure' in attrib:
            self.current.dive.surface_pressure_bar = parse_pressure(attrib['pressure'])

    def _on_extradata(self, attrib: Dict[str, str]) -> None:
        if attrib.get('key') == 'Serial':
            self.current.dive.dive_computer_serial = attrib.get('value', '')

    def _on_sample(self, attrib: Dict[str, str]) -> None:
        sample = DiveSample()
        readings = []

        for name, value in attrib.items():
            if name == 'time':
                sample.time_seconds = parse_duration(value)
            elif name == 'depth':
                sample.depth_m = parse_depth(value)
            elif name == 'temp':
                sample.temp_c = parse_temp(value)
            elif name == 'ndl':
                sample.ndl_seconds = parse_duration(value)
            elif name == 'rbt':
                sample.rbt_seconds = parse_duration(value)
            else:
                sensor_id = pressure_sensor_id(name)
                if sensor_id is None:
                    continue
                pressure = parse_pressure(value)
                # Zero or negative readings mean no sensor data
                if pressure > 0:
                    readings.append((sensor_id, pressure))

        for sensor_id, pressure in readings:
            self.current.tank_pressures.append(TankPressure(
                sensor_id=sensor_id,
                time_seconds=sample.time_seconds,
                pressure_bar=pressure
            ))
        self.current.samples.append(sample)

    def _on_event(self, attrib: Dict[str, str]) -> None:
        event = DiveEvent()
        for name, value in attrib.items():
            if name == 'time':
                event.time_seconds = parse_duration(value)
            elif name == 'type':
                event.event_type = parse_int(value)
            elif name == 'name':
                event.name = value
            elif name == 'flags':
                event.flags = parse_int(value, default=None)
            elif name == 'value':
                event.value = parse_int(value, default=None)
        self.current.events.append(event)


class SsrfParser:
    """Parser for Subsurface XML dive logs

    `source` is a file path or the raw bytes of a log. Every call to
    `parse` reads the source from the beginning.
    """

    def __init__(self, source: Union[str, os.PathLike, bytes]):
        self.source = source

    def parse(self) -> ImportResult:
        """Parse the log and return its dives in document order"""
        machine = _SsrfStateMachine()

        try:
            for event, elem in etree.iterparse(
                self._open_source(),
                events=('start', 'end'),
                resolve_entities=False,
                no_network=True
            ):
                if event == 'start':
                    machine.start(elem.tag, elem.attrib)
                else:
                    machine.end(elem.tag)
                    elem.clear()
        except etree.XMLSyntaxError as e:
            raise DiveLogParseError(f"XML parse error: {e}")
        except OSError as e:
            raise DiveLogReadError(f"Failed to read file: {e}")

        logger.info(f"Parsed {len(machine.dives)} dives from Subsurface log")
        return ImportResult.from_dives(machine.dives, TRIP_NAME_PREFIX)

    def _open_source(self):
        if isinstance(self.source, (bytes, bytearray)):
            return io.BytesIO(self.source)
        return os.fspath(self.source)
