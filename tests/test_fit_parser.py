"""Tests for fit_parser module"""

from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from fitparse.utils import FitParseError

from dive_importer.errors import DiveLogParseError
from dive_importer.fit_parser import FitDiveParser


START = datetime(2024, 5, 4, 8, 30, 0)


def message(name, **values):
    """Build a stand-in for a fitparse DataMessage"""
    fields = [SimpleNamespace(name=key, value=value) for key, value in values.items()]
    return SimpleNamespace(name=name, fields=fields)


def parse_messages(messages):
    fit_file = MagicMock()
    fit_file.get_messages.return_value = iter(messages)
    with patch('dive_importer.fit_parser.FitFile', return_value=fit_file) as fit_class:
        result = FitDiveParser(b'fit-bytes').parse()
    fit_class.assert_called_once_with(b'fit-bytes')
    return result


def dive_messages():
    return [
        message('file_id', time_created=START - timedelta(minutes=5), manufacturer='garmin'),
        message('record', timestamp=START, depth=0.0),
        message('record', timestamp=START + timedelta(seconds=10), depth=5.5,
                temperature=26, next_stop_depth=0.0),
        message('record', timestamp=START + timedelta(seconds=20), depth=12.25,
                temperature=25, ndl_time=2400, air_time_remaining=1800),
        message('record', timestamp=START + timedelta(seconds=30), depth=8.0),
        message('dive_gas', message_index=0, oxygen_content=32, helium_content=0),
        message('tank_update', timestamp=START + timedelta(seconds=10), sensor=111, pressure=200.5),
        message('tank_update', timestamp=START + timedelta(seconds=20), sensor=222, pressure=190.0),
        message('tank_update', timestamp=START + timedelta(seconds=30), sensor=111, pressure=195.0),
        message('tank_update', timestamp=START + timedelta(seconds=300), sensor=111, pressure=150.0),
        message('tank_summary', sensor=111, start_pressure=200.5, end_pressure=150.0, volume_used=900.0),
        message('tank_summary', sensor=222, start_pressure=190.0, end_pressure=190.0),
        message('event', timestamp=START + timedelta(seconds=20), event='ascent_alert', data=3),
        message('event', timestamp=START, data=1),
        message('dive_settings', water_type='fresh'),
        message('dive_summary', max_depth=12.25, avg_depth=7.1, o2_toxicity=14, end_cns=9),
        message('session', start_time=START, total_elapsed_time=1800.0,
                start_position_lat=429496730, start_position_long=-429496730),
    ]


class TestFitDiveParser:

    def test_header_from_summaries(self):
        """Test session and dive summary fields feed the dive header"""
        result = parse_messages(dive_messages())

        assert len(result.dives) == 1
        dive = result.dives[0].dive
        assert dive.dive_number == 1
        assert dive.date == '2024-05-04'
        assert dive.time == '08:30:00'
        assert dive.duration_seconds == 1800
        assert dive.max_depth_m == pytest.approx(12.25)
        assert dive.mean_depth_m == pytest.approx(7.1)
        assert dive.otu == 14
        assert dive.cns_percent == pytest.approx(9.0)
        assert dive.is_fresh_water is True
        assert dive.latitude == pytest.approx(36.0, abs=1e-6)
        assert dive.longitude == pytest.approx(-36.0, abs=1e-6)
        assert result.trip_name == 'FIT Import 2024-05-04'

    def test_samples_relative_to_session_start(self):
        """Test surface records are dropped and times come from timestamps"""
        samples = parse_messages(dive_messages()).dives[0].samples

        assert [s.time_seconds for s in samples] == [10, 20, 30]
        assert [s.depth_m for s in samples] == pytest.approx([5.5, 12.25, 8.0])
        assert samples[0].temp_c == pytest.approx(26.0)
        assert samples[1].ndl_seconds == 2400
        assert samples[1].rbt_seconds == 1800
        assert samples[2].temp_c is None

    def test_tank_pressures_grouped_by_sensor(self):
        """Test tank updates are named per sensor and clipped to the dive"""
        pressures = parse_messages(dive_messages()).dives[0].tank_pressures

        assert [(p.sensor_id, p.sensor_name, p.time_seconds, p.pressure_bar) for p in pressures] == [
            (111, 'Tank 1', 10, 200.5),
            (111, 'Tank 1', 30, 195.0),
            (222, 'Tank 2', 20, 190.0),
        ]

    def test_tanks_from_summaries_and_gas(self):
        """Test every tank summary gets the primary gas mix"""
        tanks = parse_messages(dive_messages()).dives[0].tanks

        assert len(tanks) == 2
        assert tanks[0].sensor_id == 111
        assert tanks[0].o2_percent == pytest.approx(32.0)
        assert tanks[0].volume_used_liters == pytest.approx(900.0)
        assert tanks[1].sensor_id == 222
        assert tanks[1].gas_index == 1
        assert tanks[1].o2_percent == pytest.approx(32.0)

    def test_events_need_a_name(self):
        events = parse_messages(dive_messages()).dives[0].events

        assert len(events) == 1
        assert events[0].name == 'ascent_alert'
        assert events[0].value == 3
        assert events[0].time_seconds == 20

    def test_sample_pressures_without_tank_updates(self):
        """Test sample-level tank pressures become sensor 0 readings"""
        messages = [
            message('record', timestamp=START, depth=3.0, tank_pressure=21000000),
            message('record', timestamp=START + timedelta(seconds=4), depth=4.0,
                    absolute_pressure=140000, tank_pressure=205.0),
            message('record', timestamp=START + timedelta(seconds=8), depth=4.0, tank_pressure=900.0),
        ]
        imported = parse_messages(messages).dives[0]

        assert [s.pressure_bar for s in imported.samples] == [210.0, 205.0, None]
        assert [(p.sensor_id, p.time_seconds, p.pressure_bar) for p in imported.tank_pressures] == [
            (0, 0, 210.0),
            (0, 4, 205.0),
        ]
        assert imported.dive.date == '2024-05-04'

    def test_samples_spread_without_timestamps(self):
        """Test samples are spread over the recorded duration"""
        messages = [
            message('record', depth=2.0),
            message('record', depth=6.0),
            message('record', depth=3.0),
            message('session', total_elapsed_time=600),
        ]
        samples = parse_messages(messages).dives[0].samples

        assert [s.time_seconds for s in samples] == [0, 300, 600]

    def test_non_finite_values_are_ignored(self):
        """Test NaN and infinite field values degrade to missing data"""
        messages = [
            message('record', timestamp=START, depth=4.0, ndl_time=float('nan'),
                    air_time_remaining=float('inf')),
            message('record', timestamp=START + timedelta(seconds=10), depth=float('nan')),
            message('event', timestamp=START, event='bookmark', data=float('nan')),
            message('session', start_time=START, total_elapsed_time=float('inf')),
        ]
        imported = parse_messages(messages).dives[0]

        assert len(imported.samples) == 1
        assert imported.samples[0].ndl_seconds is None
        assert imported.samples[0].rbt_seconds is None
        assert imported.events[0].value is None
        assert imported.dive.duration_seconds == 0

    def test_no_dive_data(self):
        """Test a FIT file without any dive content"""
        messages = [message('file_id', manufacturer='garmin'), message('device_info', serial_number=1)]
        with pytest.raises(DiveLogParseError, match="Record types present: file_id, device_info"):
            parse_messages(messages)

    def test_decoder_failure(self):
        """Test fitparse errors are reported as parse errors"""
        with patch('dive_importer.fit_parser.FitFile', side_effect=FitParseError("Invalid .FIT File Header")):
            with pytest.raises(DiveLogParseError, match="Invalid .FIT File Header"):
                FitDiveParser(b'not a fit file').parse()
