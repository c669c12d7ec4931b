"""Combine two EXIF backends into one photo metadata record"""

import dataclasses
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from .exif_backends import ExifBackend, ExifReadBackend, Exiv2Backend, TagValue
from .units import parse_rational

logger = logging.getLogger(__name__)

CAPTURE_TIME_TAGS = ('DateTimeOriginal', 'DateTimeDigitized', 'DateTime')
ISO_TAGS = ('ISOSpeedRatings', 'PhotographicSensitivity', 'StandardOutputSensitivity')
LENS_TAGS = ('LensModel', 'Lens', 'LensSpecification')

EXIF_DATETIME_FORMAT = '%Y:%m:%d %H:%M:%S'
CAPTURE_TIME_FORMAT = '%Y-%m-%dT%H:%M:%S'
DATETIME_FORMATS = (EXIF_DATETIME_FORMAT, '%Y-%m-%d %H:%M:%S', CAPTURE_TIME_FORMAT)


@dataclass
class ExifFields:
    """Photo metadata derived from EXIF tags; None means unknown"""
    capture_time: Optional[str] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    lens_info: Optional[str] = None
    focal_length_mm: Optional[float] = None
    aperture: Optional[float] = None
    shutter_speed: Optional[str] = None
    iso: Optional[int] = None
    exposure_compensation: Optional[float] = None
    white_balance: Optional[str] = None
    flash_fired: Optional[bool] = None
    metering_mode: Optional[str] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None

    def has_core(self) -> bool:
        """True when any of capture time, aperture or ISO is known"""
        return any(v is not None for v in (self.capture_time, self.aperture, self.iso))

    def is_complete(self) -> bool:
        return all(getattr(self, f.name) is not None for f in dataclasses.fields(self))

    def fill_from(self, other: 'ExifFields') -> 'ExifFields':
        """Return a copy with unknown fields taken from `other`"""
        missing = {
            f.name: getattr(other, f.name)
            for f in dataclasses.fields(self)
            if getattr(self, f.name) is None
        }
        return dataclasses.replace(self, **missing)


def parse_exif_datetime(value: Optional[str]) -> Optional[str]:
    """Convert "YYYY:MM:DD HH:MM:SS" to "YYYY-MM-DDTHH:MM:SS"

    "YYYY-MM-DD HH:MM:SS" and "YYYY-MM-DDTHH:MM:SS" are accepted too.
    Sub-second digits or trailing NULs after the seconds are ignored.
    """
    text = (value or '').strip().strip('\x00').strip()[:19]
    for fmt in DATETIME_FORMATS:
        try:
            moment = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return moment.strftime(CAPTURE_TIME_FORMAT)
    return None


def parse_gps_coordinate(value: Optional[str]) -> Optional[float]:
    """Parse a decimal or degrees/minutes/seconds coordinate

    Accepts "21.5", "21/1 40/1 37/1", "21° 40' 37\"" and "21deg 40' 37.2\"",
    each optionally followed by a hemisphere letter. S and W are negative.
    """
    text = (value or '').strip()
    if not text:
        return None

    hemisphere = ''
    if text[-1].upper() in 'NSEW':
        hemisphere = text[-1].upper()
        text = text[:-1]

    for mark in ('deg', '°', "'", '"', ','):
        text = text.replace(mark, ' ')

    parts = text.split()
    if not 1 <= len(parts) <= 3:
        return None

    numbers = [parse_rational(part) for part in parts]
    if any(number is None for number in numbers):
        return None
    numbers += [0.0] * (3 - len(numbers))

    degrees, minutes, seconds = numbers
    coordinate = abs(degrees) + minutes / 60 + seconds / 3600
    if degrees < 0 or hemisphere in ('S', 'W'):
        coordinate = -coordinate
    return coordinate


def _text(tags: Dict[str, TagValue], *names: str) -> Optional[str]:
    for name in names:
        tag = tags.get(name)
        if tag is None:
            continue
        text = (tag.printable or tag.raw or '').strip()
        if text:
            return text
    return None


def _number(tags: Dict[str, TagValue], name: str) -> Optional[float]:
    tag = tags.get(name)
    if tag is None or not tag.raw:
        return None
    return parse_rational(tag.raw.split()[0])


def _capture_time(tags):
    for name in CAPTURE_TIME_TAGS:
        tag = tags.get(name)
        if tag is None:
            continue
        capture_time = parse_exif_datetime(tag.raw)
        if capture_time:
            return capture_time
    return None


def _focal_length(tags):
    # 0 in the 35mm field means the camera did not know
    equivalent = _number(tags, 'FocalLengthIn35mmFilm')
    if equivalent:
        return equivalent
    return _number(tags, 'FocalLength')


def _aperture(tags):
    f_number = _number(tags, 'FNumber')
    if f_number:
        return f_number

    apex = _number(tags, 'ApertureValue')
    if apex is None:
        return None
    try:
        aperture = round(2 ** (apex / 2), 1)
    except OverflowError:
        return None
    return aperture if aperture > 0 else None


def _shutter_speed(tags):
    tag = tags.get('ExposureTime')
    if tag is not None and tag.printable:
        text = tag.printable.strip()
        if text.endswith('s'):
            text = text[:-1].strip()
        if text:
            return text

    apex = _number(tags, 'ShutterSpeedValue')
    if apex is None:
        return None
    try:
        exposure = 1 / 2 ** apex
        denominator = 1 / exposure
    except (OverflowError, ZeroDivisionError):
        return None
    if not (math.isfinite(exposure) and math.isfinite(denominator)):
        return None
    if exposure >= 1:
        return f"{exposure:.1f}s"
    return f"1/{int(round(denominator))}"


def _iso(tags):
    for name in ISO_TAGS:
        tag = tags.get(name)
        if tag is None or not tag.raw:
            continue
        try:
            return int(tag.raw.split()[0])
        except ValueError:
            continue
    return None


def _flash_fired(tags):
    tag = tags.get('Flash')
    if tag is None:
        return None
    try:
        return bool(int(tag.raw.split()[0]) & 1)
    except (ValueError, IndexError):
        text = (tag.printable or '').lower()
        return 'fired' in text or text.startswith('yes')


def _gps(tags, name):
    tag = tags.get(name)
    if tag is None:
        return None
    text = tag.raw
    ref = tags.get(f"{name}Ref")
    if ref is not None and ref.raw:
        text = f"{text} {ref.raw.strip()[:1]}"
    return parse_gps_coordinate(text)


def extract_fields(tags: Dict[str, TagValue]) -> ExifFields:
    """Derive photo metadata from a flat tag mapping"""
    return ExifFields(
        capture_time=_capture_time(tags),
        camera_make=_text(tags, 'Make'),
        camera_model=_text(tags, 'Model'),
        lens_info=_text(tags, *LENS_TAGS),
        focal_length_mm=_focal_length(tags),
        aperture=_aperture(tags),
        shutter_speed=_shutter_speed(tags),
        iso=_iso(tags),
        exposure_compensation=_number(tags, 'ExposureBiasValue'),
        white_balance=_text(tags, 'WhiteBalance'),
        flash_fired=_flash_fired(tags),
        metering_mode=_text(tags, 'MeteringMode'),
        gps_latitude=_gps(tags, 'GPSLatitude'),
        gps_longitude=_gps(tags, 'GPSLongitude')
    )


class ExifFusionResolver:
    """Reads metadata with a permissive backend and patches gaps from a strict one

    If the permissive backend knows none of capture time, aperture and ISO
    its record is discarded for the strict backend's. Otherwise only the
    fields it left unknown are taken from the strict backend.
    """

    def __init__(self, permissive: Optional[ExifBackend] = None,
                 strict: Optional[ExifBackend] = None):
        self.permissive = permissive or Exiv2Backend()
        self.strict = strict or ExifReadBackend()

    def resolve(self, path: str) -> ExifFields:
        fields = extract_fields(self.permissive.read_tags(path))

        if not fields.has_core():
            logger.debug(f"{self.permissive.name} found no core EXIF in {path}, using {self.strict.name}")
            return extract_fields(self.strict.read_tags(path))

        if fields.is_complete():
            return fields

        return fields.fill_from(extract_fields(self.strict.read_tags(path)))
