"""Unit-suffixed value parsing for dive log attributes"""

import math
from typing import Optional


def _finite(number: float, default: Optional[float]) -> Optional[float]:
    return number if math.isfinite(number) else default


def strip_unit(value: str, unit: str) -> str:
    """Remove a trailing unit suffix, with or without a separating space"""
    text = (value or '').strip()
    if unit and text.endswith(unit):
        text = text[:-len(unit)]
    return text.strip()


def parse_number(value: str, unit: str = '', default: Optional[float] = 0.0) -> Optional[float]:
    """Parse a float that may carry a unit suffix, returning `default` on failure"""
    try:
        return _finite(float(strip_unit(value, unit)), default)
    except (TypeError, ValueError):
        return default


def parse_duration(value: str) -> int:
    """Parse duration string into seconds

    Accepts "MM:SS min", "MM:SS" or a bare number of whole minutes.
    Anything else yields 0.
    """
    text = strip_unit(value, 'min')
    parts = text.split(':')
    try:
        if len(parts) == 2:
            return int(parts[0]) * 60 + int(parts[1])
        if len(parts) == 1:
            return int(parts[0]) * 60
    except ValueError:
        pass
    return 0


def parse_depth(value: str) -> float:
    """Parse depth string like "22.893 m" to meters"""
    return parse_number(value, 'm')


def parse_temp(value: str) -> float:
    """Parse temperature string like "28.7 C" to celsius"""
    return parse_number(value, 'C')


def parse_pressure(value: str) -> float:
    """Parse pressure string like "210.14 bar" to bar"""
    return parse_number(value, 'bar')


def parse_percent(value: str) -> Optional[float]:
    """Parse "32.0%" style values, None when unparseable"""
    return parse_number(value, '%', default=None)


def parse_int(value: str, default: Optional[int] = 0) -> Optional[int]:
    try:
        return int((value or '').strip())
    except ValueError:
        return default


def parse_rational(value, default: Optional[float] = None) -> Optional[float]:
    """Parse a rational like "28/10" or a plain float

    A zero denominator, NaN or infinity is treated as unparseable.
    """
    text = str(value).strip() if value is not None else ''
    if '/' in text:
        parts = text.split('/')
        if len(parts) != 2:
            return default
        try:
            numerator = float(parts[0])
            denominator = float(parts[1])
            if denominator == 0:
                return default
            return _finite(numerator / denominator, default)
        except (ValueError, OverflowError):
            return default
    try:
        return _finite(float(text), default)
    except ValueError:
        return default
