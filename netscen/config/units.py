"""
units.py - Data rate and time value parsing

Scenario files write link rates and delays the way simulator scripts do
("5Mbps", "2ms", "6560ns"). Plain numbers are taken as bits/s and seconds.
"""

import re
from typing import Union

_VALUE_RE = re.compile(r'^\s*([0-9]*\.?[0-9]+(?:[eE][-+]?[0-9]+)?)\s*([A-Za-z/]*)\s*$')

# Multipliers to bits per second
_RATE_UNITS = {
    '': 1,
    'bps': 1,
    'b/s': 1,
    'kbps': 1_000,
    'kb/s': 1_000,
    'mbps': 1_000_000,
    'mb/s': 1_000_000,
    'gbps': 1_000_000_000,
    'gb/s': 1_000_000_000,
}

# Multipliers to seconds
_TIME_UNITS = {
    '': 1.0,
    's': 1.0,
    'ms': 1e-3,
    'us': 1e-6,
    'ns': 1e-9,
    'min': 60.0,
}

Number = Union[int, float]


def _split(value: str, what: str):
    match = _VALUE_RE.match(value)
    if not match:
        raise ValueError(f"Invalid {what} value: '{value}'")
    return float(match.group(1)), match.group(2).lower()


def parse_data_rate(value: Union[str, Number]) -> int:
    """
    Parse a data rate into bits per second.

    Args:
        value: Number (bits/s) or string such as "5Mbps", "500kb/s"

    Returns:
        Data rate in bits per second

    Raises:
        ValueError: If the value or unit is not recognized
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid data rate value: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)

    number, unit = _split(str(value), "data rate")
    if unit not in _RATE_UNITS:
        raise ValueError(f"Unknown data rate unit '{unit}' in '{value}'")
    return int(round(number * _RATE_UNITS[unit]))


def parse_time(value: Union[str, Number]) -> float:
    """
    Parse a time value into seconds.

    Args:
        value: Number (seconds) or string such as "2ms", "6560ns", "1.5s"

    Returns:
        Time in seconds

    Raises:
        ValueError: If the value or unit is not recognized
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid time value: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    number, unit = _split(str(value), "time")
    if unit not in _TIME_UNITS:
        raise ValueError(f"Unknown time unit '{unit}' in '{value}'")
    return number * _TIME_UNITS[unit]


def format_data_rate(bps: int) -> str:
    """Format bits per second the way scenario files write them."""
    for suffix, factor in (('Gbps', 1_000_000_000), ('Mbps', 1_000_000), ('kbps', 1_000)):
        if bps >= factor and bps % factor == 0:
            return f"{bps // factor}{suffix}"
    return f"{bps}bps"
