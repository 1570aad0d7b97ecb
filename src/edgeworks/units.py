"""Parsing for human-readable durations and sizes used in component args."""

from __future__ import annotations

import re

from .errors import ConfigurationError

_QUANTITY_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([A-Za-z]+)\s*$")

_SECONDS_PER_UNIT = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
}

_MB_PER_UNIT = {
    "MB": 1,
    "GB": 1024,
    "TB": 1024 * 1024,
}


def _split(value: str, kind: str) -> tuple[float, str]:
    match = _QUANTITY_RE.match(value) if isinstance(value, str) else None
    if not match:
        raise ConfigurationError(f"Invalid {kind} {value!r}")
    return float(match.group(1)), match.group(2)


def to_seconds(value: str | int) -> int:
    """Convert ``"20 seconds"``/``"5 minutes"`` (or a bare int) to seconds."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    count, unit = _split(value, "duration")
    unit = unit.lower().rstrip("s")
    if unit not in _SECONDS_PER_UNIT:
        raise ConfigurationError(f"Invalid duration {value!r}")
    return int(count * _SECONDS_PER_UNIT[unit])


def to_mbs(value: str | int) -> int:
    """Convert ``"1024 MB"``/``"1.5 GB"`` (or a bare int in MB) to megabytes."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    count, unit = _split(value, "size")
    unit = unit.upper()
    if unit not in _MB_PER_UNIT:
        raise ConfigurationError(f"Invalid size {value!r}")
    return int(count * _MB_PER_UNIT[unit])


def to_gbs(value: str | int) -> int:
    """Convert a size to whole gigabytes; bare ints are already gigabytes."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return to_mbs(value) // 1024
