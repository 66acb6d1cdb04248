"""
Human-friendly durations: '10ms', '1.5s', '1m 30s', '900ms..1100ms'.

All durations are plain float seconds, the unit asyncio.sleep and
time.perf_counter work in.
"""
import re
from typing import Optional, Tuple

from config import ConfigError, RANGE_SEPARATOR

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6, "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0, "sec": 1.0,
    "m": 60.0, "min": 60.0,
    "h": 3600.0, "hr": 3600.0,
}

# Longest unit names first so 'ms' never matches as 'm' + 's'
_PART_RE = re.compile(
    r"\s*(\d+(?:\.\d+)?)\s*(" + "|".join(sorted(_UNITS, key=len, reverse=True)) + r")(?![a-zµ])",
    re.IGNORECASE,
)

# (upper bound in seconds, unit, divisor)
_FORMAT_STEPS = (
    (1e-6, "ns", 1e-9),
    (1e-3, "µs", 1e-6),
    (1.0, "ms", 1e-3),
    (60.0, "s", 1.0),
    (3600.0, "m", 60.0),
)


def parse_duration(text: str) -> float:
    source = text.strip()
    if not source:
        raise ConfigError("empty duration")
    if source == "0":
        return 0.0

    total = 0.0
    pos = 0
    while pos < len(source):
        match = _PART_RE.match(source, pos)
        if not match:
            raise ConfigError(f"invalid duration '{text}' (expected e.g. '10ms', '1.5s', '1m 30s')")
        total += float(match.group(1)) * _UNITS[match.group(2).lower()]
        pos = match.end()
        while pos < len(source) and source[pos].isspace():
            pos += 1
    return total


def parse_duration_range(text: str) -> Tuple[float, float]:
    """Parses 'from..to' into a (low, high) pair; a single duration gives (d, d)."""
    if RANGE_SEPARATOR in text:
        low_text, high_text = text.split(RANGE_SEPARATOR, 1)
        return parse_duration(low_text), parse_duration(high_text)
    value = parse_duration(text)
    return value, value


def format_duration(seconds: float, precision: Optional[int] = None) -> str:
    unit, divisor = "h", 3600.0
    for upper, step_unit, step_divisor in _FORMAT_STEPS:
        if seconds < upper:
            unit, divisor = step_unit, step_divisor
            break

    value = seconds / divisor
    if unit == "ns":
        return f"{round(value)}ns"
    if precision is not None:
        return f"{value:.{precision}f}{unit}"
    # Nanosecond resolution at most, trailing zeros trimmed
    digits = {"µs": 3, "ms": 6, "s": 9}.get(unit, 9)
    text = f"{value:.{digits}f}".rstrip("0").rstrip(".")
    return f"{text}{unit}"
