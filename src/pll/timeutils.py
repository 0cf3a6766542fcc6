from __future__ import annotations

import datetime as dt
import re

_PART = re.compile(r"\s*([0-9]+)\s*([^0-9\s]+)")

_NS_PER_SECOND = 1_000_000_000

# unit -> nanoseconds
_UNITS: dict[str, int] = {}
for _names, _ns in (
    (("nsec", "ns"), 1),
    (("usec", "us", "µs"), 1_000),
    (("msec", "ms"), 1_000_000),
    (("seconds", "second", "sec", "s"), _NS_PER_SECOND),
    (("minutes", "minute", "min", "m"), 60 * _NS_PER_SECOND),
    (("hours", "hour", "hr", "h"), 3_600 * _NS_PER_SECOND),
    (("days", "day", "d"), 86_400 * _NS_PER_SECOND),
    (("weeks", "week", "w"), 7 * 86_400 * _NS_PER_SECOND),
    (("months", "month", "M"), 2_630_016 * _NS_PER_SECOND),  # 30.44 days
    (("years", "year", "y"), 31_557_600 * _NS_PER_SECOND),  # 365.25 days
):
    for _name in _names:
        _UNITS[_name] = _ns

MILLISECOND = dt.timedelta(milliseconds=1)


def parse_duration(value: str) -> dt.timedelta:
    """Parse a humantime-style duration such as ``250ms``, ``2s`` or ``1m 30s``.

    Every number needs a unit; parts are summed. Sub-microsecond remainders are
    truncated since ``timedelta`` stops at microseconds.
    """
    text = value.strip()
    if not text:
        raise ValueError("Invalid duration: empty string")

    total_ns = 0
    pos = 0
    while pos < len(text):
        m = _PART.match(text, pos)
        if m is None:
            rest = text[pos:].strip()
            if rest.isdigit():
                raise ValueError(f"Invalid duration: {value!r} (time unit needed, e.g. {rest}ms)")
            raise ValueError(f"Invalid duration: {value!r}")
        number, unit = m.groups()
        if unit not in _UNITS:
            raise ValueError(f"Invalid duration: {value!r} (unknown time unit {unit!r})")
        total_ns += int(number) * _UNITS[unit]
        pos = m.end()
    try:
        return dt.timedelta(microseconds=total_ns // 1_000)
    except OverflowError as e:
        raise ValueError(f"Invalid duration: {value!r} (out of range)") from e


def to_millis(d: dt.timedelta) -> int:
    """Whole milliseconds in ``d``, truncated."""
    return d // MILLISECOND


def format_millis(d: dt.timedelta) -> str:
    return f"{to_millis(d)}ms"
