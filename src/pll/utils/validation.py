from __future__ import annotations

import datetime as dt

_ZERO = dt.timedelta()


def require_positive_duration(name: str, value: dt.timedelta) -> dt.timedelta:
    if value <= _ZERO:
        raise ValueError(f"{name} must be greater than zero (got {value})")
    return value


def require_non_negative_duration(name: str, value: dt.timedelta) -> dt.timedelta:
    if value < _ZERO:
        raise ValueError(f"{name} must not be negative (got {value})")
    return value


def require_positive_number(name: str, value: float) -> float:
    # NaN fails this comparison too
    if not value > 0:
        raise ValueError(f"{name} must be greater than zero (got {value})")
    return value
