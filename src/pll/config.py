from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from .timeutils import parse_duration
from .utils.validation import (
    require_non_negative_duration,
    require_positive_duration,
    require_positive_number,
)

# Added to every grown interval. Constant, so wait sequences are reproducible.
DEFAULT_JITTER = dt.timedelta(milliseconds=2)


@dataclass(frozen=True)
class Defaults:
    initial_interval: str = "250ms"
    max_interval: str = "2s"
    max_elapsed: str = "60s"
    multiplier: float = 1.3
    max_tries: int = 45


@dataclass(frozen=True)
class BackoffSettings:
    initial_interval: dt.timedelta
    max_interval: dt.timedelta
    max_elapsed: dt.timedelta
    multiplier: float
    max_tries: int
    jitter: dt.timedelta = DEFAULT_JITTER
    kill_on_deadline: bool = False


def build_settings(
    *,
    initial_interval: str | dt.timedelta = Defaults.initial_interval,
    max_interval: str | dt.timedelta = Defaults.max_interval,
    max_elapsed: str | dt.timedelta = Defaults.max_elapsed,
    multiplier: float = Defaults.multiplier,
    max_tries: int = Defaults.max_tries,
    jitter: dt.timedelta = DEFAULT_JITTER,
    kill_on_deadline: bool = False,
) -> BackoffSettings:
    """Parse and validate backoff options.

    Durations may be given as humantime strings or as ``timedelta``. Raises
    ``ValueError`` naming the offending option.
    """
    initial = require_positive_duration("initial-interval", _as_duration("initial-interval", initial_interval))
    maximum = require_positive_duration("max-interval", _as_duration("max-interval", max_interval))
    elapsed = require_non_negative_duration("max-elapsed", _as_duration("max-elapsed", max_elapsed))
    require_positive_number("multiplier", float(multiplier))
    if maximum < initial:
        raise ValueError(f"max-interval ({maximum}) must not be shorter than initial-interval ({initial})")
    if int(max_tries) < 0:
        raise ValueError(f"max-tries must not be negative (got {max_tries})")

    return BackoffSettings(
        initial_interval=initial,
        max_interval=maximum,
        max_elapsed=elapsed,
        multiplier=float(multiplier),
        max_tries=int(max_tries),
        jitter=jitter,
        kill_on_deadline=kill_on_deadline,
    )


def _as_duration(name: str, v: str | dt.timedelta) -> dt.timedelta:
    if isinstance(v, dt.timedelta):
        return v
    try:
        return parse_duration(v)
    except ValueError as e:
        raise ValueError(f"{name}: {e}") from e
