from __future__ import annotations

import datetime as dt
import enum
import math
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Protocol

from .config import DEFAULT_JITTER, BackoffSettings
from .executor import (
    AttemptOutcome,
    DeadlineKilled,
    FailureWithCode,
    KilledBySignal,
    LaunchFailed,
    Success,
)
from .logging import get_logger
from .status import StatusConsole
from .timeutils import MILLISECOND, to_millis

log = get_logger(__name__)


class RunResult(enum.IntEnum):
    """Terminal outcome of a run; the value is the process exit code."""

    SUCCESS = 0
    MAX_RETRIES = 1
    KILLED_BY_SIGNAL = 2
    UNABLE_TO_LAUNCH = 3
    MAX_ELAPSED = 4
    KILLED_AT_DEADLINE = 5


class Executor(Protocol):
    def execute(self, command: str, timeout: float | None = None) -> AttemptOutcome: ...


def next_wait(
    wait: dt.timedelta,
    multiplier: float,
    max_wait: dt.timedelta,
    jitter: dt.timedelta = DEFAULT_JITTER,
) -> dt.timedelta:
    """Grow ``wait`` by ``multiplier`` at millisecond precision, add ``jitter``, cap at ``max_wait``.

    The cap is applied in integer milliseconds, so huge or infinite growth
    saturates at ``max_wait`` instead of overflowing ``timedelta``.
    """
    cap_ms = to_millis(max_wait)
    grown = to_millis(wait) * multiplier
    if not math.isfinite(grown):
        return cap_ms * MILLISECOND
    return min(cap_ms, math.floor(grown) + to_millis(jitter)) * MILLISECOND


def wait_sequence(
    initial: dt.timedelta,
    multiplier: float,
    max_wait: dt.timedelta,
    jitter: dt.timedelta = DEFAULT_JITTER,
) -> Iterator[dt.timedelta]:
    """Endless sequence of waits the controller would sleep, starting with ``initial``."""
    wait = initial
    while True:
        yield wait
        wait = next_wait(wait, multiplier, max_wait, jitter)


@dataclass
class RetryState:
    wait: dt.timedelta
    multiplier: float
    max_wait: dt.timedelta
    deadline: float  # clock reading, fixed at start
    tries_remaining: int
    jitter: dt.timedelta = DEFAULT_JITTER

    @classmethod
    def start(cls, settings: BackoffSettings, now: float) -> "RetryState":
        return cls(
            wait=settings.initial_interval,
            multiplier=settings.multiplier,
            max_wait=settings.max_interval,
            deadline=now + settings.max_elapsed.total_seconds(),
            tries_remaining=settings.max_tries,
            jitter=settings.jitter,
        )

    def advance(self) -> None:
        self.wait = next_wait(self.wait, self.multiplier, self.max_wait, self.jitter)
        self.tries_remaining -= 1


class BackoffController:
    """Runs a command until it succeeds or a budget runs out.

    Before every attempt, including the first, the deadline is checked. A
    non-zero exit is retried after sleeping ``state.wait``; every other
    outcome is terminal.
    """

    def __init__(
        self,
        executor: Executor,
        status: StatusConsole | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        kill_on_deadline: bool = False,
    ):
        self.executor = executor
        self.status = status or StatusConsole()
        self.clock = clock
        self.sleep = sleep
        self.kill_on_deadline = kill_on_deadline
        self.attempts = 0

    def start(self, command: str, settings: BackoffSettings) -> RunResult:
        self.kill_on_deadline = settings.kill_on_deadline
        return self.run(command, RetryState.start(settings, self.clock()))

    def run(self, command: str, state: RetryState) -> RunResult:
        while True:
            self.status.attempt(command)
            now = self.clock()
            if now >= state.deadline:
                log.debug("deadline reached after %d attempt(s)", self.attempts)
                self.status.max_elapsed()
                return RunResult.MAX_ELAPSED

            timeout = state.deadline - now if self.kill_on_deadline else None
            self.attempts += 1
            outcome = self.executor.execute(command, timeout=timeout)
            log.debug("attempt %d -> %s", self.attempts, outcome)

            if isinstance(outcome, Success):
                self.status.success()
                return RunResult.SUCCESS
            if isinstance(outcome, LaunchFailed):
                self.status.unable_to_run(outcome.reason)
                return RunResult.UNABLE_TO_LAUNCH
            if isinstance(outcome, KilledBySignal):
                self.status.killed_by_signal(outcome.signal_name)
                return RunResult.KILLED_BY_SIGNAL
            if isinstance(outcome, DeadlineKilled):
                self.status.killed_at_deadline()
                return RunResult.KILLED_AT_DEADLINE
            if not isinstance(outcome, FailureWithCode):
                raise TypeError(f"Unknown attempt outcome: {outcome!r}")

            if state.tries_remaining <= 0:
                self.status.failed(outcome.code)
                self.status.max_retries()
                return RunResult.MAX_RETRIES

            self.status.retrying(outcome.code, state.wait)
            log.debug("sleep %ss, %d tries left", state.wait.total_seconds(), state.tries_remaining)
            self.sleep(state.wait.total_seconds())
            state.advance()
