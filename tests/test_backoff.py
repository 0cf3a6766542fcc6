import datetime as dt
import itertools

import pytest

from pll.backoff import BackoffController, RetryState, RunResult, next_wait, wait_sequence
from pll.config import build_settings
from pll.executor import DeadlineKilled, FailureWithCode, KilledBySignal, LaunchFailed, Success

MS = dt.timedelta(milliseconds=1)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class ScriptedExecutor:
    """Replays outcomes; the last one repeats forever."""

    def __init__(self, *outcomes, clock=None, cost: float = 0.0):
        self.outcomes = list(outcomes)
        self.calls = []
        self.clock = clock
        self.cost = cost

    def execute(self, command, timeout=None):
        self.calls.append((command, timeout))
        if self.clock is not None:
            self.clock.now += self.cost
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


class SilentStatus:
    def __init__(self):
        self.events = []

    def __getattr__(self, name):
        return lambda *args: self.events.append((name,) + args)


def _controller(executor, clock):
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        clock.now += seconds

    ctl = BackoffController(executor, SilentStatus(), clock=clock, sleep=sleep)
    return ctl, sleeps


def test_next_wait_floors_adds_jitter_and_caps():
    assert next_wait(250 * MS, 1.3, 2000 * MS) == 327 * MS  # floor(325.0) + 2
    assert next_wait(327 * MS, 1.3, 2000 * MS) == 427 * MS  # floor(425.1) + 2
    assert next_wait(1900 * MS, 1.3, 2000 * MS) == 2000 * MS
    assert next_wait(2000 * MS, 1.3, 2000 * MS) == 2000 * MS


@pytest.mark.parametrize("initial_ms", [1, 7, 250, 1999])
@pytest.mark.parametrize("multiplier", [1.0, 1.01, 1.3, 2.0, 10.0])
@pytest.mark.parametrize("max_ms", [2000, 60_000])
def test_wait_sequence_is_non_decreasing_and_capped(initial_ms, multiplier, max_ms):
    waits = list(itertools.islice(wait_sequence(initial_ms * MS, multiplier, max_ms * MS), 200))
    assert all(a <= b for a, b in zip(waits, waits[1:]))
    assert all(w <= max_ms * MS for w in waits)


def test_unit_multiplier_grows_by_jitter_only():
    waits = list(itertools.islice(wait_sequence(100 * MS, 1.0, 108 * MS), 7))
    assert waits == [100 * MS, 102 * MS, 104 * MS, 106 * MS, 108 * MS, 108 * MS, 108 * MS]


def test_retry_state_advance_keeps_wait_under_max():
    state = RetryState(wait=1500 * MS, multiplier=2.0, max_wait=2000 * MS, deadline=0.0, tries_remaining=3)
    state.advance()
    assert state.wait == 2000 * MS
    assert state.tries_remaining == 2


def test_success_first_try_runs_once_without_sleep():
    clock = FakeClock()
    executor = ScriptedExecutor(Success())
    ctl, sleeps = _controller(executor, clock)

    result = ctl.start("true", build_settings())

    assert result is RunResult.SUCCESS
    assert int(result) == 0
    assert len(executor.calls) == 1
    assert sleeps == []


def test_always_failing_exhausts_tries():
    clock = FakeClock()
    executor = ScriptedExecutor(FailureWithCode(7))
    ctl, sleeps = _controller(executor, clock)

    result = ctl.start("exit 7", build_settings(max_tries=5, max_elapsed="1h"))

    assert result is RunResult.MAX_RETRIES
    assert int(result) == 1
    assert len(executor.calls) == 6
    assert len(sleeps) == 5
    assert sleeps[:3] == [0.25, 0.327, 0.427]


def test_zero_tries_means_single_attempt():
    clock = FakeClock()
    executor = ScriptedExecutor(FailureWithCode(1))
    ctl, sleeps = _controller(executor, clock)

    assert ctl.start("false", build_settings(max_tries=0)) is RunResult.MAX_RETRIES
    assert len(executor.calls) == 1
    assert sleeps == []


def test_eventual_success_after_failures():
    clock = FakeClock()
    executor = ScriptedExecutor(FailureWithCode(1), FailureWithCode(1), Success())
    ctl, sleeps = _controller(executor, clock)

    assert ctl.start("flaky", build_settings()) is RunResult.SUCCESS
    assert len(executor.calls) == 3
    assert sleeps == [0.25, 0.327]


def test_elapsed_budget_stops_before_try_budget():
    clock = FakeClock()
    executor = ScriptedExecutor(FailureWithCode(7))
    ctl, sleeps = _controller(executor, clock)

    result = ctl.start("exit 7", build_settings(max_elapsed="1s", max_tries=45))

    assert result is RunResult.MAX_ELAPSED
    assert int(result) == 4
    # 0.25 + 0.327 + 0.427 = 1.004 > 1s, so the fourth attempt never runs
    assert len(executor.calls) == 3
    assert len(sleeps) == 3


@pytest.mark.parametrize("max_elapsed", ["0s", "0ms"])
def test_zero_elapsed_never_invokes_executor(max_elapsed):
    clock = FakeClock()
    executor = ScriptedExecutor(Success())
    ctl, _ = _controller(executor, clock)

    assert ctl.start("true", build_settings(max_elapsed=max_elapsed)) is RunResult.MAX_ELAPSED
    assert executor.calls == []


def test_past_deadline_state_never_invokes_executor():
    clock = FakeClock(now=50.0)
    executor = ScriptedExecutor(Success())
    ctl, _ = _controller(executor, clock)
    state = RetryState(wait=MS, multiplier=1.3, max_wait=MS, deadline=10.0, tries_remaining=45)

    assert ctl.run("true", state) is RunResult.MAX_ELAPSED
    assert executor.calls == []


def test_launch_failure_is_not_retried():
    clock = FakeClock()
    executor = ScriptedExecutor(LaunchFailed("No such file or directory"))
    ctl, sleeps = _controller(executor, clock)

    result = ctl.start("whatever", build_settings())

    assert result is RunResult.UNABLE_TO_LAUNCH
    assert int(result) == 3
    assert len(executor.calls) == 1
    assert sleeps == []
    assert ("unable_to_run", "No such file or directory") in ctl.status.events


def test_signal_is_not_retried_even_with_tries_left():
    clock = FakeClock()
    executor = ScriptedExecutor(FailureWithCode(1), KilledBySignal(9), Success())
    ctl, sleeps = _controller(executor, clock)

    result = ctl.start("cmd", build_settings(max_tries=45))

    assert result is RunResult.KILLED_BY_SIGNAL
    assert int(result) == 2
    assert len(executor.calls) == 2
    assert ("killed_by_signal", "SIGKILL") in ctl.status.events


def test_watchdog_timeout_is_remaining_budget():
    clock = FakeClock()
    executor = ScriptedExecutor(FailureWithCode(1), DeadlineKilled(), clock=clock, cost=2.0)
    ctl, _ = _controller(executor, clock)

    result = ctl.start("sleep 100", build_settings(max_elapsed="10s", kill_on_deadline=True))

    assert result is RunResult.KILLED_AT_DEADLINE
    assert int(result) == 5
    assert executor.calls[0][1] == pytest.approx(10.0)
    assert executor.calls[1][1] == pytest.approx(10.0 - 2.0 - 0.25)


def test_no_timeout_without_watchdog():
    clock = FakeClock()
    executor = ScriptedExecutor(Success())
    ctl, _ = _controller(executor, clock)

    ctl.start("true", build_settings())

    assert executor.calls == [("true", None)]


def test_status_reports_each_step():
    clock = FakeClock()
    executor = ScriptedExecutor(FailureWithCode(3), Success())
    ctl, _ = _controller(executor, clock)

    ctl.start("echo hi", build_settings())

    assert ctl.status.events == [
        ("attempt", "echo hi"),
        ("retrying", 3, 250 * MS),
        ("attempt", "echo hi"),
        ("success",),
    ]


def test_unknown_outcome_is_a_programming_error():
    clock = FakeClock()
    ctl, _ = _controller(ScriptedExecutor(object()), clock)

    with pytest.raises(TypeError):
        ctl.start("x", build_settings())


@pytest.mark.parametrize("multiplier", [1e20, 1e308, float("inf")])
def test_next_wait_saturates_at_max_for_huge_multipliers(multiplier):
    assert next_wait(250 * MS, multiplier, 2000 * MS) == 2000 * MS


def test_huge_multiplier_run_reaches_max_retries():
    clock = FakeClock()
    executor = ScriptedExecutor(FailureWithCode(7))
    ctl, sleeps = _controller(executor, clock)

    settings = build_settings(initial_interval="1ms", max_interval="2ms", multiplier=1e20, max_tries=2)
    assert ctl.start("exit 7", settings) is RunResult.MAX_RETRIES
    assert sleeps == [0.001, 0.002]
