from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from .logging import get_logger

log = get_logger(__name__)

DEFAULT_SHELL = "sh"


@dataclass(frozen=True)
class Success:
    pass


@dataclass(frozen=True)
class FailureWithCode:
    code: int


@dataclass(frozen=True)
class KilledBySignal:
    signal: Optional[int] = None

    @property
    def signal_name(self) -> str | None:
        if self.signal is None:
            return None
        try:
            return signal.Signals(self.signal).name
        except ValueError:
            return None


@dataclass(frozen=True)
class LaunchFailed:
    reason: str


@dataclass(frozen=True)
class DeadlineKilled:
    """The watchdog killed a child still running when the deadline passed."""


AttemptOutcome = Union[Success, FailureWithCode, KilledBySignal, LaunchFailed, DeadlineKilled]


def resolve_shell(environ: Mapping[str, str]) -> str:
    """Pick the shell for ``-c``: ``bash`` only on an exact ``SHELL=bash``, else ``sh``."""
    if environ.get("SHELL") == "bash":
        return "bash"
    return DEFAULT_SHELL


class ShellExecutor:
    """Runs one command string through a shell, with an empty environment."""

    def __init__(self, shell: str | None = None, environ: Mapping[str, str] | None = None):
        self.shell = shell
        self.environ = environ

    def execute(self, command: str, timeout: float | None = None) -> AttemptOutcome:
        shell = self.shell or resolve_shell(os.environ if self.environ is None else self.environ)
        argv = [shell, "-c", command]
        log.debug("exec %s (timeout=%s)", argv, timeout)

        # Under the watchdog the shell leads its own session, so everything it
        # spawned can be killed as one process group.
        watched = timeout is not None
        try:
            proc = subprocess.Popen(argv, env={}, start_new_session=watched)
        except OSError as e:
            log.debug("launch failed: %r", e)
            return LaunchFailed(str(e))

        try:
            rc = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._kill_group(proc)
            log.debug("child outlived the deadline, killed")
            return DeadlineKilled()
        except BaseException:
            if watched:
                self._kill_group(proc)
            else:
                proc.kill()
            proc.wait()
            raise

        log.debug("child exited rc=%s", rc)
        if rc == 0:
            return Success()
        if rc < 0:
            return KilledBySignal(signal=-rc)
        return FailureWithCode(rc)

    @staticmethod
    def _kill_group(proc: subprocess.Popen) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            log.debug("process group %s already gone", proc.pid)
        proc.wait()
