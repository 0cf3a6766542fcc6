from __future__ import annotations

import datetime as dt

from rich.console import Console

from .timeutils import format_millis


class StatusConsole:
    """One colored line per attempt event, on stderr."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(stderr=True, highlight=False)

    def _line(self, text: str, style: str) -> None:
        # command text may contain [brackets], so never parse markup
        self.console.print(text, style=style, markup=False, highlight=False, soft_wrap=True)

    def attempt(self, command: str) -> None:
        self._line(command, "bold white")

    def success(self) -> None:
        self._line("success", "green")

    def retrying(self, code: int, wait: dt.timedelta) -> None:
        self._line(f"exit code {code}. retry after {format_millis(wait)}", "yellow")

    def failed(self, code: int) -> None:
        self._line(f"exit code {code}", "yellow")

    def max_retries(self) -> None:
        self._line("max retries, failing", "red")

    def max_elapsed(self) -> None:
        self._line("max elapsed, failing", "red")

    def killed_by_signal(self, name: str | None = None) -> None:
        self._line(f"killed by signal {name}" if name else "killed by signal", "red")

    def unable_to_run(self, reason: str) -> None:
        self._line(f"unable to run command. {reason}", "red")

    def killed_at_deadline(self) -> None:
        self._line("killed at deadline, failing", "red")
