"""Leveled console logging for provisioning runs."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.markup import escape

_STYLES = {
    "DEBUG": "dim",
    "INFO": "cyan",
    "SUCCESS": "green",
    "WARN": "yellow",
    "ERROR": "bold red",
}


class ConsoleLogger:
    """Print timestamped, colour-coded messages to a rich console.

    Warnings and errors go to stderr so that stdout stays usable when the summary
    is piped somewhere.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        *,
        err_console: Optional[Console] = None,
        verbose: bool = False,
    ):
        self.console = console or Console()
        self.err_console = err_console or (console if console is not None else Console(stderr=True))
        self.verbose = verbose

    def _emit(self, level: str, message: str, *, stderr: bool = False) -> None:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        style = _STYLES[level]
        target = self.err_console if stderr else self.console
        target.print(f"[{style}][{timestamp}] [{level}] {escape(message)}[/{style}]")

    def debug(self, message: str) -> None:
        if self.verbose:
            self._emit("DEBUG", message)

    def info(self, message: str) -> None:
        self._emit("INFO", message)

    def success(self, message: str) -> None:
        self._emit("SUCCESS", message)

    def warning(self, message: str) -> None:
        self._emit("WARN", message, stderr=True)

    def error(self, message: str) -> None:
        self._emit("ERROR", message, stderr=True)
