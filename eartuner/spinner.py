from __future__ import annotations

import sys
from typing import IO

from rich.console import Console
from rich.markup import escape
from rich.status import Status


class Spinner:
    """Rich status line, silent when the stream is not a terminal."""

    def __init__(
        self,
        message: str,
        *,
        stream: IO[str] | None = None,
        enabled: bool | None = None,
    ) -> None:
        self._message = message
        self._stream = stream or sys.stderr
        self._enabled = self._stream.isatty() if enabled is None else enabled
        self._console = Console(file=self._stream) if self._enabled else None
        self._status: Status | None = None

    def start(self) -> None:
        if self._console is None or self._status is not None:
            return
        self._status = self._console.status(self._message, spinner="dots")
        self._status.start()

    def update(self, message: str) -> None:
        self._message = message
        if self._status is not None:
            self._status.update(message)

    def stop(self) -> None:
        if self._status is None:
            return
        self._status.stop()
        self._status = None

    def __enter__(self) -> "Spinner":
        self.start()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.stop()


def render_error(context: str, exc: BaseException, *, stream: IO[str] | None = None) -> None:
    console = Console(file=stream or sys.stderr)
    message = escape(f"{type(exc).__name__}: {exc}")
    console.print(f"[bold red]{escape(context)} failed:[/] {message}")
