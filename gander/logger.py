"""Package-wide logger used for progress and diagnostic output."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, TextIO


class _Logger(Protocol):
    def printf(self, format: str, *args: object) -> None: ...

    def fatalf(self, format: str, *args: object) -> None: ...


def _render(format: str, args: tuple) -> str:
    return format % args if args else format


@dataclass
class StdLogger:
    """Writes timestamped lines to a stream, standard error by default."""

    stream: TextIO | None = None

    def _write(self, message: str) -> None:
        if not message.endswith("\n"):
            message += "\n"
        stamp = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
        target = self.stream if self.stream is not None else sys.stderr
        target.write(f"{stamp} {message}")
        target.flush()

    def printf(self, format: str, *args: object) -> None:
        """Write a formatted line."""
        self._write(_render(format, args))

    def fatalf(self, format: str, *args: object) -> None:
        """Write a formatted line and exit with status 1."""
        self._write(_render(format, args))
        raise SystemExit(1)


@dataclass
class NopLogger:
    """Discards everything logged to it, counting how many messages it dropped."""

    discarded: int = 0

    def printf(self, format: str, *args: object) -> None:
        """Discard the message."""
        self.discarded += 1

    def fatalf(self, format: str, *args: object) -> None:
        """Discard the message."""
        self.discarded += 1


_registry: dict[str, _Logger] = {"current": StdLogger()}


def set_logger(logger: _Logger) -> None:
    """Replace the logger used by the package."""
    _registry["current"] = logger


def get_logger() -> _Logger:
    """Return the logger used by the package."""
    return _registry["current"]