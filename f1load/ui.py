"""Console output: messages that are printed interactively or logged otherwise."""

from __future__ import annotations

import io
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, TextIO

__all__ = [
    "Outputable",
    "Printer",
    "Output",
    "ErrorMessage",
    "WarningMessage",
    "InteractiveMessage",
    "InfoMessage",
    "new_discard_output",
    "new_default_output",
]


class _Discard(io.TextIOBase):
    """A text sink that drops everything written to it."""

    def write(self, text: str) -> int:
        return len(text)


@dataclass
class Printer:
    """Writes lines to an output stream and an error stream."""

    writer: TextIO = field(default_factory=lambda: sys.stdout)
    err_writer: TextIO = field(default_factory=lambda: sys.stderr)

    def println(self, *args: Any) -> None:
        """Write the arguments, separated by spaces, as one line to the output stream."""
        print(*args, file=self.writer)

    def error(self, *args: Any) -> None:
        """Write the arguments as one line to the error stream."""
        print(*args, file=self.err_writer)

    def warn(self, *args: Any) -> None:
        """Write the arguments as one line to the error stream."""
        print(*args, file=self.err_writer)

    @classmethod
    def discard(cls) -> "Printer":
        """A printer that writes nowhere."""
        return cls(_Discard(), _Discard())  # type: ignore[arg-type]


class Outputable(Protocol):
    """Something that can be shown on a terminal or written to a log."""

    def print(self, printer: Printer) -> None: ...

    def log(self, logger: logging.Logger) -> None: ...


@dataclass
class Output:
    """Chooses between printing and logging depending on the terminal."""

    logger: logging.Logger
    printer: Printer
    interactive: bool
    allow_printing: bool

    def display(self, outputable: Outputable) -> None:
        """Print when interactive and printing is allowed, log otherwise."""
        if self.allow_printing and self.interactive:
            outputable.print(self.printer)
        else:
            outputable.log(self.logger)


@dataclass(frozen=True)
class ErrorMessage:
    """An error with a short explanation."""

    message: str
    error: BaseException

    def print(self, printer: Printer) -> None:
        printer.error(f"{self.message}: {self.error}")

    def log(self, logger: logging.Logger) -> None:
        logger.error(self.message, extra={"error": str(self.error)})


@dataclass(frozen=True)
class WarningMessage:
    """A warning for the user."""

    message: str

    def print(self, printer: Printer) -> None:
        printer.warn(self.message)

    def log(self, logger: logging.Logger) -> None:
        logger.warning(self.message)


@dataclass(frozen=True)
class InteractiveMessage:
    """A message meant only for an interactive terminal; it is never logged."""

    message: str

    def print(self, printer: Printer) -> None:
        printer.println(self.message)

    def log(self, logger: logging.Logger) -> None:
        """Interactive messages are deliberately kept out of the logs."""
        del logger


@dataclass(frozen=True)
class InfoMessage:
    """An informational message."""

    message: str

    def print(self, printer: Printer) -> None:
        printer.println(self.message)

    def log(self, logger: logging.Logger) -> None:
        logger.info(self.message)


def _stdin_is_terminal() -> bool:
    stdin = sys.stdin
    if stdin is None:
        return False
    try:
        return stdin.isatty()
    except (ValueError, OSError):
        return False


def new_discard_output() -> Output:
    """An output that neither prints nor logs anything."""
    logger = logging.Logger("f1load.discard")
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return Output(logger=logger, printer=Printer.discard(), interactive=False, allow_printing=False)


def new_default_output(logger: Optional[logging.Logger] = None) -> Output:
    """An output on the standard streams, interactive when stdin is a terminal."""
    if logger is None:
        logger = logging.getLogger("f1load")
    return Output(
        logger=logger,
        printer=Printer(),
        interactive=_stdin_is_terminal(),
        allow_printing=True,
    )