"""Shared utility functions: logging and cancellation."""

import logging
import sys
import threading
import time
from dataclasses import dataclass, field

from rich.console import Console
from rich.logging import RichHandler

from .errors import Cancelled

logger = logging.getLogger("letscloudvm")


def setup_logging(level: int | str = logging.INFO) -> None:
    """Set up logging with Rich handler to stderr."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    rich_handler = RichHandler(
        console=Console(stderr=True),
        log_time_format="[%X]",
        show_path=False,
        markup=False,
    )
    rich_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.addHandler(rich_handler)

    for name, lvl in [("httpx", logging.WARNING), ("httpcore", logging.WARNING)]:
        lg = logging.getLogger(name)
        for h in lg.handlers[:]:
            lg.removeHandler(h)
        lg.setLevel(lvl)
        lg.propagate = True


def log(msg: str) -> None:
    """Log info message."""
    logger.info(msg)


def warn(msg: str) -> None:
    """Log warning message."""
    logger.warning(msg)


def debug(msg: str) -> None:
    logger.debug(msg)


def error(msg: str) -> None:
    """Log error message and exit. Only for the CLI."""
    logger.error(msg)
    sys.exit(1)


@dataclass
class OperationContext:
    """Ambient cancellation for one lifecycle call.

    Waits are interrupted as soon as ``cancel`` is set. ``deadline`` is a
    ``time.monotonic()`` value bounding the whole operation.
    """

    cancel: threading.Event | None = None
    deadline: float | None = None
    reason: str = field(default="operation cancelled", repr=False)

    @classmethod
    def with_timeout(
        cls, seconds: float, cancel: threading.Event | None = None
    ) -> "OperationContext":
        return cls(cancel=cancel, deadline=time.monotonic() + seconds)

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def check(self) -> None:
        """:raises Cancelled: If cancelled or past the deadline"""
        if self.cancel is not None and self.cancel.is_set():
            raise Cancelled(self.reason)
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise Cancelled("deadline exceeded")

    def pause(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first.

        :raises Cancelled: If cancelled during the wait or the deadline
            falls inside it
        """
        self.check()
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._wait(remaining)
            raise Cancelled("deadline exceeded")
        self._wait(seconds)
        self.check()

    def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        if self.cancel is None:
            time.sleep(seconds)
        elif self.cancel.wait(seconds):
            raise Cancelled(self.reason)


BACKGROUND = OperationContext()
