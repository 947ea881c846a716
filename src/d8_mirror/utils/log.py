"""User-facing progress logging."""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Iterator, Optional

PROCESS_PREFIX = "║"

LOG_FORMAT = "%(asctime)s %(levelname)-5s %(message)s"
LOG_DATE_FORMAT = "%b %d %H:%M:%S"


def setup_logging(level: str = "INFO") -> None:
    """Configure process-wide logging for command line use.

    Args:
        level: Log level name (e.g., "DEBUG", "INFO")
    """
    logging.basicConfig(
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


class UserLogger:
    """Logger for messages meant to be read by the operator.

    Nested ``process`` blocks are framed with box drawing characters so that
    the output of long pulls stays readable:

        ╔ Pull installer
        ║ [1 / 1] Pulling registry.example.com/installer:latest
        ╚ Pull installer succeeded in 1.2s
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.delegate = logger or logging.getLogger("d8_mirror.user")
        self.process_depth = 0

    def debugf(self, template: str, *args) -> None:
        self.delegate.debug(self._format_record(template, *args))

    def debug(self, *args) -> None:
        self.delegate.debug(self._format_record("", *args))

    def infof(self, template: str, *args) -> None:
        self.delegate.info(self._format_record(template, *args))

    def info(self, *args) -> None:
        self.delegate.info(self._format_record("", *args))

    def warnf(self, template: str, *args) -> None:
        self.delegate.warning(self._format_record(template, *args))

    def warn(self, *args) -> None:
        self.delegate.warning(self._format_record("", *args))

    @contextmanager
    def process(self, topic: str) -> Iterator[None]:
        """Frame a unit of work, reporting its duration or its failure.

        Args:
            topic: Human readable name of the work

        Raises:
            Exception: Whatever the framed block raised, after logging it
        """
        start = time.monotonic()
        self.delegate.info(PROCESS_PREFIX * self.process_depth + "╔ " + topic)
        self.process_depth += 1
        try:
            yield
        except BaseException as e:
            self.delegate.error(
                "%s╚ %s failed: %s", PROCESS_PREFIX * (self.process_depth - 1), topic, e
            )
            raise
        else:
            elapsed = time.monotonic() - start
            self.delegate.info(
                "%s╚ %s succeeded in %.2fs",
                PROCESS_PREFIX * (self.process_depth - 1),
                topic,
                elapsed,
            )
        finally:
            self.process_depth -= 1

    def _format_record(self, template: str, *args) -> str:
        prefix = PROCESS_PREFIX * self.process_depth

        if not template:
            text = " ".join(str(arg) for arg in args)
        else:
            text = template % args if args else template

        return f"{prefix} {text}" if prefix else text
