"""Timing for source loads, command dispatch, and frame composition."""

import logging
import os
import time

PERF_LOGGING = os.environ.get("SPREADVIEW_PERF") == "1"

# Operations slower than this are reported even when perf logging is off
SLOW_SECONDS = float(os.environ.get("SPREADVIEW_SLOW_SECONDS", "1.0"))


def perf_log(operation: str, duration: float, subject: str = "") -> None:
    """Record how long ``operation`` took on ``subject``."""
    if PERF_LOGGING:
        logging.info("PERF %s %.1fms %s", operation, duration * 1000, subject)
    if duration >= SLOW_SECONDS:
        logging.warning("Slow %s: %.2fs %s", operation, duration, subject)


class PerfTimer:
    """Time a block; ``elapsed`` holds the duration in seconds after it exits.

    Blocks that raise are logged as failures and never count as slow.
    """

    def __init__(self, operation: str, subject: str = ""):
        self.operation = operation
        self.subject = subject
        self.elapsed: float | None = None
        self._start = 0.0

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self._start
        if exc_type is None:
            perf_log(self.operation, self.elapsed, self.subject)
        else:
            logging.info(
                "%s failed after %.1fms %s: %s",
                self.operation,
                self.elapsed * 1000,
                self.subject,
                exc_val,
            )
        return False
