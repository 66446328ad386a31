"""Load progress reporting through a one-way event sink."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from loguru import logger

if TYPE_CHECKING:
    from graph_loader.executor import LoadOutcome


class LoadEventSink(Protocol):
    """Receives load events synchronously; owns formatting and destination."""

    def on_progress(self, current: int, total: int) -> None: ...

    def on_batch_outcome(self, outcome: LoadOutcome) -> None: ...


def should_report(current: int, total: int, interval: int) -> bool:
    """True when *current* is a positive multiple of *interval* or equals *total*.

    An interval of 0 disables reporting entirely.
    """
    if interval <= 0:
        return False
    return (current > 0 and current % interval == 0) or current == total


class ProgressReporter:
    """Forward progress to a sink at the configured interval. Holds no counters."""

    def __init__(self, interval: int, sink: LoadEventSink) -> None:
        self.interval = interval
        self.sink = sink

    def report(self, current: int, total: int) -> bool:
        if not should_report(current, total, self.interval):
            return False
        self.sink.on_progress(current, total)
        return True


class LoggingSink:
    """Loguru-backed sink used by the loader; *subject* names what is loading."""

    def __init__(self, subject: str) -> None:
        self.subject = subject

    def on_progress(self, current: int, total: int) -> None:
        percent = (current / total * 100.0) if total else 100.0
        logger.info("Progress: {:.1f}% ({}/{}) {}", percent, current, total, self.subject)

    def on_batch_outcome(self, outcome: LoadOutcome) -> None:
        if outcome.failed:
            logger.warning(
                "Batch complete: loaded {} of {} {} ({} failed, fallback={}, {:.2f}s)",
                outcome.succeeded,
                outcome.total,
                self.subject,
                outcome.failed,
                outcome.fallback_used,
                outcome.elapsed_s,
            )
        else:
            logger.info(
                "Batch complete: loaded {} {} (fallback={}, {:.2f}s)",
                outcome.succeeded,
                self.subject,
                outcome.fallback_used,
                outcome.elapsed_s,
            )
