"""Progress and status notifications emitted during a mirror run."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class Severity(str, Enum):
    """Severity of a status notification."""

    info = "info"
    success = "success"
    warning = "warning"
    error = "error"


class ProgressReporter(Protocol):
    """Fire-and-forget sink for progress; return values are ignored."""

    def progress(self, percentage: int, message: str = "") -> None: ...

    def status(self, message: str, severity: Severity = Severity.info) -> None: ...


class LoggingProgress:
    """Default reporter that writes notifications to the log."""

    _LEVELS = {
        Severity.info: logging.INFO,
        Severity.success: logging.INFO,
        Severity.warning: logging.WARNING,
        Severity.error: logging.ERROR,
    }

    def progress(self, percentage: int, message: str = "") -> None:
        percentage = max(0, min(100, int(percentage)))
        if message:
            LOGGER.info("[%3d%%] %s", percentage, message)
        else:
            LOGGER.debug("[%3d%%]", percentage)

    def status(self, message: str, severity: Severity = Severity.info) -> None:
        LOGGER.log(self._LEVELS.get(Severity(severity), logging.INFO), message)


def crawl_percentage(pages_crawled: int) -> int:
    """Progress while crawling: 15% to 80% against a growing page estimate."""
    estimated_total = max(5, pages_crawled + 3)
    return min(80, round(15 + (pages_crawled / estimated_total) * 65))
