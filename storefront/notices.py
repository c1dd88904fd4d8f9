"""User-facing notices (toasts) raised by widgets and toggles."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import List, Protocol

logger = logging.getLogger(__name__)


class NoticeLevel(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str


class Notifier(Protocol):
    def notify(self, level: NoticeLevel, message: str) -> None:
        ...


class LoggingNotifier:
    """Writes notices to the log; used when no UI surface is attached."""

    _LEVELS = {
        NoticeLevel.INFO: logging.INFO,
        NoticeLevel.SUCCESS: logging.INFO,
        NoticeLevel.ERROR: logging.WARNING,
    }

    def notify(self, level: NoticeLevel, message: str) -> None:
        logger.log(self._LEVELS[level], message, extra={"notice_level": level.value})


class CollectingNotifier:
    def __init__(self) -> None:
        self.notices: List[Notice] = []

    def notify(self, level: NoticeLevel, message: str) -> None:
        self.notices.append(Notice(level, message))

    def messages(self, level: NoticeLevel | None = None) -> List[str]:
        return [n.message for n in self.notices if level is None or n.level == level]


__all__ = ["CollectingNotifier", "LoggingNotifier", "Notice", "NoticeLevel", "Notifier"]
