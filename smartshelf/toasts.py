"""User-facing notifications (toasts) raised by resources and workflows."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from smartshelf.models.inventory import AlertSeverity, utc_now_iso

logger = logging.getLogger(__name__)


class ToastLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @classmethod
    def for_severity(cls, severity: AlertSeverity) -> ToastLevel:
        if severity == AlertSeverity.CRITICAL:
            return cls.ERROR
        if severity == AlertSeverity.WARNING:
            return cls.WARNING
        return cls.INFO


_LOG_LEVELS = {
    ToastLevel.SUCCESS: logging.INFO,
    ToastLevel.INFO: logging.INFO,
    ToastLevel.WARNING: logging.WARNING,
    ToastLevel.ERROR: logging.ERROR,
}


@dataclass
class Toast:
    level: ToastLevel
    title: str
    description: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)


class ToastCenter:
    def __init__(self, max_history: int = 100) -> None:
        self._history: deque[Toast] = deque(maxlen=max_history)
        self._listeners: list[Callable[[Toast], None]] = []

    @property
    def history(self) -> list[Toast]:
        return list(self._history)

    def add_listener(self, listener: Callable[[Toast], None]) -> None:
        self._listeners.append(listener)

    def show(self, level: ToastLevel, title: str, description: Optional[str] = None) -> Toast:
        toast = Toast(level=level, title=title, description=description)
        self._history.append(toast)
        logger.log(_LOG_LEVELS[level], "%s%s", title, f": {description}" if description else "")
        for listener in self._listeners:
            try:
                listener(toast)
            except Exception as e:
                logger.warning("Toast listener failed: %s", e)
        return toast

    def success(self, title: str, description: Optional[str] = None) -> Toast:
        return self.show(ToastLevel.SUCCESS, title, description)

    def info(self, title: str, description: Optional[str] = None) -> Toast:
        return self.show(ToastLevel.INFO, title, description)

    def warning(self, title: str, description: Optional[str] = None) -> Toast:
        return self.show(ToastLevel.WARNING, title, description)

    def error(self, title: str, description: Optional[str] = None) -> Toast:
        return self.show(ToastLevel.ERROR, title, description)
