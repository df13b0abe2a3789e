import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """Transient user-facing message (a toast, in UI terms)"""

    title: str
    description: str
    variant: str = "default"  # "default", "destructive", "warning"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier:
    """
    Collects notifications and fans them out to listeners

    Keeps a bounded history so callers (and tests) can inspect what was shown.
    """

    def __init__(self, history_size: int = 50):
        self.history: List[Notification] = []
        self._history_size = history_size
        self._listeners: List[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]):
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[Notification], None]):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self, title: str, description: str, variant: str = "default") -> Notification:
        notification = Notification(title=title, description=description, variant=variant)

        self.history.append(notification)
        if len(self.history) > self._history_size:
            self.history = self.history[-self._history_size :]

        log = logger.warning if variant != "default" else logger.info
        log(f"[{title}] {description}")

        for listener in list(self._listeners):
            listener(notification)

        return notification

    def success(self, description: str, title: str = "Success") -> Notification:
        return self.notify(title, description)

    def error(self, description: str, title: str = "Error") -> Notification:
        return self.notify(title, description, variant="destructive")

    def warning(self, description: str, title: str = "Warning") -> Notification:
        return self.notify(title, description, variant="warning")

    def clear(self):
        self.history.clear()
