"""
Toast notifications raised by the portal client
"""
import logging
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Toast:
    title: str
    description: str = ""
    variant: str = "default"  # "default" or "destructive"


class Notifier:
    """Dispatches toasts to subscribers and keeps a history of what was shown"""

    def __init__(self):
        self.history: List[Toast] = []
        self._subscribers: List[Callable[[Toast], None]] = []

    def subscribe(self, callback: Callable[[Toast], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it"""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def toast(self, title: str, description: str = "", variant: str = "default") -> Toast:
        toast = Toast(title=title, description=description, variant=variant)
        self.history.append(toast)
        logger.debug("Toast: %s - %s", title, description)
        for callback in list(self._subscribers):
            callback(toast)
        return toast

    def error(self, title: str, description: str = "") -> Toast:
        return self.toast(title, description, variant="destructive")

    @property
    def last(self):
        return self.history[-1] if self.history else None
