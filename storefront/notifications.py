import logging
from collections import deque
from typing import Callable, Deque, List, Optional

from storefront.schemas import Notification

logger = logging.getLogger("storefront.notifications")

Listener = Callable[[Notification], None]

class Notifier:
    """Transient user-facing messages (toasts). Listeners render them."""

    def __init__(self, duration_ms: int = 3000, history_size: int = 50):
        self.duration_ms = duration_ms
        self._listeners: List[Listener] = []
        self.history: Deque[Notification] = deque(maxlen=history_size)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, message: str, type: str = "success", duration_ms: Optional[int] = None) -> Notification:
        notification = Notification(
            message=message,
            type=type,
            duration_ms=duration_ms if duration_ms is not None else self.duration_ms,
        )
        self.history.append(notification)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed")
        return notification

    def success(self, message: str) -> Notification:
        return self.notify(message, "success")

    def error(self, message: str) -> Notification:
        return self.notify(message, "error")

    def info(self, message: str) -> Notification:
        return self.notify(message, "info")

    @property
    def last(self) -> Optional[Notification]:
        return self.history[-1] if self.history else None
