import threading

from enum import Enum
from typing import Any, Callable, Dict, List

from privault.utils.logging_config import get_logger

logger = get_logger(__name__)


class VaultEvent(str, Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"
    ENTRY_ADDED = "entry_added"
    ENTRY_REMOVED = "entry_removed"


Listener = Callable[[VaultEvent, Dict[str, Any]], None]


class EventBus:
    """Synchronous fan-out of vault state changes to subscribers.

    Listeners run on the thread that triggered the change. A failing listener
    is logged and does not affect the others or the vault operation.
    """

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: VaultEvent, **payload: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, payload)
            except Exception as e:
                logger.warning("Event listener failed for %s: %s", event.value, e)
