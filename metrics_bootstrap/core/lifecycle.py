"""Lifecycle coordinator for shutdown notifications."""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class LifecycleEvent(str, Enum):
    PREPARE_SHUTDOWN = "prepare-shutdown"
    SHUTDOWN = "shutdown"
    AFTER_SHUTDOWN = "after-shutdown"


class LifecycleCoordinatorProtocol(ABC):
    """Protocol for lifecycle coordinator implementations."""

    @abstractmethod
    def register_lifecycle_notification(
        self, callback: Callable[[LifecycleEvent], None]
    ) -> None:
        """Register a callback to be notified of lifecycle events."""
        pass

    @abstractmethod
    def is_shutting_down(self) -> bool:
        pass

    @abstractmethod
    def shutdown(self) -> None:
        pass


class LifecycleCoordinator(LifecycleCoordinatorProtocol):
    """Raises lifecycle events to registered callbacks.

    Registries built by the container register here so they are detached
    from the global registry and closed when the process shuts down.
    """

    def __init__(self) -> None:
        self._shutting_down = False
        self._lifecycle_lock = threading.RLock()
        self._lifecycle_notifications: list[Callable[[LifecycleEvent], None]] = []

        logger.info("LifecycleCoordinator initialized")

    def register_lifecycle_notification(
        self, callback: Callable[[LifecycleEvent], None]
    ) -> None:
        with self._lifecycle_lock:
            self._lifecycle_notifications.append(callback)
            logger.debug(
                f"Registered lifecycle notification: "
                f"{getattr(callback, '__name__', repr(callback))}"
            )

    def is_shutting_down(self) -> bool:
        with self._lifecycle_lock:
            return self._shutting_down

    def shutdown(self) -> None:
        with self._lifecycle_lock:
            if self._shutting_down:
                logger.warning("Shutdown already in progress, ignoring")
                return
            self._shutting_down = True

        self._raise_lifecycle_event(LifecycleEvent.PREPARE_SHUTDOWN)
        self._raise_lifecycle_event(LifecycleEvent.SHUTDOWN)
        self._raise_lifecycle_event(LifecycleEvent.AFTER_SHUTDOWN)

    def _raise_lifecycle_event(self, event: LifecycleEvent) -> None:
        logger.info(f"Raising lifecycle event {event}")

        with self._lifecycle_lock:
            callbacks = list(self._lifecycle_notifications)

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"Error in lifecycle event notification "
                    f"{getattr(callback, '__name__', repr(callback))}: {e}"
                )
