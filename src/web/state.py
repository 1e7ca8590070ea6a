"""Global web application state utilities.

Holds references to long-lived singletons (the job scheduler, shutdown hooks
such as closing HTTP sessions) needed by route handlers.
"""

from collections.abc import Callable
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from src import log
from src.exceptions import SchedulerNotInitializedError

__all__ = ["AppState", "get_app_state"]

if TYPE_CHECKING:
    from src.core.sched import JobScheduler


class AppState:
    """Container for global web application state."""

    def __init__(self) -> None:
        """Initialize empty state containers."""
        self.scheduler: JobScheduler | None = None
        self.on_shutdown_callbacks: list[Callable[[], Any]] = []

    def set_scheduler(self, scheduler: "JobScheduler") -> None:
        """Set the job scheduler.

        Args:
            scheduler (JobScheduler): The scheduler instance to set.
        """
        self.scheduler = scheduler

    def require_scheduler(self) -> "JobScheduler":
        """Return the scheduler or fail when the app runs without one.

        Raises:
            SchedulerNotInitializedError: If no scheduler has been set.
        """
        if self.scheduler is None:
            raise SchedulerNotInitializedError("Job scheduler not available")
        return self.scheduler

    def add_shutdown_callback(self, cb: Callable[[], Any]) -> None:
        """Register a shutdown callback executed during app shutdown.

        Args:
            cb (Callable[[], Any]): The callback function to register.
        """
        self.on_shutdown_callbacks.append(cb)

    async def shutdown(self) -> None:
        """Run registered shutdown callbacks, logging individual failures."""
        for cb in self.on_shutdown_callbacks:
            try:
                res = cb()
                if hasattr(res, "__await__"):
                    await res
            except Exception:
                log.error("Web: Shutdown callback failed", exc_info=True)
        self.on_shutdown_callbacks.clear()


@lru_cache(maxsize=1)
def get_app_state() -> AppState:
    """Get the singleton application state instance.

    Returns:
        AppState: The application state instance.
    """
    return AppState()
