"""
Refresh Coordination

A refresh downloads into and writes the same import/export files whether it
was started by the scheduler, the API or the CLI, so only one may run at a
time. The coordinator also remembers what is running and how the previous
run ended, for the skip response and /health.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Any


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RefreshRun:
    trigger: str
    started_at: datetime
    finished_at: datetime | None = None
    outcome: str | None = None

    def to_dict(self) -> dict:
        return {
            "trigger": self.trigger,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "outcome": self.outcome,
        }


def _outcome_of(result: Any) -> str:
    if not isinstance(result, dict):
        return "success"
    if "error" in result:
        return "error"
    if result.get("sources_failed"):
        return "partial"
    return result.get("status", "success")


class RefreshCoordinator:
    """Serializes refresh runs; an overlapping request is skipped, not queued."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self.current: RefreshRun | None = None
        self.last: RefreshRun | None = None

    async def execute(self, refresh_func: Callable[[], Awaitable[Any]], trigger: str = "manual") -> Any:
        """
        Run ``refresh_func`` unless another refresh holds the lock

        Args:
            refresh_func: Async function running the refresh
            trigger: Who asked for the run (api, scheduler, cli, ...)

        Returns:
            Result from refresh_func, or a "skipped" response naming the
            running refresh

        Raises:
            Any exception raised by refresh_func
        """
        if self._lock.locked():
            running = self.current
            logger.warning(
                "Refresh requested by %s while a %s refresh started at %s is running, skipping",
                trigger,
                running.trigger if running else "unknown",
                running.started_at.isoformat() if running else "unknown",
            )
            return {
                "status": "skipped",
                "message": "Refresh already in progress",
                "running": running.to_dict() if running else None,
            }

        async with self._lock:
            run = RefreshRun(trigger=trigger, started_at=datetime.now(timezone.utc))
            self.current = run
            try:
                result = await refresh_func()
            except BaseException:
                run.outcome = "exception"
                raise
            else:
                run.outcome = _outcome_of(result)
                return result
            finally:
                run.finished_at = datetime.now(timezone.utc)
                self.current = None
                self.last = run

    def is_running(self) -> bool:
        return self._lock.locked()

    def status(self) -> dict:
        return {
            "refresh_in_progress": self.is_running(),
            "current_refresh": self.current.to_dict() if self.current else None,
            "last_refresh": self.last.to_dict() if self.last else None,
        }


_coordinator: RefreshCoordinator | None = None


def get_refresh_coordinator() -> RefreshCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = RefreshCoordinator()
    return _coordinator


def reset_refresh_coordinator() -> None:
    """Drop the singleton (tests only)"""
    global _coordinator
    _coordinator = None
