"""Shared runtime state for the paysweep backend.

Exposes the components wired up during application startup so that
request handlers can reach them without importing `app` directly,
avoiding circular dependencies during startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .event_log import LoggingService
from .queues import QueueBackend
from .scheduling import LogCleanupScheduler, PaymentTimeoutScheduler


@dataclass
class Runtime:
    """Components owned by one running application instance."""

    scheduler: AsyncIOScheduler
    queue_backend: QueueBackend
    payment_timeout: PaymentTimeoutScheduler
    log_cleanup: LogCleanupScheduler
    logging_service: Optional[LoggingService] = None

    def shutdown(self) -> None:
        self.payment_timeout.shutdown()
        self.log_cleanup.shutdown()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)


# Mutable module level reference to the running components.
_runtime: Optional[Runtime] = None


def get_runtime() -> Optional[Runtime]:
    """Return the active runtime, if the application has started."""

    return _runtime


def set_runtime(instance: Optional[Runtime]) -> None:
    """Update the shared runtime reference."""

    global _runtime
    _runtime = instance


__all__ = ["Runtime", "get_runtime", "set_runtime"]
