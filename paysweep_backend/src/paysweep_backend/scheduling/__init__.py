"""Scheduling package public API.

Primary entrypoints:
- PaymentTimeoutScheduler: Periodically dispatches the pending-payment timeout sweep.
- LogCleanupScheduler: Dispatches the daily log cleanup job.

Utilities:
- create_async_scheduler: Shared APScheduler instance with common job defaults.
- DispatchJobOptions, BackoffPolicy, JobHandle: Dispatch contract types.
- InvalidConfigurationError: Raised by setters on out-of-range values.
- JobKind, make_job_id: Unified job identifiers.
"""

from .base import BaseSweepScheduler, SchedulerRuntimeState, create_async_scheduler
from .log_cleanup import LogCleanupScheduler
from .scheduler import PaymentTimeoutScheduler
from .types import (
    BackoffPolicy,
    DispatchJobOptions,
    InvalidConfigurationError,
    JobHandle,
    JobKind,
    make_job_id,
)

__all__ = [
    "PaymentTimeoutScheduler",
    "LogCleanupScheduler",
    "BaseSweepScheduler",
    "SchedulerRuntimeState",
    "create_async_scheduler",
    "BackoffPolicy",
    "DispatchJobOptions",
    "InvalidConfigurationError",
    "JobHandle",
    "JobKind",
    "make_job_id",
]
