from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from paysweep_backend.event_log import LoggingService
from paysweep_backend.scheduling import JobHandle, PaymentTimeoutScheduler


class RecordingDispatcher:
    """Fake job dispatcher that records every dispatch call."""

    def __init__(self, fail: bool = False, events: list | None = None):
        self.calls: list[tuple[str, dict, object]] = []
        self.fail = fail
        self.events = events

    async def dispatch(self, operation, payload, options):
        self.calls.append((operation, payload, options))
        if self.events is not None:
            self.events.append("dispatch")
        if self.fail:
            raise RuntimeError("redis connection refused")
        return JobHandle(
            id=str(len(self.calls)), queue="payment-processing", operation=operation
        )


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true, yielding to the event loop."""

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture(name="dispatcher")
def fixture_dispatcher():
    return RecordingDispatcher()


@pytest.fixture(name="logging_service")
def fixture_logging_service():
    return LoggingService(buffer_size=100)


@pytest_asyncio.fixture(name="make_scheduler")
async def fixture_make_scheduler():
    """Build schedulers that are shut down when the test finishes."""

    created = []

    def factory(dispatcher, logging_service=None, cls=PaymentTimeoutScheduler, **kwargs):
        scheduler = cls(dispatcher, logging_service, **kwargs)
        created.append(scheduler)
        return scheduler

    yield factory

    for scheduler in created:
        scheduler.shutdown()
    # AsyncIOScheduler.shutdown runs on the next loop iteration
    await asyncio.sleep(0)
