from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from paysweep_backend.config.settings import QueueConfig
from paysweep_backend.queues import (
    CeleryQueueBackend,
    InMemoryQueueBackend,
    JobDispatchError,
    JobQueue,
    build_queue_backend,
    create_payment_queue,
)
from paysweep_backend.scheduling import BackoffPolicy, DispatchJobOptions
from paysweep_backend.scheduling.scheduler import TIMEOUT_JOB_OPTIONS


@pytest.mark.asyncio
async def test_dispatch_wraps_payload_in_envelope():
    backend = InMemoryQueueBackend()
    queue = create_payment_queue(backend)

    handle = await queue.dispatch(
        "timeout-pending-payments", {"timeoutMinutes": 60}, TIMEOUT_JOB_OPTIONS
    )

    assert handle.id == "1"
    assert handle.queue == "payment-processing"
    job = backend.get_job(handle.id)
    assert job.envelope["operation"] == "timeout-pending-payments"
    assert job.envelope["data"] == {"timeoutMinutes": 60}
    assert "timestamp" in job.envelope
    assert job.status == "waiting"


@pytest.mark.asyncio
async def test_call_options_override_queue_defaults():
    backend = InMemoryQueueBackend()
    queue = create_payment_queue(backend)

    handle = await queue.dispatch(
        "cleanup-old-payments", {}, DispatchJobOptions(priority=1, remove_on_fail=5)
    )

    options = backend.get_job(handle.id).options
    assert options.priority == 1
    assert options.remove_on_fail == 5
    # 未指定的字段沿用队列默认值
    assert options.attempts == 3
    assert options.remove_on_complete == 50
    assert options.backoff == BackoffPolicy(type="exponential", delay_seconds=2)


@pytest.mark.asyncio
async def test_backend_errors_become_dispatch_errors():
    backend = MagicMock()
    backend.enqueue = AsyncMock(side_effect=ConnectionError("broker unreachable"))
    queue = JobQueue("payment-processing", backend)

    with pytest.raises(JobDispatchError) as exc_info:
        await queue.dispatch("timeout-pending-payments", {}, TIMEOUT_JOB_OPTIONS)

    assert exc_info.value.operation == "timeout-pending-payments"
    assert isinstance(exc_info.value.__cause__, ConnectionError)


@pytest.mark.asyncio
async def test_take_orders_by_priority_then_arrival():
    backend = InMemoryQueueBackend()
    queue = JobQueue("q", backend)

    await queue.dispatch("low", {}, DispatchJobOptions(priority=5))
    await queue.dispatch("high-1", {}, DispatchJobOptions(priority=1))
    await queue.dispatch("high-2", {}, DispatchJobOptions(priority=1))

    taken = [backend.take("q").operation for _ in range(3)]

    assert taken == ["high-1", "high-2", "low"]
    assert backend.take("q") is None


@pytest.mark.asyncio
async def test_finished_jobs_are_trimmed_to_retention_counts():
    backend = InMemoryQueueBackend()
    queue = JobQueue("q", backend)
    options = DispatchJobOptions(remove_on_complete=2, remove_on_fail=1)

    handles = [await queue.dispatch("op", {"n": n}, options) for n in range(5)]
    for handle in handles[:3]:
        backend.mark_completed(handle.id)
    for handle in handles[3:]:
        backend.mark_failed(handle.id, "boom")

    completed = backend.get_completed("q")
    failed = backend.get_failed("q")
    assert [job.data["n"] for job in completed] == [1, 2]
    assert [job.data["n"] for job in failed] == [4]
    assert failed[0].failed_reason == "boom"
    assert backend.get_job(handles[0].id) is None
    assert backend.counts("q") == {"waiting": 0, "completed": 2, "failed": 1}


def test_mark_unknown_job_raises():
    with pytest.raises(KeyError):
        InMemoryQueueBackend().mark_completed("404")


@pytest.mark.asyncio
async def test_celery_backend_sends_task_with_headers():
    app = MagicMock()
    app.send_task.return_value = MagicMock(id="c0ffee")
    backend = CeleryQueueBackend(app)
    queue = create_payment_queue(backend)

    handle = await queue.dispatch(
        "timeout-pending-payments", {"timeoutMinutes": 60}, TIMEOUT_JOB_OPTIONS
    )

    assert handle.id == "c0ffee"
    args, kwargs = app.send_task.call_args
    assert args == ("paysweep.payment-processing",)
    assert kwargs["queue"] == "payment-processing"
    assert kwargs["priority"] == 1
    assert kwargs["kwargs"]["data"] == {"timeoutMinutes": 60}
    assert kwargs["headers"]["attempts"] == 3
    assert kwargs["headers"]["backoff"] == {"type": "exponential", "delay_seconds": 5}


def test_build_queue_backend_selects_implementation():
    assert isinstance(build_queue_backend(QueueConfig()), InMemoryQueueBackend)

    backend = build_queue_backend(
        QueueConfig(backend="celery", broker_url="memory://", task_prefix="billing")
    )
    assert isinstance(backend, CeleryQueueBackend)
    assert backend.task_name("payment-processing") == "billing.payment-processing"


@pytest.mark.asyncio
async def test_waiting_jobs_are_capped_without_a_consumer():
    backend = InMemoryQueueBackend(max_waiting=2)
    queue = JobQueue("q", backend)

    handles = [await queue.dispatch("op", {"n": n}) for n in range(4)]

    assert [job.data["n"] for job in backend.get_waiting("q")] == [2, 3]
    assert backend.get_job(handles[0].id) is None
    assert backend.get_job(handles[1].id) is None
    assert backend.counts("q")["waiting"] == 2


def test_build_queue_backend_passes_waiting_cap():
    backend = build_queue_backend(QueueConfig(memory_max_waiting=7))

    assert backend.max_waiting == 7
