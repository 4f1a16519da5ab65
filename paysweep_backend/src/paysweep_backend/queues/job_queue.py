from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..scheduling.types import BackoffPolicy, DispatchJobOptions, JobHandle
from .backends import QueueBackend

logger = logging.getLogger("paysweep.queue")

PAYMENT_QUEUE = "payment-processing"
DATABASE_QUEUE = "database-operations"

PAYMENT_QUEUE_DEFAULTS = DispatchJobOptions(
    priority=0,
    remove_on_complete=50,
    remove_on_fail=20,
    attempts=3,
    backoff=BackoffPolicy(type="exponential", delay_seconds=2),
)

DATABASE_QUEUE_DEFAULTS = DispatchJobOptions(
    priority=0,
    remove_on_complete=20,
    remove_on_fail=10,
    attempts=3,
    backoff=BackoffPolicy(type="exponential", delay_seconds=5),
)


class JobDispatchError(RuntimeError):
    """任务派发失败

    Attributes:
        queue: 队列名称
        operation: 操作名称
    """

    def __init__(self, queue: str, operation: str, cause: Exception):
        self.queue = queue
        self.operation = operation
        super().__init__(f"Failed to queue {queue} operation {operation}: {cause}")


class JobQueue:
    """具名任务队列，实现调度器使用的派发接口。

    - 调用方选项覆盖队列默认选项（字段为 None 时沿用默认值）
    - 消息体统一为 {"operation", "data", "timestamp"}
    - 后端异常统一包装为 JobDispatchError
    """

    def __init__(
        self,
        name: str,
        backend: QueueBackend,
        default_options: Optional[DispatchJobOptions] = None,
    ):
        self.name = name
        self.backend = backend
        self.default_options = default_options or DispatchJobOptions()

    async def dispatch(
        self,
        operation: str,
        payload: Dict[str, Any],
        options: Optional[DispatchJobOptions] = None,
    ) -> JobHandle:
        merged = (options or DispatchJobOptions()).merged_over(self.default_options)
        envelope = {
            "operation": operation,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        try:
            handle = await self.backend.enqueue(self.name, operation, envelope, merged)
        except Exception as e:
            logger.error(
                "任务入队失败 queue=%s operation=%s error=%s", self.name, operation, e
            )
            raise JobDispatchError(self.name, operation, e) from e

        logger.info(
            "任务已入队 queue=%s operation=%s job_id=%s", self.name, operation, handle.id
        )
        return handle


def create_payment_queue(backend: QueueBackend) -> JobQueue:
    return JobQueue(PAYMENT_QUEUE, backend, PAYMENT_QUEUE_DEFAULTS)


def create_database_queue(backend: QueueBackend) -> JobQueue:
    return JobQueue(DATABASE_QUEUE, backend, DATABASE_QUEUE_DEFAULTS)
