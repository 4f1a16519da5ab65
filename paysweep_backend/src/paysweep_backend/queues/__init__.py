"""队列组件集合

- QueuedJob: 队列中的任务记录
- QueueBackend / InMemoryQueueBackend / CeleryQueueBackend: 入队后端
- JobQueue: 具名队列，合并默认选项后交给后端
- build_queue_backend: 按配置创建后端
"""

from __future__ import annotations

from ..config.settings import QueueConfig
from .backends import (
    CeleryQueueBackend,
    InMemoryQueueBackend,
    QueueBackend,
    create_celery_app,
)
from .job import QueuedJob
from .job_queue import (
    DATABASE_QUEUE,
    PAYMENT_QUEUE,
    JobDispatchError,
    JobQueue,
    create_database_queue,
    create_payment_queue,
)


def build_queue_backend(config: QueueConfig) -> QueueBackend:
    """按配置创建队列后端"""
    if config.backend == "celery":
        return CeleryQueueBackend(
            create_celery_app(config.broker_url, config.result_backend),
            task_prefix=config.task_prefix,
        )
    return InMemoryQueueBackend(max_waiting=config.memory_max_waiting)


__all__ = [
    "QueuedJob",
    "QueueBackend",
    "InMemoryQueueBackend",
    "CeleryQueueBackend",
    "create_celery_app",
    "JobQueue",
    "JobDispatchError",
    "PAYMENT_QUEUE",
    "DATABASE_QUEUE",
    "create_payment_queue",
    "create_database_queue",
    "build_queue_backend",
]
