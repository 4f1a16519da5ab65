"""队列后端

`JobQueue` 负责组装消息与合并选项，真正的入队交给后端完成：
- InMemoryQueueBackend: 进程内队列，用于开发环境与测试
- CeleryQueueBackend: 通过 Celery broker 派发给独立的 worker 进程
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from celery import Celery

from ..scheduling.types import DispatchJobOptions, JobHandle
from .job import QueuedJob

logger = logging.getLogger("paysweep.queue.backend")


class QueueBackend(ABC):
    """队列后端抽象基类"""

    @abstractmethod
    async def enqueue(
        self,
        queue: str,
        operation: str,
        envelope: Dict[str, Any],
        options: DispatchJobOptions,
    ) -> JobHandle:
        """把一条消息放入指定队列

        Args:
            queue: 队列名称
            operation: 操作名称
            envelope: 完整消息体
            options: 已合并默认值的任务选项

        Returns:
            任务句柄
        """
        raise NotImplementedError


class InMemoryQueueBackend(QueueBackend):
    """进程内队列后端

    只负责保存任务；消费端通过 take() 取出任务，执行完成后调用
    mark_completed / mark_failed，保留记录数量受任务选项
    remove_on_complete / remove_on_fail 限制。

    没有消费端时等待中的任务只增不减，超过 max_waiting 后丢弃最早的等待任务。
    """

    def __init__(self, max_waiting: int = 1000):
        self.max_waiting = max_waiting
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._jobs: Dict[str, QueuedJob] = {}
        self._waiting: Dict[str, Deque[str]] = {}
        self._completed: Dict[str, Deque[str]] = {}
        self._failed: Dict[str, Deque[str]] = {}

    async def enqueue(
        self,
        queue: str,
        operation: str,
        envelope: Dict[str, Any],
        options: DispatchJobOptions,
    ) -> JobHandle:
        with self._lock:
            job = QueuedJob(
                id=str(next(self._ids)),
                queue=queue,
                operation=operation,
                envelope=envelope,
                options=options,
            )
            self._jobs[job.id] = job
            waiting = self._waiting.setdefault(queue, deque())
            waiting.append(job.id)
            while len(waiting) > self.max_waiting:
                dropped = waiting.popleft()
                self._jobs.pop(dropped, None)
                logger.warning(
                    "等待队列已满，丢弃最早的任务 queue=%s job_id=%s", queue, dropped
                )
        return job.to_handle()

    def take(self, queue: str) -> Optional[QueuedJob]:
        """取出队列中最早入队、优先级最高的等待任务"""
        with self._lock:
            waiting = self._waiting.get(queue)
            if not waiting:
                return None

            # 数字越小优先级越高；同优先级按入队顺序
            job_id = min(
                waiting,
                key=lambda jid: (
                    self._jobs[jid].options.priority or 0,
                    int(jid),
                ),
            )
            waiting.remove(job_id)
            job = self._jobs[job_id]
            job.status = "active"
            return job

    def mark_completed(self, job_id: str) -> None:
        self._finish(job_id, "completed", None)

    def mark_failed(self, job_id: str, reason: str) -> None:
        self._finish(job_id, "failed", reason)

    def get_job(self, job_id: str) -> Optional[QueuedJob]:
        return self._jobs.get(job_id)

    def get_waiting(self, queue: str) -> List[QueuedJob]:
        with self._lock:
            return [self._jobs[jid] for jid in self._waiting.get(queue, ())]

    def get_completed(self, queue: str) -> List[QueuedJob]:
        with self._lock:
            return [self._jobs[jid] for jid in self._completed.get(queue, ())]

    def get_failed(self, queue: str) -> List[QueuedJob]:
        with self._lock:
            return [self._jobs[jid] for jid in self._failed.get(queue, ())]

    def counts(self, queue: str) -> Dict[str, int]:
        with self._lock:
            return {
                "waiting": len(self._waiting.get(queue, ())),
                "completed": len(self._completed.get(queue, ())),
                "failed": len(self._failed.get(queue, ())),
            }

    def _finish(self, job_id: str, status: str, reason: Optional[str]) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(f"Job not found: {job_id}")

            waiting = self._waiting.get(job.queue)
            if waiting and job_id in waiting:
                waiting.remove(job_id)

            job.status = status
            job.failed_reason = reason
            job.finished_at = datetime.now(timezone.utc)

            if status == "completed":
                bucket = self._completed.setdefault(job.queue, deque())
                keep = job.options.remove_on_complete
            else:
                bucket = self._failed.setdefault(job.queue, deque())
                keep = job.options.remove_on_fail
            bucket.append(job.id)

            # 只保留最近 keep 条记录
            if keep is not None:
                while len(bucket) > keep:
                    self._jobs.pop(bucket.popleft(), None)


def create_celery_app(broker_url: str, result_backend: Optional[str] = None) -> Celery:
    """创建仅用于派发消息的 Celery 应用"""
    app = Celery("paysweep", broker=broker_url, backend=result_backend)

    app.conf.broker_connection_retry = True
    app.conf.broker_connection_retry_on_startup = True

    app.conf.task_serializer = "json"
    app.conf.result_serializer = "json"
    app.conf.accept_content = ["json"]
    app.conf.timezone = "UTC"
    app.conf.enable_utc = True
    return app


class CeleryQueueBackend(QueueBackend):
    """Celery 队列后端

    每个队列对应一个 Celery 任务名 "<prefix>.<queue>"，消息体作为 kwargs 传入。
    任务级重试参数（attempts / backoff）与记录保留数通过消息头传给 worker。
    """

    def __init__(self, app: Celery, task_prefix: str = "paysweep"):
        self._app = app
        self._task_prefix = task_prefix

    def task_name(self, queue: str) -> str:
        return f"{self._task_prefix}.{queue}"

    async def enqueue(
        self,
        queue: str,
        operation: str,
        envelope: Dict[str, Any],
        options: DispatchJobOptions,
    ) -> JobHandle:
        headers: Dict[str, Any] = {
            "attempts": options.attempts,
            "remove_on_complete": options.remove_on_complete,
            "remove_on_fail": options.remove_on_fail,
        }
        if options.backoff is not None:
            headers["backoff"] = {
                "type": options.backoff.type,
                "delay_seconds": options.backoff.delay_seconds,
            }

        # send_task 会阻塞在 broker 连接上，放到线程里执行
        result = await asyncio.to_thread(
            self._app.send_task,
            self.task_name(queue),
            kwargs=envelope,
            queue=queue,
            priority=options.priority,
            headers=headers,
        )
        logger.debug("Celery 消息已发送 task=%s id=%s", self.task_name(queue), result.id)
        return JobHandle(id=str(result.id), queue=queue, operation=operation)
