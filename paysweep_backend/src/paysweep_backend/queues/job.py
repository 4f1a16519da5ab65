"""QueuedJob: 队列中的任务记录"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..scheduling.types import DispatchJobOptions, JobHandle


class QueuedJob:
    """队列任务记录

    由 `InMemoryQueueBackend` 保存，描述一次派发到队列的工作单元。

    Attributes:
        id: 队列内唯一 ID
        queue: 队列名称
        operation: 操作名称，如 "timeout-pending-payments"
        envelope: 派发时的完整消息体 {"operation", "data", "timestamp"}
        options: 合并后的任务选项
        status: waiting / active / completed / failed
        enqueued_at: 入队时间
        finished_at: 完成或失败时间
        failed_reason: 失败原因
    """

    def __init__(
        self,
        id: str,
        queue: str,
        operation: str,
        envelope: Dict[str, Any],
        options: DispatchJobOptions,
        enqueued_at: Optional[datetime] = None,
    ):
        self.id = id
        self.queue = queue
        self.operation = operation
        self.envelope = envelope
        self.options = options
        self.status = "waiting"
        self.enqueued_at = enqueued_at or datetime.now(timezone.utc)
        self.finished_at: Optional[datetime] = None
        self.failed_reason: Optional[str] = None

        # 确保时间是时区感知的
        if self.enqueued_at.tzinfo is None:
            self.enqueued_at = self.enqueued_at.replace(tzinfo=timezone.utc)

    @property
    def data(self) -> Dict[str, Any]:
        return self.envelope.get("data", {})

    def to_handle(self) -> JobHandle:
        return JobHandle(
            id=self.id,
            queue=self.queue,
            operation=self.operation,
            enqueued_at=self.enqueued_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典，用于接口输出或日志打印"""
        return {
            "id": self.id,
            "queue": self.queue,
            "operation": self.operation,
            "data": self.data,
            "options": self.options.to_dict(),
            "status": self.status,
            "enqueued_at": self.enqueued_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "failed_reason": self.failed_reason,
        }

    def __str__(self) -> str:
        return f"QueuedJob(id={self.id}, queue={self.queue}, operation={self.operation})"

    def __repr__(self) -> str:
        return (
            f"QueuedJob(id='{self.id}', queue='{self.queue}', "
            f"operation='{self.operation}', status='{self.status}')"
        )
