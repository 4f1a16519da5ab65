"""调度器公共骨架

`PaymentTimeoutScheduler` 与 `LogCleanupScheduler` 共用的部分：
- 运行状态（is_running + APScheduler Job 句柄）
- APScheduler 异步调度器的创建 / 共享 / 关闭
- 审计日志与应用日志的“尽力而为”调用：协作者缺失时静默跳过，
  调用失败时只记录 Python 日志，绝不向外抛出
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .types import JobDispatcher, LoggingService

logger = logging.getLogger("paysweep.scheduler")


@dataclass
class SchedulerRuntimeState:
    """调度器运行状态。

    不变量：timer_handle 非空当且仅当 is_running 为 True。
    """

    is_running: bool = False
    timer_handle: Optional[Job] = None

    @classmethod
    def running(cls, handle: Job) -> "SchedulerRuntimeState":
        return cls(is_running=True, timer_handle=handle)

    @classmethod
    def stopped(cls) -> "SchedulerRuntimeState":
        return cls()


def create_async_scheduler(timezone: str = "UTC") -> AsyncIOScheduler:
    """创建带统一默认 job 配置的 AsyncIOScheduler。

    多个调度器可共享同一个实例（由宿主进程创建后注入）。
    """
    return AsyncIOScheduler(
        timezone=timezone,
        job_defaults={
            "coalesce": True,  # 多个待执行实例合并
            "max_instances": 1,  # 同一任务最多并发1
            "misfire_grace_time": 300,  # 允许最多5分钟的错过执行宽限
        },
    )


class BaseSweepScheduler:
    """派发型调度器基类

    子类负责具体的触发器、派发参数和日志内容；基类只管状态、
    APScheduler 生命周期和协作者调用。

    Attributes:
        name: 调度器名称，用于日志与 job id
    """

    name = "sweep"

    def __init__(
        self,
        dispatcher: JobDispatcher,
        logging_service: Optional[LoggingService] = None,
        *,
        scheduler: Optional[AsyncIOScheduler] = None,
        timezone: str = "UTC",
    ):
        self._dispatcher = dispatcher
        self._logging_service = logging_service
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or create_async_scheduler(timezone)
        self._state = SchedulerRuntimeState.stopped()
        # start/stop/setter 之间互斥；可重入，因为 setter 内部会 stop 再 start
        self._lock = threading.RLock()

    def set_logging_service(self, logging_service: Optional[LoggingService]) -> None:
        """设置日志服务（日志服务初始化完成后调用，start 前后均可）"""
        self._logging_service = logging_service

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    @property
    def timer_job(self) -> Optional[Job]:
        """当前定时任务句柄，未运行时为 None"""
        return self._state.timer_handle

    def shutdown(self) -> None:
        """停止调度器；若 AsyncIOScheduler 由本实例创建，则一并关闭。"""
        with self._lock:
            if self._state.is_running:
                self.stop()
            if self._owns_scheduler and self._scheduler.running:
                self._scheduler.shutdown(wait=False)

    def stop(self) -> None:
        """停止调度器：移除定时任务，不中断正在执行的派发。"""
        with self._lock:
            if not self._state.is_running:
                logger.warning("[%s] 调度器未在运行", self.name)
                return

            handle = self._state.timer_handle
            if handle is not None:
                try:
                    handle.remove()
                except JobLookupError:
                    logger.debug("[%s] 定时任务已不存在 job_id=%s", self.name, handle.id)

            self._state = SchedulerRuntimeState.stopped()
            logger.info("[%s] 调度器已停止", self.name)

    def _ensure_scheduler_started(self) -> None:
        # AsyncIOScheduler.start 需要在运行中的事件循环里调用
        if not self._scheduler.running:
            self._scheduler.start()

    # ---- 协作者调用（尽力而为） ----

    async def _record_audit(
        self, actor: str, operation: str, target: str, details: dict[str, Any]
    ) -> None:
        service = self._logging_service
        if service is None:
            return
        try:
            audit_logger = service.get_audit_logger()
            if audit_logger is None:
                return
            await audit_logger.log_admin_operation(actor, operation, target, details)
        except Exception as e:
            logger.warning(
                "[%s] 审计日志记录失败 operation=%s error=%s", self.name, operation, e
            )

    async def _log_system_event(self, event: str, details: dict[str, Any]) -> None:
        service = self._logging_service
        if service is None:
            return
        try:
            app_logger = service.get_application_logger()
            if app_logger is None:
                return
            await app_logger.log_system_event(event, details)
        except Exception as e:
            logger.warning("[%s] 系统事件记录失败 event=%s error=%s", self.name, event, e)

    async def _log_error(self, message: str, details: dict[str, Any]) -> None:
        service = self._logging_service
        if service is None:
            return
        try:
            app_logger = service.get_application_logger()
            if app_logger is None:
                return
            await app_logger.error(message, details)
        except Exception as e:
            logger.warning("[%s] 错误日志记录失败 error=%s", self.name, e)
