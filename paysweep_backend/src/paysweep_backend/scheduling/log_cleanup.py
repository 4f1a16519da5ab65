"""日志清理调度器

每天固定时间（默认 02:00）向数据库队列派发一次 "cleanup-logs" 任务。
与支付超时调度器不同：派发失败时会在一小时后安排一次补偿重试。
"""

from __future__ import annotations

import logging
import traceback
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from .base import BaseSweepScheduler, SchedulerRuntimeState
from .types import (
    BackoffPolicy,
    DispatchJobOptions,
    JobDispatcher,
    JobKind,
    LoggingService,
    make_job_id,
    validate_range,
)

logger = logging.getLogger("paysweep.scheduler.log_cleanup")

CLEANUP_OPERATION = "cleanup-logs"
TARGET_RESOURCE = "logs_table"

CLEANUP_JOB_OPTIONS = DispatchJobOptions(
    priority=5,
    remove_on_complete=5,
    remove_on_fail=3,
    attempts=3,
    backoff=BackoffPolicy(type="exponential", delay_seconds=10),
)

RETENTION_POLICY = {
    "normal_logs": "1 day",
    "warning_error_logs": "7 days",
    "audit_logs": "30 days",
}


class LogCleanupScheduler(BaseSweepScheduler):
    """日志清理调度器（每日定时）"""

    name = "log-cleanup"

    def __init__(
        self,
        dispatcher: JobDispatcher,
        logging_service: Optional[LoggingService] = None,
        *,
        hour: int = 2,
        minute: int = 0,
        retention_days: int = 30,
        retry_delay_minutes: int = 60,
        scheduler: Optional[AsyncIOScheduler] = None,
        timezone: str = "UTC",
    ):
        self.hour = validate_range("hour", hour, 0, 23)
        self.minute = validate_range("minute", minute, 0, 59)
        self.retention_days = validate_range("retention_days", retention_days, 1, 3650)
        self.retry_delay_minutes = retry_delay_minutes
        super().__init__(
            dispatcher, logging_service, scheduler=scheduler, timezone=timezone
        )

    def start(self) -> None:
        """启动调度器（幂等），首次执行在下一个清理时间点。"""
        with self._lock:
            if self._state.is_running:
                logger.warning("日志清理调度器已在运行")
                return

            self._ensure_scheduler_started()
            job = self._scheduler.add_job(
                self.run_log_cleanup,
                trigger=self._build_trigger(),
                id=make_job_id(self.name, JobKind.Daily),
                replace_existing=True,
            )
            self._state = SchedulerRuntimeState.running(job)
            logger.info("日志清理调度器已启动 每日 %s 执行", self.cleanup_time)

    def stop(self) -> None:
        """停止调度器，同时取消尚未执行的重试任务。"""
        with self._lock:
            if self._state.is_running:
                retry_job = self._scheduler.get_job(make_job_id(self.name, JobKind.Retry))
                if retry_job is not None:
                    retry_job.remove()
            super().stop()

    @property
    def cleanup_time(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    async def run_log_cleanup(self) -> None:
        """执行一次日志清理派发，失败时安排延迟重试。"""
        logger.info("开始自动日志清理 ...")

        await self._record_audit(
            "system",
            "automated_log_cleanup",
            TARGET_RESOURCE,
            {
                "scheduled_time": self.cleanup_time,
                "initiated_at": datetime.now(timezone.utc).isoformat(),
                "retention_policy": RETENTION_POLICY,
                "automated": True,
            },
        )

        try:
            job = await self._dispatcher.dispatch(
                CLEANUP_OPERATION,
                {"retentionDays": self.retention_days},
                CLEANUP_JOB_OPTIONS,
            )
        except Exception as e:
            logger.error("日志清理任务派发失败 error=%s", e)
            await self._log_error(
                "Automated log cleanup failed",
                {
                    "error": str(e),
                    "stack": "".join(traceback.format_exception(e)),
                    "scheduled_time": self.cleanup_time,
                    "operation": "automated_log_cleanup",
                },
            )
            self._schedule_retry()
            return

        logger.info("日志清理任务已入队 job_id=%s", job.id)
        await self._log_system_event(
            "log_cleanup_scheduled",
            {
                "job_id": job.id,
                "scheduled_by": "automated_scheduler",
                "next_run": self._next_run_iso(),
            },
        )

    async def run_cleanup_now(self) -> None:
        """立即执行一次日志清理（手动触发）"""
        logger.info("[manual] 手动触发日志清理")

        await self._record_audit(
            "admin",
            "manual_log_cleanup",
            TARGET_RESOURCE,
            {
                "initiated_at": datetime.now(timezone.utc).isoformat(),
                "retention_policy": RETENTION_POLICY,
                "automated": False,
                "trigger": "manual_api_call",
            },
        )

        return await self.run_log_cleanup()

    def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self._state.is_running,
            "cleanup_time": self.cleanup_time,
            "retention_days": self.retention_days,
            "next_run": self._next_run_iso() if self._state.is_running else None,
        }

    def set_cleanup_time(self, hour: int, minute: int) -> None:
        """设置每日清理时间，运行中时重新安排触发器。

        Raises:
            InvalidConfigurationError: hour 不在 0-23 或 minute 不在 0-59
        """
        with self._lock:
            hour = validate_range("hour", hour, 0, 23)
            minute = validate_range("minute", minute, 0, 59)
            self.hour, self.minute = hour, minute
            logger.info("日志清理时间更新为 %s", self.cleanup_time)

            handle = self._state.timer_handle
            if self._state.is_running and handle is not None:
                self._state = SchedulerRuntimeState.running(
                    handle.reschedule(trigger=self._build_trigger())
                )

    def _build_trigger(self) -> CronTrigger:
        return CronTrigger(
            hour=self.hour, minute=self.minute, timezone=self._scheduler.timezone
        )

    def _next_run_iso(self) -> str:
        next_fire = self._build_trigger().get_next_fire_time(
            None, datetime.now(timezone.utc)
        )
        return next_fire.isoformat()

    def _schedule_retry(self) -> None:
        if not self._scheduler.running:
            logger.warning("APScheduler 未运行，跳过日志清理重试安排")
            return

        # 稳定的重试任务 ID，确保仅存在一个挂起的重试任务
        retry_job_id = make_job_id(self.name, JobKind.Retry)
        run_date = datetime.now(timezone.utc) + timedelta(
            minutes=self.retry_delay_minutes
        )
        self._scheduler.add_job(
            self.run_log_cleanup,
            trigger=DateTrigger(run_date=run_date),
            id=retry_job_id,
            replace_existing=True,
        )
        logger.info(
            "已安排日志清理重试任务 job_id=%s retry_in=%d分钟",
            retry_job_id,
            self.retry_delay_minutes,
        )
