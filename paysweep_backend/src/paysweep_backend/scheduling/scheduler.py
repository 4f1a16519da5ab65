from __future__ import annotations

import itertools
import logging
import traceback
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

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

logger = logging.getLogger("paysweep.scheduler.payment_timeout")

TIMEOUT_OPERATION = "timeout-pending-payments"
TARGET_RESOURCE = "payments_table"

CHECK_INTERVAL_RANGE = (1, 1440)  # 1 分钟到 24 小时
PAYMENT_TIMEOUT_RANGE = (5, 10080)  # 5 分钟到 7 天

# 每次派发固定使用的任务选项；任务级重试完全交给队列
TIMEOUT_JOB_OPTIONS = DispatchJobOptions(
    priority=1,  # 数字越小优先级越高
    remove_on_complete=10,
    remove_on_fail=5,
    attempts=3,
    backoff=BackoffPolicy(type="exponential", delay_seconds=5),
)


class PaymentTimeoutScheduler(BaseSweepScheduler):
    """支付超时调度器

    周期性地向任务队列派发一次 "timeout-pending-payments" 任务，
    由队列 worker 把超时未支付的订单标记为失败。

    - 封装 APScheduler（异步）IntervalTrigger
    - start() 会立即执行一次检查，再按间隔周期执行
    - 派发失败只记录日志，不自行重试，等待下一次定时触发
    - 手动触发与定时触发之间不做互斥，可能同时派发两次

    Attributes:
        check_interval_minutes: 检查间隔（分钟），范围 [1, 1440]
        payment_timeout_minutes: 支付超时阈值（分钟），范围 [5, 10080]
    """

    name = "payment-timeout"

    def __init__(
        self,
        dispatcher: JobDispatcher,
        logging_service: Optional[LoggingService] = None,
        *,
        check_interval_minutes: int = 30,
        payment_timeout_minutes: int = 60,
        scheduler: Optional[AsyncIOScheduler] = None,
        timezone: str = "UTC",
    ):
        """初始化支付超时调度器。

        Args:
            dispatcher: 任务派发器（通常是支付队列）
            logging_service: 可选的日志服务，也可在之后通过 set_logging_service 注入
            check_interval_minutes: 检查间隔（分钟）
            payment_timeout_minutes: 支付超时阈值（分钟）
            scheduler: 共享的 AsyncIOScheduler；为空时自行创建并负责关闭
            timezone: 自行创建调度器时使用的时区

        Raises:
            InvalidConfigurationError: 初始配置超出范围
        """
        self.check_interval_minutes = validate_range(
            "check_interval_minutes", check_interval_minutes, *CHECK_INTERVAL_RANGE
        )
        self.payment_timeout_minutes = validate_range(
            "payment_timeout_minutes", payment_timeout_minutes, *PAYMENT_TIMEOUT_RANGE
        )
        super().__init__(
            dispatcher, logging_service, scheduler=scheduler, timezone=timezone
        )
        # 每次 start 使用新的 job id，旧任务仍在执行时不会挡住重启后的立即检查
        self._generation = itertools.count(1)

    def start(self) -> None:
        """启动调度器（幂等）。

        立即触发一次检查，然后每 check_interval_minutes 分钟触发一次。
        必须在运行中的事件循环内调用。
        """
        with self._lock:
            if self._state.is_running:
                logger.warning("支付超时调度器已在运行")
                return

            logger.info("启动支付超时调度器 ...")
            self._ensure_scheduler_started()

            # 首次触发时间设为“现在”，即启动时立即执行一次
            job = self._scheduler.add_job(
                self.run_timeout_check,
                trigger=IntervalTrigger(minutes=self.check_interval_minutes),
                id=make_job_id(
                    self.name, JobKind.Periodic, suffix=str(next(self._generation))
                ),
                replace_existing=True,
                next_run_time=datetime.now(timezone.utc),
            )
            self._state = SchedulerRuntimeState.running(job)

            logger.info(
                "支付超时调度器已启动 interval=%d分钟 timeout=%d分钟",
                self.check_interval_minutes,
                self.payment_timeout_minutes,
            )

    async def run_timeout_check(self) -> None:
        """执行一次支付超时检查（定时触发与手动触发共用）。

        顺序：审计日志 -> 派发任务 -> 系统事件 / 错误日志。
        任何异常都不会抛出到调用方。
        """
        logger.info("开始支付超时检查 ...")

        await self._record_audit(
            "system",
            "automated_payment_timeout_check",
            TARGET_RESOURCE,
            {
                "check_interval": f"{self.check_interval_minutes} minutes",
                "payment_timeout": f"{self.payment_timeout_minutes} minutes",
                "initiated_at": _utc_now_iso(),
                "automated": True,
            },
        )

        timeout_minutes = self.payment_timeout_minutes
        try:
            job = await self._dispatcher.dispatch(
                TIMEOUT_OPERATION,
                {"timeoutMinutes": timeout_minutes},
                TIMEOUT_JOB_OPTIONS,
            )
        except Exception as e:
            logger.error("支付超时检查任务派发失败 error=%s", e)
            await self._log_error(
                "Automated payment timeout check failed",
                {
                    "error": str(e),
                    "stack": "".join(traceback.format_exception(e)),
                    "timeout_minutes": timeout_minutes,
                    "check_interval": self.check_interval_minutes,
                    "operation": "automated_payment_timeout_check",
                },
            )
            # 不自动重试，等待下一次定时触发；重试由队列自身负责
            return

        logger.info("支付超时检查任务已入队 job_id=%s", job.id)

        await self._log_system_event(
            "payment_timeout_check_scheduled",
            {
                "job_id": job.id,
                "timeout_minutes": timeout_minutes,
                "scheduled_by": "automated_scheduler",
                "next_check": self._next_check_iso(),
            },
        )

    async def run_timeout_check_now(self) -> None:
        """立即执行一次支付超时检查（手动触发）。

        不受运行状态影响，也不会启动或停止定时任务。
        """
        logger.info("[manual] 手动触发支付超时检查")

        await self._record_audit(
            "admin",
            "manual_payment_timeout_check",
            TARGET_RESOURCE,
            {
                "timeout_minutes": self.payment_timeout_minutes,
                "initiated_at": _utc_now_iso(),
                "automated": False,
                "trigger": "manual_api_call",
            },
        )

        return await self.run_timeout_check()

    def get_status(self) -> dict[str, Any]:
        """获取调度器状态。

        next_check 只是按“当前时间 + 间隔”估算的参考值，
        并非定时器真实的下次触发时间。
        """
        return {
            "is_running": self._state.is_running,
            "check_interval_minutes": self.check_interval_minutes,
            "payment_timeout_minutes": self.payment_timeout_minutes,
            "next_check": self._next_check_iso() if self._state.is_running else None,
        }

    def set_check_interval(self, minutes: int) -> None:
        """设置检查间隔（分钟）。运行中时会重启定时任务，并立即多执行一次检查。

        Raises:
            InvalidConfigurationError: 超出 [1, 1440]
        """
        with self._lock:
            self.check_interval_minutes = validate_range(
                "check_interval_minutes", minutes, *CHECK_INTERVAL_RANGE
            )
            logger.info("支付超时检查间隔更新为 %d 分钟", minutes)

            if self._state.is_running:
                self.stop()
                self.start()

    def set_payment_timeout(self, minutes: int) -> None:
        """设置支付超时阈值（分钟），下一次检查生效。

        Raises:
            InvalidConfigurationError: 超出 [5, 10080]
        """
        with self._lock:
            self.payment_timeout_minutes = validate_range(
                "payment_timeout_minutes", minutes, *PAYMENT_TIMEOUT_RANGE
            )
            logger.info("支付超时阈值更新为 %d 分钟", minutes)

    def set_configuration(
        self, check_interval_minutes: int, payment_timeout_minutes: int
    ) -> None:
        """同时设置两个参数。

        先设置超时阈值，再设置检查间隔，两步之间不回滚：
        若超时阈值合法而检查间隔非法，超时阈值的修改会保留，
        而检查间隔保持原值并抛出 InvalidConfigurationError。
        """
        with self._lock:
            self.set_payment_timeout(payment_timeout_minutes)
            self.set_check_interval(check_interval_minutes)

    def _next_check_iso(self) -> str:
        return (
            datetime.now(timezone.utc) + timedelta(minutes=self.check_interval_minutes)
        ).isoformat()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
