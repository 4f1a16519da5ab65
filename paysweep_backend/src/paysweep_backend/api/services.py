"""管理接口服务层

作为路由和调度器之间的中间层：
- 把调度器状态字典转换为响应模型
- 配置变更成功后写入审计日志
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..state import Runtime
from .schemas import (
    EventLogListResponse,
    EventLogResponse,
    LogCleanupStatusResponse,
    LogCleanupTimeRequest,
    OperationResponse,
    PaymentTimeoutConfigRequest,
    PaymentTimeoutStatusResponse,
)


logger = logging.getLogger("paysweep.api.services")


class NothingToUpdateError(ValueError):
    """配置修改请求未包含任何字段"""


class SchedulerAdminService:
    """调度器管理服务

    Attributes:
        runtime: 应用启动时装配好的运行时组件
    """

    def __init__(self, runtime: Runtime, actor: str = "admin"):
        self.runtime = runtime
        self.actor = actor

    # ---- 支付超时调度器 ----

    def get_payment_timeout_status(self) -> PaymentTimeoutStatusResponse:
        return PaymentTimeoutStatusResponse(**self.runtime.payment_timeout.get_status())

    def start_payment_timeout(self) -> PaymentTimeoutStatusResponse:
        self.runtime.payment_timeout.start()
        return self.get_payment_timeout_status()

    def stop_payment_timeout(self) -> PaymentTimeoutStatusResponse:
        self.runtime.payment_timeout.stop()
        return self.get_payment_timeout_status()

    async def trigger_payment_timeout(self) -> OperationResponse:
        await self.runtime.payment_timeout.run_timeout_check_now()
        return OperationResponse(
            status="triggered",
            message="Payment timeout check dispatched; see logs for the job id",
        )

    async def update_payment_timeout_config(
        self, request: PaymentTimeoutConfigRequest
    ) -> PaymentTimeoutStatusResponse:
        """修改支付超时调度配置

        两个字段都提供时走 set_configuration（先超时阈值、后检查间隔，不回滚）。

        Raises:
            NothingToUpdateError: 请求为空
            InvalidConfigurationError: 取值超出范围
        """
        scheduler = self.runtime.payment_timeout
        before = scheduler.get_status()
        interval = request.check_interval_minutes
        timeout = request.payment_timeout_minutes

        if interval is None and timeout is None:
            raise NothingToUpdateError(
                "At least one of check_interval_minutes or payment_timeout_minutes is required"
            )

        try:
            if interval is not None and timeout is not None:
                scheduler.set_configuration(interval, timeout)
            elif timeout is not None:
                scheduler.set_payment_timeout(timeout)
            else:
                scheduler.set_check_interval(interval)
        finally:
            # set_configuration 可能只生效了一半，审计记录实际发生的变化
            await self._audit_changes(before, scheduler.get_status())

        return self.get_payment_timeout_status()

    # ---- 日志清理调度器 ----

    def get_log_cleanup_status(self) -> LogCleanupStatusResponse:
        return LogCleanupStatusResponse(**self.runtime.log_cleanup.get_status())

    async def trigger_log_cleanup(self) -> OperationResponse:
        await self.runtime.log_cleanup.run_cleanup_now()
        return OperationResponse(
            status="triggered",
            message="Log cleanup dispatched; see logs for the job id",
        )

    async def update_log_cleanup_time(
        self, request: LogCleanupTimeRequest
    ) -> LogCleanupStatusResponse:
        before = self.runtime.log_cleanup.get_status()
        self.runtime.log_cleanup.set_cleanup_time(request.hour, request.minute)
        await self._audit_changes(before, self.runtime.log_cleanup.get_status())
        return self.get_log_cleanup_status()

    # ---- 事件日志 ----

    def get_recent_logs(
        self,
        limit: int,
        log_type: Optional[str] = None,
        level: Optional[str] = None,
    ) -> EventLogListResponse:
        service = self.runtime.logging_service
        entries = service.get_recent_logs(limit, log_type, level) if service else []
        return EventLogListResponse(
            data=[EventLogResponse(**entry) for entry in entries],
            total=len(entries),
        )

    async def _audit_changes(self, before: dict[str, Any], after: dict[str, Any]) -> None:
        service = self.runtime.logging_service
        if service is None:
            return

        for key in ("check_interval_minutes", "payment_timeout_minutes", "cleanup_time"):
            if key in before and before[key] != after.get(key):
                try:
                    await service.get_audit_logger().log_config_change(
                        self.actor, key, before[key], after.get(key)
                    )
                except Exception as e:
                    # 审计失败不影响配置修改本身的结果
                    logger.warning("配置变更审计记录失败 key=%s error=%s", key, e)
