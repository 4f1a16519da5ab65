"""API v1 路由定义。

此模块包含调度器管理相关的 FastAPI 路由端点。
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...scheduling import InvalidConfigurationError
from ...state import get_runtime
from ..schemas import (
    EventLogListResponse,
    LogCleanupStatusResponse,
    LogCleanupTimeRequest,
    OperationResponse,
    PaymentTimeoutConfigRequest,
    PaymentTimeoutStatusResponse,
)
from ..services import NothingToUpdateError, SchedulerAdminService

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


def get_admin_service() -> SchedulerAdminService:
    """依赖注入：获取调度器管理服务实例"""

    runtime = get_runtime()
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="调度器尚未初始化",
        )
    return SchedulerAdminService(runtime)


@router.get(
    "/payment-timeout/status",
    response_model=PaymentTimeoutStatusResponse,
    summary="获取支付超时调度器状态",
)
async def get_payment_timeout_status(
    service: SchedulerAdminService = Depends(get_admin_service),
):
    return service.get_payment_timeout_status()


@router.post(
    "/payment-timeout/start",
    response_model=PaymentTimeoutStatusResponse,
    summary="启动支付超时调度器",
    description="已在运行时不做任何操作；启动时会立即执行一次检查",
)
async def start_payment_timeout(
    service: SchedulerAdminService = Depends(get_admin_service),
):
    return service.start_payment_timeout()


@router.post(
    "/payment-timeout/stop",
    response_model=PaymentTimeoutStatusResponse,
    summary="停止支付超时调度器",
)
async def stop_payment_timeout(
    service: SchedulerAdminService = Depends(get_admin_service),
):
    return service.stop_payment_timeout()


@router.post(
    "/payment-timeout/run",
    response_model=OperationResponse,
    summary="手动触发支付超时检查",
    description="无论调度器是否运行都会派发一次检查任务，派发失败只记录日志",
)
async def run_payment_timeout_check(
    service: SchedulerAdminService = Depends(get_admin_service),
):
    return await service.trigger_payment_timeout()


@router.put(
    "/payment-timeout/config",
    response_model=PaymentTimeoutStatusResponse,
    summary="修改支付超时调度配置",
    description=(
        "同时提供两个字段时先修改超时阈值、再修改检查间隔；"
        "检查间隔非法时超时阈值的修改会保留"
    ),
)
async def update_payment_timeout_config(
    request: PaymentTimeoutConfigRequest,
    service: SchedulerAdminService = Depends(get_admin_service),
):
    try:
        return await service.update_payment_timeout_config(request)
    except (InvalidConfigurationError, NothingToUpdateError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc


@router.get(
    "/log-cleanup/status",
    response_model=LogCleanupStatusResponse,
    summary="获取日志清理调度器状态",
)
async def get_log_cleanup_status(
    service: SchedulerAdminService = Depends(get_admin_service),
):
    return service.get_log_cleanup_status()


@router.post(
    "/log-cleanup/run",
    response_model=OperationResponse,
    summary="手动触发日志清理",
)
async def run_log_cleanup(
    service: SchedulerAdminService = Depends(get_admin_service),
):
    return await service.trigger_log_cleanup()


@router.put(
    "/log-cleanup/time",
    response_model=LogCleanupStatusResponse,
    summary="修改每日日志清理时间",
)
async def update_log_cleanup_time(
    request: LogCleanupTimeRequest,
    service: SchedulerAdminService = Depends(get_admin_service),
):
    try:
        return await service.update_log_cleanup_time(request)
    except InvalidConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc


@router.get(
    "/logs",
    response_model=EventLogListResponse,
    summary="查询最近的事件日志",
)
async def get_recent_logs(
    limit: int = Query(50, ge=1, le=500, description="返回条数"),
    log_type: Optional[str] = Query(None, description="日志类别：application, audit"),
    level: Optional[str] = Query(None, description="日志级别：debug, info, warn, error"),
    service: SchedulerAdminService = Depends(get_admin_service),
):
    return service.get_recent_logs(limit, log_type, level)
