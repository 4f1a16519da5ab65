"""API 请求与响应模型定义

使用 Pydantic 实现管理接口的数据验证和序列化。
范围校验由调度器自身完成，这里只约束类型，
以便非法取值统一返回调度器的 InvalidConfigurationError 信息。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PaymentTimeoutStatusResponse(BaseModel):
    """支付超时调度器状态"""
    is_running: bool = Field(..., description="是否正在运行")
    check_interval_minutes: int = Field(..., description="检查间隔（分钟）")
    payment_timeout_minutes: int = Field(..., description="支付超时阈值（分钟）")
    next_check: Optional[str] = Field(
        None, description="预计下次检查时间（按当前时间估算，仅供参考）"
    )


class PaymentTimeoutConfigRequest(BaseModel):
    """支付超时调度配置修改请求，字段均可选"""
    check_interval_minutes: Optional[int] = Field(None, description="检查间隔（分钟）")
    payment_timeout_minutes: Optional[int] = Field(None, description="支付超时阈值（分钟）")


class LogCleanupStatusResponse(BaseModel):
    """日志清理调度器状态"""
    is_running: bool = Field(..., description="是否正在运行")
    cleanup_time: str = Field(..., description="每日清理时间 HH:MM")
    retention_days: int = Field(..., description="日志保留天数")
    next_run: Optional[str] = Field(None, description="下次执行时间")


class LogCleanupTimeRequest(BaseModel):
    """日志清理时间修改请求"""
    hour: int = Field(..., description="小时 0-23")
    minute: int = Field(0, description="分钟 0-59")


class OperationResponse(BaseModel):
    """通用操作结果"""
    status: str = Field(..., description="操作结果")
    message: str = Field(..., description="说明信息")


class EventLogResponse(BaseModel):
    """事件日志条目"""
    log_type: str
    level: str
    message: str
    metadata: Dict[str, Any]
    created_at: str


class EventLogListResponse(BaseModel):
    """事件日志列表"""
    data: List[EventLogResponse] = Field(..., description="日志列表（按时间倒序）")
    total: int = Field(..., description="返回条数")

