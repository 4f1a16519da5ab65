from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Literal, Optional
import logging

logger = logging.getLogger("paysweep.config")


class PaymentTimeoutConfig(BaseModel):
    enabled: bool = Field(default=True)
    check_interval_minutes: int = Field(default=30, ge=1, le=1440)
    payment_timeout_minutes: int = Field(default=60, ge=5, le=10080)


class LogCleanupConfig(BaseModel):
    enabled: bool = Field(default=True)
    hour: int = Field(default=2, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    retention_days: int = Field(default=30, ge=1, le=3650)
    retry_delay_minutes: int = Field(default=60, ge=1)


class QueueConfig(BaseModel):
    backend: Literal["memory", "celery"] = Field(default="memory")
    broker_url: str = Field(default="redis://localhost:6379/0")
    result_backend: Optional[str] = Field(default=None)
    task_prefix: str = Field(default="paysweep")
    memory_max_waiting: int = Field(default=1000, ge=1)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    recent_buffer_size: int = Field(default=500, ge=1)


class Settings(BaseModel):
    scheduler_timezone: str = Field(default="UTC")
    payment_timeout: PaymentTimeoutConfig = Field(default_factory=PaymentTimeoutConfig)
    log_cleanup: LogCleanupConfig = Field(default_factory=LogCleanupConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例（默认配置 < YAML 文件 < 环境变量）"""
    global _settings
    if _settings is None:
        from .loaders import ConfigParser, create_default_config_loader

        _settings = ConfigParser.parse(create_default_config_loader().load())
    return _settings


def reset_settings() -> None:
    """清空缓存的配置，下次 get_settings 时重新加载"""
    global _settings
    _settings = None
