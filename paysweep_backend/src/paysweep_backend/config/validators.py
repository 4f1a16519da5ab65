"""配置验证器模块

在 pydantic 字段约束之外，检查配置之间的一致性并给出警告。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import LogCleanupConfig, PaymentTimeoutConfig, QueueConfig, Settings

logger = logging.getLogger("paysweep.config.validators")


@dataclass
class ValidationResult:
    """验证结果

    包含验证是否通过、错误信息和警告信息。
    """
    is_valid: bool
    errors: List[str]
    warnings: List[str]

    def add_error(self, message: str):
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        self.warnings.append(message)

    def merge(self, other: "ValidationResult"):
        """合并另一个验证结果"""
        if not other.is_valid:
            self.is_valid = False
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


def _empty_result() -> ValidationResult:
    return ValidationResult(is_valid=True, errors=[], warnings=[])


class ConfigValidator(ABC):
    """配置验证器抽象基类"""

    @abstractmethod
    def validate(self, config: Any) -> ValidationResult:
        raise NotImplementedError


class PaymentTimeoutConfigValidator(ConfigValidator):
    """支付超时调度配置验证器"""

    def validate(self, config: PaymentTimeoutConfig) -> ValidationResult:
        result = _empty_result()

        if config.payment_timeout_minutes < config.check_interval_minutes:
            result.add_warning(
                "支付超时阈值小于检查间隔，超时订单最多会延迟一个检查间隔才被处理"
            )
        if config.check_interval_minutes < 5:
            result.add_warning("检查间隔过短会产生大量队列任务")
        if not config.enabled:
            result.add_warning("支付超时调度已禁用，超时订单不会被自动处理")

        return result


class LogCleanupConfigValidator(ConfigValidator):
    """日志清理调度配置验证器"""

    def validate(self, config: LogCleanupConfig) -> ValidationResult:
        result = _empty_result()

        if config.retention_days < 7:
            result.add_warning("日志保留天数少于7天，审计追溯窗口较短")
        if config.retry_delay_minutes > 12 * 60:
            result.add_warning("日志清理重试间隔过长，失败后当天可能不会再执行")

        return result


class QueueConfigValidator(ConfigValidator):
    """队列配置验证器"""

    VALID_BROKER_SCHEMES = ("redis://", "rediss://", "amqp://", "amqps://", "memory://")

    def validate(self, config: QueueConfig) -> ValidationResult:
        result = _empty_result()

        if config.backend == "celery":
            if not config.broker_url or not config.broker_url.strip():
                result.add_error("使用 celery 队列时必须配置 broker_url")
            elif not config.broker_url.startswith(self.VALID_BROKER_SCHEMES):
                result.add_warning(f"未识别的 broker 地址: '{config.broker_url}'")
        elif config.backend == "memory":
            result.add_warning("使用进程内队列，派发的任务不会被外部 worker 执行")

        return result


class SchedulerConfigValidator(ConfigValidator):
    """调度器时区验证器"""

    def validate(self, config: Settings) -> ValidationResult:
        result = _empty_result()

        try:
            ZoneInfo(config.scheduler_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            result.add_error(f"无效的时区 '{config.scheduler_timezone}'")

        return result


class CompositeConfigValidator(ConfigValidator):
    """组合配置验证器"""

    def __init__(self):
        self.payment_timeout_validator = PaymentTimeoutConfigValidator()
        self.log_cleanup_validator = LogCleanupConfigValidator()
        self.queue_validator = QueueConfigValidator()
        self.scheduler_validator = SchedulerConfigValidator()

    def validate(self, config: Settings) -> ValidationResult:
        result = _empty_result()

        result.merge(self.payment_timeout_validator.validate(config.payment_timeout))
        result.merge(self.log_cleanup_validator.validate(config.log_cleanup))
        result.merge(self.queue_validator.validate(config.queue))
        result.merge(self.scheduler_validator.validate(config))

        if result.errors:
            logger.error("配置验证发现 %d 个错误", len(result.errors))
            for error in result.errors:
                logger.error("  - %s", error)

        if result.warnings:
            logger.warning("配置验证发现 %d 个警告", len(result.warnings))
            for warning in result.warnings:
                logger.warning("  - %s", warning)

        if result.is_valid and not result.warnings:
            logger.info("配置验证通过")

        return result


def validate_settings(settings: Settings) -> ValidationResult:
    """验证设置配置的便捷函数"""
    validator = CompositeConfigValidator()
    return validator.validate(settings)
