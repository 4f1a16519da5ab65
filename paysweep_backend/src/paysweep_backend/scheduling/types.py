from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol


class JobKind(str, Enum):
    """Job 类型枚举，用于统一生成 APScheduler 任务 ID。

    - periodic: 周期性执行（支付超时检查）
    - daily: 每日定时执行（日志清理）
    - retry: 因派发失败导致的延迟重试
    """

    Periodic = "periodic"
    Daily = "daily"
    Retry = "retry"


def make_job_id(name: str, kind: JobKind, *, suffix: Optional[str] = None) -> str:
    """生成统一格式的 APScheduler job id: "<name>:<kind>[:<suffix>]"."""

    parts: list[str] = [name, kind.value]
    if suffix:
        parts.append(suffix)
    return ":".join(parts)


class InvalidConfigurationError(ValueError):
    """调度配置超出允许范围

    由各个 setter 同步抛出，抛出时对应字段保持原值不变。

    Attributes:
        field: 出错的配置字段名
        value: 调用方传入的值
        minimum: 允许的最小值
        maximum: 允许的最大值
    """

    def __init__(
        self,
        field: str,
        value: Any,
        minimum: int,
        maximum: int,
        message: str | None = None,
    ):
        self.field = field
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
        if message is None:
            message = (
                f"Invalid {field}: {value!r}. "
                f"Must be an integer between {minimum} and {maximum}"
            )
        super().__init__(message)


def validate_range(field: str, value: Any, minimum: int, maximum: int) -> int:
    """校验整数配置值是否在 [minimum, maximum] 内，返回校验后的值。"""

    # bool 是 int 的子类，这里显式排除
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigurationError(field, value, minimum, maximum)
    if value < minimum or value > maximum:
        raise InvalidConfigurationError(field, value, minimum, maximum)
    return value


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """任务级重试退避策略，由队列执行端解释。"""

    type: str = "exponential"
    delay_seconds: float = 5.0


@dataclass(frozen=True, slots=True)
class DispatchJobOptions:
    """单次派发的任务选项。

    字段为 None 时表示沿用队列的默认值（见 `JobQueue`）。
    """

    priority: Optional[int] = None
    remove_on_complete: Optional[int] = None
    remove_on_fail: Optional[int] = None
    attempts: Optional[int] = None
    backoff: Optional[BackoffPolicy] = None

    def merged_over(self, defaults: "DispatchJobOptions") -> "DispatchJobOptions":
        """以 defaults 为底，用本对象中非 None 的字段覆盖。"""

        overrides = {
            name: getattr(self, name)
            for name in self.__dataclass_fields__
            if getattr(self, name) is not None
        }
        return replace(defaults, **overrides)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class JobHandle:
    """队列返回的任务句柄"""

    id: str
    queue: str
    operation: str
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class JobDispatcher(Protocol):
    async def dispatch(
        self,
        operation: str,
        payload: dict[str, Any],
        options: DispatchJobOptions,
    ) -> JobHandle: ...


class AuditLogger(Protocol):
    async def log_admin_operation(
        self,
        admin_id: str,
        operation: str,
        target: str,
        details: dict[str, Any] | None = None,
    ) -> None: ...


class ApplicationLogger(Protocol):
    async def log_system_event(
        self, event: str, details: dict[str, Any] | None = None
    ) -> None: ...

    async def error(self, message: str, metadata: dict[str, Any] | None = None) -> None: ...


class LoggingService(Protocol):
    def get_audit_logger(self) -> Optional[AuditLogger]: ...

    def get_application_logger(self) -> Optional[ApplicationLogger]: ...
