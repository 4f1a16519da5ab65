from .settings import (
    LogCleanupConfig,
    LoggingConfig,
    PaymentTimeoutConfig,
    QueueConfig,
    Settings,
    get_settings,
    reset_settings,
)

__all__ = [
    "Settings",
    "PaymentTimeoutConfig",
    "LogCleanupConfig",
    "QueueConfig",
    "LoggingConfig",
    "get_settings",
    "reset_settings",
]
