from .loggers import (
    ApplicationLogger,
    AuditLogger,
    BaseEventLogger,
    EventLogBuffer,
    EventLogEntry,
    LoggingService,
)

__all__ = [
    "ApplicationLogger",
    "AuditLogger",
    "BaseEventLogger",
    "EventLogBuffer",
    "EventLogEntry",
    "LoggingService",
]
