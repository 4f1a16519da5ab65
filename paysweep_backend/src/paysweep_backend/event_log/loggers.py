"""结构化事件日志

ApplicationLogger 记录系统事件与错误，AuditLogger 记录管理操作。
两者都写入 Python logging（paysweep.application / paysweep.audit），
并在内存中保留最近的若干条记录供管理接口查询。
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(slots=True)
class EventLogEntry:
    log_type: str
    level: str
    message: str
    metadata: Dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "log_type": self.log_type,
            "level": self.level,
            "message": self.message,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


class EventLogBuffer:
    """线程安全的定长日志缓冲区，超出容量时丢弃最旧的记录"""

    def __init__(self, max_size: int = 500):
        self._entries: Deque[EventLogEntry] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def append(self, entry: EventLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def recent(
        self,
        limit: int = 50,
        log_type: Optional[str] = None,
        level: Optional[str] = None,
    ) -> List[EventLogEntry]:
        """按时间倒序返回最近的记录"""
        with self._lock:
            entries = list(self._entries)

        matched = [
            e
            for e in reversed(entries)
            if (log_type is None or e.log_type == log_type)
            and (level is None or e.level == level)
        ]
        return matched[:limit]

    def __len__(self) -> int:
        return len(self._entries)


class BaseEventLogger:
    """事件日志基类

    Attributes:
        log_type: 日志类别（application / audit）
        buffer: 共享的内存缓冲区
    """

    def __init__(self, log_type: str, buffer: EventLogBuffer):
        self.log_type = log_type
        self.buffer = buffer
        self._logger = logging.getLogger(f"paysweep.{log_type}")

    async def info(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit("info", message, metadata)

    async def warn(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit("warn", message, metadata)

    async def error(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit("error", message, metadata)

    async def debug(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit("debug", message, metadata)

    def _emit(self, level: str, message: str, metadata: Optional[Dict[str, Any]]) -> None:
        entry = EventLogEntry(
            log_type=self.log_type,
            level=level,
            message=message,
            metadata=dict(metadata or {}),
        )
        self.buffer.append(entry)
        self._logger.log(
            LEVELS[level],
            "%s | %s",
            message,
            json.dumps(entry.metadata, ensure_ascii=False, default=str),
        )


class ApplicationLogger(BaseEventLogger):
    """应用日志：系统事件、业务操作等"""

    def __init__(self, buffer: EventLogBuffer):
        super().__init__("application", buffer)

    async def log_system_event(
        self, event: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        await self.info(
            f"System Event: {event}",
            {"event": event, "event_type": "system", **(details or {})},
        )


class AuditLogger(BaseEventLogger):
    """审计日志：管理操作、配置变更等敏感操作"""

    def __init__(self, buffer: EventLogBuffer):
        super().__init__("audit", buffer)

    async def log_admin_operation(
        self,
        admin_id: str,
        operation: str,
        target: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.warn(
            f"Admin Operation: {operation} on {target}",
            {
                "admin_id": admin_id,
                "operation": operation,
                "target": target,
                "action_type": "admin_operation",
                "sensitivity": "high",
                **(details or {}),
            },
        )

    async def log_config_change(
        self, admin_id: str, config_key: str, old_value: Any, new_value: Any
    ) -> None:
        await self.warn(
            f"Config Change: {config_key}",
            {
                "admin_id": admin_id,
                "config_key": config_key,
                "old_value": old_value,
                "new_value": new_value,
                "action_type": "config_change",
                "sensitivity": "critical",
                "change_time": datetime.now(timezone.utc).isoformat(),
            },
        )


class LoggingService:
    """日志服务：统一提供应用日志与审计日志"""

    def __init__(self, buffer_size: int = 500):
        self.buffer = EventLogBuffer(buffer_size)
        self._application_logger = ApplicationLogger(self.buffer)
        self._audit_logger = AuditLogger(self.buffer)

    def get_application_logger(self) -> ApplicationLogger:
        return self._application_logger

    def get_audit_logger(self) -> AuditLogger:
        return self._audit_logger

    def get_recent_logs(
        self,
        limit: int = 50,
        log_type: Optional[str] = None,
        level: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.buffer.recent(limit, log_type, level)]
