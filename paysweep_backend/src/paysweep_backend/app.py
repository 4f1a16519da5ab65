"""paysweep 后端服务入口

- FastAPI 实例
- 应用启动/关闭生命周期中装配并启动调度器
- 调度器管理 RESTful API 接口
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from fastapi import FastAPI

from .api.v1 import router as api_v1_router
from .config.settings import Settings, get_settings
from .event_log import LoggingService
from .queues import build_queue_backend, create_database_queue, create_payment_queue
from .scheduling import LogCleanupScheduler, PaymentTimeoutScheduler, create_async_scheduler
from .state import Runtime, get_runtime, set_runtime
from .utils.logging import setup_logging

logger = setup_logging()


def build_runtime(settings: Settings) -> Runtime:
    """按配置装配队列、调度器等运行时组件（尚未启动）。

    日志服务在调度器创建之后再注入，调度器在此之前可以正常工作。
    """
    scheduler = create_async_scheduler(settings.scheduler_timezone)
    backend = build_queue_backend(settings.queue)

    payment_timeout = PaymentTimeoutScheduler(
        create_payment_queue(backend),
        check_interval_minutes=settings.payment_timeout.check_interval_minutes,
        payment_timeout_minutes=settings.payment_timeout.payment_timeout_minutes,
        scheduler=scheduler,
    )
    log_cleanup = LogCleanupScheduler(
        create_database_queue(backend),
        hour=settings.log_cleanup.hour,
        minute=settings.log_cleanup.minute,
        retention_days=settings.log_cleanup.retention_days,
        retry_delay_minutes=settings.log_cleanup.retry_delay_minutes,
        scheduler=scheduler,
    )

    logging_service = LoggingService(settings.logging.recent_buffer_size)
    payment_timeout.set_logging_service(logging_service)
    log_cleanup.set_logging_service(logging_service)

    return Runtime(
        scheduler=scheduler,
        queue_backend=backend,
        payment_timeout=payment_timeout,
        log_cleanup=log_cleanup,
        logging_service=logging_service,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期：启动调度器 & 关闭清理。"""
    logger.info("Application starting ...")

    settings = get_settings()
    setup_logging(settings.logging.level)

    runtime = build_runtime(settings)
    try:
        runtime.scheduler.start()
        if settings.payment_timeout.enabled:
            runtime.payment_timeout.start()
        if settings.log_cleanup.enabled:
            runtime.log_cleanup.start()
    except Exception as exc:
        logger.exception("Failed to initialise schedulers: %s", exc)
        runtime.shutdown()
        raise

    set_runtime(runtime)
    logger.info("Application started")

    try:
        yield
    finally:
        logger.info("Application shutting down ...")
        runtime.shutdown()
        set_runtime(None)
        logger.info("Schedulers stopped.")


app = FastAPI(
    title="paysweep Backend",
    description="支付超时清扫与日志清理调度服务",
    version="1.0.0",
    lifespan=lifespan,
)

# 注册 API 路由
app.include_router(api_v1_router)


@app.get("/", summary="健康检查")
async def root() -> dict[str, Any]:
    runtime = get_runtime()
    return {
        "message": "paysweep backend is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payment_timeout_running": runtime.payment_timeout.is_running if runtime else False,
        "log_cleanup_running": runtime.log_cleanup.is_running if runtime else False,
    }


# 可选：uvicorn 直接运行入口
if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("paysweep_backend.app:app", host="0.0.0.0", port=8000, reload=True)
