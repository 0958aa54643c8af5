"""
调度引擎装配 - 由 lifespan 创建，挂在 app.state 上，通过依赖注入提供给路由
"""
from fastapi import HTTPException, Request, status

from app.config import Settings
from app.system.services.executors import build_default_registry
from app.system.services.scheduler_backend import APSchedulerBackend
from app.system.services.task_execution_log_service import SqlExecutionLogSink
from app.system.services.task_store import SqlTaskStore
from core.scheduler import TaskScheduler


def build_task_scheduler(db_session_factory, settings: Settings) -> TaskScheduler:
    """按配置组装调度引擎（未启动）"""
    backend = APSchedulerBackend(
        timezone=settings.SCHEDULER_TIMEZONE,
        max_workers=settings.SCHEDULER_MAX_WORKERS,
        misfire_grace_time=settings.SCHEDULER_MISFIRE_GRACE_SECONDS,
    )
    return TaskScheduler(
        backend=backend,
        task_store=SqlTaskStore(db_session_factory),
        executors=build_default_registry(
            db_session_factory, retention_days=settings.EXECUTION_LOG_RETENTION_DAYS,
        ),
        log_sink=SqlExecutionLogSink(db_session_factory),
        load_page_size=settings.SCHEDULER_LOAD_PAGE_SIZE,
        slow_task_seconds=settings.SCHEDULER_SLOW_TASK_SECONDS,
    )


def get_task_scheduler(request: Request) -> TaskScheduler:
    """依赖注入：获取当前应用的调度引擎"""
    scheduler = getattr(request.app.state, "task_scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="任务调度器未启用",
        )
    return scheduler
