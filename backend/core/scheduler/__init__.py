"""
调度器 - 域无关的动态 cron 任务调度

app 层实现 ISchedulerBackend / ITaskStore / IExecutionLogSink 来对接具体框架与存储。
"""
from core.scheduler.base import (
    DataFilters,
    DateRangeFilter,
    ExecuteResult,
    IExecutionLogSink,
    ISchedulerBackend,
    ITaskStore,
    PaginatedResult,
    ScheduledTaskDefinition,
    TaskExecutionLogEntry,
    TaskStatus,
    utc_now,
)
from core.scheduler.engine import JobHandle, TaskScheduler, job_id_for
from core.scheduler.errors import (
    ConfigurationError,
    CronExpressionError,
    ExecutorNotFoundError,
    SchedulerError,
    TaskExecutionError,
    TaskNotEnabledError,
    TaskNotFoundError,
)
from core.scheduler.executor import TaskExecutorRegistry

__all__ = [
    "DataFilters", "DateRangeFilter", "PaginatedResult",
    "ScheduledTaskDefinition", "TaskExecutionLogEntry", "TaskStatus", "ExecuteResult", "utc_now",
    "ISchedulerBackend", "ITaskStore", "IExecutionLogSink",
    "TaskScheduler", "JobHandle", "job_id_for",
    "TaskExecutorRegistry",
    "SchedulerError", "ConfigurationError", "CronExpressionError", "ExecutorNotFoundError",
    "TaskNotFoundError", "TaskNotEnabledError", "TaskExecutionError",
]
