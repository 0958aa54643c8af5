"""
调度器基础抽象 - 域无关的定时任务类型与协作方接口

core 层只依赖这里的接口：
- ISchedulerBackend: 触发时钟（由 app 层对接 APScheduler 等框架）
- ITaskStore: 任务定义的持久化来源
- IExecutionLogSink: 执行结果记录
"""
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import IntEnum
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


def utc_now() -> datetime:
    """当前 UTC 时间（naive，与数据库 DateTime 列保持一致）"""
    return datetime.now(UTC).replace(tzinfo=None)


class TaskStatus(IntEnum):
    """任务状态（与持久化的 status 列一致）"""
    DISABLED = 0
    ENABLED = 1


class ExecuteResult(IntEnum):
    """执行结果"""
    FAILURE = 0
    SUCCESS = 1


@dataclass
class ScheduledTaskDefinition:
    """
    定时任务定义（脱离 ORM 会话的快照，可安全传入调度线程）

    Attributes:
        id: 任务 ID
        task_name: 任务名称
        task_description: 任务描述
        cron_expression: 5 段或 6 段 cron 表达式
        exec_type: 执行类型（选择执行器）
        task_type: 任务类型（选择执行器）
        task_params: 执行器参数（不透明 JSON 文本）
        status: 启用 / 禁用
        last_execute_time: 最近一次执行时间
    """

    id: int
    task_name: str
    cron_expression: str
    exec_type: str
    task_type: str = ""
    task_description: str = ""
    task_params: str = ""
    status: int = TaskStatus.ENABLED
    last_execute_time: Optional[datetime] = None

    @property
    def is_enabled(self) -> bool:
        return self.status == TaskStatus.ENABLED


@dataclass
class TaskExecutionLogEntry:
    """单次执行结果"""

    task_id: int
    execute_time: datetime
    execute_result: int
    execute_duration_ms: int = 0
    error_message: Optional[str] = None
    id: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.execute_result == ExecuteResult.SUCCESS


# ── 查询过滤 ──────────────────────────────────────────


@dataclass
class DateRangeFilter:
    """日期区间过滤（闭区间，任一端可为空）"""
    field: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass
class DataFilters:
    """
    通用分页查询条件

    Attributes:
        like_filters: 字段 -> 模糊匹配值列表（同字段 OR，跨字段 AND）
        matches: 字段 -> 精确匹配值列表（IN）
        date_ranges: 日期区间过滤
        sort_by: 排序字段
        sort_direction: asc / desc
        page: 页码（从 1 开始）
        page_size: 每页条数
    """

    like_filters: Dict[str, List[str]] = field(default_factory=dict)
    matches: Dict[str, List[str]] = field(default_factory=dict)
    date_ranges: List[DateRangeFilter] = field(default_factory=list)
    sort_by: List[str] = field(default_factory=list)
    sort_direction: str = "asc"
    page: int = 1
    page_size: int = 10


@dataclass
class PaginatedResult(Generic[T]):
    """分页结果"""
    data: List[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total / self.page_size)


# ── 协作方接口 ────────────────────────────────────────


class ISchedulerBackend(ABC):
    """触发时钟接口"""

    @property
    @abstractmethod
    def running(self) -> bool:
        """时钟是否在运行"""

    @abstractmethod
    def start(self) -> None:
        """启动时钟，已注册的触发器开始触发"""

    @abstractmethod
    def shutdown(self, wait: bool = False) -> None:
        """停止时钟；正在执行的任务允许结束"""

    @abstractmethod
    def add_job(
        self,
        job_id: str,
        func: Callable[[], Any],
        cron_expression: str,
        name: Optional[str] = None,
    ) -> Any:
        """注册 cron 触发器

        Returns:
            后端的任务引用，用于后续取消

        Raises:
            CronExpressionError: cron 表达式无法解析
        """

    @abstractmethod
    def remove_job(self, job_id: str) -> None:
        """取消触发器（不存在时静默）"""

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[Dict]:
        """获取触发器信息，至少包含 id, name, trigger, next_run_time"""


class ITaskStore(ABC):
    """任务定义存储接口"""

    @abstractmethod
    def search_paginated(self, filters: DataFilters) -> PaginatedResult[ScheduledTaskDefinition]:
        """按条件分页查询任务定义"""

    @abstractmethod
    def get_by_id(self, task_id: int) -> Optional[ScheduledTaskDefinition]:
        """按 ID 获取任务定义，不存在返回 None"""

    @abstractmethod
    def update(self, task_id: int, fields: Dict[str, Any]) -> ScheduledTaskDefinition:
        """更新任务字段"""


class IExecutionLogSink(ABC):
    """执行日志接口"""

    @abstractmethod
    def create(self, entry: TaskExecutionLogEntry) -> TaskExecutionLogEntry:
        """写入一条执行日志"""
