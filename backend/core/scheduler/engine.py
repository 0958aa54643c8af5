"""
动态 cron 任务调度引擎

职责：
- 启动时从 ITaskStore 加载所有启用的任务，每个任务注册一个 cron 触发器
- 运行时增删改、启停单个任务，或整体重新加载
- 触发时通过执行器注册表执行任务，记录执行日志并回写最近执行时间

并发模型：
- task_id -> JobHandle 映射由一把可重入锁保护，同一 task_id 上的操作线性化
- 每个任务独立触发，引擎不在不同任务之间串行执行；慢任务只推迟自己的下一次触发
- 取消只阻止未来的触发，不打断正在执行的任务
- 单次执行的任何异常都被限制在该次执行内，不影响时钟和其他任务
"""
import logging
import threading
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Dict, List, Optional

from core.scheduler.base import (
    DataFilters,
    ExecuteResult,
    IExecutionLogSink,
    ISchedulerBackend,
    ITaskStore,
    ScheduledTaskDefinition,
    TaskExecutionLogEntry,
    TaskStatus,
    utc_now,
)
from core.scheduler.errors import (
    ConfigurationError,
    ExecutorNotFoundError,
    TaskNotEnabledError,
    TaskNotFoundError,
)
from core.scheduler.executor import TaskExecutorRegistry

logger = logging.getLogger(__name__)

JOB_ID_PREFIX = "scheduled_task:"


def job_id_for(task_id: int) -> str:
    """任务 ID -> 触发器 ID"""
    return f"{JOB_ID_PREFIX}{task_id}"


@dataclass
class JobHandle:
    """任务的活动触发器引用（仅存在于内存）"""
    task_id: int
    job_id: str
    task: ScheduledTaskDefinition
    job: Any = None

    @property
    def cron_expression(self) -> str:
        return self.task.cron_expression


class TaskScheduler:
    """
    定时任务调度引擎

    每个实例拥有独立的锁和任务映射，多个实例之间不共享状态。

    Example:
        >>> scheduler = TaskScheduler(backend, store, registry, log_sink)
        >>> scheduler.start()
        >>> scheduler.add_task(task)
        >>> scheduler.list_all_tasks()
        {7: False}
    """

    def __init__(
        self,
        backend: ISchedulerBackend,
        task_store: ITaskStore,
        executors: TaskExecutorRegistry,
        log_sink: Optional[IExecutionLogSink] = None,
        load_page_size: int = 500,
        slow_task_seconds: Optional[float] = None,
    ):
        """
        Args:
            backend: 触发时钟
            task_store: 任务定义存储
            executors: 执行器注册表
            log_sink: 执行日志（可选）
            load_page_size: 加载启用任务时每页条数
            slow_task_seconds: 单次执行超过该秒数时记录告警（不强制中断）
        """
        self._backend = backend
        self._store = task_store
        self._executors = executors
        self._log_sink = log_sink
        self._load_page_size = max(1, load_page_size)
        self._slow_task_seconds = slow_task_seconds

        self._tasks: Dict[int, JobHandle] = {}
        self._lock = threading.RLock()

        # 正在执行的次数，单独加锁，状态轮询不阻塞触发
        self._executing: Dict[int, int] = {}
        self._executing_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._backend.running

    # ── 生命周期 ──────────────────────────────────────

    def start(self) -> int:
        """加载所有启用任务并启动时钟

        Returns:
            成功注册的任务数
        """
        with self._lock:
            count = self._load_tasks()
            self._backend.start()
        logger.info(f"Task scheduler started ({count} tasks scheduled)")
        return count

    def stop(self, wait: bool = False) -> None:
        """停止时钟，丢弃所有触发器；正在执行的任务允许结束"""
        with self._lock:
            self._clear_locked()
            self._backend.shutdown(wait=wait)
        logger.info("Task scheduler stopped")

    def reload_tasks(self) -> int:
        """丢弃所有触发器后重新从存储加载

        Returns:
            成功注册的任务数
        """
        logger.info("Reloading all tasks")
        with self._lock:
            self._clear_locked()
            count = self._load_tasks()
        logger.info(f"Tasks reloaded successfully ({count} scheduled)")
        return count

    def stop_all_tasks(self) -> None:
        """取消所有触发器（时钟保持运行）"""
        with self._lock:
            self._clear_locked()
        logger.info("All tasks stopped")

    # ── 单任务操作 ────────────────────────────────────

    def add_task(self, task: ScheduledTaskDefinition) -> None:
        """添加任务；已存在的触发器先取消，禁用的任务不注册

        Raises:
            CronExpressionError: cron 表达式无法解析
        """
        with self._lock:
            self._remove_locked(task.id)
            if not task.is_enabled:
                logger.info(f"Task added but not scheduled (disabled): task_id={task.id}")
                return
            self._schedule_locked(task)

    def update_task(self, task: ScheduledTaskDefinition) -> None:
        """按新的定义重建触发器（等价于 remove_task + add_task）"""
        with self._lock:
            self._remove_locked(task.id)
            if task.is_enabled:
                self._schedule_locked(task)
        logger.info(f"Task updated: task_id={task.id}")

    def remove_task(self, task_id: int) -> None:
        """取消任务触发器；不存在时静默"""
        with self._lock:
            removed = self._remove_locked(task_id)
        if removed:
            logger.info(f"Task removed: task_id={task_id}")

    def start_task(self, task_id: int) -> ScheduledTaskDefinition:
        """从存储重新获取任务并调度

        Raises:
            TaskNotFoundError: 存储中不存在该任务
            TaskNotEnabledError: 存储中该任务为禁用状态
            CronExpressionError: cron 表达式无法解析
        """
        with self._lock:
            self._remove_locked(task_id)

            task = self._store.get_by_id(task_id)
            if task is None:
                logger.warning(f"Task not found in store, cannot start: task_id={task_id}")
                raise TaskNotFoundError(task_id)
            if not task.is_enabled:
                logger.warning(f"Task is not enabled, cannot start: task_id={task_id}")
                raise TaskNotEnabledError(task_id)

            self._schedule_locked(task)
        return task

    def stop_task(self, task_id: int) -> None:
        """取消正在调度的任务

        Raises:
            TaskNotFoundError: 该任务没有活动触发器
        """
        with self._lock:
            if task_id not in self._tasks:
                logger.warning(f"Task not scheduled: task_id={task_id}")
                raise TaskNotFoundError(task_id, "task not scheduled")
            self._remove_locked(task_id)
        logger.info(f"Task stopped: task_id={task_id}")

    def trigger_task(self, task_id: int) -> TaskExecutionLogEntry:
        """在调用线程上立即执行一次任务（不影响其触发器）

        Raises:
            TaskNotFoundError: 存储中不存在该任务
        """
        task = self._store.get_by_id(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return self._execute_task(task)

    # ── 状态查询 ──────────────────────────────────────

    def get_task_status(self, task_id: int) -> bool:
        """任务是否有活动触发器"""
        with self._lock:
            return task_id in self._tasks

    def list_all_tasks(self) -> Dict[int, bool]:
        """所有活动任务 -> 是否正在执行"""
        with self._lock:
            task_ids = list(self._tasks)
        return {task_id: self.is_executing(task_id) for task_id in task_ids}

    def is_executing(self, task_id: int) -> bool:
        with self._executing_lock:
            return self._executing.get(task_id, 0) > 0

    def describe_task(self, task_id: int) -> Optional[Dict[str, Any]]:
        """单个活动任务的运行信息（未调度返回 None）"""
        with self._lock:
            handle = self._tasks.get(task_id)
        if handle is None:
            return None

        job_info = self._backend.get_job(handle.job_id) or {}
        return {
            "task_id": handle.task_id,
            "task_name": handle.task.task_name,
            "cron_expression": handle.cron_expression,
            "scheduled": True,
            "running": self.is_executing(task_id),
            "next_run_time": job_info.get("next_run_time"),
        }

    def describe_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            task_ids = sorted(self._tasks)
        result = []
        for task_id in task_ids:
            info = self.describe_task(task_id)
            if info is not None:
                result.append(info)
        return result

    # ── 执行 ──────────────────────────────────────────

    def _execute_task(self, task: ScheduledTaskDefinition) -> TaskExecutionLogEntry:
        """触发回调：执行任务、记录日志、回写执行时间；除 KeyboardInterrupt 外不向时钟抛出异常"""
        logger.info(f"Executing task: task_id={task.id} name={task.task_name}")

        started_at = utc_now()
        started = time.monotonic()
        error_message = None
        interrupted = None
        self._mark_executing(task.id, 1)
        try:
            self._executors.execute(task)
        except ExecutorNotFoundError as e:
            error_message = str(e)
            logger.error(f"Task execution failed: task_id={task.id} name={task.task_name}: {e}")
        except Exception as e:
            error_message = str(e) or e.__class__.__name__
            logger.error(
                f"Task execution failed: task_id={task.id} name={task.task_name}: {e}",
                exc_info=True,
            )
        except BaseException as e:
            # SystemExit 等也只算本次执行失败；KeyboardInterrupt 记账后继续上抛
            error_message = f"{e.__class__.__name__}: {e}" if str(e) else e.__class__.__name__
            logger.error(
                f"Task execution aborted: task_id={task.id} name={task.task_name}: {error_message}",
                exc_info=True,
            )
            if isinstance(e, KeyboardInterrupt):
                interrupted = e
        finally:
            self._mark_executing(task.id, -1)

        duration = time.monotonic() - started
        finished_at = utc_now()

        if error_message is None:
            logger.info(f"Task executed successfully: task_id={task.id} name={task.task_name}")
        if self._slow_task_seconds and duration > self._slow_task_seconds:
            logger.warning(
                f"Task ran for {duration:.1f}s (threshold {self._slow_task_seconds}s): "
                f"task_id={task.id} name={task.task_name}"
            )

        entry = TaskExecutionLogEntry(
            task_id=task.id,
            execute_time=started_at,
            execute_result=ExecuteResult.SUCCESS if error_message is None else ExecuteResult.FAILURE,
            execute_duration_ms=int(duration * 1000),
            error_message=error_message,
        )
        self._record_execution(entry)
        self._update_last_execute_time(task.id, finished_at)
        if interrupted is not None:
            raise interrupted
        return entry

    def _record_execution(self, entry: TaskExecutionLogEntry) -> None:
        if self._log_sink is None:
            return
        try:
            self._log_sink.create(entry)
        except Exception as e:
            logger.warning(f"Failed to write execution log: task_id={entry.task_id}: {e}")

    def _update_last_execute_time(self, task_id: int, when) -> None:
        try:
            self._store.update(task_id, {"last_execute_time": when})
        except Exception as e:
            logger.warning(f"Failed to update task execution time: task_id={task_id}: {e}")

    def _mark_executing(self, task_id: int, delta: int) -> None:
        with self._executing_lock:
            count = self._executing.get(task_id, 0) + delta
            if count > 0:
                self._executing[task_id] = count
            else:
                self._executing.pop(task_id, None)

    # ── 内部方法（调用方持有 self._lock）──────────────

    def _load_tasks(self) -> int:
        try:
            tasks = self._fetch_enabled_tasks()
        except Exception:
            logger.exception("Failed to load tasks")
            return 0

        count = 0
        for task in tasks:
            self._remove_locked(task.id)
            try:
                self._schedule_locked(task)
                count += 1
            except ConfigurationError as e:
                logger.error(f"Failed to schedule task: task_id={task.id} name={task.task_name}: {e}")
        logger.info(f"Loaded {count}/{len(tasks)} enabled tasks")
        return count

    def _fetch_enabled_tasks(self) -> List[ScheduledTaskDefinition]:
        tasks: List[ScheduledTaskDefinition] = []
        page = 1
        while True:
            filters = DataFilters(
                matches={"status": [str(int(TaskStatus.ENABLED))]},
                sort_by=["id"],
                page=page,
                page_size=self._load_page_size,
            )
            result = self._store.search_paginated(filters)
            tasks.extend(result.data)
            if not result.data or len(tasks) >= result.total:
                return tasks
            page += 1

    def _schedule_locked(self, task: ScheduledTaskDefinition) -> None:
        job_id = job_id_for(task.id)
        job = self._backend.add_job(
            job_id=job_id,
            func=partial(self._execute_task, task),
            cron_expression=task.cron_expression,
            name=task.task_name,
        )
        self._tasks[task.id] = JobHandle(task_id=task.id, job_id=job_id, task=task, job=job)
        logger.info(
            f"Task scheduled: task_id={task.id} name={task.task_name} cron={task.cron_expression}"
        )

    def _remove_locked(self, task_id: int) -> bool:
        handle = self._tasks.pop(task_id, None)
        if handle is None:
            return False
        self._backend.remove_job(handle.job_id)
        return True

    def _clear_locked(self) -> None:
        for task_id in list(self._tasks):
            self._remove_locked(task_id)
