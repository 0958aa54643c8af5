"""
执行器注册表 - (exec_type, task_type) -> 可调用对象

task_type 为 None 的注册项是该 exec_type 的兜底执行器，精确匹配优先。
"""
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from core.scheduler.base import ScheduledTaskDefinition
from core.scheduler.errors import ExecutorNotFoundError, TaskExecutionError

logger = logging.getLogger(__name__)

TaskExecutor = Callable[[ScheduledTaskDefinition], Optional[bool]]
ExecutorKey = Tuple[str, Optional[str]]


class TaskExecutorRegistry:
    """执行器注册表

    Example:
        >>> registry = TaskExecutorRegistry()
        >>> registry.register("cleanup", clean_old_logs)
        >>> registry.execute(task)
    """

    def __init__(self) -> None:
        self._executors: Dict[ExecutorKey, TaskExecutor] = {}
        self._lock = threading.Lock()

    def register(self, exec_type: str, func: TaskExecutor, task_type: Optional[str] = None) -> None:
        """注册执行器（同一 key 重复注册会覆盖）"""
        key = (exec_type, task_type or None)
        with self._lock:
            if key in self._executors:
                logger.warning(f"Executor for {key} replaced")
            self._executors[key] = func
        logger.info(f"Executor registered: {exec_type}/{task_type or '*'}")

    def unregister(self, exec_type: str, task_type: Optional[str] = None) -> None:
        with self._lock:
            self._executors.pop((exec_type, task_type or None), None)

    def get(self, exec_type: str, task_type: Optional[str] = None) -> TaskExecutor:
        """查找执行器

        Raises:
            ExecutorNotFoundError: 没有匹配的执行器
        """
        with self._lock:
            func = self._executors.get((exec_type, task_type or None))
            if func is None:
                func = self._executors.get((exec_type, None))
        if func is None:
            raise ExecutorNotFoundError(exec_type, task_type)
        return func

    def execute(self, task: ScheduledTaskDefinition) -> None:
        """执行任务

        Raises:
            ExecutorNotFoundError: 没有匹配的执行器
            TaskExecutionError: 执行器返回 False
            Exception: 执行器自身抛出的异常原样向上
        """
        func = self.get(task.exec_type, task.task_type)
        result = func(task)
        if result is False:
            kind = task.exec_type if not task.task_type else f"{task.exec_type}/{task.task_type}"
            raise TaskExecutionError(f"executor {kind} reported failure")

    def kinds(self) -> List[ExecutorKey]:
        with self._lock:
            return sorted(self._executors.keys(), key=lambda k: (k[0], k[1] or ""))

    def __contains__(self, key) -> bool:
        if isinstance(key, str):
            key = (key, None)
        exec_type, task_type = key
        try:
            self.get(exec_type, task_type)
        except ExecutorNotFoundError:
            return False
        return True
