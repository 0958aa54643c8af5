"""
内置任务执行器

- cleanup: 清理过期执行日志（task_params.retention_days）
- python: 调用 task_type 或 task_params.target 指定的函数（module.path:function_name）
"""
import importlib
import json
import logging
from datetime import timedelta
from typing import Any, Callable, Dict

from app.system.services.task_execution_log_service import TaskExecutionLogService
from core.scheduler import ScheduledTaskDefinition, TaskExecutorRegistry, utc_now

logger = logging.getLogger(__name__)

EXEC_TYPE_CLEANUP = "cleanup"
EXEC_TYPE_PYTHON = "python"


def parse_task_params(task: ScheduledTaskDefinition) -> Dict[str, Any]:
    """解析 task_params（空串视为空对象）

    Raises:
        ValueError: 不是 JSON 对象
    """
    raw = (task.task_params or "").strip()
    if not raw:
        return {}
    try:
        params = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"task_params is not valid JSON: {e}") from e
    if not isinstance(params, dict):
        raise ValueError("task_params must be a JSON object")
    return params


def resolve_target(invoke_target: str) -> Callable:
    """解析 invoke_target (module.path:function_name) 为可调用对象"""
    if not invoke_target or ":" not in invoke_target:
        raise ValueError(f"Invalid invoke_target format: {invoke_target} (expected module.path:func)")

    module_path, func_name = invoke_target.rsplit(":", 1)
    module = importlib.import_module(module_path)
    func = getattr(module, func_name, None)
    if func is None or not callable(func):
        raise ValueError(f"Function '{func_name}' not found in module '{module_path}'")
    return func


class ExecutionLogCleanupExecutor:
    """删除早于保留天数的执行日志"""

    def __init__(self, db_session_factory, default_retention_days: int = 30):
        self._db_session_factory = db_session_factory
        self._default_retention_days = default_retention_days

    def __call__(self, task: ScheduledTaskDefinition) -> bool:
        params = parse_task_params(task)
        retention_days = int(params.get("retention_days", self._default_retention_days))
        if retention_days < 0:
            raise ValueError(f"retention_days must be >= 0, got {retention_days}")

        cutoff = utc_now() - timedelta(days=retention_days)
        db = self._db_session_factory()
        try:
            deleted = TaskExecutionLogService(db).delete_before(cutoff)
        finally:
            db.close()
        logger.info(f"Cleanup task {task.id}: removed {deleted} execution logs older than {retention_days} days")
        return True


def run_python_target(task: ScheduledTaskDefinition) -> bool:
    """调用 python 函数；函数返回 False 视为失败"""
    params = parse_task_params(task)
    target = params.get("target") or task.task_type
    func = resolve_target(target)
    result = func(**params.get("kwargs", {}))
    return result is not False


def build_default_registry(db_session_factory, retention_days: int = 30) -> TaskExecutorRegistry:
    """构建包含内置执行器的注册表"""
    registry = TaskExecutorRegistry()
    cleanup = ExecutionLogCleanupExecutor(db_session_factory, default_retention_days=retention_days)
    registry.register(EXEC_TYPE_CLEANUP, cleanup)
    registry.register(EXEC_TYPE_CLEANUP, cleanup, task_type="execution_log")
    registry.register(EXEC_TYPE_PYTHON, run_python_target)
    return registry
