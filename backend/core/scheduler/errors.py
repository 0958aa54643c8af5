"""
调度器错误类型

- ConfigurationError: 配置错误（cron 无法解析、执行器未注册），同步返回调用方，不自动重试
- TaskNotFoundError: 任务不存在 / 未在调度中
- TaskNotEnabledError: 存储中任务为禁用状态，拒绝启动
- TaskExecutionError: 执行器自身失败
"""
from typing import Optional


class SchedulerError(Exception):
    """调度器错误基类"""


class ConfigurationError(SchedulerError):
    """任务配置错误"""


class CronExpressionError(ConfigurationError):
    """cron 表达式无法解析"""

    def __init__(self, expression: Optional[str], reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid cron expression '{expression}': {reason}")


class ExecutorNotFoundError(ConfigurationError):
    """执行类型没有对应的执行器"""

    def __init__(self, exec_type: str, task_type: Optional[str] = None):
        self.exec_type = exec_type
        self.task_type = task_type
        kind = exec_type if not task_type else f"{exec_type}/{task_type}"
        super().__init__(f"no executor registered for kind {kind}")


class TaskNotFoundError(SchedulerError):
    """任务不存在"""

    def __init__(self, task_id: int, message: str = "task not found"):
        self.task_id = task_id
        super().__init__(f"{message}: {task_id}")


class TaskNotEnabledError(SchedulerError):
    """任务未启用"""

    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"task is not enabled: {task_id}")


class TaskExecutionError(SchedulerError):
    """执行器报告失败"""
