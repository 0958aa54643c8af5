"""
core - 与领域无关的框架层

- scheduler: 定时任务调度引擎（任务定义、执行器注册表、调度后端抽象）

使用方式:
    >>> from core.scheduler import TaskScheduler, TaskExecutorRegistry
"""

__version__ = "1.0.0"
