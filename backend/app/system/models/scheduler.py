"""
定时任务 ORM 模型 - 任务定义 + 执行日志
"""
from sqlalchemy import Column, Integer, String, DateTime, Text

from app.database import Base
from core.scheduler import (
    ScheduledTaskDefinition,
    TaskExecutionLogEntry,
    TaskStatus,
    utc_now,
)


class SysScheduledTask(Base):
    """定时任务表"""
    __tablename__ = "sys_scheduled_task"

    id = Column(Integer, primary_key=True, index=True)
    task_name = Column(String(255), nullable=False, comment="任务名称")
    task_description = Column(Text, nullable=False, default="", comment="任务描述")
    cron_expression = Column(String(255), nullable=False, comment="cron 表达式（5 或 6 段）")
    exec_type = Column(String(50), nullable=False, index=True, comment="执行类型")
    task_type = Column(String(100), nullable=False, default="", comment="任务类型")
    task_params = Column(Text, nullable=False, default="", comment="执行参数（JSON）")
    status = Column(Integer, nullable=False, default=TaskStatus.ENABLED, index=True, comment="1-启用, 0-禁用")
    last_execute_time = Column(DateTime, nullable=True, comment="最近执行时间")
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def to_definition(self) -> ScheduledTaskDefinition:
        """转为脱离会话的任务定义"""
        return ScheduledTaskDefinition(
            id=self.id,
            task_name=self.task_name,
            task_description=self.task_description or "",
            cron_expression=self.cron_expression,
            exec_type=self.exec_type,
            task_type=self.task_type or "",
            task_params=self.task_params or "",
            status=self.status,
            last_execute_time=self.last_execute_time,
        )


class SysTaskExecutionLog(Base):
    """任务执行日志表（task_id 只是引用，不随任务删除）"""
    __tablename__ = "sys_task_execution_log"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, nullable=False, index=True)
    execute_time = Column(DateTime, nullable=False, index=True)
    execute_result = Column(Integer, nullable=False, comment="1-成功, 0-失败")
    execute_duration = Column(Integer, nullable=True, comment="执行耗时（毫秒）")
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    @classmethod
    def from_entry(cls, entry: TaskExecutionLogEntry) -> "SysTaskExecutionLog":
        return cls(
            task_id=entry.task_id,
            execute_time=entry.execute_time,
            execute_result=int(entry.execute_result),
            execute_duration=entry.execute_duration_ms,
            error_message=entry.error_message,
        )

    def to_entry(self) -> TaskExecutionLogEntry:
        return TaskExecutionLogEntry(
            id=self.id,
            task_id=self.task_id,
            execute_time=self.execute_time,
            execute_result=self.execute_result,
            execute_duration_ms=self.execute_duration or 0,
            error_message=self.error_message,
        )
