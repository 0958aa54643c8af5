"""
SqlTaskStore - ITaskStore 的 app 层实现

每次调用打开独立的数据库会话，可在调度线程中安全使用。
"""
import logging
from typing import Any, Dict, Optional

from app.system.models.scheduler import SysScheduledTask
from app.system.services.filtering import paginate
from core.scheduler import (
    DataFilters,
    ITaskStore,
    PaginatedResult,
    ScheduledTaskDefinition,
)

logger = logging.getLogger(__name__)

# 允许查询 / 排序的字段
TASK_FIELDS = (
    "id", "task_name", "task_description", "cron_expression", "exec_type",
    "task_type", "status", "last_execute_time", "created_at", "updated_at",
)

# 允许 update() 写入的字段
TASK_UPDATABLE_FIELDS = (
    "task_name", "task_description", "cron_expression", "exec_type",
    "task_type", "task_params", "status", "last_execute_time",
)


class SqlTaskStore(ITaskStore):
    """基于数据库的任务定义存储"""

    def __init__(self, db_session_factory):
        """
        Args:
            db_session_factory: callable that returns a new DB session
        """
        self._db_session_factory = db_session_factory

    def search_paginated(self, filters: DataFilters) -> PaginatedResult[ScheduledTaskDefinition]:
        db = self._db_session_factory()
        try:
            result = paginate(db.query(SysScheduledTask), SysScheduledTask, filters, TASK_FIELDS)
            result.data = [row.to_definition() for row in result.data]
            return result
        finally:
            db.close()

    def get_by_id(self, task_id: int) -> Optional[ScheduledTaskDefinition]:
        db = self._db_session_factory()
        try:
            row = db.query(SysScheduledTask).filter(SysScheduledTask.id == task_id).first()
            return row.to_definition() if row else None
        finally:
            db.close()

    def update(self, task_id: int, fields: Dict[str, Any]) -> ScheduledTaskDefinition:
        """更新任务字段

        Raises:
            ValueError: 任务不存在或字段不可更新
        """
        unknown = set(fields) - set(TASK_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not updatable: {', '.join(sorted(unknown))}")

        db = self._db_session_factory()
        try:
            row = db.query(SysScheduledTask).filter(SysScheduledTask.id == task_id).first()
            if row is None:
                raise ValueError(f"Scheduled task {task_id} not found")
            for key, value in fields.items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return row.to_definition()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
