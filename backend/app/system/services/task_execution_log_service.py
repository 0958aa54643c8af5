"""
任务执行日志 - 调度引擎写入端 + 后台查询服务
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.system.models.scheduler import SysTaskExecutionLog
from app.system.services import filtering
from core.scheduler import (
    DataFilters,
    IExecutionLogSink,
    PaginatedResult,
    TaskExecutionLogEntry,
)

logger = logging.getLogger(__name__)

LOG_FIELDS = (
    "id", "task_id", "execute_time", "execute_result", "execute_duration",
    "error_message", "created_at",
)

# search_by_property 只允许文本列
LOG_SEARCHABLE_FIELDS = ("error_message",)


class SqlExecutionLogSink(IExecutionLogSink):
    """调度引擎使用的执行日志写入端（每次写入独立会话）"""

    def __init__(self, db_session_factory):
        self._db_session_factory = db_session_factory

    def create(self, entry: TaskExecutionLogEntry) -> TaskExecutionLogEntry:
        db = self._db_session_factory()
        try:
            row = SysTaskExecutionLog.from_entry(entry)
            db.add(row)
            db.commit()
            db.refresh(row)
            return row.to_entry()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class TaskExecutionLogService:
    """执行日志查询 / 删除"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, log_id: int) -> Optional[SysTaskExecutionLog]:
        return self.db.query(SysTaskExecutionLog).filter(SysTaskExecutionLog.id == log_id).first()

    def delete(self, ids: List[int]) -> int:
        """批量删除，返回删除条数"""
        if not ids:
            return 0
        count = (
            self.db.query(SysTaskExecutionLog)
            .filter(SysTaskExecutionLog.id.in_(ids))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        logger.info(f"Deleted {count} execution logs")
        return count

    def delete_before(self, cutoff: datetime) -> int:
        """删除执行时间早于 cutoff 的日志"""
        count = (
            self.db.query(SysTaskExecutionLog)
            .filter(SysTaskExecutionLog.execute_time < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return count

    def search_paginated(self, filters: DataFilters) -> PaginatedResult:
        return filtering.paginate(
            self.db.query(SysTaskExecutionLog), SysTaskExecutionLog, filters, LOG_FIELDS,
        )

    def search_by_property(self, prop: str, search_text: str) -> List[str]:
        return filtering.search_by_property(
            self.db, SysTaskExecutionLog, prop, search_text, LOG_SEARCHABLE_FIELDS,
        )
