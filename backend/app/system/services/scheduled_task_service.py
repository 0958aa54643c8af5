"""
定时任务服务 - CRUD + 调度管理

任务定义的增删改都先落库，再同步到调度引擎的活动触发器。
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.system.models.scheduler import SysScheduledTask
from app.system.services import filtering
from app.system.services.scheduler_backend import parse_cron_expression
from app.system.services.task_store import TASK_FIELDS, TASK_UPDATABLE_FIELDS
from core.scheduler import (
    DataFilters,
    PaginatedResult,
    TaskExecutionLogEntry,
    TaskScheduler,
    TaskStatus,
)

logger = logging.getLogger(__name__)

TASK_SEARCHABLE_FIELDS = ("task_name", "task_description", "cron_expression", "exec_type", "task_type")


class ScheduledTaskService:
    """定时任务管理服务"""

    def __init__(self, db: Session, scheduler: TaskScheduler, timezone: str = "UTC"):
        self.db = db
        self.scheduler = scheduler
        self.timezone = timezone

    # ── 查询 ──────────────────────────────────────────

    def list_tasks(
        self,
        status: Optional[int] = None,
        exec_type: Optional[str] = None,
    ) -> List[SysScheduledTask]:
        """获取任务列表"""
        query = self.db.query(SysScheduledTask)
        if status is not None:
            query = query.filter(SysScheduledTask.status == status)
        if exec_type:
            query = query.filter(SysScheduledTask.exec_type == exec_type)
        return query.order_by(SysScheduledTask.id).all()

    def get_task(self, task_id: int) -> Optional[SysScheduledTask]:
        """获取任务详情"""
        return self.db.query(SysScheduledTask).filter(SysScheduledTask.id == task_id).first()

    def search_paginated(self, filters: DataFilters) -> PaginatedResult:
        return filtering.paginate(self.db.query(SysScheduledTask), SysScheduledTask, filters, TASK_FIELDS)

    def search_by_property(self, prop: str, search_text: str) -> List[str]:
        return filtering.search_by_property(
            self.db, SysScheduledTask, prop, search_text, TASK_SEARCHABLE_FIELDS,
        )

    # ── CRUD ──────────────────────────────────────────

    def create_task(
        self,
        task_name: str,
        cron_expression: str,
        exec_type: str,
        task_type: str = "",
        task_description: str = "",
        task_params: str = "",
        status: int = TaskStatus.ENABLED,
    ) -> SysScheduledTask:
        """创建定时任务

        Raises:
            CronExpressionError: cron 表达式无法解析（不落库）
        """
        parse_cron_expression(cron_expression, timezone=self.timezone)

        task = SysScheduledTask(
            task_name=task_name,
            task_description=task_description,
            cron_expression=cron_expression,
            exec_type=exec_type,
            task_type=task_type,
            task_params=task_params,
            status=int(status),
        )
        self.db.add(task)
        self.db.commit()
        self.db.refresh(task)

        self.scheduler.add_task(task.to_definition())
        logger.info(f"Scheduled task created: id={task.id} name={task.task_name}")
        return task

    def update_task(self, task_id: int, **kwargs) -> Optional[SysScheduledTask]:
        """更新定时任务并重建触发器

        Raises:
            CronExpressionError: 更新后生效的 cron 表达式无法解析（不落库）
        """
        task = self.get_task(task_id)
        if not task:
            return None

        cron_expression = kwargs.get("cron_expression")
        if cron_expression is None:
            cron_expression = task.cron_expression
        parse_cron_expression(cron_expression, timezone=self.timezone)

        for key, value in kwargs.items():
            if key in TASK_UPDATABLE_FIELDS and key != "last_execute_time" and value is not None:
                setattr(task, key, int(value) if key == "status" else value)
        self.db.commit()
        self.db.refresh(task)

        self.scheduler.update_task(task.to_definition())
        return task

    def delete_task(self, task_id: int) -> bool:
        """删除定时任务"""
        task = self.get_task(task_id)
        if not task:
            return False

        self.scheduler.remove_task(task_id)
        self.db.delete(task)
        self.db.commit()
        logger.info(f"Scheduled task deleted: id={task_id}")
        return True

    def delete_tasks(self, task_ids: List[int]) -> int:
        """批量删除，返回删除条数"""
        deleted = 0
        for task_id in task_ids:
            if self.delete_task(task_id):
                deleted += 1
        return deleted

    # ── 调度操作 ──────────────────────────────────────

    def enable_task(self, task_id: int) -> Optional[SysScheduledTask]:
        """启用任务（落库后由引擎重新读取并调度）

        Raises:
            CronExpressionError: 已保存的 cron 表达式无法解析（状态不变）
        """
        task = self.get_task(task_id)
        if not task:
            return None
        parse_cron_expression(task.cron_expression, timezone=self.timezone)
        task.status = int(TaskStatus.ENABLED)
        self.db.commit()
        self.db.refresh(task)

        self.scheduler.start_task(task_id)
        return task

    def disable_task(self, task_id: int) -> Optional[SysScheduledTask]:
        """禁用任务"""
        task = self.get_task(task_id)
        if not task:
            return None
        task.status = int(TaskStatus.DISABLED)
        self.db.commit()
        self.db.refresh(task)

        self.scheduler.remove_task(task_id)
        return task

    def stop_task(self, task_id: int) -> None:
        """仅停止运行中的触发器，不修改存储状态

        Raises:
            TaskNotFoundError: 任务不在调度中
        """
        self.scheduler.stop_task(task_id)

    def reload_tasks(self) -> int:
        """重新加载所有启用的任务"""
        return self.scheduler.reload_tasks()

    def trigger_task(self, task_id: int) -> TaskExecutionLogEntry:
        """立即执行一次任务

        Raises:
            TaskNotFoundError: 任务不存在
        """
        entry = self.scheduler.trigger_task(task_id)
        # 引擎在独立会话中回写了 last_execute_time
        self.db.expire_all()
        return entry

    def runtime_status(self) -> List[Dict]:
        """所有活动任务的运行状态"""
        return self.scheduler.describe_all()

    def task_runtime_status(self, task_id: int) -> Dict:
        info = self.scheduler.describe_task(task_id)
        if info is None:
            return {"task_id": task_id, "scheduled": False, "running": False, "next_run_time": None}
        return info
