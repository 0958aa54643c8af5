"""
定时任务管理 API
前缀: /system/scheduled-tasks
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.security.auth import require_sysadmin
from app.system.models.user import SysUser
from app.system.schemas import (
    DeleteBatchRequest,
    DeleteBatchResponse,
    ExecutionResultResponse,
    PageList,
    ReloadResponse,
    ScheduledTaskCreate,
    ScheduledTaskResponse,
    ScheduledTaskUpdate,
    TaskRuntimeStatus,
)
from app.system.services.filtering import data_filters_from_query
from app.system.services.scheduled_task_service import ScheduledTaskService
from app.system.services.scheduler_runtime import get_task_scheduler
from app.system.services.task_store import TASK_FIELDS
from core.scheduler import (
    ConfigurationError,
    SchedulerError,
    TaskNotEnabledError,
    TaskNotFoundError,
    TaskScheduler,
)

router = APIRouter(prefix="/system/scheduled-tasks", tags=["定时任务"])


def get_service(
    db: Session = Depends(get_db),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
) -> ScheduledTaskService:
    return ScheduledTaskService(db, scheduler, timezone=settings.SCHEDULER_TIMEZONE)


def _to_http_error(e: SchedulerError) -> HTTPException:
    """配置错误 400，不存在 404，未启用 409"""
    if isinstance(e, TaskNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, TaskNotEnabledError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="任务不存在")


# ── 查询 ──────────────────────────────────────────────


@router.get("", response_model=List[ScheduledTaskResponse])
def list_tasks(
    task_status: Optional[int] = Query(None, alias="status"),
    exec_type: Optional[str] = None,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """获取定时任务列表"""
    return service.list_tasks(status=task_status, exec_type=exec_type)


@router.get("/search", response_model=PageList[ScheduledTaskResponse])
def search_tasks(
    request: Request,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """分页搜索（<field>_like / <field>_match / <field>_start / <field>_end / sortBy / page / pageSize）"""
    filters = data_filters_from_query(request.query_params, TASK_FIELDS)
    result = service.search_paginated(filters)
    return PageList[ScheduledTaskResponse](
        list=[ScheduledTaskResponse.model_validate(t) for t in result.data],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@router.get("/search-property", response_model=List[str])
def search_by_property(
    prop: str = Query(..., alias="property", min_length=1),
    search_text: str = Query(..., alias="searchText", min_length=1),
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """按属性模糊搜索取值"""
    try:
        return service.search_by_property(prop, search_text)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/status", response_model=List[TaskRuntimeStatus])
def runtime_status(
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """所有活动任务的运行状态"""
    return service.runtime_status()


@router.get("/{task_id}", response_model=ScheduledTaskResponse)
def get_task(
    task_id: int,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """获取任务详情"""
    task = service.get_task(task_id)
    if not task:
        raise _not_found()
    return task


@router.get("/{task_id}/status", response_model=TaskRuntimeStatus)
def task_runtime_status(
    task_id: int,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """单个任务的运行状态"""
    return service.task_runtime_status(task_id)


# ── CRUD ──────────────────────────────────────────────


@router.post("", response_model=ScheduledTaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    body: ScheduledTaskCreate,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """创建定时任务"""
    try:
        return service.create_task(**body.model_dump())
    except SchedulerError as e:
        raise _to_http_error(e)


@router.put("/{task_id}", response_model=ScheduledTaskResponse)
def update_task(
    task_id: int,
    body: ScheduledTaskUpdate,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """更新定时任务"""
    try:
        task = service.update_task(task_id, **body.model_dump(exclude_unset=True))
    except SchedulerError as e:
        raise _to_http_error(e)
    if not task:
        raise _not_found()
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: int,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """删除定时任务"""
    if not service.delete_task(task_id):
        raise _not_found()


@router.post("/delete-batch", response_model=DeleteBatchResponse)
def delete_tasks(
    body: DeleteBatchRequest,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """批量删除定时任务"""
    return DeleteBatchResponse(deleted=service.delete_tasks(body.ids))


# ── 调度操作 ──────────────────────────────────────────


@router.post("/enable/{task_id}", response_model=ScheduledTaskResponse)
def enable_task(
    task_id: int,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """启用任务"""
    try:
        task = service.enable_task(task_id)
    except SchedulerError as e:
        raise _to_http_error(e)
    if not task:
        raise _not_found()
    return task


@router.post("/disable/{task_id}", response_model=ScheduledTaskResponse)
def disable_task(
    task_id: int,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """禁用任务"""
    task = service.disable_task(task_id)
    if not task:
        raise _not_found()
    return task


@router.post("/stop/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def stop_task(
    task_id: int,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """停止运行中的触发器（不修改任务状态）"""
    try:
        service.stop_task(task_id)
    except SchedulerError as e:
        raise _to_http_error(e)


@router.post("/reload", response_model=ReloadResponse)
def reload_tasks(
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """重新加载所有启用的任务"""
    return ReloadResponse(loaded=service.reload_tasks())


@router.post("/{task_id}/trigger", response_model=ExecutionResultResponse)
def trigger_task(
    task_id: int,
    service: ScheduledTaskService = Depends(get_service),
    current_user: SysUser = Depends(require_sysadmin),
):
    """立即执行一次任务"""
    try:
        entry = service.trigger_task(task_id)
    except SchedulerError as e:
        raise _to_http_error(e)
    return ExecutionResultResponse(
        task_id=entry.task_id,
        execute_time=entry.execute_time,
        success=entry.succeeded,
        execute_duration_ms=entry.execute_duration_ms,
        error_message=entry.error_message,
    )
