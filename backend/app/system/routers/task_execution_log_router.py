"""
任务执行日志 API
前缀: /system/task-execution-logs
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.security.auth import require_sysadmin
from app.system.models.user import SysUser
from app.system.schemas import (
    DeleteBatchRequest,
    DeleteBatchResponse,
    PageList,
    TaskExecutionLogResponse,
)
from app.system.services.filtering import data_filters_from_query
from app.system.services.task_execution_log_service import LOG_FIELDS, TaskExecutionLogService

router = APIRouter(prefix="/system/task-execution-logs", tags=["任务执行日志"])


@router.get("/search", response_model=PageList[TaskExecutionLogResponse])
def search_logs(
    request: Request,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_sysadmin),
):
    """分页搜索执行日志"""
    filters = data_filters_from_query(request.query_params, LOG_FIELDS)
    result = TaskExecutionLogService(db).search_paginated(filters)
    return PageList[TaskExecutionLogResponse](
        list=[TaskExecutionLogResponse.model_validate(row) for row in result.data],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@router.get("/search-property", response_model=List[str])
def search_by_property(
    prop: str = Query(..., alias="property", min_length=1),
    search_text: str = Query(..., alias="searchText", min_length=1),
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_sysadmin),
):
    try:
        return TaskExecutionLogService(db).search_by_property(prop, search_text)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{log_id}", response_model=TaskExecutionLogResponse)
def get_log(
    log_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_sysadmin),
):
    """获取执行日志详情"""
    row = TaskExecutionLogService(db).get_by_id(log_id)
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="执行日志不存在")
    return row


@router.delete("/{log_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_log(
    log_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_sysadmin),
):
    """删除执行日志"""
    if TaskExecutionLogService(db).delete([log_id]) == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="执行日志不存在")


@router.post("/delete-batch", response_model=DeleteBatchResponse)
def delete_logs(
    body: DeleteBatchRequest,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_sysadmin),
):
    """批量删除执行日志"""
    return DeleteBatchResponse(deleted=TaskExecutionLogService(db).delete(body.ids))
