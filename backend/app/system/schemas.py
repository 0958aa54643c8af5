"""
系统管理 Pydantic 模型 - API 输入输出验证
"""
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from app.system.models.user import UserRole

T = TypeVar("T")


# ---- Auth ----

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    id: int
    username: str
    name: str
    role: UserRole
    is_active: bool

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ---- Common ----

class PageList(BaseModel, Generic[T]):
    list: List[T]
    total: int
    page: int
    page_size: int
    total_pages: int


class DeleteBatchRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)


class DeleteBatchResponse(BaseModel):
    deleted: int


# ---- ScheduledTask ----

class ScheduledTaskCreate(BaseModel):
    task_name: str = Field(..., min_length=1, max_length=255)
    task_description: str = Field(..., description="任务描述")
    cron_expression: str = Field(..., min_length=1, max_length=255, description="5 或 6 段 cron 表达式")
    exec_type: str = Field(..., min_length=1, max_length=50, description="执行类型")
    task_type: str = Field(..., max_length=100, description="任务类型")
    task_params: str = Field(..., description="执行参数（JSON）")
    status: int = Field(default=1, ge=0, le=1, description="1-启用, 0-禁用")


class ScheduledTaskUpdate(BaseModel):
    task_name: Optional[str] = Field(None, min_length=1, max_length=255)
    task_description: Optional[str] = None
    cron_expression: Optional[str] = Field(None, min_length=1, max_length=255)
    exec_type: Optional[str] = Field(None, min_length=1, max_length=50)
    task_type: Optional[str] = Field(None, max_length=100)
    task_params: Optional[str] = None
    status: Optional[int] = Field(None, ge=0, le=1)


class ScheduledTaskResponse(BaseModel):
    id: int
    task_name: str
    task_description: str
    cron_expression: str
    exec_type: str
    task_type: str
    task_params: str
    status: int
    last_execute_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TaskRuntimeStatus(BaseModel):
    task_id: int
    task_name: Optional[str] = None
    cron_expression: Optional[str] = None
    scheduled: bool
    running: bool
    next_run_time: Optional[str] = None


class ReloadResponse(BaseModel):
    loaded: int


class ExecutionResultResponse(BaseModel):
    task_id: int
    execute_time: datetime
    success: bool
    execute_duration_ms: int
    error_message: Optional[str] = None


# ---- TaskExecutionLog ----

class TaskExecutionLogResponse(BaseModel):
    id: int
    task_id: int
    execute_time: datetime
    execute_result: int
    execute_duration: Optional[int] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
