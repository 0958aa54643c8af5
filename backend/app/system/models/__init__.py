"""
系统管理 ORM 模型
"""
from app.system.models.user import SysUser, UserRole
from app.system.models.scheduler import SysScheduledTask, SysTaskExecutionLog

__all__ = [
    "SysUser", "UserRole",
    "SysScheduledTask", "SysTaskExecutionLog",
]
