"""
系统用户 ORM 模型
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SQLEnum

from app.database import Base
from core.scheduler import utc_now


class UserRole(str, Enum):
    """用户角色"""
    SYSADMIN = "sysadmin"
    OPERATOR = "operator"


class SysUser(Base):
    """后台用户"""
    __tablename__ = "sys_user"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.OPERATOR)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
