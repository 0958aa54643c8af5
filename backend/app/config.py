"""
应用配置
从环境变量 / .env 读取配置
"""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "TaskAdmin"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./taskadmin.db"

    # JWT 配置
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # 初始管理员（仅在用户表为空时创建）
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin123"

    # 定时任务调度
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "UTC"
    SCHEDULER_MAX_WORKERS: int = 10
    SCHEDULER_MISFIRE_GRACE_SECONDS: int = 30
    SCHEDULER_LOAD_PAGE_SIZE: int = 500
    SCHEDULER_SLOW_TASK_SECONDS: float = 60.0

    # 执行日志默认保留天数（cleanup 执行器）
    EXECUTION_LOG_RETENTION_DAYS: int = 30

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# 全局设置实例
settings = Settings()
