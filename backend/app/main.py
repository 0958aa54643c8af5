"""
TaskAdmin 主应用入口
定时任务调度与执行日志管理
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import SessionLocal, init_db
from app.routers import auth
from app.security.auth import seed_admin_user
from app.system.routers import scheduled_task_router, task_execution_log_router
from app.system.services.scheduler_runtime import build_task_scheduler

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    """Setup logging configuration"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    setup_logging(settings.LOG_LEVEL)

    # 初始化数据库
    init_db()

    seed_db = SessionLocal()
    try:
        seed_admin_user(seed_db, settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD)
    finally:
        seed_db.close()

    # ========== 定时任务调度引擎 ==========
    task_scheduler = build_task_scheduler(SessionLocal, settings)
    app.state.task_scheduler = task_scheduler
    if settings.SCHEDULER_ENABLED:
        loaded = task_scheduler.start()
        logger.info(f"Task scheduler started with {loaded} tasks")
    else:
        logger.info("Task scheduler disabled by configuration")

    yield

    task_scheduler.stop()
    logger.info("Task scheduler stopped")


# 创建应用
app = FastAPI(
    title="TaskAdmin - 定时任务管理",
    description="基于 cron 表达式的定时任务调度与执行日志管理",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(auth.router)
app.include_router(scheduled_task_router.router)
app.include_router(task_execution_log_router.router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "description": "定时任务调度与执行日志管理"
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
