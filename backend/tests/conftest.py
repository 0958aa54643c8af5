"""
Pytest 配置和共享 fixtures
"""
import pytest
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.system import models  # noqa - 注册系统表
from app.system.models import SysScheduledTask, SysUser, UserRole
from app.system.services.executors import build_default_registry
from app.system.services.scheduler_runtime import get_task_scheduler
from app.system.services.task_execution_log_service import SqlExecutionLogSink
from app.system.services.task_store import SqlTaskStore
from app.security.auth import get_password_hash, create_access_token
from app.main import app
from core.scheduler import TaskScheduler


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """与 db_session 共享同一内存库的会话工厂（供 store / sink 使用）"""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """创建数据库会话"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def mock_backend():
    """不真正计时的调度后端"""
    backend = MagicMock()
    backend.running = False
    backend.get_job.return_value = None
    return backend


@pytest.fixture
def task_scheduler(session_factory, mock_backend):
    """基于内存库 + mock 后端的调度引擎"""
    return TaskScheduler(
        backend=mock_backend,
        task_store=SqlTaskStore(session_factory),
        executors=build_default_registry(session_factory, retention_days=30),
        log_sink=SqlExecutionLogSink(session_factory),
    )


@pytest.fixture(scope="function")
def client(db_session, task_scheduler):
    """创建测试客户端（不触发 lifespan，避免连接真实数据库）"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_task_scheduler] = lambda: task_scheduler
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============== 认证相关 Fixtures ==============

def _create_user(db_session, username: str, role: UserRole, is_active: bool = True) -> SysUser:
    user = SysUser(
        username=username,
        password_hash=get_password_hash("123456"),
        name=username,
        role=role,
        is_active=is_active,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def sysadmin_user(db_session):
    """创建系统管理员"""
    return _create_user(db_session, "sysadmin", UserRole.SYSADMIN)


@pytest.fixture
def operator_user(db_session):
    """创建普通操作员"""
    return _create_user(db_session, "operator1", UserRole.OPERATOR)


@pytest.fixture
def sysadmin_token(sysadmin_user):
    return create_access_token(sysadmin_user.id, sysadmin_user.role)


@pytest.fixture
def operator_token(operator_user):
    return create_access_token(operator_user.id, operator_user.role)


@pytest.fixture
def auth_headers(sysadmin_token):
    """返回系统管理员认证的请求头"""
    return {"Authorization": f"Bearer {sysadmin_token}"}


@pytest.fixture
def operator_auth_headers(operator_token):
    """返回操作员认证的请求头"""
    return {"Authorization": f"Bearer {operator_token}"}


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def sample_task(db_session) -> SysScheduledTask:
    """启用的清理任务"""
    task = SysScheduledTask(
        task_name="清理执行日志",
        task_description="删除 30 天前的执行日志",
        cron_expression="0 3 * * *",
        exec_type="cleanup",
        task_type="execution_log",
        task_params='{"retention_days": 30}',
        status=1,
    )
    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)
    return task


@pytest.fixture
def disabled_task(db_session) -> SysScheduledTask:
    """禁用的 python 任务"""
    task = SysScheduledTask(
        task_name="Disabled Job",
        task_description="",
        cron_expression="*/5 * * * *",
        exec_type="python",
        task_type="os.path:exists",
        task_params='{"kwargs": {"path": "/"}}',
        status=0,
    )
    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)
    return task
