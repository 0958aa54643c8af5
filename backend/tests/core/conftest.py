"""
Scheduler engine test doubles - in-memory store, log sink and clock.
"""
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

import pytest

from core.scheduler import (
    CronExpressionError,
    DataFilters,
    IExecutionLogSink,
    ISchedulerBackend,
    ITaskStore,
    PaginatedResult,
    ScheduledTaskDefinition,
    TaskExecutionLogEntry,
    TaskExecutorRegistry,
    TaskScheduler,
)


class FakeTaskStore(ITaskStore):
    """Dict-backed task store that honours status matches and paging."""

    def __init__(self, tasks: Optional[List[ScheduledTaskDefinition]] = None):
        self.tasks: Dict[int, ScheduledTaskDefinition] = {t.id: t for t in tasks or []}
        self.search_calls: List[DataFilters] = []
        self.updates: List[tuple] = []
        self.fail_search = False
        self.fail_update = False

    def add(self, task: ScheduledTaskDefinition) -> ScheduledTaskDefinition:
        self.tasks[task.id] = task
        return task

    def search_paginated(self, filters: DataFilters) -> PaginatedResult:
        self.search_calls.append(filters)
        if self.fail_search:
            raise RuntimeError("store unavailable")
        rows = sorted(self.tasks.values(), key=lambda t: t.id)
        wanted = filters.matches.get("status")
        if wanted:
            rows = [t for t in rows if str(int(t.status)) in wanted]
        start = (filters.page - 1) * filters.page_size
        page = [replace(t) for t in rows[start:start + filters.page_size]]
        return PaginatedResult(data=page, total=len(rows), page=filters.page, page_size=filters.page_size)

    def get_by_id(self, task_id: int) -> Optional[ScheduledTaskDefinition]:
        task = self.tasks.get(task_id)
        return replace(task) if task else None

    def update(self, task_id: int, fields: Dict[str, Any]) -> ScheduledTaskDefinition:
        if self.fail_update:
            raise RuntimeError("update failed")
        task = self.tasks[task_id]
        for key, value in fields.items():
            setattr(task, key, value)
        self.updates.append((task_id, fields))
        return task


class FakeLogSink(IExecutionLogSink):
    def __init__(self):
        self.entries: List[TaskExecutionLogEntry] = []
        self.fail = False

    def create(self, entry: TaskExecutionLogEntry) -> TaskExecutionLogEntry:
        if self.fail:
            raise RuntimeError("log sink down")
        self.entries.append(entry)
        return entry


class RecordingBackend(ISchedulerBackend):
    """Clock that never fires on its own; tests fire jobs explicitly."""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.removed: List[str] = []
        self._running = False
        self.lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        self._running = True

    def shutdown(self, wait: bool = False) -> None:
        self._running = False

    def add_job(self, job_id: str, func: Callable[[], Any], cron_expression: str, name: Optional[str] = None):
        fields = (cron_expression or "").split()
        if len(fields) not in (5, 6) or any(f == "bad" for f in fields):
            raise CronExpressionError(cron_expression, "unparseable")
        with self.lock:
            self.jobs[job_id] = {"func": func, "cron": cron_expression, "name": name}
        return job_id

    def remove_job(self, job_id: str) -> None:
        with self.lock:
            self.jobs.pop(job_id, None)
            self.removed.append(job_id)

    def get_job(self, job_id: str) -> Optional[Dict]:
        job = self.jobs.get(job_id)
        if job is None:
            return None
        return {"id": job_id, "name": job["name"], "trigger": job["cron"], "next_run_time": None}

    def fire(self, job_id: str):
        return self.jobs[job_id]["func"]()


def _make_task(task_id: int, **overrides) -> ScheduledTaskDefinition:
    values = dict(
        id=task_id,
        task_name=f"task-{task_id}",
        cron_expression="*/5 * * * *",
        exec_type="noop",
    )
    values.update(overrides)
    return ScheduledTaskDefinition(**values)


@pytest.fixture
def store():
    return FakeTaskStore()


@pytest.fixture
def log_sink():
    return FakeLogSink()


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def executed():
    """Task ids in the order the noop executor ran them."""
    return []


@pytest.fixture
def registry(executed):
    reg = TaskExecutorRegistry()
    reg.register("noop", lambda task: executed.append(task.id))
    return reg


@pytest.fixture
def engine(backend, store, registry, log_sink):
    return TaskScheduler(backend, store, registry, log_sink)


@pytest.fixture
def make_task():
    """Factory for enabled noop task definitions."""
    return _make_task
