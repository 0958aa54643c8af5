"""
ScheduledTaskService unit tests.

Covers:
- CRUD on SysScheduledTask rows and trigger synchronisation with the engine
- enable / disable / stop / reload / trigger
- cron validation before persisting
"""
import pytest

from app.system.models.scheduler import SysScheduledTask, SysTaskExecutionLog
from app.system.services.scheduled_task_service import ScheduledTaskService
from core.scheduler import (
    CronExpressionError,
    DataFilters,
    TaskNotFoundError,
    job_id_for,
)


@pytest.fixture
def svc(db_session, task_scheduler):
    return ScheduledTaskService(db_session, task_scheduler)


class TestScheduledTaskServiceCRUD:

    def test_list_tasks_filters(self, svc, sample_task, disabled_task):
        assert len(svc.list_tasks()) == 2
        assert [t.id for t in svc.list_tasks(status=1)] == [sample_task.id]
        assert [t.id for t in svc.list_tasks(exec_type="python")] == [disabled_task.id]

    def test_create_enabled_task_schedules_it(self, svc, task_scheduler, mock_backend):
        task = svc.create_task(
            task_name="Nightly cleanup",
            cron_expression="0 3 * * *",
            exec_type="cleanup",
            task_params='{"retention_days": 7}',
        )
        assert task.id is not None
        assert task.status == 1
        assert task_scheduler.get_task_status(task.id) is True
        mock_backend.add_job.assert_called_once()
        assert mock_backend.add_job.call_args.kwargs["job_id"] == job_id_for(task.id)

    def test_create_disabled_task_is_not_scheduled(self, svc, task_scheduler, mock_backend):
        task = svc.create_task(task_name="Later", cron_expression="0 3 * * *", exec_type="cleanup", status=0)
        assert task_scheduler.get_task_status(task.id) is False
        mock_backend.add_job.assert_not_called()

    def test_create_bad_cron_is_not_persisted(self, svc, db_session):
        with pytest.raises(CronExpressionError):
            svc.create_task(task_name="Bad", cron_expression="every day", exec_type="cleanup")
        assert db_session.query(SysScheduledTask).count() == 0

    def test_update_reschedules(self, svc, task_scheduler, sample_task, mock_backend):
        task_scheduler.add_task(sample_task.to_definition())
        mock_backend.reset_mock()

        task = svc.update_task(sample_task.id, cron_expression="0 5 * * *", task_name="Renamed")
        assert task.cron_expression == "0 5 * * *"
        assert task.task_name == "Renamed"
        mock_backend.remove_job.assert_called_once_with(job_id_for(sample_task.id))
        assert mock_backend.add_job.call_args.kwargs["cron_expression"] == "0 5 * * *"

    def test_update_bad_cron_keeps_row(self, svc, sample_task, db_session):
        with pytest.raises(CronExpressionError):
            svc.update_task(sample_task.id, cron_expression="61 * * * *")
        db_session.expire_all()
        assert db_session.get(SysScheduledTask, sample_task.id).cron_expression == "0 3 * * *"

    def test_update_status_validates_stored_cron(self, svc, disabled_task, db_session, mock_backend):
        disabled_task.cron_expression = "0 0 * * 9"
        db_session.commit()

        with pytest.raises(CronExpressionError):
            svc.update_task(disabled_task.id, status=1)
        db_session.expire_all()
        assert db_session.get(SysScheduledTask, disabled_task.id).status == 0
        mock_backend.add_job.assert_not_called()

    def test_update_missing(self, svc):
        assert svc.update_task(404, task_name="x") is None

    def test_update_ignores_none_values(self, svc, sample_task):
        task = svc.update_task(sample_task.id, task_name=None, task_description="new")
        assert task.task_name == "清理执行日志"
        assert task.task_description == "new"

    def test_delete_removes_trigger(self, svc, task_scheduler, sample_task, db_session):
        task_scheduler.add_task(sample_task.to_definition())
        task_id = sample_task.id

        assert svc.delete_task(task_id) is True
        assert task_scheduler.get_task_status(task_id) is False
        assert db_session.get(SysScheduledTask, task_id) is None

    def test_delete_missing(self, svc):
        assert svc.delete_task(404) is False

    def test_delete_tasks_counts_existing(self, svc, sample_task, disabled_task):
        assert svc.delete_tasks([sample_task.id, disabled_task.id, 404]) == 2


class TestScheduledTaskServiceScheduling:

    def test_enable_persists_and_schedules(self, svc, task_scheduler, disabled_task):
        task = svc.enable_task(disabled_task.id)
        assert task.status == 1
        assert task_scheduler.get_task_status(disabled_task.id) is True

    def test_enable_missing(self, svc):
        assert svc.enable_task(404) is None

    def test_disable_persists_and_unschedules(self, svc, task_scheduler, sample_task):
        task_scheduler.add_task(sample_task.to_definition())
        task = svc.disable_task(sample_task.id)
        assert task.status == 0
        assert task_scheduler.get_task_status(sample_task.id) is False

    def test_stop_keeps_status(self, svc, task_scheduler, sample_task, db_session):
        task_scheduler.add_task(sample_task.to_definition())
        svc.stop_task(sample_task.id)
        assert task_scheduler.get_task_status(sample_task.id) is False
        db_session.expire_all()
        assert db_session.get(SysScheduledTask, sample_task.id).status == 1

    def test_stop_unscheduled_raises(self, svc, sample_task):
        with pytest.raises(TaskNotFoundError):
            svc.stop_task(sample_task.id)

    def test_reload_loads_enabled(self, svc, task_scheduler, sample_task, disabled_task):
        assert svc.reload_tasks() == 1
        assert task_scheduler.list_all_tasks() == {sample_task.id: False}

    def test_trigger_runs_cleanup_and_logs(self, svc, sample_task, db_session):
        entry = svc.trigger_task(sample_task.id)
        assert entry.succeeded is True

        logs = db_session.query(SysTaskExecutionLog).filter(SysTaskExecutionLog.task_id == sample_task.id).all()
        assert len(logs) == 1
        assert logs[0].execute_result == 1
        assert svc.get_task(sample_task.id).last_execute_time is not None

    def test_trigger_missing_raises(self, svc):
        with pytest.raises(TaskNotFoundError):
            svc.trigger_task(404)

    def test_runtime_status(self, svc, task_scheduler, sample_task):
        assert svc.task_runtime_status(sample_task.id)["scheduled"] is False
        task_scheduler.add_task(sample_task.to_definition())

        status = svc.task_runtime_status(sample_task.id)
        assert status["scheduled"] is True
        assert status["task_name"] == sample_task.task_name
        assert [s["task_id"] for s in svc.runtime_status()] == [sample_task.id]

    def test_search(self, svc, sample_task, disabled_task):
        result = svc.search_paginated(DataFilters(like_filters={"task_name": ["disabled"]}))
        assert [t.id for t in result.data] == [disabled_task.id]
        assert svc.search_by_property("exec_type", "py") == ["python"]
