"""
DataFilters -> SQLAlchemy query tests.
"""
from datetime import datetime

import pytest
from starlette.datastructures import QueryParams

from app.system.models.scheduler import SysScheduledTask
from app.system.services.filtering import (
    MAX_PAGE_SIZE,
    data_filters_from_query,
    paginate,
    parse_datetime,
    search_by_property,
)
from app.system.services.task_store import TASK_FIELDS
from core.scheduler import DataFilters, DateRangeFilter


@pytest.fixture
def tasks(db_session):
    rows = [
        SysScheduledTask(task_name="Clean logs", cron_expression="0 3 * * *", exec_type="cleanup",
                         task_type="execution_log", status=1,
                         last_execute_time=datetime(2024, 1, 10, 3, 0)),
        SysScheduledTask(task_name="Clean cache", cron_expression="0 4 * * *", exec_type="cleanup",
                         task_type="cache", status=0,
                         last_execute_time=datetime(2024, 2, 10, 4, 0)),
        SysScheduledTask(task_name="Sync users", cron_expression="*/10 * * * *", exec_type="python",
                         task_type="os.path:exists", status=1),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


def _page(db_session, filters):
    return paginate(db_session.query(SysScheduledTask), SysScheduledTask, filters, TASK_FIELDS)


class TestPaginate:

    def test_defaults_order_by_id(self, db_session, tasks):
        result = _page(db_session, DataFilters())
        assert [t.task_name for t in result.data] == ["Clean logs", "Clean cache", "Sync users"]
        assert result.total == 3
        assert result.total_pages == 1

    def test_like_same_field_is_or(self, db_session, tasks):
        result = _page(db_session, DataFilters(like_filters={"task_name": ["logs", "sync"]}))
        assert {t.task_name for t in result.data} == {"Clean logs", "Sync users"}

    def test_like_across_fields_is_and(self, db_session, tasks):
        result = _page(db_session, DataFilters(like_filters={"task_name": ["clean"], "task_type": ["cache"]}))
        assert [t.task_name for t in result.data] == ["Clean cache"]

    def test_match_coerces_integer(self, db_session, tasks):
        result = _page(db_session, DataFilters(matches={"status": ["1"]}))
        assert result.total == 2

    def test_match_with_unparseable_value_matches_nothing(self, db_session, tasks):
        result = _page(db_session, DataFilters(matches={"status": ["yes"]}))
        assert result.total == 0

    def test_unknown_fields_are_ignored(self, db_session, tasks):
        result = _page(db_session, DataFilters(
            like_filters={"task_params": ["x"]},
            matches={"nope": ["1"]},
            sort_by=["nope"],
        ))
        assert result.total == 3

    def test_date_range_is_inclusive(self, db_session, tasks):
        result = _page(db_session, DataFilters(date_ranges=[DateRangeFilter(
            field="last_execute_time",
            start=datetime(2024, 1, 10, 3, 0),
            end=datetime(2024, 1, 31),
        )]))
        assert [t.task_name for t in result.data] == ["Clean logs"]

    def test_sort_desc(self, db_session, tasks):
        result = _page(db_session, DataFilters(sort_by=["task_name"], sort_direction="desc"))
        assert [t.task_name for t in result.data] == ["Sync users", "Clean logs", "Clean cache"]

    def test_paging(self, db_session, tasks):
        result = _page(db_session, DataFilters(page=2, page_size=2))
        assert [t.task_name for t in result.data] == ["Sync users"]
        assert result.total == 3
        assert result.total_pages == 2

    def test_page_size_is_capped(self, db_session, tasks):
        result = _page(db_session, DataFilters(page_size=MAX_PAGE_SIZE * 10))
        assert result.page_size == MAX_PAGE_SIZE


class TestSearchByProperty:

    def test_distinct_values(self, db_session, tasks):
        values = search_by_property(db_session, SysScheduledTask, "exec_type", "c", ("exec_type",))
        assert values == ["cleanup"]

    def test_disallowed_property(self, db_session, tasks):
        with pytest.raises(ValueError):
            search_by_property(db_session, SysScheduledTask, "task_params", "x", ("exec_type",))


class TestQueryParsing:

    def test_parse_datetime_normalises_to_naive_utc(self):
        assert parse_datetime("2024-01-10T11:00:00+08:00") == datetime(2024, 1, 10, 3, 0)
        assert parse_datetime("2024-01-10T03:00:00") == datetime(2024, 1, 10, 3, 0)
        assert parse_datetime("yesterday") is None

    def test_data_filters_from_query(self):
        params = QueryParams(
            "task_name_like=clean&task_name_like=sync&status_match=1"
            "&last_execute_time_start=2024-01-01T00:00:00Z"
            "&sortBy=task_name&sortDirection=DESC&page=2&pageSize=5&ignored_like=x"
        )
        filters = data_filters_from_query(params, TASK_FIELDS)

        assert filters.like_filters == {"task_name": ["clean", "sync"]}
        assert filters.matches == {"status": ["1"]}
        assert filters.date_ranges[0].field == "last_execute_time"
        assert filters.date_ranges[0].start == datetime(2024, 1, 1)
        assert filters.date_ranges[0].end is None
        assert filters.sort_by == ["task_name"]
        assert filters.sort_direction == "desc"
        assert filters.page == 2
        assert filters.page_size == 5

    def test_invalid_paging_falls_back(self):
        filters = data_filters_from_query(QueryParams("page=0&pageSize=abc&sortDirection=up"), TASK_FIELDS)
        assert filters.page == 1
        assert filters.page_size == 10
        assert filters.sort_direction == "asc"
