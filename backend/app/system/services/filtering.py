"""
通用分页查询 - DataFilters -> SQLAlchemy 查询

- like 过滤：同字段 OR，跨字段 AND（不区分大小写）
- 精确匹配：IN，值按列类型转换，无法转换的值忽略
- 日期区间：闭区间
- 排序：多字段，统一方向；默认按 id 升序
- 只允许白名单内的字段，其余静默忽略
"""
import logging
from datetime import datetime, UTC
from typing import Any, List, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from core.scheduler import DataFilters, DateRangeFilter, PaginatedResult

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 1000


def parse_datetime(value: str) -> Optional[datetime]:
    """解析 RFC3339 / ISO8601 时间，统一为 naive UTC；无法解析返回 None"""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def _coerce(model, field: str, value: str) -> Any:
    python_type = model.__table__.columns[field].type.python_type
    if python_type is bool:
        return value.strip().lower() in ("1", "true", "yes")
    if python_type is int:
        return int(value)
    if python_type is datetime:
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValueError(f"invalid datetime: {value}")
        return parsed
    return value


def apply_filters(query: Query, model, filters: DataFilters, fields: Sequence[str]) -> Query:
    """应用 like / match / 日期区间过滤"""
    allowed = set(fields)

    for field, values in filters.like_filters.items():
        values = [v for v in values if v]
        if field not in allowed or not values:
            continue
        column = getattr(model, field)
        query = query.filter(or_(*[column.ilike(f"%{v}%") for v in values]))

    for field, values in filters.matches.items():
        if field not in allowed or not values:
            continue
        coerced = []
        for value in values:
            try:
                coerced.append(_coerce(model, field, value))
            except (ValueError, NotImplementedError):
                logger.debug(f"Ignoring match value {value!r} for {field}")
        query = query.filter(getattr(model, field).in_(coerced))

    for date_range in filters.date_ranges:
        if date_range.field not in allowed:
            continue
        column = getattr(model, date_range.field)
        if date_range.start is not None:
            query = query.filter(column >= date_range.start)
        if date_range.end is not None:
            query = query.filter(column <= date_range.end)

    return query


def paginate(query: Query, model, filters: DataFilters, fields: Sequence[str]) -> PaginatedResult:
    """过滤 + 排序 + 分页，data 为 ORM 对象"""
    query = apply_filters(query, model, filters, fields)
    total = query.count()

    descending = (filters.sort_direction or "asc").lower() == "desc"
    order = []
    for field in filters.sort_by:
        if field in fields:
            column = getattr(model, field)
            order.append(column.desc() if descending else column.asc())
    if not order:
        order.append(model.id.asc())
    query = query.order_by(*order)

    page = max(1, filters.page or 1)
    page_size = filters.page_size if filters.page_size and filters.page_size > 0 else DEFAULT_PAGE_SIZE
    page_size = min(page_size, MAX_PAGE_SIZE)

    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return PaginatedResult(data=items, total=total, page=page, page_size=page_size)


def search_by_property(
    db: Session,
    model,
    prop: str,
    search_text: str,
    fields: Sequence[str],
    limit: int = 20,
) -> List[str]:
    """按属性模糊搜索，返回去重后的取值

    Raises:
        ValueError: 属性不在白名单内
    """
    if prop not in fields:
        raise ValueError(f"property '{prop}' is not searchable")
    column = getattr(model, prop)
    rows = (
        db.query(column)
        .filter(column.ilike(f"%{search_text}%"))
        .distinct()
        .order_by(column)
        .limit(limit)
        .all()
    )
    return [str(row[0]) for row in rows if row[0] is not None]


def data_filters_from_query(params, fields: Sequence[str]) -> DataFilters:
    """从 HTTP 查询参数构造 DataFilters

    支持参数: <field>_like, <field>_match, <field>_start / <field>_end,
    sortBy, sortDirection, page, pageSize
    """
    filters = DataFilters()

    for field in fields:
        likes = params.getlist(f"{field}_like")
        if likes:
            filters.like_filters[field] = likes
        matches = params.getlist(f"{field}_match")
        if matches:
            filters.matches[field] = matches

        start_raw = params.get(f"{field}_start")
        end_raw = params.get(f"{field}_end")
        if start_raw or end_raw:
            filters.date_ranges.append(DateRangeFilter(
                field=field,
                start=parse_datetime(start_raw) if start_raw else None,
                end=parse_datetime(end_raw) if end_raw else None,
            ))

    filters.sort_by = params.getlist("sortBy")
    direction = (params.get("sortDirection") or "asc").lower()
    filters.sort_direction = direction if direction in ("asc", "desc") else "asc"

    filters.page = _positive_int(params.get("page"), 1)
    filters.page_size = _positive_int(params.get("pageSize"), DEFAULT_PAGE_SIZE)
    return filters


def _positive_int(raw: Optional[str], default: int) -> int:
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value >= 1 else default
