"""
APScheduler 调度后端 - 实现 core 层 ISchedulerBackend 接口

- 5 段 cron: 分 时 日 月 周（标准 crontab）
- 6 段 cron: 秒 分 时 日 月 周
- 每个任务 max_instances=1：慢任务只会跳过自己的下一次触发
"""
import logging
from typing import Any, Callable, Dict, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from core.scheduler import CronExpressionError, ISchedulerBackend

logger = logging.getLogger(__name__)


_WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _crontab_day_of_week(field: str) -> str:
    """把 crontab 周字段（0/7 = 周日）改写为 APScheduler 的星期名称

    APScheduler 的数字周字段以 0 表示周一，这里展开为显式名称列表；
    纯名称写法（mon-fri）原样保留。

    Raises:
        ValueError: 数值越界或范围非法
    """
    parts = []
    for token in field.split(","):
        base, _, step_text = token.partition("/")
        if not any(ch.isdigit() for ch in base) and not step_text:
            parts.append(token)
            continue
        if base and not base.replace("-", "").isdigit() and base != "*":
            parts.append(token)
            continue

        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"invalid step in day of week: {token!r}")
        if base == "*":
            first, last = 0, 6
        elif "-" in base:
            first_text, _, last_text = base.partition("-")
            first, last = int(first_text), int(last_text)
        else:
            first = int(base)
            last = 6 if step_text else first
        if not (0 <= first <= 7 and 0 <= last <= 7) or first > last:
            raise ValueError(f"day of week out of range: {token!r}")

        for value in range(first, last + 1, step):
            name = _WEEKDAY_NAMES[value % 7]
            if name not in parts:
                parts.append(name)
    return ",".join(parts)


def parse_cron_expression(expression: Optional[str], timezone: str = "UTC") -> CronTrigger:
    """将 5 段或 6 段 cron 表达式编译为触发器

    周字段按 crontab 约定解释：0 与 7 都表示周日。

    Raises:
        CronExpressionError: 段数不对或字段取值非法
    """
    fields = (expression or "").split()
    if len(fields) == 5:
        fields = ["0"] + fields
    if len(fields) != 6:
        raise CronExpressionError(expression, f"expected 5 or 6 fields, got {len(fields)}")

    second, minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_crontab_day_of_week(day_of_week),
            timezone=timezone,
        )
    except ValueError as e:
        raise CronExpressionError(expression, str(e)) from e


class APSchedulerBackend(ISchedulerBackend):
    """基于 APScheduler 的调度后端"""

    def __init__(
        self,
        scheduler: Optional[BackgroundScheduler] = None,
        timezone: str = "UTC",
        max_workers: int = 10,
        misfire_grace_time: int = 30,
    ):
        self._timezone = timezone
        self._max_workers = max_workers
        self._misfire_grace_time = misfire_grace_time
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or self._build_scheduler()

    def _build_scheduler(self) -> BackgroundScheduler:
        return BackgroundScheduler(
            timezone=self._timezone,
            executors={"default": ThreadPoolExecutor(max_workers=self._max_workers)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": self._misfire_grace_time,
            },
        )

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def start(self) -> None:
        """启动调度器"""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("APScheduler started")

    def shutdown(self, wait: bool = False) -> None:
        """关闭调度器；自建的调度器会被替换为新实例以便再次启动"""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("APScheduler shut down")
            if self._owns_scheduler:
                self._scheduler = self._build_scheduler()

    def add_job(
        self,
        job_id: str,
        func: Callable[[], Any],
        cron_expression: str,
        name: Optional[str] = None,
    ) -> Any:
        """添加 cron 定时任务（同 ID 覆盖）"""
        trigger = parse_cron_expression(cron_expression, timezone=self._timezone)
        job = self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            name=name or job_id,
            replace_existing=True,
        )
        logger.info(f"Job added: {job_id} ({cron_expression})")
        return job

    def remove_job(self, job_id: str) -> None:
        """移除任务"""
        try:
            self._scheduler.remove_job(job_id)
            logger.info(f"Job removed: {job_id}")
        except JobLookupError:
            logger.warning(f"Job not found for removal: {job_id}")

    def get_job(self, job_id: str) -> Optional[Dict]:
        """获取单个任务"""
        job = self._scheduler.get_job(job_id)
        if job is None:
            return None
        return self._job_to_dict(job)

    @staticmethod
    def _job_to_dict(job) -> Dict:
        # 调度器启动前 next_run_time 尚未计算
        next_run_time = getattr(job, "next_run_time", None)
        return {
            "id": job.id,
            "name": job.name or job.id,
            "trigger": str(job.trigger),
            "next_run_time": next_run_time.isoformat() if next_run_time else None,
        }
