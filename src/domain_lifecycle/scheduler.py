"""
Cron scheduler for the reconciliation passes.

Two jobs are registered by default: a short cadence for root domains and
a long cadence for portal domains. Expressions use standard five-field
cron syntax (day of week 0 or 7 = Sunday); a leading seconds field is
accepted and ignored.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger
from .config import ReconciliationConfig
from .exceptions import ConfigurationError


class CronParseError(ConfigurationError):
    """Raised when a cron expression cannot be parsed."""

    def __init__(self, message: str, expression: str) -> None:
        super().__init__(
            code="invalid_cron",
            message=f"{message}: '{expression}'",
            details={"expression": expression},
        )
        self.expression = expression


@dataclass
class CronField:
    """One parsed cron field."""

    values: set[int]
    wildcard: bool

    def matches(self, value: int) -> bool:
        return value in self.values


@dataclass
class CronSchedule:
    """A parsed five-field cron schedule."""

    minute: CronField
    hour: CronField
    day_of_month: CronField
    month: CronField
    day_of_week: CronField
    expression: str

    def matches(self, dt: datetime) -> bool:
        if not (self.minute.matches(dt.minute) and self.hour.matches(dt.hour) and self.month.matches(dt.month)):
            return False
        cron_dow = (dt.weekday() + 1) % 7  # Python Monday=0 -> cron Sunday=0
        dom = self.day_of_month.matches(dt.day)
        dow = self.day_of_week.matches(cron_dow)
        # Vixie cron: when both day fields are restricted either may match
        if self.day_of_month.wildcard and self.day_of_week.wildcard:
            return True
        if self.day_of_month.wildcard:
            return dow
        if self.day_of_week.wildcard:
            return dom
        return dom or dow

    def next_run(self, after: datetime, horizon_days: int = 366) -> Optional[datetime]:
        """First matching minute strictly after ``after``, or None within the horizon."""
        candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = candidate + timedelta(days=horizon_days)
        while candidate < limit:
            if self.matches(candidate):
                return candidate
            candidate += timedelta(minutes=1)
        return None


class CronParser:
    """Parser for cron expressions."""

    # (min, max, name)
    FIELD_DEFS = [
        (0, 59, "minute"),
        (0, 23, "hour"),
        (1, 31, "day_of_month"),
        (1, 12, "month"),
        (0, 7, "day_of_week"),
    ]

    MONTH_NAMES = {
        "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
        "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
    }

    DOW_NAMES = {"sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6}

    def parse(self, expression: str) -> CronSchedule:
        """
        Parse a cron expression.

        Supports ``*``, lists (``,``), ranges (``-``), steps (``/``) and
        three-letter month and weekday names.

        Raises:
            CronParseError: If the expression is invalid
        """
        expression = (expression or "").strip()
        if not expression:
            raise CronParseError("Empty cron expression", expression)

        fields = expression.split()
        if len(fields) == 6:
            fields = fields[1:]
        elif len(fields) != 5:
            raise CronParseError(f"Expected 5 or 6 fields, got {len(fields)}", expression)

        parsed = []
        for text, (low, high, name) in zip(fields, self.FIELD_DEFS):
            try:
                parsed.append(self._parse_field(text, low, high, name))
            except ValueError as e:
                raise CronParseError(f"Invalid {name} field: {e}", expression) from e

        dow = parsed[4]
        if 7 in dow.values:
            dow.values = (dow.values - {7}) | {0}

        return CronSchedule(*parsed, expression=expression)

    def _parse_field(self, text: str, low: int, high: int, name: str) -> CronField:
        text = text.lower()
        names = self.MONTH_NAMES if name == "month" else self.DOW_NAMES if name == "day_of_week" else {}
        for label, number in names.items():
            text = text.replace(label, str(number))

        values: set[int] = set()
        wildcard = False
        for part in text.split(","):
            part = part.strip()
            if not part:
                continue

            step = 1
            if "/" in part:
                part, step_text = part.split("/", 1)
                if not step_text.isdigit() or int(step_text) < 1:
                    raise ValueError(f"Invalid step value: {step_text}")
                step = int(step_text)

            if part == "*":
                wildcard = wildcard or step == 1
                values.update(range(low, high + 1, step))
                continue

            if "-" in part:
                start_text, end_text = part.split("-", 1)
                if not (start_text.isdigit() and end_text.isdigit()):
                    raise ValueError(f"Invalid range: {part}")
                start, end = int(start_text), int(end_text)
                if not (low <= start <= end <= high):
                    raise ValueError(f"Range {part} out of bounds [{low}-{high}]")
                values.update(range(start, end + 1, step))
                continue

            if not part.isdigit():
                raise ValueError(f"Invalid value: {part}")
            value = int(part)
            if not low <= value <= high:
                raise ValueError(f"Value {value} out of bounds [{low}-{high}]")
            if step > 1:
                values.update(range(value, high + 1, step))
            else:
                values.add(value)

        if not values:
            raise ValueError("No values parsed from field")
        return CronField(values=values, wildcard=wildcard)


@dataclass
class ScheduledTask:
    """A named job bound to a cron schedule."""

    name: str
    schedule: CronSchedule
    callback: Callable[[], Awaitable[object]]
    last_run: Optional[datetime] = None
    enabled: bool = True
    running: bool = False


class Scheduler:
    """
    Cron-compatible scheduler.

    A task that is still running when its next slot comes up is not
    started a second time. Task errors are logged and the loop continues.
    """

    COMPONENT = "Scheduler"

    def __init__(
        self,
        logger: Optional[AuditLogger] = None,
        check_interval_seconds: float = 60.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._parser = CronParser()
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False
        self._logger = logger
        self._check_interval_seconds = check_interval_seconds
        self._clock = clock
        self._inflight: set[asyncio.Task] = set()

    def schedule(
        self,
        name: str,
        cron_expression: str,
        callback: Callable[[], Awaitable[object]],
    ) -> CronSchedule:
        """
        Register a task.

        Raises:
            CronParseError: If the cron expression is invalid
            ValueError: If a task with the same name already exists
        """
        if name in self._tasks:
            raise ValueError(f"Task '{name}' already exists")
        schedule = self._parser.parse(cron_expression)
        self._tasks[name] = ScheduledTask(name=name, schedule=schedule, callback=callback)
        return schedule

    def unschedule(self, name: str) -> bool:
        return self._tasks.pop(name, None) is not None

    def get_task(self, name: str) -> Optional[ScheduledTask]:
        return self._tasks.get(name)

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    def set_enabled(self, name: str, enabled: bool) -> bool:
        task = self._tasks.get(name)
        if task is None:
            return False
        task.enabled = enabled
        return True

    def due_tasks(self, now: datetime) -> list[ScheduledTask]:
        """Tasks whose schedule matches this minute and have not run in it yet."""
        minute = now.replace(second=0, microsecond=0)
        return [
            task for task in self._tasks.values()
            if task.enabled
            and not task.running
            and task.schedule.matches(minute)
            and (task.last_run is None or task.last_run < minute)
        ]

    async def _execute(self, task: ScheduledTask) -> None:
        task.running = True
        try:
            await task.callback()
        except Exception as e:
            if self._logger:
                self._logger.log_error(self.COMPONENT, "Scheduled task failed", e, additional_data={"task": task.name})
        finally:
            task.running = False

    async def run_pending(self, now: Optional[datetime] = None) -> list[str]:
        """Run every due task to completion and return their names."""
        now = now or self._clock()
        due = self.due_tasks(now)
        minute = now.replace(second=0, microsecond=0)
        for task in due:
            task.last_run = minute
        await asyncio.gather(*(self._execute(task) for task in due))
        return [task.name for task in due]

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Scheduler loop. Due tasks run in the background so a long pass
        does not delay the other cadence.
        """
        self._running = True
        if self._logger:
            self._logger.info(self.COMPONENT, "Scheduler started", {"tasks": [t.name for t in self._tasks.values()]})

        try:
            while self._running:
                now = self._clock()
                minute = now.replace(second=0, microsecond=0)
                for task in self.due_tasks(now):
                    task.last_run = minute
                    job = asyncio.create_task(self._execute(task))
                    self._inflight.add(job)
                    job.add_done_callback(self._inflight.discard)

                if stop_event is not None:
                    try:
                        await asyncio.wait_for(stop_event.wait(), timeout=self._check_interval_seconds)
                        break
                    except asyncio.TimeoutError:
                        continue
                await asyncio.sleep(self._check_interval_seconds)
        finally:
            self._running = False
            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)
            if self._logger:
                self._logger.info(self.COMPONENT, "Scheduler stopped")

    def stop(self) -> None:
        self._running = False

    def is_running(self) -> bool:
        return self._running

    def parse_cron(self, expression: str) -> CronSchedule:
        """Parse without scheduling, for validation."""
        return self._parser.parse(expression)


def schedule_reconciliation(scheduler: Scheduler, reconciler, config: ReconciliationConfig) -> None:
    """Register the root and portal passes at their configured cadences."""
    scheduler.schedule("reconcile-root-domains", config.root_cron, reconciler.run_root_pass)
    scheduler.schedule("reconcile-portal-domains", config.portal_cron, reconciler.run_portal_pass)
