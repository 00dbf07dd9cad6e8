"""
Scheduler module for the expiry monitor.

Cron-compatible scheduling for the periodic refresh and recalculation
jobs. Each job runs as its own asyncio task that sleeps until the next
matching time. SchedulerManager owns the live handles and replaces a job
by cancelling the old handle before installing the new one.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

if TYPE_CHECKING:
    from .audit_logger import AuditLogger


# Upper bound on the search for the next firing time
MAX_LOOKAHEAD = timedelta(days=366 * 5)


class CronParseError(Exception):
    """Raised when a cron expression cannot be parsed."""

    def __init__(self, message: str, expression: str) -> None:
        self.message = message
        self.expression = expression
        super().__init__(f"{message}: '{expression}'")


@dataclass
class CronField:
    """Represents a parsed cron field with allowed values."""

    values: set[int]
    min_value: int
    max_value: int

    @property
    def is_wildcard(self) -> bool:
        return self.values == set(range(self.min_value, self.max_value + 1))

    def matches(self, value: int) -> bool:
        return value in self.values


def cron_weekday(dt: datetime) -> int:
    """Day of week in cron numbering (0 = Sunday)."""
    return (dt.weekday() + 1) % 7


@dataclass
class CronSchedule:
    """Represents a parsed cron schedule."""

    second: CronField
    minute: CronField
    hour: CronField
    day_of_month: CronField
    month: CronField
    day_of_week: CronField
    original_expression: str

    def _day_matches(self, dt: datetime) -> bool:
        # Standard cron: when both day fields are restricted, either may match
        dom_all = self.day_of_month.is_wildcard
        dow_all = self.day_of_week.is_wildcard
        if dom_all and dow_all:
            return True
        if dom_all:
            return self.day_of_week.matches(cron_weekday(dt))
        if dow_all:
            return self.day_of_month.matches(dt.day)
        return self.day_of_month.matches(dt.day) or self.day_of_week.matches(
            cron_weekday(dt)
        )

    def matches(self, dt: datetime) -> bool:
        """Check if a datetime (second precision) matches this schedule."""
        return (
            self.second.matches(dt.second)
            and self.minute.matches(dt.minute)
            and self.hour.matches(dt.hour)
            and self.month.matches(dt.month)
            and self._day_matches(dt)
        )

    def next_after(self, dt: datetime) -> datetime:
        """
        Return the first matching time strictly after dt.

        Raises:
            ValueError: If nothing matches within the lookahead window
                (e.g. February 30th)
        """
        candidate = dt.replace(microsecond=0) + timedelta(seconds=1)
        limit = dt + MAX_LOOKAHEAD

        while candidate <= limit:
            if not self.month.matches(candidate.month):
                year = candidate.year + (candidate.month // 12)
                month = candidate.month % 12 + 1
                candidate = candidate.replace(
                    year=year, month=month, day=1, hour=0, minute=0, second=0
                )
                continue
            if not self._day_matches(candidate):
                candidate = (candidate + timedelta(days=1)).replace(
                    hour=0, minute=0, second=0
                )
                continue
            if not self.hour.matches(candidate.hour):
                candidate = (candidate + timedelta(hours=1)).replace(minute=0, second=0)
                continue
            if not self.minute.matches(candidate.minute):
                candidate = (candidate + timedelta(minutes=1)).replace(second=0)
                continue
            if not self.second.matches(candidate.second):
                candidate = candidate + timedelta(seconds=1)
                continue
            return candidate

        raise ValueError(
            f"Cron expression '{self.original_expression}' never fires"
        )


class CronParser:
    """Parser for cron expressions."""

    # Field definitions: (min, max, name)
    FIELD_DEFS = [
        (0, 59, "second"),
        (0, 59, "minute"),
        (0, 23, "hour"),
        (1, 31, "day_of_month"),
        (1, 12, "month"),
        (0, 7, "day_of_week"),  # 0 and 7 are both Sunday
    ]

    MONTH_NAMES = {
        "jan": 1, "feb": 2, "mar": 3, "apr": 4,
        "may": 5, "jun": 6, "jul": 7, "aug": 8,
        "sep": 9, "oct": 10, "nov": 11, "dec": 12,
    }

    DOW_NAMES = {
        "sun": 0, "mon": 1, "tue": 2, "wed": 3,
        "thu": 4, "fri": 5, "sat": 6,
    }

    def parse(self, expression: str) -> CronSchedule:
        """
        Parse a cron expression into a CronSchedule.

        Supports standard 5-field expressions (minute hour day month
        weekday) and 6-field expressions with a leading seconds field.
        Lists, ranges, steps, '*' and month/weekday names are accepted.

        Raises:
            CronParseError: If the expression is invalid
        """
        expression = expression.strip()
        if not expression:
            raise CronParseError("Empty cron expression", expression)

        fields = expression.split()

        if len(fields) == 5:
            fields = ["0"] + fields
        elif len(fields) != 6:
            raise CronParseError(
                f"Invalid number of fields (expected 5 or 6, got {len(fields)})",
                expression,
            )

        parsed_fields = []
        for field_str, (min_val, max_val, name) in zip(fields, self.FIELD_DEFS):
            try:
                parsed_fields.append(self._parse_field(field_str, min_val, max_val, name))
            except ValueError as e:
                raise CronParseError(f"Invalid {name} field: {e}", expression) from e

        day_of_week = parsed_fields[5]
        if 7 in day_of_week.values:
            day_of_week.values.discard(7)
            day_of_week.values.add(0)
        day_of_week.max_value = 6

        return CronSchedule(
            second=parsed_fields[0],
            minute=parsed_fields[1],
            hour=parsed_fields[2],
            day_of_month=parsed_fields[3],
            month=parsed_fields[4],
            day_of_week=day_of_week,
            original_expression=expression,
        )

    def _parse_field(
        self, field_str: str, min_val: int, max_val: int, field_name: str
    ) -> CronField:
        values: set[int] = set()

        names = {"month": self.MONTH_NAMES, "day_of_week": self.DOW_NAMES}.get(field_name)
        if names:
            field_str = field_str.lower()
            for name, num in names.items():
                field_str = field_str.replace(name, str(num))

        for part in field_str.split(","):
            part = part.strip()
            if not part:
                continue

            step = 1
            if "/" in part:
                part, step_str = part.split("/", 1)
                if not step_str.isdigit() or int(step_str) < 1:
                    raise ValueError(f"Invalid step value: {step_str}")
                step = int(step_str)

            if part == "*":
                start, end = min_val, max_val
            elif "-" in part:
                start_str, end_str = part.split("-", 1)
                try:
                    start, end = int(start_str), int(end_str)
                except ValueError as e:
                    raise ValueError(f"Invalid range: {part}") from e
                if start > end:
                    raise ValueError(f"Range start {start} > end {end}")
            else:
                try:
                    start = int(part)
                except ValueError as e:
                    raise ValueError(f"Invalid value: {part}") from e
                # "5/15" means every 15 starting at 5
                end = max_val if step > 1 else start

            for bound in (start, end):
                if bound < min_val or bound > max_val:
                    raise ValueError(f"Value {bound} out of bounds [{min_val}-{max_val}]")

            values.update(range(start, end + 1, step))

        if not values:
            raise ValueError("No values parsed from field")

        return CronField(values=values, min_value=min_val, max_value=max_val)


JobCallback = Callable[[], Awaitable[None]]
Clock = Callable[[], datetime]


@dataclass
class ScheduledTask:
    """Represents a scheduled job."""

    name: str
    schedule: CronSchedule
    callback: JobCallback
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    run_count: int = 0


class ScheduleHandle:
    """Cancellable reference to a running scheduled job."""

    def __init__(self, task: ScheduledTask, runner: "asyncio.Task[None]") -> None:
        self._task = task
        self._runner = runner

    @property
    def name(self) -> str:
        return self._task.name

    @property
    def task(self) -> ScheduledTask:
        return self._task

    @property
    def cancelled(self) -> bool:
        return self._runner.cancelled() or self._runner.done()

    def cancel(self) -> None:
        """Stop future runs. A callback already in progress is not interrupted."""
        self._runner.cancel()

    async def wait(self) -> None:
        """Wait until the job loop has exited."""
        await asyncio.gather(self._runner, return_exceptions=True)


class Scheduler:
    """Cron-compatible scheduler running jobs on the current event loop."""

    def __init__(
        self,
        clock: Clock = datetime.now,
        logger: Optional["AuditLogger"] = None,
    ) -> None:
        self._parser = CronParser()
        self._clock = clock
        self._logger = logger
        self._in_flight: set["asyncio.Future[None]"] = set()

    def schedule(
        self,
        name: str,
        cron_expression: str,
        callback: JobCallback,
    ) -> ScheduleHandle:
        """
        Start a job that runs callback whenever the expression matches.

        Must be called from a running event loop.

        Raises:
            CronParseError: If the cron expression is invalid
        """
        schedule = self._parser.parse(cron_expression)
        task = ScheduledTask(name=name, schedule=schedule, callback=callback)
        runner = asyncio.get_running_loop().create_task(
            self._run(task), name=f"schedule:{name}"
        )
        self._log_info(
            f"Job '{name}' scheduled",
            {"job": name, "schedule": cron_expression},
        )
        return ScheduleHandle(task, runner)

    def parse_cron(self, expression: str) -> CronSchedule:
        """Parse a cron expression without scheduling anything."""
        return self._parser.parse(expression)

    async def wait_idle(self) -> None:
        """Wait for callbacks that outlived their cancelled job."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _run(self, task: ScheduledTask) -> None:
        while True:
            task.next_run = task.schedule.next_after(self._clock())
            delay = (task.next_run - self._clock()).total_seconds()
            await asyncio.sleep(max(delay, 0.0))

            task.last_run = task.next_run
            task.run_count += 1
            # Shielded so that cancelling the job does not abort a cycle
            # that is already writing its results
            invocation = asyncio.ensure_future(self._invoke(task))
            self._in_flight.add(invocation)
            invocation.add_done_callback(self._in_flight.discard)
            await asyncio.shield(invocation)

    async def _invoke(self, task: ScheduledTask) -> None:
        try:
            await task.callback()
        except Exception as e:
            if self._logger:
                self._logger.log_error(
                    "Scheduler",
                    f"Job '{task.name}' failed",
                    error=e,
                    additional_data={"job": task.name},
                )

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.info("Scheduler", message, data)


class SchedulerManager:
    """
    Owns the live schedule handles, one per job name.

    reschedule() cancels the current handle for a name before installing
    the replacement, so two timers for the same job never coexist.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None) -> None:
        self._scheduler = scheduler or Scheduler()
        self._handles: dict[str, ScheduleHandle] = {}

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def handles(self) -> dict[str, ScheduleHandle]:
        return dict(self._handles)

    def reschedule(
        self, name: str, cron_expression: str, callback: JobCallback
    ) -> ScheduleHandle:
        """
        Replace the job called name.

        The expression is parsed first; on CronParseError the existing
        job keeps running.
        """
        self._scheduler.parse_cron(cron_expression)
        self.cancel(name)
        handle = self._scheduler.schedule(name, cron_expression, callback)
        self._handles[name] = handle
        return handle

    def cancel(self, name: str) -> bool:
        """Cancel the job called name. Returns True if one was running."""
        handle = self._handles.pop(name, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for name in list(self._handles):
            self.cancel(name)

    async def shutdown(self) -> None:
        """Cancel every job and wait for in-progress callbacks to finish."""
        handles = list(self._handles.values())
        self.cancel_all()
        for handle in handles:
            await handle.wait()
        await self._scheduler.wait_idle()
