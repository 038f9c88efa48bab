"""
Scheduler module for the expiry watch system.

Batch runs are meant to be re-triggered on a fixed cadence. This module
parses standard five-field cron expressions and runs a loop that fires the
registered jobs at each matching minute, so a single process can act as its
own trigger when no external cron is available.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger
from .enums import LogLevel
from .exceptions import ExpiryWatchError

# A year of minutes is enough to find the next match of any valid expression
_MAX_SEARCH_MINUTES = 366 * 24 * 60


class CronParseError(ExpiryWatchError):
    """Raised when a cron expression cannot be parsed."""

    def __init__(self, message: str, expression: str) -> None:
        super().__init__(
            code="invalid_cron",
            message=f"{message}: '{expression}'",
            details={"expression": expression},
        )
        self.expression = expression


@dataclass(frozen=True)
class CronField:
    """Allowed values of one cron field."""

    values: frozenset[int]
    min_value: int
    max_value: int

    @property
    def is_wildcard(self) -> bool:
        return len(self.values) == self.max_value - self.min_value + 1

    def matches(self, value: int) -> bool:
        return value in self.values


@dataclass(frozen=True)
class CronSchedule:
    """A parsed cron expression."""

    minute: CronField
    hour: CronField
    day_of_month: CronField
    month: CronField
    day_of_week: CronField  # 0 = Sunday
    expression: str

    def matches(self, dt: datetime) -> bool:
        """
        Check if a datetime (minute precision) matches.

        When both day fields are restricted, either one matching is enough,
        as in classic cron.
        """
        cron_weekday = (dt.weekday() + 1) % 7
        if self.day_of_month.is_wildcard or self.day_of_week.is_wildcard:
            day_match = self.day_of_month.matches(dt.day) and self.day_of_week.matches(cron_weekday)
        else:
            day_match = self.day_of_month.matches(dt.day) or self.day_of_week.matches(cron_weekday)

        return (
            day_match
            and self.minute.matches(dt.minute)
            and self.hour.matches(dt.hour)
            and self.month.matches(dt.month)
        )

    def next_run(self, after: datetime) -> datetime:
        """
        Return the first matching minute strictly after ``after``.

        Raises:
            CronParseError: If nothing matches within a year (e.g. Feb 31)
        """
        candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        for _ in range(_MAX_SEARCH_MINUTES):
            if self.matches(candidate):
                return candidate
            candidate += timedelta(minutes=1)
        raise CronParseError("Expression never matches", self.expression)


class CronParser:
    """Parser for five-field cron expressions (six fields: leading seconds ignored)."""

    FIELD_DEFS = (
        ("minute", 0, 59),
        ("hour", 0, 23),
        ("day_of_month", 1, 31),
        ("month", 1, 12),
        ("day_of_week", 0, 7),
    )

    MONTH_NAMES = {
        "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
        "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
    }

    DOW_NAMES = {
        "sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6,
    }

    ALIASES = {
        "@hourly": "0 * * * *",
        "@daily": "0 0 * * *",
        "@midnight": "0 0 * * *",
        "@weekly": "0 0 * * 0",
        "@monthly": "0 0 1 * *",
    }

    def parse(self, expression: str) -> CronSchedule:
        """
        Parse a cron expression.

        Supports ``*``, lists (``,``), ranges (``-``), steps (``/``), month
        and weekday names, and the @hourly/@daily/@weekly/@monthly aliases.

        Raises:
            CronParseError: If the expression is invalid
        """
        original = expression.strip()
        if not original:
            raise CronParseError("Empty cron expression", expression)

        fields = self.ALIASES.get(original.lower(), original).split()
        if len(fields) == 6:
            fields = fields[1:]
        elif len(fields) != 5:
            raise CronParseError(
                f"Invalid number of fields (expected 5 or 6, got {len(fields)})",
                original,
            )

        parsed = []
        for text, (name, low, high) in zip(fields, self.FIELD_DEFS):
            try:
                parsed.append(self._parse_field(text.lower(), name, low, high))
            except ValueError as e:
                raise CronParseError(f"Invalid {name} field: {e}", original) from e

        minute, hour, day_of_month, month, day_of_week = parsed
        # 7 is an alias for Sunday
        if 7 in day_of_week.values:
            day_of_week = CronField(
                values=frozenset((day_of_week.values - {7}) | {0}),
                min_value=0,
                max_value=6,
            )
        else:
            day_of_week = CronField(day_of_week.values, 0, 6)

        return CronSchedule(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month=month,
            day_of_week=day_of_week,
            expression=original,
        )

    def _parse_field(self, text: str, name: str, low: int, high: int) -> CronField:
        names = self.MONTH_NAMES if name == "month" else self.DOW_NAMES if name == "day_of_week" else {}
        values: set[int] = set()

        for part in text.split(","):
            if not part:
                raise ValueError("empty list element")

            step = 1
            if "/" in part:
                part, step_text = part.split("/", 1)
                step = self._to_int(step_text, {})
                if step < 1:
                    raise ValueError(f"step must be >= 1, got {step}")

            if part == "*":
                start, end = low, high
            elif "-" in part:
                start_text, end_text = part.split("-", 1)
                start, end = self._to_int(start_text, names), self._to_int(end_text, names)
            else:
                start = self._to_int(part, names)
                end = high if step > 1 else start

            if not (low <= start <= high and low <= end <= high):
                raise ValueError(f"{part} out of bounds [{low}-{high}]")
            if start > end:
                raise ValueError(f"range start {start} > end {end}")
            values.update(range(start, end + 1, step))

        if name == "day_of_week" and values >= set(range(0, 7)):
            values.add(7)
        return CronField(values=frozenset(values), min_value=low, max_value=high)

    def _to_int(self, text: str, names: dict[str, int]) -> int:
        if text in names:
            return names[text]
        try:
            return int(text)
        except ValueError:
            raise ValueError(f"invalid value '{text}'") from None


@dataclass
class ScheduledJob:
    """A named coroutine callback bound to a schedule."""

    name: str
    schedule: CronSchedule
    callback: Callable[[], Awaitable[None]]
    last_run: Optional[datetime] = None


class Scheduler:
    """Runs registered jobs at every minute their cron schedule matches."""

    def __init__(
        self,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._parser = CronParser()
        self._jobs: dict[str, ScheduledJob] = {}
        self._logger = logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    def schedule(
        self,
        name: str,
        cron_expression: str,
        callback: Callable[[], Awaitable[None]],
    ) -> CronSchedule:
        """
        Register a job.

        Raises:
            CronParseError: If the cron expression is invalid
            ValueError: If a job with the same name already exists
        """
        if name in self._jobs:
            raise ValueError(f"Job '{name}' already exists")
        schedule = self._parser.parse(cron_expression)
        self._jobs[name] = ScheduledJob(name=name, schedule=schedule, callback=callback)
        return schedule

    def unschedule(self, name: str) -> bool:
        return self._jobs.pop(name, None) is not None

    async def run_pending(self, now: Optional[datetime] = None) -> list[str]:
        """
        Run every job whose schedule matches the current minute, once per minute.

        A failing job is logged and does not prevent the others from running.

        Returns:
            Names of the jobs that were started
        """
        minute = (now or self._clock()).replace(second=0, microsecond=0)
        started = []
        for job in list(self._jobs.values()):
            if not job.schedule.matches(minute):
                continue
            if job.last_run is not None and job.last_run >= minute:
                continue
            job.last_run = minute
            started.append(job.name)
            self._log(LogLevel.INFO, f"Running job '{job.name}'", {"minute": minute.isoformat()})
            try:
                await job.callback()
            except Exception as e:
                if self._logger:
                    self._logger.log_error("Scheduler", f"Job '{job.name}' failed", e)
        return started

    async def run(self) -> None:
        """Loop until stop() is called, waking at each minute boundary."""
        self._stop_event = asyncio.Event()
        self._log(LogLevel.INFO, "Scheduler started", {"jobs": sorted(self._jobs)})
        while not self._stop_event.is_set():
            await self.run_pending()
            now = self._clock()
            delay = (now.replace(second=0, microsecond=0) + timedelta(minutes=1) - now).total_seconds()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=max(delay, 0.1))
            except asyncio.TimeoutError:
                continue
        self._log(LogLevel.INFO, "Scheduler stopped", {})

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def parse_cron(self, expression: str) -> CronSchedule:
        """Parse an expression without registering a job (validation)."""
        return self._parser.parse(expression)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "Scheduler", message, data)
