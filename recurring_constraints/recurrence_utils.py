"""Recurrence utilities: weekday parsing and weekly expansion of recurring sources.

A recurring source repeats on a set of weekdays between two times of the same
day. ``RecurrenceExpander`` turns such a definition into the candidate dates
of a window, and ``OccurrenceValidator`` checks single dates against it.

Notes:
- Everything here works on naive local dates and times.
- The expansion is deterministic; re-materialization relies on it.
"""

import datetime
from collections.abc import Iterable
from typing import TYPE_CHECKING

from dateutil.rrule import FR, MO, SA, SU, TH, TU, WE, WEEKLY, rrule

from recurring_constraints.constants import WEEKDAY_ALIASES, WEEKDAYS_IN_ORDER, Weekday
from recurring_constraints.exceptions import (
    EmptyDaysOfWeekError,
    InvalidRecurringSourceError,
    InvalidTimeRangeError,
    UnknownWeekdayError,
)


if TYPE_CHECKING:
    from recurring_constraints.services.dataclasses import DateWindow, RecurringSourceData


RRULE_WEEKDAYS = {
    Weekday.MONDAY: MO,
    Weekday.TUESDAY: TU,
    Weekday.WEDNESDAY: WE,
    Weekday.THURSDAY: TH,
    Weekday.FRIDAY: FR,
    Weekday.SATURDAY: SA,
    Weekday.SUNDAY: SU,
}


def parse_weekday(value: str) -> Weekday:
    """Parse an English name, an RFC 5545 code or a French name into a ``Weekday``."""
    normalized = str(value).strip().lower()
    if normalized in Weekday.values:
        return Weekday(normalized)

    weekday = WEEKDAY_ALIASES.get(normalized)
    if weekday is None:
        raise UnknownWeekdayError(str(value))
    return weekday


def normalize_days_of_week(days: Iterable[str] | str) -> tuple[Weekday, ...]:
    """
    Return the distinct weekdays of ``days`` ordered Monday first.

    Accepts an iterable of names or a comma-separated string ("MO,WE").
    Raises ``EmptyDaysOfWeekError`` when no day is given.
    """
    if isinstance(days, str):
        days = [day for day in days.split(",") if day.strip()]

    parsed = {parse_weekday(day) for day in days}
    if not parsed:
        raise EmptyDaysOfWeekError()

    return tuple(day for day in WEEKDAYS_IN_ORDER if day in parsed)


def parse_time_of_day(value: datetime.time | str) -> datetime.time:
    """Parse ``"HH:MM"`` / ``"HH:MM:SS"`` strings. Raises ``ValueError`` on bad input."""
    if isinstance(value, datetime.time):
        return value
    return datetime.time.fromisoformat(str(value))


def format_time_of_day(value: datetime.time) -> str:
    if value.second or value.microsecond:
        return value.isoformat()
    return value.strftime("%H:%M")


def validate_time_range(start_time: datetime.time, end_time: datetime.time) -> None:
    # same-day blocks only, nothing crosses midnight
    if end_time <= start_time:
        raise InvalidTimeRangeError()


def validate_recurring_definition(
    days_of_week: Iterable[str] | str,
    start_time: datetime.time | str,
    end_time: datetime.time | str,
) -> tuple[tuple[Weekday, ...], datetime.time, datetime.time]:
    """
    Validate a recurring definition and return it normalized as
    ``(days_of_week, start_time, end_time)``.
    """
    normalized_days = normalize_days_of_week(days_of_week)
    try:
        parsed_start_time = parse_time_of_day(start_time)
        parsed_end_time = parse_time_of_day(end_time)
    except ValueError as e:
        raise InvalidRecurringSourceError(f"Invalid time of day: {e}") from e

    validate_time_range(parsed_start_time, parsed_end_time)
    return normalized_days, parsed_start_time, parsed_end_time


class RecurrenceExpander:
    """Expands weekly recurring definitions into candidate dates."""

    @staticmethod
    def expand(
        days_of_week: Iterable[str],
        window_start: datetime.date,
        window_end: datetime.date,
    ) -> list[datetime.date]:
        """
        Return every date of ``[window_start, window_end]`` (inclusive) whose weekday is
        in ``days_of_week``, in ascending order.

        An inverted window or an empty weekday set gives an empty list.
        """
        weekdays = {parse_weekday(day) for day in days_of_week}
        if window_start > window_end or not weekdays:
            return []

        byweekday = [RRULE_WEEKDAYS[day] for day in WEEKDAYS_IN_ORDER if day in weekdays]
        rule = rrule(
            WEEKLY,
            byweekday=byweekday,
            dtstart=datetime.datetime.combine(window_start, datetime.time.min),
            until=datetime.datetime.combine(window_end, datetime.time.min),
        )
        return [occurrence.date() for occurrence in rule]

    @classmethod
    def expand_source(
        cls, source: "RecurringSourceData", window: "DateWindow"
    ) -> list[datetime.date]:
        return cls.expand(source.days_of_week, window.start_date, window.end_date)


class OccurrenceValidator:
    """Helpers to validate single dates against a recurring definition."""

    @staticmethod
    def is_occurrence_date(days_of_week: Iterable[str], target_date: datetime.date) -> bool:
        """Return True if ``target_date`` falls on one of ``days_of_week``."""
        weekdays = {parse_weekday(day) for day in days_of_week}
        return WEEKDAYS_IN_ORDER[target_date.weekday()] in weekdays
