import datetime
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from dataclasses import fields as dataclass_fields
from typing import Any

from dateutil.relativedelta import relativedelta

from recurring_constraints.constants import (
    OVERLAY_TEXT_KEYS,
    OVERLAY_TEXT_MAX_LENGTH,
    OVERLAY_TIME_KEYS,
    BusyIntervalSource,
    ExceptionType,
    SourceCategory,
    Weekday,
)
from recurring_constraints.exceptions import (
    InvalidOccurrenceExceptionError,
    InvalidRecurringSourceError,
)
from recurring_constraints.recurrence_utils import (
    parse_time_of_day,
    validate_recurring_definition,
)


@dataclass(frozen=True)
class DateWindow:
    """Inclusive range of calendar days."""

    start_date: datetime.date
    end_date: datetime.date

    @classmethod
    def from_horizon(cls, today: datetime.date, months: int) -> "DateWindow":
        return cls(start_date=today, end_date=today + relativedelta(months=months))

    @property
    def is_empty(self) -> bool:
        return self.start_date > self.end_date

    @property
    def start_datetime(self) -> datetime.datetime:
        return datetime.datetime.combine(self.start_date, datetime.time.min)

    @property
    def end_datetime(self) -> datetime.datetime:
        # exclusive bound: midnight after the last day
        return datetime.datetime.combine(
            self.end_date + datetime.timedelta(days=1), datetime.time.min
        )

    def contains(self, target_date: datetime.date) -> bool:
        return self.start_date <= target_date <= self.end_date

    def overlaps(self, start: datetime.datetime, end: datetime.datetime) -> bool:
        if self.is_empty:
            return False
        return start < self.end_datetime and end > self.start_datetime


@dataclass
class WorkScheduleDetails:
    kind: str | None = None
    frequency: str | None = None
    hours_per_week: float | None = None
    company: str | None = None
    extra: dict[str, Any] = dataclass_field(default_factory=dict)


@dataclass
class ActivityDetails:
    kind: str | None = None
    extra: dict[str, Any] = dataclass_field(default_factory=dict)


@dataclass
class RoutineMomentDetails:
    extra: dict[str, Any] = dataclass_field(default_factory=dict)


SourceDetails = WorkScheduleDetails | ActivityDetails | RoutineMomentDetails

SOURCE_DETAILS_BY_CATEGORY: dict[SourceCategory, type[SourceDetails]] = {
    SourceCategory.WORK: WorkScheduleDetails,
    SourceCategory.ACTIVITY: ActivityDetails,
    SourceCategory.ROUTINE: RoutineMomentDetails,
}


def build_source_details(category: str, meta: Mapping[str, Any] | None) -> SourceDetails:
    """
    Build the metadata variant of ``category`` from a raw ``meta`` mapping.
    Keys the variant does not declare are kept in ``extra``.
    """
    details_class = SOURCE_DETAILS_BY_CATEGORY[SourceCategory(category)]
    known_keys = {field.name for field in dataclass_fields(details_class)} - {"extra"}
    remaining = dict(meta or {})
    known = {key: remaining.pop(key) for key in list(remaining) if key in known_keys}
    return details_class(**known, extra=remaining)


def details_as_fields(details: SourceDetails) -> dict[str, Any]:
    """Flatten a metadata variant back into a plain dict, dropping unset values."""
    flattened = {
        field.name: getattr(details, field.name)
        for field in dataclass_fields(details)
        if field.name != "extra" and getattr(details, field.name) is not None
    }
    return {**flattened, **details.extra}


@dataclass
class RecurringSourceInputData:
    category: str
    days_of_week: list[str]
    start_time: datetime.time
    end_time: datetime.time
    title: str = ""
    location: str = ""
    meta: dict[str, Any] = dataclass_field(default_factory=dict)


@dataclass
class RecurringSourceData:
    """A validated recurring definition, as seen by the engine."""

    id: int  # noqa: A003
    category: SourceCategory
    days_of_week: tuple[Weekday, ...]
    start_time: datetime.time
    end_time: datetime.time
    title: str = ""
    location: str = ""
    details: SourceDetails | None = None

    def __post_init__(self):
        try:
            self.category = SourceCategory(self.category)
        except ValueError as e:
            raise InvalidRecurringSourceError(f"Unknown category: {self.category}") from e

        self.days_of_week, self.start_time, self.end_time = validate_recurring_definition(
            self.days_of_week, self.start_time, self.end_time
        )
        if self.details is None:
            self.details = build_source_details(self.category, None)

    @property
    def fields(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "location": self.location,
            **details_as_fields(self.details),
        }


@dataclass
class OccurrenceExceptionData:
    source_category: SourceCategory
    source_id: int
    exception_date: datetime.date
    exception_type: ExceptionType
    modified_fields: dict[str, Any] | None = None
    id: int | None = None  # noqa: A003

    def __post_init__(self):
        try:
            self.source_category = SourceCategory(self.source_category)
            self.exception_type = ExceptionType(self.exception_type)
        except ValueError as e:
            raise InvalidOccurrenceExceptionError(str(e)) from e

        if self.exception_type == ExceptionType.DELETED:
            if self.modified_fields:
                raise InvalidOccurrenceExceptionError(
                    "A deleted occurrence cannot carry modified_fields."
                )
            self.modified_fields = None
            return

        if not self.modified_fields:
            raise InvalidOccurrenceExceptionError(
                "A modified occurrence requires a non-empty modified_fields object."
            )
        for key in OVERLAY_TIME_KEYS:
            if key not in self.modified_fields:
                continue
            try:
                parse_time_of_day(self.modified_fields[key])
            except (TypeError, ValueError) as e:
                raise InvalidOccurrenceExceptionError(
                    f"Invalid {key} in modified_fields: {self.modified_fields[key]}"
                ) from e
        for key in OVERLAY_TEXT_KEYS:
            if key not in self.modified_fields:
                continue
            value = self.modified_fields[key]
            if not isinstance(value, str) or len(value) > OVERLAY_TEXT_MAX_LENGTH:
                raise InvalidOccurrenceExceptionError(
                    f"{key} in modified_fields must be a string of at most "
                    f"{OVERLAY_TEXT_MAX_LENGTH} characters."
                )

    @property
    def key(self) -> tuple[SourceCategory, int, datetime.date]:
        return (self.source_category, self.source_id, self.exception_date)


@dataclass
class OccurrenceData:
    source_category: SourceCategory
    source_id: int
    occurrence_date: datetime.date
    start: datetime.datetime
    end: datetime.datetime
    title: str = ""
    fields: dict[str, Any] = dataclass_field(default_factory=dict)
    is_modified: bool = False


@dataclass
class TimedEventData:
    """A one-off block of time (imported calendar event or planned event)."""

    id: int  # noqa: A003
    source_tag: BusyIntervalSource
    start: datetime.datetime
    end: datetime.datetime
    title: str = ""


@dataclass
class BusyInterval:
    start: datetime.datetime
    end: datetime.datetime
    source_tag: BusyIntervalSource
    source_id: int
    title: str = ""

    @classmethod
    def from_occurrence(cls, occurrence: OccurrenceData) -> "BusyInterval":
        return cls(
            start=occurrence.start,
            end=occurrence.end,
            source_tag=BusyIntervalSource(occurrence.source_category),
            source_id=occurrence.source_id,
            title=occurrence.title,
        )

    @classmethod
    def from_timed_event(cls, event: TimedEventData) -> "BusyInterval":
        return cls(
            start=event.start,
            end=event.end,
            source_tag=event.source_tag,
            source_id=event.id,
            title=event.title,
        )


@dataclass
class BusyIntervalResult:
    intervals: list[BusyInterval]
    total_count: int
    truncated: bool = False


@dataclass
class SyncResult:
    user_id: int
    category: SourceCategory
    window: DateWindow
    deleted_count: int
    created_count: int
