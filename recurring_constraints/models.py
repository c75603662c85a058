import datetime
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from common.models import BaseModel, IndexedTimeStampedModel
from recurring_constraints.constants import BusyIntervalSource, ExceptionType, SourceCategory
from recurring_constraints.exceptions import InvalidRecurringSourceError, InvalidTimeRangeError
from recurring_constraints.managers import (
    MaterializedOccurrenceManager,
    OccurrenceExceptionManager,
    RecurringSourceManager,
    TimedEventManager,
)
from recurring_constraints.recurrence_utils import (
    format_time_of_day,
    normalize_days_of_week,
    validate_time_range,
)
from recurring_constraints.services.dataclasses import (
    OccurrenceData,
    OccurrenceExceptionData,
    RecurringSourceData,
    TimedEventData,
    build_source_details,
)


if TYPE_CHECKING:
    from django.db.models.manager import RelatedManager


class RecurringSource(BaseModel):
    """
    A recurring time block of a user (work schedule, activity or routine moment).
    Category specific fields live in ``meta``.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="recurring_sources",
    )
    category = models.CharField(max_length=20, choices=SourceCategory)
    days_of_week = models.JSONField(
        default=list,
        help_text="Weekday names, Monday first (e.g. ['monday', 'wednesday'])",
    )
    start_time = models.TimeField()
    end_time = models.TimeField()
    title = models.CharField(max_length=255, blank=True)
    location = models.CharField(max_length=255, blank=True)

    objects: RecurringSourceManager = RecurringSourceManager()

    exceptions: "RelatedManager[OccurrenceException]"
    materialized_occurrences: "RelatedManager[MaterializedOccurrence]"

    class Meta:
        indexes = (
            models.Index(fields=("user", "category"), name="recurring_source_user_cat_idx"),
        )

    def __str__(self):
        days = ", ".join(self.days_of_week)
        times = f"{self.start_time}-{self.end_time}"
        return f"{self.get_category_display()} {self.title} ({days} {times})"

    def clean(self):
        super().clean()
        try:
            self.days_of_week = [str(day) for day in normalize_days_of_week(self.days_of_week)]
        except InvalidRecurringSourceError as e:
            raise ValidationError({"days_of_week": str(e)}) from e
        if self.start_time is not None and self.end_time is not None:
            try:
                validate_time_range(self.start_time, self.end_time)
            except InvalidTimeRangeError as e:
                raise ValidationError({"end_time": str(e)}) from e

    def to_source_data(self) -> RecurringSourceData:
        return RecurringSourceData(
            id=self.pk,
            category=self.category,
            days_of_week=self.days_of_week,
            start_time=self.start_time,
            end_time=self.end_time,
            title=self.title,
            location=self.location,
            details=build_source_details(self.category, self.meta),
        )


class OccurrenceException(IndexedTimeStampedModel):
    """
    Override of a single occurrence of a recurring source, keyed by
    (source_category, source, exception_date).
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="occurrence_exceptions",
    )
    source_category = models.CharField(max_length=20, choices=SourceCategory)
    source = models.ForeignKey(
        RecurringSource,
        on_delete=models.CASCADE,
        related_name="exceptions",
    )
    exception_date = models.DateField()
    exception_type = models.CharField(max_length=20, choices=ExceptionType)
    modified_fields = models.JSONField(
        null=True,
        blank=True,
        help_text="Partial overlay applied on top of the source, only for modified occurrences",
    )

    objects: OccurrenceExceptionManager = OccurrenceExceptionManager()

    class Meta:
        constraints = (
            models.UniqueConstraint(
                fields=("source_category", "source", "exception_date"),
                name="unique_occurrence_exception_per_date",
            ),
        )

    def __str__(self):
        return f"{self.get_exception_type_display()} {self.source_id} on {self.exception_date}"

    def to_exception_data(self) -> OccurrenceExceptionData:
        return OccurrenceExceptionData(
            id=self.pk,
            source_category=self.source_category,
            source_id=self.source_id,
            exception_date=self.exception_date,
            exception_type=self.exception_type,
            modified_fields=self.modified_fields,
        )


class MaterializedOccurrence(IndexedTimeStampedModel):
    """
    Persisted copy of a resolved occurrence. Rows of a (user, category) pair are
    always replaced as a whole by the materialization sync.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="materialized_occurrences",
    )
    source_category = models.CharField(max_length=20, choices=SourceCategory)
    source = models.ForeignKey(
        RecurringSource,
        on_delete=models.CASCADE,
        related_name="materialized_occurrences",
    )
    occurrence_date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    title = models.CharField(max_length=255, blank=True)
    fields = models.JSONField(default=dict, blank=True)
    is_modified = models.BooleanField(default=False)

    objects: MaterializedOccurrenceManager = MaterializedOccurrenceManager()

    class Meta:
        indexes = (
            models.Index(
                fields=("user", "source_category", "occurrence_date"),
                name="materialized_occ_window_idx",
            ),
        )
        constraints = (
            models.UniqueConstraint(
                fields=("source", "occurrence_date"),
                name="unique_materialized_occurrence_per_date",
            ),
        )

    def __str__(self):
        return f"{self.title} on {self.occurrence_date} {format_time_of_day(self.start_time)}"

    @classmethod
    def from_occurrence_data(cls, user, occurrence: OccurrenceData) -> "MaterializedOccurrence":
        return cls(
            user=user,
            source_category=occurrence.source_category,
            source_id=occurrence.source_id,
            occurrence_date=occurrence.occurrence_date,
            start_time=occurrence.start.time(),
            end_time=occurrence.end.time(),
            title=occurrence.title,
            fields=occurrence.fields,
            is_modified=occurrence.is_modified,
        )

    def to_occurrence_data(self) -> OccurrenceData:
        return OccurrenceData(
            source_category=SourceCategory(self.source_category),
            source_id=self.source_id,
            occurrence_date=self.occurrence_date,
            start=datetime.datetime.combine(self.occurrence_date, self.start_time),
            end=datetime.datetime.combine(self.occurrence_date, self.end_time),
            title=self.title,
            fields=self.fields,
            is_modified=self.is_modified,
        )


class MaterializationState(models.Model):
    """
    One row per (user, category). Locked with SELECT ... FOR UPDATE while the
    category is being re-materialized.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="materialization_states",
    )
    category = models.CharField(max_length=20, choices=SourceCategory)
    window_start = models.DateField(null=True, blank=True)
    window_end = models.DateField(null=True, blank=True)
    occurrences_count = models.PositiveIntegerField(default=0)
    last_synced_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = (
            models.UniqueConstraint(
                fields=("user", "category"),
                name="unique_materialization_state_per_category",
            ),
        )

    def __str__(self):
        return f"{self.user_id} {self.category} synced at {self.last_synced_at}"


class TimedEvent(BaseModel):
    """
    A one-off block of time owned by a user.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="%(class)ss",
    )
    title = models.CharField(max_length=255, blank=True)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()

    objects: TimedEventManager = TimedEventManager()

    busy_interval_source: BusyIntervalSource

    class Meta:
        abstract = True

    def __str__(self):
        return f"{self.title} ({self.start_time} - {self.end_time})"

    def clean(self):
        super().clean()
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({"end_time": "end_time must be after start_time."})

    def to_timed_event_data(self) -> TimedEventData:
        return TimedEventData(
            id=self.pk,
            source_tag=self.busy_interval_source,
            start=self.start_time,
            end=self.end_time,
            title=self.title,
        )


class CalendarEvent(TimedEvent):
    """
    One-off event imported from an external calendar.
    """

    location = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True)
    external_id = models.CharField(max_length=255, blank=True)

    busy_interval_source = BusyIntervalSource.CALENDAR_EVENT

    class Meta(TimedEvent.Meta):
        indexes = (
            models.Index(fields=("user", "start_time"), name="calendar_event_user_start_idx"),
        )


class PlannedEvent(TimedEvent):
    """
    One-off event placed manually by the user.
    """

    notes = models.TextField(blank=True)

    busy_interval_source = BusyIntervalSource.PLANNED_EVENT

    class Meta(TimedEvent.Meta):
        indexes = (
            models.Index(fields=("user", "start_time"), name="planned_event_user_start_idx"),
        )
