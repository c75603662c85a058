from typing import TYPE_CHECKING

from common.querysets import BaseUserScopedQuerySet


if TYPE_CHECKING:
    from recurring_constraints.services.dataclasses import DateWindow


class RecurringSourceQuerySet(BaseUserScopedQuerySet):
    """
    Custom QuerySet for RecurringSource model.
    """

    def filter_by_category(self, category: str):
        """
        Returns recurring sources of the given category.
        """
        return self.filter(category=category)


class OccurrenceExceptionQuerySet(BaseUserScopedQuerySet):
    """
    Custom QuerySet for OccurrenceException model.
    """

    def filter_by_source(self, category: str, source_id: int):
        """
        Returns the exceptions attached to one recurring source.
        """
        return self.filter(source_category=category, source_id=source_id)

    def filter_in_window(self, window: "DateWindow"):
        """
        Returns exceptions whose date lies in the inclusive window.
        """
        return self.filter(exception_date__range=(window.start_date, window.end_date))


class MaterializedOccurrenceQuerySet(BaseUserScopedQuerySet):
    """
    Custom QuerySet for MaterializedOccurrence model.
    """

    def filter_by_category(self, category: str):
        return self.filter(source_category=category)

    def filter_in_window(self, window: "DateWindow"):
        return self.filter(occurrence_date__range=(window.start_date, window.end_date))

    def order_by_start(self):
        """
        Orders rows the same way resolved occurrences are ordered.
        """
        return self.order_by("occurrence_date", "start_time", "source_id", "source_category")


class TimedEventQuerySet(BaseUserScopedQuerySet):
    """
    QuerySet for one-off events (CalendarEvent and PlannedEvent).
    """

    def filter_overlapping_window(self, window: "DateWindow"):
        """
        Returns events intersecting ``[window start 00:00, window end + 1 day 00:00)``.
        Partial overlaps count.
        """
        if window.is_empty:
            return self.none()
        return self.filter(start_time__lt=window.end_datetime, end_time__gt=window.start_datetime)
