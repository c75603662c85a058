from django_filters import rest_framework as filters

from recurring_constraints.constants import SourceCategory
from recurring_constraints.models import CalendarEvent, PlannedEvent, RecurringSource


class RecurringSourceFilterSet(filters.FilterSet):
    """
    FilterSet for RecurringSource model.
    """

    category = filters.ChoiceFilter(
        field_name="category",
        choices=SourceCategory.choices,
        label="Filter by source category",
    )
    title = filters.CharFilter(
        field_name="title",
        lookup_expr="icontains",
        label="Filter by partial title match",
    )

    class Meta:
        model = RecurringSource
        fields = ("category", "title")


class TimedEventFilterSet(filters.FilterSet):
    start_time = filters.DateTimeFilter(
        field_name="start_time",
        lookup_expr="gte",
        label="Start time (greater than or equal to)",
    )
    end_time = filters.DateTimeFilter(
        field_name="end_time",
        lookup_expr="lte",
        label="End time (less than or equal to)",
    )
    start_time_range = filters.DateTimeFromToRangeFilter(
        field_name="start_time",
        label="Start time range",
    )
    title = filters.CharFilter(
        field_name="title",
        lookup_expr="icontains",
        label="Filter by partial title match",
    )


class CalendarEventFilterSet(TimedEventFilterSet):
    class Meta:
        model = CalendarEvent
        fields = ("start_time", "end_time", "start_time_range", "title")


class PlannedEventFilterSet(TimedEventFilterSet):
    class Meta:
        model = PlannedEvent
        fields = ("start_time", "end_time", "start_time_range", "title")
