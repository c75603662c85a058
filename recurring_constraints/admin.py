from django.contrib import admin

from recurring_constraints.models import (
    CalendarEvent,
    MaterializationState,
    MaterializedOccurrence,
    OccurrenceException,
    PlannedEvent,
    RecurringSource,
)


class OccurrenceExceptionInline(admin.TabularInline):
    model = OccurrenceException
    fields = ("exception_date", "exception_type", "modified_fields", "modified")
    readonly_fields = ("exception_date", "exception_type", "modified_fields", "modified")
    extra = 0
    can_delete = False
    ordering = ("exception_date",)


@admin.register(RecurringSource)
class RecurringSourceAdmin(admin.ModelAdmin):
    """
    Recurring sources are read-only here: edits must go through the API so the
    materialized occurrences stay in sync.
    """

    list_display = ("id", "user", "category", "title", "days_of_week", "start_time", "end_time")
    list_filter = ("category",)
    search_fields = ("title", "location", "user__username", "user__email")
    readonly_fields = (
        "user",
        "category",
        "days_of_week",
        "start_time",
        "end_time",
        "title",
        "location",
        "meta",
        "created",
        "modified",
    )
    inlines = (OccurrenceExceptionInline,)

    def has_add_permission(self, request):
        return False


@admin.register(MaterializedOccurrence)
class MaterializedOccurrenceAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "user",
        "source_category",
        "source",
        "occurrence_date",
        "start_time",
        "end_time",
        "is_modified",
    )
    list_filter = ("source_category", "is_modified")
    search_fields = ("title", "user__username")
    date_hierarchy = "occurrence_date"
    list_select_related = ("user", "source")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(MaterializationState)
class MaterializationStateAdmin(admin.ModelAdmin):
    list_display = (
        "user",
        "category",
        "window_start",
        "window_end",
        "occurrences_count",
        "last_synced_at",
    )
    list_filter = ("category",)
    readonly_fields = (
        "user",
        "category",
        "window_start",
        "window_end",
        "occurrences_count",
        "last_synced_at",
    )


@admin.register(CalendarEvent)
class CalendarEventAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "title", "start_time", "end_time", "external_id")
    search_fields = ("title", "external_id", "user__username")
    date_hierarchy = "start_time"


@admin.register(PlannedEvent)
class PlannedEventAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "title", "start_time", "end_time")
    search_fields = ("title", "user__username")
    date_hierarchy = "start_time"
