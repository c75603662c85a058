from common.types import RouteDict

from .views import (
    BusyIntervalViewSet,
    CalendarEventViewSet,
    OccurrenceViewSet,
    PlannedEventViewSet,
    RecurringSourceViewSet,
)


routes: list[RouteDict] = [
    {
        "regex": r"recurring-sources",
        "viewset": RecurringSourceViewSet,
        "basename": "RecurringSources",
    },
    {
        "regex": r"occurrences",
        "viewset": OccurrenceViewSet,
        "basename": "Occurrences",
    },
    {
        "regex": r"busy-intervals",
        "viewset": BusyIntervalViewSet,
        "basename": "BusyIntervals",
    },
    {
        "regex": r"calendar-events",
        "viewset": CalendarEventViewSet,
        "basename": "CalendarEvents",
    },
    {
        "regex": r"planned-events",
        "viewset": PlannedEventViewSet,
        "basename": "PlannedEvents",
    },
]
