from django.db.models import TextChoices


class SourceCategory(TextChoices):
    WORK = "work", "Work Schedule"
    ACTIVITY = "activity", "Activity"
    ROUTINE = "routine", "Routine Moment"


class Weekday(TextChoices):
    MONDAY = "monday", "Monday"
    TUESDAY = "tuesday", "Tuesday"
    WEDNESDAY = "wednesday", "Wednesday"
    THURSDAY = "thursday", "Thursday"
    FRIDAY = "friday", "Friday"
    SATURDAY = "saturday", "Saturday"
    SUNDAY = "sunday", "Sunday"


# Same order as datetime.date.weekday(): Monday is 0
WEEKDAYS_IN_ORDER: tuple[Weekday, ...] = (
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
    Weekday.SATURDAY,
    Weekday.SUNDAY,
)

WEEKDAY_ALIASES: dict[str, Weekday] = {
    # RFC 5545 codes
    "mo": Weekday.MONDAY,
    "tu": Weekday.TUESDAY,
    "we": Weekday.WEDNESDAY,
    "th": Weekday.THURSDAY,
    "fr": Weekday.FRIDAY,
    "sa": Weekday.SATURDAY,
    "su": Weekday.SUNDAY,
    # names sent by the mobile client
    "lundi": Weekday.MONDAY,
    "mardi": Weekday.TUESDAY,
    "mercredi": Weekday.WEDNESDAY,
    "jeudi": Weekday.THURSDAY,
    "vendredi": Weekday.FRIDAY,
    "samedi": Weekday.SATURDAY,
    "dimanche": Weekday.SUNDAY,
}


class ExceptionType(TextChoices):
    MODIFIED = "modified", "Modified"
    DELETED = "deleted", "Deleted"


class BusyIntervalSource(TextChoices):
    WORK = "work", "Work Schedule"
    ACTIVITY = "activity", "Activity"
    ROUTINE = "routine", "Routine Moment"
    CALENDAR_EVENT = "calendar_event", "Calendar Event"
    PLANNED_EVENT = "planned_event", "Planned Event"


class WorkScheduleKind(TextChoices):
    ALTERNANCE = "alternance", "Work-study"
    JOB = "job", "Student Job"
    OTHER = "other", "Other"


class WorkScheduleFrequency(TextChoices):
    WEEKLY = "weekly", "Weekly"
    BIWEEKLY = "biweekly", "Biweekly"


class ActivityKind(TextChoices):
    SPORT = "sport", "Sport"
    ASSO = "asso", "Association"
    COURS = "cours", "Class"
    PROJET = "projet", "Project"
    AUTRE = "autre", "Other"


# Keys of an exception overlay that change the occurrence times instead of its fields
OVERLAY_TIME_KEYS = ("start_time", "end_time")
# Overlay keys stored in text columns of the materialized rows
OVERLAY_TEXT_KEYS = ("title", "location")
OVERLAY_TEXT_MAX_LENGTH = 255

DEFAULT_HORIZON_MONTHS = 3
DEFAULT_BUSY_INTERVALS_MAX_COUNT = 400
DEFAULT_OCCURRENCE_CACHE_TIMEOUT = 300
