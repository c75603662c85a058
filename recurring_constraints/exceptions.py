from django.core.exceptions import ImproperlyConfigured


class RecurringConstraintServiceNotInjectedError(ImproperlyConfigured):
    pass


class RecurringConstraintsError(Exception):
    """Base exception for recurring constraints errors"""

    default_message = ""

    def __init__(self, message: str | None = None):
        if message is None:
            message = self.default_message
        super().__init__(message)


class ServiceNotInitializedError(RecurringConstraintsError):
    default_message = "Call initialize() with a user before using the service."


class InvalidRecurringSourceError(RecurringConstraintsError):
    """Raised when a recurring source definition breaks its invariants"""

    default_message = "Invalid recurring source."


class EmptyDaysOfWeekError(InvalidRecurringSourceError):
    default_message = "A recurring source must repeat on at least one day of the week."


class UnknownWeekdayError(InvalidRecurringSourceError):
    def __init__(self, weekday: str):
        super().__init__(f"Unknown weekday: {weekday}")


class InvalidTimeRangeError(InvalidRecurringSourceError):
    default_message = "end_time must be after start_time (occurrences cannot cross midnight)."


class InvalidOccurrenceExceptionError(RecurringConstraintsError):
    """Raised when an occurrence exception is inconsistent"""

    default_message = "Invalid occurrence exception."


class OccurrenceDateMismatchError(InvalidOccurrenceExceptionError):
    def __init__(self, exception_date, days_of_week):
        days = ", ".join(str(day) for day in days_of_week)
        super().__init__(
            f"{exception_date.isoformat()} is not an occurrence date (repeats on {days})"
        )


class MaterializationSyncError(RecurringConstraintsError):
    """Raised when re-materializing a category fails. Nothing was applied."""

    default_message = "Failed to materialize recurring occurrences."
