import datetime
from typing import Any

from .constants import ExceptionType, SourceCategory
from .models import OccurrenceException, RecurringSource


class RecurringSourceFactory:
    @staticmethod
    def create_source(
        user,
        category: str = SourceCategory.WORK,
        days_of_week: list[str] | None = None,
        start_time: datetime.time = datetime.time(9, 0),
        end_time: datetime.time = datetime.time(17, 0),
        title: str = "",
        location: str = "",
        meta: dict[str, Any] | None = None,
    ) -> RecurringSource:
        """
        Create a recurring source row directly, without materializing it.

        Args:
            user: Owner of the source
            category: Source category (work, activity or routine)
            days_of_week: Weekday names, defaults to Monday only
            start_time: Start time of every occurrence
            end_time: End time of every occurrence
            title: Source title
            location: Source location
            meta: Category specific fields

        Returns:
            RecurringSource instance
        """
        return RecurringSource.objects.create(
            user=user,
            category=category,
            days_of_week=days_of_week or ["monday"],
            start_time=start_time,
            end_time=end_time,
            title=title,
            location=location,
            meta=meta or {},
        )

    @staticmethod
    def create_exception(
        source: RecurringSource,
        exception_date: datetime.date,
        exception_type: str = ExceptionType.DELETED,
        modified_fields: dict[str, Any] | None = None,
    ) -> OccurrenceException:
        return OccurrenceException.objects.create(
            user=source.user,
            source_category=source.category,
            source=source,
            exception_date=exception_date,
            exception_type=exception_type,
            modified_fields=modified_fields,
        )
