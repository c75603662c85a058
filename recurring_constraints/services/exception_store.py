import datetime
import logging
from typing import Any

from recurring_constraints.constants import ExceptionType
from recurring_constraints.exceptions import InvalidOccurrenceExceptionError
from recurring_constraints.models import OccurrenceException, RecurringSource
from recurring_constraints.services.dataclasses import DateWindow, OccurrenceExceptionData


logger = logging.getLogger(__name__)


class ExceptionStore:
    """
    Storage of per-occurrence overrides of one user, keyed by
    (source category, source id, date).
    """

    def __init__(self, user):
        self.user = user

    def _get_queryset(self):
        return OccurrenceException.objects.filter_by_user(self.user.pk)

    def get(
        self, category: str, source_id: int, exception_date: datetime.date
    ) -> OccurrenceExceptionData | None:
        exception = (
            self._get_queryset()
            .filter_by_source(category, source_id)
            .filter(exception_date=exception_date)
            .first()
        )
        return exception.to_exception_data() if exception else None

    def upsert(
        self,
        category: str,
        source_id: int,
        exception_date: datetime.date,
        exception_type: ExceptionType,
        modified_fields: dict[str, Any] | None = None,
    ) -> OccurrenceExceptionData:
        """
        Insert the exception or replace the one stored under the same key.
        A single INSERT ... ON CONFLICT DO UPDATE statement, last write wins.
        The source must belong to the store user and be of ``category``.
        """
        data = OccurrenceExceptionData(
            source_category=category,
            source_id=source_id,
            exception_date=exception_date,
            exception_type=exception_type,
            modified_fields=modified_fields,
        )
        if not (
            RecurringSource.objects.filter_by_user(self.user.pk)
            .filter(pk=data.source_id, category=data.source_category)
            .exists()
        ):
            raise InvalidOccurrenceExceptionError(
                f"No {data.source_category} source {data.source_id} for this user."
            )
        OccurrenceException.objects.bulk_create(
            [
                OccurrenceException(
                    user=self.user,
                    source_category=data.source_category,
                    source_id=data.source_id,
                    exception_date=data.exception_date,
                    exception_type=data.exception_type,
                    modified_fields=data.modified_fields,
                )
            ],
            update_conflicts=True,
            unique_fields=["source_category", "source", "exception_date"],
            update_fields=["exception_type", "modified_fields", "modified"],
        )
        logger.info(
            "Stored %s exception for %s source %s on %s",
            data.exception_type,
            data.source_category,
            data.source_id,
            data.exception_date,
        )
        return self.get(data.source_category, data.source_id, data.exception_date)

    def delete(self, category: str, source_id: int, exception_date: datetime.date) -> bool:
        """
        Remove one exception, restoring the occurrence to its source fields.
        Returns False when there was nothing to remove.
        """
        deleted_count, _ = (
            self._get_queryset()
            .filter_by_source(category, source_id)
            .filter(exception_date=exception_date)
            .delete()
        )
        return deleted_count > 0

    def delete_all_for(self, category: str, source_id: int) -> int:
        """
        Remove every exception of a source. Callers run it inside the transaction
        that deletes the source.
        """
        deleted_count, _ = self._get_queryset().filter_by_source(category, source_id).delete()
        return deleted_count

    def list_for(self, category: str, source_id: int) -> list[OccurrenceExceptionData]:
        exceptions = (
            self._get_queryset().filter_by_source(category, source_id).order_by("exception_date")
        )
        return [exception.to_exception_data() for exception in exceptions]

    def list_for_window(
        self, category: str | None, window: DateWindow
    ) -> list[OccurrenceExceptionData]:
        """
        Batch load the exceptions of ``window``, for one category or all of them.
        """
        exceptions = self._get_queryset().filter_in_window(window)
        if category is not None:
            exceptions = exceptions.filter(source_category=category)
        return [
            exception.to_exception_data()
            for exception in exceptions.order_by("source_id", "exception_date")
        ]
