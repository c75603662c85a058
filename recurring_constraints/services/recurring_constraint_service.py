import datetime
import logging
from collections.abc import Iterable
from functools import partial
from typing import Annotated, Any

from django.core.exceptions import PermissionDenied
from django.db import transaction

from dependency_injector.wiring import Provide, inject

from recurring_constraints.constants import OVERLAY_TIME_KEYS, ExceptionType, SourceCategory
from recurring_constraints.exceptions import (
    InvalidOccurrenceExceptionError,
    InvalidRecurringSourceError,
    OccurrenceDateMismatchError,
    ServiceNotInitializedError,
)
from recurring_constraints.models import RecurringSource
from recurring_constraints.recurrence_utils import (
    OccurrenceValidator,
    parse_time_of_day,
    validate_recurring_definition,
)
from recurring_constraints.services.dataclasses import (
    DateWindow,
    OccurrenceData,
    OccurrenceExceptionData,
    RecurringSourceInputData,
)
from recurring_constraints.services.exception_store import ExceptionStore
from recurring_constraints.services.materialization_service import MaterializationSyncService
from recurring_constraints.services.occurrence_cache import OccurrenceCache
from recurring_constraints.services.occurrence_resolver import OccurrenceResolver


logger = logging.getLogger(__name__)


class RecurringConstraintService:
    """
    Entry point for reading and changing the recurring constraints of a user.

    Every mutation runs in one transaction together with the re-materialization of
    the affected category, and drops the user's cached occurrences.
    Call initialize() before using it.
    """

    user: Any | None

    @inject
    def __init__(
        self,
        materialization_sync_service: Annotated[
            "MaterializationSyncService | None", Provide["materialization_sync_service"]
        ] = None,
        occurrence_resolver: Annotated[
            "OccurrenceResolver | None", Provide["occurrence_resolver"]
        ] = None,
        occurrence_cache: Annotated["OccurrenceCache | None", Provide["occurrence_cache"]] = None,
    ) -> None:
        self.user = None
        self.materialization_sync_service = materialization_sync_service
        self.occurrence_resolver = occurrence_resolver
        self.occurrence_cache = occurrence_cache

    def initialize(self, user) -> None:
        self.user = user

    def _get_user(self):
        if self.user is None:
            raise ServiceNotInitializedError()
        return self.user

    def _get_exception_store(self) -> ExceptionStore:
        return ExceptionStore(self._get_user())

    def _check_ownership(self, source: RecurringSource) -> None:
        if source.user_id != self._get_user().pk:
            raise PermissionDenied("This recurring source belongs to another user.")

    def _resync(self, category: str) -> None:
        self.materialization_sync_service.sync(self._get_user(), category)

    def _validate_definition(self, data: RecurringSourceInputData):
        try:
            category = SourceCategory(data.category)
        except ValueError as e:
            raise InvalidRecurringSourceError(f"Unknown category: {data.category}") from e
        days_of_week, start_time, end_time = validate_recurring_definition(
            data.days_of_week, data.start_time, data.end_time
        )
        return category, days_of_week, start_time, end_time

    def _invalidate_occurrences(self) -> None:
        user_id = self._get_user().pk
        self.occurrence_cache.invalidate(user_id)
        # again after commit, a reader may have cached the pre-commit state meanwhile
        transaction.on_commit(partial(self.occurrence_cache.invalidate, user_id))

    @transaction.atomic()
    def create_source(self, data: RecurringSourceInputData) -> RecurringSource:
        """
        Validate and store a recurring source, then re-materialize its category.
        """
        category, days_of_week, start_time, end_time = self._validate_definition(data)
        source = RecurringSource.objects.create(
            user=self._get_user(),
            category=category,
            days_of_week=[str(day) for day in days_of_week],
            start_time=start_time,
            end_time=end_time,
            title=data.title,
            location=data.location,
            meta=data.meta,
        )
        logger.info("Created %s source %s for user %s", source.category, source.pk, source.user_id)

        self._resync(source.category)
        self._invalidate_occurrences()
        return source

    @transaction.atomic()
    def update_source(
        self, source: RecurringSource, data: RecurringSourceInputData
    ) -> RecurringSource:
        """
        Replace the definition of a source. Existing exceptions are kept even when
        their date is no longer an occurrence date; they just stop matching.
        """
        self._check_ownership(source)
        category, days_of_week, start_time, end_time = self._validate_definition(data)
        previous_category = source.category

        source.category = category
        source.days_of_week = [str(day) for day in days_of_week]
        source.start_time = start_time
        source.end_time = end_time
        source.title = data.title
        source.location = data.location
        source.meta = data.meta
        source.save()

        if previous_category != source.category:
            # exceptions follow their source into the new category
            source.exceptions.update(source_category=source.category)
        # state rows are locked in category order so concurrent moves cannot deadlock
        for affected_category in sorted({str(previous_category), str(source.category)}):
            self._resync(affected_category)
        self._invalidate_occurrences()
        return source

    @transaction.atomic()
    def delete_source(self, source: RecurringSource) -> None:
        """
        Delete a source and all of its exceptions, then re-materialize its category.
        """
        self._check_ownership(source)
        category = source.category
        deleted_exceptions = self._get_exception_store().delete_all_for(category, source.pk)
        logger.info(
            "Deleting %s source %s of user %s with %s exceptions",
            category,
            source.pk,
            source.user_id,
            deleted_exceptions,
        )
        source.delete()

        self._resync(category)
        self._invalidate_occurrences()

    def _check_occurrence_date(self, source: RecurringSource, exception_date: datetime.date):
        if not OccurrenceValidator.is_occurrence_date(source.days_of_week, exception_date):
            raise OccurrenceDateMismatchError(exception_date, source.days_of_week)

    def _check_overlay_times(self, source: RecurringSource, modified_fields: dict[str, Any]):
        if not any(key in modified_fields for key in OVERLAY_TIME_KEYS):
            return
        try:
            start_time = parse_time_of_day(modified_fields.get("start_time", source.start_time))
            end_time = parse_time_of_day(modified_fields.get("end_time", source.end_time))
        except (TypeError, ValueError) as e:
            raise InvalidOccurrenceExceptionError(f"Invalid time in modified_fields: {e}") from e
        if end_time <= start_time:
            raise InvalidOccurrenceExceptionError(
                "The modified occurrence must end after it starts, on the same day."
            )

    @transaction.atomic()
    def edit_occurrence(
        self,
        source: RecurringSource,
        occurrence_date: datetime.date,
        modified_fields: dict[str, Any],
    ) -> OccurrenceExceptionData:
        """
        Override some fields of one occurrence. Editing the same occurrence again
        replaces the previous overlay.
        """
        self._check_ownership(source)
        self._check_occurrence_date(source, occurrence_date)
        self._check_overlay_times(source, modified_fields or {})

        exception = self._get_exception_store().upsert(
            source.category, source.pk, occurrence_date, ExceptionType.MODIFIED, modified_fields
        )
        self._resync(source.category)
        self._invalidate_occurrences()
        return exception

    @transaction.atomic()
    def cancel_occurrence(
        self, source: RecurringSource, occurrence_date: datetime.date
    ) -> OccurrenceExceptionData:
        """
        Remove one occurrence without touching the source.
        """
        self._check_ownership(source)
        self._check_occurrence_date(source, occurrence_date)

        exception = self._get_exception_store().upsert(
            source.category, source.pk, occurrence_date, ExceptionType.DELETED
        )
        self._resync(source.category)
        self._invalidate_occurrences()
        return exception

    @transaction.atomic()
    def restore_occurrence(self, source: RecurringSource, occurrence_date: datetime.date) -> bool:
        """
        Drop the exception of one occurrence. Returns False if there was none.
        """
        self._check_ownership(source)
        restored = self._get_exception_store().delete(
            source.category, source.pk, occurrence_date
        )
        if restored:
            self._resync(source.category)
            self._invalidate_occurrences()
        return restored

    def list_exceptions(self, source: RecurringSource) -> list[OccurrenceExceptionData]:
        self._check_ownership(source)
        return self._get_exception_store().list_for(source.category, source.pk)

    def get_source_occurrences(
        self, source: RecurringSource, window: DateWindow
    ) -> list[OccurrenceData]:
        self._check_ownership(source)
        exceptions = self._get_exception_store().list_for(source.category, source.pk)
        return self.occurrence_resolver.resolve(source.to_source_data(), window, exceptions)

    def _resolve_occurrences(
        self, window: DateWindow, categories: list[str] | None
    ) -> list[OccurrenceData]:
        sources = RecurringSource.objects.filter_by_user(self._get_user().pk)
        if categories:
            sources = sources.filter(category__in=categories)
        exceptions = self._get_exception_store().list_for_window(None, window)
        return self.occurrence_resolver.resolve_many(
            [source.to_source_data() for source in sources.order_by("pk")], window, exceptions
        )

    def get_occurrences(
        self, window: DateWindow, categories: Iterable[str] | None = None
    ) -> list[OccurrenceData]:
        """
        Resolved occurrences of the user in ``window``, read through the cache.
        """
        categories = sorted({str(category) for category in categories}) if categories else None
        return self.occurrence_cache.get_or_resolve(
            self._get_user().pk,
            window,
            partial(self._resolve_occurrences, window, categories),
            categories=categories,
        )

    def get_day_occurrences(self, day: datetime.date) -> list[OccurrenceData]:
        return self.get_occurrences(DateWindow(start_date=day, end_date=day))
