import datetime
import logging
from collections.abc import Iterable, Mapping
from typing import Annotated

from django.db import DatabaseError, transaction
from django.utils import timezone

from dependency_injector.wiring import Provide, inject

from recurring_constraints.constants import DEFAULT_HORIZON_MONTHS, SourceCategory
from recurring_constraints.exceptions import (
    InvalidRecurringSourceError,
    MaterializationSyncError,
    RecurringConstraintsError,
)
from recurring_constraints.models import (
    MaterializationState,
    MaterializedOccurrence,
    RecurringSource,
)
from recurring_constraints.services.dataclasses import (
    DateWindow,
    OccurrenceData,
    RecurringSourceData,
    SyncResult,
)
from recurring_constraints.services.exception_store import ExceptionStore
from recurring_constraints.services.occurrence_resolver import (
    OccurrenceResolver,
    sort_occurrences,
)


logger = logging.getLogger(__name__)


class MaterializationSyncService:
    """
    Keeps the ``MaterializedOccurrence`` table of a (user, category) pair equal to
    what the resolver produces over the horizon window.

    A sync deletes every row of the pair and inserts the freshly resolved ones in a
    single transaction, so readers see either the old or the new set.
    """

    @inject
    def __init__(
        self,
        occurrence_resolver: Annotated[
            "OccurrenceResolver | None", Provide["occurrence_resolver"]
        ] = None,
        horizon_months: int = DEFAULT_HORIZON_MONTHS,
        horizon_months_by_category: Mapping[str, int] | None = None,
    ) -> None:
        self.occurrence_resolver = occurrence_resolver or OccurrenceResolver()
        self.horizon_months = horizon_months
        self.horizon_months_by_category = dict(horizon_months_by_category or {})

    def get_horizon_window(
        self, category: str, today: datetime.date | None = None
    ) -> DateWindow:
        months = self.horizon_months_by_category.get(str(category), self.horizon_months)
        return DateWindow.from_horizon(today or datetime.date.today(), months)

    def _lock_category(self, user, category: SourceCategory) -> MaterializationState:
        """
        Lock the state row of (user, category). Concurrent syncs of the same pair
        wait here until the first one commits.
        """
        MaterializationState.objects.get_or_create(user=user, category=category)
        return MaterializationState.objects.select_for_update().get(user=user, category=category)

    def _load_sources(self, user, category: SourceCategory) -> list[RecurringSourceData]:
        sources = RecurringSource.objects.filter_by_user(user.pk).filter_by_category(category)
        return [source.to_source_data() for source in sources.order_by("pk")]

    def sync(
        self,
        user,
        category: str,
        sources: Iterable[RecurringSourceData] | None = None,
        window: DateWindow | None = None,
    ) -> SyncResult:
        """
        Replace the materialized occurrences of (user, category).

        ``sources=None`` loads the current sources of the category. Any failure rolls
        the whole unit back and is raised as ``MaterializationSyncError``.
        """
        category = SourceCategory(category)
        window = window or self.get_horizon_window(category)
        logger.info(
            "Materializing %s occurrences of user %s from %s to %s",
            category,
            user.pk,
            window.start_date,
            window.end_date,
        )

        try:
            with transaction.atomic():
                state = self._lock_category(user, category)

                if sources is None:
                    sources = self._load_sources(user, category)
                sources = list(sources)
                for source in sources:
                    if source.category != category:
                        raise InvalidRecurringSourceError(
                            f"Source {source.id} is not a {category} source."
                        )

                deleted_count, _ = (
                    MaterializedOccurrence.objects.filter_by_user(user.pk)
                    .filter_by_category(category)
                    .delete()
                )
                exceptions = ExceptionStore(user).list_for_window(category, window)
                occurrences = self.occurrence_resolver.resolve_many(sources, window, exceptions)
                MaterializedOccurrence.objects.bulk_create(
                    [
                        MaterializedOccurrence.from_occurrence_data(user, occurrence)
                        for occurrence in occurrences
                    ]
                )

                state.window_start = window.start_date
                state.window_end = window.end_date
                state.occurrences_count = len(occurrences)
                state.last_synced_at = timezone.now()
                state.save(
                    update_fields=[
                        "window_start",
                        "window_end",
                        "occurrences_count",
                        "last_synced_at",
                    ]
                )
        except (DatabaseError, RecurringConstraintsError) as e:
            logger.exception("Failed to materialize %s occurrences of user %s", category, user.pk)
            raise MaterializationSyncError() from e

        logger.info(
            "Materialized %s %s occurrences of user %s (%s removed)",
            len(occurrences),
            category,
            user.pk,
            deleted_count,
        )
        return SyncResult(
            user_id=user.pk,
            category=category,
            window=window,
            deleted_count=deleted_count,
            created_count=len(occurrences),
        )

    def sync_all(self, user) -> list[SyncResult]:
        """
        Re-materialize every category of the user, one transaction per category.
        """
        return [self.sync(user, category) for category in SourceCategory]

    def get_materialized_occurrences(
        self,
        user,
        category: str | None = None,
        window: DateWindow | None = None,
    ) -> list[OccurrenceData]:
        """
        Read materialized rows back as occurrences, in resolver order.
        """
        rows = MaterializedOccurrence.objects.filter_by_user(user.pk)
        if category is not None:
            rows = rows.filter_by_category(category)
        if window is not None:
            rows = rows.filter_in_window(window)
        return sort_occurrences(row.to_occurrence_data() for row in rows.order_by_start())
