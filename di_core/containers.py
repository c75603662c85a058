from dependency_injector import containers, providers

from recurring_constraints.services.busy_interval_service import BusyIntervalService
from recurring_constraints.services.materialization_service import MaterializationSyncService
from recurring_constraints.services.occurrence_cache import OccurrenceCache
from recurring_constraints.services.occurrence_resolver import OccurrenceResolver
from recurring_constraints.services.recurring_constraint_service import (
    RecurringConstraintService,
)


class AppContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    occurrence_resolver = providers.Factory(
        OccurrenceResolver,
    )

    occurrence_cache = providers.Factory(
        OccurrenceCache,
        timeout=config.OCCURRENCE_CACHE_TIMEOUT,
    )

    materialization_sync_service = providers.Factory(
        MaterializationSyncService,
        occurrence_resolver=occurrence_resolver,
        horizon_months=config.RECURRING_CONSTRAINTS_HORIZON_MONTHS,
        horizon_months_by_category=config.RECURRING_CONSTRAINTS_HORIZON_MONTHS_BY_CATEGORY,
    )

    busy_interval_service = providers.Factory(
        BusyIntervalService,
        occurrence_resolver=occurrence_resolver,
        max_intervals=config.BUSY_INTERVALS_MAX_COUNT,
    )

    recurring_constraint_service = providers.Factory(
        RecurringConstraintService,
        materialization_sync_service=materialization_sync_service,
        occurrence_resolver=occurrence_resolver,
        occurrence_cache=occurrence_cache,
    )


container: AppContainer | None = None  # set during app startup
